from datetime import UTC, datetime

from neighbourhood_chat.domain.events import MessageSent, NewMessage, NotificationUpdated
from neighbourhood_chat.infrastructure.event_handlers import EventHandlers


class FakeHub:
    def __init__(self):
        self.published = []

    async def publish(self, room, event, payload):
        self.published.append((room, event, payload))
        return 1


async def test_new_message_goes_to_group_room():
    hub = FakeHub()

    await EventHandlers(hub).publish_new_message(
        NewMessage(group_id="g1", sender_id="u1", message={"id": "m1"})
    )

    assert hub.published == [("group_g1", "new_message", {"id": "m1"})]


async def test_message_sent_goes_to_sender():
    hub = FakeHub()

    await EventHandlers(hub).publish_message_sent(
        MessageSent(group_id="g1", sender_id="u1", message={"id": "m1"})
    )

    assert hub.published == [("user_u1", "message_sent", {"id": "m1"})]


async def test_notification_goes_to_recipient():
    hub = FakeHub()
    sent_at = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    await EventHandlers(hub).publish_notification_update(
        NotificationUpdated(
            recipient_id="u2",
            chat_id="g1",
            chat_name="Maple Street Watch",
            sender_id="u1",
            sender_name="Test User",
            message_id="m1",
            timestamp=sent_at,
        )
    )

    room, event, payload = hub.published[0]
    assert (room, event) == ("user_u2", "notification_update")
    assert payload == {
        "type": "new_message",
        "chatId": "g1",
        "chatType": "group",
        "chatName": "Maple Street Watch",
        "senderId": "u1",
        "senderName": "Test User",
        "messageId": "m1",
        "timestamp": sent_at,
    }
