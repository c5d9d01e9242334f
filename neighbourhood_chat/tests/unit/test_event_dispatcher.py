from datetime import UTC, datetime

from neighbourhood_chat.domain.events import MessageSent, NewMessage, NotificationUpdated
from neighbourhood_chat.infrastructure.event_dispatcher import EventDispatcher


def new_message_event():
    return NewMessage(group_id="g1", sender_id="u1", message={"id": "m1"})


async def test_event_dispatcher():
    dispatcher = EventDispatcher()

    events_received = []

    async def test_handler(event):
        events_received.append(event)

    dispatcher.register("NewMessage", test_handler)

    failures = await dispatcher.dispatch(new_message_event())

    assert failures == 0
    assert len(events_received) == 1
    assert isinstance(events_received[0], NewMessage)


async def test_dispatch_matches_event_class_name():
    dispatcher = EventDispatcher()
    seen = []

    async def on_sent(event):
        seen.append("sent")

    dispatcher.register("MessageSent", on_sent)

    await dispatcher.dispatch(new_message_event())
    await dispatcher.dispatch(MessageSent(group_id="g1", sender_id="u1", message={}))

    assert seen == ["sent"]


async def test_failing_handler_does_not_stop_the_rest(caplog):
    dispatcher = EventDispatcher()
    calls = []

    async def broken(event):
        raise RuntimeError("socket layer down")

    async def working(event):
        calls.append(event.recipient_id)

    dispatcher.register("NotificationUpdated", broken)
    dispatcher.register("NotificationUpdated", working)

    failures = await dispatcher.dispatch(
        NotificationUpdated(
            recipient_id="u2",
            chat_id="g1",
            chat_name="Maple Street Watch",
            sender_id="u1",
            sender_name="Test User",
            message_id="m1",
            timestamp=datetime.now(UTC),
        )
    )

    assert failures == 1
    assert calls == ["u2"]
    assert any("failed for NotificationUpdated" in r.message for r in caplog.records)
