# neighbourhood_chat/infrastructure/event_handlers.py
from neighbourhood_chat.domain.events import MessageSent, NewMessage, NotificationUpdated
from neighbourhood_chat.infrastructure.realtime_hub import (
    RealtimeHub,
    group_room,
    user_room,
)


class EventHandlers:
    def __init__(self, hub: RealtimeHub):
        self.hub = hub

    async def publish_new_message(self, event: NewMessage):
        await self.hub.publish(group_room(event.group_id), "new_message", event.message)

    async def publish_message_sent(self, event: MessageSent):
        await self.hub.publish(user_room(event.sender_id), "message_sent", event.message)

    async def publish_notification_update(self, event: NotificationUpdated):
        await self.hub.publish(
            user_room(event.recipient_id), "notification_update", event.payload()
        )
