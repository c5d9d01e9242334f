# neighbourhood_chat/interactors/notification_interactor.py
import logging
from datetime import datetime

from neighbourhood_chat.domain.events import NotificationUpdated
from neighbourhood_chat.gateways.notification_gateway import NotificationGateway
from neighbourhood_chat.infrastructure.errors import ChatError, log_classified_error
from neighbourhood_chat.infrastructure.event_dispatcher import EventDispatcher

logger = logging.getLogger("neighbourhood_chat.notifications")


class NotificationInteractor:
    def __init__(
        self,
        notification_gateway: NotificationGateway,
        event_dispatcher: EventDispatcher,
    ):
        self.notification_gateway = notification_gateway
        self.event_dispatcher = event_dispatcher

    async def notify_group_message(
        self,
        *,
        group_id: str,
        group_name: str,
        member_ids: list[str],
        sender_id: str,
        sender_name: str,
        message_id: str,
        timestamp: datetime,
    ) -> int:
        """Record and announce a new group message to every other member.

        Returns the number of notification records written. A failed insert
        is logged and the real-time updates still go out.
        """
        recipients = [uid for uid in dict.fromkeys(member_ids) if uid != sender_id]
        if not recipients:
            return 0

        created = 0
        try:
            records = await self.notification_gateway.create_many(
                [
                    {
                        "recipient_id": recipient_id,
                        "sender_id": sender_id,
                        "kind": "message",
                        "chat_id": group_id,
                        "chat_type": "group",
                        "chat_name": group_name,
                        "message_id": message_id,
                        "created_at": timestamp,
                    }
                    for recipient_id in recipients
                ]
            )
            created = len(records)
        except ChatError as e:
            log_classified_error(
                e,
                {"userId": sender_id, "groupId": group_id},
                "Create group message notifications",
            )

        for recipient_id in recipients:
            await self.event_dispatcher.dispatch(
                NotificationUpdated(
                    recipient_id=recipient_id,
                    chat_id=group_id,
                    chat_type="group",
                    chat_name=group_name,
                    sender_id=sender_id,
                    sender_name=sender_name,
                    message_id=message_id,
                    timestamp=timestamp,
                )
            )
        logger.debug(
            f"Notified {len(recipients)} members of group {group_id} about {message_id}"
        )
        return created
