# neighbourhood_chat/gateways/notification_gateway.py
from typing import Any

from neighbourhood_chat.gateways.base import LOOKUP_RETRY, SqlGateway
from neighbourhood_chat.gateways.interfaces import INotificationGateway
from neighbourhood_chat.infrastructure import models
from neighbourhood_chat.infrastructure.data_mappers import NotificationMapper


class NotificationGateway(SqlGateway, INotificationGateway):
    def __init__(self, session, uow, settings=None):
        super().__init__(session, uow, settings)
        self.mapper = NotificationMapper(session)
        uow.mappers[models.Notification] = self.mapper

    async def create_many(self, records: list[dict[str, Any]]) -> list[models.Notification]:
        if not records:
            return []

        async def insert():
            notifications = [models.Notification(**record) for record in records]
            await self.mapper.insert_many(notifications)
            await self.session.commit()
            return notifications

        return await self._write(
            insert,
            "createNotifications",
            timeout=5.0,
            retry=LOOKUP_RETRY,
            count=len(records),
        )
