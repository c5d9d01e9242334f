# neighbourhood_chat/infrastructure/data_mappers.py
from typing import Generic, Protocol, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from neighbourhood_chat.infrastructure import models

ModelT_contra = TypeVar("ModelT_contra", contravariant=True)
ModelT = TypeVar("ModelT")


class DataMapper(Protocol[ModelT_contra]):
    async def insert(self, model: ModelT_contra):
        raise NotImplementedError

    async def delete(self, model: ModelT_contra):
        raise NotImplementedError

    async def update(self, model: ModelT_contra):
        raise NotImplementedError


class SessionMapper(Generic[ModelT]):
    """Maps one model class onto the request session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, model: ModelT):
        self.session.add(model)
        await self.session.flush()

    async def delete(self, model: ModelT):
        await self.session.delete(model)
        await self.session.flush()

    async def update(self, model: ModelT):
        # Already-attached instances only need a flush; merge covers detached ones.
        if model not in self.session:
            await self.session.merge(model)
        await self.session.flush()


class UserMapper(SessionMapper[models.User]):
    pass


class GroupMapper(SessionMapper[models.Group]):
    pass


class GroupMemberMapper(SessionMapper[models.GroupMember]):
    pass


class MessageMapper(SessionMapper[models.Message]):
    pass


class NotificationMapper(SessionMapper[models.Notification]):
    async def insert_many(self, notifications: list[models.Notification]):
        self.session.add_all(notifications)
        await self.session.flush()


class AuditEntryMapper(SessionMapper[models.AuditEntry]):
    pass


class NoticeMapper(SessionMapper[models.Notice]):
    pass


class ReportMapper(SessionMapper[models.Report]):
    pass
