# neighbourhood_chat/gateways/moderation_gateway.py
from sqlalchemy import select

from neighbourhood_chat.gateways.base import LOOKUP_RETRY, SqlGateway
from neighbourhood_chat.gateways.interfaces import IModerationGateway
from neighbourhood_chat.infrastructure import models
from neighbourhood_chat.infrastructure.data_mappers import (
    MessageMapper,
    NoticeMapper,
    ReportMapper,
)
from neighbourhood_chat.infrastructure.uow import UoWModel

CONTENT_MODELS = {
    "notice": models.Notice,
    "report": models.Report,
    "message": models.Message,
}


class ModerationGateway(SqlGateway, IModerationGateway):
    def __init__(self, session, uow, settings=None):
        super().__init__(session, uow, settings)
        uow.mappers[models.Notice] = NoticeMapper(session)
        uow.mappers[models.Report] = ReportMapper(session)
        uow.mappers[models.Message] = MessageMapper(session)

    async def get_content(self, content_type: str, content_id: str) -> UoWModel | None:
        model = CONTENT_MODELS[content_type]
        stmt = select(model).filter(model.id == content_id)
        content = await self._read(
            lambda: self.session.scalar(stmt),
            "getFlaggableContent",
            timeout=5.0,
            retry=LOOKUP_RETRY,
            contentType=content_type,
            contentId=content_id,
        )
        return UoWModel(content, self.uow) if content else None

    async def reload(self, content: UoWModel) -> UoWModel:
        await self._read(
            lambda: self.session.refresh(content.model),
            "reloadFlaggableContent",
            timeout=5.0,
            retry=LOOKUP_RETRY,
        )
        return content

    async def flagged(self, content_type: str) -> list[UoWModel]:
        """Flagged notices or reports that still carry at least one report."""
        model = CONTENT_MODELS[content_type]
        stmt = select(model).filter(model.is_flagged.is_(True))

        async def load():
            result = await self.session.execute(stmt)
            return result.scalars().all()

        items = await self._read(
            load,
            "getFlaggedContent",
            retry=LOOKUP_RETRY,
            contentType=content_type,
        )
        return [UoWModel(item, self.uow) for item in items if item.reports]

    async def save(self, content: UoWModel) -> UoWModel:
        async def commit():
            self.uow.register_dirty(content)
            await self.uow.commit()

        await self._write(commit, "moderateContent", contentId=content.id)
        return content
