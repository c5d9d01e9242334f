# neighbourhood_chat/gateways/message_gateway.py
from datetime import datetime
from typing import Any

from sqlalchemy import func, select

from neighbourhood_chat.domain.entities import PopulatedMessage
from neighbourhood_chat.domain.identifiers import utcnow
from neighbourhood_chat.gateways.base import (
    FETCH_RETRY,
    LOOKUP_RETRY,
    WRITE_RETRY,
    SqlGateway,
)
from neighbourhood_chat.gateways.interfaces import IMessageGateway
from neighbourhood_chat.infrastructure import models
from neighbourhood_chat.infrastructure.data_mappers import MessageMapper, UserMapper
from neighbourhood_chat.infrastructure.uow import UoWModel


class MessageGateway(SqlGateway, IMessageGateway):
    def __init__(self, session, uow, settings=None):
        super().__init__(session, uow, settings)
        uow.mappers[models.Message] = MessageMapper(session)
        uow.mappers[models.User] = UserMapper(session)

    def _active_in_group(self, group_id: str):
        return (
            models.Message.chat_id == group_id,
            models.Message.chat_type == "group",
            models.Message.moderation_status == "active",
        )

    async def get_message(self, message_id: str) -> UoWModel | None:
        stmt = select(models.Message).filter(models.Message.id == message_id)
        message = await self._read(
            lambda: self.session.scalar(stmt),
            "getMessage",
            timeout=5.0,
            retry=LOOKUP_RETRY,
            messageId=message_id,
        )
        return UoWModel(message, self.uow) if message else None

    async def reload(self, message: UoWModel) -> UoWModel:
        await self._read(
            lambda: self.session.refresh(message.model),
            "reloadMessage",
            timeout=5.0,
            retry=LOOKUP_RETRY,
        )
        return message

    async def get_reply_target(self, reply_id: str, group_id: str) -> UoWModel | None:
        stmt = select(models.Message).filter(
            models.Message.id == reply_id, *self._active_in_group(group_id)
        )
        message = await self._read(
            lambda: self.session.scalar(stmt),
            "validateReplyMessage",
            timeout=5.0,
            retry=LOOKUP_RETRY,
            groupId=group_id,
            replyToId=reply_id,
        )
        return UoWModel(message, self.uow) if message else None

    async def create_message(self, **fields: Any) -> UoWModel:
        """Insert a group message in two committed steps, ``sending`` then ``sent``."""

        async def insert():
            now = utcnow()
            message = models.Message(
                chat_type="group",
                status="sending",
                moderation_status="active",
                reactions=[],
                reported_by=[],
                delivered_to=[],
                read_by=[],
                created_at=now,
                updated_at=now,
                **fields,
            )
            self.uow.register_new(message)
            await self.uow.commit()
            return message

        message = await self._write(
            insert,
            "saveMessage",
            retry=WRITE_RETRY,
            groupId=fields.get("chat_id"),
            userId=fields.get("sender_id"),
        )
        wrapped = UoWModel(message, self.uow)

        async def mark_sent():
            wrapped.status = "sent"
            await self.uow.commit()

        await self._write(
            mark_sent, "markMessageSent", retry=WRITE_RETRY, messageId=message.id
        )
        return wrapped

    async def list_group_messages(
        self,
        group_id: str,
        limit: int = 50,
        offset: int = 0,
        before: datetime | None = None,
    ) -> list[UoWModel]:
        stmt = select(models.Message).filter(*self._active_in_group(group_id))
        if before is not None:
            stmt = stmt.filter(models.Message.created_at < before)
        stmt = (
            stmt.order_by(models.Message.created_at.desc(), models.Message.id.desc())
            .offset(offset)
            .limit(limit)
        )

        async def load():
            result = await self.session.execute(stmt)
            return result.scalars().all()

        messages = await self._read(
            load,
            "fetchGroupMessages",
            timeout=15.0,
            retry=FETCH_RETRY,
            groupId=group_id,
        )
        return [UoWModel(message, self.uow) for message in messages]

    async def latest_message(self, group_id: str) -> UoWModel | None:
        stmt = (
            select(models.Message)
            .filter(*self._active_in_group(group_id))
            .order_by(models.Message.created_at.desc(), models.Message.id.desc())
            .limit(1)
        )
        message = await self._read(
            lambda: self.session.scalar(stmt),
            "getLastMessage",
            timeout=5.0,
            retry=LOOKUP_RETRY,
            groupId=group_id,
        )
        return UoWModel(message, self.uow) if message else None

    async def count_messages(self, group_id: str) -> int:
        stmt = select(func.count(models.Message.id)).filter(*self._active_in_group(group_id))
        count = await self._read(
            lambda: self.session.scalar(stmt),
            "countGroupMessages",
            timeout=5.0,
            retry=LOOKUP_RETRY,
            groupId=group_id,
        )
        return count or 0

    async def populate(self, messages: list[UoWModel]) -> list[PopulatedMessage]:
        """Load senders and reply targets for ``messages`` in two queries."""
        if not messages:
            return []
        sender_ids = {m.sender_id for m in messages}
        reply_ids = {
            (m.reply_to or {}).get("messageId")
            for m in messages
            if (m.reply_to or {}).get("messageId")
        }

        async def load():
            result = await self.session.execute(
                select(models.User).filter(models.User.id.in_(sender_ids))
            )
            senders = {user.id: user for user in result.scalars().all()}
            targets = {}
            if reply_ids:
                result = await self.session.execute(
                    select(models.Message).filter(models.Message.id.in_(reply_ids))
                )
                targets = {target.id: target for target in result.scalars().all()}
            return senders, targets

        senders, targets = await self._read(
            load, "populateMessages", timeout=5.0, retry=LOOKUP_RETRY
        )
        return [
            PopulatedMessage(
                message=m.model,
                sender=senders.get(m.sender_id),
                reply_target=targets.get((m.reply_to or {}).get("messageId")),
            )
            for m in messages
        ]

    async def save_reactions(self, message: UoWModel, reactions: list[dict]) -> UoWModel:
        """Store a new reactions list guarded by the message version."""

        async def save():
            message.reactions = reactions
            message.updated_at = utcnow()
            await self.uow.commit()

        await self._write(save, "saveReaction", messageId=message.id)
        return message

    async def add_report(self, message: UoWModel, report: dict, now: datetime) -> UoWModel:
        async def save():
            message.reported_by = [*(message.reported_by or []), report]
            message.is_reported = True
            if message.flagged_at is None:
                message.flagged_at = now
            await self.uow.commit()

        await self._write(save, "reportMessage", messageId=message.id)
        return message

    async def flagged_messages(self) -> list[UoWModel]:
        stmt = select(models.Message).filter(models.Message.is_reported.is_(True))

        async def load():
            result = await self.session.execute(stmt)
            return result.scalars().all()

        messages = await self._read(load, "getFlaggedMessages", retry=LOOKUP_RETRY)
        return [UoWModel(m, self.uow) for m in messages if m.reported_by]
