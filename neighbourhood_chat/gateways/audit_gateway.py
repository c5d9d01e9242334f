# neighbourhood_chat/gateways/audit_gateway.py
from typing import Any

from sqlalchemy import select

from neighbourhood_chat.gateways.base import LOOKUP_RETRY, SqlGateway
from neighbourhood_chat.gateways.interfaces import IAuditGateway
from neighbourhood_chat.infrastructure import models
from neighbourhood_chat.infrastructure.data_mappers import AuditEntryMapper


class AuditGateway(SqlGateway, IAuditGateway):
    def __init__(self, session, uow, settings=None):
        super().__init__(session, uow, settings)
        uow.mappers[models.AuditEntry] = AuditEntryMapper(session)

    async def record(
        self,
        admin_id: str,
        action: str,
        target_type: str,
        target_id: str,
        reason: str | None,
        details: dict[str, Any],
    ) -> models.AuditEntry:
        async def insert():
            entry = models.AuditEntry(
                admin_id=admin_id,
                action=action,
                target_type=target_type,
                target_id=target_id,
                reason=reason,
                details=details,
            )
            self.uow.register_new(entry)
            await self.uow.commit()
            return entry

        return await self._write(
            insert, "writeAuditLog", timeout=5.0, retry=LOOKUP_RETRY, targetId=target_id
        )

    async def list_for_target(self, target_type: str, target_id: str) -> list[models.AuditEntry]:
        stmt = (
            select(models.AuditEntry)
            .filter(
                models.AuditEntry.target_type == target_type,
                models.AuditEntry.target_id == target_id,
            )
            .order_by(models.AuditEntry.created_at)
        )

        async def load():
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

        return await self._read(load, "getAuditLog", retry=LOOKUP_RETRY)
