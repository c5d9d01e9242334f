# neighbourhood_chat/gateways/group_gateway.py
import logging
from datetime import datetime

from sqlalchemy import func, select, update

from neighbourhood_chat.domain.identifiers import utcnow
from neighbourhood_chat.gateways.base import (
    LIST_RETRY,
    LOOKUP_RETRY,
    MEMBERSHIP_RETRY,
    WRITE_RETRY,
    SqlGateway,
)
from neighbourhood_chat.gateways.interfaces import IGroupGateway
from neighbourhood_chat.infrastructure import models
from neighbourhood_chat.infrastructure.data_mappers import GroupMapper, GroupMemberMapper
from neighbourhood_chat.infrastructure.uow import UoWModel

logger = logging.getLogger("neighbourhood_chat.groups")


class GroupGateway(SqlGateway, IGroupGateway):
    def __init__(self, session, uow, settings=None):
        super().__init__(session, uow, settings)
        uow.mappers[models.Group] = GroupMapper(session)
        uow.mappers[models.GroupMember] = GroupMemberMapper(session)

    async def get_active_group(self, group_id: str) -> UoWModel | None:
        stmt = select(models.Group).filter(
            models.Group.id == group_id, models.Group.is_active.is_(True)
        )
        group = await self._read(
            lambda: self.session.scalar(stmt),
            "getGroup",
            retry=LOOKUP_RETRY,
            groupId=group_id,
        )
        return UoWModel(group, self.uow) if group else None

    async def get_group_for_member(self, group_id: str, user_id: str) -> UoWModel | None:
        """Active group containing ``user_id``, or None."""
        stmt = select(models.Group).filter(
            models.Group.id == group_id,
            models.Group.is_active.is_(True),
            models.Group.members.any(models.GroupMember.user_id == user_id),
        )
        group = await self._read(
            lambda: self.session.scalar(stmt),
            "checkGroupMembership",
            timeout=10.0,
            retry=MEMBERSHIP_RETRY,
            groupId=group_id,
            userId=user_id,
        )
        return UoWModel(group, self.uow) if group else None

    async def list_for_member(self, user_id: str) -> list[UoWModel]:
        stmt = (
            select(models.Group)
            .filter(
                models.Group.is_active.is_(True),
                models.Group.members.any(models.GroupMember.user_id == user_id),
            )
            .order_by(models.Group.last_activity.desc(), models.Group.created_at.desc())
        )

        async def load():
            result = await self.session.execute(stmt)
            return result.scalars().all()

        groups = await self._read(
            load, "getUserGroups", timeout=15.0, retry=LIST_RETRY, userId=user_id
        )
        return [UoWModel(group, self.uow) for group in groups]

    async def name_taken(self, neighbourhood_id: str, name: str) -> bool:
        stmt = select(func.count(models.Group.id)).filter(
            models.Group.neighbourhood_id == neighbourhood_id,
            models.Group.is_active.is_(True),
            models.Group.name_key == models.group_name_key(name),
        )
        count = await self._read(
            lambda: self.session.scalar(stmt),
            "checkGroupName",
            timeout=5.0,
            retry=LOOKUP_RETRY,
            neighbourhoodId=neighbourhood_id,
        )
        return bool(count)

    async def create_group(
        self,
        neighbourhood_id: str,
        name: str,
        description: str,
        group_type: str,
        creator_id: str,
    ) -> UoWModel:
        async def insert():
            now = utcnow()
            group = models.Group(
                neighbourhood_id=neighbourhood_id,
                name=name,
                description=description,
                type=group_type,
                created_by=creator_id,
                created_at=now,
                last_activity=now,
                is_active=True,
                members=[models.GroupMember(user_id=creator_id, role="admin", joined_at=now)],
            )
            self.uow.register_new(group)
            await self.uow.commit()
            return group

        group = await self._write(
            insert, "createGroup", retry=WRITE_RETRY, userId=creator_id
        )
        return UoWModel(group, self.uow)

    async def add_member(self, group: UoWModel, user_id: str, role: str = "member") -> UoWModel:
        async def append():
            await self.session.refresh(group.model, ["members"])
            group.model.members.append(
                models.GroupMember(user_id=user_id, role=role, joined_at=utcnow())
            )
            group.last_activity = utcnow()
            await self.uow.commit()

        await self._write(append, "joinGroup", groupId=group.id, userId=user_id)
        return group

    async def remove_member(self, group: UoWModel, user_id: str) -> UoWModel:
        """Drop ``user_id`` from the group.

        The earliest remaining member becomes admin when the last admin
        leaves; an empty group is deactivated.
        """

        async def remove():
            model = group.model
            await self.session.refresh(model, ["members"])
            leaving = model.member(user_id)
            if leaving is None:
                return
            model.members.remove(leaving)
            remaining = sorted(model.members, key=lambda m: m.joined_at)
            if remaining and not any(m.role == "admin" for m in remaining):
                remaining[0].role = "admin"
                logger.info(
                    f"Promoted {remaining[0].user_id} to admin of group {model.id}"
                )
            if not remaining:
                group.is_active = False
            else:
                self.uow.register_dirty(model)
            await self.uow.commit()

        await self._write(remove, "leaveGroup", groupId=group.id, userId=user_id)
        return group

    async def touch_activity(self, group_id: str, when: datetime) -> None:
        stmt = (
            update(models.Group)
            .where(models.Group.id == group_id)
            .values(last_activity=when)
            .execution_options(synchronize_session=False)
        )

        async def bump():
            await self.session.execute(stmt)
            await self.session.commit()

        await self._write(
            bump, "updateGroupActivity", timeout=5.0, retry=LOOKUP_RETRY, groupId=group_id
        )
