# neighbourhood_chat/interactors/group_interactor.py
import logging
import time
from typing import Any

from neighbourhood_chat.config import AppConfig
from neighbourhood_chat.domain.entities import Principal
from neighbourhood_chat.domain.identifiers import is_valid_id
from neighbourhood_chat.domain.projection import display_name, project_populated
from neighbourhood_chat.gateways.group_gateway import GroupGateway
from neighbourhood_chat.gateways.message_gateway import MessageGateway
from neighbourhood_chat.gateways.user_gateway import UserGateway
from neighbourhood_chat.infrastructure import schemas
from neighbourhood_chat.infrastructure.errors import (
    access_denied_error,
    business_rule_error,
    invalid_id_error,
    log_classified_error,
    not_found_error,
)
from neighbourhood_chat.infrastructure.uow import UoWModel

logger = logging.getLogger("neighbourhood_chat.groups")


class GroupInteractor:
    def __init__(
        self,
        config: AppConfig,
        group_gateway: GroupGateway,
        message_gateway: MessageGateway,
        user_gateway: UserGateway,
    ):
        self.config = config
        self.group_gateway = group_gateway
        self.message_gateway = message_gateway
        self.user_gateway = user_gateway

    def _warn_if_slow(self, operation: str, started: float, threshold_ms: int, **context):
        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > threshold_ms:
            logger.warning(f"Slow operation {operation}: {elapsed_ms:.0f}ms {context}")

    def _basic_summary(self, group: UoWModel, **overrides: Any) -> dict[str, Any]:
        summary = {
            "id": group.id,
            "name": group.name,
            "description": group.description or "",
            "type": group.type,
            "member_role": "member",
            "member_count": len(group.members),
            "message_count": 0,
            "last_message": None,
            "last_activity": group.last_activity,
            "created_at": group.created_at,
        }
        summary.update(overrides)
        return summary

    async def list_groups(self, principal: Principal) -> list[schemas.GroupSummary]:
        started = time.perf_counter()
        groups = await self.group_gateway.list_for_member(principal.user_id)
        basics = [self._basic_summary(group) for group in groups]

        summaries = []
        for group, basic in zip(groups, basics):
            try:
                member = group.member(principal.user_id)
                message_count = await self.message_gateway.count_messages(basic["id"])
                latest = await self.message_gateway.latest_message(basic["id"])
                last_message = None
                if latest is not None:
                    last_message = project_populated(
                        (await self.message_gateway.populate([latest]))[0]
                    )
                summary = {
                    **basic,
                    "member_role": member.role if member else "member",
                    "message_count": message_count,
                    "last_message": last_message,
                }
            except Exception as e:
                log_classified_error(
                    e,
                    {"userId": principal.user_id, "groupId": basic["id"]},
                    "Enrich group summary",
                )
                summary = {**basic, "has_error": True}
            summaries.append(schemas.GroupSummary(**summary))

        self._warn_if_slow(
            "getUserGroups", started, self.config.SLOW_GROUPS_MS, userId=principal.user_id
        )
        return summaries

    async def create_group(
        self, principal: Principal, request: schemas.CreateGroupRequest
    ) -> schemas.GroupSummary:
        started = time.perf_counter()
        user = await self.user_gateway.get_user(principal.user_id)
        if user is None or not user.neighbourhood_id:
            raise business_rule_error(
                "USER_NO_NEIGHBOURHOOD",
                "User must be assigned to a neighbourhood to create groups",
                userId=principal.user_id,
            )
        neighbourhood_id = user.neighbourhood_id

        if await self.group_gateway.name_taken(neighbourhood_id, request.name):
            raise business_rule_error(
                "DUPLICATE_GROUP_NAME",
                f"Group {request.name!r} already exists in neighbourhood",
                neighbourhoodId=neighbourhood_id,
            )

        group = await self.group_gateway.create_group(
            neighbourhood_id=neighbourhood_id,
            name=request.name,
            description=request.description,
            group_type=request.type,
            creator_id=principal.user_id,
        )
        logger.info(f"Group {group.id} created by {principal.user_id}")
        self._warn_if_slow(
            "createGroup", started, self.config.SLOW_CREATE_GROUP_MS, groupId=group.id
        )
        return schemas.GroupSummary(**self._basic_summary(group, member_role="admin"))

    async def join_group(self, group_id: str, principal: Principal) -> schemas.StatusMessage:
        if not is_valid_id(group_id):
            raise invalid_id_error("INVALID_GROUP_ID", f"Invalid group id {group_id!r}")

        group = await self.group_gateway.get_active_group(group_id)
        if group is None or group.type != "public":
            raise not_found_error(
                "GROUP_NOT_FOUND", f"Group {group_id} not found or not joinable"
            )
        if group.has_member(principal.user_id):
            raise business_rule_error(
                "ALREADY_MEMBER", "Already a member of this group", groupId=group_id
            )

        await self.group_gateway.add_member(group, principal.user_id)
        logger.info(f"{principal.user_id} joined group {group_id}")
        return schemas.StatusMessage(message="Successfully joined the group")

    async def leave_group(self, group_id: str, principal: Principal) -> schemas.StatusMessage:
        if not is_valid_id(group_id):
            raise invalid_id_error("INVALID_GROUP_ID", f"Invalid group id {group_id!r}")

        group = await self.group_gateway.get_active_group(group_id)
        if group is None:
            raise not_found_error("GROUP_NOT_FOUND", f"Group {group_id} not found")
        if not group.has_member(principal.user_id):
            raise not_found_error(
                "NOT_A_MEMBER", "You are not a member of this group", groupId=group_id
            )

        await self.group_gateway.remove_member(group, principal.user_id)
        logger.info(f"{principal.user_id} left group {group_id}")
        return schemas.StatusMessage(message="Successfully left the group")

    async def get_members(
        self, group_id: str, principal: Principal
    ) -> list[schemas.GroupMemberOut]:
        started = time.perf_counter()
        if not is_valid_id(group_id):
            raise invalid_id_error("INVALID_GROUP_ID", f"Invalid group id {group_id!r}")

        group = await self.group_gateway.get_group_for_member(group_id, principal.user_id)
        if group is None:
            raise access_denied_error(
                "GROUP_ACCESS_DENIED",
                "Not a member of this group or group not found",
                userId=principal.user_id,
                groupId=group_id,
            )

        members = list(group.members)
        users = await self.user_gateway.get_users([m.user_id for m in members])
        result = []
        for member in members:
            user = users.get(member.user_id)
            result.append(
                schemas.GroupMemberOut(
                    legacy_id=member.user_id,
                    id=member.user_id,
                    first_name=user.first_name if user else "",
                    last_name=user.last_name if user else "",
                    profile_image_url=user.profile_image_url if user else None,
                    role=member.role,
                    joined_at=member.joined_at,
                    full_name=display_name(user) or "Unknown User",
                )
            )

        self._warn_if_slow(
            "getGroupMembers", started, self.config.SLOW_MEMBERS_MS, groupId=group_id
        )
        return result
