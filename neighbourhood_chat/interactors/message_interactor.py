# neighbourhood_chat/interactors/message_interactor.py
"""Group message send and fetch.

Sending runs in numbered stages. Validation stages raise before anything is
written. Once the message is committed, the remaining stages (activity bump,
enrichment, room fan-out, notifications) are best effort: their failures are
logged and the caller still gets ``201`` with the stored message.
"""
import logging
import time
from datetime import UTC, datetime
from typing import Any

from neighbourhood_chat.config import AppConfig
from neighbourhood_chat.domain.entities import PopulatedMessage, Principal
from neighbourhood_chat.domain.events import MessageSent, NewMessage
from neighbourhood_chat.domain.identifiers import is_valid_id, new_id, utcnow
from neighbourhood_chat.domain.projection import display_name, project_populated
from neighbourhood_chat.gateways.group_gateway import GroupGateway
from neighbourhood_chat.gateways.message_gateway import MessageGateway
from neighbourhood_chat.gateways.user_gateway import UserGateway
from neighbourhood_chat.infrastructure import schemas
from neighbourhood_chat.infrastructure.errors import (
    ChatError,
    access_denied_error,
    business_rule_error,
    invalid_id_error,
    log_classified_error,
    not_found_error,
    validation_error,
)
from neighbourhood_chat.infrastructure.event_dispatcher import EventDispatcher
from neighbourhood_chat.infrastructure.locks import KeyedLocks
from neighbourhood_chat.interactors.conflicts import apply_with_reload
from neighbourhood_chat.interactors.notification_interactor import NotificationInteractor

logger = logging.getLogger("neighbourhood_chat.pipeline")


def normalize_attachments(attachments: list[dict[str, Any]]) -> list[dict[str, Any]]:
    normalized = []
    for attachment in attachments:
        url = attachment.get("url") or None
        filename = attachment.get("filename") or None
        if not url and not filename:
            raise validation_error(
                "INVALID_ATTACHMENT_DATA",
                "Attachment requires a url or a filename",
            )
        metadata = attachment.get("metadata")
        normalized.append(
            {
                "id": attachment.get("id") or new_id(),
                "type": attachment.get("type") or "document",
                "url": url,
                "filename": filename,
                "size": attachment.get("size"),
                "thumbnail": attachment.get("thumbnail") or None,
                "metadata": metadata if isinstance(metadata, dict) else {},
            }
        )
    return normalized


def build_forward(
    forwarded_from: dict[str, Any] | None,
    sender_id: str,
    sender_name: str,
    now: datetime,
) -> dict[str, Any]:
    if not forwarded_from or not forwarded_from.get("messageId") or not forwarded_from.get(
        "originalSenderId"
    ):
        raise validation_error(
            "INVALID_FORWARD_DATA",
            "Forwarded messages need messageId and originalSenderId",
        )
    forwarded_at = forwarded_from.get("forwardedAt")
    if isinstance(forwarded_at, datetime):
        forwarded_at = forwarded_at.isoformat()
    return {
        "messageId": forwarded_from["messageId"],
        "originalSenderId": forwarded_from["originalSenderId"],
        "originalSenderName": forwarded_from.get("originalSenderName") or "Unknown",
        "originalChatId": forwarded_from.get("originalChatId"),
        "originalChatName": forwarded_from.get("originalChatName") or "Unknown Chat",
        "forwardedBy": forwarded_from.get("forwardedBy") or sender_id,
        "forwardedByName": forwarded_from.get("forwardedByName") or sender_name,
        "forwardedAt": forwarded_at or now.isoformat(),
    }


class MessageInteractor:
    def __init__(
        self,
        config: AppConfig,
        group_gateway: GroupGateway,
        message_gateway: MessageGateway,
        user_gateway: UserGateway,
        notification_interactor: NotificationInteractor,
        event_dispatcher: EventDispatcher,
        group_locks: KeyedLocks,
    ):
        self.config = config
        self.group_gateway = group_gateway
        self.message_gateway = message_gateway
        self.user_gateway = user_gateway
        self.notification_interactor = notification_interactor
        self.event_dispatcher = event_dispatcher
        self.group_locks = group_locks

    async def send_group_message(
        self, group_id: str, principal: Principal, request: schemas.SendMessageRequest
    ) -> dict[str, Any]:
        started = time.perf_counter()
        context = {"userId": principal.user_id, "groupId": group_id}

        content = request.content.strip()
        if not content:
            raise validation_error("EMPTY_MESSAGE_CONTENT", "Message content is empty")

        if not is_valid_id(group_id):
            raise invalid_id_error("INVALID_GROUP_ID", f"Invalid group id {group_id!r}")
        if request.reply_to_id is not None and not is_valid_id(request.reply_to_id):
            raise invalid_id_error(
                "INVALID_REPLY_ID", f"Invalid reply id {request.reply_to_id!r}"
            )

        group = await self.group_gateway.get_group_for_member(group_id, principal.user_id)
        if group is None:
            raise access_denied_error(
                "GROUP_ACCESS_DENIED", "Not a member of this group or group not found", **context
            )

        group_name = group.name
        member_ids = [m.user_id for m in group.members]

        user = await self.user_gateway.get_user(principal.user_id)
        sender_name = display_name(user) or "Unknown"

        reply_to = None
        if request.reply_to_id:
            target = await self.message_gateway.get_reply_target(request.reply_to_id, group_id)
            if target is None:
                raise business_rule_error(
                    "REPLY_MESSAGE_NOT_FOUND",
                    f"Reply target {request.reply_to_id} not found in group",
                    **context,
                )
            reply_to = {
                "messageId": target.id,
                "content": target.content,
                "senderName": target.sender_name,
                "type": target.message_type,
            }

        now = utcnow()
        forwarded_from = None
        if request.is_forwarded:
            forwarded_from = build_forward(
                request.forwarded_from, principal.user_id, sender_name, now
            )

        attachments = normalize_attachments(request.attachments)

        async with self.group_locks.hold(group_id):
            message = await self.message_gateway.create_message(
                chat_id=group_id,
                sender_id=principal.user_id,
                sender_name=sender_name,
                content=content,
                message_type=request.resolved_type,
                attachments=attachments,
                reply_to=reply_to,
                is_forwarded=bool(request.is_forwarded),
                forwarded_from=forwarded_from,
            )
            message_id = message.id
            created_at = message.created_at
            context["messageId"] = message_id
            logger.info(f"Message {message_id} stored in group {group_id}")

            # Project before any further write: a failed write expires the
            # session's instances.
            try:
                populated = (await self.message_gateway.populate([message]))[0]
            except ChatError as e:
                log_classified_error(e, context, "Populate sent message")
                populated = PopulatedMessage(message=message.model, sender=user and user.model)
            projection = project_populated(populated)

            try:
                await self.group_gateway.touch_activity(group_id, created_at)
            except ChatError as e:
                log_classified_error(e, context, "Update group activity")

            await self.event_dispatcher.dispatch(
                NewMessage(group_id=group_id, sender_id=principal.user_id, message=projection)
            )
            await self.event_dispatcher.dispatch(
                MessageSent(group_id=group_id, sender_id=principal.user_id, message=projection)
            )

        await self.notification_interactor.notify_group_message(
            group_id=group_id,
            group_name=group_name,
            member_ids=member_ids,
            sender_id=principal.user_id,
            sender_name=sender_name,
            message_id=message_id,
            timestamp=created_at,
        )

        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > self.config.SLOW_SEND_MS:
            logger.warning(
                f"Slow operation sendGroupMessage: {elapsed_ms:.0f}ms "
                f"group={group_id} message={message_id}"
            )
        return projection

    async def get_group_messages(
        self,
        group_id: str,
        principal: Principal,
        limit: int = 50,
        offset: int = 0,
        before: datetime | None = None,
    ) -> list[dict[str, Any]]:
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

        if before is not None and before.tzinfo is None:
            before = before.replace(tzinfo=UTC)

        messages = await self.message_gateway.list_group_messages(
            group_id, limit=limit, offset=offset, before=before
        )
        populated = await self.message_gateway.populate(messages)
        projections = [project_populated(p) for p in reversed(populated)]

        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > self.config.SLOW_FETCH_MS:
            logger.warning(
                f"Slow operation getGroupMessages: {elapsed_ms:.0f}ms "
                f"group={group_id} count={len(projections)}"
            )
        return projections

    async def report_message(
        self, message_id: str, principal: Principal, request: schemas.ReportMessageRequest
    ) -> dict[str, Any]:
        if not is_valid_id(message_id):
            raise invalid_id_error("INVALID_MESSAGE_ID", f"Invalid message id {message_id!r}")

        message = await self.message_gateway.get_message(message_id)
        if message is None:
            raise not_found_error("MESSAGE_NOT_FOUND", f"Message {message_id} not found")
        await self._ensure_message_access(message, principal)

        async def apply():
            if any(r.get("submittedBy") == principal.user_id for r in message.reported_by or []):
                raise business_rule_error(
                    "ALREADY_REPORTED", "Message already reported by this user"
                )
            now = utcnow()
            report = {
                "id": new_id(),
                "userId": None if request.anonymous else principal.user_id,
                "submittedBy": principal.user_id,
                "reason": request.reason,
                "reportedAt": now.isoformat(),
            }
            return await self.message_gateway.add_report(message, report, now)

        await apply_with_reload(
            apply, lambda: self.message_gateway.reload(message), "reportMessage"
        )
        logger.info(f"Message {message_id} reported by {principal.user_id}")
        return {
            "messageId": message.id,
            "isReported": bool(message.is_reported),
            "reportCount": len(message.reported_by or []),
        }

    async def _ensure_message_access(self, message, principal: Principal) -> None:
        if message.chat_type == "group":
            group = await self.group_gateway.get_group_for_member(
                message.chat_id, principal.user_id
            )
            if group is not None:
                return
        raise access_denied_error(
            "MESSAGE_ACCESS_DENIED",
            "Not authorized to access this message",
            userId=principal.user_id,
            messageId=message.id,
        )
