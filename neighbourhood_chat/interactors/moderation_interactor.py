# neighbourhood_chat/interactors/moderation_interactor.py
"""Flagged content review for administrators.

Three kinds of content can be flagged: chat messages, notice-board posts and
incident reports. They keep their reports and status in differently named
fields; :data:`CONTENT_FIELDS` is the single place that knows the mapping.
"""
import logging
import math
from datetime import UTC, datetime
from typing import Any

from neighbourhood_chat.domain.entities import CONTENT_TYPES, MODERATION_ACTIONS, Principal
from neighbourhood_chat.domain.identifiers import is_valid_id, utcnow
from neighbourhood_chat.gateways.audit_gateway import AuditGateway
from neighbourhood_chat.gateways.message_gateway import MessageGateway
from neighbourhood_chat.gateways.moderation_gateway import ModerationGateway
from neighbourhood_chat.gateways.user_gateway import UserGateway
from neighbourhood_chat.infrastructure import schemas
from neighbourhood_chat.infrastructure.errors import (
    ChatError,
    business_rule_error,
    invalid_id_error,
    log_classified_error,
    not_found_error,
    validation_error,
)
from neighbourhood_chat.infrastructure.uow import UoWModel
from neighbourhood_chat.interactors.conflicts import apply_with_reload

logger = logging.getLogger("neighbourhood_chat.moderation")

DEFAULT_APPROVE_REASON = "Content approved by administrator"
ANONYMOUS_REPORTER = {"firstName": "Anonymous", "lastName": "", "email": ""}

CONTENT_FIELDS = {
    "message": {
        "status": "moderation_status",
        "flag": "is_reported",
        "reports": "reported_by",
        "reporter": "userId",
        "author": "sender_id",
        "body": "content",
    },
    "notice": {
        "status": "status",
        "flag": "is_flagged",
        "reports": "reports",
        "reporter": "reporterId",
        "author": "author_id",
        "body": "content",
    },
    "report": {
        "status": "report_status",
        "flag": "is_flagged",
        "reports": "reports",
        "reporter": "reporterId",
        "author": "reporter_id",
        "body": "description",
    },
}

SORT_FIELDS = ("flaggedAt", "reportCount", "createdAt")
_EPOCH = datetime.min.replace(tzinfo=UTC)


def _person(user) -> dict[str, Any]:
    return {
        "id": user.id,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "email": user.email,
    }


class ModerationInteractor:
    def __init__(
        self,
        moderation_gateway: ModerationGateway,
        message_gateway: MessageGateway,
        user_gateway: UserGateway,
        audit_gateway: AuditGateway,
    ):
        self.moderation_gateway = moderation_gateway
        self.message_gateway = message_gateway
        self.user_gateway = user_gateway
        self.audit_gateway = audit_gateway

    async def get_flagged_content(
        self,
        content_type: str = "all",
        sort_by: str = "flaggedAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> schemas.FlaggedContentPage:
        collected: list[tuple[str, UoWModel]] = []
        for kind in ("notice", "report", "message"):
            if content_type not in ("all", kind):
                continue
            if kind == "message":
                items = await self.message_gateway.flagged_messages()
            else:
                items = await self.moderation_gateway.flagged(kind)
            collected.extend((kind, item) for item in items)

        user_ids = set()
        for kind, item in collected:
            fields = CONTENT_FIELDS[kind]
            user_ids.add(getattr(item, fields["author"]))
            user_ids.update(
                r.get(fields["reporter"])
                for r in getattr(item, fields["reports"]) or []
                if r.get(fields["reporter"])
            )
        users = await self.user_gateway.get_users(sorted(user_ids))

        content = [self._flagged_item(kind, item, users) for kind, item in collected]
        content.sort(key=self._sort_key(sort_by), reverse=sort_order == "desc")

        total = len(content)
        start = (page - 1) * limit
        return schemas.FlaggedContentPage(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0,
            content=[schemas.FlaggedItem(**item) for item in content[start : start + limit]],
        )

    @staticmethod
    def _sort_key(sort_by: str):
        if sort_by == "reportCount":
            return lambda item: item["report_count"]
        field = "created_at" if sort_by == "createdAt" else "flagged_at"
        return lambda item: item[field] or _EPOCH

    def _flagged_item(self, kind: str, item: UoWModel, users: dict) -> dict[str, Any]:
        fields = CONTENT_FIELDS[kind]
        author = users.get(getattr(item, fields["author"]))
        reports = []
        for report in getattr(item, fields["reports"]) or []:
            reporter_id = report.get(fields["reporter"])
            reporter = users.get(reporter_id) if reporter_id else None
            reports.append(
                {
                    "id": report.get("id"),
                    "reason": report.get("reason") or "",
                    "reported_by": _person(reporter) if reporter else dict(ANONYMOUS_REPORTER),
                    "reported_at": report.get("reportedAt"),
                    "is_anonymous": not reporter_id,
                }
            )
        return {
            "id": item.id,
            "content_type": kind,
            "title": getattr(item, "title", None) or "",
            "content": getattr(item, fields["body"]) or "",
            "author": _person(author) if author else None,
            "reports": reports,
            "report_count": len(reports),
            "created_at": item.created_at,
            "flagged_at": item.flagged_at,
            "status": getattr(item, fields["status"]) or "active",
        }

    async def moderate(
        self,
        content_type: str,
        content_id: str,
        action: str,
        principal: Principal,
        reason: str | None = None,
    ) -> schemas.ModerationResult:
        if content_type not in CONTENT_TYPES:
            raise validation_error("INVALID_CONTENT_TYPE", f"Invalid content type {content_type!r}")
        if not is_valid_id(content_id):
            raise invalid_id_error("INVALID_CONTENT_ID", f"Invalid content id {content_id!r}")
        if action not in MODERATION_ACTIONS:
            raise validation_error(
                "INVALID_MODERATION_ACTION", f"Invalid moderation action {action!r}"
            )
        reason = (reason or "").strip() or None
        if action in ("archive", "remove") and not reason:
            raise validation_error(
                "MODERATION_REASON_REQUIRED", f"A reason is required to {action} content"
            )

        content = await self.moderation_gateway.get_content(content_type, content_id)
        if content is None:
            raise not_found_error(
                "CONTENT_NOT_FOUND", f"{content_type} {content_id} not found"
            )

        fields = CONTENT_FIELDS[content_type]
        details: dict[str, Any] = {}

        async def apply():
            details.clear()
            now = utcnow()
            if action == "approve":
                if not getattr(content, fields["flag"]):
                    raise business_rule_error(
                        "CONTENT_NOT_FLAGGED", f"{content_type} {content_id} is not flagged"
                    )
                details["reportsCleared"] = len(getattr(content, fields["reports"]) or [])
                setattr(content, fields["reports"], [])
                setattr(content, fields["flag"], False)
                content.flagged_at = None
                new_status = "active"
            else:
                details["previousStatus"] = getattr(content, fields["status"])
                new_status = "archived" if action == "archive" else "removed"
            setattr(content, fields["status"], new_status)
            content.moderation_reason = reason or DEFAULT_APPROVE_REASON
            content.moderated_by = principal.user_id
            content.moderated_at = now
            content.updated_at = now
            details["newStatus"] = new_status
            return await self.moderation_gateway.save(content)

        await apply_with_reload(
            apply, lambda: self.moderation_gateway.reload(content), f"{action}Content"
        )
        result = schemas.ModerationResult(
            id=content.id,
            content_type=content_type,
            status=getattr(content, fields["status"]),
            moderation_reason=content.moderation_reason,
            moderated_by=content.moderated_by,
            moderated_at=content.moderated_at,
        )
        logger.info(f"{principal.user_id} {action}d {content_type} {content_id}")

        try:
            await self.audit_gateway.record(
                admin_id=principal.user_id,
                action=f"content_{action}",
                target_type=content_type,
                target_id=content_id,
                reason=result.moderation_reason,
                details={"reason": result.moderation_reason, **details},
            )
        except ChatError as e:
            log_classified_error(
                e,
                {"userId": principal.user_id, "contentId": content_id},
                "Write moderation audit entry",
            )
        return result
