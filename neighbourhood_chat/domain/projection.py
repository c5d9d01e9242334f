# neighbourhood_chat/domain/projection.py
"""Canonical wire shape of a chat message.

Every message leaving the service (send response, fetch response, real-time
events, group summaries) goes through :func:`project_message`. The function is
pure: sender and reply target must be loaded beforehand by the enrichment step
(``MessageGateway.populate``).

Legacy aliases are produced here and nowhere else:

* ``type`` and ``messageType`` are the same value,
* ``media`` is a copy of ``attachments``,
* ``timestamp`` is ``createdAt``.
"""
import copy
from typing import Any

from neighbourhood_chat.domain.entities import PopulatedMessage


def _get(source: Any, key: str, default: Any = None) -> Any:
    if source is None:
        return default
    if isinstance(source, dict):
        return source.get(key, default)
    return getattr(source, key, default)


def display_name(user: Any) -> str:
    first = _get(user, "first_name") or ""
    last = _get(user, "last_name") or ""
    return f"{first} {last}".strip()


def project_attachment(attachment: dict) -> dict:
    return {
        "id": attachment.get("id"),
        "type": attachment.get("type"),
        "url": attachment.get("url") or None,
        "filename": attachment.get("filename") or None,
        "size": attachment.get("size"),
        "thumbnail": attachment.get("thumbnail") or None,
        "metadata": attachment.get("metadata") or {},
    }


def project_reactions(reactions: list[dict] | None) -> list[dict]:
    return [
        {
            "type": reaction.get("type"),
            "count": max(0, reaction.get("count") or 0),
            "users": list(reaction.get("users") or []),
            "createdAt": reaction.get("createdAt"),
        }
        for reaction in reactions or []
    ]


def _project_reply(reply_to: dict | None, target: Any) -> dict | None:
    if not reply_to or not (reply_to.get("messageId") or reply_to.get("content")):
        return None
    return {
        "id": _get(target, "id") or reply_to.get("messageId"),
        "content": _get(target, "content") or reply_to.get("content") or "",
        "senderId": _get(target, "sender_id"),
        "senderName": _get(target, "sender_name") or reply_to.get("senderName") or "Unknown",
        "type": _get(target, "message_type") or reply_to.get("type") or "text",
    }


def _project_forward(is_forwarded: bool, forwarded_from: dict | None) -> dict | None:
    if not is_forwarded or not forwarded_from:
        return None
    return {
        "messageId": forwarded_from.get("messageId"),
        "originalSenderId": forwarded_from.get("originalSenderId"),
        "originalSenderName": forwarded_from.get("originalSenderName") or "Unknown",
        "originalChatId": forwarded_from.get("originalChatId"),
        "originalChatName": forwarded_from.get("originalChatName") or "Unknown Chat",
        "forwardedBy": forwarded_from.get("forwardedBy"),
        "forwardedByName": forwarded_from.get("forwardedByName") or "Unknown",
        "forwardedAt": forwarded_from.get("forwardedAt"),
    }


def project_message(message: Any, sender: Any = None, reply_target: Any = None) -> dict:
    content = _get(message, "content")
    message_type = _get(message, "message_type") or "text"
    attachments = [project_attachment(a) for a in _get(message, "attachments") or []]

    sender_name = display_name(sender) or _get(message, "sender_name") or "Unknown"
    is_forwarded = bool(_get(message, "is_forwarded"))
    created_at = _get(message, "created_at")

    encryption = _get(message, "encryption")
    auto_delete = _get(message, "auto_delete")

    return {
        "id": _get(message, "id"),
        "content": "" if content is None else str(content),
        "type": message_type,
        "messageType": message_type,
        "media": copy.deepcopy(attachments),
        "attachments": attachments,
        "senderId": _get(sender, "id") or _get(message, "sender_id"),
        "senderName": sender_name,
        "senderAvatar": _get(sender, "profile_image_url") or None,
        "replyTo": _project_reply(_get(message, "reply_to"), reply_target),
        "reactions": project_reactions(_get(message, "reactions")),
        "isEdited": bool(_get(message, "is_edited")),
        "isForwarded": is_forwarded,
        "isDeleted": bool(_get(message, "is_deleted")),
        "isStarred": bool(_get(message, "is_starred")),
        "forwardedFrom": _project_forward(is_forwarded, _get(message, "forwarded_from")),
        "status": _get(message, "status") or "sent",
        "moderationStatus": _get(message, "moderation_status") or "active",
        "createdAt": created_at,
        "updatedAt": _get(message, "updated_at"),
        "timestamp": created_at,
        "deliveredTo": list(_get(message, "delivered_to") or []),
        "readBy": list(_get(message, "read_by") or []),
        "encryption": {
            "isEncrypted": bool(encryption.get("isEncrypted")),
            "encryptionVersion": encryption.get("encryptionVersion") or None,
        } if encryption else None,
        "autoDelete": {
            "enabled": bool(auto_delete.get("enabled")),
            "expiresAt": auto_delete.get("expiresAt") or None,
        } if auto_delete else None,
    }


def project_populated(populated: PopulatedMessage) -> dict:
    return project_message(populated.message, populated.sender, populated.reply_target)
