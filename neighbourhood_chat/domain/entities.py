# neighbourhood_chat/domain/entities.py
from dataclasses import dataclass
from typing import Any

MESSAGE_TYPES = ("text", "image", "audio", "video", "document", "location", "contact")
LEGACY_MESSAGE_TYPES = ("text", "image", "video", "file")
LEGACY_MESSAGE_TYPE_MAP = {"file": "document"}

REACTION_TYPES = ("thumbs_up", "heart", "smile", "laugh", "sad", "angry")

GROUP_TYPES = ("public", "private", "announcement")
MEMBER_ROLES = ("admin", "member")
USER_ROLES = ("user", "admin")

MESSAGE_STATUSES = ("sending", "sent", "delivered", "read", "failed")
MODERATION_STATUSES = ("active", "archived", "removed")

CONTENT_TYPES = ("notice", "report", "message")
MODERATION_ACTIONS = ("approve", "archive", "remove")


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class PopulatedMessage:
    """A stored message together with the records the projection reads."""

    message: Any
    sender: Any | None = None
    reply_target: Any | None = None
