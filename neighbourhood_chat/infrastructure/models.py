# neighbourhood_chat/infrastructure/models.py
from datetime import UTC, datetime
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from neighbourhood_chat.domain.entities import (
    MEMBER_ROLES,
    MESSAGE_STATUSES,
    MODERATION_STATUSES,
    USER_ROLES,
)
from neighbourhood_chat.domain.identifiers import new_id, utcnow
from neighbourhood_chat.infrastructure.database import Base


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, always hands back aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(UTC).replace(tzinfo=None)
        return value

    def process_result_value(self, value: Optional[datetime], dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _id_column(**kwargs) -> Mapped[str]:
    return mapped_column(String(24), primary_key=True, default=new_id, **kwargs)


def group_name_key(name: str) -> str:
    """Comparison key for group names, case-insensitive beyond ASCII."""
    return name.strip().casefold()


def _check_choice(model: str, key: str, value: Optional[str], choices) -> Optional[str]:
    if value is not None and value not in choices:
        raise ValueError(f"{model}.{key} must be one of {', '.join(choices)}, got {value!r}")
    return value


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = _id_column()
    username: Mapped[str] = mapped_column(String, unique=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    first_name: Mapped[str] = mapped_column(String, default="")
    last_name: Mapped[str] = mapped_column(String, default="")
    profile_image_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    neighbourhood_id: Mapped[Optional[str]] = mapped_column(
        String(24), nullable=True, index=True
    )
    role: Mapped[str] = mapped_column(String(16), default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    @validates("role")
    def _validate_role(self, key, value):
        return _check_choice("User", key, value, USER_ROLES)


class Group(Base):
    __tablename__ = "groups"

    __table_args__ = (
        Index("ix_groups_neighbourhood_active", "neighbourhood_id", "is_active"),
        Index("ix_groups_neighbourhood_name_key", "neighbourhood_id", "name_key"),
    )

    id: Mapped[str] = _id_column()
    neighbourhood_id: Mapped[str] = mapped_column(String(24), index=True)
    name: Mapped[str] = mapped_column(String(100))
    name_key: Mapped[str] = mapped_column(String(100))
    description: Mapped[str] = mapped_column(Text, default="")
    type: Mapped[str] = mapped_column(String(16), default="public")
    created_by: Mapped[str] = mapped_column(String(24), ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    last_activity: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    members: Mapped[List["GroupMember"]] = relationship(
        "GroupMember",
        back_populates="group",
        order_by="GroupMember.joined_at",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @validates("name")
    def _sync_name_key(self, key, value):
        self.name_key = group_name_key(value)
        return value

    def member(self, user_id: str) -> Optional["GroupMember"]:
        return next((m for m in self.members if m.user_id == user_id), None)

    def has_member(self, user_id: str) -> bool:
        return self.member(user_id) is not None


class GroupMember(Base):
    __tablename__ = "group_members"

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        Index("ix_group_members_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[str] = mapped_column(
        String(24), ForeignKey("groups.id", ondelete="CASCADE")
    )
    user_id: Mapped[str] = mapped_column(String(24), ForeignKey("users.id"))
    role: Mapped[str] = mapped_column(String(16), default="member")
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    group: Mapped[Group] = relationship("Group", back_populates="members")

    @validates("role")
    def _validate_role(self, key, value):
        return _check_choice("GroupMember", key, value, MEMBER_ROLES)


class Message(Base):
    __tablename__ = "messages"

    __table_args__ = (
        Index("ix_messages_chat_moderation_created", "chat_id", "moderation_status", "created_at"),
        Index("ix_messages_reported", "is_reported"),
    )

    id: Mapped[str] = _id_column()
    chat_id: Mapped[str] = mapped_column(String(24), index=True)
    chat_type: Mapped[str] = mapped_column(String(16), default="group")
    sender_id: Mapped[str] = mapped_column(String(24), ForeignKey("users.id"), index=True)
    sender_name: Mapped[str] = mapped_column(String)
    content: Mapped[str] = mapped_column(Text)
    message_type: Mapped[str] = mapped_column(String(16), default="text")
    attachments: Mapped[List[dict]] = mapped_column(JSON, default=lambda: [])
    reply_to: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_forwarded: Mapped[bool] = mapped_column(Boolean, default=False)
    forwarded_from: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    reactions: Mapped[List[dict]] = mapped_column(JSON, default=lambda: [])

    status: Mapped[str] = mapped_column(String(16), default="sending")
    moderation_status: Mapped[str] = mapped_column(String(16), default="active")
    is_reported: Mapped[bool] = mapped_column(Boolean, default=False)
    reported_by: Mapped[List[dict]] = mapped_column(JSON, default=lambda: [])
    flagged_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    moderation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    moderated_by: Mapped[Optional[str]] = mapped_column(String(24), nullable=True)
    moderated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    is_edited: Mapped[bool] = mapped_column(Boolean, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_starred: Mapped[bool] = mapped_column(Boolean, default=False)
    delivered_to: Mapped[List[str]] = mapped_column(JSON, default=lambda: [])
    read_by: Mapped[List[str]] = mapped_column(JSON, default=lambda: [])
    encryption: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    auto_delete: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("status")
    def _validate_status(self, key, value):
        return _check_choice("Message", key, value, MESSAGE_STATUSES)

    @validates("moderation_status")
    def _validate_moderation_status(self, key, value):
        return _check_choice("Message", key, value, MODERATION_STATUSES)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = _id_column()
    recipient_id: Mapped[str] = mapped_column(String(24), ForeignKey("users.id"), index=True)
    sender_id: Mapped[str] = mapped_column(String(24), ForeignKey("users.id"))
    kind: Mapped[str] = mapped_column(String(16), default="message")
    chat_id: Mapped[str] = mapped_column(String(24), index=True)
    chat_type: Mapped[str] = mapped_column(String(16), default="group")
    chat_name: Mapped[str] = mapped_column(String)
    message_id: Mapped[str] = mapped_column(String(24))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class AuditEntry(Base):
    __tablename__ = "audit_log"

    __table_args__ = (Index("ix_audit_log_target", "target_type", "target_id"),)

    id: Mapped[str] = _id_column()
    admin_id: Mapped[str] = mapped_column(String(24), index=True)
    action: Mapped[str] = mapped_column(String(32))
    target_type: Mapped[str] = mapped_column(String(16))
    target_id: Mapped[str] = mapped_column(String(24))
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=lambda: {})
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class Notice(Base):
    """Community notice-board post."""

    __tablename__ = "notices"

    id: Mapped[str] = _id_column()
    title: Mapped[str] = mapped_column(String(200))
    content: Mapped[str] = mapped_column(Text)
    author_id: Mapped[str] = mapped_column(String(24), ForeignKey("users.id"))
    status: Mapped[str] = mapped_column(String(16), default="active")
    is_flagged: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    flagged_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reports: Mapped[List[dict]] = mapped_column(JSON, default=lambda: [])
    moderation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    moderated_by: Mapped[Optional[str]] = mapped_column(String(24), nullable=True)
    moderated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("status")
    def _validate_status(self, key, value):
        return _check_choice("Notice", key, value, MODERATION_STATUSES)


class Report(Base):
    """Community incident report."""

    __tablename__ = "reports"

    id: Mapped[str] = _id_column()
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    reporter_id: Mapped[str] = mapped_column(String(24), ForeignKey("users.id"))
    report_status: Mapped[str] = mapped_column(String(16), default="active")
    is_flagged: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    flagged_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reports: Mapped[List[dict]] = mapped_column(JSON, default=lambda: [])
    moderation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    moderated_by: Mapped[Optional[str]] = mapped_column(String(24), nullable=True)
    moderated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, onupdate=utcnow
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @validates("report_status")
    def _validate_status(self, key, value):
        return _check_choice("Report", key, value, MODERATION_STATUSES)
