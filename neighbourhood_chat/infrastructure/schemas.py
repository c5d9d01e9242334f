# neighbourhood_chat/infrastructure/schemas.py
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from neighbourhood_chat.domain.entities import (
    GROUP_TYPES,
    LEGACY_MESSAGE_TYPE_MAP,
    LEGACY_MESSAGE_TYPES,
    MESSAGE_TYPES,
    REACTION_TYPES,
)

MAX_CONTENT_LENGTH = 10000
REQUEST_MESSAGE_TYPES = tuple(dict.fromkeys(LEGACY_MESSAGE_TYPES + MESSAGE_TYPES))


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class SendMessageRequest(CamelModel):
    content: str
    type: Literal[MESSAGE_TYPES] | None = None
    message_type: Literal[REQUEST_MESSAGE_TYPES] | None = None
    reply_to_id: str | None = None
    is_forwarded: bool = False
    forwarded_from: dict[str, Any] | None = None
    attachments: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def content_length(cls, value: str) -> str:
        if len(value.strip()) > MAX_CONTENT_LENGTH:
            raise ValueError(f"content must be at most {MAX_CONTENT_LENGTH} characters")
        return value

    @property
    def resolved_type(self) -> str:
        if self.type:
            return self.type
        if self.message_type:
            return LEGACY_MESSAGE_TYPE_MAP.get(self.message_type, self.message_type)
        return "text"


class CreateGroupRequest(CamelModel):
    name: str
    description: str = ""
    type: Literal[GROUP_TYPES] = "public"

    @field_validator("name")
    @classmethod
    def name_length(cls, value: str) -> str:
        value = value.strip()
        if not 2 <= len(value) <= 100:
            raise ValueError("name must be between 2 and 100 characters")
        return value

    @field_validator("description")
    @classmethod
    def description_length(cls, value: str) -> str:
        value = value.strip()
        if len(value) > 1000:
            raise ValueError("description must be at most 1000 characters")
        return value


class ReactionRequest(CamelModel):
    reaction_type: Literal[REACTION_TYPES]


class ReportMessageRequest(CamelModel):
    reason: str
    anonymous: bool = False

    @field_validator("reason")
    @classmethod
    def reason_length(cls, value: str) -> str:
        value = value.strip()
        if not 1 <= len(value) <= 500:
            raise ValueError("reason must be between 1 and 500 characters")
        return value


class ModerationActionRequest(CamelModel):
    reason: str | None = None


class StatusMessage(BaseModel):
    message: str


class GroupSummary(CamelModel):
    id: str
    name: str
    description: str = ""
    type: str
    member_role: str
    member_count: int
    message_count: int
    last_message: dict[str, Any] | None = None
    last_activity: datetime | None = None
    created_at: datetime | None = None
    has_error: bool = False


class GroupMemberOut(CamelModel):
    legacy_id: str = Field(alias="_id")
    id: str
    first_name: str = ""
    last_name: str = ""
    profile_image_url: str | None = None
    role: str
    joined_at: datetime
    full_name: str


class ReactionOut(CamelModel):
    type: str
    count: int
    users: list[str]
    created_at: str | None = None


class ReactionResult(CamelModel):
    message_id: str
    reactions: list[ReactionOut]


class ReportResult(CamelModel):
    message_id: str
    is_reported: bool
    report_count: int


class FlaggedReport(CamelModel):
    id: str | None = None
    reason: str
    reported_by: dict[str, Any]
    reported_at: str | None = None
    is_anonymous: bool


class FlaggedItem(CamelModel):
    id: str
    content_type: str
    title: str
    content: str
    author: dict[str, Any] | None = None
    reports: list[FlaggedReport]
    report_count: int
    created_at: datetime | None = None
    flagged_at: datetime | None = None
    status: str


class FlaggedContentPage(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int
    content: list[FlaggedItem]


class ModerationResult(CamelModel):
    id: str
    content_type: str
    status: str
    moderation_reason: str | None = None
    moderated_by: str
    moderated_at: datetime
