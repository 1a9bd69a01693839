"""Conversation records, views and request bodies."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from chatbackend.errors import BadRequestError


class ConversationType(str, enum.Enum):
    DIRECT = "direct"
    GROUP = "group"


@dataclass
class ConversationEntity:
    id: uuid.UUID
    conversation_type: ConversationType
    created_at: datetime
    updated_at: datetime


@dataclass
class ParticipantEntity:
    conversation_id: uuid.UUID
    user_id: uuid.UUID
    unread_count: int
    joined_at: datetime
    deleted_at: datetime | None = None


@dataclass
class GroupConversationEntity:
    conversation_id: uuid.UUID
    name: str
    created_by: uuid.UUID
    avatar_url: str | None = None


@dataclass
class LastMessageEntity:
    id: uuid.UUID
    content: str | None
    conversation_id: uuid.UUID
    created_at: datetime


@dataclass
class GroupInfo:
    name: str
    created_by: uuid.UUID
    avatar_url: str | None = None


@dataclass
class ParticipantRow:
    user_id: uuid.UUID
    display_name: str
    avatar_url: str | None
    unread_count: int
    joined_at: datetime


@dataclass
class LastMessageRow:
    content: str | None
    sender_id: uuid.UUID
    created_at: datetime


@dataclass
class ConversationRow:
    conversation_id: uuid.UUID
    conversation_type: ConversationType
    group_info: GroupInfo | None
    last_message: LastMessageRow | None
    created_at: datetime
    updated_at: datetime


def _group_info_dict(info: GroupInfo) -> dict[str, Any]:
    return {
        "name": info.name,
        "created_by": str(info.created_by),
        "avatar_url": info.avatar_url,
    }


def _last_message_dict(row: LastMessageRow) -> dict[str, Any]:
    return {
        "content": row.content,
        "sender_id": str(row.sender_id),
        "created_at": row.created_at.isoformat(),
    }


def _participant_dict(row: ParticipantRow) -> dict[str, Any]:
    return {
        "user_id": str(row.user_id),
        "display_name": row.display_name,
        "avatar_url": row.avatar_url,
        "unread_count": row.unread_count,
        "joined_at": row.joined_at.isoformat(),
    }


@dataclass
class ConversationDetail:
    conversation_id: uuid.UUID
    conversation_type: ConversationType
    group_info: GroupInfo | None
    last_message: LastMessageRow | None
    participants: list[ParticipantRow] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": str(self.conversation_id),
            "_type": self.conversation_type.value,
            "group_info": _group_info_dict(self.group_info) if self.group_info else None,
            "last_message": (
                _last_message_dict(self.last_message) if self.last_message else None
            ),
            "participants": [_participant_dict(p) for p in self.participants],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


def _parse_uuid(value: Any, name: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if not isinstance(value, str):
        raise BadRequestError(f"Invalid Body: {name} must be a UUID string")
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise BadRequestError(f"Invalid Body: {name} is not a valid UUID") from exc


@dataclass
class NewConversation:
    conversation_type: ConversationType
    name: str
    member_ids: list[uuid.UUID]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> NewConversation:
        """Parse and validate a request body; at least one member is required."""
        if not isinstance(data, Mapping):
            raise BadRequestError("Invalid Body: expected an object")
        try:
            conversation_type = ConversationType(data["type"])
        except KeyError as exc:
            raise BadRequestError("Invalid Body: missing field `type`") from exc
        except ValueError as exc:
            raise BadRequestError("Invalid Body: unknown conversation type") from exc
        name = data.get("name")
        if not isinstance(name, str):
            raise BadRequestError("Invalid Body: missing field `name`")
        raw_members = data.get("member_ids")
        if not isinstance(raw_members, list):
            raise BadRequestError("Invalid Body: missing field `member_ids`")
        if not raw_members:
            raise BadRequestError("member_ids: must contain at least 1 item")
        member_ids = [_parse_uuid(item, "member_ids") for item in raw_members]
        return cls(conversation_type, name, member_ids)


@dataclass
class NewParticipant:
    conversation_id: uuid.UUID
    user_id: uuid.UUID
    unread_count: int = 0


@dataclass
class ParticipantDetailWithConversation:
    user_id: uuid.UUID
    display_name: str
    avatar_url: str | None
    unread_count: int
    joined_at: datetime
    conversation_id: uuid.UUID


@dataclass
class NewLastMessage:
    conversation_id: uuid.UUID
    sender_id: uuid.UUID
    content: str | None
    created_at: datetime


@dataclass
class MessageQueryRequest:
    limit: int
    cursor: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MessageQueryRequest:
        """Parse query parameters; ``limit`` must lie between 1 and 50."""
        raw_limit = data.get("limit")
        if raw_limit is None:
            raise BadRequestError("missing field `limit`")
        if isinstance(raw_limit, bool):
            raise BadRequestError("limit: must be an integer")
        try:
            limit = int(raw_limit)
        except (TypeError, ValueError) as exc:
            raise BadRequestError("limit: must be an integer") from exc
        if not 1 <= limit <= 50:
            raise BadRequestError("limit: must be between 1 and 50")
        cursor = data.get("cursor")
        if cursor is not None and not isinstance(cursor, str):
            raise BadRequestError("cursor: must be a string")
        return cls(limit, cursor)