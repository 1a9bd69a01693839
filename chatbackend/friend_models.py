"""Friendship records, views and request bodies."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Mapping, Union

from chatbackend.errors import BadRequestError


def _plain(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _as_dict(obj: Any) -> dict[str, Any]:
    return {field.name: _plain(getattr(obj, field.name)) for field in fields(obj)}


@dataclass
class FriendEntity:
    user_a: uuid.UUID
    user_b: uuid.UUID
    deleted_at: datetime | None
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return _as_dict(self)


@dataclass
class FriendRequestEntity:
    id: uuid.UUID
    from_user_id: uuid.UUID
    to_user_id: uuid.UUID
    message: str | None
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return _as_dict(self)


@dataclass
class FriendResponse:
    id: uuid.UUID
    username: str
    display_name: str
    avatar_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _as_dict(self)


UserRef = Union[uuid.UUID, FriendResponse]


def _user_ref_dict(ref: UserRef) -> dict[str, Any]:
    if isinstance(ref, FriendResponse):
        return {"Info": ref.to_dict()}
    return {"Id": str(ref)}


@dataclass
class FriendRequestResponse:
    """A pending request; each side is either a bare id or the user's details."""

    id: uuid.UUID
    from_user: UserRef
    to_user: UserRef
    message: str | None
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": _plain(self.id),
            "from": _user_ref_dict(self.from_user),
            "to": _user_ref_dict(self.to_user),
            "message": self.message,
            "created_at": _plain(self.created_at),
        }


@dataclass
class FriendRequestBody:
    recipient_id: uuid.UUID
    message: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FriendRequestBody:
        if not isinstance(data, Mapping):
            raise BadRequestError("Invalid Body: expected an object")
        raw = data.get("recipient_id")
        if not isinstance(raw, str):
            raise BadRequestError("Invalid Body: missing field `recipient_id`")
        try:
            recipient_id = uuid.UUID(raw)
        except ValueError as exc:
            raise BadRequestError("Invalid Body: recipient_id is not a valid UUID") from exc
        message = data.get("message")
        if message is not None and not isinstance(message, str):
            raise BadRequestError("Invalid Body: message must be a string")
        return cls(recipient_id, message)