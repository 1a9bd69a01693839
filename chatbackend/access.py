"""Checks run before handlers: tokens, roles, friendship and group membership."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from chatbackend.conversation_models import ConversationEntity
from chatbackend.conversation_service import ConversationService
from chatbackend.errors import (
    BadRequestError,
    ForbiddenError,
    InternalServerError,
    NotFoundError,
    ServiceError,
    UnauthorizedError,
)
from chatbackend.friend_service import FriendService

Body = Union[bytes, bytearray, str, Mapping[str, Any]]


@dataclass(frozen=True)
class RequireBody:
    """The part of a request body naming the users the caller must be friends with."""

    recipient_id: Optional[uuid.UUID] = None
    member_ids: Optional[Tuple[uuid.UUID, ...]] = None


def _decode(body: Body) -> Any:
    if isinstance(body, (bytes, bytearray, str)):
        return json.loads(body)
    return body


def _parse_uuid(value: Any, name: str) -> uuid.UUID:
    if not isinstance(value, str):
        raise BadRequestError(f"Invalid Body: {name} must be a UUID string")
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise BadRequestError(f"Invalid Body: {name} is not a valid UUID") from exc


def _parse_require_body(body: Body) -> RequireBody:
    try:
        data = _decode(body)
    except ValueError as exc:
        raise BadRequestError(f"Invalid Body: {exc}") from exc
    if not isinstance(data, Mapping):
        raise BadRequestError("Invalid Body: expected an object")
    raw_recipient = data.get("recipient_id")
    recipient_id = None if raw_recipient is None else _parse_uuid(raw_recipient, "recipient_id")
    raw_members = data.get("member_ids")
    member_ids = None
    if raw_members is not None:
        if not isinstance(raw_members, list):
            raise BadRequestError("Invalid Body: member_ids must be a list")
        member_ids = tuple(_parse_uuid(item, "member_ids") for item in raw_members)
    return RequireBody(recipient_id, member_ids)


def bearer_token(header: Optional[str]) -> str:
    """The token of an ``Authorization: Bearer <token>`` header."""
    if header is None or not header.startswith("Bearer "):
        raise UnauthorizedError("Token Invalid or Expired")
    return header[len("Bearer "):]


def authorize(role: Any, allowed_roles: Iterable[Any]) -> Any:
    """Return the role if it is allowed; otherwise refuse."""
    if role not in list(allowed_roles):
        raise ForbiddenError("No permission")
    return role


def require_friend(friend_service: FriendService, user_id: uuid.UUID, body: Body) -> RequireBody:
    """Check that the caller is friends with the recipient and with every member."""
    parsed = _parse_require_body(body)
    if parsed.recipient_id is None and parsed.member_ids is None:
        raise BadRequestError("Either recipient_id or member_ids must be provided")

    try:
        if parsed.recipient_id is not None and not friend_service.is_friend(
            user_id, parsed.recipient_id
        ):
            raise ForbiddenError("You are not friends with the recipient")
        if parsed.member_ids is not None:
            results = [friend_service.is_friend(user_id, member) for member in parsed.member_ids]
            if not all(results):
                raise ForbiddenError("You are not friends with all members")
    except ServiceError as exc:
        raise InternalServerError() from exc
    return parsed


def require_group_member(
    conversation_service: ConversationService, user_id: uuid.UUID, body: Body
) -> Optional[ConversationEntity]:
    """Check that the caller belongs to the body's ``conversation_id``; return it."""
    try:
        data = _decode(body)
        conversation_id = uuid.UUID(data["conversation_id"])
    except (ValueError, KeyError, TypeError, AttributeError) as exc:
        raise BadRequestError("Invalid Body") from exc

    try:
        conversation, is_member = conversation_service.get_conversation_and_check_membership(
            conversation_id, user_id
        )
    except ServiceError as exc:
        raise NotFoundError("Conversation not found") from exc
    if not is_member:
        raise ForbiddenError("You are not a member of this conversation")
    return conversation