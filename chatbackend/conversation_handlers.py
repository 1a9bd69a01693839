"""Request handlers for the ``/conversations`` routes.

GET  /conversations                                get_conversations
GET  /conversations/{conversation_id}/messages     get_messages
POST /conversations                                create_conversation (after require_friend)
POST /conversations/{conversation_id}/mark-as-seen mark_as_seen
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Mapping, TypeVar

from chatbackend.conversation_models import MessageQueryRequest, NewConversation
from chatbackend.conversation_service import ConversationService
from chatbackend.errors import ServiceError, to_api_error
from chatbackend.responses import Success

T = TypeVar("T")


def _call(method: Callable[..., T], *args: Any) -> T:
    """Call a service method, turning its errors into API errors."""
    try:
        return method(*args)
    except ServiceError as exc:
        raise to_api_error(exc) from exc


def _parse(model: type[T], value: Any) -> T:
    return value if isinstance(value, model) else model.from_dict(value)  # type: ignore[attr-defined]


def get_conversations(service: ConversationService, user_id: uuid.UUID) -> Success:
    conversations = _call(service.get_by_user_id, user_id)
    return Success.ok(conversations).with_message("Successfully retrieved conversations")


def get_messages(
    service: ConversationService,
    conversation_id: uuid.UUID,
    query: Mapping[str, Any] | MessageQueryRequest,
) -> Success:
    parsed = _parse(MessageQueryRequest, query)
    messages, cursor = _call(service.get_message, conversation_id, parsed.limit, parsed.cursor)
    return Success.ok({"messages": messages, "cursor": cursor}).with_message(
        "Successfully retrieved messages"
    )


def create_conversation(
    service: ConversationService,
    body: Mapping[str, Any] | NewConversation,
    user_id: uuid.UUID,
) -> Success:
    parsed = _parse(NewConversation, body)
    conversation = _call(
        service.create_conversation,
        parsed.conversation_type,
        parsed.name,
        parsed.member_ids,
        user_id,
    )
    return Success.ok(conversation).with_message("Successfully created conversation")


def mark_as_seen(
    service: ConversationService, conversation_id: uuid.UUID, user_id: uuid.UUID
) -> Success:
    _call(service.mark_as_seen, conversation_id, user_id)
    return Success.ok("Messages marked as seen").with_message(
        "Successfully marked messages as seen"
    )