"""Rules for creating conversations, reading their messages and marking them as seen."""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, Sequence

from chatbackend.conversation_models import (
    ConversationDetail,
    ConversationEntity,
    ConversationType,
    ParticipantDetailWithConversation,
    ParticipantRow,
)
from chatbackend.conversation_repository import ConversationRepository, ParticipantRepository
from chatbackend.errors import ServiceError


class _MessageStore(Protocol):
    def find_by_query(
        self, conversation_id: uuid.UUID, created_at: Optional[datetime], limit: int
    ) -> Sequence[Any]:
        """Newest first, created at or before ``created_at``, at most ``limit + 1``."""

    def get_last_message_by_conversation(self, conversation_id: uuid.UUID) -> Any:
        """The newest message of the conversation, or None."""


class _Notifier(Protocol):
    def send_to_users(self, user_ids: Sequence[uuid.UUID], message: dict) -> None:
        ...

    def broadcast_to_room(
        self,
        conversation_id: uuid.UUID,
        message: dict,
        skip_user_id: Optional[uuid.UUID] = None,
    ) -> None:
        ...


def _parse_cursor(cursor: str) -> datetime:
    text = cursor
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ServiceError.bad_request("Invalid cursor format") from exc
    if value.tzinfo is None:
        raise ServiceError.bad_request("Invalid cursor format")
    return value.astimezone(timezone.utc)


def _rfc3339(value: Any) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.isoformat()
    return str(value)


class ConversationService:
    """Works over the conversation stores, a message store and an optional notifier.

    The message store offers ``find_by_query(conversation_id, created_at, limit)``
    and ``get_last_message_by_conversation(conversation_id)``; the notifier offers
    ``send_to_users(user_ids, message)`` and
    ``broadcast_to_room(conversation_id, message, skip_user_id)``.
    """

    def __init__(
        self,
        conversation_repo: ConversationRepository,
        participant_repo: ParticipantRepository,
        message_repo: _MessageStore,
        notifier: Optional[_Notifier] = None,
    ) -> None:
        self._conversation_repo = conversation_repo
        self._participant_repo = participant_repo
        self._message_repo = message_repo
        self._notifier = notifier

    def get_by_id(self, conversation_id: uuid.UUID) -> ConversationEntity:
        conversation = self._conversation_repo.find_by_id(conversation_id)
        if conversation is None:
            raise ServiceError.not_found("Conversation not found")
        return conversation

    def create_conversation(
        self,
        conversation_type: ConversationType | str,
        name: str,
        member_ids: Sequence[uuid.UUID],
        user_id: uuid.UUID,
    ) -> Optional[ConversationDetail]:
        """Create a group, or find or create the direct conversation with the first member."""
        conversation_type = ConversationType(conversation_type)
        members = list(member_ids)
        with self._conversation_repo.transaction() as repo:
            if not members:
                raise ServiceError.bad_request(
                    "At least one member is required to create a conversation"
                )
            if conversation_type is ConversationType.DIRECT:
                participant = members[0]
                conversation = repo.find_direct_between_users(user_id, participant)
                if conversation is None:
                    conversation = repo.create_direct_conversation(user_id, participant)
            else:
                conversation = repo.create_group_conversation(name, members, user_id)

        detail = self._conversation_repo.find_one_conversation_detail(conversation.id)
        payload = detail.to_dict() if detail is not None else None

        if conversation_type is ConversationType.GROUP and self._notifier is not None:
            self._notifier.send_to_users(
                members, {"event": "new-group", "conversation": payload}
            )
        return detail

    def get_by_user_id(self, user_id: uuid.UUID) -> list[ConversationDetail]:
        """The user's conversations, each with its active participants."""
        conversations = self._conversation_repo.find_all_conversation_with_details_by_user(
            user_id
        )
        participants = self._participant_repo.find_participants_by_conversation_id(
            [conv.conversation_id for conv in conversations]
        )
        by_conversation: dict[uuid.UUID, list[ParticipantRow]] = defaultdict(list)
        for p in participants:
            by_conversation[p.conversation_id].append(
                ParticipantRow(
                    user_id=p.user_id,
                    display_name=p.display_name,
                    avatar_url=p.avatar_url,
                    unread_count=p.unread_count,
                    joined_at=p.joined_at,
                )
            )
        return [
            ConversationDetail(
                conversation_id=conv.conversation_id,
                conversation_type=conv.conversation_type,
                group_info=conv.group_info,
                last_message=conv.last_message,
                participants=list(by_conversation.get(conv.conversation_id, [])),
                created_at=conv.created_at,
                updated_at=conv.updated_at,
            )
            for conv in conversations
        ]

    def get_message(
        self, conversation_id: uuid.UUID, limit: int, cursor: Optional[str]
    ) -> tuple[list[Any], Optional[str]]:
        """A page of messages, oldest first, and the cursor of the next older page."""
        created_at = _parse_cursor(cursor) if cursor is not None else None
        messages = list(
            self._message_repo.find_by_query(conversation_id, created_at, limit)
        )
        next_cursor = None
        if len(messages) > limit:
            next_cursor = _rfc3339(messages.pop().created_at)
        messages.reverse()
        return messages, next_cursor

    def get_participants_by_conversation_id(
        self, conversation_id: uuid.UUID
    ) -> list[ParticipantDetailWithConversation]:
        return self._participant_repo.find_participants_by_conversation_id([conversation_id])

    def get_conversation_and_check_membership(
        self, conversation_id: uuid.UUID, user_id: uuid.UUID
    ) -> tuple[Optional[ConversationEntity], bool]:
        return self._conversation_repo.get_conversation_and_check_membership(
            conversation_id, user_id
        )

    def mark_as_seen(self, conversation_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Record that the user has seen the latest message and tell the room."""
        with self._conversation_repo.transaction() as repo:
            _, is_member = repo.get_conversation_and_check_membership(conversation_id, user_id)
            if not is_member:
                raise ServiceError.forbidden("User is not a participant of this conversation")
            last = self._message_repo.get_last_message_by_conversation(conversation_id)
            if last is None or last.sender_id == user_id:
                return
            self._participant_repo.mark_as_seen(conversation_id, user_id, last.id)

        if self._notifier is None:
            return
        last_message_info = {
            "_id": str(last.id),
            "content": last.content,
            "created_at": _rfc3339(last.created_at),
            "sender": {"_id": str(last.sender_id), "display_name": "", "avatar_url": None},
        }
        conversation_update = {
            "_id": str(conversation_id),
            "unreadCounts": {},
            "seenBy": [str(user_id)],
        }
        self._notifier.broadcast_to_room(
            conversation_id,
            {
                "event": "read-message",
                "conversation": conversation_update,
                "lastMessage": last_message_info,
            },
            None,
        )