"""Storage of conversations, their participants and their last messages."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable, Iterator, Sequence

from chatbackend.conversation_models import (
    ConversationDetail,
    ConversationEntity,
    ConversationRow,
    ConversationType,
    GroupInfo,
    LastMessageEntity,
    LastMessageRow,
    NewLastMessage,
    NewParticipant,
    ParticipantDetailWithConversation,
    ParticipantEntity,
    ParticipantRow,
)
from chatbackend.db import uuid7
from chatbackend.errors import from_database_error

_NOW = "strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')"


def _uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _optional_uuid(value: Any) -> uuid.UUID | None:
    return None if value is None else _uuid(value)


def _datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[None]:
    if conn.in_transaction:
        yield
        return
    conn.execute("BEGIN")
    try:
        yield
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


class _Store:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, tuple(params))
        except sqlite3.Error as exc:
            raise from_database_error(exc) from exc

    def _executemany(self, sql: str, rows: Iterable[Sequence[Any]]) -> None:
        try:
            self._conn.executemany(sql, [tuple(row) for row in rows])
        except sqlite3.Error as exc:
            raise from_database_error(exc) from exc

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        return self._execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        return self._execute(sql, params).fetchall()


def _conversation_entity(row: sqlite3.Row) -> ConversationEntity:
    return ConversationEntity(
        id=_uuid(row["id"]),
        conversation_type=ConversationType(row["type"]),
        created_at=_datetime(row["created_at"]),
        updated_at=_datetime(row["updated_at"]),
    )


def _group_info(row: sqlite3.Row) -> GroupInfo | None:
    name, created_by = row["group_name"], row["group_created_by"]
    if name is None or created_by is None:
        return None
    return GroupInfo(
        name=name, created_by=_uuid(created_by), avatar_url=row["group_avatar_url"]
    )


def _last_message(row: sqlite3.Row) -> LastMessageRow | None:
    sender_id, created_at = row["last_sender_id"], row["last_created_at"]
    if sender_id is None or created_at is None:
        return None
    return LastMessageRow(
        content=row["last_content"],
        sender_id=_uuid(sender_id),
        created_at=_datetime(created_at),
    )


_CONVERSATION_WITH_EXTRAS = """
    SELECT
        c.id,
        c.type,
        c.created_at,
        c.updated_at,
        g.name AS group_name,
        g.created_by AS group_created_by,
        g.avatar_url AS group_avatar_url,
        m.content AS last_content,
        m.sender_id AS last_sender_id,
        m.created_at AS last_created_at
    FROM conversations c
    {join}
    LEFT JOIN group_conversations g ON g.conversation_id = c.id
    LEFT JOIN messages m ON m.id = (
        SELECT id FROM messages
        WHERE conversation_id = c.id
        ORDER BY created_at DESC
        LIMIT 1
    )
    {tail}
"""


class ParticipantRepository(_Store):
    """Membership of users in conversations and their unread counters."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)

    def create_participant(self, participant: NewParticipant) -> ParticipantEntity:
        self._execute(
            """
            INSERT INTO participants (conversation_id, user_id, unread_count)
            VALUES (?, ?, ?)
            """,
            (participant.conversation_id, participant.user_id, participant.unread_count),
        )
        row = self._fetchone(
            "SELECT * FROM participants WHERE conversation_id = ? AND user_id = ?",
            (participant.conversation_id, participant.user_id),
        )
        return ParticipantEntity(
            conversation_id=_uuid(row["conversation_id"]),
            user_id=_uuid(row["user_id"]),
            unread_count=row["unread_count"],
            joined_at=_datetime(row["joined_at"]),
            deleted_at=_datetime(row["deleted_at"]),
        )

    def increment_unread_count(self, conversation_id: uuid.UUID, user_id: uuid.UUID) -> None:
        self._execute(
            """
            UPDATE participants SET unread_count = unread_count + 1
            WHERE conversation_id = ? AND user_id = ? AND deleted_at IS NULL
            """,
            (conversation_id, user_id),
        )

    def increment_unread_count_for_others(
        self, conversation_id: uuid.UUID, sender_id: uuid.UUID
    ) -> None:
        """Add one unread message for every active participant except the sender."""
        self._execute(
            """
            UPDATE participants SET unread_count = unread_count + 1
            WHERE conversation_id = ? AND user_id != ? AND deleted_at IS NULL
            """,
            (conversation_id, sender_id),
        )

    def reset_unread_count(self, conversation_id: uuid.UUID, user_id: uuid.UUID) -> None:
        self._execute(
            """
            UPDATE participants SET unread_count = 0
            WHERE conversation_id = ? AND user_id = ? AND deleted_at IS NULL
            """,
            (conversation_id, user_id),
        )

    def mark_as_seen(
        self,
        conversation_id: uuid.UUID,
        user_id: uuid.UUID,
        last_seen_message_id: uuid.UUID,
    ) -> None:
        """Record the last message the user has seen and clear their unread count."""
        self._execute(
            """
            UPDATE participants
            SET last_seen_message_id = ?, unread_count = 0
            WHERE conversation_id = ? AND user_id = ? AND deleted_at IS NULL
            """,
            (last_seen_message_id, conversation_id, user_id),
        )

    def find_participants_by_conversation_id(
        self, conversation_ids: Sequence[uuid.UUID]
    ) -> list[ParticipantDetailWithConversation]:
        """Active participants of the given conversations, with their user details."""
        ids = list(conversation_ids)
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        rows = self._fetchall(
            f"""
            SELECT
                p.conversation_id,
                p.user_id,
                u.display_name,
                u.avatar_url,
                p.unread_count,
                p.joined_at
            FROM participants p
            JOIN users u ON u.id = p.user_id
            WHERE p.conversation_id IN ({placeholders})
            AND p.deleted_at IS NULL
            """,
            ids,
        )
        return [
            ParticipantDetailWithConversation(
                user_id=_uuid(row["user_id"]),
                display_name=row["display_name"],
                avatar_url=row["avatar_url"],
                unread_count=row["unread_count"],
                joined_at=_datetime(row["joined_at"]),
                conversation_id=_uuid(row["conversation_id"]),
            )
            for row in rows
        ]

    def get_unread_counts(self, conversation_id: uuid.UUID) -> dict[uuid.UUID, int]:
        """Map each active participant's id to their unread count."""
        rows = self._fetchall(
            """
            SELECT user_id, unread_count FROM participants
            WHERE conversation_id = ? AND deleted_at IS NULL
            """,
            (conversation_id,),
        )
        return {_uuid(row["user_id"]): row["unread_count"] for row in rows}


class ConversationRepository(_Store):
    """Direct and group conversations together with their derived views."""

    def __init__(
        self, conn: sqlite3.Connection, participant_repo: ParticipantRepository
    ) -> None:
        super().__init__(conn)
        self._participant_repo = participant_repo

    @contextmanager
    def transaction(self) -> Iterator[ConversationRepository]:
        """Run the enclosed calls atomically; an exception rolls them back."""
        with _transaction(self._conn):
            yield self

    def find_by_id(self, conversation_id: uuid.UUID) -> ConversationEntity | None:
        row = self._fetchone("SELECT * FROM conversations WHERE id = ?", (conversation_id,))
        return _conversation_entity(row) if row is not None else None

    def find_one_conversation_detail(
        self, conversation_id: uuid.UUID
    ) -> ConversationDetail | None:
        """The conversation with its group info, latest message and participants."""
        raw = self._fetchone(
            _CONVERSATION_WITH_EXTRAS.format(join="", tail="WHERE c.id = ? LIMIT 1"),
            (conversation_id,),
        )
        if raw is None:
            return None
        rows = self._fetchall(
            """
            SELECT p.user_id, u.display_name, u.avatar_url, p.unread_count, p.joined_at
            FROM participants p
            JOIN users u ON u.id = p.user_id
            WHERE p.conversation_id = ?
            """,
            (conversation_id,),
        )
        participants = [
            ParticipantRow(
                user_id=_uuid(row["user_id"]),
                display_name=row["display_name"],
                avatar_url=row["avatar_url"],
                unread_count=row["unread_count"],
                joined_at=_datetime(row["joined_at"]),
            )
            for row in rows
        ]
        return ConversationDetail(
            conversation_id=_uuid(raw["id"]),
            conversation_type=ConversationType(raw["type"]),
            group_info=_group_info(raw),
            last_message=_last_message(raw),
            participants=participants,
            created_at=_datetime(raw["created_at"]),
            updated_at=_datetime(raw["updated_at"]),
        )

    def create(self, conversation_type: ConversationType) -> ConversationEntity:
        conversation_id = uuid7()
        self._execute(
            "INSERT INTO conversations (id, type) VALUES (?, ?)",
            (conversation_id, ConversationType(conversation_type).value),
        )
        return self.find_by_id(conversation_id)

    def create_direct_conversation(
        self, user_a: uuid.UUID, user_b: uuid.UUID
    ) -> ConversationEntity:
        """Create a direct conversation with both users as participants."""
        with _transaction(self._conn):
            conversation = self.create(ConversationType.DIRECT)
            for user_id in (user_a, user_b):
                self._participant_repo.create_participant(
                    NewParticipant(conversation.id, user_id, 0)
                )
        return conversation

    def create_group_conversation(
        self, name: str, member_ids: Sequence[uuid.UUID], user_id: uuid.UUID
    ) -> ConversationEntity:
        """Create a group named ``name`` by ``user_id`` whose participants are the members."""
        with _transaction(self._conn):
            conversation = self.create(ConversationType.GROUP)
            self._execute(
                """
                INSERT INTO group_conversations (conversation_id, name, created_by)
                VALUES (?, ?, ?)
                """,
                (conversation.id, name, user_id),
            )
            self._executemany(
                f"""
                INSERT INTO participants (conversation_id, user_id, unread_count, joined_at)
                VALUES (?, ?, 0, {_NOW})
                """,
                [(conversation.id, member_id) for member_id in member_ids],
            )
        return conversation

    def find_direct_between_users(
        self, user_a: uuid.UUID, user_b: uuid.UUID
    ) -> ConversationEntity | None:
        row = self._fetchone(
            """
            SELECT c.* FROM conversations c
            WHERE c.type = 'direct'
            AND EXISTS (
                SELECT 1 FROM participants p1
                WHERE p1.conversation_id = c.id AND p1.user_id = ?1
                AND p1.deleted_at IS NULL
            )
            AND EXISTS (
                SELECT 1 FROM participants p2
                WHERE p2.conversation_id = c.id AND p2.user_id = ?2
                AND p2.deleted_at IS NULL
            )
            LIMIT 1
            """,
            (user_a, user_b),
        )
        return _conversation_entity(row) if row is not None else None

    def find_all_conversation_with_details_by_user(
        self, user_id: uuid.UUID
    ) -> list[ConversationRow]:
        """The user's conversations, most recently active first."""
        rows = self._fetchall(
            _CONVERSATION_WITH_EXTRAS.format(
                join="""
                JOIN participants p
                    ON p.conversation_id = c.id
                    AND p.user_id = ?
                    AND p.deleted_at IS NULL
                """,
                tail="ORDER BY COALESCE(m.created_at, c.updated_at) DESC",
            ),
            (user_id,),
        )
        return [
            ConversationRow(
                conversation_id=_uuid(row["id"]),
                conversation_type=ConversationType(row["type"]),
                group_info=_group_info(row),
                last_message=_last_message(row),
                created_at=_datetime(row["created_at"]),
                updated_at=_datetime(row["updated_at"]),
            )
            for row in rows
        ]

    def get_conversation_and_check_membership(
        self, conversation_id: uuid.UUID, user_id: uuid.UUID
    ) -> tuple[ConversationEntity | None, bool]:
        row = self._fetchone(
            """
            SELECT c.*, EXISTS(
                SELECT 1 FROM participants p
                WHERE p.conversation_id = c.id AND p.user_id = ?2
            ) AS is_member
            FROM conversations c
            WHERE c.id = ?1
            """,
            (conversation_id, user_id),
        )
        if row is None:
            return None, False
        return _conversation_entity(row), bool(row["is_member"])

    def update_timestamp(self, conversation_id: uuid.UUID) -> None:
        """Set the conversation's ``updated_at`` to the current time."""
        self._execute(
            f"UPDATE conversations SET updated_at = {_NOW} WHERE id = ?", (conversation_id,)
        )


class LastMessageRepository(_Store):
    """One summary row per conversation holding its latest message."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)

    def upsert_last_message(self, last_message: NewLastMessage) -> LastMessageEntity:
        self._execute(
            f"""
            INSERT INTO last_messages (id, content, conversation_id, sender_id, created_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT (conversation_id) DO UPDATE
            SET content = excluded.content,
                sender_id = excluded.sender_id,
                created_at = {_NOW}
            """,
            (
                uuid7(),
                last_message.content,
                last_message.conversation_id,
                last_message.sender_id,
                last_message.created_at,
            ),
        )
        row = self._fetchone(
            "SELECT * FROM last_messages WHERE conversation_id = ?",
            (last_message.conversation_id,),
        )
        return LastMessageEntity(
            id=_uuid(row["id"]),
            content=row["content"],
            conversation_id=_uuid(row["conversation_id"]),
            created_at=_datetime(row["created_at"]),
        )