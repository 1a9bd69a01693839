"""Storage of friendships and pending friend requests."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import fields
from datetime import datetime
from typing import Any, Iterator, Sequence, TypeVar

from chatbackend.db import uuid7
from chatbackend.errors import from_database_error
from chatbackend.friend_models import (
    FriendEntity,
    FriendRequestEntity,
    FriendRequestResponse,
    FriendResponse,
)

T = TypeVar("T")

_UUID_COLUMNS = frozenset({"id", "user_a", "user_b", "from_user_id", "to_user_id"})
_TIME_COLUMNS = frozenset({"created_at", "deleted_at"})


def _ordered(a: uuid.UUID, b: uuid.UUID) -> tuple[uuid.UUID, uuid.UUID]:
    return (a, b) if a <= b else (b, a)


def _uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _datetime(value: Any) -> datetime:
    return value if isinstance(value, datetime) else datetime.fromisoformat(value)


def _convert(name: str, value: Any) -> Any:
    if value is None:
        return None
    if name in _UUID_COLUMNS:
        return _uuid(value)
    if name in _TIME_COLUMNS:
        return _datetime(value)
    return value


def _load(cls: type[T], row: sqlite3.Row, **columns: str) -> T:
    """Build ``cls`` from a row; ``columns`` maps a field to a differently named column."""
    return cls(
        **{f.name: _convert(f.name, row[columns.get(f.name, f.name)]) for f in fields(cls)}
    )


_REQUEST_WITH_USER = """
    SELECT
        fr.id AS req_id,
        u.id AS user_id,
        u.username,
        u.display_name,
        u.avatar_url,
        fr.message,
        fr.created_at
    FROM friend_requests fr
    JOIN users u ON fr.{other} = u.id
    WHERE fr.{own} = ?
"""


class FriendRepository:
    """Friendships are stored once per pair, with the smaller id as ``user_a``."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @contextmanager
    def transaction(self) -> Iterator[FriendRepository]:
        """Run the enclosed calls atomically; an exception rolls them back."""
        if self._conn.in_transaction:
            yield self
            return
        self._conn.execute("BEGIN")
        try:
            yield self
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    def _query(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, tuple(params))
        except sqlite3.Error as exc:
            raise from_database_error(exc) from exc

    def _one(self, cls: type[T], sql: str, params: Sequence[Any]) -> T | None:
        row = self._query(sql, params).fetchone()
        return None if row is None else _load(cls, row)

    def find_friendship(
        self, user_id_a: uuid.UUID, user_id_b: uuid.UUID
    ) -> FriendEntity | None:
        return self._one(
            FriendEntity,
            "SELECT * FROM friends WHERE user_a = ? AND user_b = ?",
            _ordered(user_id_a, user_id_b),
        )

    def find_friends(self, user_id: uuid.UUID) -> list[FriendResponse]:
        rows = self._query(
            """
            SELECT u.id, u.username, u.display_name, u.avatar_url
            FROM friends f
            JOIN users u
                ON u.id = CASE WHEN f.user_a = ?1 THEN f.user_b ELSE f.user_a END
            WHERE f.user_a = ?1 OR f.user_b = ?1
            """,
            (user_id,),
        )
        return [_load(FriendResponse, row) for row in rows]

    def create_friendship(self, user_id_a: uuid.UUID, user_id_b: uuid.UUID) -> None:
        self._query(
            "INSERT OR IGNORE INTO friends (user_a, user_b) VALUES (?, ?)",
            _ordered(user_id_a, user_id_b),
        )

    def delete_friendship(self, user_id_a: uuid.UUID, user_id_b: uuid.UUID) -> None:
        self._query(
            "DELETE FROM friends WHERE user_a = ? AND user_b = ?",
            _ordered(user_id_a, user_id_b),
        )

    def find_friend_request(
        self, sender_id: uuid.UUID, receiver_id: uuid.UUID
    ) -> FriendRequestEntity | None:
        """Find a request between the two users, in either direction."""
        return self._one(
            FriendRequestEntity,
            """
            SELECT * FROM friend_requests
            WHERE (from_user_id = ?1 AND to_user_id = ?2)
               OR (from_user_id = ?2 AND to_user_id = ?1)
            """,
            (sender_id, receiver_id),
        )

    def find_friend_request_by_id(self, request_id: uuid.UUID) -> FriendRequestEntity | None:
        return self._one(
            FriendRequestEntity, "SELECT * FROM friend_requests WHERE id = ?", (request_id,)
        )

    def _request_views(self, user_id: uuid.UUID, *, sent: bool) -> list[FriendRequestResponse]:
        other, own = ("to_user_id", "from_user_id") if sent else ("from_user_id", "to_user_id")
        views = []
        for row in self._query(_REQUEST_WITH_USER.format(other=other, own=own), (user_id,)):
            user = _load(FriendResponse, row, id="user_id")
            views.append(
                FriendRequestResponse(
                    id=_uuid(row["req_id"]),
                    from_user=user_id if sent else user,
                    to_user=user if sent else user_id,
                    message=row["message"],
                    created_at=_datetime(row["created_at"]),
                )
            )
        return views

    def find_friend_request_from_user(self, user_id: uuid.UUID) -> list[FriendRequestResponse]:
        """Requests the user sent, each with the recipient's details."""
        return self._request_views(user_id, sent=True)

    def find_friend_request_to_user(self, user_id: uuid.UUID) -> list[FriendRequestResponse]:
        """Requests the user received, each with the sender's details."""
        return self._request_views(user_id, sent=False)

    def create_friend_request(
        self, sender_id: uuid.UUID, receiver_id: uuid.UUID, message: str | None
    ) -> FriendRequestEntity:
        request_id = uuid7()
        self._query(
            "INSERT INTO friend_requests (id, from_user_id, to_user_id, message) "
            "VALUES (?, ?, ?, ?)",
            (request_id, sender_id, receiver_id, message),
        )
        created = self.find_friend_request_by_id(request_id)
        assert created is not None
        return created

    def delete_friend_request(self, request_id: uuid.UUID) -> None:
        self._query("DELETE FROM friend_requests WHERE id = ?", (request_id,))

    def find_friend_ids(self, user_id: uuid.UUID) -> list[uuid.UUID]:
        """Ids of the user's friends, without their details."""
        rows = self._query(
            """
            SELECT CASE WHEN f.user_a = ?1 THEN f.user_b ELSE f.user_a END
            FROM friends f
            WHERE f.user_a = ?1 OR f.user_b = ?1
            """,
            (user_id,),
        )
        return [_uuid(row[0]) for row in rows]