"""SQLite storage: connections, schema creation and identifier helpers."""

from __future__ import annotations

import secrets
import sqlite3
import threading
import time
import uuid
from datetime import datetime, timezone

sqlite3.register_adapter(uuid.UUID, str)
sqlite3.register_adapter(datetime, lambda value: value.isoformat())

_NOW = "(strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now'))"

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    display_name TEXT NOT NULL,
    avatar_url TEXT,
    avatar_id TEXT
);

CREATE TABLE IF NOT EXISTS friends (
    user_a TEXT NOT NULL,
    user_b TEXT NOT NULL,
    deleted_at TEXT,
    created_at TEXT NOT NULL DEFAULT {_NOW},
    PRIMARY KEY (user_a, user_b)
);

CREATE TABLE IF NOT EXISTS friend_requests (
    id TEXT PRIMARY KEY,
    from_user_id TEXT NOT NULL,
    to_user_id TEXT NOT NULL,
    message TEXT,
    created_at TEXT NOT NULL DEFAULT {_NOW},
    UNIQUE (from_user_id, to_user_id)
);

CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL CHECK (type IN ('direct', 'group')),
    created_at TEXT NOT NULL DEFAULT {_NOW},
    updated_at TEXT NOT NULL DEFAULT {_NOW}
);

CREATE TABLE IF NOT EXISTS group_conversations (
    conversation_id TEXT PRIMARY KEY
        REFERENCES conversations (id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    created_by TEXT NOT NULL,
    avatar_url TEXT,
    avatar_id TEXT
);

CREATE TABLE IF NOT EXISTS participants (
    conversation_id TEXT NOT NULL
        REFERENCES conversations (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    unread_count INTEGER NOT NULL DEFAULT 0,
    joined_at TEXT NOT NULL DEFAULT {_NOW},
    deleted_at TEXT,
    last_seen_message_id TEXT,
    PRIMARY KEY (conversation_id, user_id)
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL
        REFERENCES conversations (id) ON DELETE CASCADE,
    sender_id TEXT NOT NULL,
    content TEXT,
    created_at TEXT NOT NULL DEFAULT {_NOW}
);

CREATE TABLE IF NOT EXISTS last_messages (
    id TEXT PRIMARY KEY,
    content TEXT,
    conversation_id TEXT NOT NULL UNIQUE
        REFERENCES conversations (id) ON DELETE CASCADE,
    sender_id TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT {_NOW}
);

CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    filename TEXT NOT NULL,
    original_filename TEXT NOT NULL,
    mime_type TEXT NOT NULL,
    file_size INTEGER NOT NULL,
    storage_path TEXT NOT NULL,
    uploaded_by TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT {_NOW}
);
"""


def connect(database_url: str) -> sqlite3.Connection:
    """Open a database connection in autocommit mode with rows addressable by name.

    Accepts a plain path, ``:memory:`` or a ``sqlite://`` URL.
    """
    path = database_url
    for prefix in ("sqlite:///", "sqlite://"):
        if path.startswith(prefix):
            path = path[len(prefix):]
            break
    conn = sqlite3.connect(path or ":memory:", isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def create_schema(conn: sqlite3.Connection) -> None:
    """Create every table the service needs, leaving existing ones alone."""
    conn.executescript(_SCHEMA)


_lock = threading.Lock()
_last_ms = -1
_counter = 0
_COUNTER_BITS = 74


def uuid7() -> uuid.UUID:
    """Return a time-ordered version 7 UUID; successive calls sort in call order."""
    global _last_ms, _counter
    with _lock:
        now_ms = time.time_ns() // 1_000_000
        if now_ms > _last_ms:
            _last_ms = now_ms
            # Leave headroom so that increments within a millisecond rarely overflow.
            _counter = secrets.randbits(_COUNTER_BITS - 1)
        else:
            _counter += 1
            if _counter >= 1 << _COUNTER_BITS:
                _last_ms += 1
                _counter = 0
        millis, counter = _last_ms, _counter
    rand_a = counter >> 62
    rand_b = counter & ((1 << 62) - 1)
    value = (
        (millis & 0xFFFF_FFFF_FFFF) << 80
        | 0x7 << 76
        | rand_a << 64
        | 0b10 << 62
        | rand_b
    )
    return uuid.UUID(int=value)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)