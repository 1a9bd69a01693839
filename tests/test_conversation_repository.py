import uuid
from datetime import datetime, timezone

import pytest

from chatbackend.conversation_models import (
    ConversationType,
    NewLastMessage,
    NewParticipant,
)
from chatbackend.conversation_repository import (
    ConversationRepository,
    LastMessageRepository,
    ParticipantRepository,
)
from chatbackend.db import connect, create_schema, uuid7
from chatbackend.errors import ErrorKind, ServiceError


@pytest.fixture
def conn():
    connection = connect(":memory:")
    create_schema(connection)
    yield connection
    connection.close()


@pytest.fixture
def participants(conn):
    return ParticipantRepository(conn)


@pytest.fixture
def repo(conn, participants):
    return ConversationRepository(conn, participants)


def add_user(conn, name):
    user_id = uuid7()
    conn.execute(
        "INSERT INTO users (id, username, display_name) VALUES (?, ?, ?)",
        (user_id, name, name.title()),
    )
    return user_id


def add_message(conn, conversation_id, sender_id, content, created_at):
    message_id = uuid7()
    conn.execute(
        "INSERT INTO messages (id, conversation_id, sender_id, content, created_at)"
        " VALUES (?, ?, ?, ?, ?)",
        (message_id, conversation_id, sender_id, content, created_at),
    )
    return message_id


def test_create_and_find_by_id(repo):
    created = repo.create(ConversationType.GROUP)
    found = repo.find_by_id(created.id)
    assert found == created
    assert found.conversation_type is ConversationType.GROUP


def test_find_by_id_unknown(repo):
    assert repo.find_by_id(uuid.uuid4()) is None


def test_direct_conversation_found_in_either_order(conn, repo):
    alice, bob, carol = add_user(conn, "alice"), add_user(conn, "bob"), add_user(conn, "carol")
    conversation = repo.create_direct_conversation(alice, bob)
    assert conversation.conversation_type is ConversationType.DIRECT
    assert repo.find_direct_between_users(alice, bob).id == conversation.id
    assert repo.find_direct_between_users(bob, alice).id == conversation.id
    assert repo.find_direct_between_users(alice, carol) is None


def test_direct_lookup_ignores_deleted_participant(conn, repo):
    alice, bob = add_user(conn, "alice"), add_user(conn, "bob")
    conversation = repo.create_direct_conversation(alice, bob)
    conn.execute(
        "UPDATE participants SET deleted_at = '2000-01-01T00:00:00+00:00'"
        " WHERE conversation_id = ? AND user_id = ?",
        (conversation.id, bob),
    )
    assert repo.find_direct_between_users(alice, bob) is None


def test_group_conversation_detail(conn, repo):
    owner, bob, carol = add_user(conn, "owner"), add_user(conn, "bob"), add_user(conn, "carol")
    conversation = repo.create_group_conversation("Team", [bob, carol], owner)
    detail = repo.find_one_conversation_detail(conversation.id)
    assert detail.conversation_type is ConversationType.GROUP
    assert detail.group_info.name == "Team"
    assert detail.group_info.created_by == owner
    assert {p.user_id for p in detail.participants} == {bob, carol}
    assert detail.last_message is None


def test_group_with_duplicate_member_is_conflict_and_rolled_back(conn, repo):
    owner, bob = add_user(conn, "owner"), add_user(conn, "bob")
    with pytest.raises(ServiceError) as info:
        repo.create_group_conversation("Team", [bob, bob], owner)
    assert info.value.kind is ErrorKind.CONFLICT
    assert conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0] == 0


def test_detail_of_unknown_conversation(repo):
    assert repo.find_one_conversation_detail(uuid.uuid4()) is None


def test_detail_uses_latest_message(conn, repo):
    alice, bob = add_user(conn, "alice"), add_user(conn, "bob")
    conversation = repo.create_direct_conversation(alice, bob)
    add_message(conn, conversation.id, alice, "first", "2020-01-01T00:00:00.000+00:00")
    add_message(conn, conversation.id, bob, "second", "2020-01-02T00:00:00.000+00:00")
    detail = repo.find_one_conversation_detail(conversation.id)
    assert detail.last_message.content == "second"
    assert detail.last_message.sender_id == bob
    assert detail.group_info is None


def test_all_conversations_for_user_ordered_by_activity(conn, repo):
    alice, bob, carol = add_user(conn, "alice"), add_user(conn, "bob"), add_user(conn, "carol")
    older = repo.create_direct_conversation(alice, bob)
    newer = repo.create_direct_conversation(alice, carol)
    other = repo.create_direct_conversation(bob, carol)
    add_message(conn, older.id, alice, "old", "2000-01-01T00:00:00.000+00:00")
    add_message(conn, newer.id, carol, "new", "2001-01-01T00:00:00.000+00:00")
    rows = repo.find_all_conversation_with_details_by_user(alice)
    ids = [row.conversation_id for row in rows]
    assert ids == [newer.id, older.id]
    assert other.id not in ids
    assert rows[0].last_message.content == "new"


def test_membership_check(conn, repo):
    alice, bob, carol = add_user(conn, "alice"), add_user(conn, "bob"), add_user(conn, "carol")
    conversation = repo.create_direct_conversation(alice, bob)
    found, is_member = repo.get_conversation_and_check_membership(conversation.id, alice)
    assert found.id == conversation.id and is_member is True
    found, is_member = repo.get_conversation_and_check_membership(conversation.id, carol)
    assert found.id == conversation.id and is_member is False
    assert repo.get_conversation_and_check_membership(uuid.uuid4(), alice) == (None, False)


def test_update_timestamp(conn, repo):
    conversation = repo.create(ConversationType.DIRECT)
    conn.execute(
        "UPDATE conversations SET updated_at = '2000-01-01T00:00:00.000+00:00' WHERE id = ?",
        (conversation.id,),
    )
    repo.update_timestamp(conversation.id)
    updated = repo.find_by_id(conversation.id)
    assert updated.updated_at > datetime(2000, 1, 2, tzinfo=timezone.utc)


def test_unread_counters(conn, repo, participants):
    alice, bob, carol = add_user(conn, "alice"), add_user(conn, "bob"), add_user(conn, "carol")
    conversation = repo.create_group_conversation("Team", [alice, bob, carol], alice)
    participants.increment_unread_count_for_others(conversation.id, alice)
    participants.increment_unread_count(conversation.id, bob)
    assert participants.get_unread_counts(conversation.id) == {alice: 0, bob: 2, carol: 1}
    participants.reset_unread_count(conversation.id, bob)
    assert participants.get_unread_counts(conversation.id)[bob] == 0


def test_mark_as_seen(conn, repo, participants):
    alice, bob = add_user(conn, "alice"), add_user(conn, "bob")
    conversation = repo.create_direct_conversation(alice, bob)
    message_id = add_message(conn, conversation.id, alice, "hi", "2020-01-01T00:00:00.000+00:00")
    participants.increment_unread_count(conversation.id, bob)
    participants.mark_as_seen(conversation.id, bob, message_id)
    row = conn.execute(
        "SELECT unread_count, last_seen_message_id FROM participants"
        " WHERE conversation_id = ? AND user_id = ?",
        (conversation.id, bob),
    ).fetchone()
    assert row["unread_count"] == 0
    assert uuid.UUID(row["last_seen_message_id"]) == message_id


def test_create_participant_and_duplicate(conn, repo, participants):
    alice = add_user(conn, "alice")
    conversation = repo.create(ConversationType.GROUP)
    entity = participants.create_participant(NewParticipant(conversation.id, alice, 3))
    assert entity.user_id == alice
    assert entity.unread_count == 3
    assert entity.deleted_at is None
    with pytest.raises(ServiceError) as info:
        participants.create_participant(NewParticipant(conversation.id, alice, 0))
    assert info.value.kind is ErrorKind.CONFLICT


def test_find_participants_excludes_deleted(conn, repo, participants):
    alice, bob, carol = add_user(conn, "alice"), add_user(conn, "bob"), add_user(conn, "carol")
    first = repo.create_direct_conversation(alice, bob)
    second = repo.create_direct_conversation(alice, carol)
    conn.execute(
        "UPDATE participants SET deleted_at = '2000-01-01T00:00:00+00:00'"
        " WHERE conversation_id = ? AND user_id = ?",
        (second.id, carol),
    )
    found = participants.find_participants_by_conversation_id([first.id, second.id])
    pairs = {(p.conversation_id, p.user_id) for p in found}
    assert pairs == {(first.id, alice), (first.id, bob), (second.id, alice)}
    assert participants.find_participants_by_conversation_id([]) == []


def test_upsert_last_message(conn, repo):
    alice, bob = add_user(conn, "alice"), add_user(conn, "bob")
    conversation = repo.create_direct_conversation(alice, bob)
    store = LastMessageRepository(conn)
    now = datetime.now(timezone.utc)
    first = store.upsert_last_message(NewLastMessage(conversation.id, alice, "hello", now))
    second = store.upsert_last_message(NewLastMessage(conversation.id, bob, "reply", now))
    assert first.content == "hello"
    assert second.content == "reply"
    assert second.id == first.id
    count = conn.execute("SELECT COUNT(*) FROM last_messages").fetchone()[0]
    assert count == 1


def test_transaction_rolls_back(conn, repo):
    with pytest.raises(RuntimeError):
        with repo.transaction() as tx:
            tx.create(ConversationType.GROUP)
            raise RuntimeError("abort")
    assert conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0] == 0