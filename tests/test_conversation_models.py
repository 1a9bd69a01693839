import uuid
from datetime import datetime, timezone

import pytest

from chatbackend.conversation_models import (
    ConversationDetail,
    ConversationType,
    GroupInfo,
    LastMessageRow,
    MessageQueryRequest,
    NewConversation,
    ParticipantRow,
)
from chatbackend.errors import BadRequestError

WHEN = datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc)


def test_conversation_type_values():
    assert ConversationType("direct") is ConversationType.DIRECT
    assert ConversationType("group") is ConversationType.GROUP
    with pytest.raises(ValueError):
        ConversationType("channel")


def test_new_conversation_from_dict():
    members = [uuid.uuid4(), uuid.uuid4()]
    conv = NewConversation.from_dict(
        {"type": "group", "name": "Team", "member_ids": [str(m) for m in members]}
    )
    assert conv.conversation_type is ConversationType.GROUP
    assert conv.name == "Team"
    assert conv.member_ids == members


@pytest.mark.parametrize(
    "body",
    [
        {"type": "direct", "name": "", "member_ids": []},
        {"name": "", "member_ids": [str(uuid.uuid4())]},
        {"type": "channel", "name": "", "member_ids": [str(uuid.uuid4())]},
        {"type": "direct", "member_ids": [str(uuid.uuid4())]},
        {"type": "direct", "name": "", "member_ids": ["not-a-uuid"]},
        {"type": "direct", "name": ""},
    ],
)
def test_new_conversation_rejects_invalid_bodies(body):
    with pytest.raises(BadRequestError):
        NewConversation.from_dict(body)


@pytest.mark.parametrize("limit", [1, 50, "25"])
def test_message_query_accepts_limits_in_range(limit):
    query = MessageQueryRequest.from_dict({"limit": limit, "cursor": "abc"})
    assert query.limit == int(limit)
    assert query.cursor == "abc"


@pytest.mark.parametrize("limit", [0, 51, "x", None])
def test_message_query_rejects_bad_limits(limit):
    with pytest.raises(BadRequestError):
        MessageQueryRequest.from_dict({"limit": limit})


def test_message_query_cursor_defaults_to_none():
    assert MessageQueryRequest.from_dict({"limit": 10}).cursor is None


def test_conversation_detail_to_dict():
    cid, creator, sender = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    detail = ConversationDetail(
        conversation_id=cid,
        conversation_type=ConversationType.GROUP,
        group_info=GroupInfo(name="Team", created_by=creator),
        last_message=LastMessageRow(content="hi", sender_id=sender, created_at=WHEN),
        participants=[ParticipantRow(sender, "Bob", None, 2, WHEN)],
        created_at=WHEN,
        updated_at=WHEN,
    )
    data = detail.to_dict()
    assert data["conversation_id"] == str(cid)
    assert data["_type"] == "group"
    assert data["group_info"] == {"name": "Team", "created_by": str(creator), "avatar_url": None}
    assert data["last_message"] == {
        "content": "hi",
        "sender_id": str(sender),
        "created_at": WHEN.isoformat(),
    }
    assert data["participants"][0]["unread_count"] == 2
    assert data["participants"][0]["display_name"] == "Bob"
    assert data["created_at"] == WHEN.isoformat()


def test_direct_detail_without_group_or_message():
    detail = ConversationDetail(
        conversation_id=uuid.uuid4(),
        conversation_type=ConversationType.DIRECT,
        group_info=None,
        last_message=None,
        created_at=WHEN,
        updated_at=WHEN,
    )
    data = detail.to_dict()
    assert data["group_info"] is None
    assert data["last_message"] is None
    assert data["participants"] == []
    assert data["_type"] == "direct"