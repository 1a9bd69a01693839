import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from chatbackend.responses import Success


def test_ok_body_with_data():
    resp = Success.ok([1, 2])
    assert resp.status == 200
    assert resp.to_body() == {"data": [1, 2], "message": None}


def test_ok_without_data_omits_data_key():
    assert Success.ok(None).to_body() == {"message": None}


def test_created_status():
    resp = Success.created({"a": 1}).with_message("Friend request sent successfully")
    assert resp.status == 201
    assert resp.to_body() == {"data": {"a": 1}, "message": "Friend request sent successfully"}


def test_no_content_has_no_body():
    resp = Success.no_content()
    assert resp.status == 204
    assert resp.to_body() is None
    assert resp.with_message("ignored").to_body() is None


def test_with_message_returns_new_response():
    original = Success.ok("x")
    updated = original.with_message("done")
    assert original.message is None
    assert updated.message == "done"
    assert updated.data == "x"


def test_with_cookies_replaces_cookies():
    resp = Success.ok(None).with_cookies(["a=1"]).with_cookies(["b=2", "c=3"])
    assert resp.cookies == ("b=2", "c=3")


def test_body_serializes_uuids_datetimes_and_objects():
    @dataclass
    class Item:
        name: str

        def to_dict(self):
            return {"name": self.name}

    uid = uuid.uuid4()
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    body = Success.ok({"id": uid, "at": when, "items": [Item("a")]}).to_body()
    assert body["data"] == {
        "id": str(uid),
        "at": when.isoformat(),
        "items": [{"name": "a"}],
    }