from __future__ import annotations

import json

import pytest

from botkube_mattermost.events import InboundEvent, MalformedEventError, Post


def test_inbound_event_from_api() -> None:
    payload = {
        "event": "posted",
        "data": {"post": "{}", "channel_type": "O"},
        "broadcast": {"channel_id": "C1", "user_id": "", "team_id": ""},
        "seq": 7,
    }
    event = InboundEvent.from_api(payload)
    assert event.event == "posted"
    assert event.broadcast_channel_id == "C1"
    assert event.seq == 7
    assert event.data["channel_type"] == "O"


def test_inbound_event_tolerates_missing_broadcast() -> None:
    event = InboundEvent.from_api({"event": "hello", "data": None})
    assert event.broadcast_channel_id == ""
    assert event.data == {}
    assert event.seq is None


def test_inbound_event_requires_type() -> None:
    with pytest.raises(MalformedEventError):
        InboundEvent.from_api({"data": {}})


def test_post_from_event() -> None:
    raw = json.dumps(
        {
            "id": "P1",
            "user_id": "U1",
            "channel_id": "C1",
            "message": "@botkube ping",
            "root_id": "",
            "create_at": 1700000000000,
        }
    )
    post = Post.from_event(InboundEvent(event="posted", data={"post": raw}))
    assert post == Post(id="P1", user_id="U1", channel_id="C1", message="@botkube ping")


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"post": {"id": "P1"}},
        {"post": "not json"},
        {"post": "[1, 2]"},
        {"post": json.dumps({"user_id": "U1", "message": "hi"})},
        {"post": json.dumps({"id": "P1", "message": "hi"})},
        {"post": json.dumps({"id": "P1", "user_id": "U1", "message": 3})},
    ],
)
def test_post_from_event_rejects_malformed(data: dict) -> None:
    with pytest.raises(MalformedEventError):
        Post.from_event(InboundEvent(event="posted", data=data))
