from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

EVENT_POSTED = "posted"


class MalformedEventError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class InboundEvent:
    event: str
    data: dict[str, Any] = field(default_factory=dict)
    broadcast_channel_id: str = ""
    seq: int | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "InboundEvent":
        event = payload.get("event")
        if not isinstance(event, str) or not event:
            raise MalformedEventError("websocket frame missing event type")
        data = payload.get("data")
        broadcast = payload.get("broadcast")
        channel_id = broadcast.get("channel_id") if isinstance(broadcast, dict) else None
        seq = payload.get("seq")
        return cls(
            event=event,
            data=data if isinstance(data, dict) else {},
            broadcast_channel_id=channel_id if isinstance(channel_id, str) else "",
            seq=seq if isinstance(seq, int) else None,
        )


@dataclass(frozen=True, slots=True)
class Post:
    id: str
    user_id: str
    channel_id: str
    message: str
    root_id: str = ""

    @classmethod
    def from_event(cls, event: InboundEvent) -> "Post":
        """Decode the JSON-encoded post carried by a ``posted`` event."""
        raw = event.data.get("post")
        if not isinstance(raw, str):
            raise MalformedEventError("posted event has no post payload")
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedEventError("post payload is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise MalformedEventError("post payload is not an object")

        post_id = payload.get("id")
        user_id = payload.get("user_id")
        message = payload.get("message", "")
        if not isinstance(post_id, str) or not post_id:
            raise MalformedEventError("post payload missing id")
        if not isinstance(user_id, str) or not user_id:
            raise MalformedEventError("post payload missing user_id")
        if not isinstance(message, str):
            raise MalformedEventError("post message is not a string")
        channel_id = payload.get("channel_id")
        root_id = payload.get("root_id")
        return cls(
            id=post_id,
            user_id=user_id,
            channel_id=channel_id if isinstance(channel_id, str) else "",
            message=message,
            root_id=root_id if isinstance(root_id, str) else "",
        )
