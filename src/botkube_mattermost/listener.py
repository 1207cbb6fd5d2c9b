from __future__ import annotations

import json
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import anyio
import websockets
from websockets.exceptions import WebSocketException

from .bootstrap import Session
from .config import ReconnectPolicy
from .events import InboundEvent, MalformedEventError
from .logging import get_logger

logger = get_logger(__name__)

WEBSOCKET_PATH = "/api/v4/websocket"

Connect = Callable[[str], AbstractAsyncContextManager[Any]]
Sleep = Callable[[float], Awaitable[None]]


def websocket_url(server_url: str) -> str:
    parts = urlsplit(server_url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    path = parts.path.rstrip("/") + WEBSOCKET_PATH
    return urlunsplit((scheme, parts.netloc, path, "", ""))


def _connect(url: str) -> AbstractAsyncContextManager[Any]:
    return websockets.connect(url, ping_interval=10, ping_timeout=10)


def _auth_challenge(token: str) -> str:
    return json.dumps(
        {
            "seq": 1,
            "action": "authentication_challenge",
            "data": {"token": token},
        }
    )


def _decode_frame(raw: str | bytes) -> InboundEvent | None:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", "ignore")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("mattermost.socket.bad_payload")
        return None
    if not isinstance(payload, dict):
        logger.warning("mattermost.socket.bad_payload")
        return None
    if "event" not in payload:
        # seq_reply acknowledgements for actions we sent
        logger.debug("mattermost.socket.reply", status=payload.get("status"))
        return None
    try:
        return InboundEvent.from_api(payload)
    except MalformedEventError as exc:
        logger.warning("mattermost.socket.bad_event", error=str(exc))
        return None


async def iter_events(
    session: Session,
    *,
    policy: ReconnectPolicy | None = None,
    connect: Connect | None = None,
    sleep: Sleep | None = None,
) -> AsyncIterator[InboundEvent]:
    """Yield WebSocket events in arrival order until the connection ends.

    With the ``backoff`` reconnect policy a dropped connection is reopened
    after an exponentially growing delay; otherwise the stream ends. Closing
    the generator, or cancelling the enclosing scope, closes the socket.
    """
    policy = policy or ReconnectPolicy()
    connect = connect or _connect
    sleep = sleep or anyio.sleep
    url = websocket_url(session.server_url)
    delay_s = policy.initial_delay_s

    while True:
        received = False
        try:
            async with connect(url) as ws:
                await ws.send(_auth_challenge(session.token))
                logger.info("mattermost.socket.connected", url=url)
                async for raw in ws:
                    event = _decode_frame(raw)
                    if event is None:
                        continue
                    received = True
                    yield event
            logger.warning("mattermost.socket.closed", url=url)
        except WebSocketException as exc:
            logger.warning("mattermost.socket_failed", error=str(exc))
        except OSError as exc:
            logger.warning("mattermost.socket_failed", error=str(exc))

        if not policy.enabled:
            return
        if received:
            delay_s = policy.initial_delay_s
        logger.info("mattermost.socket.reconnecting", delay_s=delay_s)
        await sleep(delay_s)
        delay_s = policy.next_delay(delay_s)
