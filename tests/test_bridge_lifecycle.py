from __future__ import annotations

import anyio
import pytest

from botkube_mattermost.bootstrap import BootstrapError
from botkube_mattermost.bridge import BridgeState, MattermostBridge
from botkube_mattermost.config import BridgeSettings
from botkube_mattermost.events import InboundEvent

from tests.mattermost_fakes import (
    FakeClient,
    FakeConnector,
    FakeSocket,
    RecordingExecutor,
    posted_event,
    socket_frame,
)


def _settings() -> BridgeSettings:
    return BridgeSettings(
        server_url="https://mm.example.com",
        token="token",
        team="dev",
        channel="botkube",
        cluster_name="prod",
        allow_kubectl=True,
    )


def _bridge(
    client: FakeClient,
    sockets: list[FakeSocket],
    executor: RecordingExecutor | None = None,
) -> MattermostBridge:
    return MattermostBridge(
        settings=_settings(),
        executor=executor or RecordingExecutor(result="pong"),
        client=client,  # type: ignore[arg-type]
        connect=FakeConnector(list(sockets)),
    )


@pytest.mark.anyio
async def test_bridge_handles_events_sequentially_until_stream_ends() -> None:
    client = FakeClient()
    executor = RecordingExecutor(result="pong")
    socket = FakeSocket(
        [
            socket_frame(InboundEvent(event="typing", broadcast_channel_id="C-new")),
            socket_frame(
                InboundEvent(
                    event="posted",
                    data={"post": "garbage"},
                    broadcast_channel_id="C-new",
                )
            ),
            socket_frame(posted_event("@botkube ping", channel_id="C-new", post_id="P1")),
            socket_frame(posted_event("@botkube get pods", channel_id="C-x", post_id="P2")),
        ]
    )
    bridge = _bridge(client, [socket], executor)
    assert bridge.state is BridgeState.UNSTARTED

    async with anyio.create_task_group() as tg:
        session = await bridge.start(tg)
        assert bridge.state is BridgeState.LISTENING
        assert session.channel.id == "C-new"
        await bridge.wait()

    assert bridge.state is BridgeState.STOPPED
    assert [call["command"] for call in executor.calls] == ["ping", "get pods"]
    assert [call["is_auth_channel"] for call in executor.calls] == [True, False]
    posts = client.called("create_post")
    assert [(post["channel_id"], post["root_id"]) for post in posts] == [
        ("C-new", "P1"),
        ("C-x", "P2"),
    ]
    assert socket.closed


@pytest.mark.anyio
async def test_bootstrap_failure_never_listens() -> None:
    client = FakeClient(fail={"get_client_config"})
    connector_socket = FakeSocket([])
    bridge = _bridge(client, [connector_socket])

    async with anyio.create_task_group() as tg:
        with pytest.raises(BootstrapError):
            await bridge.start(tg)

    assert bridge.state is BridgeState.STOPPED
    assert bridge.session is None
    assert bridge.connect.urls == []  # type: ignore[union-attr]


@pytest.mark.anyio
async def test_stop_cancels_listener_and_closes_socket() -> None:
    client = FakeClient()
    socket = FakeSocket([], hang=True)
    bridge = _bridge(client, [socket])

    async with anyio.create_task_group() as tg:
        await bridge.start(tg)
        await anyio.wait_all_tasks_blocked()
        bridge.stop()
        await bridge.wait()

    await bridge.aclose()
    assert bridge.state is BridgeState.STOPPED
    assert socket.closed
    assert client.closed


@pytest.mark.anyio
async def test_executor_crash_does_not_stop_listener() -> None:
    client = FakeClient()
    executor = RecordingExecutor(error=ValueError("bad"))
    socket = FakeSocket(
        [
            socket_frame(posted_event("@botkube ping", channel_id="C-new", post_id="P1")),
            socket_frame(posted_event("@botkube ping", channel_id="C-new", post_id="P2")),
        ]
    )
    bridge = _bridge(client, [socket], executor)

    async with anyio.create_task_group() as tg:
        await bridge.start(tg)
        await bridge.wait()

    assert len(executor.calls) == 2
    assert client.called("create_post") == []


@pytest.mark.anyio
async def test_start_twice_is_rejected() -> None:
    bridge = _bridge(FakeClient(), [FakeSocket([])])

    async with anyio.create_task_group() as tg:
        await bridge.start(tg)
        with pytest.raises(RuntimeError):
            await bridge.start(tg)
        await bridge.wait()
