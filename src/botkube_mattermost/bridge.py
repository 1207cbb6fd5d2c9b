from __future__ import annotations

import enum
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Literal

import anyio
from anyio.abc import TaskGroup

from .bootstrap import BootstrapError, Session, bootstrap
from .client import MattermostClient
from .config import BridgeSettings, ReconnectPolicy
from .events import EVENT_POSTED, InboundEvent, MalformedEventError, Post
from .executor import Executor
from .listener import Connect, iter_events
from .logging import get_logger
from .responder import SendResult, send_response

logger = get_logger(__name__)

CODE_MARKER = "`"

HandleStatus = Literal["ignored", "dropped", "replied", "failed"]


@dataclass(frozen=True, slots=True)
class BridgeConfig:
    session: Session
    executor: Executor
    allow_kubectl: bool
    cluster_name: str
    channel_name: str
    bot_name: str


@dataclass(frozen=True, slots=True)
class HandleResult:
    status: HandleStatus
    reason: str | None = None
    command: str | None = None
    sent: SendResult | None = None


def mention_prefix(bot_name: str) -> str:
    return f"@{bot_name} "


def format_code(text: str) -> str:
    return f"{CODE_MARKER}{text}{CODE_MARKER}"


def extract_command(message: str, *, bot_name: str) -> str | None:
    prefix = mention_prefix(bot_name)
    if not message.startswith(prefix):
        return None
    return message[len(prefix) :]


async def handle_event(cfg: BridgeConfig, event: InboundEvent) -> HandleResult:
    if event.event != EVENT_POSTED:
        return HandleResult(status="ignored", reason="event_type")

    try:
        post = Post.from_event(event)
    except MalformedEventError as exc:
        logger.warning("mattermost.event.malformed", error=str(exc), seq=event.seq)
        return HandleResult(status="failed", reason="malformed_event")

    session = cfg.session
    if post.user_id == session.bot_user.id:
        return HandleResult(status="ignored", reason="self_post")
    command = extract_command(post.message, bot_name=cfg.bot_name)
    if command is None:
        return HandleResult(status="ignored", reason="no_mention")

    is_auth_channel = event.broadcast_channel_id == session.channel.id
    reply_channel_id = event.broadcast_channel_id or post.channel_id
    logger.info(
        "mattermost.command.received",
        post_id=post.id,
        channel_id=reply_channel_id,
        is_auth_channel=is_auth_channel,
    )
    try:
        result = await cfg.executor.execute(
            command,
            allow_kubectl=cfg.allow_kubectl,
            cluster_name=cfg.cluster_name,
            channel_name=cfg.channel_name,
            is_auth_channel=is_auth_channel,
        )
    except Exception as exc:
        logger.exception(
            "mattermost.command.failed",
            error=str(exc),
            error_type=exc.__class__.__name__,
        )
        return HandleResult(status="failed", reason="executor_error", command=command)

    if not result:
        logger.info("mattermost.command.empty_result", post_id=post.id)
        return HandleResult(status="dropped", reason="empty_result", command=command)

    sent = await send_response(
        session.client,
        format_code(result),
        reply_to=post.id,
        channel_id=reply_channel_id,
    )
    if not sent.ok:
        return HandleResult(
            status="failed", reason="send_failed", command=command, sent=sent
        )
    return HandleResult(status="replied", command=command, sent=sent)


async def _safe_handle_event(cfg: BridgeConfig, event: InboundEvent) -> HandleResult:
    try:
        return await handle_event(cfg, event)
    except Exception as exc:
        logger.exception(
            "mattermost.event_failed",
            error=str(exc),
            error_type=exc.__class__.__name__,
        )
        return HandleResult(status="failed", reason="unexpected_error")


class BridgeState(enum.Enum):
    UNSTARTED = "unstarted"
    BOOTSTRAPPING = "bootstrapping"
    LISTENING = "listening"
    STOPPED = "stopped"


@dataclass(slots=True)
class MattermostBridge:
    settings: BridgeSettings
    executor: Executor
    client: MattermostClient | None = None
    connect: Connect | None = None
    state: BridgeState = BridgeState.UNSTARTED
    session: Session | None = None
    _scope: anyio.CancelScope | None = field(default=None, repr=False)
    _done: anyio.Event | None = field(default=None, repr=False)

    @property
    def reconnect(self) -> ReconnectPolicy:
        return self.settings.reconnect

    async def start(self, tg: TaskGroup) -> Session:
        """Bootstrap, then launch the listener task in ``tg`` and return.

        Raises :class:`BootstrapError` after moving to ``STOPPED`` when the
        server, team, bot user or channel cannot be resolved.
        """
        if self.state is not BridgeState.UNSTARTED:
            raise RuntimeError(f"bridge already {self.state.value}")
        self.state = BridgeState.BOOTSTRAPPING
        if self.client is None:
            self.client = MattermostClient(
                self.settings.server_url,
                self.settings.token,
                timeout_s=self.settings.timeout_s,
            )
        try:
            self.session = await bootstrap(
                self.client,
                team_name=self.settings.team,
                channel_name=self.settings.channel,
                bot_name=self.settings.bot_name,
            )
        except BootstrapError as exc:
            self.state = BridgeState.STOPPED
            logger.error("bridge.bootstrap_failed", reason=exc.reason, error=str(exc))
            raise

        cfg = BridgeConfig(
            session=self.session,
            executor=self.executor,
            allow_kubectl=self.settings.allow_kubectl,
            cluster_name=self.settings.cluster_name,
            channel_name=self.settings.channel,
            bot_name=self.settings.bot_name,
        )
        scope = self._scope = anyio.CancelScope()
        done = self._done = anyio.Event()
        self.state = BridgeState.LISTENING
        tg.start_soon(self._listen, cfg, scope, done)
        logger.info("bridge.listening", channel_id=self.session.channel.id)
        return self.session

    async def _listen(
        self, cfg: BridgeConfig, scope: anyio.CancelScope, done: anyio.Event
    ) -> None:
        try:
            with scope:
                events = iter_events(
                    cfg.session,
                    policy=self.reconnect,
                    connect=self.connect,
                )
                async with aclosing(events):
                    async for event in events:
                        await _safe_handle_event(cfg, event)
        finally:
            self.state = BridgeState.STOPPED
            done.set()
            logger.info("bridge.stopped")

    def stop(self) -> None:
        if self._scope is not None:
            self._scope.cancel()
        self.state = BridgeState.STOPPED

    async def wait(self) -> None:
        if self._done is not None:
            await self._done.wait()

    async def aclose(self) -> None:
        self.stop()
        await self.wait()
        if self.client is not None:
            await self.client.close()
