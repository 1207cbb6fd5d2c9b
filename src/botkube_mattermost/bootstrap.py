from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .client import (
    CHANNEL_OPEN,
    Channel,
    MattermostApiError,
    MattermostClient,
    Team,
    User,
)
from .config import DEFAULT_BOT_NAME
from .logging import get_logger

logger = get_logger(__name__)

CHANNEL_PURPOSE = "Botkube alerts"

BootstrapReason = Literal[
    "server_unreachable",
    "team_not_found",
    "bot_user_not_found",
    "channel_setup_failed",
]


class BootstrapError(RuntimeError):
    def __init__(self, message: str, *, reason: BootstrapReason) -> None:
        super().__init__(message)
        self.reason = reason


@dataclass(frozen=True, slots=True)
class Session:
    """Resolved connection state shared by the listener, dispatcher and responder.

    Built once by :func:`bootstrap` and never rebound.
    """

    client: MattermostClient
    team: Team
    bot_user: User
    channel: Channel

    @property
    def server_url(self) -> str:
        return self.client.server_url

    @property
    def token(self) -> str:
        return self.client.token


async def bootstrap(
    client: MattermostClient,
    *,
    team_name: str,
    channel_name: str,
    bot_name: str = DEFAULT_BOT_NAME,
) -> Session:
    """Resolve the team, bot user and channel the bridge operates in.

    Steps run in order and the first failure raises :class:`BootstrapError`.
    The channel is created if it does not exist yet; the team and the bot
    user must already exist on the server.
    """
    try:
        await client.get_client_config()
    except MattermostApiError as exc:
        logger.error("mattermost.ping_failed", error=str(exc))
        raise BootstrapError(
            f"Mattermost server {client.server_url} is unreachable",
            reason="server_unreachable",
        ) from exc

    try:
        team = await client.get_team_by_name(team_name)
    except MattermostApiError as exc:
        logger.error("mattermost.team_not_found", team=team_name, error=str(exc))
        raise BootstrapError(
            f"Mattermost team {team_name!r} not found",
            reason="team_not_found",
        ) from exc

    bot_user = await _resolve_bot_user(client, team=team, bot_name=bot_name)
    channel = await _resolve_channel(
        client, team=team, channel_name=channel_name, bot_user=bot_user
    )
    return Session(client=client, team=team, bot_user=bot_user, channel=channel)


async def _resolve_bot_user(
    client: MattermostClient, *, team: Team, bot_name: str
) -> User:
    try:
        users = await client.autocomplete_users_in_team(team.id, bot_name)
    except MattermostApiError as exc:
        logger.error("mattermost.bot_user_lookup_failed", error=str(exc))
        raise BootstrapError(
            f"Mattermost bot user {bot_name!r} not found",
            reason="bot_user_not_found",
        ) from exc
    if not users:
        logger.error("mattermost.bot_user_not_found", bot_name=bot_name, team=team.name)
        raise BootstrapError(
            f"Mattermost bot user {bot_name!r} not found in team {team.name!r}",
            reason="bot_user_not_found",
        )
    return users[0]


async def _resolve_channel(
    client: MattermostClient,
    *,
    team: Team,
    channel_name: str,
    bot_user: User,
) -> Channel:
    created = False
    try:
        channel = await client.get_channel_by_name(channel_name, team.id)
    except MattermostApiError as lookup_exc:
        logger.info(
            "mattermost.channel.missing",
            channel=channel_name,
            error=str(lookup_exc),
        )
        try:
            channel = await client.create_channel(
                team_id=team.id,
                name=channel_name,
                display_name=channel_name,
                purpose=CHANNEL_PURPOSE,
                channel_type=CHANNEL_OPEN,
            )
        except MattermostApiError as exc:
            logger.error(
                "mattermost.channel.create_failed",
                channel=channel_name,
                error=str(exc),
            )
            raise BootstrapError(
                f"Could not set up Mattermost channel {channel_name!r}",
                reason="channel_setup_failed",
            ) from exc
        created = True

    # Membership is best effort: missing permissions surface later as failed posts.
    try:
        await client.add_channel_member(channel.id, bot_user.id)
    except MattermostApiError as exc:
        logger.warning(
            "mattermost.channel.add_member_failed",
            channel_id=channel.id,
            user_id=bot_user.id,
            error=str(exc),
        )

    logger.info(
        "mattermost.channel.ready",
        channel=channel.name,
        channel_id=channel.id,
        created=created,
    )
    return channel
