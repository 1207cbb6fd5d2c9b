from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .client import MattermostApiError, MattermostClient
from .logging import get_logger

logger = get_logger(__name__)

MAX_INLINE_TEXT = 3990
ATTACHMENT_NAME = "logs"


@dataclass(frozen=True, slots=True)
class SendResult:
    ok: bool
    mode: Literal["inline", "file"]
    post_id: str | None = None
    file_id: str | None = None
    error: str | None = None


def wants_attachment(text: str) -> bool:
    # Measured in UTF-8 bytes, not characters.
    return len(text.encode("utf-8")) >= MAX_INLINE_TEXT


async def send_response(
    client: MattermostClient,
    text: str,
    *,
    reply_to: str | None,
    channel_id: str,
) -> SendResult:
    """Post ``text`` as a reply, uploading it as a file when it is too long.

    Errors are logged and reported in the returned :class:`SendResult`.
    """
    if not wants_attachment(text):
        try:
            post_id = await client.create_post(
                channel_id=channel_id,
                message=text,
                root_id=reply_to,
            )
        except MattermostApiError as exc:
            logger.error("mattermost.post_failed", channel_id=channel_id, error=str(exc))
            return SendResult(ok=False, mode="inline", error=str(exc))
        return SendResult(ok=True, mode="inline", post_id=post_id)

    try:
        infos = await client.upload_file(
            channel_id=channel_id,
            filename=ATTACHMENT_NAME,
            content=text.encode("utf-8"),
        )
    except MattermostApiError as exc:
        logger.error("mattermost.upload_failed", channel_id=channel_id, error=str(exc))
        return SendResult(ok=False, mode="file", error=str(exc))

    file_id = infos[0].id
    try:
        post_id = await client.create_post(
            channel_id=channel_id,
            root_id=reply_to,
            file_ids=[file_id],
        )
    except MattermostApiError as exc:
        logger.error("mattermost.post_failed", channel_id=channel_id, error=str(exc))
        return SendResult(ok=False, mode="file", file_id=file_id, error=str(exc))
    return SendResult(ok=True, mode="file", post_id=post_id, file_id=file_id)
