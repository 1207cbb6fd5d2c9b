from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from .logging import get_logger

logger = get_logger(__name__)

API_PREFIX = "/api/v4"
CHANNEL_OPEN = "O"


class MattermostApiError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        error_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.error_id = error_id
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class Team:
    id: str
    name: str
    display_name: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "Team":
        return cls(
            id=_require_id(payload, "team"),
            name=str(payload.get("name") or ""),
            display_name=payload.get("display_name"),
        )


@dataclass(frozen=True, slots=True)
class User:
    id: str
    username: str

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "User":
        return cls(
            id=_require_id(payload, "user"),
            username=str(payload.get("username") or ""),
        )


@dataclass(frozen=True, slots=True)
class Channel:
    id: str
    name: str
    team_id: str | None
    display_name: str | None = None
    purpose: str | None = None
    type: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "Channel":
        return cls(
            id=_require_id(payload, "channel"),
            name=str(payload.get("name") or ""),
            team_id=payload.get("team_id"),
            display_name=payload.get("display_name"),
            purpose=payload.get("purpose"),
            type=payload.get("type"),
        )


@dataclass(frozen=True, slots=True)
class FileInfo:
    id: str
    name: str | None = None
    size: int | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "FileInfo":
        size = payload.get("size")
        return cls(
            id=_require_id(payload, "file"),
            name=payload.get("name"),
            size=size if isinstance(size, int) else None,
        )


def _require_id(payload: dict[str, Any], kind: str) -> str:
    value = payload.get("id")
    if not isinstance(value, str) or not value:
        raise MattermostApiError(f"Mattermost {kind} payload missing id")
    return value


class MattermostClient:
    def __init__(
        self,
        server_url: str,
        token: str,
        *,
        timeout_s: float = 30.0,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=f"{self.server_url}{API_PREFIX}",
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout_s,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        content: bytes | None = None,
    ) -> Any:
        return await _request_with_client(
            self._client,
            method,
            endpoint,
            params=params,
            json=json,
            content=content,
        )

    async def get_client_config(self) -> dict[str, Any]:
        payload = await self._request(
            "GET", "/config/client", params={"format": "old"}
        )
        if not isinstance(payload, dict):
            raise MattermostApiError("Mattermost client config was not an object")
        return payload

    async def get_team_by_name(self, name: str) -> Team:
        payload = await self._request("GET", f"/teams/name/{name}")
        return Team.from_api(_expect_object(payload, "team"))

    async def autocomplete_users_in_team(self, team_id: str, name: str) -> list[User]:
        payload = await self._request(
            "GET",
            "/users/autocomplete",
            params={"in_team": team_id, "name": name},
        )
        users = _expect_object(payload, "autocomplete").get("users") or []
        if not isinstance(users, list):
            raise MattermostApiError("Mattermost autocomplete users was not a list")
        return [User.from_api(item) for item in users if isinstance(item, dict)]

    async def get_channel_by_name(self, name: str, team_id: str) -> Channel:
        payload = await self._request(
            "GET", f"/teams/{team_id}/channels/name/{name}"
        )
        return Channel.from_api(_expect_object(payload, "channel"))

    async def create_channel(
        self,
        *,
        team_id: str,
        name: str,
        display_name: str,
        purpose: str,
        channel_type: str = CHANNEL_OPEN,
    ) -> Channel:
        data = {
            "team_id": team_id,
            "name": name,
            "display_name": display_name,
            "purpose": purpose,
            "type": channel_type,
        }
        payload = await self._request("POST", "/channels", json=data)
        return Channel.from_api(_expect_object(payload, "channel"))

    async def add_channel_member(self, channel_id: str, user_id: str) -> None:
        await self._request(
            "POST",
            f"/channels/{channel_id}/members",
            json={"user_id": user_id},
        )

    async def upload_file(
        self,
        *,
        channel_id: str,
        filename: str,
        content: bytes,
    ) -> list[FileInfo]:
        payload = await self._request(
            "POST",
            "/files",
            params={"channel_id": channel_id, "filename": filename},
            content=content,
        )
        infos = _expect_object(payload, "upload").get("file_infos")
        if not isinstance(infos, list):
            infos = []
        files = [FileInfo.from_api(item) for item in infos if isinstance(item, dict)]
        if not files:
            raise MattermostApiError("Mattermost upload missing file_infos")
        return files

    async def create_post(
        self,
        *,
        channel_id: str,
        message: str = "",
        root_id: str | None = None,
        file_ids: list[str] | None = None,
    ) -> str:
        data: dict[str, Any] = {
            "channel_id": channel_id,
            "message": message,
        }
        if root_id:
            data["root_id"] = root_id
        if file_ids:
            data["file_ids"] = file_ids
        payload = await self._request("POST", "/posts", json=data)
        return _require_id(_expect_object(payload, "post"), "post")


def _expect_object(payload: Any, kind: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise MattermostApiError(f"Mattermost {kind} response was not an object")
    return payload


async def _request_with_client(
    client: httpx.AsyncClient,
    method: str,
    endpoint: str,
    *,
    params: dict[str, Any] | None = None,
    json: dict[str, Any] | None = None,
    content: bytes | None = None,
) -> Any:
    try:
        response = await client.request(
            method, endpoint, params=params, json=json, content=content
        )
    except httpx.HTTPError as exc:
        logger.warning("mattermost.network_error", endpoint=endpoint, error=str(exc))
        raise MattermostApiError("Mattermost request failed") from exc

    if response.status_code >= 400:
        error_id, detail = _decode_error(response)
        raise MattermostApiError(
            f"Mattermost HTTP {response.status_code}: {detail}",
            error_id=error_id,
            status_code=response.status_code,
        )

    try:
        return response.json()
    except ValueError as exc:
        raise MattermostApiError(
            "Mattermost response was not JSON",
            status_code=response.status_code,
        ) from exc


def _decode_error(response: httpx.Response) -> tuple[str | None, str]:
    try:
        body = response.json()
    except ValueError:
        return None, response.text.strip() or response.reason_phrase
    if not isinstance(body, dict):
        return None, response.reason_phrase
    error_id = body.get("id")
    message = body.get("message")
    return (
        error_id if isinstance(error_id, str) else None,
        message if isinstance(message, str) and message else response.reason_phrase,
    )
