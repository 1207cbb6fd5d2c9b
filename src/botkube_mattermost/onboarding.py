from __future__ import annotations

from pathlib import Path
from typing import Any

import questionary

from .config import (
    DEFAULT_CLUSTER_NAME,
    ConfigError,
    read_config,
    write_config,
)


def interactive_setup(*, config_path: Path, force: bool = False) -> bool:
    """Prompt for the Mattermost connection details and write them to disk.

    Keys the prompts do not cover (bot_name, reconnect, ...) are preserved.
    Returns False if the user aborts.
    """
    try:
        config = read_config(config_path)
    except ConfigError:
        config = {}

    if config and not force:
        overwrite = questionary.confirm(
            f"Update existing config at {config_path}?",
            default=True,
        ).ask()
        if not overwrite:
            return False

    mattermost = _ensure_table(config, "mattermost", config_path=config_path)
    settings = _ensure_table(config, "settings", config_path=config_path)

    url = questionary.text(
        "Mattermost server URL",
        default=str(mattermost.get("url", "")),
    ).ask()
    if not url:
        return False
    token = questionary.password("Mattermost bot access token").ask()
    if not token:
        return False
    team = questionary.text(
        "Mattermost team name",
        default=str(mattermost.get("team", "")),
    ).ask()
    if not team:
        return False
    channel = questionary.text(
        "Channel name",
        default=str(mattermost.get("channel", "botkube")),
    ).ask()
    if not channel:
        return False
    cluster_name = questionary.text(
        "Cluster name",
        default=str(settings.get("cluster_name", DEFAULT_CLUSTER_NAME)),
    ).ask()
    if cluster_name is None:
        return False
    allow_kubectl = questionary.confirm(
        "Allow kubectl commands?",
        default=bool(settings.get("allow_kubectl", False)),
    ).ask()
    if allow_kubectl is None:
        return False

    mattermost["url"] = str(url).strip().rstrip("/")
    mattermost["token"] = str(token).strip()
    mattermost["team"] = str(team).strip()
    mattermost["channel"] = str(channel).strip()
    settings["cluster_name"] = str(cluster_name).strip() or DEFAULT_CLUSTER_NAME
    settings["allow_kubectl"] = bool(allow_kubectl)
    write_config(config, config_path)
    return True


def _ensure_table(
    config: dict[str, Any],
    key: str,
    *,
    config_path: Path,
) -> dict[str, Any]:
    value = config.get(key)
    if value is None:
        table: dict[str, Any] = {}
        config[key] = table
        return table
    if not isinstance(value, dict):
        raise ConfigError(f"Invalid `{key}` in {config_path}; expected a table.")
    return value
