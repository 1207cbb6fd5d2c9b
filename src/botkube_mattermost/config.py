from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

import tomli_w

HOME_CONFIG_PATH = Path.home() / ".botkube-mattermost" / "config.toml"
CONFIG_PATH_ENV = "BOTKUBE_MATTERMOST_CONFIG"
DEFAULT_BOT_NAME = "botkube"
DEFAULT_CLUSTER_NAME = "not-configured"


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    mode: Literal["none", "backoff"] = "none"
    initial_delay_s: float = 1.0
    max_delay_s: float = 60.0
    factor: float = 2.0

    @property
    def enabled(self) -> bool:
        return self.mode == "backoff"

    def next_delay(self, delay_s: float) -> float:
        return min(delay_s * self.factor, self.max_delay_s)

    @classmethod
    def from_config(
        cls, config: object, *, config_path: Path
    ) -> "ReconnectPolicy":
        if config is None:
            return cls()
        if isinstance(config, ReconnectPolicy):
            return config
        if not isinstance(config, dict):
            raise ConfigError(
                f"Invalid `mattermost.reconnect` in {config_path}; expected a table."
            )
        _reject_unknown(
            config,
            {"mode", "initial_delay_s", "max_delay_s", "factor"},
            label="mattermost.reconnect",
            config_path=config_path,
        )
        mode = config.get("mode", "none")
        if not isinstance(mode, str) or mode.strip().lower() not in {
            "none",
            "backoff",
        }:
            raise ConfigError(
                f"Invalid `mattermost.reconnect.mode` in {config_path}; "
                "expected 'none' or 'backoff'."
            )
        initial_delay_s = _require_number(
            config,
            "initial_delay_s",
            default=1.0,
            label="mattermost.reconnect",
            config_path=config_path,
            min_value=0.0,
        )
        max_delay_s = _require_number(
            config,
            "max_delay_s",
            default=60.0,
            label="mattermost.reconnect",
            config_path=config_path,
            min_value=initial_delay_s,
        )
        factor = _require_number(
            config,
            "factor",
            default=2.0,
            label="mattermost.reconnect",
            config_path=config_path,
            min_value=1.0,
        )
        return cls(
            mode=mode.strip().lower(),
            initial_delay_s=initial_delay_s,
            max_delay_s=max_delay_s,
            factor=factor,
        )


@dataclass(frozen=True, slots=True)
class BridgeSettings:
    server_url: str
    token: str
    team: str
    channel: str
    bot_name: str = DEFAULT_BOT_NAME
    timeout_s: float = 30.0
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    cluster_name: str = DEFAULT_CLUSTER_NAME
    allow_kubectl: bool = False
    kubectl_path: str = "kubectl"

    @classmethod
    def from_config(
        cls, config: object, *, config_path: Path
    ) -> "BridgeSettings":
        if isinstance(config, BridgeSettings):
            return config
        if not isinstance(config, dict):
            raise ConfigError(f"Invalid config in {config_path}; expected a table.")
        mattermost = config.get("mattermost")
        if not isinstance(mattermost, dict):
            raise ConfigError(
                f"Missing `mattermost` table in {config_path}."
            )
        _reject_unknown(
            mattermost,
            {"url", "token", "team", "channel", "bot_name", "timeout_s", "reconnect"},
            label="mattermost",
            config_path=config_path,
        )
        settings = config.get("settings", {})
        if not isinstance(settings, dict):
            raise ConfigError(
                f"Invalid `settings` in {config_path}; expected a table."
            )
        _reject_unknown(
            settings,
            {"cluster_name", "allow_kubectl", "kubectl_path"},
            label="settings",
            config_path=config_path,
        )

        server_url = _require_str(
            mattermost, "url", label="mattermost", config_path=config_path
        )
        if not server_url.startswith(("http://", "https://")):
            raise ConfigError(
                f"Invalid `mattermost.url` in {config_path}; "
                "expected an http:// or https:// URL."
            )
        allow_kubectl = settings.get("allow_kubectl", False)
        if not isinstance(allow_kubectl, bool):
            raise ConfigError(
                f"Invalid `settings.allow_kubectl` in {config_path}; "
                "expected true or false."
            )

        return cls(
            server_url=server_url.rstrip("/"),
            token=_require_str(
                mattermost, "token", label="mattermost", config_path=config_path
            ),
            team=_require_str(
                mattermost, "team", label="mattermost", config_path=config_path
            ),
            channel=_require_str(
                mattermost, "channel", label="mattermost", config_path=config_path
            ),
            bot_name=_optional_str(
                mattermost,
                "bot_name",
                DEFAULT_BOT_NAME,
                label="mattermost",
                config_path=config_path,
            ),
            timeout_s=_require_number(
                mattermost,
                "timeout_s",
                default=30.0,
                label="mattermost",
                config_path=config_path,
                min_value=1.0,
            ),
            reconnect=ReconnectPolicy.from_config(
                mattermost.get("reconnect"), config_path=config_path
            ),
            cluster_name=_optional_str(
                settings,
                "cluster_name",
                DEFAULT_CLUSTER_NAME,
                label="settings",
                config_path=config_path,
            ),
            allow_kubectl=allow_kubectl,
            kubectl_path=_optional_str(
                settings,
                "kubectl_path",
                "kubectl",
                label="settings",
                config_path=config_path,
            ),
        )


def resolve_config_path(path: Path | str | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_PATH_ENV, "").strip()
    if env_path:
        return Path(env_path).expanduser()
    return HOME_CONFIG_PATH


def read_config(config_path: Path) -> dict[str, Any]:
    try:
        with config_path.open("rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Missing config file {config_path}.") from exc
    except OSError as exc:
        raise ConfigError(f"Could not read {config_path}: {exc}.") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {config_path}: {exc}.") from exc


def write_config(config: dict[str, Any], config_path: Path) -> None:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = config_path.with_suffix(config_path.suffix + ".tmp")
    tmp_path.write_text(tomli_w.dumps(config), encoding="utf-8")
    tmp_path.replace(config_path)


def load_settings(path: Path | str | None = None) -> tuple[BridgeSettings, Path]:
    config_path = resolve_config_path(path)
    config = read_config(config_path)
    return BridgeSettings.from_config(config, config_path=config_path), config_path


def _reject_unknown(
    config: dict[str, Any],
    allowed_keys: set[str],
    *,
    label: str,
    config_path: Path,
) -> None:
    unknown_keys = set(config) - allowed_keys
    if unknown_keys:
        unknown = ", ".join(sorted(unknown_keys))
        raise ConfigError(
            f"Invalid `{label}` in {config_path}; unknown keys: {unknown}."
        )


def _require_str(
    config: dict[str, Any], key: str, *, label: str, config_path: Path
) -> str:
    value = config.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(
            f"Invalid `{label}.{key}` in {config_path}; "
            "expected a non-empty string."
        )
    return value.strip()


def _optional_str(
    config: dict[str, Any],
    key: str,
    default: str,
    *,
    label: str,
    config_path: Path,
) -> str:
    if key not in config:
        return default
    return _require_str(config, key, label=label, config_path=config_path)


def _require_number(
    config: dict[str, Any],
    key: str,
    *,
    default: float,
    label: str,
    config_path: Path,
    min_value: float | None = None,
) -> float:
    value = config.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(
            f"Invalid `{label}.{key}` in {config_path}; expected a number."
        )
    value = float(value)
    if min_value is not None and value < min_value:
        raise ConfigError(
            f"Invalid `{label}.{key}` in {config_path}; "
            f"expected >= {min_value}."
        )
    return value
