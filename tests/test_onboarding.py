from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from botkube_mattermost.config import ConfigError, load_settings, read_config, write_config
from botkube_mattermost.onboarding import interactive_setup


def _script(monkeypatch, answers: list[object]) -> list[str]:
    prompts: list[str] = []

    def _prompt(message: str, **kwargs) -> SimpleNamespace:
        _ = kwargs
        prompts.append(message)
        return SimpleNamespace(ask=lambda: answers.pop(0))

    for name in ("text", "password", "confirm"):
        monkeypatch.setattr(f"botkube_mattermost.onboarding.questionary.{name}", _prompt)
    return prompts


def test_setup_writes_new_config(monkeypatch, tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    _script(
        monkeypatch,
        ["https://mm.example.com/", "tok", "dev", "botkube", "prod", True],
    )

    assert interactive_setup(config_path=path) is True

    settings, _ = load_settings(path)
    assert settings.server_url == "https://mm.example.com"
    assert settings.token == "tok"
    assert settings.cluster_name == "prod"
    assert settings.allow_kubectl is True


def test_setup_keeps_unprompted_keys(monkeypatch, tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    write_config(
        {"mattermost": {"url": "https://old", "bot_name": "kubebot"}},
        path,
    )
    prompts = _script(
        monkeypatch,
        [True, "https://mm.example.com", "tok", "dev", "alerts", "", False],
    )

    assert interactive_setup(config_path=path) is True

    assert prompts[0].startswith("Update existing config")
    config = read_config(path)
    assert config["mattermost"]["bot_name"] == "kubebot"
    assert config["mattermost"]["channel"] == "alerts"
    assert config["settings"]["cluster_name"] == "not-configured"


def test_setup_aborts_on_empty_token(monkeypatch, tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    _script(monkeypatch, ["https://mm.example.com", None])

    assert interactive_setup(config_path=path) is False
    assert not path.exists()


def test_setup_rejects_non_table(monkeypatch, tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text('mattermost = "oops"\n', encoding="utf-8")
    _script(monkeypatch, [])

    with pytest.raises(ConfigError):
        interactive_setup(config_path=path, force=True)
