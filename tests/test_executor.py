from __future__ import annotations

from collections.abc import Sequence

import pytest

from botkube_mattermost.executor import (
    KubectlExecutor,
    pop_cluster_flag,
    split_command_args,
)


class _Runner:
    def __init__(self, result: tuple[int, str, str] = (0, "pod-1 Running\n", "")) -> None:
        self.result = result
        self.calls: list[list[str]] = []

    async def __call__(self, args: Sequence[str]) -> tuple[int, str, str]:
        self.calls.append(list(args))
        return self.result


async def _execute(
    executor: KubectlExecutor,
    command: str,
    *,
    allow_kubectl: bool = True,
    is_auth_channel: bool = True,
) -> str:
    return await executor.execute(
        command,
        allow_kubectl=allow_kubectl,
        cluster_name="prod",
        channel_name="botkube",
        is_auth_channel=is_auth_channel,
    )


def test_split_command_args_quoted() -> None:
    assert split_command_args('get pods -l "app=web"') == ("get", "pods", "-l", "app=web")
    assert split_command_args('logs "unterminated') == ("logs", '"unterminated')
    assert split_command_args("   ") == ()


def test_pop_cluster_flag() -> None:
    assert pop_cluster_flag(("get", "pods", "--cluster-name", "prod")) == (
        ("get", "pods"),
        "prod",
    )
    assert pop_cluster_flag(("ping", "--cluster-name=dev")) == (("ping",), "dev")
    assert pop_cluster_flag(("get", "pods")) == (("get", "pods"), None)


@pytest.mark.anyio
async def test_ping() -> None:
    executor = KubectlExecutor(run=_Runner())
    assert await _execute(executor, "ping") == "pong from cluster 'prod'"
    assert await _execute(executor, "ping --cluster-name prod") == "pong from cluster 'prod'"
    assert await _execute(executor, "ping --cluster-name staging") == ""


@pytest.mark.anyio
async def test_help_mentions_bot_name() -> None:
    executor = KubectlExecutor(bot_name="kube", run=_Runner())
    text = await _execute(executor, "help")
    assert "@kube ping" in text


@pytest.mark.anyio
async def test_unknown_command() -> None:
    runner = _Runner()
    executor = KubectlExecutor(run=runner)
    text = await _execute(executor, "delete pod web")
    assert text.startswith("Command not supported.")
    assert runner.calls == []


@pytest.mark.anyio
async def test_empty_command_is_dropped() -> None:
    executor = KubectlExecutor(run=_Runner())
    assert await _execute(executor, "") == ""
    assert await _execute(executor, "kubectl") == ""


@pytest.mark.anyio
async def test_kubectl_runs_in_authorized_channel() -> None:
    runner = _Runner()
    executor = KubectlExecutor(kubectl_path="/usr/bin/kubectl", run=runner)

    text = await _execute(executor, "kubectl get pods -n default --cluster-name prod")

    assert runner.calls == [["/usr/bin/kubectl", "get", "pods", "-n", "default"]]
    assert text == "Cluster: prod\npod-1 Running"


@pytest.mark.anyio
async def test_kubectl_failure_returns_stderr() -> None:
    runner = _Runner((1, "", "Error from server (NotFound): pods \"x\" not found\n"))
    executor = KubectlExecutor(run=runner)

    text = await _execute(executor, "describe pod x")

    assert text == 'Cluster: prod\nError from server (NotFound): pods "x" not found'


@pytest.mark.anyio
async def test_kubectl_ignored_outside_authorized_channel() -> None:
    runner = _Runner()
    executor = KubectlExecutor(run=runner)

    assert await _execute(executor, "get pods", is_auth_channel=False) == ""
    assert runner.calls == []


@pytest.mark.anyio
async def test_kubectl_denied_without_permission() -> None:
    runner = _Runner()
    executor = KubectlExecutor(run=runner)

    text = await _execute(executor, "get pods", allow_kubectl=False)

    assert "permission to execute kubectl command on cluster 'prod'" in text
    assert runner.calls == []


@pytest.mark.anyio
async def test_kubectl_other_cluster_is_dropped() -> None:
    runner = _Runner()
    executor = KubectlExecutor(run=runner)

    assert await _execute(executor, "get pods --cluster-name staging") == ""
    assert runner.calls == []


@pytest.mark.anyio
async def test_missing_kubectl_binary() -> None:
    async def _missing(args: Sequence[str]) -> tuple[int, str, str]:
        raise FileNotFoundError(2, "No such file or directory", args[0])

    executor = KubectlExecutor(run=_missing)

    text = await _execute(executor, "get pods")

    assert text.startswith("Cluster: prod\nkubectl is not available")
