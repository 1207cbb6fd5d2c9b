from __future__ import annotations

import shlex
import subprocess
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

import anyio

from .config import DEFAULT_BOT_NAME
from .logging import get_logger

logger = get_logger(__name__)

KUBECTL_VERBS = frozenset(
    {
        "api-resources",
        "api-versions",
        "auth",
        "cluster-info",
        "describe",
        "diff",
        "explain",
        "get",
        "logs",
        "top",
    }
)
CLUSTER_FLAG = "--cluster-name"

RunCommand = Callable[[Sequence[str]], Awaitable[tuple[int, str, str]]]


class Executor(Protocol):
    async def execute(
        self,
        command: str,
        *,
        allow_kubectl: bool,
        cluster_name: str,
        channel_name: str,
        is_auth_channel: bool,
    ) -> str: ...


def split_command_args(text: str) -> tuple[str, ...]:
    if not text.strip():
        return ()
    try:
        return tuple(shlex.split(text))
    except ValueError:
        return tuple(text.split())


def pop_cluster_flag(args: Sequence[str]) -> tuple[tuple[str, ...], str | None]:
    """Remove ``--cluster-name`` from ``args`` and return the targeted cluster."""
    remaining: list[str] = []
    target: str | None = None
    it = iter(args)
    for arg in it:
        if arg == CLUSTER_FLAG:
            target = next(it, None)
            continue
        if arg.startswith(f"{CLUSTER_FLAG}="):
            target = arg.split("=", 1)[1]
            continue
        remaining.append(arg)
    return tuple(remaining), target


async def run_command(args: Sequence[str]) -> tuple[int, str, str]:
    def _exec() -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            list(args),
            text=True,
            capture_output=True,
        )

    completed = await anyio.to_thread.run_sync(_exec)
    return completed.returncode, completed.stdout, completed.stderr


@dataclass(slots=True)
class KubectlExecutor:
    kubectl_path: str = "kubectl"
    bot_name: str = DEFAULT_BOT_NAME
    run: RunCommand = run_command

    def help_text(self) -> str:
        mention = f"@{self.bot_name}"
        verbs = ", ".join(sorted(KUBECTL_VERBS))
        return (
            f"{mention} ping [{CLUSTER_FLAG} <cluster>]: check the bot is alive\n"
            f"{mention} <kubectl command> [{CLUSTER_FLAG} <cluster>]: "
            f"run a read-only kubectl command ({verbs})\n"
            f"{mention} help: show this message"
        )

    async def execute(
        self,
        command: str,
        *,
        allow_kubectl: bool,
        cluster_name: str,
        channel_name: str,
        is_auth_channel: bool,
    ) -> str:
        args, target = pop_cluster_flag(split_command_args(command))
        if args and args[0] == "kubectl":
            args = args[1:]
        if not args:
            return ""
        if target is not None and target != cluster_name:
            return ""

        verb = args[0]
        if verb == "ping":
            return f"pong from cluster '{cluster_name}'"
        if verb == "help":
            return self.help_text()
        if verb not in KUBECTL_VERBS:
            return (
                "Command not supported. "
                f"Please run '@{self.bot_name} help' to see supported commands."
            )
        if not is_auth_channel:
            logger.info(
                "executor.unauthorized_channel",
                verb=verb,
                channel_name=channel_name,
            )
            return ""
        if not allow_kubectl:
            return (
                "Sorry, the admin hasn't given me the permission to execute "
                f"kubectl command on cluster '{cluster_name}'."
            )

        try:
            returncode, stdout, stderr = await self.run([self.kubectl_path, *args])
        except OSError as exc:
            logger.error("executor.kubectl_failed", error=str(exc))
            return f"Cluster: {cluster_name}\nkubectl is not available: {exc}"
        if returncode != 0:
            logger.info("executor.kubectl_exit", verb=verb, returncode=returncode)
            output = stderr or stdout
        else:
            output = stdout
        return f"Cluster: {cluster_name}\n{output.rstrip()}"
