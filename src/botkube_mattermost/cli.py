from __future__ import annotations

import argparse
import signal
import sys
from collections.abc import Sequence
from functools import partial

import anyio

from .bootstrap import BootstrapError
from .bridge import MattermostBridge
from .config import BridgeSettings, ConfigError, load_settings, resolve_config_path
from .executor import KubectlExecutor
from .listener import Connect
from .logging import get_logger, setup_logging
from .onboarding import interactive_setup

logger = get_logger(__name__)


async def _watch_signals(bridge: MattermostBridge, stopped: anyio.Event) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("bridge.signal", signal=signal.Signals(signum).name)
            stopped.set()
            bridge.stop()
            return


async def run_bridge(
    settings: BridgeSettings,
    *,
    connect: Connect | None = None,
    handle_signals: bool = True,
) -> int:
    """Run the bridge until a signal arrives or the event stream ends."""
    executor = KubectlExecutor(
        kubectl_path=settings.kubectl_path,
        bot_name=settings.bot_name,
    )
    bridge = MattermostBridge(settings=settings, executor=executor, connect=connect)
    stopped = anyio.Event()
    try:
        async with anyio.create_task_group() as tg:
            try:
                await bridge.start(tg)
            except BootstrapError:
                return 1
            if handle_signals:
                tg.start_soon(_watch_signals, bridge, stopped)
            await bridge.wait()
            tg.cancel_scope.cancel()
    finally:
        await bridge.aclose()
    return 0 if stopped.is_set() else 1


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        self.print_help(sys.stderr)
        self.exit(2, f"\nerror: {message}\n")


def _build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="botkube-mattermost",
        description="Run kubectl commands from a Mattermost channel.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_parser = sub.add_parser("run", help="Connect to Mattermost and listen")
    run_parser.add_argument("--config", default=None, help="Path to config.toml")
    run_parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    run_parser.add_argument(
        "--json-logs", action="store_true", help="Emit logs as JSON lines"
    )

    setup_parser = sub.add_parser("setup", help="Write a config file interactively")
    setup_parser.add_argument("--config", default=None, help="Path to config.toml")
    setup_parser.add_argument(
        "--force", action="store_true", help="Overwrite without asking"
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "setup":
        config_path = resolve_config_path(args.config)
        try:
            written = interactive_setup(config_path=config_path, force=args.force)
        except ConfigError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        if written:
            print(f"wrote {config_path}")
        return 0 if written else 1

    setup_logging(debug=args.debug, json_logs=args.json_logs)
    try:
        settings, config_path = load_settings(args.config)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    logger.info("bridge.config_loaded", config_path=str(config_path))
    return anyio.run(partial(run_bridge, settings))
