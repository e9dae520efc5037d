"""Command-line entry point: run a relay session with a demo event handler."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from collections.abc import Sequence
from pathlib import Path
from typing import override

import dotenv

from pinrelay import const
from pinrelay.config import RelayConfig
from pinrelay.correlation import correlation_context
from pinrelay.errors import ConfigError
from pinrelay.events import AsyncEventHandler, EventHandler
from pinrelay.logging_abstraction import configure_logging, get_logger
from pinrelay.metrics import registry
from pinrelay.session.blocking import RelaySession
from pinrelay.session.cooperative import AsyncRelaySession
from pinrelay.transport.connection import AsyncConnection, Connection

logger = get_logger(__name__)

DEMO_PINS = frozenset({4, 5})


def uptime_reply(pin: int, started: float) -> str | None:
    """Value reported for a demo pin read, or None for pins the demo ignores."""
    if pin not in DEMO_PINS:
        return None
    return f"V{pin} {int(time.monotonic() - started)}"


class DemoHandler(EventHandler):
    """Answers reads of V4/V5 with the uptime in seconds and logs writes."""

    def __init__(self) -> None:
        self.started = time.monotonic()

    @override
    def handle_connect(self, conn: Connection) -> None:
        logger.info("Session ready")

    @override
    def handle_vpin_read(self, conn: Connection, pin: int) -> None:
        logger.info("Wanting to read the state of pin %d", pin)
        value = uptime_reply(pin, self.started)
        if value is None:
            logger.info("pin not handled: v%d", pin)
            return
        conn.virtual_write(pin, value)
        logger.info("sent info about pin %d", pin)

    @override
    def handle_vpin_write(self, conn: Connection, pin: int, data: str) -> None:
        logger.info("Wanting to write the state of pin %d: %r", pin, data)


class AsyncDemoHandler(AsyncEventHandler):
    """Coroutine flavour of DemoHandler."""

    def __init__(self) -> None:
        self.started = time.monotonic()

    @override
    async def handle_connect(self, conn: AsyncConnection) -> None:
        logger.info("Session ready")

    @override
    async def handle_vpin_read(self, conn: AsyncConnection, pin: int) -> None:
        logger.info("Wanting to read the state of pin %d", pin)
        value = uptime_reply(pin, self.started)
        if value is None:
            logger.info("pin not handled: v%d", pin)
            return
        await conn.virtual_write(pin, value)
        logger.info("sent info about pin %d", pin)

    @override
    async def handle_vpin_write(self, conn: AsyncConnection, pin: int, data: str) -> None:
        logger.info("Wanting to write the state of pin %d: %r", pin, data)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pinrelay", description="IoT relay client (virtual pins over TCP)")
    _ = parser.add_argument("token", help="Device auth token")
    _ = parser.add_argument("server", nargs="?", default=None, help="Relay server host")
    _ = parser.add_argument("port", nargs="?", default=None, type=int, help="Relay server port")
    _ = parser.add_argument(
        "--async",
        action="store_true",
        dest="use_async",
        help="Run the asyncio session on uvloop",
    )
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Serve Prometheus metrics on this port (0 disables)",
    )
    return parser


def parse_cli(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def load_env_file(env_file: Path) -> bool:
    """Load ``env_file`` into os.environ; True if any variable was set."""
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False
    loaded_any = dotenv.load_dotenv(env_path, override=True)
    if loaded_any:
        logger.info("Environment variables loaded", extra={"source": str(env_path)})
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
    return loaded_any


def build_config(args: argparse.Namespace) -> RelayConfig:
    if args.server is None:
        logger.info("No server given, using the PINRELAY_SERVER default")
    if args.port is None:
        logger.info("No port given, using the PINRELAY_PORT default")
    return RelayConfig.from_env(args.token, server=args.server, port=args.port)


def run_blocking(config: RelayConfig) -> None:
    session = RelaySession(config, DemoHandler())

    def _stop(signum: int, _frame: object) -> None:
        logger.info("Intercepted signal: %s", signal.Signals(signum).name)
        session.stop()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    session.run_forever()


async def run_async(config: RelayConfig) -> None:
    session = AsyncRelaySession(config, AsyncDemoHandler())
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, session.stop)
    await session.run_forever()


def _run_event_loop(config: RelayConfig) -> None:
    if sys.platform == "win32":
        asyncio.run(run_async(config))
        return
    import uvloop

    uvloop.run(run_async(config))


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the pinrelay CLI."""
    args = parse_cli(argv)
    configure_logging(debug=True if args.debug else None)
    if args.env and load_env_file(args.env):
        # Logging settings may come from the file too
        configure_logging(debug=True if args.debug else None)

    with correlation_context():
        logger.info("Starting pinrelay", extra={"version": const.PINRELAY_VERSION})
        try:
            config = build_config(args)
        except ConfigError as e:
            logger.error("Invalid configuration: %s", e)
            return 2

        logger.info("Connecting to %s:%d", config.server, config.port)
        metrics_port = args.metrics_port if args.metrics_port is not None else const.env_int("PINRELAY_METRICS_PORT", 0)
        if metrics_port > 0:
            registry.start_metrics_server(metrics_port)
            logger.info("Metrics server listening", extra={"port": metrics_port})

        try:
            if args.use_async:
                _run_event_loop(config)
            else:
                run_blocking(config)
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        else:
            logger.info("pinrelay stopped gracefully")
    logging.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
