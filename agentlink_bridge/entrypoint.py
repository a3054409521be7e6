#!/usr/bin/env python3
"""
Standalone entrypoint - runs the bridge as its own process.

Responsibilities:
1. Merge configuration from a JSON file, AGENTLINK_* variables, and flags
2. Register the bridge service with a minimal host
3. Start the service and wait for SIGTERM/SIGINT
4. Stop the service gracefully
"""

import argparse
import asyncio
import os
import signal
import sys
from collections.abc import Mapping
from typing import Any

from .config import ConfigError, config_from_env, load_config_file
from .log_config import configure_logging, get_logger
from .service import Service, register

EXIT_CONFIG_ERROR = 2


class StandaloneHost:
    """Host that runs registered services until a shutdown signal arrives."""

    def __init__(self, plugin_config: Mapping[str, Any] | None):
        self.plugin_config = plugin_config
        self.logger = get_logger("host", service="standalone")
        self.services: list[Service] = []
        self.shutdown_event = asyncio.Event()

    def register_service(self, service: Service) -> None:
        self.logger.info("host.register_service", service_id=service.id)
        self.services.append(service)

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._handle_signal, sig)

        started: list[Service] = []
        try:
            for service in self.services:
                await service.start()
                started.append(service)
            await self.shutdown_event.wait()
        finally:
            self.logger.info("host.shutdown_start")
            for service in reversed(started):
                try:
                    await service.stop()
                except Exception as e:
                    self.logger.error("host.stop_error", exc=e, service_id=service.id)
            self.logger.info("host.shutdown_complete")

    def _handle_signal(self, sig: signal.Signals) -> None:
        self.logger.info("host.signal", signal_name=sig.name)
        self.shutdown_event.set()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentlink-bridge",
        description="Bridge AgentLink messages to local agent runs",
    )
    parser.add_argument("--config", help="JSON config file")
    parser.add_argument("--log-level", help="Log level (default: LOG_LEVEL or INFO)")
    parser.add_argument("--mode", choices=["push", "pull", "both"], help="Delivery mode")
    parser.add_argument("--port", type=int, help="Push listener port")
    parser.add_argument("--path", help="Push listener path")
    parser.add_argument("--token", help="Shared secret for push requests")
    parser.add_argument("--base-url", dest="baseUrl", help="Remote service base URL")
    parser.add_argument("--agent-token", dest="agentToken", help="X-Agent-Token for pull")
    parser.add_argument(
        "--poll-interval", dest="pollInterval", type=float, help="Poll interval hint (seconds)"
    )
    parser.add_argument("--cursor-file", dest="cursorFile", help="Cursor checkpoint file")
    parser.add_argument("--agent-command", dest="agentCommand", help="Agent executable")
    parser.add_argument(
        "--agent-timeout", dest="agentTimeout", type=float, help="Agent timeout (seconds)"
    )
    parser.add_argument(
        "--disabled",
        dest="enabled",
        action="store_false",
        default=None,
        help="Start with both paths disabled",
    )
    return parser


CLI_KEYS = (
    "enabled",
    "mode",
    "port",
    "path",
    "token",
    "baseUrl",
    "agentToken",
    "pollInterval",
    "cursorFile",
    "agentCommand",
    "agentTimeout",
)


def resolve_raw_config(
    args: argparse.Namespace,
    environ: Mapping[str, str],
) -> dict[str, Any]:
    """Merge sources: flag > environment > config file."""
    raw: dict[str, Any] = {}
    if args.config:
        raw.update(load_config_file(args.config))
    raw.update(config_from_env(environ))
    for key in CLI_KEYS:
        value = getattr(args, key, None)
        if value is not None:
            raw[key] = value
    return raw


async def main(argv: list[str] | None = None) -> int:
    """Entry point for the bridge process."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    log = get_logger("entrypoint")

    try:
        raw = resolve_raw_config(args, os.environ)
    except ConfigError as e:
        log.error("bridge.config_invalid", kind=e.kind.value, field=e.field, detail=e.detail)
        return EXIT_CONFIG_ERROR

    host = StandaloneHost(raw)
    if register(host) is None:
        return EXIT_CONFIG_ERROR

    await host.run()
    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
