"""
Bridge service and host integration.

A host (the standalone entrypoint, or any runtime embedding the bridge)
provides a leveled logger, the raw plugin config, and a way to register a
long-running service. ``register`` validates the config and registers one
``BridgeService`` that runs the push listener and/or the pull stream.
"""

from collections.abc import Mapping
from typing import Any, Protocol

from .config import BridgeConfig, ConfigError, parse_config
from .log_config import EventLogger, get_logger
from .stream_client import PullStreamHandle, Trigger, start_pull_stream
from .trigger import AgentTrigger
from .web_api import PushServer

SERVICE_ID = "agentlink-bridge"

# Everything the bridge logs, push and pull included, goes to this logger
HostLogger = EventLogger


class Service(Protocol):
    id: str

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


class BridgeHost(Protocol):
    """Collaborators the bridge needs from whatever process hosts it."""

    logger: HostLogger
    plugin_config: Mapping[str, Any] | None

    def register_service(self, service: Service) -> None: ...


class BridgeService:
    """Starts and stops the push and pull paths selected by the config."""

    id = SERVICE_ID

    def __init__(
        self,
        config: BridgeConfig,
        trigger: Trigger | None = None,
        log: HostLogger | None = None,
    ):
        self.config = config
        self.log = log or get_logger("bridge", service=SERVICE_ID)
        self.trigger = trigger or AgentTrigger(
            command=config.agent_command, timeout=config.agent_timeout, log=self.log
        )
        self.push_server: PushServer | None = None
        self.pull_handle: PullStreamHandle | None = None

    async def start(self) -> None:
        if not self.config.enabled:
            self.log.info("bridge.disabled", reason="disabled_by_config")
            return

        if self.config.wants_push:
            reason = self.config.push_disabled_reason()
            if reason:
                self.log.warn("bridge.push_disabled", reason=reason)
            else:
                self.push_server = PushServer(self.config, self.trigger, log=self.log)
                await self.push_server.start()

        if self.config.wants_pull:
            reason = self.config.pull_disabled_reason()
            if reason:
                self.log.warn("bridge.pull_disabled", reason=reason)
            else:
                self.pull_handle = start_pull_stream(self.config, self.trigger, log=self.log)

        self.log.info(
            "bridge.started",
            mode=self.config.mode.value,
            push=self.push_server is not None,
            pull=self.pull_handle is not None,
        )

    async def stop(self) -> None:
        push_server, self.push_server = self.push_server, None
        pull_handle, self.pull_handle = self.pull_handle, None

        if push_server is not None:
            await push_server.stop()
        if pull_handle is not None:
            await pull_handle.stop()


def register(host: BridgeHost, trigger: Trigger | None = None) -> BridgeService | None:
    """Validate the host's plugin config and register the bridge service."""
    try:
        config = parse_config(host.plugin_config)
    except ConfigError as e:
        host.logger.error(
            "bridge.config_invalid",
            kind=e.kind.value,
            field=e.field,
            detail=e.detail,
        )
        return None

    service = BridgeService(config, trigger=trigger, log=host.logger)
    host.register_service(service)
    return service
