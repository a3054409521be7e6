"""AgentLink bridge: push webhook and pull stream that trigger local agent runs."""

from .config import BridgeConfig, BridgeMode, ConfigError, ConfigErrorKind, parse_config
from .cursor import CursorStore
from .service import BridgeService, register
from .sse import SSEDecoder
from .stream_client import StreamClient, start_pull_stream
from .trigger import AgentTrigger

__all__ = [
    "AgentTrigger",
    "BridgeConfig",
    "BridgeMode",
    "BridgeService",
    "ConfigError",
    "ConfigErrorKind",
    "CursorStore",
    "SSEDecoder",
    "StreamClient",
    "parse_config",
    "register",
    "start_pull_stream",
]
