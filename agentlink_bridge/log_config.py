"""
Structured logging for the bridge, built on structlog.

Every log line is a single JSON object written to stderr:

    {"ts": "...", "level": "info", "logger": "agentlink.stream",
     "event": "stream.connect", "outcome": "success", ...}

Callers log an event name plus keyword fields instead of formatted strings:

    log = get_logger("stream", service="pull")
    log.info("stream.connect", url=url)
    log.warn("stream.disconnect", exc=e)
"""

import logging
import os
import sys
from typing import Any, Protocol

import structlog
from structlog.typing import EventDict, Processor

LOGGER_PREFIX = "agentlink"

QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

TRACEBACK_LEVELS = ("error", "critical", "exception")

_configured = False


class EventLogger(Protocol):
    """Leveled logger taking an event name and keyword fields."""

    def debug(self, event: str, **fields: Any) -> Any: ...

    def info(self, event: str, **fields: Any) -> Any: ...

    def warn(self, event: str, **fields: Any) -> Any: ...

    def error(self, event: str, **fields: Any) -> Any: ...


def add_exception_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Turn ``exc=<exception>`` into error fields; errors also get a traceback."""
    exc = event_dict.pop("exc", None)
    if exc is None:
        return event_dict

    event_dict["error"] = str(exc) or type(exc).__name__
    event_dict["error_type"] = type(exc).__name__
    if method_name in TRACEBACK_LEVELS:
        event_dict["exc_info"] = exc
    return event_dict


SHARED_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.filter_by_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    add_exception_fields,
    structlog.processors.format_exc_info,
    structlog.processors.JSONRenderer(default=str),
]

structlog.configure(
    processors=SHARED_PROCESSORS,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)


def configure_logging(level: str | None = None) -> None:
    """Install the stderr handler on the root logger (once per process)."""
    global _configured

    resolved = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger()
    root.setLevel(resolved)

    if _configured:
        return

    # structlog renders the JSON; the handler only writes it out
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """Return a logger named ``agentlink.<name>`` with ``context`` bound."""
    return structlog.get_logger(f"{LOGGER_PREFIX}.{name}").bind(**context)
