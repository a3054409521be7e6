"""Type definitions for frames and payloads carried on the message stream."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

DEFAULT_EVENT = "message"
UNKNOWN_SENDER = "unknown"
SESSION_PREFIX = "agentlink"


class StreamState(StrEnum):
    """Lifecycle of the pull stream connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    STOPPED = "stopped"


@dataclass(frozen=True)
class EventFrame:
    """One decoded server-sent event."""

    event: str = DEFAULT_EVENT
    data: str = ""


def _str_field(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    return value if isinstance(value, str) else None


def _cursor_field(payload: dict[str, Any]) -> str | None:
    cursor = _str_field(payload, "cursor")
    return cursor or None


@dataclass(frozen=True)
class MessagePayload:
    """Body of a ``message`` frame."""

    sender: str
    content: str
    session_id: str
    cursor: str | None = None

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "MessagePayload":
        """Build from a decoded JSON object, falling back to defaults for bad fields."""
        sender = _str_field(payload, "from_agent_id") or UNKNOWN_SENDER
        content = _str_field(payload, "content") or ""
        session_id = _str_field(payload, "sessionId") or f"{SESSION_PREFIX}:{sender}"
        return cls(
            sender=sender,
            content=content,
            session_id=session_id,
            cursor=_cursor_field(payload),
        )

    def formatted(self) -> str:
        return f"From {self.sender}: {self.content}"


@dataclass(frozen=True)
class PingPayload:
    """Body of a ``ping`` frame. Only advances the checkpoint."""

    cursor: str | None = None

    @classmethod
    def from_json(cls, payload: dict[str, Any]) -> "PingPayload":
        return cls(cursor=_cursor_field(payload))
