"""
Bridge configuration.

Configuration arrives as a loosely-typed mapping (host plugin config, a JSON
file, or ``AGENTLINK_*`` environment variables) and is validated into a frozen
``BridgeConfig``. Invalid values raise ``ConfigError`` with an enumerated
``ConfigErrorKind`` instead of being silently replaced by defaults.

Missing secrets are not validation errors: they disable the affected path,
which the service reports as a warning at start.
"""

import json
from collections.abc import Mapping
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    ValidationError,
    field_validator,
)

from .errors import BridgeError

DEFAULT_PORT = 8787
DEFAULT_PATH = "/agentlink/message"
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_AGENT_COMMAND = "openclaw"
DEFAULT_AGENT_TIMEOUT = 120.0


def default_cursor_file() -> str:
    return str(Path.home() / ".openclaw" / "agentlink-cursor.json")


class BridgeMode(StrEnum):
    PUSH = "push"
    PULL = "pull"
    BOTH = "both"


class ConfigErrorKind(StrEnum):
    NOT_A_MAPPING = "not_a_mapping"
    UNREADABLE_FILE = "unreadable_file"
    INVALID_TYPE = "invalid_type"
    INVALID_MODE = "invalid_mode"
    INVALID_PORT = "invalid_port"
    INVALID_PATH = "invalid_path"
    INVALID_POLL_INTERVAL = "invalid_poll_interval"
    INVALID_TIMEOUT = "invalid_timeout"


class ConfigError(BridgeError):
    """Raised when configuration cannot be turned into a valid BridgeConfig."""

    def __init__(self, kind: ConfigErrorKind, field: str | None = None, detail: str = ""):
        self.kind = kind
        self.field = field
        self.detail = detail
        where = f"{field}: " if field else ""
        super().__init__(f"{kind.value}: {where}{detail}".rstrip(": "))


class BridgeConfig(BaseModel):
    """Validated bridge settings. Field aliases match the host's camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    enabled: StrictBool = True
    mode: BridgeMode = BridgeMode.PUSH
    port: int = Field(DEFAULT_PORT, ge=1, le=65535)
    path: StrictStr = DEFAULT_PATH
    token: StrictStr | None = None
    base_url: StrictStr | None = Field(None, alias="baseUrl")
    agent_token: StrictStr | None = Field(None, alias="agentToken")
    poll_interval: float = Field(DEFAULT_POLL_INTERVAL, gt=0, alias="pollInterval")
    cursor_file: StrictStr = Field(default_factory=default_cursor_file, alias="cursorFile")
    agent_command: StrictStr = Field(DEFAULT_AGENT_COMMAND, min_length=1, alias="agentCommand")
    agent_timeout: float = Field(DEFAULT_AGENT_TIMEOUT, gt=0, alias="agentTimeout")

    @field_validator("port", mode="before")
    @classmethod
    def _port_is_int(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("port must be an integer")
        return value

    @field_validator("poll_interval", "agent_timeout", mode="before")
    @classmethod
    def _seconds_are_numbers(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise ValueError("must be a number of seconds")
        return value

    @field_validator("token", "base_url", "agent_token", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("path")
    @classmethod
    def _path_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("path must start with '/'")
        return value

    @property
    def wants_push(self) -> bool:
        return self.enabled and self.mode in (BridgeMode.PUSH, BridgeMode.BOTH)

    @property
    def wants_pull(self) -> bool:
        return self.enabled and self.mode in (BridgeMode.PULL, BridgeMode.BOTH)

    def push_disabled_reason(self) -> str | None:
        if not self.token:
            return "missing token for push mode"
        return None

    def pull_disabled_reason(self) -> str | None:
        if not self.base_url or not self.agent_token:
            return "missing baseUrl/agentToken for pull mode"
        return None


FIELD_ERROR_KINDS: dict[str, ConfigErrorKind] = {
    "mode": ConfigErrorKind.INVALID_MODE,
    "port": ConfigErrorKind.INVALID_PORT,
    "path": ConfigErrorKind.INVALID_PATH,
    "poll_interval": ConfigErrorKind.INVALID_POLL_INTERVAL,
    "agent_timeout": ConfigErrorKind.INVALID_TIMEOUT,
}

_FIELD_NAMES: dict[str, str] = {
    **{name: name for name in BridgeConfig.model_fields},
    **{f.alias: name for name, f in BridgeConfig.model_fields.items() if f.alias},
}


def _config_error_from(exc: ValidationError) -> ConfigError:
    first = exc.errors()[0]
    loc = first.get("loc") or ("",)
    field = _FIELD_NAMES.get(str(loc[0]), str(loc[0]))
    kind = FIELD_ERROR_KINDS.get(field, ConfigErrorKind.INVALID_TYPE)
    return ConfigError(kind, field=field, detail=first.get("msg", ""))


def parse_config(raw: Any) -> BridgeConfig:
    """
    Validate a raw mapping into a BridgeConfig.

    ``None`` yields all defaults. Unknown keys are ignored so host configs
    may carry extra metadata.

    Raises:
        ConfigError: If ``raw`` is not a mapping or any field is invalid.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigError(
            ConfigErrorKind.NOT_A_MAPPING,
            detail=f"expected an object, got {type(raw).__name__}",
        )

    try:
        return BridgeConfig.model_validate(dict(raw))
    except ValidationError as e:
        raise _config_error_from(e) from e


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a JSON object config file into a raw mapping."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(ConfigErrorKind.UNREADABLE_FILE, detail=f"{path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(
            ConfigErrorKind.NOT_A_MAPPING,
            detail=f"{path}: expected a JSON object",
        )
    return data


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

# env var -> (config key, converter)
ENV_FIELDS: dict[str, tuple[str, str]] = {
    "AGENTLINK_ENABLED": ("enabled", "bool"),
    "AGENTLINK_MODE": ("mode", "str"),
    "AGENTLINK_PORT": ("port", "int"),
    "AGENTLINK_PATH": ("path", "str"),
    "AGENTLINK_TOKEN": ("token", "str"),
    "AGENTLINK_BASE_URL": ("baseUrl", "str"),
    "AGENTLINK_AGENT_TOKEN": ("agentToken", "str"),
    "AGENTLINK_POLL_INTERVAL": ("pollInterval", "float"),
    "AGENTLINK_CURSOR_FILE": ("cursorFile", "str"),
    "AGENTLINK_AGENT_COMMAND": ("agentCommand", "str"),
    "AGENTLINK_AGENT_TIMEOUT": ("agentTimeout", "float"),
}


def _convert_env(name: str, key: str, kind: str, value: str) -> Any:
    if kind == "str":
        return value
    if kind == "bool":
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError(ConfigErrorKind.INVALID_TYPE, field=key, detail=f"{name}={value!r}")
    try:
        return int(value) if kind == "int" else float(value)
    except ValueError as e:
        field = _FIELD_NAMES.get(key, key)
        error_kind = FIELD_ERROR_KINDS.get(field, ConfigErrorKind.INVALID_TYPE)
        raise ConfigError(error_kind, field=field, detail=f"{name}={value!r}") from e


def config_from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``AGENTLINK_*`` variables into a raw config mapping."""
    raw: dict[str, Any] = {}
    for name, (key, kind) in ENV_FIELDS.items():
        value = environ.get(name)
        if value is None or value == "":
            continue
        raw[key] = _convert_env(name, key, kind, value)
    return raw
