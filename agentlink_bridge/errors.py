"""Exception types shared across the bridge."""


class BridgeError(Exception):
    """Base class for bridge errors."""

    pass


class StreamConnectionError(BridgeError):
    """Raised when the remote stream endpoint rejects a connection attempt."""

    def __init__(self, status_code: int, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"Stream connection failed: {status_code} {reason}".rstrip())


class AgentTriggerError(BridgeError):
    """Raised when the external agent process fails, times out, or cannot start."""

    def __init__(self, message: str, exit_code: int | None = None, stderr: str = ""):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(message)
