"""
Durable checkpoint for the pull stream.

The cursor file holds a single JSON object, ``{"cursor": "<token>"}``. Loading
treats a missing, unreadable, or malformed file as "no cursor". Saving is
best-effort: a failed write only means events since the last good checkpoint
are delivered again after the next reconnect.
"""

import json
import os
from pathlib import Path

from .log_config import EventLogger, get_logger


class CursorStore:
    """Load and save the last processed stream position."""

    def __init__(self, path: str | Path | None, log: EventLogger | None = None):
        self.path = Path(path) if path else None
        self.log = log or get_logger("cursor")

    def load(self) -> str | None:
        if self.path is None:
            return None
        try:
            parsed = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValueError):
            return None

        if not isinstance(parsed, dict):
            return None
        cursor = parsed.get("cursor")
        if isinstance(cursor, str) and cursor:
            return cursor
        return None

    def save(self, cursor: str) -> bool:
        """Persist ``cursor``. Returns False (never raises) when the write fails."""
        if self.path is None:
            return False

        tmp_file = self.path.with_name(f".{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(json.dumps({"cursor": cursor}), encoding="utf-8")
            os.replace(tmp_file, self.path)
            return True
        except OSError as e:
            self.log.debug("cursor.save_error", exc=e, path=str(self.path))
            return False
