"""Shared fixtures and HTTP mocks for bridge tests."""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock

import pytest

from agentlink_bridge.cursor import CursorStore
from agentlink_bridge.stream_client import StreamClient


class MockSSEResponse:
    """Mock streaming response yielding pre-built text chunks."""

    def __init__(
        self,
        chunks: list[str],
        status_code: int = 200,
        hang: bool = False,
    ):
        self.status_code = status_code
        self.reason_phrase = "OK" if status_code < 400 else "Error"
        self._chunks = chunks
        self._hang = hang
        self.reading = asyncio.Event()

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    async def aiter_text(self) -> AsyncIterator[str]:
        for chunk in self._chunks:
            yield chunk
            await asyncio.sleep(0)  # Allow other tasks to run
        if self._hang:
            self.reading.set()
            await asyncio.Event().wait()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass


class MockHttpClient:
    """Mock HTTP client that hands out queued stream responses."""

    def __init__(self, responses: list[Any] | None = None):
        self.responses: list[Any] = list(responses or [])
        self.requests: list[dict[str, Any]] = []

    def stream(
        self,
        method: str,
        url: str,
        params: dict | None = None,
        headers: dict | None = None,
    ):
        self.requests.append(
            {"method": method, "url": url, "params": dict(params or {}), "headers": headers}
        )
        if not self.responses:
            return MockSSEResponse([], status_code=503)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def aclose(self) -> None:
        pass


def sse_event(event: str | None, data: Any) -> str:
    """Create an SSE block with an optional event line and JSON data."""
    lines = []
    if event is not None:
        lines.append(f"event: {event}")
    text = data if isinstance(data, str) else json.dumps(data)
    lines.extend(f"data: {line}" for line in text.split("\n"))
    return "\n".join(lines) + "\n\n"


@pytest.fixture
def cursor_file(tmp_path):
    return tmp_path / "state" / "agentlink-cursor.json"


@pytest.fixture
def trigger() -> AsyncMock:
    mock = AsyncMock()
    mock.run = AsyncMock(return_value={})
    return mock


@pytest.fixture
def http_client() -> MockHttpClient:
    return MockHttpClient()


@pytest.fixture
def client(cursor_file, trigger, http_client) -> StreamClient:
    """Create a stream client wired to mocks."""
    c = StreamClient(
        base_url="http://agentlink.test",
        agent_token="agent-secret",
        cursor_store=CursorStore(cursor_file),
        trigger=trigger,
        poll_interval=2,
    )
    c.http_client = http_client
    return c
