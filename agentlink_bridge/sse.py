"""
Incremental Server-Sent Events decoder.

SSE format:
    event: message
    data: {"from_agent_id": "bob", "content": "hi"}

    event: ping
    data: {"cursor": "c2"}

Blocks are separated by a blank line. A block may arrive split across any
number of reads, and one read may carry several blocks; ``feed`` buffers the
trailing incomplete block until its terminator shows up.
"""

from collections.abc import AsyncIterator

from .types import DEFAULT_EVENT, EventFrame

BLOCK_SEPARATOR = "\n\n"


def parse_block(block: str) -> EventFrame | None:
    """Parse one complete block. Returns None when it carries no data."""
    event = DEFAULT_EVENT
    data_lines: list[str] = []

    for line in block.split("\n"):
        if line.startswith("event:"):
            event = line[6:].strip()
        elif line.startswith("data:"):
            value = line[5:]
            # Handle both "data: {...}" and "data:{...}" formats
            if value.startswith(" "):
                value = value[1:]
            data_lines.append(value)

    # Keep-alive blocks carry no data or only blank data lines
    if not any(data_lines):
        return None
    return EventFrame(event=event, data="\n".join(data_lines))


class SSEDecoder:
    """Stateful decoder for a single connection. Do not reuse across reconnects."""

    def __init__(self):
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Text of the incomplete trailing block."""
        return self._buffer

    def feed(self, text: str) -> list[EventFrame]:
        self._buffer += text
        *blocks, self._buffer = self._buffer.split(BLOCK_SEPARATOR)

        frames = []
        for block in blocks:
            frame = parse_block(block)
            if frame is not None:
                frames.append(frame)
        return frames


async def iter_frames(chunks: AsyncIterator[str]) -> AsyncIterator[EventFrame]:
    """Decode an async stream of text chunks into frames."""
    decoder = SSEDecoder()
    async for chunk in chunks:
        for frame in decoder.feed(chunk):
            yield frame
