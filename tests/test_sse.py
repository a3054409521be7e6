"""
Unit tests for the incremental SSE decoder.

Covers:
1. Block parsing (event names, data joining, defaults)
2. Keep-alive and empty blocks
3. Identical output for every chunking of the same input
"""

import pytest

from agentlink_bridge.sse import SSEDecoder, iter_frames, parse_block
from agentlink_bridge.types import EventFrame

STREAM = (
    'event: message\ndata: {"from_agent_id":"bob","content":"hi","cursor":"c1"}\n\n'
    "\n\n"
    'event: ping\ndata: {"cursor":"c2"}\n\n'
    "data: line one\ndata:line two\ndata:  indented\n\n"
    "event: error\ndata: upstream unavailable\n\n"
    "event: message\ndata:\ndata: \n\n"
    ": comment only\n\n"
    "event: custom\nid: 7\ndata: {}\n\n"
    "event: ping\ndata: incomplete"
)

EXPECTED = [
    EventFrame("message", '{"from_agent_id":"bob","content":"hi","cursor":"c1"}'),
    EventFrame("ping", '{"cursor":"c2"}'),
    EventFrame("message", "line one\nline two\n indented"),
    EventFrame("error", "upstream unavailable"),
    EventFrame("custom", "{}"),
]


def decode_chunks(chunks: list[str]) -> list[EventFrame]:
    decoder = SSEDecoder()
    frames: list[EventFrame] = []
    for chunk in chunks:
        frames.extend(decoder.feed(chunk))
    return frames


class TestParseBlock:
    def test_event_and_data(self):
        assert parse_block("event: ping\ndata: {}") == EventFrame("ping", "{}")

    def test_defaults_to_message(self):
        """A block without an event line is a message frame."""
        assert parse_block('data: {"content":"x"}') == EventFrame("message", '{"content":"x"}')

    def test_strips_at_most_one_leading_space(self):
        assert parse_block("data:   three").data == "  three"
        assert parse_block("data:none").data == "none"

    def test_event_name_is_trimmed(self):
        assert parse_block("event:   ping  \ndata: x").event == "ping"

    def test_multiline_data_joined(self):
        frame = parse_block("data: a\nignored: b\ndata: c")
        assert frame == EventFrame("message", "a\nc")

    def test_blank_data_yields_nothing(self):
        assert parse_block("data:\ndata: ") is None
        assert parse_block("event: ping") is None
        assert parse_block("") is None


class TestSSEDecoder:
    def test_whole_input(self):
        assert decode_chunks([STREAM]) == EXPECTED

    def test_trailing_block_is_buffered(self):
        decoder = SSEDecoder()
        decoder.feed(STREAM)
        assert decoder.pending == "event: ping\ndata: incomplete"

        frames = decoder.feed("\n\n")
        assert frames == [EventFrame("ping", "incomplete")]
        assert decoder.pending == ""

    def test_multiple_frames_in_one_read(self):
        decoder = SSEDecoder()
        frames = decoder.feed("data: 1\n\ndata: 2\n\ndata: 3\n\n")
        assert [f.data for f in frames] == ["1", "2", "3"]

    def test_frame_split_across_reads(self):
        decoder = SSEDecoder()
        assert decoder.feed("event: pi") == []
        assert decoder.feed("ng\nda") == []
        assert decoder.feed('ta: {"cursor":"c9"}\n') == []
        assert decoder.feed("\n") == [EventFrame("ping", '{"cursor":"c9"}')]

    def test_every_two_way_split_matches(self):
        for i in range(len(STREAM) + 1):
            assert decode_chunks([STREAM[:i], STREAM[i:]]) == EXPECTED, f"split at {i}"

    def test_every_three_way_split_matches(self):
        step = 3
        for i in range(0, len(STREAM) + 1, step):
            for j in range(i, len(STREAM) + 1, step):
                chunks = [STREAM[:i], STREAM[i:j], STREAM[j:]]
                assert decode_chunks(chunks) == EXPECTED, f"split at {i}, {j}"

    @pytest.mark.parametrize("size", [1, 2, 5, 7, 13, 64])
    def test_fixed_size_chunks_match(self, size: int):
        chunks = [STREAM[i : i + size] for i in range(0, len(STREAM), size)]
        assert decode_chunks(chunks) == EXPECTED

    def test_fresh_decoder_has_no_state(self):
        first = SSEDecoder()
        first.feed("data: partial")
        assert SSEDecoder().pending == ""


class TestIterFrames:
    @pytest.mark.asyncio
    async def test_decodes_async_chunks(self):
        async def chunks():
            for i in range(0, len(STREAM), 4):
                yield STREAM[i : i + 4]

        frames = [frame async for frame in iter_frames(chunks())]
        assert frames == EXPECTED
