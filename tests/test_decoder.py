"""
Frame decoder unit tests
"""

import asyncio

import pytest

from streamtyper.decoder import DONE, FrameDecoder, iter_messages
from streamtyper.types import RetryState

# ============================================================================
# Test Helpers
# ============================================================================

WIRE = (
    "id: 1\n"
    "event: delta\n"
    "data: first line\n"
    "data:  indented\n"
    "\n"
    ": keepalive\n"
    "retry: 1500\n"
    "data: héllo 世界\r\n"
    "\r\n"
    "data: [DONE]\n"
    "\n"
).encode("utf-8")


class Collector:
    def __init__(self):
        self.retry = RetryState()
        self.messages = []
        self.done = 0
        self.decoder = FrameDecoder(self.retry, self.messages.append, self._on_done)

    def _on_done(self):
        self.done += 1

    def feed(self, *chunks):
        for chunk in chunks:
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            self.decoder.feed(chunk)
        return self.messages


def summarize(messages):
    return [(m.event, m.data, m.id, m.last_event_id) for m in messages]


# ============================================================================
# Field parsing
# ============================================================================


class TestRecords:
    def test_single_data_record(self):
        messages = Collector().feed("data: hello\n\n")
        assert len(messages) == 1
        assert messages[0].data == "hello"
        assert messages[0].event == "message"

    def test_named_event(self):
        messages = Collector().feed("event: chunk\ndata: token\n\n")
        assert messages[0].event == "chunk"
        assert messages[0].data == "token"

    def test_multi_line_data_joined_with_newline(self):
        messages = Collector().feed("data: line1\ndata: line2\ndata: line3\n\n")
        assert messages[0].data == "line1\nline2\nline3"

    def test_only_one_leading_space_removed(self):
        messages = Collector().feed("data:  two spaces\n\n")
        assert messages[0].data == " two spaces"

    def test_value_without_space(self):
        messages = Collector().feed("data:compact\n\n")
        assert messages[0].data == "compact"

    def test_trailing_whitespace_preserved(self):
        messages = Collector().feed("data: keep me  \n\n")
        assert messages[0].data == "keep me  "

    def test_blank_data_lines_preserved(self):
        messages = Collector().feed("data: a\ndata:\ndata: b\ndata:\n\n")
        assert messages[0].data == "a\n\nb\n"

    def test_field_without_colon(self):
        messages = Collector().feed("data\n\n")
        assert len(messages) == 1
        assert messages[0].data == ""

    def test_unknown_field_ignored(self):
        messages = Collector().feed("foo: bar\ndata: x\n\n")
        assert summarize(messages) == [("message", "x", None, "")]

    def test_comment_ignored(self):
        messages = Collector().feed(": ping\ndata: x\n: another\n\n")
        assert [m.data for m in messages] == ["x"]

    def test_blank_line_without_data_resets_event_name(self):
        messages = Collector().feed("event: custom\n\ndata: x\n\n")
        assert len(messages) == 1
        assert messages[0].event == "message"

    def test_crlf_lines(self):
        messages = Collector().feed("event: e\r\ndata: x\r\n\r\n")
        assert summarize(messages) == [("e", "x", None, "")]

    def test_only_one_carriage_return_stripped(self):
        messages = Collector().feed("data: x\r\r\n\n")
        assert messages[0].data == "x\r"

    def test_multiple_records_in_one_chunk(self):
        messages = Collector().feed("data: first\n\ndata: second\n\n")
        assert [m.data for m in messages] == ["first", "second"]


class TestIdAndRetry:
    def test_id_recorded(self):
        c = Collector()
        messages = c.feed("id: 42\ndata: x\n\n")
        assert messages[0].id == "42"
        assert messages[0].last_event_id == "42"
        assert c.retry.last_event_id == "42"

    def test_id_persists_but_record_id_does_not(self):
        c = Collector()
        messages = c.feed("id: 7\ndata: a\n\ndata: b\n\n")
        assert summarize(messages) == [
            ("message", "a", "7", "7"),
            ("message", "b", None, "7"),
        ]

    def test_id_with_nul_ignored(self):
        c = Collector()
        c.feed("id: 1\ndata: a\n\nid: bad\0id\ndata: b\n\n")
        assert c.retry.last_event_id == "1"

    def test_retry_updates_interval(self):
        c = Collector()
        c.feed("retry: 5000\n\n")
        assert c.retry.retry_interval_ms == 5000

    @pytest.mark.parametrize("value", ["abc", "", "-5", "1.5", "１２"])
    def test_malformed_retry_keeps_previous(self, value):
        c = Collector()
        c.retry.retry_interval_ms = 1234
        c.feed(f"retry: {value}\n\n")
        assert c.retry.retry_interval_ms == 1234


class TestDoneSentinel:
    def test_done_signals_completion(self):
        c = Collector()
        messages = c.feed("data: hi\n\ndata: [DONE]\n\n")
        assert [m.data for m in messages] == ["hi"]
        assert c.done == 1

    def test_done_with_named_event_still_completes(self):
        c = Collector()
        assert c.feed("event: end\ndata: [DONE]\n\n") == []
        assert c.done == 1

    def test_done_must_match_exactly(self):
        c = Collector()
        messages = c.feed("data: [DONE] \n\n")
        assert messages[0].data == "[DONE] "
        assert c.done == 0


# ============================================================================
# Chunk boundaries
# ============================================================================


class TestChunkBoundaries:
    def test_record_split_across_chunks(self):
        messages = Collector().feed("data: ab", "c\n\n")
        assert [m.data for m in messages] == ["abc"]

    def test_nothing_emitted_until_blank_line(self):
        c = Collector()
        c.feed("data: partial\n")
        assert c.messages == []
        c.feed("\n")
        assert [m.data for m in c.messages] == ["partial"]

    def test_byte_by_byte_matches_whole(self):
        whole = Collector()
        whole.feed(WIRE)
        split = Collector()
        split.feed(*[WIRE[i:i + 1] for i in range(len(WIRE))])
        assert summarize(split.messages) == summarize(whole.messages)
        assert split.done == whole.done == 1
        assert split.retry == whole.retry

    @pytest.mark.parametrize("size", [2, 3, 5, 7, 11, 64])
    def test_fixed_size_chunks_match_whole(self, size):
        whole = Collector()
        whole.feed(WIRE)
        split = Collector()
        split.feed(*[WIRE[i:i + size] for i in range(0, len(WIRE), size)])
        assert summarize(split.messages) == summarize(whole.messages)

    def test_multibyte_character_split(self):
        raw = "data: 世界\n\n".encode("utf-8")
        cut = raw.index("界".encode("utf-8")) + 1
        messages = Collector().feed(raw[:cut], raw[cut:])
        assert messages[0].data == "世界"

    def test_invalid_utf8_replaced(self):
        messages = Collector().feed(b"data: \xff\xfe\n\n")
        assert messages[0].data == "\ufffd\ufffd"

    def test_reset_drops_partial_record(self):
        c = Collector()
        c.feed("data: stale\ndata: more")
        c.decoder.reset()
        assert c.decoder.pending_bytes == 0
        c.feed("data: fresh\n\n")
        assert [m.data for m in c.messages] == ["fresh"]

    def test_reset_from_callback_stops_current_chunk(self):
        retry = RetryState()
        seen = []

        def on_message(message):
            seen.append(message.data)
            decoder.reset()

        decoder = FrameDecoder(retry, on_message, lambda: None)
        decoder.feed(b"data: one\n\ndata: two\n\n")
        assert seen == ["one"]
        assert decoder.pending_bytes == 0


# ============================================================================
# iter_messages
# ============================================================================


class TestIterMessages:
    def test_async_stream(self):
        async def chunks():
            yield b"data: a"
            yield b"\n\nevent: x\ndata: b\n\n"
            yield b"data: [DONE]\n\n"

        async def collect():
            return [item async for item in iter_messages(chunks())]

        items = asyncio.run(collect())
        assert [(i.event, i.data) for i in items[:2]] == [("message", "a"), ("x", "b")]
        assert items[2] is DONE

    def test_unterminated_record_not_emitted(self):
        async def chunks():
            yield b"data: complete\n\ndata: dangling"

        async def collect():
            return [item async for item in iter_messages(chunks())]

        items = asyncio.run(collect())
        assert [i.data for i in items] == ["complete"]
