"""
Frame decoder for the text/event-stream subset.

Turns raw byte chunks into lines, lines into fields and fields into records
at blank-line boundaries. Framing does not depend on how the transport splits
bytes across chunks: everything after the last line feed stays buffered until
the next chunk arrives.

Supported fields: ``data``, ``event``, ``id``, ``retry``. Lines starting with
``:`` are comments. A record whose data is ``[DONE]`` signals completion.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, AsyncIterable, Callable, List, Optional, Union

from .types import RetryState, StreamMessage

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


class StreamDone:
    """Marker yielded by :func:`iter_messages` for the completion sentinel."""

    def __repr__(self) -> str:
        return "StreamDone()"


DONE = StreamDone()


class FrameDecoder:
    """Incremental decoder feeding records to callbacks.

    Args:
        retry_state: Shared reconnect state; ``id:`` and ``retry:`` fields
            update it in place so the values survive reconnects.
        on_message: Called with each completed StreamMessage.
        on_done: Called when a record carries the ``[DONE]`` sentinel.
    """

    def __init__(
        self,
        retry_state: RetryState,
        on_message: Callable[[StreamMessage], None],
        on_done: Callable[[], None],
    ) -> None:
        self._retry = retry_state
        self._on_message = on_message
        self._on_done = on_done
        self._buffer = bytearray()
        self._data_lines: List[str] = []
        self._event_name: Optional[str] = None
        self._record_id: Optional[str] = None

    def feed(self, chunk: bytes) -> None:
        """Consume one chunk, dispatching every record it completes."""
        buf = self._buffer
        buf += chunk
        pos = 0
        while True:
            lf = buf.find(b"\n", pos)
            if lf == -1:
                break
            line = bytes(buf[pos:lf]).decode("utf-8", errors="replace")
            pos = lf + 1
            self._process_line(line)
            if buf is not self._buffer:
                # reset() ran from inside a callback; the rest belongs to a dead connection
                return
        del buf[:pos]

    def reset(self) -> None:
        """Drop buffered bytes and any half-built record."""
        self._buffer = bytearray()
        self._data_lines = []
        self._event_name = None
        self._record_id = None

    @property
    def pending_bytes(self) -> int:
        return len(self._buffer)

    def _process_line(self, line: str) -> None:
        if line.endswith("\r"):
            line = line[:-1]

        if not line:
            self._dispatch()
            return

        if line.startswith(":"):
            return

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data_lines.append(value)
        elif field == "id":
            if "\0" not in value:
                self._retry.last_event_id = value
                self._record_id = value
        elif field == "retry":
            if value.isascii() and value.isdigit():
                self._retry.retry_interval_ms = int(value)
            else:
                logger.debug("Ignoring malformed retry field %r", value)
        elif field == "event":
            self._event_name = value

    def _dispatch(self) -> None:
        if not self._data_lines:
            self._event_name = None
            self._record_id = None
            return

        data = "\n".join(self._data_lines)
        event = self._event_name or "message"
        record_id = self._record_id
        self._data_lines = []
        self._event_name = None
        self._record_id = None

        if data == DONE_SENTINEL:
            self._on_done()
            return

        self._on_message(StreamMessage(
            data=data,
            event=event,
            last_event_id=self._retry.last_event_id,
            id=record_id,
        ))


async def iter_messages(
    stream: AsyncIterable[bytes],
    retry_state: Optional[RetryState] = None,
) -> AsyncGenerator[Union[StreamMessage, StreamDone], None]:
    """Decode an async byte stream (e.g. ``response.aiter_bytes()``).

    Yields StreamMessage objects, and ``DONE`` when the completion sentinel
    arrives. Iteration continues after ``DONE``; the caller decides whether
    to stop. A trailing record without its blank line is not emitted.
    """
    pending: List[Union[StreamMessage, StreamDone]] = []
    decoder = FrameDecoder(
        retry_state or RetryState(),
        on_message=pending.append,
        on_done=lambda: pending.append(DONE),
    )
    async for chunk in stream:
        decoder.feed(chunk)
        while pending:
            yield pending.pop(0)
