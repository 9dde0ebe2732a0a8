"""
Resilient event-stream client.

Example::

    source = EventSource(EventSourceConfig(url="https://api.example.com/stream"))

    @source.on("message")
    def on_message(msg):
        print(msg.data)

    source.on("statechange", lambda change: print(change.state, change.next_retry_delay))
    source.connect()

Connection lifecycle: ``connecting`` -> ``open`` -> (error) ``connecting`` ->
... -> ``closed``. ``closed`` is reached by :meth:`EventSource.close` or when
the retry counter exceeds ``max_retries``; any other failure schedules a
reconnect with exponential backoff, resuming from the last seen event id.
"""

from __future__ import annotations

import functools
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Set

from .decoder import FrameDecoder
from .emitter import EventEmitter
from .scheduler import Scheduler
from .transport import HttpxTransport, StreamTransport
from .types import (
    CLOSED,
    CONNECTING,
    CONTENT_TYPE,
    EVENT_DONE,
    EVENT_ERROR,
    EVENT_OPEN,
    EVENT_STATECHANGE,
    HEARTBEAT_TIMEOUT,
    HTTP_STATUS,
    MAX_RETRIES_EXCEEDED,
    OPEN,
    STREAM_ENDED,
    TRANSPORT_ERROR,
    ConnectionState,
    EventSourceConfig,
    RetryState,
    StateChange,
    StreamError,
    StreamMessage,
)

logger = logging.getLogger(__name__)

HEARTBEAT_TIMER = "heartbeat"
RETRY_TIMER = "retry"
EVENT_STREAM_TYPE = "text/event-stream"


def backoff_delay(retry_count: int, base_ms: int, max_ms: int = 30000) -> int:
    """Delay before the ``retry_count``-th consecutive reconnect (1-based)."""
    return min(base_ms * 2 ** (retry_count - 1), max_ms)


class EventSource(EventEmitter):
    """Event-stream subscription with heartbeat watchdog and auto-reconnect.

    Events emitted: ``open``, ``message`` (StreamMessage), ``error``
    (StreamError), ``done``, ``statechange`` (StateChange) and any custom
    ``event:`` name sent by the server (StreamMessage).

    All callbacks run on the event loop that called :meth:`connect`.
    """

    def __init__(
        self,
        config: EventSourceConfig,
        *,
        transport_factory: Optional[Callable[[], StreamTransport]] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__()
        self._config = config
        self._transport_factory = transport_factory or HttpxTransport
        self._scheduler = scheduler or Scheduler()
        self._clock = clock
        self._retry = RetryState(retry_interval_ms=config.retry_interval_ms)
        self._decoder = FrameDecoder(self._retry, self._handle_message, self._handle_done)
        self._state: ConnectionState = CONNECTING
        self._manually_closed = False
        self._transport: Optional[StreamTransport] = None
        self._last_receive = 0.0
        self._seen_ids: Set[str] = set()
        self._seen_order: Deque[str] = deque()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def retry_state(self) -> RetryState:
        return self._retry

    @property
    def last_event_id(self) -> str:
        return self._retry.last_event_id

    @property
    def closed(self) -> bool:
        """True once close() was called; the subscription cannot be revived."""
        return self._manually_closed

    # --- Public API ---

    def connect(self) -> None:
        """Open a fresh connection attempt, replacing any previous one."""
        if self._manually_closed:
            return

        self._teardown()
        self._set_state(CONNECTING)
        if self._manually_closed:
            return

        transport = self._transport_factory()
        self._transport = transport
        self._last_receive = self._clock()
        self._scheduler.set_interval(
            HEARTBEAT_TIMER,
            self._config.heartbeat_timeout_ms / 2000.0,
            self._check_heartbeat,
        )
        logger.info("Connecting to %s (attempt %d)", self._config.url, self._retry.retry_count + 1)
        transport.open(
            self._config.url,
            self._request_headers(),
            on_open=functools.partial(self._on_transport_open, transport),
            on_chunk=functools.partial(self._on_transport_chunk, transport),
            on_error=functools.partial(self._on_transport_error, transport),
            on_end=functools.partial(self._on_transport_end, transport),
        )

    def reconnect(self) -> None:
        """Reconnect now with a fresh retry budget."""
        if self._manually_closed:
            return
        self._retry.retry_count = 0
        self.connect()

    def close(self) -> None:
        """Close permanently. Safe to call repeatedly and from callbacks."""
        if self._manually_closed:
            return
        self._manually_closed = True
        self._teardown()
        logger.info("Event stream %s closed", self._config.url)
        self._set_state(CLOSED, reason="closed")

    async def __aenter__(self) -> "EventSource":
        self.connect()
        return self

    async def __aexit__(self, *args: object) -> None:
        self.close()

    # --- Transport callbacks ---

    def _is_current(self, transport: StreamTransport) -> bool:
        return not self._manually_closed and transport is self._transport

    def _on_transport_open(
        self, transport: StreamTransport, status_code: Optional[int], content_type: Optional[str],
    ) -> None:
        if not self._is_current(transport):
            return
        if status_code is not None and status_code != 200:
            self._handle_error(StreamError(code=HTTP_STATUS, message=f"unexpected status {status_code}"))
            return
        if content_type is not None and EVENT_STREAM_TYPE not in content_type.lower():
            self._handle_error(StreamError(
                code=CONTENT_TYPE, message=f"unexpected content-type {content_type!r}",
            ))
            return

        self._retry.retry_count = 0
        logger.info("Event stream %s open", self._config.url)
        self._set_state(OPEN)
        if not self._is_current(transport):
            return
        self._emit(EVENT_OPEN)

    def _on_transport_chunk(self, transport: StreamTransport, chunk: bytes) -> None:
        if not self._is_current(transport):
            return
        self._last_receive = self._clock()
        self._decoder.feed(chunk)

    def _on_transport_error(self, transport: StreamTransport, reason: str) -> None:
        if not self._is_current(transport):
            return
        self._handle_error(StreamError(code=TRANSPORT_ERROR, message=reason))

    def _on_transport_end(self, transport: StreamTransport) -> None:
        if not self._is_current(transport):
            return
        self._handle_error(StreamError(code=STREAM_ENDED, message="stream ended"))

    # --- Decoder callbacks ---

    def _handle_message(self, message: StreamMessage) -> None:
        if self._manually_closed:
            return
        if self._config.dedup_ids and message.id:
            if message.id in self._seen_ids:
                logger.debug("Skipping already delivered event id %r", message.id)
                return
            self._seen_ids.add(message.id)
            self._seen_order.append(message.id)
            if len(self._seen_order) > self._config.dedup_window:
                self._seen_ids.discard(self._seen_order.popleft())
        self._emit(message.event, message)

    def _handle_done(self) -> None:
        if self._manually_closed:
            return
        logger.debug("Stream %s signalled completion", self._config.url)
        self._emit(EVENT_DONE)
        if self._config.auto_close_on_done:
            self.close()

    # --- Failure handling ---

    def _check_heartbeat(self) -> None:
        if self._manually_closed or self._transport is None:
            return
        elapsed_ms = (self._clock() - self._last_receive) * 1000.0
        if elapsed_ms > self._config.heartbeat_timeout_ms:
            self._handle_error(StreamError(
                code=HEARTBEAT_TIMEOUT,
                message=f"heartbeat timeout ({int(elapsed_ms)}ms without data)",
            ))

    def _handle_error(self, error: StreamError) -> None:
        """Single sink for every failure: decides between retry and giving up."""
        if self._manually_closed:
            return

        transport = self._transport
        logger.warning("Event stream %s error [%s]: %s", self._config.url, error.code, error.message)
        self._emit(EVENT_ERROR, error)
        if self._manually_closed or self._transport is not transport:
            # An error subscriber already closed or reconnected.
            return

        self._teardown()
        self._state = CONNECTING
        self._retry.retry_count += 1

        if self._retry.retry_count > self._config.max_retries:
            logger.error(
                "Giving up on %s after %d failed attempts", self._config.url, self._retry.retry_count,
            )
            self._set_state(CLOSED, reason=MAX_RETRIES_EXCEEDED)
            return

        delay = backoff_delay(
            self._retry.retry_count, self._retry.retry_interval_ms, self._config.max_retry_delay_ms,
        )
        # Armed before announcing it so a statechange subscriber can still cancel it.
        self._scheduler.set_timeout(RETRY_TIMER, delay / 1000.0, self.connect)
        self._set_state(CONNECTING, reason=error.message, next_retry_delay=delay)

    def _teardown(self) -> None:
        self._scheduler.clear(HEARTBEAT_TIMER)
        self._scheduler.clear(RETRY_TIMER)
        transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
        self._decoder.reset()

    # --- Helpers ---

    def _request_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": EVENT_STREAM_TYPE,
            "Cache-Control": "no-cache",
        }
        if self._retry.last_event_id:
            headers["Last-Event-ID"] = self._retry.last_event_id
        headers.update(self._config.headers)
        return headers

    def _set_state(
        self,
        state: ConnectionState,
        *,
        reason: Optional[str] = None,
        next_retry_delay: Optional[int] = None,
    ) -> None:
        self._state = state
        self._emit(EVENT_STATECHANGE, StateChange(
            state=state,
            retry_count=self._retry.retry_count,
            retry_interval=self._retry.retry_interval_ms,
            next_retry_delay=next_retry_delay,
            reason=reason,
            last_event_id=self._retry.last_event_id,
            timestamp=time.time(),
        ))
