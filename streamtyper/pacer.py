"""
Paced delivery of streamed text to a slower consumer.

The network side enqueues fragments as they arrive; a fixed-cadence timer
drains the queue up to a per-tick budget and hands the merged text to a
render callback. Bursty arrivals come out as a smooth, rate-limited stream.

Two modes share one queue:

- ``fragment``: each enqueued fragment is one unit; a tick releases up to
  ``max_chars_per_flush`` characters.
- ``token``: fragments are split by :func:`tokenize` first; a tick releases
  up to ``max_units_per_flush`` units and ``max_chars_per_flush`` characters.

Usage::

    pacer = PacingQueue(lambda info: render(info.full_text), PacerConfig(mode="token"))
    pacer.start()
    source.on("message", lambda msg: pacer.enqueue(msg.data))
    source.on("done", lambda _: pacer.flush_now())
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Deque, Optional

from .scheduler import Scheduler
from .tokenizer import tokenize
from .types import FlushInfo, PacerConfig

logger = logging.getLogger(__name__)

FLUSH_TIMER = "flush"


class PacingQueue:
    """Bounded, order-preserving FIFO drained at a fixed cadence.

    When the queue would exceed ``max_queue_chars`` the oldest units are
    evicted first; the unit being admitted is always kept. Nothing is ever
    reordered or duplicated, and a unit too large for the remaining budget is
    split with the remainder put back at the front.
    """

    def __init__(
        self,
        on_flush: Callable[[FlushInfo], None],
        config: Optional[PacerConfig] = None,
        *,
        scheduler: Optional[Scheduler] = None,
        verify_invariants: bool = False,
    ) -> None:
        self._config = config or PacerConfig()
        self._verify = verify_invariants
        self._on_flush = on_flush
        self._scheduler = scheduler or Scheduler()
        self._queue: Deque[str] = deque()
        self._queue_chars = 0
        self._full_text = ""
        self._running = False
        self._paused = False
        self._stopped = False

    @property
    def config(self) -> PacerConfig:
        return self._config

    @property
    def text(self) -> str:
        """All text flushed so far."""
        return self._full_text

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def queue_chars(self) -> int:
        return self._queue_chars

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def stopped(self) -> bool:
        return self._stopped

    # --- Input ---

    def enqueue(self, fragment: str) -> None:
        """Queue a fragment of text for paced delivery."""
        if self._stopped or not fragment:
            return
        if self._config.mode == "token":
            for unit in tokenize(fragment):
                self._admit(unit)
        else:
            self._admit(fragment)

    # --- Control ---

    def start(self) -> None:
        """Start (or resume) the flush timer."""
        if self._stopped:
            return
        self._paused = False
        if self._running:
            return
        self._running = True
        self._scheduler.set_interval(
            FLUSH_TIMER, self._config.flush_interval_ms / 1000.0, self._on_tick,
        )

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        if self._stopped:
            return
        self._paused = False
        if not self._running:
            self.start()

    def flush_now(self) -> None:
        """Drain the backlog quickly, e.g. once the upstream has finished."""
        if self._stopped:
            return
        multiplier = self._config.flush_now_multiplier
        max_units = self._config.max_units_per_flush
        while not self._paused and not self._stopped and self._queue:
            appended = self._flush(
                self._config.max_chars_per_flush * multiplier,
                max_units * multiplier if max_units else None,
            )
            if not appended:
                break

    def stop(self) -> None:
        """Terminal: discard the backlog and refuse further input."""
        if self._stopped:
            return
        self._stopped = True
        self._paused = True
        self._running = False
        self._scheduler.clear(FLUSH_TIMER)
        dropped = self._queue_chars
        self._queue.clear()
        self._queue_chars = 0
        if dropped:
            logger.debug("Pacer stopped with %d queued chars discarded", dropped)

    # --- Internal ---

    def _on_tick(self) -> None:
        if self._stopped or self._paused or not self._queue:
            return
        self._flush(self._config.max_chars_per_flush, self._config.max_units_per_flush)

    def _admit(self, unit: str) -> None:
        size = len(unit)
        limit = self._config.max_queue_chars
        evicted = 0
        while self._queue and self._queue_chars + size > limit:
            old = self._queue.popleft()
            self._queue_chars -= len(old)
            evicted += len(old)
        if evicted:
            logger.debug("Queue over %d chars, evicted %d oldest chars", limit, evicted)
        self._queue.append(unit)
        self._queue_chars += size
        self._check_invariant()

    def _flush(self, max_chars: int, max_units: Optional[int]) -> str:
        appended = self._drain(max_chars, max_units)
        if not appended:
            return ""
        self._full_text += appended
        self._on_flush(FlushInfo(
            full_text=self._full_text,
            appended=appended,
            queue_length=len(self._queue),
            queue_chars=self._queue_chars,
        ))
        return appended

    def _drain(self, max_chars: int, max_units: Optional[int]) -> str:
        """Take up to ``max_chars`` (and ``max_units``) from the front."""
        parts = []
        taken = 0
        units = 0
        while self._queue and taken < max_chars:
            if max_units is not None and units >= max_units:
                break
            head = self._queue[0]
            room = max_chars - taken
            if len(head) <= room:
                self._queue.popleft()
                piece = head
            else:
                piece = head[:room]
                self._queue[0] = head[room:]
            parts.append(piece)
            taken += len(piece)
            self._queue_chars -= len(piece)
            units += 1
        self._check_invariant()
        return "".join(parts)

    def _check_invariant(self) -> None:
        if not self._queue:
            actual = 0
        elif self._verify:
            actual = sum(len(u) for u in self._queue)
        else:
            return
        if self._queue_chars != actual:
            logger.error("queue_chars out of sync: tracked %d, queued %d", self._queue_chars, actual)
            self._queue_chars = actual
