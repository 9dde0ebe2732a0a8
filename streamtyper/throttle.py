"""Coalescing render throttle: render the latest text at most once per interval."""

from __future__ import annotations

from typing import Callable, Optional

from .scheduler import Scheduler

RENDER_TIMER = "render"


class RenderThrottler:
    """Collapse rapid full-text updates into one render per interval.

    Only the most recent text pushed during an interval is rendered; text equal
    to the last rendered text is skipped.
    """

    def __init__(
        self,
        on_render: Callable[[str], None],
        interval_ms: int = 80,
        *,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self._on_render = on_render
        self._interval = interval_ms / 1000.0
        self._scheduler = scheduler or Scheduler()
        self._pending: Optional[str] = None
        self._last_rendered = ""

    @property
    def last_rendered(self) -> str:
        return self._last_rendered

    def push(self, text: str) -> None:
        if text == self._last_rendered:
            return
        self._pending = text
        if self._scheduler.active(RENDER_TIMER):
            return
        self._scheduler.set_timeout(RENDER_TIMER, self._interval, self._render_pending)

    def flush_now(self) -> None:
        self._scheduler.clear(RENDER_TIMER)
        self._render_pending()

    def stop(self) -> None:
        self._scheduler.clear(RENDER_TIMER)
        self._pending = None

    def _render_pending(self) -> None:
        if self._pending is None:
            return
        latest, self._pending = self._pending, None
        self._last_rendered = latest
        self._on_render(latest)
