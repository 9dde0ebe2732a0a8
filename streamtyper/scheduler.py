"""Named, cancellable timers on the running asyncio loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

_Timer = Union[asyncio.TimerHandle, asyncio.Task]


class Scheduler:
    """Timer registry for one subscription or pacing session.

    Every timer has a name and at most one timer per name is alive: creating
    a timer clears the previous one of the same name. Interval callbacks run
    sequentially inside one task, so a tick never overlaps the previous one.
    Must be used from code running on an event loop.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._timers: Dict[str, _Timer] = {}

    def set_timeout(self, name: str, delay: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` once after ``delay`` seconds."""
        self.clear(name)

        def fire() -> None:
            self._timers.pop(name, None)
            callback()

        self._timers[name] = self._get_loop().call_later(max(delay, 0.0), fire)

    def set_interval(self, name: str, interval: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` every ``interval`` seconds until cleared."""
        self.clear(name)

        async def _tick_loop() -> None:
            while True:
                await asyncio.sleep(interval)
                try:
                    callback()
                except Exception:
                    logger.exception("Interval timer %r raised", name)

        self._timers[name] = self._get_loop().create_task(_tick_loop())

    def clear(self, name: str) -> None:
        timer = self._timers.pop(name, None)
        if timer is not None:
            timer.cancel()

    def clear_all(self) -> None:
        for name in list(self._timers):
            self.clear(name)

    def active(self, name: str) -> bool:
        return name in self._timers

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()
