"""Event fan-out shared by the stream client."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class EventEmitter:
    """Thread-safe event emitter keyed by event name.

    Names are open-ended: besides the lifecycle events (open, message, error,
    done, statechange) a server-defined ``event:`` name is routed to the
    subscribers registered under that name.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callable]] = {}
        self._once_wrappers: Dict[Tuple[str, Callable], Callable] = {}
        self._lock = threading.Lock()

    def on(self, event: str, callback: Optional[Callable] = None) -> Any:
        """Register event listener. Can be used as decorator."""
        if callback is None:
            # Used as decorator: @source.on("message")
            def decorator(fn: Callable) -> Callable:
                self._add_listener(event, fn)
                return fn
            return decorator
        self._add_listener(event, callback)
        return self

    def off(self, event: str, callback: Callable) -> Any:
        """Remove event listener."""
        with self._lock:
            listeners = self._listeners.get(event)
            if not listeners:
                return self
            target = self._once_wrappers.pop((event, callback), callback)
            if target in listeners:
                listeners.remove(target)
            if not listeners:
                del self._listeners[event]
        return self

    def once(self, event: str, callback: Callable) -> Any:
        """Register one-time event listener."""
        def wrapper(payload: Any) -> Any:
            self.off(event, callback)
            return callback(payload)

        with self._lock:
            self._once_wrappers[(event, callback)] = wrapper
        self._add_listener(event, wrapper)
        return self

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, ()))

    def _add_listener(self, event: str, callback: Callable) -> None:
        with self._lock:
            listeners = self._listeners.setdefault(event, [])
            if callback not in listeners:
                listeners.append(callback)

    def _emit(self, event: str, payload: Any = None) -> None:
        # Snapshot so (un)subscribing from inside a callback leaves this emission alone.
        with self._lock:
            listeners = list(self._listeners.get(event, ()))
        for cb in listeners:
            try:
                cb(payload)
            except Exception:
                logger.exception("Subscriber for %r raised", event)

    def _clear(self) -> None:
        with self._lock:
            self._listeners.clear()
            self._once_wrappers.clear()
