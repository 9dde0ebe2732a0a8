"""Glue between an EventSource and a PacingQueue."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .event_source import EventSource
from .pacer import PacingQueue
from .types import CLOSED, EVENT_DONE, EVENT_MESSAGE, EVENT_STATECHANGE, StateChange, StreamMessage

logger = logging.getLogger(__name__)


class TypingSession:
    """Pace the text of ``message`` events into a render callback.

    Args:
        source: The subscription to read from. The session connects it on
            :meth:`start` and closes it on :meth:`close`.
        pacer: The queue receiving message text.
        extract: Maps a StreamMessage to the text to display, e.g. pulling a
            delta out of a JSON payload. Returning None or "" skips the record.
            Defaults to the raw ``data``.
        on_finished: Called once when the stream completes or gives up.
    """

    def __init__(
        self,
        source: EventSource,
        pacer: PacingQueue,
        *,
        extract: Optional[Callable[[StreamMessage], Optional[str]]] = None,
        on_finished: Optional[Callable[[], None]] = None,
    ) -> None:
        self.source = source
        self.pacer = pacer
        self._extract = extract or (lambda message: message.data)
        self._on_finished = on_finished
        self._finished = False

    @property
    def text(self) -> str:
        return self.pacer.text

    @property
    def finished(self) -> bool:
        return self._finished

    def start(self) -> None:
        self.source.on(EVENT_MESSAGE, self._handle_message)
        self.source.on(EVENT_DONE, self._handle_done)
        self.source.on(EVENT_STATECHANGE, self._handle_statechange)
        self.pacer.start()
        self.source.connect()

    def close(self) -> None:
        """Abort: close the stream and drop anything not yet rendered."""
        self._detach()
        self.source.close()
        self.pacer.stop()

    def _detach(self) -> None:
        self.source.off(EVENT_MESSAGE, self._handle_message)
        self.source.off(EVENT_DONE, self._handle_done)
        self.source.off(EVENT_STATECHANGE, self._handle_statechange)

    def _handle_message(self, message: StreamMessage) -> None:
        text = self._extract(message)
        if text:
            self.pacer.enqueue(text)

    def _handle_done(self, _: Any) -> None:
        self.pacer.flush_now()
        self._finish()

    def _handle_statechange(self, change: StateChange) -> None:
        if change.state == CLOSED:
            self.pacer.flush_now()
            self._finish()

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        logger.debug("Typing session finished with %d chars", len(self.pacer.text))
        if self._on_finished is not None:
            self._on_finished()
