"""
streamtyper - resilient event-stream client with paced text delivery.

Example:
    >>> from streamtyper import EventSource, EventSourceConfig, PacingQueue, TypingSession
    >>> source = EventSource(EventSourceConfig(url="https://api.example.com/stream"))
    >>> pacer = PacingQueue(lambda info: print(info.appended, end=""))
    >>> session = TypingSession(source, pacer)
    >>> session.start()  # inside a running event loop
"""

from .decoder import DONE, DONE_SENTINEL, FrameDecoder, StreamDone, iter_messages
from .emitter import EventEmitter
from .event_source import EventSource, backoff_delay
from .pacer import PacingQueue
from .scheduler import Scheduler
from .session import TypingSession
from .throttle import RenderThrottler
from .tokenizer import PUNCTUATION, tokenize
from .transport import HttpxTransport, StreamTransport
from .types import (
    CLOSED,
    CONNECTING,
    OPEN,
    ConnectionState,
    EventSourceConfig,
    FlushInfo,
    PacerConfig,
    RetryState,
    StateChange,
    StreamError,
    StreamMessage,
)

__version__ = "0.1.0"
__all__ = [
    # Client
    "EventSource",
    "EventSourceConfig",
    "backoff_delay",
    # Transport
    "StreamTransport",
    "HttpxTransport",
    # Decoding
    "FrameDecoder",
    "iter_messages",
    "StreamDone",
    "DONE",
    "DONE_SENTINEL",
    # Events
    "EventEmitter",
    "StreamMessage",
    "StreamError",
    "StateChange",
    "RetryState",
    "ConnectionState",
    "CONNECTING",
    "OPEN",
    "CLOSED",
    # Pacing
    "PacingQueue",
    "PacerConfig",
    "FlushInfo",
    "RenderThrottler",
    "TypingSession",
    "tokenize",
    "PUNCTUATION",
    # Timers
    "Scheduler",
]
