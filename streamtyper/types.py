"""Type definitions for streamtyper - connection states, payloads, configuration."""

from dataclasses import dataclass
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Connection State
# ============================================================================

ConnectionState = Literal["connecting", "open", "closed"]

CONNECTING: ConnectionState = "connecting"
OPEN: ConnectionState = "open"
CLOSED: ConnectionState = "closed"

# Well-known lifecycle event names. Any other name is a server-defined event.
EVENT_OPEN = "open"
EVENT_MESSAGE = "message"
EVENT_ERROR = "error"
EVENT_DONE = "done"
EVENT_STATECHANGE = "statechange"


# ============================================================================
# Errors
# ============================================================================

TRANSPORT_ERROR = "TRANSPORT_ERROR"
HTTP_STATUS = "HTTP_STATUS"
CONTENT_TYPE = "CONTENT_TYPE"
HEARTBEAT_TIMEOUT = "HEARTBEAT_TIMEOUT"
STREAM_ENDED = "STREAM_ENDED"
MAX_RETRIES_EXCEEDED = "MAX_RETRIES_EXCEEDED"


class StreamError(BaseModel):
    """Error information delivered to ``error`` subscribers."""
    code: str
    message: str


# ============================================================================
# Event Payloads
# ============================================================================

class StreamMessage(BaseModel):
    """A decoded event record."""
    data: str
    event: str = "message"
    last_event_id: str = Field(default="", alias="lastEventId")
    id: Optional[str] = None  # id carried by this record, if any

    class Config:
        populate_by_name = True


class StateChange(BaseModel):
    """Lifecycle notification for ``statechange`` subscribers."""
    state: ConnectionState
    retry_count: int = Field(alias="retryCount")
    retry_interval: int = Field(alias="retryInterval")
    next_retry_delay: Optional[int] = Field(default=None, alias="nextRetryDelay")
    reason: Optional[str] = None
    last_event_id: str = Field(default="", alias="lastEventId")
    timestamp: float

    class Config:
        populate_by_name = True


@dataclass
class RetryState:
    """Reconnect bookkeeping carried across connection attempts."""
    retry_count: int = 0
    retry_interval_ms: int = 3000
    last_event_id: str = ""


@dataclass
class FlushInfo:
    """Render callback payload for one paced flush."""
    full_text: str
    appended: str
    queue_length: int
    queue_chars: int


# ============================================================================
# Configuration
# ============================================================================

class EventSourceConfig(BaseModel):
    """Configuration for an EventSource subscription."""
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    heartbeat_timeout_ms: int = Field(default=30000, gt=0)
    auto_close_on_done: bool = True
    retry_interval_ms: int = Field(default=3000, ge=0)
    max_retries: int = Field(default=10, ge=0)
    max_retry_delay_ms: int = Field(default=30000, ge=0)
    dedup_ids: bool = False
    # Ids remembered for dedup; the oldest is forgotten first.
    dedup_window: int = Field(default=1024, gt=0)


PacerMode = Literal["fragment", "token"]


class PacerConfig(BaseModel):
    """Configuration for a PacingQueue.

    Budgets left unset take the defaults of the selected mode: fragment mode
    releases up to 1200 chars per tick, token mode up to 8 units / 80 chars.
    """
    mode: PacerMode = "fragment"
    flush_interval_ms: int = Field(default=33, gt=0)
    max_chars_per_flush: Optional[int] = Field(default=None, gt=0)
    max_units_per_flush: Optional[int] = Field(default=None, gt=0)
    max_queue_chars: int = Field(default=200_000, gt=0)
    flush_now_multiplier: Optional[int] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _apply_mode_defaults(self) -> "PacerConfig":
        token = self.mode == "token"
        if self.max_chars_per_flush is None:
            self.max_chars_per_flush = 80 if token else 1200
        if self.max_units_per_flush is None and token:
            self.max_units_per_flush = 8
        if self.flush_now_multiplier is None:
            self.flush_now_multiplier = 20 if token else 4
        return self
