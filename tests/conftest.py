"""Shared fixtures: deterministic timers, clock and transport."""

from typing import Callable, Dict, List, Optional, Tuple

import pytest

from streamtyper import EventSource, EventSourceConfig, Scheduler

URL = "https://stream.test/events"


# ---------------------------------------------------------------------------
# Manual scheduler
# ---------------------------------------------------------------------------

class ManualScheduler(Scheduler):
    """Scheduler whose timers only run when a test fires them."""

    def __init__(self) -> None:
        super().__init__()
        self.timers: Dict[str, Tuple[str, float, Callable[[], None]]] = {}
        self.created: List[Tuple[str, str, float]] = []

    def set_timeout(self, name, delay, callback):
        self.clear(name)
        self.timers[name] = ("timeout", delay, callback)
        self.created.append(("timeout", name, delay))

    def set_interval(self, name, interval, callback):
        self.clear(name)
        self.timers[name] = ("interval", interval, callback)
        self.created.append(("interval", name, interval))

    def clear(self, name):
        self.timers.pop(name, None)

    def clear_all(self):
        self.timers.clear()

    def active(self, name):
        return name in self.timers

    def delay_of(self, name) -> float:
        return self.timers[name][1]

    def fire(self, name) -> None:
        kind, _, callback = self.timers[name]
        if kind == "timeout":
            del self.timers[name]
        callback()


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------

class FakeTransport:
    """StreamTransport driven by the test."""

    def __init__(self) -> None:
        self.url: Optional[str] = None
        self.headers: Dict[str, str] = {}
        self.closed = False
        self._handlers = {}

    def open(self, url, headers, *, on_open, on_chunk, on_error, on_end):
        self.url = url
        self.headers = dict(headers)
        self._handlers = dict(on_open=on_open, on_chunk=on_chunk, on_error=on_error, on_end=on_end)

    def close(self):
        self.closed = True

    # --- simulation helpers ---

    def accept(self, status=200, content_type="text/event-stream; charset=utf-8"):
        self._handlers["on_open"](status, content_type)

    def push(self, data):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._handlers["on_chunk"](data)

    def fail(self, reason="connection reset"):
        self._handlers["on_error"](reason)

    def end(self):
        self._handlers["on_end"]()


class TransportFactory:
    def __init__(self) -> None:
        self.created: List[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport()
        self.created.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.created[-1]


class Recorder:
    """Collects payloads per event name."""

    def __init__(self, source: EventSource, *names: str) -> None:
        self.events: Dict[str, list] = {name: [] for name in names}
        for name in names:
            source.on(name, self.events[name].append)

    def __getitem__(self, name: str) -> list:
        return self.events[name]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transports():
    return TransportFactory()


@pytest.fixture
def make_source(scheduler, clock, transports):
    def factory(**overrides) -> EventSource:
        config = EventSourceConfig(url=URL, **overrides)
        return EventSource(config, transport_factory=transports, scheduler=scheduler, clock=clock)
    return factory
