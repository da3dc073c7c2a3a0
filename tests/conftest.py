from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, List

import pytest

from datastore.readings_store import ReadingsTable
from services.logger_config import LoggerConfiguration
from services.persistence import PersistenceLoop
from storage.realtime_cache import RealtimeCache


class FakeClock:
    """Deterministic clock; wall time moves with the monotonic reading."""

    def __init__(self, start: float = 1000.0) -> None:
        self._start = start
        self._monotonic = start
        self._wall_origin = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def monotonic(self) -> float:
        return self._monotonic

    def now(self) -> datetime:
        return self._wall_origin + timedelta(seconds=self._monotonic - self._start)

    def advance(self, seconds: float) -> None:
        self._monotonic += seconds


class FakeTimer:
    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class TimerRecorder:
    """Timer factory that keeps every timer it hands out."""

    def __init__(self) -> None:
        self.timers: List[FakeTimer] = []

    def __call__(self, interval: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> List[FakeTimer]:
        return [timer for timer in self.timers if timer.started and not timer.cancelled]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> RealtimeCache:
    return RealtimeCache(clock=clock)


@pytest.fixture
def store(clock: FakeClock) -> ReadingsTable:
    return ReadingsTable(now=clock.now)


@pytest.fixture
def timers() -> TimerRecorder:
    return TimerRecorder()


@pytest.fixture
def loop(cache: RealtimeCache, store: ReadingsTable, timers: TimerRecorder) -> Iterator[PersistenceLoop]:
    persistence = PersistenceLoop(
        cache=cache,
        store=store,
        configuration=LoggerConfiguration(interval_ms=5000),
        timer_factory=timers,
    )
    yield persistence
    persistence.shutdown()
