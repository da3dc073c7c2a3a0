from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def monotonic(self) -> float:
        ...

    def now(self) -> datetime:
        ...


class SystemClock:
    """Process clock: monotonic seconds for TTL math, UTC wall-clock for captures."""

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
