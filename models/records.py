"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional


class SensorFamily(str, Enum):
    """Categories of field sensors that report into the realtime cache."""

    temperature = "temperature"
    humidity = "humidity"
    water_level = "water_level"
    water_weight = "water_weight"


class ReadingStatus(str, Enum):
    active = "active"
    inactive = "inactive"


class ValveStatus(str, Enum):
    open = "open"
    closed = "closed"


@dataclass(frozen=True, slots=True)
class CachedReading:
    """Last value reported by a sensor, as held in the live cache.

    ``received_at`` is a monotonic marker used only for liveness math and is
    never persisted; ``captured_at`` is the wall-clock time stored downstream.
    """

    sensor_id: str
    value: float
    captured_at: datetime
    received_at: float


@dataclass(frozen=True, slots=True)
class SensorReading:
    """A cache entry as seen through a snapshot, with derived liveness."""

    sensor_id: str
    value: float
    captured_at: datetime
    status: ReadingStatus

    @property
    def is_active(self) -> bool:
        return self.status is ReadingStatus.active


@dataclass(frozen=True, slots=True)
class ValveState:
    status: ValveStatus = ValveStatus.closed
    level: float = 0.0
    captured_at: Optional[datetime] = None


@dataclass(frozen=True)
class CacheSnapshot:
    """Point-in-time copy of the realtime cache."""

    readings: Dict[SensorFamily, Dict[str, SensorReading]] = field(default_factory=dict)
    valve: ValveState = field(default_factory=ValveState)
    last_update: Optional[datetime] = None
    ttl_ms: int = 30_000

    def family(self, family: SensorFamily) -> Dict[str, SensorReading]:
        return self.readings.get(family, {})
