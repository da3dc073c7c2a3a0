from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from threading import Lock
from typing import Any, Dict, Optional

from models.records import (
    CachedReading,
    CacheSnapshot,
    SensorFamily,
    SensorReading,
    ValveState,
)
from services.clock import Clock, SystemClock
from services.identity import validate_reading, validate_valve
from services.staleness import DEFAULT_TTL_MS, evaluate

logger = logging.getLogger(__name__)


class RealtimeCache:
    """Last reading per sensor, with liveness derived on read.

    Entries never expire by deletion. A snapshot flips the derived status of
    old entries to ``inactive`` and a sensor that resumes reporting simply
    overwrites its entry.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self.clock: Clock = clock or SystemClock()
        self._readings: Dict[SensorFamily, Dict[str, CachedReading]] = {
            family: {} for family in SensorFamily
        }
        self._family_locks: Dict[SensorFamily, Lock] = {family: Lock() for family in SensorFamily}
        self._valve = ValveState()
        self._valve_lock = Lock()
        self._last_update: Optional[datetime] = None
        self._meta_lock = Lock()

    def upsert(
        self,
        family: SensorFamily,
        sensor_id: str,
        value: Any,
        captured_at: Optional[datetime] = None,
    ) -> CachedReading:
        """Validate and store a reading, replacing any prior one for the sensor."""

        family = SensorFamily(family)
        number = validate_reading(family, sensor_id, value)
        captured = captured_at or self.clock.now()
        entry = CachedReading(
            sensor_id=sensor_id,
            value=number,
            captured_at=captured,
            received_at=self.clock.monotonic(),
        )
        with self._family_locks[family]:
            self._readings[family][sensor_id] = entry
        self._touch(captured)
        return entry

    def set_valve(
        self,
        status: Any,
        level: Any = None,
        captured_at: Optional[datetime] = None,
    ) -> ValveState:
        valve_status, valve_level = validate_valve(status, level)
        captured = captured_at or self.clock.now()
        state = ValveState(status=valve_status, level=valve_level, captured_at=captured)
        with self._valve_lock:
            self._valve = state
        self._touch(captured)
        return state

    def get_valve(self) -> ValveState:
        with self._valve_lock:
            return self._valve

    def snapshot(self, ttl_ms: int = DEFAULT_TTL_MS) -> CacheSnapshot:
        """Return a point-in-time copy with every entry's status recomputed."""

        now = self.clock.monotonic()
        readings: Dict[SensorFamily, Dict[str, SensorReading]] = {}
        for family in SensorFamily:
            with self._family_locks[family]:
                entries = list(self._readings[family].values())
            readings[family] = {
                entry.sensor_id: SensorReading(
                    sensor_id=entry.sensor_id,
                    value=entry.value,
                    captured_at=entry.captured_at,
                    status=evaluate(now, entry.received_at, ttl_ms),
                )
                for entry in entries
            }

        with self._meta_lock:
            last_update = self._last_update

        return CacheSnapshot(
            readings=readings,
            valve=self.get_valve(),
            last_update=last_update,
            ttl_ms=ttl_ms,
        )

    def clear(self) -> None:
        """Drop all sensor readings; the valve slot is device state and is kept."""

        for family in SensorFamily:
            with self._family_locks[family]:
                self._readings[family] = {}
        with self._meta_lock:
            self._last_update = None
        logger.info("Realtime cache cleared")

    def counts(self) -> Dict[SensorFamily, int]:
        result: Dict[SensorFamily, int] = {}
        for family in SensorFamily:
            with self._family_locks[family]:
                result[family] = len(self._readings[family])
        return result

    @property
    def last_update(self) -> Optional[datetime]:
        with self._meta_lock:
            return self._last_update

    def _touch(self, captured_at: datetime) -> None:
        with self._meta_lock:
            self._last_update = captured_at


@lru_cache
def build_default_cache() -> RealtimeCache:
    return RealtimeCache()
