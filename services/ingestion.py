"""Admission of sensor reports into the realtime cache."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional

from models.records import SensorFamily, ValveState, ValveStatus
from services.errors import EmptyPayloadError, ValidationError
from services.identity import temperature_subfamily
from services.staleness import DEFAULT_TTL_MS
from settings import get_settings
from storage.realtime_cache import RealtimeCache, build_default_cache

logger = logging.getLogger(__name__)


@dataclass
class Rejection:
    sensor_id: str
    value: Any
    reason: str


@dataclass
class BatchResult:
    """Accepted/rejected partition of one batch submission."""

    family: SensorFamily
    captured_at: datetime
    accepted: List[tuple[str, float]] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)


class IngestionService:
    """Validates sensor reports and writes the admissible ones to the cache."""

    def __init__(self, cache: RealtimeCache, ttl_ms: int = DEFAULT_TTL_MS) -> None:
        self.cache = cache
        self.ttl_ms = ttl_ms

    def ingest_batch(self, family: SensorFamily, payload: Mapping[str, Any]) -> BatchResult:
        """Cache every valid entry of ``payload``; invalid ones are reported, not raised.

        Raises :class:`EmptyPayloadError` when ``payload`` has no entries.
        """
        family = SensorFamily(family)
        if not payload:
            raise EmptyPayloadError(f"No {family.value} data received.")

        captured_at = self.cache.clock.now()
        result = BatchResult(family=family, captured_at=captured_at)
        for sensor_id, value in payload.items():
            try:
                entry = self.cache.upsert(family, sensor_id, value, captured_at=captured_at)
            except ValidationError as exc:
                reason = getattr(exc.reason, "value", exc.reason)
                result.rejected.append(Rejection(sensor_id=sensor_id, value=value, reason=reason))
                logger.debug(
                    "Rejected reading",
                    extra={"family": family.value, "sensor_id": sensor_id, "reason": reason},
                )
                continue
            result.accepted.append((sensor_id, entry.value))

        logger.info(
            "Batch ingested",
            extra={
                "family": family.value,
                "accepted": len(result.accepted),
                "rejected": len(result.rejected),
            },
        )
        return result

    def report_valve(self, status: Any, level: Any = None) -> ValveState:
        state = self.cache.set_valve(status, level)
        logger.info("Valve status updated", extra={"status": state.status.value})
        return state

    def realtime_view(self) -> Dict[str, Any]:
        """Snapshot grouped the way the dashboard reads it."""
        snapshot = self.cache.snapshot(self.ttl_ms)
        groups: Dict[str, Dict[str, float]] = {
            "humidity": {},
            "air_temperature": {},
            "water_temperature": {},
            "water_level": {},
            "water_weight": {},
        }
        liveness: Dict[str, Dict[str, bool]] = {name: {} for name in groups}

        for family, readings in snapshot.readings.items():
            for sensor_id, reading in sorted(readings.items(), key=lambda item: _sort_key(item[0])):
                if family is SensorFamily.temperature:
                    group = f"{temperature_subfamily(sensor_id)}_temperature"
                else:
                    group = family.value
                groups[group][sensor_id] = reading.value
                liveness[group][sensor_id] = reading.is_active

        return {
            **groups,
            "sensor_status": liveness,
            "valve_status": snapshot.valve.status.value,
            "valve_level": snapshot.valve.level,
            "pump_on": snapshot.valve.status is ValveStatus.open,
            "last_update": snapshot.last_update,
            "timestamp": self.cache.clock.now(),
        }

    def cache_status(self) -> Dict[str, Any]:
        counts = {family.value: count for family, count in self.cache.counts().items()}
        return {
            "sensors": counts,
            "total_sensors": sum(counts.values()),
            "last_update": self.cache.last_update,
            "timestamp": self.cache.clock.now(),
        }

    def clear_cache(self) -> None:
        self.cache.clear()


def _sort_key(sensor_id: str) -> tuple[int, str]:
    digits = "".join(ch for ch in sensor_id if ch.isdigit())
    return (int(digits) if digits else 0, sensor_id)


@lru_cache
def build_default_ingestion(ttl_ms: Optional[int] = None) -> IngestionService:
    settings = get_settings()
    return IngestionService(
        cache=build_default_cache(),
        ttl_ms=settings.cache_ttl_ms if ttl_ms is None else ttl_ms,
    )
