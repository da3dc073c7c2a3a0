"""Aggregation logic for persisted readings."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable

from app.schemas import StoredReading


@dataclass
class AggregationSummary:
    """Computed statistics over a set of stored readings."""

    row_count: int = 0
    min_value: float | None = None
    max_value: float | None = None
    mean_value: float | None = None
    per_sensor_count: Dict[str, int] = field(default_factory=dict)
    per_type_count: Dict[str, int] = field(default_factory=dict)
    latest_created_at: datetime | None = None


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, readings: Iterable[StoredReading]) -> AggregationSummary:
        summary = AggregationSummary()
        total = 0.0

        for reading in readings:
            summary.row_count += 1
            value = reading.value
            total += value

            if summary.min_value is None or value < summary.min_value:
                summary.min_value = value
            if summary.max_value is None or value > summary.max_value:
                summary.max_value = value
            if summary.latest_created_at is None or reading.created_at > summary.latest_created_at:
                summary.latest_created_at = reading.created_at

            summary.per_sensor_count[reading.sensor_id] = (
                summary.per_sensor_count.get(reading.sensor_id, 0) + 1
            )
            summary.per_type_count[reading.sensor_type] = (
                summary.per_type_count.get(reading.sensor_type, 0) + 1
            )

        if summary.row_count:
            summary.mean_value = total / summary.row_count

        return summary
