from __future__ import annotations

import pytest

from models.records import SensorFamily
from services.errors import EmptyPayloadError, ValidationError
from services.ingestion import IngestionService
from storage.realtime_cache import RealtimeCache


@pytest.fixture
def ingestion(cache: RealtimeCache) -> IngestionService:
    return IngestionService(cache)


def test_empty_payload_rejects_whole_request(ingestion: IngestionService) -> None:
    with pytest.raises(EmptyPayloadError):
        ingestion.ingest_batch(SensorFamily.humidity, {})


def test_partial_success_reports_every_rejection(ingestion: IngestionService, cache) -> None:
    result = ingestion.ingest_batch(
        SensorFamily.humidity,
        {"RH1": 45.0, "RH9": 50.0, "RH2": "wet", "RH3": 120.0, "RH4": 0},
    )

    assert result.accepted == [("RH1", 45.0), ("RH4", 0.0)]
    assert [(item.sensor_id, item.reason) for item in result.rejected] == [
        ("RH9", "bad-identifier-format"),
        ("RH2", "non-numeric-value"),
        ("RH3", "out-of-range"),
    ]
    assert set(cache.snapshot().family(SensorFamily.humidity)) == {"RH1", "RH4"}


def test_batch_shares_one_capture_time(ingestion: IngestionService, cache, clock) -> None:
    result = ingestion.ingest_batch(SensorFamily.temperature, {"T1": 20.0, "T2": 21.0})

    readings = cache.snapshot().family(SensorFamily.temperature)
    assert readings["T1"].captured_at == readings["T2"].captured_at == result.captured_at
    assert result.captured_at == clock.now()


def test_all_rejected_batch_does_not_touch_cache(ingestion: IngestionService, cache) -> None:
    result = ingestion.ingest_batch(SensorFamily.temperature, {"T16": 999})

    assert result.accepted == []
    assert cache.snapshot().last_update is None


def test_valve_report_rejection_keeps_state(ingestion: IngestionService) -> None:
    ingestion.report_valve("open", 15.5)

    with pytest.raises(ValidationError):
        ingestion.report_valve("bogus")

    view = ingestion.realtime_view()
    assert view["valve_status"] == "open"
    assert view["valve_level"] == 15.5
    assert view["pump_on"] is True


def test_realtime_view_groups_temperatures(ingestion: IngestionService, clock) -> None:
    ingestion.ingest_batch(SensorFamily.temperature, {"T10": 24.0, "T2": 22.0, "T8": 23.0})
    ingestion.ingest_batch(SensorFamily.water_level, {"WL1": 75})
    clock.advance(45)
    ingestion.ingest_batch(SensorFamily.water_weight, {"WW1": 500.5})

    view = ingestion.realtime_view()

    assert view["air_temperature"] == {"T2": 22.0}
    assert list(view["water_temperature"]) == ["T8", "T10"]
    assert view["water_level"] == {"WL1": 75.0}
    assert view["water_weight"] == {"WW1": 500.5}
    assert view["sensor_status"]["air_temperature"]["T2"] is False
    assert view["sensor_status"]["water_weight"]["WW1"] is True
    assert view["valve_status"] == "closed"
    assert view["pump_on"] is False


def test_cache_status_counts(ingestion: IngestionService) -> None:
    ingestion.ingest_batch(SensorFamily.temperature, {"T1": 20.0, "T2": 21.0})
    ingestion.ingest_batch(SensorFamily.water_level, {"WL1": 10})

    status = ingestion.cache_status()

    assert status["sensors"]["temperature"] == 2
    assert status["sensors"]["water_level"] == 1
    assert status["total_sensors"] == 3

    ingestion.clear_cache()
    assert ingestion.cache_status()["total_sensors"] == 0
