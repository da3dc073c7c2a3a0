"""Unit tests for the background persistence loop."""

from __future__ import annotations

import logging
from threading import Event
from typing import Any, Dict, List

from models.records import SensorFamily
from services.errors import StorageError
from services.ingestion import IngestionService
from services.logger_config import LoggerConfiguration, Selection
from services.persistence import PersistenceLoop


class RecordingStore:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.records: List[Dict[str, Any]] = []
        self.fail_for = fail_for or set()

    def create_record(self, **fields: Any) -> Dict[str, Any]:
        if fields["sensor_id"] in self.fail_for:
            raise StorageError(f"disk full while writing {fields['sensor_id']}")
        self.records.append(fields)
        return fields


class BrokenStore(RecordingStore):
    def create_record(self, **fields: Any) -> Dict[str, Any]:
        if fields["sensor_id"] == "T1":
            raise RuntimeError("connection reset")
        return super().create_record(**fields)


class BlockingStore(RecordingStore):
    def __init__(self) -> None:
        super().__init__()
        self.entered = Event()
        self.release = Event()

    def create_record(self, **fields: Any) -> Dict[str, Any]:
        self.entered.set()
        self.release.wait(timeout=5)
        return super().create_record(**fields)


def _loop(cache, timers, store, **config: Any) -> PersistenceLoop:
    return PersistenceLoop(
        cache=cache,
        store=store,
        configuration=LoggerConfiguration(**config),
        timer_factory=timers,
    )


def test_end_to_end_single_temperature_record(cache, timers) -> None:
    ingestion = IngestionService(cache)
    result = ingestion.ingest_batch(SensorFamily.temperature, {"T1": 25.5, "T16": 999})

    assert result.accepted == [("T1", 25.5)]
    assert [(r.sensor_id, r.reason) for r in result.rejected] == [("T16", "bad-identifier-format")]

    store = RecordingStore()
    loop = _loop(cache, timers, store, interval_ms=5000)
    try:
        report = loop.run_cycle()
    finally:
        loop.shutdown()

    assert report is not None
    assert report.records_created == 1
    assert store.records == [
        {
            "sensor_id": "T1",
            "sensor_type": "temperature",
            "value": 25.5,
            "unit": "°C",
            "status": "active",
            "interval_seconds": 5,
        }
    ]


def test_cycle_rounds_values_and_tags_units(cache, timers) -> None:
    cache.upsert(SensorFamily.humidity, "RH2", 61.456)
    cache.upsert(SensorFamily.water_weight, "WW1", 1234.5678)
    store = RecordingStore()
    loop = _loop(cache, timers, store, interval_ms=12500)
    try:
        loop.run_cycle()
    finally:
        loop.shutdown()

    by_sensor = {record["sensor_id"]: record for record in store.records}
    assert by_sensor["RH2"]["value"] == 61.46
    assert by_sensor["RH2"]["unit"] == "%"
    assert by_sensor["WW1"]["value"] == 1234.57
    assert by_sensor["WW1"]["unit"] == "g"
    assert by_sensor["WW1"]["sensor_type"] == "water_weight"
    assert {record["interval_seconds"] for record in store.records} == {12}


def test_none_selection_produces_no_records(cache, timers) -> None:
    for index in range(1, 16):
        cache.upsert(SensorFamily.temperature, f"T{index}", 20.0)
    cache.upsert(SensorFamily.humidity, "RH1", 50.0)
    store = RecordingStore()
    loop = _loop(cache, timers, store)
    loop.configure(selections={SensorFamily.temperature: "none"})
    try:
        loop.run_cycle()
    finally:
        loop.shutdown()

    assert [record["sensor_id"] for record in store.records] == ["RH1"]


def test_single_sensor_selection(cache, timers) -> None:
    for sensor_id in ("T1", "T5", "T9"):
        cache.upsert(SensorFamily.temperature, sensor_id, 22.0)
    store = RecordingStore()
    loop = _loop(cache, timers, store)
    loop.configure(selections={SensorFamily.temperature: "T5"})
    try:
        loop.run_cycle()
    finally:
        loop.shutdown()

    assert [record["sensor_id"] for record in store.records] == ["T5"]


def test_water_level_is_never_persisted(cache, timers) -> None:
    cache.upsert(SensorFamily.water_level, "WL1", 80.0)
    store = RecordingStore()
    config = LoggerConfiguration(
        selections={
            SensorFamily.water_level: Selection.everything(),
            SensorFamily.temperature: Selection.everything(),
        }
    )
    loop = PersistenceLoop(cache=cache, store=store, configuration=config, timer_factory=timers)
    try:
        report = loop.run_cycle()
        loop.flush_cache()
    finally:
        loop.shutdown()

    assert report is not None
    assert report.records_created == 0
    assert store.records == []


def test_stale_readings_are_persisted_as_inactive(cache, clock, timers) -> None:
    cache.upsert(SensorFamily.temperature, "T3", 18.0)
    clock.advance(31)
    store = RecordingStore()
    loop = _loop(cache, timers, store)
    try:
        loop.run_cycle()
    finally:
        loop.shutdown()

    assert store.records[0]["status"] == "inactive"


def test_storage_failure_does_not_abort_cycle(cache, timers) -> None:
    cache.upsert(SensorFamily.temperature, "T1", 20.0)
    cache.upsert(SensorFamily.temperature, "T2", 21.0)
    cache.upsert(SensorFamily.humidity, "RH1", 45.0)
    store = RecordingStore(fail_for={"T1"})
    loop = _loop(cache, timers, store)
    try:
        report = loop.run_cycle()
        second = loop.run_cycle()
    finally:
        loop.shutdown()

    assert report is not None and second is not None
    assert report.records_failed == 1
    assert report.records_created == 2
    assert sorted(record["sensor_id"] for record in store.records) == ["RH1", "RH1", "T2", "T2"]
    assert loop.cycle_count == 2


def test_start_twice_arms_one_timer(loop, timers) -> None:
    assert loop.start() is True
    assert loop.start() is False

    assert len(timers.timers) == 1
    assert timers.timers[0].interval == 5.0
    assert loop.running is True


def test_tick_runs_one_cycle(loop, timers, cache) -> None:
    cache.upsert(SensorFamily.temperature, "T1", 20.0)
    loop.start()

    timers.timers[0].fire()
    loop._pending.result(timeout=5)

    assert loop.cycle_count == 1
    assert len(loop.store) == 1


def test_stop_cancels_timer(loop, timers) -> None:
    loop.start()

    assert loop.stop() is True
    assert loop.stop() is False
    assert timers.timers[0].cancelled is True
    assert loop.running is False


def test_restart_resets_cycle_counter(loop) -> None:
    loop.start()
    loop.run_cycle()
    loop.stop()
    assert loop.cycle_count == 1

    loop.start()
    assert loop.cycle_count == 0


def test_interval_change_rearms_timer_and_keeps_counter(loop, timers) -> None:
    loop.start()
    loop.run_cycle()

    loop.set_interval(2000)

    assert timers.timers[0].cancelled is True
    assert [timer.interval for timer in timers.live] == [2.0]
    assert loop.cycle_count == 1
    assert loop.configuration.interval_ms == 2000


def test_interval_change_while_stopped_only_stores_value(loop, timers) -> None:
    loop.set_interval(1500)

    assert timers.timers == []
    loop.start()
    assert timers.timers[0].interval == 1.5


def test_overlapping_tick_is_skipped(cache, timers) -> None:
    cache.upsert(SensorFamily.temperature, "T1", 20.0)
    store = BlockingStore()
    loop = _loop(cache, timers, store)
    loop.start()
    try:
        timers.timers[0].fire()
        assert store.entered.wait(timeout=5)
        pending = loop._pending

        timers.timers[0].fire()
        assert loop.run_cycle() is None

        store.release.set()
        pending.result(timeout=5)
    finally:
        store.release.set()
        loop.shutdown()

    assert loop.cycle_count == 1
    assert len(store.records) == 1


def test_in_flight_cycle_keeps_its_configuration(cache, timers) -> None:
    cache.upsert(SensorFamily.temperature, "T1", 20.0)
    cache.upsert(SensorFamily.temperature, "T2", 21.0)
    store = BlockingStore()
    loop = _loop(cache, timers, store)
    loop.start()
    try:
        timers.timers[0].fire()
        assert store.entered.wait(timeout=5)
        loop.configure(selections={SensorFamily.temperature: "none"})
        store.release.set()
        loop._pending.result(timeout=5)

        follow_up = loop.run_cycle()
    finally:
        store.release.set()
        loop.shutdown()

    assert sorted(record["sensor_id"] for record in store.records) == ["T1", "T2"]
    assert follow_up is not None and follow_up.records_created == 0


def test_stop_returns_while_cycle_drains(cache, timers) -> None:
    cache.upsert(SensorFamily.humidity, "RH1", 40.0)
    store = BlockingStore()
    loop = _loop(cache, timers, store)
    loop.start()
    try:
        timers.timers[0].fire()
        assert store.entered.wait(timeout=5)

        assert loop.stop() is True
        assert loop.running is False

        store.release.set()
        loop._pending.result(timeout=5)
    finally:
        store.release.set()
        loop.shutdown()

    assert loop.cycle_count == 1
    assert len(store.records) == 1


def test_status_reports_selection(loop) -> None:
    loop.configure(interval_ms=3000, selections={SensorFamily.temperature: "T5", SensorFamily.humidity: False})

    status = loop.status()

    assert status["running"] is False
    assert status["interval_ms"] == 3000
    assert status["cycle_count"] == 0
    assert status["selections"] == {"temperature": "T5", "humidity": "none", "water_weight": "all"}
    assert status["enabled_families"]["humidity"] is False
    assert status["active_sensors"]["temperature"] == ["T5"]


def test_flush_cache_persists_every_persistable_reading(loop, cache) -> None:
    cache.upsert(SensorFamily.temperature, "T8", 30.0)
    cache.upsert(SensorFamily.humidity, "RH7", 70.0)
    cache.upsert(SensorFamily.water_weight, "WW2", 10.0)
    cache.upsert(SensorFamily.water_level, "WL1", 10.0)
    loop.configure(selections={SensorFamily.temperature: "none"})

    saved = loop.flush_cache()

    assert saved == 3
    records = loop.store.scan()
    assert {record.sensor_id for record in records} == {"T8", "RH7", "WW2"}
    assert all(record.interval is None for record in records)
    assert loop.cycle_count == 0


def test_unexpected_store_error_is_logged_and_cycle_completes(cache, timers, caplog) -> None:
    cache.upsert(SensorFamily.temperature, "T1", 20.0)
    cache.upsert(SensorFamily.temperature, "T2", 21.0)
    store = BrokenStore()
    loop = _loop(cache, timers, store)
    loop.start()
    try:
        with caplog.at_level(logging.ERROR, logger="services.persistence"):
            timers.timers[0].fire()
            report = loop._pending.result(timeout=5)
    finally:
        loop.shutdown()

    assert report is not None
    assert report.records_failed == 1
    assert report.records_created == 1
    assert [record["sensor_id"] for record in store.records] == ["T2"]
    assert loop.cycle_count == 1
    errors = [record for record in caplog.records if record.levelno == logging.ERROR]
    assert errors and errors[0].exc_info[0] is RuntimeError


def test_interval_change_during_cycle_does_not_overlap(cache, timers) -> None:
    cache.upsert(SensorFamily.temperature, "T1", 20.0)
    store = BlockingStore()
    loop = _loop(cache, timers, store)
    loop.start()
    try:
        timers.timers[0].fire()
        assert store.entered.wait(timeout=5)
        pending = loop._pending

        loop.set_interval(2000)
        [rearmed] = timers.live
        assert rearmed.interval == 2.0
        rearmed.fire()
        assert loop._pending is pending
        assert loop.run_cycle() is None

        store.release.set()
        pending.result(timeout=5)
    finally:
        store.release.set()
        loop.shutdown()

    assert loop.cycle_count == 1
    assert len(store.records) == 1


def test_cancelled_queued_tick_frees_cycle_slot(cache, timers) -> None:
    cache.upsert(SensorFamily.humidity, "RH1", 40.0)
    store = RecordingStore()
    loop = _loop(cache, timers, store)
    gate = Event()
    worker_busy = Event()

    def occupy_worker() -> None:
        worker_busy.set()
        gate.wait(timeout=5)

    loop.start()
    try:
        loop.executor.submit(occupy_worker)
        assert worker_busy.wait(timeout=5)
        timers.timers[0].fire()
        queued = loop._pending

        loop.shutdown()
        assert queued.cancelled()
    finally:
        gate.set()

    report = loop.run_cycle()
    assert report is not None
    assert report.records_created == 1
