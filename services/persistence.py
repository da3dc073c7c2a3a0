"""Background persistence of realtime cache readings to the durable store."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache
from threading import Lock
from typing import Any, Dict, Mapping, Optional, Protocol

from datastore.readings_store import build_default_store
from models.records import CacheSnapshot, SensorFamily
from services.errors import StorageError
from services.identity import PERSISTABLE_FAMILIES, rule_for
from services.logger_config import LoggerConfiguration, Selection
from services.scheduler import RepeatingTimer, TimerFactory, TimerHandle
from services.staleness import DEFAULT_TTL_MS
from settings import get_settings
from storage.realtime_cache import RealtimeCache, build_default_cache

logger = logging.getLogger(__name__)


class DurableStore(Protocol):
    def create_record(
        self,
        sensor_id: str,
        sensor_type: str,
        value: float,
        unit: str,
        status: str,
        interval_seconds: Optional[int],
    ) -> Any:
        ...


@dataclass(frozen=True)
class CycleReport:
    cycle: int
    records_created: int
    records_failed: int


def persist_snapshot(
    snapshot: CacheSnapshot,
    store: DurableStore,
    selections: Mapping[SensorFamily, Selection],
    interval_seconds: Optional[int],
) -> tuple[int, int]:
    """Write the selected readings of ``snapshot`` to ``store``.

    Returns ``(created, failed)``. Families that are not persistable are
    skipped whatever their selection says. A failing record is logged and
    does not stop the remaining ones.
    """

    created = 0
    failed = 0
    for family in PERSISTABLE_FAMILIES:
        selection = selections.get(family)
        if selection is None:
            continue
        rule = rule_for(family)
        readings = snapshot.family(family)
        for sensor_id in selection.sensor_ids(family):
            reading = readings.get(sensor_id)
            if reading is None or reading.value is None:
                continue
            try:
                store.create_record(
                    sensor_id=sensor_id,
                    sensor_type=family.value,
                    value=round(reading.value, 2),
                    unit=rule.unit,
                    status=reading.status.value,
                    interval_seconds=interval_seconds,
                )
            except StorageError as exc:
                failed += 1
                logger.warning(
                    "Failed to persist reading: %s",
                    exc,
                    extra={"family": family.value, "sensor_id": sensor_id},
                )
                continue
            except Exception:  # noqa: BLE001
                failed += 1
                logger.exception(
                    "Unexpected error while persisting reading",
                    extra={"family": family.value, "sensor_id": sensor_id},
                )
                continue
            created += 1
    return created, failed


class PersistenceLoop:
    """Periodically samples the realtime cache and persists the selected readings.

    Ticks come from a repeating timer and are handed to a single-worker
    executor. A tick that fires while a cycle is still in flight is skipped,
    so cycles never overlap, not even across an interval change.
    """

    def __init__(
        self,
        cache: RealtimeCache,
        store: DurableStore,
        configuration: Optional[LoggerConfiguration] = None,
        ttl_ms: int = DEFAULT_TTL_MS,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self.cache = cache
        self.store = store
        self.ttl_ms = ttl_ms
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="persistence-cycle")
        self._timer_factory: TimerFactory = timer_factory or RepeatingTimer
        self._configuration = configuration or LoggerConfiguration()
        self._timer: Optional[TimerHandle] = None
        self._cycle_count = 0
        self._state_lock = Lock()
        self._cycle_lock = Lock()
        self._pending: Optional[Future[Optional[CycleReport]]] = None

    @property
    def configuration(self) -> LoggerConfiguration:
        with self._state_lock:
            return self._configuration

    @property
    def running(self) -> bool:
        with self._state_lock:
            return self._timer is not None

    @property
    def cycle_count(self) -> int:
        with self._state_lock:
            return self._cycle_count

    def start(self) -> bool:
        """Arm the timer. Returns ``False`` when the loop was already running."""
        with self._state_lock:
            if self._timer is not None:
                logger.info("Persistence loop already running")
                return False
            self._cycle_count = 0
            self._timer = self._arm(self._configuration.interval_ms)
            configuration = self._configuration

        logger.info(
            "Persistence loop started",
            extra={"interval_ms": configuration.interval_ms},
        )
        for family, sensor_ids in configuration.active_sensors().items():
            logger.info(
                "Active %s sensors: %s",
                family.value,
                ", ".join(sensor_ids) or "NONE",
            )
        return True

    def stop(self) -> bool:
        """Cancel the timer and return without waiting for an in-flight cycle."""
        with self._state_lock:
            timer = self._timer
            self._timer = None
        if timer is None:
            return False
        timer.cancel()
        logger.info("Persistence loop stopped")
        return True

    def set_interval(self, interval_ms: int) -> None:
        self.set_configuration(self.configuration.with_changes(interval_ms=interval_ms))

    def configure(
        self,
        interval_ms: Optional[int] = None,
        selections: Optional[Mapping[SensorFamily, Any]] = None,
    ) -> LoggerConfiguration:
        """Apply a partial change; raises ``ConfigurationError`` when nothing is given."""
        updated = self.configuration.with_changes(interval_ms=interval_ms, selections=selections)
        self.set_configuration(updated)
        return updated

    def set_configuration(self, configuration: LoggerConfiguration) -> None:
        """Swap in ``configuration``; the next cycle picks it up.

        A changed interval re-arms the timer while running. The cycle counter
        is left alone.
        """
        previous_timer: Optional[TimerHandle] = None
        with self._state_lock:
            interval_changed = configuration.interval_ms != self._configuration.interval_ms
            self._configuration = configuration
            if interval_changed and self._timer is not None:
                previous_timer = self._timer
                self._timer = self._arm(configuration.interval_ms)

        if previous_timer is not None:
            previous_timer.cancel()
            logger.info(
                "Persistence interval updated",
                extra={"interval_ms": configuration.interval_ms},
            )
        logger.info(
            "Logger configuration applied: %s",
            ", ".join(
                f"{family.value}={selection.describe()}"
                for family, selection in configuration.selections.items()
            ),
        )

    def run_cycle(self) -> Optional[CycleReport]:
        """Run one cycle on the calling thread; ``None`` if one is already running."""
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Persistence cycle already in flight; skipping")
            return None
        try:
            return self._execute_cycle()
        finally:
            self._cycle_lock.release()

    def flush_cache(self) -> int:
        """Persist every cached reading of every persistable family once."""
        snapshot = self.cache.snapshot(self.ttl_ms)
        selections = {family: Selection.everything() for family in PERSISTABLE_FAMILIES}
        created, failed = persist_snapshot(snapshot, self.store, selections, None)
        logger.info(
            "Realtime cache flushed to store",
            extra={"records_created": created, "records_failed": failed},
        )
        return created

    def status(self) -> Dict[str, Any]:
        with self._state_lock:
            configuration = self._configuration
            running = self._timer is not None
            cycle_count = self._cycle_count
        return {
            "running": running,
            "interval_ms": configuration.interval_ms,
            "cycle_count": cycle_count,
            "selections": {
                family.value: selection.describe()
                for family, selection in configuration.selections.items()
            },
            "enabled_families": {
                family.value: bool(selection.sensor_ids(family))
                for family, selection in configuration.selections.items()
            },
            "active_sensors": {
                family.value: sensor_ids
                for family, sensor_ids in configuration.active_sensors().items()
            },
        }

    def shutdown(self) -> None:
        """Clean up timer and executor resources during application shutdown."""
        self.stop()
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _arm(self, interval_ms: int) -> TimerHandle:
        timer = self._timer_factory(interval_ms / 1000.0, self._on_tick)
        timer.start()
        return timer

    def _on_tick(self) -> None:
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Previous persistence cycle still running; tick skipped")
            return
        try:
            future = self.executor.submit(self._drain_cycle)
        except RuntimeError:
            self._cycle_lock.release()
            logger.warning("Persistence executor is shut down; tick dropped")
            return
        future.add_done_callback(self._release_if_cancelled)
        self._pending = future

    def _release_if_cancelled(self, future: Future[Optional[CycleReport]]) -> None:
        # A cancelled tick never reaches _drain_cycle, which owns the release.
        if future.cancelled():
            self._cycle_lock.release()
            logger.info("Queued persistence cycle cancelled")

    def _drain_cycle(self) -> Optional[CycleReport]:
        try:
            return self._execute_cycle()
        except Exception:  # noqa: BLE001
            logger.exception("Persistence cycle failed")
            return None
        finally:
            self._cycle_lock.release()

    def _execute_cycle(self) -> CycleReport:
        configuration = self.configuration
        snapshot = self.cache.snapshot(self.ttl_ms)
        created, failed = persist_snapshot(
            snapshot,
            self.store,
            configuration.selections,
            configuration.interval_seconds,
        )
        with self._state_lock:
            self._cycle_count += 1
            cycle = self._cycle_count

        logger.info(
            "Persistence cycle completed",
            extra={"cycle": cycle, "records_created": created, "records_failed": failed},
        )
        return CycleReport(cycle=cycle, records_created=created, records_failed=failed)


@lru_cache
def build_default_loop() -> PersistenceLoop:
    """Factory that wires the persistence loop with the default cache and store."""
    settings = get_settings()
    configuration = LoggerConfiguration(interval_ms=settings.logger_interval_ms)
    return PersistenceLoop(
        cache=build_default_cache(),
        store=build_default_store(),
        configuration=configuration,
        ttl_ms=settings.cache_ttl_ms,
    )
