from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, List, Optional

from app.schemas import StoredReading
from services.errors import StorageError
from settings import get_settings

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadingsTable:
    """Durable store for persisted sensor readings, mirrored to a JSON file."""

    def __init__(
        self,
        persistence_path: Optional[Path] = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._items: Dict[int, StoredReading] = {}
        self._next_id = 1
        self.persistence_path = persistence_path
        self._now = now
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def create_record(
        self,
        sensor_id: str,
        sensor_type: str,
        value: float,
        unit: str,
        status: str,
        interval_seconds: Optional[int] = None,
    ) -> StoredReading:
        with self._lock:
            record = StoredReading(
                id=self._next_id,
                sensor_id=sensor_id,
                sensor_type=sensor_type,
                value=value,
                unit=unit,
                status=status,
                interval=interval_seconds,
                created_at=self._now(),
            )
            self._items[record.id] = record
            self._next_id += 1
            try:
                self._persist()
            except OSError as exc:
                del self._items[record.id]
                self._next_id -= 1
                raise StorageError(f"Could not persist reading for {sensor_id}: {exc}") from exc
            return record.model_copy(deep=True)

    def get_item(self, record_id: int) -> Optional[StoredReading]:
        with self._lock:
            item = self._items.get(record_id)
            if item is None:
                return None
            return item.model_copy(deep=True)

    def scan(
        self,
        limit: Optional[int] = None,
        sensor_id: Optional[str] = None,
        sensor_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[StoredReading]:
        """Return matching records newest first, as deep copies."""

        with self._lock:
            items = [item.model_copy(deep=True) for item in self._items.values()]

        if sensor_id is not None:
            items = [item for item in items if item.sensor_id == sensor_id]
        if sensor_type is not None:
            items = [item for item in items if item.sensor_type == sensor_type]
        if start is not None:
            items = [item for item in items if item.created_at >= start]
        if end is not None:
            items = [item for item in items if item.created_at <= end]

        items.sort(key=lambda item: (item.created_at, item.id), reverse=True)
        if limit is not None:
            items = items[:limit]
        return items

    def delete_item(self, record_id: int) -> bool:
        return self._delete_where(lambda item: item.id == record_id) > 0

    def delete_all(self) -> int:
        return self._delete_where(lambda _item: True)

    def delete_by_sensor_id(self, sensor_id: str) -> int:
        return self._delete_where(lambda item: item.sensor_id == sensor_id)

    def delete_by_sensor_type(self, sensor_type: str) -> int:
        # Air and water temperatures share the "temperature" type; both go.
        return self._delete_where(lambda item: item.sensor_type == sensor_type)

    def delete_by_interval(self, interval_seconds: int) -> int:
        return self._delete_where(lambda item: item.interval == interval_seconds)

    def _delete_where(self, predicate: Callable[[StoredReading], bool]) -> int:
        with self._lock:
            doomed = [record_id for record_id, item in self._items.items() if predicate(item)]
            if not doomed:
                return 0
            removed = {record_id: self._items.pop(record_id) for record_id in doomed}
            try:
                self._persist()
            except OSError as exc:
                self._items.update(removed)
                raise StorageError(f"Could not persist deletion: {exc}") from exc
        logger.info("Deleted %d stored readings", len(doomed))
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "next_id": self._next_id,
            "items": [item.model_dump(mode="json") for item in self._items.values()],
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable readings file %s", self.persistence_path)
            data = {}

        for payload in data.get("items", []):
            item = StoredReading.model_validate(payload)
            self._items[item.id] = item
        highest = max(self._items, default=0)
        self._next_id = max(int(data.get("next_id", 1)), highest + 1)


@lru_cache
def build_default_store(path: Optional[str] = None) -> ReadingsTable:
    settings = get_settings()
    store_path = settings.readings_store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReadingsTable(persistence_path=persistence)
