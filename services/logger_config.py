"""Which sensors the background logger persists, and how often."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from models.records import SensorFamily
from services.errors import ConfigurationError
from services.identity import PERSISTABLE_FAMILIES, family_identifiers, is_valid_identifier

DEFAULT_INTERVAL_MS = 5000


class SelectionMode(str, Enum):
    all = "all"
    none = "none"
    one = "one"


@dataclass(frozen=True)
class Selection:
    """Subset of a family eligible for persistence.

    ``sensor_id`` is set only for :attr:`SelectionMode.one`.
    """

    mode: SelectionMode
    sensor_id: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.mode is SelectionMode.one) != (self.sensor_id is not None):
            raise ValueError("Only single-sensor selections carry a sensor id.")

    @classmethod
    def everything(cls) -> "Selection":
        return cls(SelectionMode.all)

    @classmethod
    def nothing(cls) -> "Selection":
        return cls(SelectionMode.none)

    @classmethod
    def only(cls, sensor_id: str) -> "Selection":
        return cls(SelectionMode.one, sensor_id)

    def sensor_ids(self, family: SensorFamily) -> List[str]:
        if self.mode is SelectionMode.all:
            return family_identifiers(family)
        if self.mode is SelectionMode.none:
            return []
        return [self.sensor_id]  # type: ignore[list-item]

    def describe(self) -> str:
        return self.sensor_id if self.mode is SelectionMode.one else self.mode.value  # type: ignore[return-value]


def parse_selection(family: SensorFamily, raw: Any) -> Selection:
    """Translate ``"all"``/``True``, ``"none"``/``False`` or a sensor id."""

    if raw is True or raw == SelectionMode.all.value:
        return Selection.everything()
    if raw is False or raw == SelectionMode.none.value:
        return Selection.nothing()
    if isinstance(raw, str):
        candidate = raw.strip()
        if is_valid_identifier(family, candidate):
            return Selection.only(candidate)
        raise ConfigurationError(
            f"{raw!r} is not a valid {SensorFamily(family).value} sensor selection."
        )
    raise ConfigurationError(
        f"Selection for {SensorFamily(family).value} must be 'all', 'none', "
        "a boolean or a sensor id."
    )


def _checked(family: SensorFamily, selection: Selection) -> Selection:
    if selection.mode is SelectionMode.one and not is_valid_identifier(family, selection.sensor_id):
        raise ConfigurationError(
            f"{selection.sensor_id!r} is not a valid {SensorFamily(family).value} sensor selection."
        )
    return selection


def _default_selections() -> Dict[SensorFamily, Selection]:
    return {family: Selection.everything() for family in PERSISTABLE_FAMILIES}


@dataclass(frozen=True)
class LoggerConfiguration:
    """Immutable logger settings; replaced wholesale on every change."""

    interval_ms: int = DEFAULT_INTERVAL_MS
    selections: Mapping[SensorFamily, Selection] = field(default_factory=_default_selections)

    def __post_init__(self) -> None:
        if isinstance(self.interval_ms, bool) or not isinstance(self.interval_ms, int):
            raise ConfigurationError("Logger interval must be an integer number of milliseconds.")
        if self.interval_ms <= 0:
            raise ConfigurationError("Logger interval must be positive.")

    @property
    def interval_seconds(self) -> int:
        return self.interval_ms // 1000

    def selection_for(self, family: SensorFamily) -> Selection:
        return self.selections.get(SensorFamily(family), Selection.nothing())

    def with_changes(
        self,
        interval_ms: Optional[int] = None,
        selections: Optional[Mapping[SensorFamily, Any]] = None,
    ) -> "LoggerConfiguration":
        """Return a copy with the supplied fields applied.

        ``selections`` values may be raw (``"all"``, ``False``, ``"T5"``) or
        :class:`Selection` instances. Raises :class:`ConfigurationError` when
        neither field is supplied.
        """

        if interval_ms is None and not selections:
            raise ConfigurationError("No valid configuration provided.")

        merged: Dict[SensorFamily, Selection] = dict(self.selections)
        for family, raw in (selections or {}).items():
            family = SensorFamily(family)
            if isinstance(raw, Selection):
                merged[family] = _checked(family, raw)
            else:
                merged[family] = parse_selection(family, raw)

        return LoggerConfiguration(
            interval_ms=self.interval_ms if interval_ms is None else interval_ms,
            selections=merged,
        )

    def active_sensors(self) -> Dict[SensorFamily, List[str]]:
        return {
            family: selection.sensor_ids(family)
            for family, selection in self.selections.items()
        }
