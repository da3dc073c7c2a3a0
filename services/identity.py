"""Sensor identifier and value-range rules per sensor family."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from functools import cached_property
from numbers import Real
from typing import Any, Dict, List, Optional, Tuple

from models.records import SensorFamily, ValveStatus
from services.errors import RejectionReason, ValidationError


@dataclass(frozen=True)
class FamilyRule:
    """Identity and range constraints for one sensor family."""

    family: SensorFamily
    prefix: str
    max_index: int
    unit: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    persistable: bool = True

    @cached_property
    def pattern(self) -> re.Pattern[str]:
        return re.compile(rf"^{self.prefix}([1-9][0-9]*)$")

    def identifiers(self) -> List[str]:
        return [f"{self.prefix}{index}" for index in range(1, self.max_index + 1)]

    def index_of(self, sensor_id: str) -> Optional[int]:
        if not isinstance(sensor_id, str):
            return None
        match = self.pattern.match(sensor_id)
        if match is None:
            return None
        index = int(match.group(1))
        if index > self.max_index:
            return None
        return index

    def in_range(self, value: float) -> bool:
        if self.min_value is not None and value < self.min_value:
            return False
        if self.max_value is not None and value > self.max_value:
            return False
        return True


FAMILY_RULES: Dict[SensorFamily, FamilyRule] = {
    SensorFamily.temperature: FamilyRule(
        family=SensorFamily.temperature,
        prefix="T",
        max_index=15,
        unit="°C",
        min_value=-40.0,
        max_value=80.0,
    ),
    SensorFamily.humidity: FamilyRule(
        family=SensorFamily.humidity,
        prefix="RH",
        max_index=7,
        unit="%",
        min_value=0.0,
        max_value=100.0,
    ),
    SensorFamily.water_level: FamilyRule(
        family=SensorFamily.water_level,
        prefix="WL",
        max_index=9,
        unit="%",
        min_value=0.0,
        max_value=100.0,
        persistable=False,
    ),
    # Load-cell output has no meaningful bound.
    SensorFamily.water_weight: FamilyRule(
        family=SensorFamily.water_weight,
        prefix="WW",
        max_index=9,
        unit="g",
    ),
}

PERSISTABLE_FAMILIES: Tuple[SensorFamily, ...] = tuple(
    family for family, rule in FAMILY_RULES.items() if rule.persistable
)

# T1-T7 sit in air, T8-T15 sit in the water basin.
_AIR_TEMPERATURE_MAX_INDEX = 7


def rule_for(family: SensorFamily) -> FamilyRule:
    return FAMILY_RULES[SensorFamily(family)]


def family_identifiers(family: SensorFamily) -> List[str]:
    return rule_for(family).identifiers()


def is_valid_identifier(family: SensorFamily, sensor_id: str) -> bool:
    return rule_for(family).index_of(sensor_id) is not None


def _coerce_number(value: Any) -> Optional[float]:
    # bool is an int subclass but a switch state is not a measurement.
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return number


def validate_reading(family: SensorFamily, sensor_id: str, value: Any) -> float:
    """Return ``value`` as a float when the pair is admissible for ``family``.

    The identifier is checked first, then the value type, then the range.
    Raises :class:`ValidationError` carrying the matching rejection reason.
    """

    rule = rule_for(family)
    if rule.index_of(sensor_id) is None:
        raise ValidationError(
            RejectionReason.bad_identifier_format,
            f"Sensor id {sensor_id!r} is not a valid {rule.family.value} identifier.",
        )

    number = _coerce_number(value)
    if number is None:
        raise ValidationError(
            RejectionReason.non_numeric_value,
            f"Value for {sensor_id} must be a finite number.",
        )

    if not rule.in_range(number):
        raise ValidationError(
            RejectionReason.out_of_range,
            f"Value {number} for {sensor_id} is outside "
            f"[{rule.min_value}, {rule.max_value}].",
        )
    return number


def validate_valve(status: Any, level: Any = None) -> Tuple[ValveStatus, float]:
    """Validate a valve report; ``level`` defaults to 0 when absent."""

    if not isinstance(status, str) or status not in {item.value for item in ValveStatus}:
        raise ValidationError(
            "invalid-valve-status",
            "Valve status must be exactly 'open' or 'closed'.",
        )

    if level is None:
        return ValveStatus(status), 0.0

    number = _coerce_number(level)
    if number is None:
        raise ValidationError(
            RejectionReason.non_numeric_value,
            "Valve level must be a finite number.",
        )
    return ValveStatus(status), number


def temperature_subfamily(sensor_id: str) -> str:
    """Classify a temperature sensor as ``air`` or ``water`` by its number."""

    index = rule_for(SensorFamily.temperature).index_of(sensor_id)
    if index is None:
        raise ValueError(f"{sensor_id!r} is not a temperature sensor id.")
    return "air" if index <= _AIR_TEMPERATURE_MAX_INDEX else "water"
