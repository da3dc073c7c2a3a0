"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


SelectionValue = Union[bool, str]


class StoredReading(BaseModel):
    """A reading persisted in the durable store."""

    id: int = Field(..., ge=1)
    sensor_id: str
    sensor_type: str
    value: float
    unit: str
    status: str
    interval: Optional[int] = Field(
        default=None, description="Logger interval in whole seconds when the record was taken."
    )
    created_at: datetime


class AcceptedReading(BaseModel):
    sensor_id: str
    value: float


class RejectedReading(BaseModel):
    """A batch entry refused by identity or range validation."""

    sensor_id: str
    value: Optional[Any] = None
    reason: str


class BatchIngestResponse(BaseModel):
    """Partial-success outcome of a batch submission."""

    family: str
    received: int = Field(..., ge=0, description="Number of accepted entries.")
    rejected_count: int = Field(..., ge=0)
    captured_at: datetime
    accepted: List[AcceptedReading] = Field(default_factory=list)
    rejected: List[RejectedReading] = Field(default_factory=list)


class ValveReport(BaseModel):
    status: Optional[Any] = None
    level: Optional[Any] = None


class ValveResponse(BaseModel):
    status: str
    level: float
    captured_at: datetime


class RealtimeView(BaseModel):
    """Cache snapshot organised for dashboard consumption."""

    humidity: Dict[str, float] = Field(default_factory=dict)
    air_temperature: Dict[str, float] = Field(default_factory=dict)
    water_temperature: Dict[str, float] = Field(default_factory=dict)
    water_level: Dict[str, float] = Field(default_factory=dict)
    water_weight: Dict[str, float] = Field(default_factory=dict)
    sensor_status: Dict[str, Dict[str, bool]] = Field(default_factory=dict)
    valve_status: str
    valve_level: float
    pump_on: bool
    last_update: Optional[datetime] = None
    timestamp: datetime


class CacheStatus(BaseModel):
    sensors: Dict[str, int]
    total_sensors: int = Field(..., ge=0)
    last_update: Optional[datetime] = None
    timestamp: datetime


class LoggerStatus(BaseModel):
    running: bool
    interval_ms: int
    cycle_count: int
    selections: Dict[str, str]
    enabled_families: Dict[str, bool]
    active_sensors: Dict[str, List[str]]


class LoggerStartRequest(BaseModel):
    """Optional per-family selections; an absent family means ``all``."""

    temperature: Optional[SelectionValue] = None
    humidity: Optional[SelectionValue] = None
    water_weight: Optional[SelectionValue] = None


class LoggerConfigRequest(BaseModel):
    interval: Optional[int] = Field(default=None, description="Logger period in milliseconds.")
    temperature: Optional[SelectionValue] = None
    humidity: Optional[SelectionValue] = None
    water_weight: Optional[SelectionValue] = None


class LoggerActionResponse(BaseModel):
    message: str
    status: LoggerStatus


class FlushResponse(BaseModel):
    saved_count: int = Field(..., ge=0)


class DeleteResponse(BaseModel):
    message: str
    deleted_count: int = Field(..., ge=0)


class StoreSummary(BaseModel):
    """Aggregate view of everything in the durable store."""

    row_count: int = Field(..., ge=0)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    mean_value: Optional[float] = None
    per_sensor_count: Dict[str, int] = Field(default_factory=dict)
    per_type_count: Dict[str, int] = Field(default_factory=dict)
    latest_created_at: Optional[datetime] = None
