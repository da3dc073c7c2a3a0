"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from app.schemas import (
    AcceptedReading,
    BatchIngestResponse,
    CacheStatus,
    DeleteResponse,
    FlushResponse,
    LoggerActionResponse,
    LoggerConfigRequest,
    LoggerStartRequest,
    LoggerStatus,
    RealtimeView,
    RejectedReading,
    StoredReading,
    StoreSummary,
    ValveReport,
    ValveResponse,
)
from datastore.readings_store import ReadingsTable, build_default_store
from models.records import SensorFamily
from services.aggregator import Aggregator
from services.errors import (
    ConfigurationError,
    EmptyPayloadError,
    StorageError,
    ValidationError,
)
from services.ingestion import IngestionService, build_default_ingestion
from services.persistence import PersistenceLoop, build_default_loop

router = APIRouter()

# Path segments the field devices post to.
_FAMILY_ROUTES = {
    "temperature": SensorFamily.temperature,
    "humidity": SensorFamily.humidity,
    "waterlevel": SensorFamily.water_level,
    "waterweight": SensorFamily.water_weight,
}


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_loop() -> PersistenceLoop:
    return build_default_loop()


def get_store() -> ReadingsTable:
    return build_default_store()


def _selection_fields(request: LoggerStartRequest | LoggerConfigRequest) -> Dict[SensorFamily, Any]:
    supplied = request.model_dump(exclude_unset=True, exclude_none=True)
    return {
        SensorFamily(name): supplied[name]
        for name in ("temperature", "humidity", "water_weight")
        if name in supplied
    }


@router.post(
    "/esp32/valve",
    response_model=ValveResponse,
    summary="Receive the valve state reported by the controller.",
)
async def receive_valve(
    report: ValveReport,
    ingestion: IngestionService = Depends(get_ingestion),
) -> ValveResponse:
    try:
        state = ingestion.report_valve(report.status, report.level)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return ValveResponse(
        status=state.status.value,
        level=state.level,
        captured_at=state.captured_at,
    )


@router.get(
    "/esp32/realtime",
    response_model=RealtimeView,
    summary="Latest cached reading per sensor with liveness flags.",
)
async def get_realtime(ingestion: IngestionService = Depends(get_ingestion)) -> RealtimeView:
    return RealtimeView(**ingestion.realtime_view())


@router.get(
    "/esp32/status",
    response_model=CacheStatus,
    summary="Number of cached sensors per family.",
)
async def get_cache_status(ingestion: IngestionService = Depends(get_ingestion)) -> CacheStatus:
    return CacheStatus(**ingestion.cache_status())


@router.delete(
    "/esp32/cache",
    summary="Drop every cached sensor reading; valve state is kept.",
)
async def clear_cache(ingestion: IngestionService = Depends(get_ingestion)) -> dict[str, str]:
    ingestion.clear_cache()
    return {"message": "Realtime cache cleared"}


@router.post(
    "/esp32/save",
    response_model=FlushResponse,
    summary="Persist the whole realtime cache once.",
)
async def save_cache(loop: PersistenceLoop = Depends(get_loop)) -> FlushResponse:
    return FlushResponse(saved_count=loop.flush_cache())


@router.post(
    "/esp32/{family_slug}",
    response_model=BatchIngestResponse,
    summary="Receive a batch of sensor readings for one family.",
)
async def receive_batch(
    family_slug: str,
    payload: Dict[str, Any] = Body(..., examples=[{"T1": 25.5, "T2": 26.0}]),
    ingestion: IngestionService = Depends(get_ingestion),
) -> BatchIngestResponse:
    family = _FAMILY_ROUTES.get(family_slug.lower())
    if family is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown sensor family {family_slug!r}.",
        )
    try:
        result = ingestion.ingest_batch(family, payload)
    except EmptyPayloadError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return BatchIngestResponse(
        family=family.value,
        received=len(result.accepted),
        rejected_count=len(result.rejected),
        captured_at=result.captured_at,
        accepted=[AcceptedReading(sensor_id=sid, value=value) for sid, value in result.accepted],
        rejected=[
            RejectedReading(sensor_id=item.sensor_id, value=item.value, reason=item.reason)
            for item in result.rejected
        ],
    )


@router.get("/logger/status", response_model=LoggerStatus, summary="Background logger state.")
async def logger_status(loop: PersistenceLoop = Depends(get_loop)) -> LoggerStatus:
    return LoggerStatus(**loop.status())


@router.post(
    "/logger/start",
    response_model=LoggerActionResponse,
    summary="Start the background logger, optionally choosing sensors.",
)
async def logger_start(
    request: Optional[LoggerStartRequest] = Body(default=None),
    loop: PersistenceLoop = Depends(get_loop),
) -> LoggerActionResponse:
    selections: Dict[SensorFamily, Any] = {
        SensorFamily.temperature: "all",
        SensorFamily.humidity: "all",
        SensorFamily.water_weight: "all",
    }
    if request is not None:
        selections.update(_selection_fields(request))
    try:
        loop.configure(selections=selections)
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    started = loop.start()
    message = "Logger started" if started else "Logger already running"
    return LoggerActionResponse(message=message, status=LoggerStatus(**loop.status()))


@router.post(
    "/logger/stop",
    response_model=LoggerActionResponse,
    summary="Stop the background logger; an in-flight cycle finishes.",
)
async def logger_stop(loop: PersistenceLoop = Depends(get_loop)) -> LoggerActionResponse:
    loop.stop()
    return LoggerActionResponse(message="Logger stopped", status=LoggerStatus(**loop.status()))


@router.post(
    "/logger/config",
    response_model=LoggerActionResponse,
    summary="Change the logger interval and/or sensor selections.",
)
async def logger_config(
    request: LoggerConfigRequest,
    loop: PersistenceLoop = Depends(get_loop),
) -> LoggerActionResponse:
    try:
        loop.configure(interval_ms=request.interval, selections=_selection_fields(request))
    except ConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return LoggerActionResponse(message="Logger configured", status=LoggerStatus(**loop.status()))


@router.get(
    "/sensors",
    response_model=List[StoredReading],
    summary="Persisted readings, newest first.",
)
async def list_readings(
    limit: int = Query(100, ge=1, le=10000),
    sensor_id: Optional[str] = Query(None),
    sensor_type: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    store: ReadingsTable = Depends(get_store),
) -> List[StoredReading]:
    return store.scan(
        limit=limit,
        sensor_id=None if sensor_id in (None, "all") else sensor_id,
        sensor_type=None if sensor_type in (None, "all") else sensor_type,
        start=start,
        end=end,
    )


@router.get(
    "/sensors/status",
    response_model=StoreSummary,
    summary="Aggregate statistics for the durable store.",
)
async def store_status(store: ReadingsTable = Depends(get_store)) -> StoreSummary:
    summary = Aggregator().aggregate(store.scan())
    return StoreSummary(
        row_count=summary.row_count,
        min_value=summary.min_value,
        max_value=summary.max_value,
        mean_value=summary.mean_value,
        per_sensor_count=dict(summary.per_sensor_count),
        per_type_count=dict(summary.per_type_count),
        latest_created_at=summary.latest_created_at,
    )


def _deleted(message: str, count: int) -> DeleteResponse:
    return DeleteResponse(message=message, deleted_count=count)


def _storage_failure(exc: StorageError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.delete("/sensors", response_model=DeleteResponse, summary="Delete every stored reading.")
async def delete_all_readings(store: ReadingsTable = Depends(get_store)) -> DeleteResponse:
    try:
        count = store.delete_all()
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return _deleted("All data deleted", count)


@router.delete(
    "/sensors/by-sensor/{sensor_id}",
    response_model=DeleteResponse,
    summary="Delete every stored reading of one sensor.",
)
async def delete_by_sensor(sensor_id: str, store: ReadingsTable = Depends(get_store)) -> DeleteResponse:
    try:
        count = store.delete_by_sensor_id(sensor_id)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return _deleted(f"All data for sensor {sensor_id} deleted", count)


@router.delete(
    "/sensors/by-type/{sensor_type}",
    response_model=DeleteResponse,
    summary="Delete every stored reading of one sensor type.",
)
async def delete_by_type(sensor_type: str, store: ReadingsTable = Depends(get_store)) -> DeleteResponse:
    persisted_types = {"temperature", "humidity", "water_weight"}
    if sensor_type not in persisted_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid sensor type {sensor_type!r}. Must be one of: "
            + ", ".join(sorted(persisted_types)),
        )
    try:
        count = store.delete_by_sensor_type(sensor_type)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return _deleted(f"All data for sensor type {sensor_type} deleted", count)


@router.delete(
    "/sensors/by-interval/{interval_seconds}",
    response_model=DeleteResponse,
    summary="Delete stored readings recorded at a given logger interval.",
)
async def delete_by_interval(
    interval_seconds: int,
    store: ReadingsTable = Depends(get_store),
) -> DeleteResponse:
    if interval_seconds < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid interval")
    try:
        count = store.delete_by_interval(interval_seconds)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    return _deleted(f"Data with interval {interval_seconds}s deleted", count)


@router.delete(
    "/sensors/{record_id}",
    response_model=DeleteResponse,
    summary="Delete one stored reading.",
)
async def delete_reading(record_id: int, store: ReadingsTable = Depends(get_store)) -> DeleteResponse:
    try:
        deleted = store.delete_item(record_id)
    except StorageError as exc:
        raise _storage_failure(exc) from exc
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Stored reading {record_id} not found.",
        )
    return _deleted("Data deleted", 1)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "Field telemetry cache. See /health for service status."}
