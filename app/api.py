"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from app.schemas import (
    AnomalyModel,
    DeviceGroupModel,
    FarmGroupModel,
    ImportResult,
    KPISnapshotModel,
    OverviewModel,
    ReadingBatch,
    RefreshResponse,
    SensorRegistration,
    SensorStatusResponse,
    SeriesPointModel,
    SeriesResponse,
    ThresholdSetModel,
)
from models.health import DashboardFilter, SensorHealth
from services.dashboard import Dashboard, build_default_dashboard
from services.thresholds import range_position, range_width

router = APIRouter()


def get_dashboard() -> Dashboard:
    return build_default_dashboard()


def get_filter(
    farm_id: Optional[str] = Query(None, description="Only sensors of this farm."),
    sensor_type: Optional[str] = Query(None, description="Sensor type, or 'all'."),
    search: Optional[str] = Query(None, description="Substring of sensor id, type or device name."),
    anomalies_only: bool = Query(False, description="Only warning and critical sensors."),
) -> DashboardFilter:
    return DashboardFilter(
        farm_id=farm_id or None,
        sensor_type=sensor_type or None,
        search=search or None,
        anomalies_only=anomalies_only,
    )


def _status_payload(health: SensorHealth) -> SensorStatusResponse:
    sensor = health.sensor
    thresholds = sensor.thresholds
    value = health.result.value
    last_reading = health.result.last_reading
    return SensorStatusResponse(
        sensor_id=sensor.sensor_id,
        farm_id=sensor.farm_id,
        device_id=sensor.device_id,
        type=sensor.type,
        unit=sensor.unit,
        status=health.status,
        value=value,
        message=health.result.message,
        last_reading_at=last_reading.timestamp if last_reading is not None else None,
        health_score=health.health_score,
        reading_count=health.reading_count,
        average_value=health.average_value,
        min_value=health.min_value,
        max_value=health.max_value,
        thresholds=ThresholdSetModel.model_validate(thresholds),
        defaulted_fields=list(sensor.defaulted_fields),
        range_position=range_position(value, thresholds) if value is not None else None,
        optimal_offset=range_position(thresholds.optimal_min, thresholds),
        optimal_width=range_width(thresholds.optimal_min, thresholds.optimal_max, thresholds),
    )


@router.post(
    "/sensors",
    status_code=status.HTTP_201_CREATED,
    response_model=SensorRegistration,
    summary="Register or replace a sensor and its thresholds.",
)
async def register_sensor(
    registration: SensorRegistration,
    dashboard: Dashboard = Depends(get_dashboard),
) -> SensorRegistration:
    dashboard.store.put_sensor(registration)
    return registration


@router.get(
    "/sensors",
    response_model=List[SensorStatusResponse],
    summary="Current status of every sensor matching the filter.",
)
async def list_sensors(
    filters: DashboardFilter = Depends(get_filter),
    dashboard: Dashboard = Depends(get_dashboard),
) -> List[SensorStatusResponse]:
    return [_status_payload(health) for health in dashboard.engine.get_sensors(filters)]


@router.get(
    "/sensors/{sensor_id}/status",
    response_model=SensorStatusResponse,
    summary="Current status of one sensor.",
)
async def get_sensor_status(
    sensor_id: str,
    dashboard: Dashboard = Depends(get_dashboard),
) -> SensorStatusResponse:
    try:
        health = dashboard.engine.get_health(sensor_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    return _status_payload(health)


@router.get(
    "/sensors/{sensor_id}/series",
    response_model=SeriesResponse,
    summary="Time-windowed readings for charting.",
)
async def get_sensor_series(
    sensor_id: str,
    window: str = Query("1h", description="15m, 1h, 6h, 24h or custom."),
    start: Optional[datetime] = Query(None, description="Start of a custom window."),
    end: Optional[datetime] = Query(None, description="End of a custom window."),
    dashboard: Dashboard = Depends(get_dashboard),
) -> SeriesResponse:
    try:
        dashboard.engine.get_health(sensor_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    try:
        result = await dashboard.engine.get_series(sensor_id, window, start=start, end=end)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return SeriesResponse(
        sensor_id=result.sensor_id,
        window=result.window.token,
        start=result.window.start,
        end=result.window.end,
        points=[SeriesPointModel(timestamp=point.timestamp, value=point.value) for point in result.points],
        complete=result.complete,
        current_value=result.current_value,
        delta_1h=result.delta,
        delta_available=result.delta is not None,
    )


@router.post(
    "/readings",
    response_model=ImportResult,
    summary="Append a batch of readings.",
)
async def add_readings(
    batch: ReadingBatch,
    dashboard: Dashboard = Depends(get_dashboard),
) -> ImportResult:
    return dashboard.importer.import_readings(batch.readings)


@router.post(
    "/readings/import",
    response_model=ImportResult,
    summary="Import readings from a CSV file.",
)
async def import_readings(
    file: UploadFile = File(..., description="CSV file with sensor_id, timestamp, value."),
    dashboard: Dashboard = Depends(get_dashboard),
) -> ImportResult:
    try:
        contents = await file.read()
        return dashboard.importer.import_csv(contents)
    except (ValueError, UnicodeDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    finally:
        await file.close()


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    summary="Run a refresh cycle now unless one is already running.",
)
async def trigger_refresh(dashboard: Dashboard = Depends(get_dashboard)) -> RefreshResponse:
    controller = dashboard.controller
    applied = await controller.refresh()
    return RefreshResponse(
        applied=applied,
        state=controller.state.value,
        stale=controller.stale,
        last_applied=controller.last_applied,
    )


@router.get("/farms", response_model=List[FarmGroupModel], summary="Per-farm rollups.")
async def list_farms(
    filters: DashboardFilter = Depends(get_filter),
    dashboard: Dashboard = Depends(get_dashboard),
) -> List[FarmGroupModel]:
    return [
        FarmGroupModel.model_validate(group)
        for group in dashboard.engine.get_farm_groups(filters)
    ]


@router.get("/devices", response_model=List[DeviceGroupModel], summary="Per-device rollups.")
async def list_devices(
    filters: DashboardFilter = Depends(get_filter),
    dashboard: Dashboard = Depends(get_dashboard),
) -> List[DeviceGroupModel]:
    return [
        DeviceGroupModel.model_validate(group)
        for group in dashboard.engine.get_device_groups(filters)
    ]


@router.get("/kpis", response_model=KPISnapshotModel, summary="Fleet KPIs with trends.")
async def get_kpis(
    filters: DashboardFilter = Depends(get_filter),
    dashboard: Dashboard = Depends(get_dashboard),
) -> KPISnapshotModel:
    return KPISnapshotModel.model_validate(dashboard.engine.get_kpi_snapshot(filters))


@router.get("/anomalies", response_model=List[AnomalyModel], summary="Sensors outside normal range.")
async def list_anomalies(
    filters: DashboardFilter = Depends(get_filter),
    dashboard: Dashboard = Depends(get_dashboard),
) -> List[AnomalyModel]:
    return [AnomalyModel.model_validate(record) for record in dashboard.engine.get_anomalies(filters)]


@router.get("/overview", response_model=OverviewModel, summary="Overall fleet status banner.")
async def get_overview(
    filters: DashboardFilter = Depends(get_filter),
    dashboard: Dashboard = Depends(get_dashboard),
) -> OverviewModel:
    return OverviewModel.model_validate(dashboard.engine.get_overview(filters))


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(dashboard: Dashboard = Depends(get_dashboard)) -> dict[str, str]:
    return {"status": "ok", "refresh": dashboard.controller.state.value}
