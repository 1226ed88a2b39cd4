"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.health import TrendColor, TrendDirection
from models.records import SensorStatus


class ThresholdFields(BaseModel):
    """Raw threshold configuration; any mix of canonical and legacy names."""

    min: Optional[float] = None
    max: Optional[float] = None
    optimal_min: Optional[float] = None
    optimal_max: Optional[float] = None
    min_threshold: Optional[float] = None
    max_threshold: Optional[float] = None
    min_critical: Optional[float] = None
    max_critical: Optional[float] = None
    min_warning: Optional[float] = None
    max_warning: Optional[float] = None


class SensorRegistration(BaseModel):
    """Sensor identity plus its raw threshold configuration."""

    sensor_id: str = Field(..., min_length=1)
    device_id: str = Field(..., min_length=1)
    farm_id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1, description="Sensor kind, e.g. temperature.")
    unit: str = ""
    device_name: Optional[str] = None
    thresholds: ThresholdFields = Field(default_factory=ThresholdFields)


class ReadingIn(BaseModel):
    sensor_id: str = Field(..., min_length=1)
    timestamp: datetime
    value: float


class ReadingBatch(BaseModel):
    readings: List[ReadingIn] = Field(default_factory=list)


class ImportStatus(str, Enum):
    """Outcome of a reading import."""

    imported = "imported"
    partial = "partial"
    failed = "failed"


class ImportRowError(BaseModel):
    """Details about a row that failed validation or parsing."""

    row_number: int = Field(..., ge=1)
    reason: str


class ImportResult(BaseModel):
    status: ImportStatus
    accepted: int = Field(..., ge=0)
    errors: List[ImportRowError] = Field(default_factory=list)
    processing_ms: Optional[int] = Field(
        default=None, description="Duration in milliseconds from start to finish."
    )


class ThresholdSetModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    min: float
    max: float
    optimal_min: float
    optimal_max: float


class SensorStatusResponse(BaseModel):
    sensor_id: str
    farm_id: str
    device_id: str
    type: str
    unit: str
    status: SensorStatus
    value: Optional[float] = None
    message: str
    last_reading_at: Optional[datetime] = None
    health_score: int
    reading_count: int = 0
    average_value: float = 0.0
    min_value: float = 0.0
    max_value: float = 0.0
    thresholds: ThresholdSetModel
    defaulted_fields: List[str] = Field(default_factory=list)
    range_position: Optional[float] = Field(
        default=None, description="Value position along [min, max] in percent."
    )
    optimal_offset: Optional[float] = Field(
        default=None, description="Start of the optimal band along [min, max] in percent."
    )
    optimal_width: Optional[float] = Field(
        default=None, description="Width of the optimal band as a percent of [min, max]."
    )


class SeriesPointModel(BaseModel):
    timestamp: datetime
    value: float


class SeriesResponse(BaseModel):
    sensor_id: str
    window: str
    start: datetime
    end: Optional[datetime] = None
    points: List[SeriesPointModel] = Field(default_factory=list)
    complete: bool = Field(
        True, description="False when historical data could not be fetched."
    )
    current_value: Optional[float] = None
    delta_1h: Optional[float] = None
    delta_available: bool = False


class StatusCountsModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    normal: int = 0
    warning: int = 0
    critical: int = 0
    offline: int = 0


class SensorGroupModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sensor_count: int
    online_sensors: int
    counts: StatusCountsModel
    avg_health: int
    latest_reading: Optional[datetime] = None
    status: SensorStatus
    uptime_percent: int
    alert_count: int
    avg_reading_value: float
    reading_count: int
    sensor_ids: List[str] = Field(default_factory=list)


class FarmGroupModel(SensorGroupModel):
    farm_id: str


class DeviceGroupModel(SensorGroupModel):
    device_id: str
    farm_id: str
    device_name: Optional[str] = None


class KPIValuesModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    active: int
    offline: int
    uptime_percent: int
    anomalies: int
    critical: int
    avg_reading_value: float
    total_readings: int
    farm_count: int


class TrendModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    direction: TrendDirection
    color: TrendColor
    previous: Optional[float] = None


class KPISnapshotModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current: KPIValuesModel
    previous: Optional[KPIValuesModel] = None
    trends: Dict[str, TrendModel] = Field(default_factory=dict)


class AnomalyModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sensor_id: str
    sensor_type: str
    farm_id: str
    device_id: str
    device_name: Optional[str] = None
    value: float
    threshold: float
    severity: SensorStatus
    timestamp: datetime


class OverviewModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: SensorStatus
    counts: StatusCountsModel
    as_of: Optional[datetime] = None
    stale: bool = False


class RefreshResponse(BaseModel):
    applied: bool
    state: str
    stale: bool
    last_applied: Optional[datetime] = None
