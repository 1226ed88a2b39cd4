"""Derived health views computed from readings and thresholds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Mapping, NamedTuple, Optional, Tuple

from models.records import Reading, Sensor, SensorStatus, StatusResult


class TrendDirection(str, Enum):
    up = "up"
    down = "down"
    flat = "flat"


class TrendColor(str, Enum):
    success = "success"
    danger = "danger"
    neutral = "neutral"


class SeriesPoint(NamedTuple):
    timestamp: datetime
    value: float


@dataclass(frozen=True, slots=True)
class SensorHealth:
    """Per-sensor row: status plus statistics over the snapshot's readings."""

    sensor: Sensor
    result: StatusResult
    health_score: int
    latest_value: Optional[float] = None
    latest_timestamp: Optional[datetime] = None
    average_value: float = 0.0
    min_value: float = 0.0
    max_value: float = 0.0
    reading_count: int = 0

    @property
    def sensor_id(self) -> str:
        return self.sensor.sensor_id

    @property
    def status(self) -> SensorStatus:
        return self.result.status


@dataclass(frozen=True, slots=True)
class StatusCounts:
    normal: int = 0
    warning: int = 0
    critical: int = 0
    offline: int = 0

    @property
    def total(self) -> int:
        return self.normal + self.warning + self.critical + self.offline


@dataclass(frozen=True)
class SensorGroup:
    """Rollup over a set of sensors."""

    sensor_count: int
    online_sensors: int
    counts: StatusCounts
    avg_health: int
    latest_reading: Optional[datetime]
    status: SensorStatus
    uptime_percent: int
    alert_count: int
    avg_reading_value: float
    reading_count: int
    sensor_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FarmGroup(SensorGroup):
    farm_id: str = ""


@dataclass(frozen=True)
class DeviceGroup(SensorGroup):
    device_id: str = ""
    farm_id: str = ""
    device_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class KPIValues:
    total: int
    active: int
    offline: int
    uptime_percent: int
    anomalies: int
    critical: int
    avg_reading_value: float
    total_readings: int
    farm_count: int


@dataclass(frozen=True, slots=True)
class Trend:
    direction: TrendDirection = TrendDirection.flat
    color: TrendColor = TrendColor.neutral
    previous: Optional[float] = None


@dataclass(frozen=True, slots=True)
class KPISnapshot:
    current: KPIValues
    previous: Optional[KPIValues]
    trends: Mapping[str, Trend]


@dataclass(frozen=True, slots=True)
class AnomalyRecord:
    sensor_id: str
    sensor_type: str
    farm_id: str
    device_id: str
    value: float
    threshold: float
    severity: SensorStatus
    timestamp: datetime
    device_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Overview:
    status: SensorStatus
    counts: StatusCounts
    as_of: Optional[datetime]
    stale: bool


@dataclass(frozen=True, slots=True)
class DashboardFilter:
    """Narrows the sensor population a query runs over."""

    farm_id: Optional[str] = None
    sensor_type: Optional[str] = None
    search: Optional[str] = None
    anomalies_only: bool = False

    def matches(self, health: SensorHealth) -> bool:
        sensor = health.sensor
        if self.farm_id and sensor.farm_id != self.farm_id:
            return False
        if self.sensor_type and self.sensor_type.lower() != "all":
            if sensor.type.lower() != self.sensor_type.lower():
                return False
        query = (self.search or "").strip().lower()
        if query:
            haystack = (sensor.sensor_id, sensor.type, sensor.device_name or "")
            if not any(query in item.lower() for item in haystack):
                return False
        if self.anomalies_only and health.status not in (
            SensorStatus.warning,
            SensorStatus.critical,
        ):
            return False
        return True


@dataclass(frozen=True, slots=True)
class ReadingSnapshot:
    """One consistent fetch: every sensor of a cycle is evaluated against it."""

    as_of: datetime
    sensors: Tuple[Sensor, ...]
    readings: Mapping[str, Tuple[Reading, ...]] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DashboardView:
    as_of: Optional[datetime]
    sensors: Tuple[SensorHealth, ...] = ()

    def find(self, sensor_id: str) -> Optional[SensorHealth]:
        for health in self.sensors:
            if health.sensor_id == sensor_id:
                return health
        return None
