"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


class SensorStatus(str, Enum):
    """Health classes a sensor can be in, worst first."""

    critical = "critical"
    warning = "warning"
    offline = "offline"
    normal = "normal"


@dataclass(frozen=True, slots=True)
class Reading:
    """A single recorded sensor value."""

    sensor_id: str
    timestamp: datetime
    value: float


@dataclass(frozen=True, slots=True)
class SensorRecord:
    """Sensor identity as handed out by the reading source."""

    sensor_id: str
    device_id: str
    farm_id: str
    type: str
    unit: str = ""
    device_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ThresholdSet:
    """Canonical threshold shape; ``min <= optimal_min <= optimal_max <= max``."""

    min: float
    max: float
    optimal_min: float
    optimal_max: float


@dataclass(frozen=True, slots=True)
class Sensor:
    """A sensor with normalized thresholds, ready for classification."""

    sensor_id: str
    device_id: str
    farm_id: str
    type: str
    unit: str
    thresholds: ThresholdSet
    device_name: Optional[str] = None
    defaulted_fields: Tuple[str, ...] = ()

    @property
    def uses_default_thresholds(self) -> bool:
        return bool(self.defaulted_fields)


@dataclass(frozen=True, slots=True)
class StatusResult:
    status: SensorStatus
    value: Optional[float]
    last_reading: Optional[Reading]
    message: str
