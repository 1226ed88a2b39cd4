"""Extraction of sensors currently outside their normal range."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, List

from models.health import AnomalyRecord, SensorHealth
from models.records import SensorStatus
from services.classifier import breached_bound

_SEVERITY_RANK = {SensorStatus.critical: 0, SensorStatus.warning: 1}
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def extract_anomalies(sensors: Iterable[SensorHealth]) -> List[AnomalyRecord]:
    """Critical records first, then warnings; newest first within a severity."""
    records: List[AnomalyRecord] = []
    for health in sensors:
        status = health.status
        if status not in _SEVERITY_RANK or health.latest_value is None:
            continue
        bound = breached_bound(health.latest_value, status, health.sensor.thresholds)
        records.append(
            AnomalyRecord(
                sensor_id=health.sensor_id,
                sensor_type=health.sensor.type,
                farm_id=health.sensor.farm_id,
                device_id=health.sensor.device_id,
                device_name=health.sensor.device_name,
                value=health.latest_value,
                threshold=bound if bound is not None else 0.0,
                severity=status,
                timestamp=health.latest_timestamp or _EPOCH,
            )
        )

    # Two stable passes: newest first, then severity.
    records.sort(key=lambda record: record.timestamp, reverse=True)
    records.sort(key=lambda record: _SEVERITY_RANK[record.severity])
    return records
