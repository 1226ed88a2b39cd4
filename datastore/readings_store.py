from __future__ import annotations

import json
import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Sequence

from app.schemas import SensorRegistration
from models.records import Reading, SensorRecord
from settings import get_settings

logger = logging.getLogger(__name__)


class ReadingStore:
    """In-memory sensor and reading store with optional JSON persistence.

    Implements the reading-source queries the dashboard engine consumes.
    Readings are keyed by timestamp per sensor; a second write for the same
    timestamp replaces the first.
    """

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._sensors: Dict[str, SensorRegistration] = {}
        self._readings: Dict[str, Dict[datetime, float]] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_sensor(self, sensor: SensorRegistration) -> None:
        with self._lock:
            self._sensors[sensor.sensor_id] = sensor.model_copy(deep=True)
            self._persist()

    def get_sensor(self, sensor_id: str) -> Optional[SensorRegistration]:
        with self._lock:
            sensor = self._sensors.get(sensor_id)
            if sensor is None:
                return None
            return sensor.model_copy(deep=True)

    def scan_sensors(self) -> list[SensorRegistration]:
        with self._lock:
            return [sensor.model_copy(deep=True) for sensor in self._sensors.values()]

    def add_readings(self, readings: Iterable[Reading]) -> int:
        count = 0
        with self._lock:
            for reading in readings:
                self._readings.setdefault(reading.sensor_id, {})[reading.timestamp] = reading.value
                count += 1
            if count:
                self._persist()
        return count

    def readings_for(
        self,
        sensor_ids: Sequence[str],
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Reading]:
        """Readings in ``[since, until]``; with ``limit``, only the newest ones."""
        with self._lock:
            selected = [
                Reading(sensor_id=sensor_id, timestamp=timestamp, value=value)
                for sensor_id in sensor_ids
                for timestamp, value in self._readings.get(sensor_id, {}).items()
                if (since is None or timestamp >= since) and (until is None or timestamp <= until)
            ]
        selected.sort(key=lambda reading: (reading.timestamp, reading.sensor_id))
        if limit is not None and len(selected) > limit:
            selected = selected[-limit:]
        return selected

    async def fetch_readings(
        self,
        sensor_ids: Sequence[str],
        since: Optional[datetime],
        until: Optional[datetime],
        limit: Optional[int] = None,
    ) -> List[Reading]:
        return self.readings_for(sensor_ids, since, until, limit)

    async def fetch_thresholds(self, sensor_id: str) -> Dict[str, Any]:
        sensor = self.get_sensor(sensor_id)
        if sensor is None:
            return {}
        return sensor.thresholds.model_dump(exclude_none=True)

    async def fetch_sensors_by_farm(self, farm_id: Optional[str] = None) -> List[SensorRecord]:
        return [
            SensorRecord(
                sensor_id=sensor.sensor_id,
                device_id=sensor.device_id,
                farm_id=sensor.farm_id,
                type=sensor.type,
                unit=sensor.unit,
                device_name=sensor.device_name,
            )
            for sensor in sorted(self.scan_sensors(), key=lambda item: item.sensor_id)
            if farm_id is None or sensor.farm_id == farm_id
        ]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "sensors": {
                sensor_id: sensor.model_dump(mode="json")
                for sensor_id, sensor in self._sensors.items()
            },
            "readings": {
                sensor_id: [[timestamp.isoformat(), value] for timestamp, value in sorted(series.items())]
                for sensor_id, series in self._readings.items()
            },
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable store file", extra={"reason": str(self.persistence_path)}
            )
            data = {}

        for sensor_id, payload in data.get("sensors", {}).items():
            self._sensors[sensor_id] = SensorRegistration.model_validate(payload)
        for sensor_id, rows in data.get("readings", {}).items():
            series = self._readings.setdefault(sensor_id, {})
            for timestamp_raw, value in rows:
                series[datetime.fromisoformat(timestamp_raw)] = float(value)


@lru_cache
def build_default_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReadingStore(persistence_path=persistence)
