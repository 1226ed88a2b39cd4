"""Reading ingestion from CSV uploads and JSON batches."""

from __future__ import annotations

import csv
import io
import logging
import math
import time
from datetime import datetime
from typing import Iterable, List

from app.schemas import ImportResult, ImportRowError, ImportStatus, ReadingIn
from datastore.readings_store import ReadingStore
from models.records import Reading
from services.series import as_utc

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = {"sensor_id", "timestamp", "value"}


class ReadingImporter:
    """Validates incoming readings and appends them to the store."""

    def __init__(self, store: ReadingStore) -> None:
        self.store = store

    def import_csv(self, contents: bytes | str) -> ImportResult:
        """Parse ``sensor_id,timestamp,value`` rows, collecting per-row errors."""
        start_time = time.perf_counter()
        if isinstance(contents, bytes):
            contents = contents.decode("utf-8")
        if not contents.strip():
            raise ValueError("Uploaded file is empty.")

        reader = csv.DictReader(io.StringIO(contents))
        if not reader.fieldnames:
            raise ValueError("CSV file is missing a header row.")

        normalized = {name.lower().strip(): name for name in reader.fieldnames}
        missing = sorted(REQUIRED_COLUMNS - normalized.keys())
        if missing:
            return self._finish(
                [],
                [ImportRowError(row_number=1, reason=f"CSV missing required columns: {', '.join(missing)}")],
                start_time,
            )

        sensor_col = normalized["sensor_id"]
        timestamp_col = normalized["timestamp"]
        value_col = normalized["value"]

        readings: list[Reading] = []
        errors: list[ImportRowError] = []
        for row_number, row in enumerate(reader, start=2):
            sensor_raw = (row.get(sensor_col) or "").strip()
            timestamp_raw = (row.get(timestamp_col) or "").strip()
            value_raw = (row.get(value_col) or "").strip()

            reason = None
            if not sensor_raw:
                reason = "missing sensor_id"
            elif not timestamp_raw:
                reason = "missing timestamp"
            elif not value_raw:
                reason = "missing value"

            if reason is None:
                try:
                    timestamp = self._parse_timestamp(timestamp_raw)
                except ValueError:
                    reason = "invalid timestamp"

            if reason is None:
                try:
                    value = float(value_raw)
                except ValueError:
                    reason = "invalid numeric value"
                else:
                    if not math.isfinite(value):
                        reason = "invalid numeric value"

            if reason is not None:
                logger.warning(
                    "Skipping row: %s",
                    reason,
                    extra={"row_number": row_number, "reason": reason},
                )
                errors.append(ImportRowError(row_number=row_number, reason=reason))
                continue

            readings.append(Reading(sensor_id=sensor_raw, timestamp=timestamp, value=value))

        return self._finish(readings, errors, start_time)

    def import_readings(self, batch: Iterable[ReadingIn]) -> ImportResult:
        start_time = time.perf_counter()
        readings: list[Reading] = []
        errors: list[ImportRowError] = []
        for row_number, item in enumerate(batch, start=1):
            if not math.isfinite(item.value):
                errors.append(ImportRowError(row_number=row_number, reason="invalid numeric value"))
                continue
            readings.append(
                Reading(
                    sensor_id=item.sensor_id,
                    timestamp=as_utc(item.timestamp),
                    value=item.value,
                )
            )
        return self._finish(readings, errors, start_time)

    def _finish(
        self, readings: List[Reading], errors: List[ImportRowError], start_time: float
    ) -> ImportResult:
        accepted = self.store.add_readings(readings)
        if accepted == 0 and errors:
            status = ImportStatus.failed
        elif errors:
            status = ImportStatus.partial
        else:
            status = ImportStatus.imported
        processing_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Readings imported",
            extra={
                "status": status.value,
                "reading_count": accepted,
                "duration_ms": processing_ms,
            },
        )
        return ImportResult(
            status=status,
            accepted=accepted,
            errors=errors,
            processing_ms=processing_ms,
        )

    @classmethod
    def _parse_timestamp(cls, value: str) -> datetime:
        candidate = value.strip()
        if not candidate:
            raise ValueError("Timestamp is empty.")

        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"

        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError("Invalid timestamp format") from exc

        return as_utc(parsed)
