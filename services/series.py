"""Time-window selection, series merging and change-over-interval."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from models.records import Reading

WINDOW_DURATIONS: Dict[str, timedelta] = {
    "15m": timedelta(minutes=15),
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
}
CUSTOM_WINDOW = "custom"
DELTA_INTERVAL = timedelta(hours=1)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class TimeWindow:
    token: str
    start: datetime
    end: Optional[datetime] = None

    def contains(self, timestamp: datetime) -> bool:
        if timestamp < self.start:
            return False
        return self.end is None or timestamp <= self.end


def resolve_window(
    token: str,
    now: datetime,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> TimeWindow:
    """Turn a range token into concrete bounds.

    Relative tokens are open-ended on the right so that readings arriving
    during the current cycle are not cut off. Naive custom bounds are read
    as UTC.
    """
    key = (token or "").strip().lower()
    if key == CUSTOM_WINDOW:
        if start is None or end is None:
            raise ValueError("Custom window requires both start and end.")
        start, end = as_utc(start), as_utc(end)
        if end < start:
            raise ValueError("Custom window end precedes its start.")
        return TimeWindow(token=CUSTOM_WINDOW, start=start, end=end)
    duration = WINDOW_DURATIONS.get(key)
    if duration is None:
        supported = ", ".join([*WINDOW_DURATIONS, CUSTOM_WINDOW])
        raise ValueError(f"Unknown window {token!r}; expected one of: {supported}.")
    return TimeWindow(token=key, start=now - duration)


def merge_series(
    historical: Iterable[Reading],
    live: Iterable[Reading],
    window: Optional[TimeWindow] = None,
) -> Tuple[Reading, ...]:
    """Merge two reading sources into one ascending, duplicate-free series.

    Readings are keyed by timestamp; ``live`` is applied after ``historical``
    so it wins on identical timestamps. Applying the merge again to its own
    output yields the same sequence.
    """
    merged: Dict[datetime, Reading] = {}
    for source in (historical, live):
        for reading in source:
            if window is not None and not window.contains(reading.timestamp):
                continue
            merged[reading.timestamp] = reading
    return tuple(merged[timestamp] for timestamp in sorted(merged))


def merge_buffers(
    buffer: Mapping[str, Sequence[Reading]],
    readings: Iterable[Reading],
    horizon_start: datetime,
) -> Dict[str, Tuple[Reading, ...]]:
    """Return a new live buffer with ``readings`` folded in and old entries dropped."""
    incoming: Dict[str, list[Reading]] = {}
    for reading in readings:
        incoming.setdefault(reading.sensor_id, []).append(reading)

    horizon = TimeWindow(token="horizon", start=horizon_start)
    updated: Dict[str, Tuple[Reading, ...]] = {}
    for sensor_id in set(buffer) | set(incoming):
        series = merge_series(buffer.get(sensor_id, ()), incoming.get(sensor_id, ()), horizon)
        if series:
            updated[sensor_id] = series
    return updated


def compute_delta(
    series: Sequence[Reading],
    now: datetime,
    interval: timedelta = DELTA_INTERVAL,
) -> Optional[float]:
    """Latest value minus the newest sample at least ``interval`` old.

    Returns ``None`` when the series holds no sample that old; callers must
    show that as unavailable rather than as zero.
    """
    if len(series) < 2:
        return None
    cutoff = now - interval
    for reading in reversed(series):
        if reading.timestamp <= cutoff:
            return series[-1].value - reading.value
    return None
