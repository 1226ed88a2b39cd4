"""Aggregation logic turning sensor readings into health rollups."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

from models.health import (
    DashboardFilter,
    DashboardView,
    DeviceGroup,
    FarmGroup,
    KPISnapshot,
    KPIValues,
    ReadingSnapshot,
    SensorHealth,
    StatusCounts,
    Trend,
    TrendColor,
    TrendDirection,
)
from models.records import Reading, Sensor, SensorStatus
from services.classifier import DEFAULT_MESSAGES, StatusMessages, classify, health_score

# Metrics where a rising value is bad news.
_LOWER_IS_BETTER = frozenset({"offline", "anomalies", "critical"})

_ANOMALY_STATUSES = (SensorStatus.warning, SensorStatus.critical)

K = TypeVar("K")

MAX_TRACKED_FILTERS = 32


@dataclass
class ReadingSummary:
    """Computed statistics for one sensor's readings."""

    row_count: int = 0
    min_value: float | None = None
    max_value: float | None = None
    mean_value: float | None = None
    latest: Reading | None = None


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(round_half_up(part / whole * 100))


def overall_status(counts: StatusCounts) -> SensorStatus:
    """Fleet banner: any critical wins, then warning, then all-offline."""
    if counts.critical > 0:
        return SensorStatus.critical
    if counts.warning > 0:
        return SensorStatus.warning
    if counts.offline > 0 and counts.offline == counts.total:
        return SensorStatus.offline
    return SensorStatus.normal


def count_statuses(sensors: Iterable[SensorHealth]) -> StatusCounts:
    tally = {status: 0 for status in SensorStatus}
    for health in sensors:
        tally[health.status] += 1
    return StatusCounts(
        normal=tally[SensorStatus.normal],
        warning=tally[SensorStatus.warning],
        critical=tally[SensorStatus.critical],
        offline=tally[SensorStatus.offline],
    )


def _trend(metric: str, current: float, previous: Optional[float]) -> Trend:
    if previous is None or current == previous:
        return Trend(previous=previous)
    direction = TrendDirection.up if current > previous else TrendDirection.down
    improving = (direction is TrendDirection.up) != (metric in _LOWER_IS_BETTER)
    color = TrendColor.success if improving else TrendColor.danger
    return Trend(direction=direction, color=color, previous=previous)


def build_kpi_snapshot(current: KPIValues, previous: Optional[KPIValues]) -> KPISnapshot:
    trends: Dict[str, Trend] = {}
    for item in fields(KPIValues):
        before = getattr(previous, item.name) if previous is not None else None
        trends[item.name] = _trend(item.name, getattr(current, item.name), before)
    return KPISnapshot(current=current, previous=previous, trends=trends)


class KPITracker:
    """Holds the current and previous KPI values per filter.

    ``advance`` swaps both maps in one assignment; readers never see a
    half-rotated pair. Queries only fill in current values. Only the
    unfiltered view and filters queried since the last ``advance`` are
    carried into the next cycle, at most ``max_filters`` of them with the
    least recently queried dropped first.
    """

    def __init__(self, max_filters: int = MAX_TRACKED_FILTERS) -> None:
        self.max_filters = max_filters
        self._state: Tuple[Dict[DashboardFilter, KPIValues], Dict[DashboardFilter, KPIValues]] = (
            {},
            {},
        )
        self._queried: Dict[DashboardFilter, None] = {}

    def keys(self) -> List[DashboardFilter]:
        """Filters whose KPIs the next cycle computes."""
        default = DashboardFilter()
        return [default, *(key for key in self._queried if key != default)]

    def current(self, key: DashboardFilter) -> Optional[KPIValues]:
        return self._state[0].get(key)

    def previous(self, key: DashboardFilter) -> Optional[KPIValues]:
        return self._state[1].get(key)

    def touch(self, key: DashboardFilter) -> None:
        self._queried.pop(key, None)
        self._queried[key] = None
        while len(self._queried) > self.max_filters:
            del self._queried[next(iter(self._queried))]

    def track(self, key: DashboardFilter, values: KPIValues) -> None:
        self.touch(key)
        current, previous = self._state
        kept = set(self.keys())
        updated = {name: kpis for name, kpis in current.items() if name in kept}
        updated[key] = values
        self._state = (updated, previous)

    def advance(self, values: Mapping[DashboardFilter, KPIValues]) -> None:
        current, _ = self._state
        previous = {key: current[key] for key in values if key in current}
        self._state = (dict(values), previous)
        self._queried = {}


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def __init__(
        self,
        staleness_window: Optional[timedelta] = None,
        messages: StatusMessages = DEFAULT_MESSAGES,
    ) -> None:
        self.staleness_window = staleness_window
        self.messages = messages

    def summarize(self, readings: Iterable[Reading]) -> ReadingSummary:
        summary = ReadingSummary()
        total = 0.0

        for reading in readings:
            summary.row_count += 1
            value = reading.value
            total += value

            if summary.min_value is None or value < summary.min_value:
                summary.min_value = value
            if summary.max_value is None or value > summary.max_value:
                summary.max_value = value
            if summary.latest is None or reading.timestamp >= summary.latest.timestamp:
                summary.latest = reading

        if summary.row_count:
            summary.mean_value = total / summary.row_count

        return summary

    def evaluate_sensor(
        self, sensor: Sensor, readings: Sequence[Reading], as_of: datetime
    ) -> SensorHealth:
        summary = self.summarize(readings)
        latest = summary.latest
        age = max(as_of - latest.timestamp, timedelta(0)) if latest is not None else None
        result = classify(
            latest.value if latest is not None else None,
            sensor.thresholds,
            age,
            staleness_window=self.staleness_window,
            messages=self.messages,
            last_reading=latest,
        )
        return SensorHealth(
            sensor=sensor,
            result=result,
            health_score=health_score(result.status),
            latest_value=latest.value if latest is not None else None,
            latest_timestamp=latest.timestamp if latest is not None else None,
            average_value=round_half_up(summary.mean_value or 0.0, 2),
            min_value=round_half_up(summary.min_value or 0.0, 2),
            max_value=round_half_up(summary.max_value or 0.0, 2),
            reading_count=summary.row_count,
        )

    def evaluate(self, snapshot: ReadingSnapshot) -> DashboardView:
        """Classify every sensor against the same snapshot."""
        rows = tuple(
            self.evaluate_sensor(sensor, snapshot.readings.get(sensor.sensor_id, ()), snapshot.as_of)
            for sensor in snapshot.sensors
        )
        return DashboardView(as_of=snapshot.as_of, sensors=rows)

    def _rollup(self, sensors: Sequence[SensorHealth]) -> Dict[str, object]:
        counts = count_statuses(sensors)
        online = counts.total - counts.offline
        avg_health = (
            sum(health.health_score for health in sensors) / len(sensors) if sensors else 0.0
        )
        timestamps = [h.latest_timestamp for h in sensors if h.latest_timestamp is not None]
        avg_value = (
            sum(health.average_value for health in sensors) / len(sensors) if sensors else 0.0
        )
        return {
            "sensor_count": len(sensors),
            "online_sensors": online,
            "counts": counts,
            "avg_health": int(round_half_up(avg_health)),
            "latest_reading": max(timestamps) if timestamps else None,
            "status": overall_status(counts),
            "uptime_percent": percent(online, len(sensors)),
            "alert_count": counts.warning + counts.critical,
            "avg_reading_value": round_half_up(avg_value, 2),
            "reading_count": sum(health.reading_count for health in sensors),
            "sensor_ids": tuple(health.sensor_id for health in sensors),
        }

    @staticmethod
    def _group(
        sensors: Iterable[SensorHealth], key: Callable[[SensorHealth], K]
    ) -> Dict[K, List[SensorHealth]]:
        grouped: Dict[K, List[SensorHealth]] = {}
        for health in sensors:
            grouped.setdefault(key(health), []).append(health)
        return grouped

    def farm_groups(self, sensors: Iterable[SensorHealth]) -> List[FarmGroup]:
        grouped = self._group(sensors, lambda health: health.sensor.farm_id)
        return [
            FarmGroup(farm_id=farm_id, **self._rollup(members))
            for farm_id, members in sorted(grouped.items())
        ]

    def device_groups(self, sensors: Iterable[SensorHealth]) -> List[DeviceGroup]:
        grouped = self._group(
            sensors, lambda health: (health.sensor.farm_id, health.sensor.device_id)
        )
        groups: List[DeviceGroup] = []
        for (farm_id, device_id), members in sorted(grouped.items()):
            names = [h.sensor.device_name for h in members if h.sensor.device_name]
            groups.append(
                DeviceGroup(
                    device_id=device_id,
                    farm_id=farm_id,
                    device_name=names[0] if names else None,
                    **self._rollup(members),
                )
            )
        return groups

    def kpis(self, sensors: Sequence[SensorHealth]) -> KPIValues:
        counts = count_statuses(sensors)
        active = counts.total - counts.offline
        avg_value = (
            sum(health.average_value for health in sensors) / len(sensors) if sensors else 0.0
        )
        return KPIValues(
            total=counts.total,
            active=active,
            offline=counts.offline,
            uptime_percent=percent(active, counts.total),
            anomalies=sum(1 for health in sensors if health.status in _ANOMALY_STATUSES),
            critical=counts.critical,
            avg_reading_value=round_half_up(avg_value, 2),
            total_readings=sum(health.reading_count for health in sensors),
            farm_count=len({health.sensor.farm_id for health in sensors}),
        )
