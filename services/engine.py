"""Dashboard engine: snapshot building, recompute and output queries."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Protocol, Sequence, Tuple, TypeVar

from models.health import (
    AnomalyRecord,
    DashboardFilter,
    DashboardView,
    DeviceGroup,
    FarmGroup,
    KPISnapshot,
    Overview,
    ReadingSnapshot,
    SensorHealth,
    SeriesPoint,
)
from models.records import Reading, Sensor, SensorRecord, StatusResult
from services.aggregator import (
    Aggregator,
    KPITracker,
    build_kpi_snapshot,
    count_statuses,
    overall_status,
)
from services.anomalies import extract_anomalies
from services.errors import FetchError
from services.series import (
    DELTA_INTERVAL,
    TimeWindow,
    compute_delta,
    merge_buffers,
    merge_series,
    resolve_window,
)
from services.thresholds import normalize_thresholds

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
T = TypeVar("T")

# Errors a reading source may raise; all of them surface as FetchError.
SOURCE_ERRORS = (OSError, RuntimeError, ValueError)


class ReadingSource(Protocol):
    """Persistence/query collaborator the engine reads from."""

    async def fetch_readings(
        self,
        sensor_ids: Sequence[str],
        since: Optional[datetime],
        until: Optional[datetime],
        limit: Optional[int] = None,
    ) -> List[Reading]: ...

    async def fetch_thresholds(self, sensor_id: str) -> Mapping[str, Any]: ...

    async def fetch_sensors_by_farm(self, farm_id: Optional[str] = None) -> List[SensorRecord]: ...


@dataclass(frozen=True, slots=True)
class SeriesResult:
    sensor_id: str
    window: TimeWindow
    points: Tuple[SeriesPoint, ...]
    complete: bool
    current_value: Optional[float]
    delta: Optional[float]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DashboardEngine:
    """Owns the live buffer, the current view and the KPI tracker.

    All state is swapped by assignment. ``recompute`` is the only place the
    view changes; the refresh controller calls it once per cycle.
    """

    def __init__(
        self,
        source: ReadingSource,
        aggregator: Optional[Aggregator] = None,
        live_horizon: timedelta = timedelta(hours=24),
        fetch_limit: Optional[int] = 1000,
        clock: Clock = utc_now,
    ) -> None:
        self.source = source
        self.aggregator = aggregator or Aggregator()
        self.live_horizon = live_horizon
        self.fetch_limit = fetch_limit
        self.clock = clock
        self.stale = False
        self._view = DashboardView(as_of=None)
        self._live: Mapping[str, Tuple[Reading, ...]] = {}
        self._kpis = KPITracker()

    @property
    def view(self) -> DashboardView:
        return self._view

    @property
    def live_buffer(self) -> Mapping[str, Tuple[Reading, ...]]:
        return self._live

    async def load_sensors(self, farm_id: Optional[str] = None) -> Tuple[Sensor, ...]:
        records = await self.source.fetch_sensors_by_farm(farm_id)
        raw_thresholds = await asyncio.gather(
            *(self.source.fetch_thresholds(record.sensor_id) for record in records)
        )
        sensors = []
        for record, raw in zip(records, raw_thresholds):
            normalized = normalize_thresholds(record.type, raw)
            if normalized.defaulted_fields:
                logger.debug(
                    "Sensor thresholds fell back to type defaults",
                    extra={
                        "sensor_id": record.sensor_id,
                        "reason": ",".join(normalized.defaulted_fields),
                    },
                )
            sensors.append(
                Sensor(
                    sensor_id=record.sensor_id,
                    device_id=record.device_id,
                    farm_id=record.farm_id,
                    type=record.type,
                    unit=record.unit,
                    thresholds=normalized.thresholds,
                    device_name=record.device_name,
                    defaulted_fields=normalized.defaulted_fields,
                )
            )
        return tuple(sensors)

    @staticmethod
    async def _guarded(call: Awaitable[T]) -> T:
        try:
            return await call
        except FetchError:
            raise
        except SOURCE_ERRORS as exc:
            raise FetchError(str(exc)) from exc

    async def fetch_snapshot(self) -> ReadingSnapshot:
        """Fetch sensors and recent readings; failures surface as ``FetchError``."""
        as_of = self.clock()
        sensors = await self._guarded(self.load_sensors())
        readings = await self._guarded(
            self.source.fetch_readings(
                [sensor.sensor_id for sensor in sensors],
                as_of - self.live_horizon,
                None,
                self.fetch_limit,
            )
        )

        live = merge_buffers(self._live, readings, as_of - self.live_horizon)
        return ReadingSnapshot(as_of=as_of, sensors=sensors, readings=live)

    def recompute(self, snapshot: ReadingSnapshot) -> DashboardView:
        """Evaluate ``snapshot`` and rotate KPI values for every tracked filter."""
        view = self.aggregator.evaluate(snapshot)
        tracked = self._kpis.keys()
        kpis = {key: self.aggregator.kpis(self._select(view, key)) for key in tracked}
        self._live = snapshot.readings
        self._view = view
        self._kpis.advance(kpis)
        self.stale = False
        logger.info(
            "Dashboard recomputed",
            extra={
                "as_of": snapshot.as_of.isoformat(),
                "sensor_count": len(view.sensors),
                "reading_count": sum(len(series) for series in snapshot.readings.values()),
            },
        )
        return view

    def mark_stale(self) -> None:
        self.stale = True

    @staticmethod
    def _select(view: DashboardView, filters: Optional[DashboardFilter]) -> List[SensorHealth]:
        if filters is None:
            return list(view.sensors)
        return [health for health in view.sensors if filters.matches(health)]

    def get_status(self, sensor_id: str) -> StatusResult:
        return self.get_health(sensor_id).result

    def get_health(self, sensor_id: str) -> SensorHealth:
        health = self._view.find(sensor_id)
        if health is None:
            raise KeyError(f"Sensor {sensor_id!r} is not known to the dashboard.")
        return health

    def get_sensors(self, filters: Optional[DashboardFilter] = None) -> List[SensorHealth]:
        return self._select(self._view, filters)

    def get_farm_groups(self, filters: Optional[DashboardFilter] = None) -> List[FarmGroup]:
        return self.aggregator.farm_groups(self._select(self._view, filters))

    def get_device_groups(self, filters: Optional[DashboardFilter] = None) -> List[DeviceGroup]:
        return self.aggregator.device_groups(self._select(self._view, filters))

    def get_kpi_snapshot(self, filters: Optional[DashboardFilter] = None) -> KPISnapshot:
        key = filters or DashboardFilter()
        current = self._kpis.current(key)
        if current is None:
            current = self.aggregator.kpis(self._select(self._view, key))
            self._kpis.track(key, current)
        else:
            self._kpis.touch(key)
        return build_kpi_snapshot(current, self._kpis.previous(key))

    def get_anomalies(self, filters: Optional[DashboardFilter] = None) -> List[AnomalyRecord]:
        return extract_anomalies(self._select(self._view, filters))

    def get_overview(self, filters: Optional[DashboardFilter] = None) -> Overview:
        counts = count_statuses(self._select(self._view, filters))
        return Overview(
            status=overall_status(counts),
            counts=counts,
            as_of=self._view.as_of,
            stale=self.stale,
        )

    async def get_series(
        self,
        sensor_id: str,
        window_token: str = "1h",
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> SeriesResult:
        """Merged history plus live buffer for one sensor, ascending.

        A failing history fetch degrades to live-only data with
        ``complete=False``.
        """
        now = self.clock()
        window = resolve_window(window_token, now, start=start, end=end)
        complete = True
        try:
            historical = await self._guarded(
                self.source.fetch_readings([sensor_id], window.start, window.end, self.fetch_limit)
            )
        except FetchError as exc:
            logger.warning(
                "History fetch failed; serving live buffer only",
                extra={"sensor_id": sensor_id, "window": window.token, "reason": str(exc)},
            )
            historical = []
            complete = False

        series = merge_series(historical, self._live.get(sensor_id, ()), window)
        # A window that closed over an hour ago has no "now" value to compare.
        reaches_now = window.end is None or window.end >= now - DELTA_INTERVAL
        return SeriesResult(
            sensor_id=sensor_id,
            window=window,
            points=tuple(SeriesPoint(reading.timestamp, reading.value) for reading in series),
            complete=complete,
            current_value=series[-1].value if series else None,
            delta=compute_delta(series, now) if reaches_now else None,
        )
