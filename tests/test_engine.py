from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest

from models.health import DashboardFilter, TrendDirection
from models.records import Reading, SensorRecord, SensorStatus
from services.aggregator import Aggregator
from services.engine import DashboardEngine
from services.errors import FetchError

START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeSource:
    def __init__(self) -> None:
        self.sensors: List[SensorRecord] = []
        self.thresholds: Dict[str, Dict[str, Any]] = {}
        self.readings: List[Reading] = []
        self.fail_readings: Optional[Exception] = None
        self.reading_calls: List[tuple] = []

    async def fetch_readings(
        self,
        sensor_ids: Sequence[str],
        since: Optional[datetime],
        until: Optional[datetime],
        limit: Optional[int] = None,
    ) -> List[Reading]:
        self.reading_calls.append((tuple(sensor_ids), since, until, limit))
        if self.fail_readings is not None:
            raise self.fail_readings
        return [
            reading
            for reading in self.readings
            if reading.sensor_id in sensor_ids
            and (since is None or reading.timestamp >= since)
            and (until is None or reading.timestamp <= until)
        ]

    async def fetch_thresholds(self, sensor_id: str) -> Dict[str, Any]:
        return self.thresholds.get(sensor_id, {})

    async def fetch_sensors_by_farm(self, farm_id: Optional[str] = None) -> List[SensorRecord]:
        return [record for record in self.sensors if farm_id is None or record.farm_id == farm_id]


@pytest.fixture()
def source() -> FakeSource:
    fake = FakeSource()
    fake.sensors = [
        SensorRecord("t-1", "dev-1", "farm-a", "temperature", "C", "Greenhouse"),
        SensorRecord("h-1", "dev-2", "farm-b", "humidity", "%"),
    ]
    fake.thresholds = {"t-1": {"min": 0, "max": 50, "optimal_min": 18, "optimal_max": 25}}
    return fake


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine(source: FakeSource, clock: FakeClock) -> DashboardEngine:
    return DashboardEngine(
        source,
        aggregator=Aggregator(staleness_window=timedelta(minutes=10)),
        clock=clock,
    )


def _cycle(engine: DashboardEngine) -> None:
    engine.recompute(asyncio.run(engine.fetch_snapshot()))


def test_recompute_classifies_every_sensor(engine: DashboardEngine, source: FakeSource) -> None:
    source.readings = [Reading("t-1", START - timedelta(minutes=1), 30.0)]

    _cycle(engine)

    assert engine.get_status("t-1").status is SensorStatus.warning
    assert engine.get_status("h-1").status is SensorStatus.offline
    health = engine.get_health("h-1")
    assert health.sensor.uses_default_thresholds
    assert engine.get_health("t-1").sensor.device_name == "Greenhouse"
    assert engine.view.as_of == START


def test_unknown_sensor_raises_key_error(engine: DashboardEngine) -> None:
    with pytest.raises(KeyError):
        engine.get_status("missing")


def test_view_does_not_change_until_recompute(engine: DashboardEngine, source: FakeSource) -> None:
    source.readings = [Reading("t-1", START, 22.0)]
    _cycle(engine)

    source.readings.append(Reading("t-1", START + timedelta(seconds=5), 55.0))
    snapshot = asyncio.run(engine.fetch_snapshot())

    assert engine.get_status("t-1").status is SensorStatus.normal
    engine.recompute(snapshot)
    assert engine.get_status("t-1").status is SensorStatus.critical


def test_fetch_failure_is_wrapped(engine: DashboardEngine, source: FakeSource) -> None:
    source.fail_readings = OSError("connection reset")

    with pytest.raises(FetchError, match="connection reset"):
        asyncio.run(engine.fetch_snapshot())


def test_sensor_goes_offline_once_reading_ages_out(
    engine: DashboardEngine, source: FakeSource, clock: FakeClock
) -> None:
    source.readings = [Reading("t-1", START, 22.0)]
    _cycle(engine)
    assert engine.get_status("t-1").status is SensorStatus.normal

    clock.advance(minutes=11)
    _cycle(engine)

    result = engine.get_status("t-1")
    assert result.status is SensorStatus.offline
    assert result.value == 22.0


def test_queries_respect_filters(engine: DashboardEngine, source: FakeSource) -> None:
    source.readings = [
        Reading("t-1", START, 55.0),
        Reading("h-1", START, 50.0),
    ]
    _cycle(engine)

    assert [h.sensor_id for h in engine.get_sensors(DashboardFilter(farm_id="farm-b"))] == ["h-1"]
    assert [h.sensor_id for h in engine.get_sensors(DashboardFilter(search="green"))] == ["t-1"]
    assert [h.sensor_id for h in engine.get_sensors(DashboardFilter(sensor_type="all"))] == ["t-1", "h-1"]
    assert [a.sensor_id for a in engine.get_anomalies()] == ["t-1"]
    assert [f.farm_id for f in engine.get_farm_groups()] == ["farm-a", "farm-b"]
    overview = engine.get_overview()
    assert overview.status is SensorStatus.critical
    assert overview.counts.critical == 1
    assert overview.counts.normal == 1


def test_kpi_trends_compare_consecutive_cycles(
    engine: DashboardEngine, source: FakeSource, clock: FakeClock
) -> None:
    source.readings = [Reading("t-1", START, 22.0)]
    _cycle(engine)
    first = engine.get_kpi_snapshot()
    assert first.previous is None
    assert first.trends["active"].direction is TrendDirection.flat

    clock.advance(seconds=10)
    source.readings.append(Reading("h-1", clock.now, 55.0))
    _cycle(engine)

    second = engine.get_kpi_snapshot()
    assert second.current.active == 2
    assert second.previous is not None and second.previous.active == 1
    assert second.trends["active"].direction is TrendDirection.up
    assert second.trends["offline"].direction is TrendDirection.down


def test_filtered_kpis_are_tracked_from_first_query(
    engine: DashboardEngine, source: FakeSource, clock: FakeClock
) -> None:
    farm = DashboardFilter(farm_id="farm-b")
    _cycle(engine)
    assert engine.get_kpi_snapshot(farm).current.active == 0

    clock.advance(seconds=10)
    source.readings = [Reading("h-1", clock.now, 55.0)]
    _cycle(engine)

    snapshot = engine.get_kpi_snapshot(farm)
    assert snapshot.current.total == 1
    assert snapshot.previous is not None and snapshot.previous.active == 0
    assert snapshot.trends["active"].direction is TrendDirection.up


def test_series_merges_history_with_live_buffer(
    engine: DashboardEngine, source: FakeSource
) -> None:
    source.readings = [
        Reading("t-1", START - timedelta(minutes=90), 19.0),
        Reading("t-1", START - timedelta(minutes=5), 21.0),
        Reading("t-1", START, 23.0),
    ]
    _cycle(engine)

    result = asyncio.run(engine.get_series("t-1", "6h"))

    assert result.complete is True
    assert [point.value for point in result.points] == [19.0, 21.0, 23.0]
    assert result.current_value == 23.0
    assert result.delta == pytest.approx(4.0)


@pytest.mark.parametrize(
    "error",
    [RuntimeError("history backend down"), ValueError("malformed history payload")],
)
def test_series_falls_back_to_live_buffer_when_history_fails(
    engine: DashboardEngine, source: FakeSource, error: Exception
) -> None:
    source.readings = [Reading("t-1", START - timedelta(minutes=5), 21.0)]
    _cycle(engine)
    source.fail_readings = error

    result = asyncio.run(engine.get_series("t-1", "1h"))

    assert result.complete is False
    assert [point.value for point in result.points] == [21.0]
    assert result.delta is None


def test_series_rejects_unknown_window(engine: DashboardEngine) -> None:
    with pytest.raises(ValueError):
        asyncio.run(engine.get_series("t-1", "2w"))


def test_series_for_past_window_has_no_delta(engine: DashboardEngine, source: FakeSource) -> None:
    source.readings = [
        Reading("t-1", START - timedelta(hours=3), 19.0),
        Reading("t-1", START - timedelta(hours=2, minutes=30), 24.0),
        Reading("t-1", START - timedelta(minutes=1), 22.0),
    ]
    _cycle(engine)

    result = asyncio.run(
        engine.get_series(
            "t-1",
            "custom",
            start=START - timedelta(hours=4),
            end=START - timedelta(hours=2),
        )
    )

    assert [point.value for point in result.points] == [19.0, 24.0]
    assert result.current_value == 24.0
    assert result.delta is None


def test_history_source_value_error_fails_the_snapshot(
    engine: DashboardEngine, source: FakeSource
) -> None:
    source.fail_readings = ValueError("malformed reading payload")

    with pytest.raises(FetchError, match="malformed reading payload"):
        asyncio.run(engine.fetch_snapshot())


def test_tracked_kpi_filters_stay_bounded(engine: DashboardEngine, source: FakeSource) -> None:
    source.readings = [Reading("t-1", START, 22.0)]
    _cycle(engine)

    for index in range(500):
        engine.get_kpi_snapshot(DashboardFilter(search=f"q{index}"))

    tracked = engine._kpis.keys()
    assert len(tracked) <= engine._kpis.max_filters + 1
    assert tracked[0] == DashboardFilter()
    assert DashboardFilter(search="q499") in tracked
    assert DashboardFilter(search="q0") not in tracked

    _cycle(engine)
    assert engine._kpis.current(DashboardFilter(search="q499")) is not None
    assert engine._kpis.current(DashboardFilter(search="q0")) is None

    _cycle(engine)
    assert engine._kpis.keys() == [DashboardFilter()]
    assert engine._kpis.current(DashboardFilter(search="q499")) is None
    assert engine._kpis.previous(DashboardFilter(search="q499")) is None
    assert engine._kpis.current(DashboardFilter()) is not None


def test_kpi_query_does_not_shift_previous_values(
    engine: DashboardEngine, source: FakeSource, clock: FakeClock
) -> None:
    source.readings = [Reading("t-1", START, 22.0)]
    _cycle(engine)
    clock.advance(seconds=10)
    source.readings.append(Reading("h-1", clock.now, 55.0))
    _cycle(engine)

    before = engine.get_kpi_snapshot()
    engine.get_kpi_snapshot(DashboardFilter(farm_id="farm-a"))
    after = engine.get_kpi_snapshot()

    assert after.previous == before.previous
    assert after.previous is not None and after.previous.active == 1
