from __future__ import annotations

from datetime import datetime, timedelta, timezone

from models.health import ReadingSnapshot
from models.records import Reading, Sensor, SensorStatus, ThresholdSet
from services.aggregator import Aggregator
from services.anomalies import extract_anomalies

AS_OF = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
BAND = ThresholdSet(min=0.0, max=50.0, optimal_min=18.0, optimal_max=25.0)


def _sensor(sensor_id: str) -> Sensor:
    return Sensor(
        sensor_id=sensor_id,
        device_id=f"dev-{sensor_id}",
        farm_id="farm-a",
        type="temperature",
        unit="C",
        thresholds=BAND,
    )


def test_anomalies_sorted_by_severity_then_newest_first() -> None:
    samples = {
        "warm-old": (30.0, 9),
        "hot-old": (55.0, 8),
        "ok": (22.0, 1),
        "warm-new": (10.0, 2),
        "hot-new": (-1.0, 3),
    }
    readings = {
        sensor_id: (Reading(sensor_id, AS_OF - timedelta(minutes=age), value),)
        for sensor_id, (value, age) in samples.items()
    }
    snapshot = ReadingSnapshot(
        as_of=AS_OF,
        sensors=tuple(_sensor(sensor_id) for sensor_id in samples) + (_sensor("silent"),),
        readings=readings,
    )
    view = Aggregator().evaluate(snapshot)

    anomalies = extract_anomalies(view.sensors)

    assert [record.sensor_id for record in anomalies] == ["hot-new", "hot-old", "warm-new", "warm-old"]
    assert [record.severity for record in anomalies] == [
        SensorStatus.critical,
        SensorStatus.critical,
        SensorStatus.warning,
        SensorStatus.warning,
    ]
    assert [record.threshold for record in anomalies] == [0.0, 50.0, 18.0, 25.0]
    assert anomalies[0].device_id == "dev-hot-new"


def test_no_anomalies_when_everything_is_normal() -> None:
    snapshot = ReadingSnapshot(
        as_of=AS_OF,
        sensors=(_sensor("ok"),),
        readings={"ok": (Reading("ok", AS_OF, 20.0),)},
    )

    assert extract_anomalies(Aggregator().evaluate(snapshot).sensors) == []
