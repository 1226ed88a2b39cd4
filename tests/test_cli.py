from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.config import load_config

OVERVIEW = {
    "status": "critical",
    "counts": {"normal": 1, "warning": 0, "critical": 1, "offline": 1},
    "as_of": "2024-05-01T12:00:00Z",
    "stale": False,
}
KPIS = {
    "current": {
        "total": 3,
        "active": 2,
        "offline": 1,
        "uptime_percent": 67,
        "anomalies": 1,
        "critical": 1,
        "avg_reading_value": 25.67,
        "total_readings": 3,
        "farm_count": 2,
    },
    "previous": None,
    "trends": {"active": {"direction": "up", "color": "success", "previous": 1}},
}


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.calls: List[tuple] = []
        self.import_payload: Dict[str, Any] = {
            "status": "imported",
            "accepted": 2,
            "errors": [],
            "processing_ms": 3,
        }
        self.closed = False

    def get_overview(self, farm_id: Optional[str] = None) -> Dict[str, Any]:
        self.calls.append(("overview", farm_id))
        return OVERVIEW

    def get_kpis(self, farm_id: Optional[str] = None) -> Dict[str, Any]:
        self.calls.append(("kpis", farm_id))
        return KPIS

    def get_anomalies(self, farm_id: Optional[str] = None) -> List[Dict[str, Any]]:
        self.calls.append(("anomalies", farm_id))
        return [
            {
                "sensor_id": "t-2",
                "sensor_type": "temperature",
                "farm_id": "farm-a",
                "device_id": "dev-2",
                "device_name": None,
                "value": 55.0,
                "threshold": 50.0,
                "severity": "critical",
                "timestamp": "2024-05-01T11:59:00Z",
            }
        ]

    def get_sensor_status(self, sensor_id: str) -> Dict[str, Any]:
        self.calls.append(("status", sensor_id))
        return {
            "sensor_id": sensor_id,
            "farm_id": "farm-b",
            "device_id": "dev-3",
            "type": "humidity",
            "unit": "%",
            "status": "warning",
            "value": 75.0,
            "message": "Above optimal range (75.0 > 70.0)",
            "last_reading_at": "2024-05-01T11:59:00Z",
            "health_score": 60,
            "thresholds": {"min": 10.0, "max": 95.0, "optimal_min": 40.0, "optimal_max": 70.0},
            "defaulted_fields": ["min", "max", "optimal_min", "optimal_max"],
            "range_position": 76.47,
        }

    def get_series(self, sensor_id: str, window: str) -> Dict[str, Any]:
        self.calls.append(("series", sensor_id, window))
        return {
            "sensor_id": sensor_id,
            "window": window,
            "points": [{"timestamp": "2024-05-01T11:59:00Z", "value": 75.0}],
            "complete": False,
            "current_value": 75.0,
            "delta_1h": None,
            "delta_available": False,
        }

    def import_csv(self, path: Path) -> Dict[str, Any]:
        self.calls.append(("import", path))
        return self.import_payload

    def refresh(self) -> Dict[str, Any]:
        self.calls.append(("refresh",))
        return {"applied": True, "state": "idle", "stale": False, "last_applied": None}

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    client = StubClient(config=None)

    def factory(config):
        client.config = config
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return client


def test_overview_renders_status_and_kpis(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["--farm", "farm-a", "overview"])

    assert result.exit_code == 0
    assert "Fleet Overview" in result.stdout
    assert "status: critical" in result.stdout
    assert "Uptime %: 67" in result.stdout
    assert stub.calls == [("overview", "farm-a"), ("kpis", "farm-a")]
    assert stub.closed is True


def test_anomalies_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["anomalies"])

    assert result.exit_code == 0
    assert "[critical]" in result.stdout
    assert "threshold=50.0" in result.stdout


def test_sensor_command_with_series(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["sensor", "h-1", "--window", "1h"])

    assert result.exit_code == 0
    assert "Sensor h-1" in result.stdout
    assert "defaulted thresholds" in result.stdout
    assert "History unavailable" in result.stdout
    assert "delta_1h: n/a" in result.stdout
    assert stub.calls == [("status", "h-1"), ("series", "h-1", "1h")]


def test_sensor_command_rejects_unknown_window(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["sensor", "h-1", "--window", "7d"])

    assert result.exit_code != 0
    assert stub.calls == []


def test_import_command_refreshes_after_upload(runner: CliRunner, stub: StubClient, tmp_path) -> None:
    csv_path = tmp_path / "data.csv"
    csv_path.write_text("sensor_id,timestamp,value\ns,2024-01-01T00:00:00Z,1.0\n")

    result = runner.invoke(app, ["import", str(csv_path)])

    assert result.exit_code == 0
    assert "Import Result" in result.stdout
    assert "Refresh applied." in result.stdout
    assert stub.calls == [("import", csv_path), ("refresh",)]


def test_import_command_fails_on_rejected_file(runner: CliRunner, stub: StubClient, tmp_path) -> None:
    csv_path = tmp_path / "data.csv"
    csv_path.write_text("sensor_id,value\ns,1.0\n")
    stub.import_payload = {
        "status": "failed",
        "accepted": 0,
        "errors": [{"row_number": 1, "reason": "CSV missing required columns: timestamp"}],
        "processing_ms": 1,
    }

    result = runner.invoke(app, ["import", str(csv_path)])

    assert result.exit_code == 1
    assert "row 1: CSV missing required columns: timestamp" in result.stdout
    assert ("refresh",) not in stub.calls


def test_watch_stops_after_count(runner: CliRunner, stub: StubClient, monkeypatch) -> None:
    sleeps: List[float] = []
    monkeypatch.setattr("cli.app.time.sleep", sleeps.append)

    result = runner.invoke(app, ["watch", "--count", "2", "--interval", "0.5"])

    assert result.exit_code == 0
    assert result.stdout.count("Fleet Overview") == 2
    assert sleeps == [0.5]


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://sensors.local:9000/")
    monkeypatch.setenv("CLI_FARM_ID", "farm-z")
    monkeypatch.setenv("CLI_POLL_INTERVAL", "-3")
    monkeypatch.setenv("CLI_POLL_TIMEOUT", "12")

    config = load_config()

    assert config.base_url == "http://sensors.local:9000"
    assert config.farm_id == "farm-z"
    assert config.refresh_interval == 10.0
    assert config.request_timeout == 12.0
