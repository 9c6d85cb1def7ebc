from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest
import typer
from typer.testing import CliRunner

from cli.app import app
from cli.config import DEFAULT_BASE_URL, load_config


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.ingested: List[Dict[str, Any]] = []
        self.reports: List[Dict[str, Any]] = []
        self.area_calls: List[tuple] = []
        self.analytics_payload: Dict[str, Any] = {
            "sensor_id": "sensor-a",
            "location": {"latitude": 24.7, "longitude": 46.7},
            "stats": {
                "average_aqi": 127,
                "max_aqi": 220,
                "min_aqi": 40,
                "readings_count": 3,
                "last_update": "2024-01-01T00:02:00Z",
                "data_quality": "excellent",
            },
            "trends": {"aqi_trend": "stable", "change_rate": 0.0, "prediction": None},
        }
        self.closed = False

    def ingest(self, reading: Dict[str, Any]) -> Dict[str, Any]:
        self.ingested.append(reading)
        return {
            "success": True,
            "id": f"ingest-{len(self.ingested)}",
            "deduplicated": len(self.ingested) > 1,
            "analytics": self.analytics_payload,
        }

    def sensor_analytics(self, sensor_id: str) -> Dict[str, Any]:
        if sensor_id != "sensor-a":
            raise typer.BadParameter(f"Sensor {sensor_id} has no analytics.")
        return self.analytics_payload

    def area(self, latitude: float, longitude: float, radius_km: float) -> List[Dict[str, Any]]:
        self.area_calls.append((latitude, longitude, radius_km))
        return [self.analytics_payload]

    def system_health(self) -> Dict[str, Any]:
        return {"total_sensors": 4, "active_sensors": 3, "health_percentage": 75, "uptime": 12.5}

    def cache_stats(self) -> Dict[str, Any]:
        return {"total_items": 2, "hits": 5, "misses": 2, "hit_rate": 0.7143, "memory_usage": "0% of limit"}

    def report(self, config: Dict[str, Any]) -> str:
        self.reports.append(config)
        return "Metric,Average\naqi,60.0"

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


def test_ingest_single_reading(runner: CliRunner, stub: StubClient, tmp_path) -> None:
    path = tmp_path / "reading.json"
    path.write_text(json.dumps({"sensorId": "sensor-a"}))

    result = runner.invoke(app, ["ingest", str(path)])

    assert result.exit_code == 0, result.output
    assert "Reading ingest-1 aggregated." in result.stdout
    assert "average_aqi: 127" in result.stdout
    assert stub.ingested == [{"sensorId": "sensor-a"}]
    assert stub.closed is True


def test_ingest_list_of_readings(runner: CliRunner, stub: StubClient, tmp_path) -> None:
    path = tmp_path / "readings.json"
    path.write_text(json.dumps([{"sensorId": "a"}, {"sensorId": "b"}]))

    result = runner.invoke(app, ["ingest", str(path)])

    assert result.exit_code == 0, result.output
    assert len(stub.ingested) == 2
    assert "Reading ingest-2 deduplicated." in result.stdout


def test_ingest_rejects_invalid_json(runner: CliRunner, stub: StubClient, tmp_path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{nope")

    result = runner.invoke(app, ["ingest", str(path)])

    assert result.exit_code != 0
    assert stub.ingested == []


def test_sensor_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["sensor", "sensor-a"])

    assert result.exit_code == 0, result.output
    assert "Sensor sensor-a" in result.stdout
    assert "readings_count: 3" in result.stdout
    assert "aqi_trend: stable" in result.stdout


def test_sensor_command_unknown_sensor(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["sensor", "ghost"])

    assert result.exit_code != 0


def test_area_command_passes_radius(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["area", "24.7", "46.7", "--radius", "25"])

    assert result.exit_code == 0, result.output
    assert stub.area_calls == [(24.7, 46.7, 25.0)]
    assert "1 sensor(s) in area" in result.stdout
    assert "sensor-a: avg=127 quality=excellent" in result.stdout


def test_health_and_cache_stats(runner: CliRunner, stub: StubClient) -> None:
    health = runner.invoke(app, ["health"])
    stats = runner.invoke(app, ["cache-stats"])

    assert health.exit_code == 0
    assert "health_percentage: 75" in health.stdout
    assert stats.exit_code == 0
    assert "hit_rate: 0.7143" in stats.stdout


def test_report_builds_config(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(
        app,
        [
            "report",
            "--name",
            "Weekly",
            "--type",
            "weekly",
            "--start",
            "2024-01-01T00:00:00",
            "--end",
            "2024-01-08T00:00:00",
            "--metric",
            "aqi",
            "--sensor",
            "sensor-a",
            "--format",
            "csv",
            "--predictions",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "aqi,60.0" in result.stdout
    config = stub.reports[0]
    assert config["type"] == "weekly"
    assert config["format"] == "csv"
    assert config["metrics"] == ["aqi"]
    assert config["filters"] == {"sensorIds": ["sensor-a"]}
    assert config["includePredictions"] is True
    assert config["dateRange"]["start"].startswith("2024-01-01T00:00:00")


def test_report_writes_output_file(runner: CliRunner, stub: StubClient, tmp_path) -> None:
    output = tmp_path / "report.csv"

    result = runner.invoke(
        app,
        [
            "report",
            "--name",
            "Daily",
            "--start",
            "2024-01-01T00:00:00",
            "--end",
            "2024-01-02T00:00:00",
            "--output",
            str(output),
        ],
    )

    assert result.exit_code == 0, result.output
    assert output.read_text() == "Metric,Average\naqi,60.0"
    assert "metrics" not in stub.reports[0]
    assert stub.reports[0]["type"] == "custom"


def test_base_url_option_reaches_client(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["--base-url", "http://sensors.test/", "health"])

    assert result.exit_code == 0
    assert stub.config.base_url == "http://sensors.test"


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://env.test")
    monkeypatch.setenv("CLI_TIMEOUT", "not-a-number")

    config = load_config()

    assert config.base_url == "http://env.test"
    assert config.timeout == 30.0

    monkeypatch.delenv("API_BASE_URL")
    monkeypatch.setenv("CLI_TIMEOUT", "5")
    config = load_config()
    assert config.base_url == DEFAULT_BASE_URL
    assert config.timeout == 5.0
