from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_analytics, render_area, render_ingestion, render_mapping


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor analytics service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("ingest")
def ingest_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON file with a reading or a list of readings."
    ),
) -> None:
    """Submit sensor readings from a JSON file."""
    state = _get_state(ctx)
    try:
        payload = json.loads(file.read_text())
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{file} is not valid JSON: {exc}") from exc

    readings = payload if isinstance(payload, list) else [payload]
    for reading in readings:
        render_ingestion(state.client.ingest(reading))


@app.command("sensor")
def sensor_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
) -> None:
    """Show the running analytics of one sensor."""
    state = _get_state(ctx)
    render_analytics(state.client.sensor_analytics(sensor_id))


@app.command("area")
def area_command(
    ctx: typer.Context,
    latitude: float = typer.Argument(..., help="Center latitude."),
    longitude: float = typer.Argument(..., help="Center longitude."),
    radius: float = typer.Option(10.0, "--radius", "-r", help="Radius in kilometres."),
) -> None:
    """List sensors within a radius of a point."""
    state = _get_state(ctx)
    render_area(state.client.area(latitude, longitude, radius))


@app.command("health")
def health_command(ctx: typer.Context) -> None:
    """Show sensor fleet health."""
    state = _get_state(ctx)
    render_mapping("System Health", state.client.system_health())


@app.command("cache-stats")
def cache_stats_command(ctx: typer.Context) -> None:
    """Show report cache statistics."""
    state = _get_state(ctx)
    render_mapping("Report Cache", state.client.cache_stats())


@app.command("report")
def report_command(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Report name."),
    report_type: str = typer.Option("custom", "--type", help="daily, weekly, monthly, quarterly or custom."),
    start: datetime = typer.Option(..., "--start", help="Range start (ISO 8601)."),
    end: datetime = typer.Option(..., "--end", help="Range end (ISO 8601)."),
    metric: Optional[List[str]] = typer.Option(None, "--metric", "-m", help="Metric to include; repeatable."),
    sensor: Optional[List[str]] = typer.Option(None, "--sensor", "-s", help="Restrict to a sensor; repeatable."),
    export_format: str = typer.Option("json", "--format", "-f", help="json or csv."),
    predictions: bool = typer.Option(False, "--predictions/--no-predictions", help="Include an AQI prediction."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report to a file."),
) -> None:
    """Generate an analytics report."""
    state = _get_state(ctx)
    config = {
        "name": name,
        "type": report_type,
        "format": export_format,
        "dateRange": {"start": start.isoformat(), "end": end.isoformat()},
        "filters": {"sensorIds": sensor} if sensor else {},
        "includePredictions": predictions,
    }
    if metric:
        config["metrics"] = metric

    body = state.client.report(config)
    if output is None:
        typer.echo(body)
        return
    output.write_text(body)
    typer.secho(f"Report written to {output}", fg=typer.colors.GREEN)
