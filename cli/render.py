from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_analytics(payload: Dict[str, Any]) -> None:
    echo_heading(f"Sensor {payload.get('sensor_id')}")
    location = payload.get("location") or {}
    echo_key_values(
        [
            ("latitude", location.get("latitude")),
            ("longitude", location.get("longitude")),
        ]
    )

    stats = payload.get("stats") or {}
    typer.echo()
    echo_heading("Stats")
    echo_key_values(
        [
            ("average_aqi", stats.get("average_aqi")),
            ("max_aqi", stats.get("max_aqi")),
            ("min_aqi", stats.get("min_aqi")),
            ("readings_count", stats.get("readings_count")),
            ("last_update", stats.get("last_update")),
            ("data_quality", stats.get("data_quality")),
        ]
    )

    trends = payload.get("trends") or {}
    typer.echo()
    echo_heading("Trend")
    echo_key_values(
        [
            ("aqi_trend", trends.get("aqi_trend")),
            ("change_rate", trends.get("change_rate")),
            ("prediction", trends.get("prediction")),
        ]
    )


def render_ingestion(payload: Dict[str, Any]) -> None:
    status = "deduplicated" if payload.get("deduplicated") else "aggregated"
    typer.secho(f"Reading {payload.get('id')} {status}.", fg=typer.colors.GREEN)
    analytics = payload.get("analytics")
    if analytics:
        typer.echo()
        render_analytics(analytics)


def render_area(sensors: List[Dict[str, Any]]) -> None:
    echo_heading(f"{len(sensors)} sensor(s) in area")
    if not sensors:
        typer.echo("No sensors found.")
        return
    for sensor in sensors:
        stats = sensor.get("stats") or {}
        typer.echo(
            f"  - {sensor.get('sensor_id')}: avg={stats.get('average_aqi')} "
            f"quality={stats.get('data_quality')}"
        )


def render_mapping(title: str, payload: Dict[str, Any]) -> None:
    echo_heading(title)
    echo_key_values(payload.items())
