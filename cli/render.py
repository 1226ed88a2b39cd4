from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import typer

STATUS_COLORS = {
    "critical": typer.colors.RED,
    "warning": typer.colors.YELLOW,
    "offline": typer.colors.BRIGHT_BLACK,
    "normal": typer.colors.GREEN,
}

TREND_ARROWS = {"up": "↑", "down": "↓", "flat": "→"}

KPI_LABELS = [
    ("total", "Sensors"),
    ("active", "Active"),
    ("offline", "Offline"),
    ("uptime_percent", "Uptime %"),
    ("anomalies", "Anomalies"),
    ("critical", "Critical"),
    ("avg_reading_value", "Avg reading"),
    ("total_readings", "Readings"),
    ("farm_count", "Farms"),
]


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def echo_status(label: str, status: Optional[str]) -> None:
    typer.echo(f"{label}: ", nl=False)
    typer.secho(str(status), fg=STATUS_COLORS.get(str(status)), bold=status == "critical")


def render_overview(overview: Dict[str, Any], kpis: Optional[Dict[str, Any]] = None) -> None:
    echo_heading("Fleet Overview")
    echo_status("status", overview.get("status"))
    echo_key_values(
        [
            ("as_of", overview.get("as_of") or "never refreshed"),
            ("stale", overview.get("stale")),
        ]
    )
    counts = overview.get("counts") or {}
    typer.echo(
        "counts: "
        + ", ".join(f"{name}={counts.get(name, 0)}" for name in ("normal", "warning", "critical", "offline"))
    )
    if not kpis:
        return

    typer.echo()
    echo_heading("KPIs")
    current = kpis.get("current") or {}
    trends = kpis.get("trends") or {}
    for key, label in KPI_LABELS:
        trend = trends.get(key) or {}
        arrow = TREND_ARROWS.get(trend.get("direction"), "")
        color = {"success": typer.colors.GREEN, "danger": typer.colors.RED}.get(trend.get("color"))
        typer.echo(f"  {label}: {current.get(key)} ", nl=False)
        typer.secho(arrow, fg=color)


def render_anomalies(anomalies: List[Dict[str, Any]]) -> None:
    echo_heading("Anomalies")
    if not anomalies:
        typer.echo("No anomalies detected.")
        return
    for item in anomalies:
        severity = item.get("severity")
        typer.secho(f"  [{severity}]", fg=STATUS_COLORS.get(str(severity)), nl=False)
        name = item.get("device_name") or item.get("device_id")
        typer.echo(
            f" {item.get('sensor_id')} ({item.get('sensor_type')}, {item.get('farm_id')}/{name}): "
            f"value={item.get('value')} threshold={item.get('threshold')} at {item.get('timestamp')}"
        )


def render_sensor(status: Dict[str, Any], series: Optional[Dict[str, Any]] = None) -> None:
    echo_heading(f"Sensor {status.get('sensor_id')}")
    echo_status("status", status.get("status"))
    echo_key_values(
        [
            ("farm_id", status.get("farm_id")),
            ("device_id", status.get("device_id")),
            ("type", status.get("type")),
            ("value", f"{status.get('value')} {status.get('unit') or ''}".rstrip()),
            ("message", status.get("message")),
            ("last_reading_at", status.get("last_reading_at")),
            ("health_score", status.get("health_score")),
            ("readings", status.get("reading_count")),
            (
                "avg/min/max",
                f"{status.get('average_value')}/{status.get('min_value')}/{status.get('max_value')}",
            ),
        ]
    )
    thresholds = status.get("thresholds") or {}
    typer.echo(
        "thresholds: "
        f"min={thresholds.get('min')} optimal={thresholds.get('optimal_min')}..{thresholds.get('optimal_max')} "
        f"max={thresholds.get('max')}"
    )
    defaulted = status.get("defaulted_fields") or []
    if defaulted:
        typer.secho(f"defaulted thresholds: {', '.join(defaulted)}", fg=typer.colors.YELLOW)

    if series is None:
        return
    typer.echo()
    echo_heading(f"Series ({series.get('window')})")
    if not series.get("complete", True):
        typer.secho("History unavailable; showing live readings only.", fg=typer.colors.YELLOW)
    delta = series.get("delta_1h") if series.get("delta_available") else "n/a"
    echo_key_values(
        [
            ("points", len(series.get("points") or [])),
            ("current_value", series.get("current_value")),
            ("delta_1h", delta),
        ]
    )


def render_import(result: Dict[str, Any]) -> None:
    echo_heading("Import Result")
    echo_key_values(
        [
            ("status", result.get("status")),
            ("accepted", result.get("accepted")),
            ("processing_ms", result.get("processing_ms")),
        ]
    )
    errors = result.get("errors") or []
    typer.echo()
    echo_heading("Errors")
    if errors:
        for error in errors:
            typer.echo(f"  - row {error.get('row_number')}: {error.get('reason')}")
    else:
        typer.echo("No errors recorded.")
