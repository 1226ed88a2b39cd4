from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_anomalies, render_import, render_overview, render_sensor

WINDOW_CHOICES = ("15m", "1h", "6h", "24h")


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Inspect sensor health and import readings for farm monitoring.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
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
    farm_id: Optional[str] = typer.Option(
        None,
        "--farm",
        "-f",
        help="Restrict views to one farm (defaults to CLI_FARM_ID env).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, farm_id=farm_id, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("overview")
def overview_command(ctx: typer.Context) -> None:
    """Show the overall status banner and KPIs with trends."""
    state = _get_state(ctx)
    farm_id = state.config.farm_id
    render_overview(state.client.get_overview(farm_id), state.client.get_kpis(farm_id))


@app.command("anomalies")
def anomalies_command(ctx: typer.Context) -> None:
    """List warning and critical sensors, most severe first."""
    state = _get_state(ctx)
    render_anomalies(state.client.get_anomalies(state.config.farm_id))


@app.command("sensor")
def sensor_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identifier."),
    window: Optional[str] = typer.Option(
        None,
        "--window",
        "-w",
        help="Also show the reading series for 15m, 1h, 6h or 24h.",
    ),
) -> None:
    """Show one sensor's status, thresholds and optionally its series."""
    if window is not None and window not in WINDOW_CHOICES:
        raise typer.BadParameter(f"Window must be one of: {', '.join(WINDOW_CHOICES)}.")
    state = _get_state(ctx)
    status = state.client.get_sensor_status(sensor_id)
    series = state.client.get_series(sensor_id, window) if window is not None else None
    render_sensor(status, series)


@app.command("import")
def import_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to CSV file."),
    refresh: bool = typer.Option(
        True,
        "--refresh/--no-refresh",
        help="Trigger a refresh after the import so views pick up the readings.",
    ),
) -> None:
    """Import readings from a sensor_id,timestamp,value CSV file."""
    state = _get_state(ctx)
    typer.echo(f"Importing {file} into {state.config.base_url} ...")
    result = state.client.import_csv(file)
    render_import(result)
    if result.get("status") == "failed":
        raise typer.Exit(code=1)
    if refresh:
        outcome = state.client.refresh()
        if outcome.get("applied"):
            typer.secho("Refresh applied.", fg=typer.colors.GREEN)
        else:
            typer.secho(f"Refresh not applied (state={outcome.get('state')}).", fg=typer.colors.YELLOW)


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    interval: Optional[float] = typer.Option(
        None,
        "--interval",
        help="Seconds between updates (defaults to CLI_POLL_INTERVAL env or 10).",
    ),
    count: int = typer.Option(
        0,
        "--count",
        "-n",
        min=0,
        help="Stop after this many updates; 0 runs until interrupted.",
    ),
) -> None:
    """Re-render the overview periodically."""
    state = _get_state(ctx)
    delay = interval if interval is not None and interval > 0 else state.config.refresh_interval
    farm_id = state.config.farm_id
    iteration = 0
    try:
        while True:
            iteration += 1
            render_overview(state.client.get_overview(farm_id), state.client.get_kpis(farm_id))
            if count and iteration >= count:
                break
            typer.echo()
            time.sleep(delay)
    except KeyboardInterrupt:
        typer.echo("Stopped.")
