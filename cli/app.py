from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_hourly, render_readings, render_summary


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Query hourly rollups and device summaries from the telemetry service.",
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
    token: Optional[str] = typer.Option(
        None,
        "--token",
        "-t",
        help="Bearer token (defaults to API_TOKEN env).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, token=token, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("hourly")
def hourly_command(
    ctx: typer.Context,
    metric: Optional[List[str]] = typer.Option(
        None,
        "--metric",
        "-m",
        help="Metric to include; repeat for several. Defaults to all metrics.",
    ),
) -> None:
    """Show hourly averages over the trailing window."""
    state = _get_state(ctx)
    render_hourly(state.client.get_hourly(metric or None))


@app.command("summary")
def summary_command(ctx: typer.Context) -> None:
    """Show the latest reading and hourly history per device."""
    state = _get_state(ctx)
    render_summary(state.client.get_summary())


@app.command("recent")
def recent_command(
    ctx: typer.Context,
    limit: int = typer.Option(25, "--limit", "-n", min=1, max=100, help="Number of readings."),
) -> None:
    """List the most recent raw readings."""
    state = _get_state(ctx)
    render_readings(state.client.get_recent(limit))


@app.command("push")
def push_command(
    ctx: typer.Context,
    humidity: Optional[float] = typer.Option(None, "--humidity"),
    pressure: Optional[float] = typer.Option(None, "--pressure"),
    temperature: Optional[float] = typer.Option(None, "--temperature"),
    gas_resistance: Optional[float] = typer.Option(None, "--gas-resistance"),
) -> None:
    """Send one reading using a device token."""
    state = _get_state(ctx)
    values: Dict[str, float] = {
        name: value
        for name, value in (
            ("humidity", humidity),
            ("pressure", pressure),
            ("temperature", temperature),
            ("gasResistance", gas_resistance),
        )
        if value is not None
    }
    if not values:
        raise typer.BadParameter("Provide at least one metric value.")
    stored = state.client.push_reading(values)
    typer.secho(f"Reading stored. id={stored.get('id')}", fg=typer.colors.GREEN)
