from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence

import typer

METRIC_COLUMNS: Sequence[str] = ("humidity", "pressure", "temperature", "gasResistance")


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def _format(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def _echo_table(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    typer.echo("  ".join(f"{column:>13}" for column in header))
    for row in rows:
        typer.echo("  ".join(f"{_format(cell):>13}" for cell in row))


def render_hourly(rows: List[Dict[str, Any]]) -> None:
    echo_heading("Hourly averages")
    if not rows:
        typer.echo("No readings in the window.")
        return
    _echo_table(
        ("hour", *METRIC_COLUMNS),
        ([row.get("hour"), *(row.get(metric) for metric in METRIC_COLUMNS)] for row in rows),
    )


def render_summary(rows: List[Dict[str, Any]]) -> None:
    echo_heading("Devices")
    if not rows:
        typer.echo("No devices with readings.")
        return
    for row in rows:
        typer.echo()
        typer.secho(str(row.get("device") or "(unnamed)"), bold=True)
        latest = row.get("latest") or {}
        typer.echo(
            "latest: "
            + ", ".join(f"{metric}={_format(latest.get(metric))}" for metric in METRIC_COLUMNS)
        )
        hours = sorted(
            {label for metric in METRIC_COLUMNS for label in (row.get(metric) or {})},
            key=int,
        )
        if hours:
            _echo_table(
                ("hour", *METRIC_COLUMNS),
                (
                    [label, *((row.get(metric) or {}).get(label) for metric in METRIC_COLUMNS)]
                    for label in hours
                ),
            )


def render_readings(readings: List[Dict[str, Any]]) -> None:
    echo_heading("Recent readings")
    if not readings:
        typer.echo("No readings recorded.")
        return
    _echo_table(
        ("createdAt", "deviceId", *METRIC_COLUMNS),
        (
            [item.get("createdAt"), item.get("deviceId"), *(item.get(m) for m in METRIC_COLUMNS)]
            for item in readings
        ),
    )
