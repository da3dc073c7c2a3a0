from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_logger_status(payload: Dict[str, Any]) -> None:
    echo_heading("Background Logger")
    echo_key_values(
        [
            ("running", payload.get("running")),
            ("interval_ms", payload.get("interval_ms")),
            ("cycle_count", payload.get("cycle_count")),
        ]
    )

    typer.echo()
    echo_heading("Selections")
    selections = payload.get("selections") or {}
    active = payload.get("active_sensors") or {}
    if not selections:
        typer.echo("No families configured.")
    for family, selection in selections.items():
        sensors = ", ".join(active.get(family) or []) or "NONE"
        typer.echo(f"  - {family}: {selection} ({sensors})")


def render_realtime(payload: Dict[str, Any]) -> None:
    echo_heading("Realtime Readings")
    liveness = payload.get("sensor_status") or {}
    groups = ("air_temperature", "water_temperature", "humidity", "water_level", "water_weight")
    for group in groups:
        readings = payload.get(group) or {}
        if not readings:
            continue
        typer.echo(f"{group}:")
        for sensor_id, value in readings.items():
            live = (liveness.get(group) or {}).get(sensor_id)
            marker = "active" if live else "inactive"
            typer.echo(f"  - {sensor_id}: {value} [{marker}]")

    typer.echo()
    echo_heading("Valve")
    echo_key_values(
        [
            ("status", payload.get("valve_status")),
            ("level", payload.get("valve_level")),
            ("last_update", payload.get("last_update")),
        ]
    )
