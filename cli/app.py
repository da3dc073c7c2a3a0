from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_logger_status, render_realtime


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for controlling the field telemetry cache service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

_SELECTION_HELP = "'all', 'none' or a single sensor id."


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def _selections(
    temperature: Optional[str],
    humidity: Optional[str],
    water_weight: Optional[str],
) -> Dict[str, Any]:
    supplied = {
        "temperature": temperature,
        "humidity": humidity,
        "water_weight": water_weight,
    }
    return {family: value for family, value in supplied.items() if value is not None}


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
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show whether the background logger runs and what it records."""
    state = _get_state(ctx)
    render_logger_status(state.client.logger_status())


@app.command("start")
def start_command(
    ctx: typer.Context,
    temperature: Optional[str] = typer.Option(None, "--temperature", "-t", help=_SELECTION_HELP),
    humidity: Optional[str] = typer.Option(None, "--humidity", "-r", help=_SELECTION_HELP),
    water_weight: Optional[str] = typer.Option(None, "--water-weight", "-w", help=_SELECTION_HELP),
) -> None:
    """Start the background logger. Families left out record every sensor."""
    state = _get_state(ctx)
    payload = state.client.start_logger(_selections(temperature, humidity, water_weight))
    typer.secho(payload.get("message", "Logger started"), fg=typer.colors.GREEN)
    typer.echo()
    render_logger_status(payload.get("status") or {})


@app.command("stop")
def stop_command(ctx: typer.Context) -> None:
    """Stop the background logger."""
    state = _get_state(ctx)
    payload = state.client.stop_logger()
    typer.secho(payload.get("message", "Logger stopped"), fg=typer.colors.YELLOW)


@app.command("configure")
def configure_command(
    ctx: typer.Context,
    interval: Optional[int] = typer.Option(
        None, "--interval", "-i", min=1, help="Logger period in milliseconds."
    ),
    temperature: Optional[str] = typer.Option(None, "--temperature", "-t", help=_SELECTION_HELP),
    humidity: Optional[str] = typer.Option(None, "--humidity", "-r", help=_SELECTION_HELP),
    water_weight: Optional[str] = typer.Option(None, "--water-weight", "-w", help=_SELECTION_HELP),
) -> None:
    """Change the logger interval and/or sensor selections."""
    state = _get_state(ctx)
    payload = state.client.configure_logger(
        interval, _selections(temperature, humidity, water_weight)
    )
    typer.secho(payload.get("message", "Logger configured"), fg=typer.colors.GREEN)
    typer.echo()
    render_logger_status(payload.get("status") or {})


@app.command("realtime")
def realtime_command(ctx: typer.Context) -> None:
    """Print the latest cached reading of every sensor."""
    state = _get_state(ctx)
    render_realtime(state.client.realtime())
