from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_devices, render_event, render_history, render_reading


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for registering sensors, sending readings and following live updates.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
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
        help="Seconds to wait for each request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("register")
def register_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Device name: a letter followed by letters, digits or underscores."),
    campus: str = typer.Option(..., "--campus", help="Campus or building."),
    location: str = typer.Option(..., "--location", help="Room or area within the campus."),
) -> None:
    """Register a device so it can report readings."""
    state = _get_state(ctx)
    device = state.client.register_device(name, campus, location)
    typer.secho(
        f"Registered {device.get('name')} at {device.get('campus')} / {device.get('location')}",
        fg=typer.colors.GREEN,
    )


@app.command("devices")
def devices_command(ctx: typer.Context) -> None:
    """List registered devices."""
    state = _get_state(ctx)
    render_devices(state.client.list_devices())


@app.command("remove")
def remove_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Registered device name."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Remove a device and all of its stored readings."""
    state = _get_state(ctx)
    if not yes:
        typer.confirm(f"Remove {name} and delete its readings?", abort=True)
    payload = state.client.remove_device(name)
    typer.echo(payload.get("message"))


@app.command("write")
def write_command(
    ctx: typer.Context,
    device: str = typer.Argument(..., help="Registered device name."),
    temperature: int = typer.Argument(..., help="Temperature reading."),
    humidity: Optional[int] = typer.Option(None, "--humidity", help="Relative humidity reading."),
) -> None:
    """Send one reading the way a sensor device would."""
    state = _get_state(ctx)
    payload = state.client.write_reading(device, temperature, humidity)
    reading = payload.get("reading") or {}
    typer.secho(
        f"Recorded {reading.get('temperature')}° for {payload.get('device')} "
        f"at {reading.get('date')} {reading.get('time')}",
        fg=typer.colors.GREEN,
    )


@app.command("latest")
def latest_command(
    ctx: typer.Context,
    device: str = typer.Argument(..., help="Registered device name."),
) -> None:
    """Show the most recent reading for a device."""
    state = _get_state(ctx)
    render_reading(device, state.client.latest(device))


@app.command("history")
def history_command(
    ctx: typer.Context,
    device: str = typer.Argument(..., help="Registered device name."),
    date: Optional[str] = typer.Option(None, "--date", help="Only readings from this YYYY-MM-DD date."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Maximum readings to show."),
) -> None:
    """Show stored readings for a device, newest first."""
    state = _get_state(ctx)
    render_history(device, state.client.history(device, date=date, limit=limit))


@app.command("reset")
def reset_command(
    ctx: typer.Context,
    device: str = typer.Argument(..., help="Registered device name."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete the stored history of a device."""
    state = _get_state(ctx)
    if not yes:
        typer.confirm(f"Delete all readings for {device}?", abort=True)
    payload = state.client.reset_history(device)
    typer.echo(payload.get("message"))


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        min=1,
        help="Stop after this many update events (default: follow forever).",
    ),
) -> None:
    """Follow the live update stream."""
    state = _get_state(ctx)
    updates = 0
    for message in state.client.stream_events():
        render_event(message)
        if message.get("type") == "update":
            updates += 1
            if count is not None and updates >= count:
                break
