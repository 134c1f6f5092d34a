from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _humidity(value: Any) -> str:
    return "-" if value is None else f"{value}%"


def render_reading(device: str, payload: Dict[str, Any]) -> None:
    echo_heading(f"Latest reading: {device}")
    echo_key_values(
        [
            ("campus", payload.get("campus")),
            ("location", payload.get("location")),
            ("date", payload.get("date")),
            ("time", payload.get("time")),
            ("temperature", payload.get("temperature")),
            ("humidity", _humidity(payload.get("humidity"))),
        ]
    )


def render_history(device: str, readings: List[Dict[str, Any]]) -> None:
    echo_heading(f"History: {device}")
    if not readings:
        typer.echo("No history data available for this device.")
        return
    for reading in readings:
        typer.echo(
            f"  {reading.get('date')} {reading.get('time')}  "
            f"{reading.get('temperature')}°  {_humidity(reading.get('humidity'))}  "
            f"({reading.get('campus')} / {reading.get('location')})"
        )


def render_devices(devices: List[Dict[str, Any]]) -> None:
    echo_heading("Devices")
    if not devices:
        typer.echo("No devices registered.")
        return
    for device in devices:
        typer.echo(
            f"  - {device.get('name')}: {device.get('campus')} / {device.get('location')}"
        )


def render_event(message: Dict[str, Any]) -> None:
    if message.get("type") == "connected":
        typer.secho("Connected to live updates", fg=typer.colors.GREEN)
        return
    data = message.get("data") or {}
    typer.echo(
        f"[{data.get('date')} {data.get('time')}] {message.get('device')}: "
        f"{data.get('temperature')}° {_humidity(data.get('humidity'))} "
        f"({data.get('campus')} / {data.get('location')})"
    )
