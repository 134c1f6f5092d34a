from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Iterator, List, Optional

import httpx
import typer

from cli.config import CLIConfig


def parse_sse(lines: Iterable[str]) -> Iterator[Dict[str, Any]]:
    """Decode ``data:`` frames from an event stream; comments are skipped."""
    data: List[str] = []
    for line in lines:
        if not line:
            if data:
                yield json.loads("\n".join(data))
                data = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data.append(line[len("data:"):].lstrip())
    if data:
        yield json.loads("\n".join(data))


class ApiClient:
    """Minimal HTTP client for the sensor feed service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def register_device(self, name: str, campus: str, location: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/api/devices",
            json={"name": name, "campus": campus, "location": location},
        )

    def list_devices(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/devices")

    def remove_device(self, name: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/devices/{name}")

    def write_reading(
        self, device: str, temperature: int, humidity: Optional[int] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"device": device, "temp": temperature}
        if humidity is not None:
            payload["humidity"] = humidity
        return self._request("POST", "/api/write", json=payload)

    def latest(self, device: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/temperature/{device}")

    def history(
        self, device: str, date: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if date:
            params["date"] = date
        if limit:
            params["limit"] = limit
        return self._request("GET", f"/api/temperature/{device}/history", params=params)

    def reset_history(self, device: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/temperature/{device}/history")

    def stream_events(self) -> Iterator[Dict[str, Any]]:
        try:
            with self._client.stream("GET", "/api/dashboard/stream", timeout=None) as response:
                response.raise_for_status()
                yield from parse_sse(response.iter_lines())
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.RequestError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
