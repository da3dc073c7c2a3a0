from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def logger_status(self) -> Dict[str, Any]:
        return self._request("GET", "/logger/status")

    def start_logger(self, selections: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/logger/start", json=selections or None)

    def stop_logger(self) -> Dict[str, Any]:
        return self._request("POST", "/logger/stop")

    def configure_logger(
        self,
        interval_ms: Optional[int],
        selections: Dict[str, Any],
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = dict(selections)
        if interval_ms is not None:
            body["interval"] = interval_ms
        if not body:
            raise typer.BadParameter("Supply --interval or at least one sensor selection.")
        return self._request("POST", "/logger/config", json=body)

    def realtime(self) -> Dict[str, Any]:
        return self._request("GET", "/esp32/realtime")

    def _request(self, method: str, path: str, json: Any = None) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1) from exc
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
