from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        headers = {"Authorization": f"Bearer {config.token}"} if config.token else {}
        self._client = httpx.Client(
            base_url=config.base_url, timeout=config.timeout, headers=headers
        )

    def close(self) -> None:
        self._client.close()

    def get_hourly(self, metrics: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        params = [("metrics", metric) for metric in metrics] if metrics else None
        return self._get("/api/v1/sensors/hourly", params=params)

    def get_summary(self) -> List[Dict[str, Any]]:
        return self._get("/api/v1/sensors/latest")

    def get_recent(self, limit: int) -> List[Dict[str, Any]]:
        return self._get("/api/v1/data", params={"limit": limit})

    def push_reading(self, values: Dict[str, float]) -> Dict[str, Any]:
        try:
            response = self._client.post("/api/v1/data", json=values)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    def _get(self, path: str, params: Any = None) -> Any:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        status_code = exc.response.status_code
        if status_code == 401:
            detail = "missing or invalid token (set --token or API_TOKEN)."
        elif status_code == 403:
            detail = "token lacks the required right."
        else:
            try:
                detail = exc.response.json().get("detail")
            except (ValueError, AttributeError):
                detail = exc.response.text.strip()
        message = f"Request failed with status {status_code}: {detail or 'no detail provided.'}"
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
