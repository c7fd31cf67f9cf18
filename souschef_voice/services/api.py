"""HTTP client used to talk to the SousChef backend."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from ..config.settings import Settings
from ..utils.logger import get_logger
from ..utils.trace import get_trace_id

logger = get_logger("api")


class SousChefAPI:
    """Async client for the cooking endpoints.

    Connectivity problems surface as :class:`httpx.HTTPError`; HTTP status
    codes are returned to the caller instead of being raised so that error
    payloads can be shown to the user.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        timeout = httpx.Timeout(
            connect=10.0,
            read=settings.request_timeout,
            write=10.0,
            pool=None,
        )
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            verify=settings.verify_ssl,
            timeout=timeout,
            transport=transport,
        )
        self._token = settings.api_token

    async def post_input(self, payload: dict[str, Any]) -> tuple[int, dict[str, Any]]:
        """Send one conversation turn; returns the status and decoded body."""
        response = await self._client.post("/api/cooking/input", json=payload, headers=self._headers())
        return response.status_code, self._json_body(response)

    async def start_timer(self, session_id: int, label: str, duration_seconds: int) -> bool:
        """Persist a started timer; returns True when the backend stored it."""
        response = await self._client.post(
            "/api/cooking/timer/start",
            json={"sessionId": session_id, "label": label, "durationSeconds": duration_seconds},
            headers=self._headers(),
        )
        return response.is_success

    async def complete_timer(self, timer_id: int) -> bool:
        response = await self._client.post(
            "/api/cooking/timer/complete",
            json={"timerId": timer_id},
            headers=self._headers(),
        )
        return response.is_success

    async def end_session(self, session_id: int) -> tuple[int, dict[str, Any]]:
        response = await self._client.post(
            "/api/cooking/end",
            json={"sessionId": session_id},
            headers=self._headers(),
        )
        return response.status_code, self._json_body(response)

    async def list_sessions(self) -> list[dict[str, Any]]:
        """Return the active sessions with their persisted timers."""
        response = await self._client.get("/api/cooking/sessions", headers=self._headers())
        response.raise_for_status()
        data = self._json_body(response)
        sessions = data.get("sessions") if "sessions" in data else data.get("items")
        if isinstance(sessions, list):
            return [item for item in sessions if isinstance(item, dict)]
        return []

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        trace_id = get_trace_id()
        if trace_id:
            headers["X-Trace-Id"] = trace_id
        return headers

    @staticmethod
    def _json_body(response: httpx.Response) -> dict[str, Any]:
        """Decode a JSON object body; anything else becomes an empty dict."""
        try:
            data = response.json()
        except ValueError:
            logger.warning("non-JSON body from %s (%s)", response.request.url.path, response.status_code)
            return {}
        if isinstance(data, list):
            return {"items": data}
        return data if isinstance(data, dict) else {}
