"""HTTP TimelineSink talking to the candidate session API."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.logger import get_logger
from app.services.capture_buffer import SessionClosedError, SinkError
from app.services.events import KeystrokeEvent

logger = get_logger("http_sink")


class HttpTimelineSink:
    """
    Ships capture batches to `/session/{token}/...`.

    A 409 means the session is already submitted and is surfaced as
    SessionClosedError (not retried); every other failure becomes SinkError.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _request(self, method: str, path: str, payload: Optional[dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = await self._get_client().request(method, url, json=payload)
        except httpx.HTTPError as exc:
            raise SinkError(f"{method} {path}: {exc}") from exc

        if resp.status_code == 409:
            raise SessionClosedError(resp.json().get("detail", "Session is closed"))
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SinkError(f"{method} {path}: HTTP {resp.status_code}") from exc
        return resp.json()

    async def append_events(self, token: str, events: list[KeystrokeEvent]) -> None:
        await self._request(
            "POST",
            f"/session/{token}/events",
            {"events": [event.to_payload() for event in events]},
        )

    async def update_content(self, token: str, content: str) -> None:
        await self._request("PUT", f"/session/{token}/content", {"content": content})

    async def submit(self, token: str) -> None:
        await self._request("POST", f"/session/{token}/submit")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
