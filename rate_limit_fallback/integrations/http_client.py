"""
HTTP client for an OpenCode-style agent host.

Implements both ``SessionClient`` and ``Notifier`` over the host's REST API
with a shared ``httpx.AsyncClient``.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..models.fallback import FallbackModel, MessagePart, Notification
from ..fallback.state import parts_to_request

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class OpenCodeHttpClient:
    """Session I/O and toast notifications against the host server."""

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT
    ):
        """
        Initialize the client.

        Args:
            base_url: Host server URL, e.g. ``http://localhost:4096``
            client: Optional pre-configured client (owned by the caller)
            timeout: Request timeout in seconds for the internally created client
        """
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def abort(self, session_id: str) -> None:
        response = await self._client.post(f"/session/{session_id}/abort")
        response.raise_for_status()

    async def fetch_messages(self, session_id: str) -> Optional[List[Dict[str, Any]]]:
        """Return the history flattened to ``{id, role, parts}`` items."""
        response = await self._client.get(f"/session/{session_id}/message")
        if response.status_code == 404:
            return None
        response.raise_for_status()

        data = response.json()
        if not isinstance(data, list):
            return None

        messages = []
        for item in data:
            if not isinstance(item, dict):
                continue
            info = item.get("info") or {}
            messages.append({
                "id": info.get("id"),
                "role": info.get("role"),
                "parts": item.get("parts") or [],
            })
        return messages

    async def resend(self, session_id: str, parts: List[MessagePart], model: FallbackModel) -> None:
        response = await self._client.post(
            f"/session/{session_id}/message",
            json={"parts": parts_to_request(parts), "model": model.to_request()},
        )
        response.raise_for_status()

    async def notify(self, notification: Notification) -> None:
        body = {
            "title": notification.title,
            "message": notification.message,
            "variant": notification.variant,
        }
        if notification.duration_ms is not None:
            body["duration"] = notification.duration_ms

        response = await self._client.post("/tui/show-toast", json=body)
        response.raise_for_status()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
