from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from chatrouter.core.config import settings


class BackendClient:
    """HTTP client for the business backend that owns users, profiles and replies."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url or settings.backend_api_base_url
        if not self._base_url:
            raise ValueError("BACKEND_API_BASE_URL is not configured.")

        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout or settings.backend_api_timeout),
            headers=headers,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def post_event(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Post a JSON event and return the decoded response (empty dict for no body)."""
        response = await self._client.post(endpoint, json=payload)
        response.raise_for_status()
        if not response.content:
            return {}
        return response.json()

    async def get_json(self, endpoint: str) -> Dict[str, Any]:
        response = await self._client.get(endpoint)
        response.raise_for_status()
        return response.json()
