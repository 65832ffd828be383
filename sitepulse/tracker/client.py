"""
HTTP client for the tracking endpoints
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .storage import MemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-Id"


class TrackingClient:
    """
    Posts tracking calls and keeps the session token the server hands back.
    The server is authoritative: every session_id it returns replaces the stored one.
    """

    def __init__(
        self,
        base_url: str,
        store: Optional[TokenStore] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.store = store or MemoryTokenStore()
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers=headers,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    @property
    def token(self) -> Optional[str]:
        return self.store.get()

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = self.store.get()
        if token:
            headers[SESSION_HEADER] = token
        else:
            # an expired token must not come back through the cookie jar
            self._client.cookies.clear()
        return headers

    async def _post(self, path: str, body: Any) -> Dict[str, Any]:
        response = await self._client.post(path, json=body, headers=self._get_headers())
        response.raise_for_status()
        result = response.json() if response.content else {}

        session_id = result.get("session_id")
        if session_id:
            if session_id != self.store.get():
                logger.debug(f"Server assigned session {session_id}")
            self.store.set(session_id)
        return result

    async def send(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send one tracking call.

        Raises:
            httpx.HTTPStatusError: If the server answers with an error status
        """
        return await self._post("/api/analytics/track", event)

    async def send_batch(self, events: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._post("/api/analytics/track/batch", {"events": events})
