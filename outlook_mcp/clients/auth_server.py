"""
HTTP client for the companion authorization server.

The companion process owns the browser redirect and the code exchange; this
client only starts a flow and polls its status.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from outlook_mcp.core.config import AuthServerSettings
from outlook_mcp.core.errors import AuthFlowError

logger = logging.getLogger(__name__)


class AuthServerClient:
    """Thin JSON client for ``/auth/start`` and ``/auth/status``."""

    def __init__(
        self,
        settings: AuthServerSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = settings.base_url.rstrip("/")
        self._timeout = settings.request_timeout_seconds
        self._transport = transport

    async def start(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/auth/start", json=payload)

    async def status(self) -> Dict[str, Any]:
        return await self._request("GET", "/auth/status")

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise AuthFlowError(
                f"Authorization server at {self._base_url} timed out after {self._timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise AuthFlowError(
                f"Authorization server at {self._base_url} is unreachable: {exc}"
            ) from exc

        if response.is_error:
            logger.warning("%s %s returned %s", method, path, response.status_code)
            raise AuthFlowError(
                f"Authorization server returned HTTP {response.status_code} for {path}: "
                f"{response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise AuthFlowError(f"Authorization server returned invalid JSON for {path}") from exc
        if not isinstance(data, dict):
            raise AuthFlowError(f"Authorization server returned an unexpected body for {path}")
        return data


__all__ = ["AuthServerClient"]
