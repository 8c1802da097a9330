"""
Microsoft identity platform OAuth utilities.

These helpers build authorization URLs and talk to the v2.0 token endpoint for
the authorization-code and refresh-token grants.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Sequence
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from outlook_mcp.core.config import MicrosoftSettings

logger = logging.getLogger(__name__)


class OAuthTokenExchangeError(Exception):
    """Raised when the token endpoint returns an error or cannot be reached."""


def decode_id_token_claims(id_token: str | None) -> Dict[str, Any]:
    """Return the unverified claims of an ID token, or an empty dict."""
    if not id_token:
        return {}
    parts = id_token.split(".")
    if len(parts) < 2:
        return {}
    segment = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(segment.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError):
        return {}
    return claims if isinstance(claims, dict) else {}


class MicrosoftOAuthClient:
    """Build Microsoft authorization URLs and exchange codes and refresh tokens."""

    def __init__(
        self,
        microsoft_settings: MicrosoftSettings,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._microsoft = microsoft_settings
        self._timeout = timeout
        self._transport = transport

    @property
    def token_url(self) -> str:
        return self._microsoft.token_endpoint

    def build_authorization_url(
        self,
        state: str,
        *,
        scopes: Sequence[str] | None = None,
        client_id: str | None = None,
        redirect_uri: str | None = None,
    ) -> str:
        """Construct the Microsoft consent URL."""
        params = {
            "client_id": client_id or self._microsoft.client_id,
            "response_type": "code",
            "redirect_uri": redirect_uri or str(self._microsoft.redirect_uri),
            "scope": " ".join(scopes or self._microsoft.scopes),
            "response_mode": "query",
            "state": state,
        }
        return f"{self._microsoft.authorize_endpoint}?{urlencode(params)}"

    async def exchange_authorization_code(
        self,
        code: str,
        *,
        redirect_uri: str | None = None,
        scopes: Sequence[str] | None = None,
    ) -> Dict[str, Any]:
        """Exchange an authorization code for a token response payload."""
        payload = {
            "client_id": self._microsoft.client_id,
            "code": code,
            "redirect_uri": redirect_uri or str(self._microsoft.redirect_uri),
            "scope": " ".join(scopes or self._microsoft.scopes),
            "grant_type": "authorization_code",
        }
        return await self._post_token_request(payload, grant="authorization_code")

    async def refresh_token(
        self, refresh_token: str, *, scopes: Sequence[str] | None = None
    ) -> Dict[str, Any]:
        """Redeem a refresh token, always asking for the full configured scope set."""
        payload = {
            "client_id": self._microsoft.client_id,
            "scope": " ".join(scopes or self._microsoft.scopes),
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        return await self._post_token_request(payload, grant="refresh_token")

    async def _post_token_request(
        self, payload: Dict[str, str], *, grant: str
    ) -> Dict[str, Any]:
        if self._microsoft.client_secret:
            payload["client_secret"] = self._microsoft.client_secret

        logger.debug("Token request: grant_type=%s scope=%s", grant, payload["scope"])

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.token_url,
                    data=payload,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as exc:
            raise OAuthTokenExchangeError(
                f"Token endpoint timed out after {self._timeout}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise OAuthTokenExchangeError(f"Token endpoint unreachable: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            raise OAuthTokenExchangeError(_describe_error(response))

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise OAuthTokenExchangeError("Token endpoint returned invalid JSON.") from exc

        if not isinstance(token_payload, dict) or not token_payload.get("access_token"):
            raise OAuthTokenExchangeError("Incomplete token payload returned from Microsoft.")

        return token_payload


def _describe_error(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"
    if isinstance(data, dict) and data.get("error"):
        description = data.get("error_description") or "No description provided"
        return f"HTTP {response.status_code}: {data['error']} - {description}"
    return f"HTTP {response.status_code}"


__all__ = [
    "MicrosoftOAuthClient",
    "OAuthTokenExchangeError",
    "decode_id_token_claims",
]
