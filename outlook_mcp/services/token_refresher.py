"""
Refresh-token redemption against the Microsoft identity platform.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from outlook_mcp.clients.microsoft_auth import MicrosoftOAuthClient, OAuthTokenExchangeError
from outlook_mcp.core.config import MicrosoftSettings
from outlook_mcp.core.errors import TokenRefreshError, ValidationError
from outlook_mcp.models.tokens import TokenRecord
from outlook_mcp.services.token_store import TokenStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenRefresher:
    """Exchanges a refresh token for a new access token and persists the result.

    The full configured scope set is requested on every refresh so that a
    token refreshed on behalf of one tool still carries the scopes every other
    tool needs.
    """

    def __init__(
        self,
        store: TokenStore,
        oauth_client: MicrosoftOAuthClient,
        microsoft_settings: MicrosoftSettings,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._microsoft = microsoft_settings
        self._clock = clock

    async def refresh(self, user_id: str, refresh_token: str | None) -> TokenRecord:
        """Redeem ``refresh_token`` for ``user_id`` and return the saved record.

        Raises:
            ValidationError: if ``user_id`` or ``refresh_token`` is missing.
            TokenRefreshError: if the provider rejects the exchange or cannot be
                reached. Stored state is left untouched.
        """
        if not user_id:
            raise ValidationError("User ID is required")
        if not refresh_token:
            raise ValidationError("Refresh token is required")

        logger.info("Refreshing token for user %s", user_id)
        issued_at = self._clock()
        try:
            payload = await self._oauth.refresh_token(
                refresh_token, scopes=self._microsoft.scopes
            )
        except OAuthTokenExchangeError as exc:
            logger.error("Token refresh failed for user %s: %s", user_id, exc)
            raise TokenRefreshError(
                f"Failed to refresh token for user {user_id}: {exc}", user_id=user_id
            ) from exc

        record = TokenRecord.from_token_response(
            payload, issued_at=issued_at, previous_refresh_token=refresh_token
        )
        return await self._store.save(user_id, record)


__all__ = ["TokenRefresher"]
