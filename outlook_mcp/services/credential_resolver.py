"""
Credential resolution for tool calls.

Decides which stored token applies to a call, repairs missing scopes and
near-expiry tokens through the refresher, and maps the ``default`` sentinel
onto the single stored user when that is unambiguous.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

from outlook_mcp.core.errors import (
    AuthenticationRequiredError,
    TokenRefreshError,
    ValidationError,
)
from outlook_mcp.models.tokens import TokenRecord, UserResolution
from outlook_mcp.services.token_refresher import TokenRefresher
from outlook_mcp.services.token_store import TokenStore

logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "default"
EXPIRY_LOOKAHEAD = timedelta(minutes=5)

DOMAIN_SCOPES: Dict[str, tuple[str, ...]] = {
    "mail": ("Mail.Read",),
    "calendar": ("Calendars.ReadWrite",),
    "folder": ("Mail.ReadWrite",),
    "rule": ("MailboxSettings.Read",),
}


def scopes_for(domain: str) -> tuple[str, ...]:
    """Minimal scopes a tool domain needs; unknown domains need none."""
    return DOMAIN_SCOPES.get(domain, ())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialResolver:
    """Resolves a usable :class:`TokenRecord` for a user.

    Resolution for one user is serialised, so concurrent calls against a
    near-expiry token trigger a single refresh. Refresh failures are reported
    as ``None``: an unrefreshable token is treated as no token.
    """

    def __init__(
        self,
        store: TokenStore,
        refresher: TokenRefresher,
        *,
        clock: Callable[[], datetime] = _utcnow,
        expiry_lookahead: timedelta = EXPIRY_LOOKAHEAD,
    ) -> None:
        self._store = store
        self._refresher = refresher
        self._clock = clock
        self._lookahead = expiry_lookahead
        self._user_locks: Dict[str, asyncio.Lock] = {}
        self._lock_holders: Dict[str, int] = {}

    async def resolve(
        self, user_id: str, required_scopes: Iterable[str] = ()
    ) -> TokenRecord | None:
        if not user_id:
            raise ValidationError("User ID is required")
        required = tuple(required_scopes)

        async with self._locked(user_id):
            record = await self._store.get(user_id)
            if record is None:
                logger.info("No stored token for user %s", user_id)
                return None

            if required and not record.covers(required):
                return await self._upgrade_scopes(user_id, record, required)

            now = self._clock()
            if not record.expires_within(self._lookahead, now):
                return record

            if not record.refresh_token:
                logger.warning(
                    "Token for user %s is expired or about to expire and has no "
                    "refresh token; re-authentication required",
                    user_id,
                )
                return None

            logger.info(
                "Token for user %s is expired or about to expire, attempting refresh",
                user_id,
            )
            return await self._try_refresh(user_id, record)

    async def require(
        self, user_id: str | None, required_scopes: Iterable[str] = ()
    ) -> TokenRecord:
        """Like :meth:`resolve` but maps ``default`` and raises when unusable."""
        resolution = await self.resolve_user_id(user_id)
        if resolution.ambiguous:
            raise ValidationError(
                "Multiple users are authenticated; specify userId explicitly "
                f"(one of: {', '.join(resolution.candidates)})"
            )
        if resolution.user_id is None:
            raise AuthenticationRequiredError(
                "No valid access token found. Please authenticate first."
            )
        record = await self.resolve(resolution.user_id, required_scopes)
        if record is None:
            raise AuthenticationRequiredError(
                "No valid access token found. Please authenticate first.",
                user_id=resolution.user_id,
            )
        return record

    async def resolve_default_user(self) -> str | None:
        """The single stored user id, or ``None`` when there are zero or several."""
        users = await self._store.list_users()
        if len(users) == 1:
            logger.debug("Mapped '%s' to user %s", DEFAULT_USER_ID, users[0])
            return users[0]
        if users:
            logger.info(
                "'%s' is ambiguous with %d authenticated users", DEFAULT_USER_ID, len(users)
            )
        else:
            logger.info("No authenticated users to map '%s' onto", DEFAULT_USER_ID)
        return None

    async def resolve_user_id(self, user_id: str | None) -> UserResolution:
        """Map a caller supplied id (possibly absent or ``default``) onto a stored user."""
        if user_id and user_id != DEFAULT_USER_ID:
            return UserResolution(requested=user_id, user_id=user_id)

        users = await self._store.list_users()
        if len(users) == 1:
            return UserResolution(requested=user_id, user_id=users[0])
        if len(users) > 1:
            return UserResolution(
                requested=user_id,
                user_id=None,
                ambiguous=True,
                candidates=tuple(users),
            )
        return UserResolution(requested=user_id, user_id=None)

    async def _upgrade_scopes(
        self, user_id: str, record: TokenRecord, required: tuple[str, ...]
    ) -> TokenRecord | None:
        missing = record.missing_scopes(required)
        if not record.refresh_token:
            logger.warning(
                "Token for user %s lacks scopes %s and has no refresh token; "
                "re-authentication required",
                user_id,
                ", ".join(missing),
            )
            return None

        logger.info(
            "Token for user %s lacks scopes %s; refreshing with the full scope set",
            user_id,
            ", ".join(missing),
        )
        refreshed = await self._try_refresh(user_id, record)
        if refreshed is None:
            return None
        if not refreshed.covers(required):
            logger.warning(
                "Refreshed token for user %s still lacks scopes %s; "
                "re-authentication required",
                user_id,
                ", ".join(refreshed.missing_scopes(required)),
            )
            return None
        return refreshed

    async def _try_refresh(self, user_id: str, record: TokenRecord) -> TokenRecord | None:
        try:
            return await self._refresher.refresh(user_id, record.refresh_token)
        except TokenRefreshError as exc:
            logger.error("Failed to refresh token for user %s: %s", user_id, exc)
            return None

    @asynccontextmanager
    async def _locked(self, user_id: str) -> AsyncIterator[None]:
        """Hold the per-user lock; the entry is dropped once nobody holds or awaits it."""
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = self._user_locks[user_id] = asyncio.Lock()
        self._lock_holders[user_id] = self._lock_holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[user_id] -= 1
            if not self._lock_holders[user_id]:
                del self._lock_holders[user_id]
                del self._user_locks[user_id]


__all__ = [
    "CredentialResolver",
    "DEFAULT_USER_ID",
    "DOMAIN_SCOPES",
    "EXPIRY_LOOKAHEAD",
    "scopes_for",
]
