"""
Domain models for OAuth token persistence.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_EXPIRES_IN = 3600


def epoch_millis(moment: datetime) -> int:
    """Convert an aware datetime to Unix epoch milliseconds."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def normalize_scope(scope: str) -> str:
    """Strip any resource prefix and lower-case a scope name.

    ``https://graph.microsoft.com/Mail.Read`` and ``mail.read`` both become
    ``mail.read``.
    """
    return scope.rsplit("/", 1)[-1].strip().lower()


class TokenRecord(BaseModel):
    """OAuth credential set persisted for a single user."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    scope: Optional[str] = Field(None, description="Space separated granted scopes.")
    token_type: str = "Bearer"
    expires_in: Optional[int] = Field(None, description="Lifetime in seconds.")
    expires_at: Optional[int] = Field(None, description="Unix epoch milliseconds.")

    @classmethod
    def from_token_response(
        cls,
        payload: Mapping[str, Any],
        *,
        issued_at: datetime,
        previous_refresh_token: str | None = None,
    ) -> "TokenRecord":
        """Build a record from an identity provider token response."""
        expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or previous_refresh_token,
            id_token=payload.get("id_token"),
            scope=payload.get("scope"),
            token_type=payload.get("token_type") or "Bearer",
            expires_in=expires_in,
            expires_at=epoch_millis(issued_at + timedelta(seconds=expires_in)),
        )

    def with_expiry(self, now: datetime) -> "TokenRecord":
        """Return a copy carrying ``expires_at``, computing it when absent."""
        if self.expires_at is not None:
            return self
        expires_in = self.expires_in if self.expires_in is not None else DEFAULT_EXPIRES_IN
        return self.model_copy(
            update={"expires_at": epoch_millis(now + timedelta(seconds=expires_in))}
        )

    def expires_within(self, window: timedelta, now: datetime) -> bool:
        """True when the token is expired or expires inside ``window``."""
        if self.expires_at is None:
            return True
        return epoch_millis(now + window) >= self.expires_at

    def granted_scopes(self) -> set[str]:
        if not self.scope:
            return set()
        return {normalize_scope(item) for item in self.scope.split() if item.strip()}

    def covers(self, required_scopes: Iterable[str]) -> bool:
        """True when every required scope is among the granted scopes."""
        granted = self.granted_scopes()
        return all(normalize_scope(scope) in granted for scope in required_scopes)

    def missing_scopes(self, required_scopes: Iterable[str]) -> list[str]:
        granted = self.granted_scopes()
        return [scope for scope in required_scopes if normalize_scope(scope) not in granted]

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


@dataclass(frozen=True)
class UserResolution:
    """Outcome of mapping a caller supplied user id onto the stored users.

    ``ambiguous`` signals that the caller must name a user explicitly; it is
    not a failure of the system.
    """

    requested: str | None
    user_id: str | None
    ambiguous: bool = False
    candidates: tuple[str, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.user_id is not None and not self.ambiguous


__all__ = [
    "DEFAULT_EXPIRES_IN",
    "TokenRecord",
    "UserResolution",
    "epoch_millis",
    "normalize_scope",
]
