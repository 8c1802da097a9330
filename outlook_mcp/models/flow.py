"""
Authentication flow models shared by the flow initiator and the companion
authorization server.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

AUTH_STARTED = "authentication_started"


@dataclass(frozen=True)
class AuthFlowStart:
    """A flow the companion server accepted; the user must visit ``auth_url``."""

    auth_url: str
    user_id: str
    status: str = AUTH_STARTED


@dataclass(frozen=True)
class AuthStatus:
    authenticated: bool
    user_id: Optional[str]
    is_authenticating: bool
    error: Optional[str] = None


@dataclass(slots=True)
class AuthServerState:
    """Companion server view of the latest authentication attempt.

    ``NOT_STARTED -> STARTED -> SUCCEEDED | FAILED``; an attempt the user never
    completes stays ``STARTED``.
    """

    is_authenticating: bool = False
    user_id: Optional[str] = None
    error: Optional[str] = None
    redirect_uri: Optional[str] = None

    def begin(self, redirect_uri: str) -> None:
        self.is_authenticating = True
        self.user_id = None
        self.error = None
        self.redirect_uri = redirect_uri

    def succeed(self, user_id: str) -> None:
        self.is_authenticating = False
        self.user_id = user_id
        self.error = None

    def fail(self, error: str) -> None:
        self.is_authenticating = False
        self.user_id = None
        self.error = error

    def snapshot(self) -> AuthStatus:
        return AuthStatus(
            authenticated=self.user_id is not None,
            user_id=self.user_id,
            is_authenticating=self.is_authenticating,
            error=self.error,
        )


__all__ = ["AUTH_STARTED", "AuthFlowStart", "AuthServerState", "AuthStatus"]
