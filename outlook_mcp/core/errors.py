"""Exception hierarchy for token lifecycle and authentication failures."""

from __future__ import annotations


class OutlookAuthError(Exception):
    """Base exception for all authentication related errors."""


class ValidationError(OutlookAuthError, ValueError):
    """Raised when a caller supplies a missing or invalid identifier or payload."""


class TokenRefreshError(OutlookAuthError):
    """Raised when the identity provider refuses or fails a refresh exchange."""

    def __init__(self, message: str, *, user_id: str | None = None) -> None:
        super().__init__(message)
        self.user_id = user_id


class AuthFlowError(OutlookAuthError):
    """Raised when the companion authorization server cannot start or report a flow."""


class AuthenticationRequiredError(OutlookAuthError):
    """Raised when no usable credential exists and the user must authenticate."""

    def __init__(self, message: str, *, user_id: str | None = None) -> None:
        super().__init__(message)
        self.user_id = user_id


__all__ = [
    "AuthFlowError",
    "AuthenticationRequiredError",
    "OutlookAuthError",
    "TokenRefreshError",
    "ValidationError",
]
