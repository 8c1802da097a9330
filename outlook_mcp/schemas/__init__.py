"""Public schema exports."""

from .auth import AuthStartRequest, AuthStartResponse, AuthStatusResponse

__all__ = [
    "AuthStartRequest",
    "AuthStartResponse",
    "AuthStatusResponse",
]
