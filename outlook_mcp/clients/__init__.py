"""Expose constructed client wrappers."""

from .auth_server import AuthServerClient
from .microsoft_auth import (
    MicrosoftOAuthClient,
    OAuthTokenExchangeError,
    decode_id_token_claims,
)

__all__ = [
    "AuthServerClient",
    "MicrosoftOAuthClient",
    "OAuthTokenExchangeError",
    "decode_id_token_claims",
]
