"""Service layer exports."""

from .auth_flow import AuthFlowService
from .credential_resolver import (
    DEFAULT_USER_ID,
    DOMAIN_SCOPES,
    CredentialResolver,
    scopes_for,
)
from .token_cipher import TokenCipherService
from .token_refresher import TokenRefresher
from .token_store import TokenStore
from .user_sessions import UserSessionRegistry

__all__ = [
    "AuthFlowService",
    "CredentialResolver",
    "DEFAULT_USER_ID",
    "DOMAIN_SCOPES",
    "TokenCipherService",
    "TokenRefresher",
    "TokenStore",
    "UserSessionRegistry",
    "scopes_for",
]
