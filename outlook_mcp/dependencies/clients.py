"""
Factory functions providing the shared token services, used both as FastAPI
dependencies for the companion server and directly by the MCP tool layer.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from outlook_mcp.clients import AuthServerClient, MicrosoftOAuthClient
from outlook_mcp.core.config import get_settings
from outlook_mcp.models.flow import AuthServerState
from outlook_mcp.services import (
    AuthFlowService,
    CredentialResolver,
    TokenCipherService,
    TokenRefresher,
    TokenStore,
    UserSessionRegistry,
)
from outlook_mcp.tools.auth import AuthTools


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_token_cipher_service() -> Optional[TokenCipherService]:
    """Provide the token cipher, or ``None`` when tokens are stored in plaintext."""
    secret = _settings().security.token_encryption_secret
    if not secret:
        return None
    return TokenCipherService(secret=secret)


@lru_cache()
def get_token_store() -> TokenStore:
    """Provide the file-backed token store.

    The store holds an ``asyncio.Lock``, so the cached instance serves a single
    event loop; callers running several ``asyncio.run`` loops build their own.
    """
    settings = _settings()
    return TokenStore(
        settings.storage.token_storage_path,
        cipher=get_token_cipher_service(),
    )


@lru_cache()
def get_microsoft_oauth_client() -> MicrosoftOAuthClient:
    settings = _settings()
    return MicrosoftOAuthClient(
        settings.microsoft,
        timeout=settings.auth_server.request_timeout_seconds,
    )


@lru_cache()
def get_token_refresher() -> TokenRefresher:
    return TokenRefresher(
        get_token_store(),
        get_microsoft_oauth_client(),
        _settings().microsoft,
    )


@lru_cache()
def get_credential_resolver() -> CredentialResolver:
    """Provide the resolver every Graph tool handler consults."""
    return CredentialResolver(get_token_store(), get_token_refresher())


@lru_cache()
def get_auth_server_client() -> AuthServerClient:
    return AuthServerClient(_settings().auth_server)


@lru_cache()
def get_auth_flow_service() -> AuthFlowService:
    return AuthFlowService(
        get_auth_server_client(),
        get_credential_resolver(),
        _settings().microsoft,
    )


@lru_cache()
def get_user_session_registry() -> UserSessionRegistry:
    ttl_seconds = _settings().sessions.idle_ttl_seconds
    idle_ttl = timedelta(seconds=ttl_seconds) if ttl_seconds else None
    return UserSessionRegistry(idle_ttl=idle_ttl)


@lru_cache()
def get_auth_server_state() -> AuthServerState:
    """Companion server's record of the latest authentication attempt."""
    return AuthServerState()


@lru_cache()
def get_auth_tools() -> AuthTools:
    return AuthTools(
        token_store=get_token_store(),
        resolver=get_credential_resolver(),
        flow=get_auth_flow_service(),
    )


__all__ = [
    "get_auth_flow_service",
    "get_auth_server_client",
    "get_auth_server_state",
    "get_auth_tools",
    "get_credential_resolver",
    "get_microsoft_oauth_client",
    "get_token_cipher_service",
    "get_token_refresher",
    "get_token_store",
    "get_user_session_registry",
]
