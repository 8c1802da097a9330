"""Expose dependency helpers for the companion server and the tool layer."""

from .clients import (
    get_auth_flow_service,
    get_auth_server_client,
    get_auth_server_state,
    get_auth_tools,
    get_credential_resolver,
    get_microsoft_oauth_client,
    get_token_cipher_service,
    get_token_refresher,
    get_token_store,
    get_user_session_registry,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
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
