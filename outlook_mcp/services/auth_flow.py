"""
Starts authentication flows on the companion authorization server and reports
their status.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from outlook_mcp.clients.auth_server import AuthServerClient
from outlook_mcp.core.config import MicrosoftSettings
from outlook_mcp.core.errors import AuthFlowError
from outlook_mcp.models.flow import AUTH_STARTED, AuthFlowStart, AuthStatus
from outlook_mcp.services.credential_resolver import DEFAULT_USER_ID, CredentialResolver

logger = logging.getLogger(__name__)


class AuthFlowService:
    """Delegates the browser redirect and code exchange to the companion server.

    Holds no state beyond the HTTP round-trip; completion is observed through
    the token store once the companion server has saved the token.
    """

    def __init__(
        self,
        server_client: AuthServerClient,
        resolver: CredentialResolver,
        microsoft_settings: MicrosoftSettings,
    ) -> None:
        self._server = server_client
        self._resolver = resolver
        self._microsoft = microsoft_settings

    async def start_flow(
        self,
        requested_scopes: Sequence[str] | None = None,
        *,
        user_id: str | None = None,
    ) -> AuthFlowStart:
        state = user_id or DEFAULT_USER_ID
        request = {
            "clientId": self._microsoft.client_id,
            "scopes": list(requested_scopes or self._microsoft.scopes),
            "redirectUri": str(self._microsoft.redirect_uri),
            "state": state,
        }
        logger.info("Starting authentication flow for %s", state)

        response = await self._server.start(request)
        auth_url = response.get("authUrl")
        if response.get("status") != AUTH_STARTED or not auth_url:
            raise AuthFlowError(
                "Failed to start authentication process: "
                f"unexpected response status {response.get('status')!r}"
            )

        logger.info("Authentication URL issued for %s", state)
        return AuthFlowStart(auth_url=auth_url, user_id=state)

    async def check_status(self) -> AuthStatus:
        response = await self._server.status()
        is_authenticating = bool(response.get("isAuthenticating"))
        user_id = response.get("userId") or None
        authenticated = bool(response.get("authenticated", user_id is not None))

        if not is_authenticating and user_id in (None, DEFAULT_USER_ID):
            sole_user = await self._resolver.resolve_default_user()
            if sole_user is not None:
                user_id = sole_user
                authenticated = True

        return AuthStatus(
            authenticated=authenticated,
            user_id=user_id,
            is_authenticating=is_authenticating,
            error=response.get("error"),
        )


__all__ = ["AuthFlowService"]
