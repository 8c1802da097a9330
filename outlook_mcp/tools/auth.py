"""Authentication tools exposed to MCP clients."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from outlook_mcp.core.errors import AuthFlowError
from outlook_mcp.services.auth_flow import AuthFlowService
from outlook_mcp.services.credential_resolver import CredentialResolver
from outlook_mcp.services.token_store import TokenStore

logger = logging.getLogger(__name__)

PARAMETER_ERROR = "ParameterError"


class AuthTools:
    """Facade over the token services for the ``authenticate`` tool family.

    Every handler returns a JSON-ready dict with ``status``, ``message`` and
    an ``instruction`` aimed at the assistant driving the tools.
    """

    def __init__(
        self,
        *,
        token_store: TokenStore,
        resolver: CredentialResolver,
        flow: AuthFlowService,
    ) -> None:
        self._store = token_store
        self._resolver = resolver
        self._flow = flow

    async def authenticate(
        self,
        *,
        user_id: Optional[str] = None,
        scopes: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        try:
            started = await self._flow.start_flow(scopes, user_id=user_id)
        except AuthFlowError as exc:
            logger.error("Authentication error: %s", exc)
            return {
                "status": "error",
                "message": f"Authentication failed: {exc}",
                "instruction": (
                    "Please try again. If the problem persists, check that the "
                    "authorization server is running."
                ),
            }
        return {
            "status": started.status,
            "message": "Authentication started. Please complete the authentication in your browser.",
            "authUrl": started.auth_url,
            "userId": started.user_id,
            "instruction": (
                "Open the URL in a browser and sign in, then call check_auth_status "
                "to confirm the authentication completed."
            ),
        }

    async def check_auth_status(self) -> Dict[str, Any]:
        try:
            status = await self._flow.check_status()
        except AuthFlowError as exc:
            logger.error("Check auth status error: %s", exc)
            return {
                "status": "error",
                "message": f"Failed to check authentication status: {exc}",
                "authenticated": False,
                "isAuthenticating": False,
                "userId": None,
            }

        if status.is_authenticating:
            instruction = "Authentication in progress. Please complete the authentication in your browser."
        elif status.authenticated:
            instruction = "You are authenticated. You can now use other tools that require authentication."
        else:
            instruction = "Not authenticated. Please use the authenticate tool to start the authentication process."

        result: Dict[str, Any] = {
            "status": "success",
            "authenticated": status.authenticated,
            "userId": status.user_id,
            "isAuthenticating": status.is_authenticating,
            "instruction": instruction,
        }
        if status.error:
            result["error"] = status.error
        return result

    async def revoke_authentication(self, *, user_id: Optional[str] = None) -> Dict[str, Any]:
        resolution = await self._resolver.resolve_user_id(user_id)
        if resolution.ambiguous:
            return {
                "status": "error",
                "errorType": PARAMETER_ERROR,
                "message": "Multiple users are authenticated; specify which one to revoke.",
                "users": list(resolution.candidates),
                "instruction": "Call revoke_authentication again with userId set to one of the listed users.",
            }
        if resolution.user_id is None:
            return {
                "status": "warning",
                "message": "No authentication found to revoke.",
                "instruction": "No action was needed as you were not authenticated.",
            }

        target = resolution.user_id
        if await self._store.delete(target):
            logger.info("Authentication revoked for user %s", target)
            return {
                "status": "success",
                "message": f"Authentication revoked successfully for user {target}",
                "userId": target,
                "instruction": "You will need to authenticate again to use tools that require authentication.",
            }
        return {
            "status": "warning",
            "message": f"No authentication found for user {target}",
            "userId": target,
            "instruction": "No action was needed as you were not authenticated.",
        }

    async def list_authenticated_users(self) -> Dict[str, Any]:
        users = await self._store.list_users()
        return {
            "status": "success",
            "users": users,
            "count": len(users),
            "instruction": (
                "These are the currently authenticated users. Pass userId to other tools "
                "to act on behalf of a specific user."
                if users
                else "No authenticated users found. Please use the authenticate tool to authenticate."
            ),
        }


__all__ = ["AuthTools", "PARAMETER_ERROR"]
