"""
FastAPI routes for the companion authorization server.

The MCP server asks this process to start a flow, the browser lands on
``/auth/callback``, and the exchanged token is written to the shared token
store where the MCP server picks it up.
"""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse

from outlook_mcp.clients.microsoft_auth import (
    MicrosoftOAuthClient,
    OAuthTokenExchangeError,
    decode_id_token_claims,
)
from outlook_mcp.core.config import AppSettings
from outlook_mcp.dependencies import (
    SettingsDependency,
    get_auth_server_state,
    get_microsoft_oauth_client,
    get_token_store,
)
from outlook_mcp.models.flow import AUTH_STARTED, AuthServerState
from outlook_mcp.models.tokens import TokenRecord
from outlook_mcp.schemas import AuthStartRequest, AuthStartResponse, AuthStatusResponse
from outlook_mcp.services.credential_resolver import DEFAULT_USER_ID
from outlook_mcp.services.token_store import TokenStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(settings: AppSettings = SettingsDependency) -> dict:
    """Simple health endpoint for local supervisors."""
    return {"status": "ok", "environment": settings.environment}


@router.post("/auth/start", status_code=HTTPStatus.OK, response_model=AuthStartResponse)
async def start_authentication(
    payload: AuthStartRequest,
    oauth_client: Annotated[MicrosoftOAuthClient, Depends(get_microsoft_oauth_client)],
    server_state: Annotated[AuthServerState, Depends(get_auth_server_state)],
) -> AuthStartResponse:
    """Record a new attempt and hand back the Microsoft consent URL."""
    if not payload.client_id or not payload.scopes or not payload.redirect_uri:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Missing required authentication parameters",
        )

    server_state.begin(payload.redirect_uri)
    auth_url = oauth_client.build_authorization_url(
        payload.state,
        scopes=payload.scopes,
        client_id=payload.client_id,
        redirect_uri=payload.redirect_uri,
    )
    logger.info("Starting authentication flow with state: %s", payload.state)
    return AuthStartResponse(status=AUTH_STARTED, auth_url=auth_url)


@router.get("/auth/status", status_code=HTTPStatus.OK, response_model=AuthStatusResponse)
async def authentication_status(
    server_state: Annotated[AuthServerState, Depends(get_auth_server_state)],
) -> AuthStatusResponse:
    snapshot = server_state.snapshot()
    return AuthStatusResponse(
        authenticated=snapshot.authenticated,
        user_id=snapshot.user_id,
        is_authenticating=snapshot.is_authenticating,
        error=snapshot.error,
    )


@router.get("/auth/callback", response_class=HTMLResponse)
async def authentication_callback(
    oauth_client: Annotated[MicrosoftOAuthClient, Depends(get_microsoft_oauth_client)],
    token_store: Annotated[TokenStore, Depends(get_token_store)],
    server_state: Annotated[AuthServerState, Depends(get_auth_server_state)],
    code: Optional[str] = Query(None, description="Authorization code from Microsoft."),
    state: str = Query(DEFAULT_USER_ID, description="State echoed from /auth/start."),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
) -> HTMLResponse:
    """Exchange the authorization code and persist the resulting token."""
    if error or not code:
        reason = f"{error}: {error_description}" if error else "Missing authorization code"
        logger.error("Authentication error: %s", reason)
        server_state.fail(reason)
        return HTMLResponse(
            _render_page("Authentication Failed", f"Error: {reason}", "You can close this window now."),
            status_code=HTTPStatus.BAD_REQUEST,
        )

    issued_at = datetime.now(timezone.utc)
    try:
        token_payload = await oauth_client.exchange_authorization_code(
            code, redirect_uri=server_state.redirect_uri
        )
        record = TokenRecord.from_token_response(token_payload, issued_at=issued_at)
        user_id = _derive_user_id(state, record.id_token)
        await token_store.save(user_id, record)
    except (OAuthTokenExchangeError, OSError) as exc:
        logger.error("Token exchange error: %s", exc)
        server_state.fail(f"Token exchange failed: {exc}")
        return HTMLResponse(
            _render_page(
                "Authentication Error",
                "An error occurred while exchanging the authentication code for tokens.",
                f"Error: {exc}. Please try again.",
            ),
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
        )

    server_state.succeed(user_id)
    logger.info("Authentication completed for user %s", user_id)

    return HTMLResponse(
        _render_page(
            "Authentication Successful",
            "You have successfully authenticated with Microsoft Outlook.",
            "You can now close this window and return to your assistant.",
        )
    )


def _derive_user_id(state: str, id_token: str | None) -> str:
    """Prefer an explicit user id from the state, then the ID token's object id."""
    if state and state != DEFAULT_USER_ID:
        return state
    claims = decode_id_token_claims(id_token)
    return claims.get("oid") or claims.get("sub") or state or DEFAULT_USER_ID


def _render_page(title: str, *lines: str) -> str:
    body = "".join(f"<p>{html.escape(line)}</p>" for line in lines)
    return (
        f"<html><head><title>{html.escape(title)}</title></head>"
        f"<body><h1>{html.escape(title)}</h1>{body}</body></html>"
    )
