try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import json
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from outlook_mcp.clients.microsoft_auth import MicrosoftOAuthClient
from outlook_mcp.core.config import MicrosoftSettings, get_settings
from outlook_mcp.dependencies import (
    get_auth_server_state,
    get_microsoft_oauth_client,
    get_token_store,
)
from outlook_mcp.main import app
from outlook_mcp.models.flow import AuthServerState
from outlook_mcp.services.token_store import TokenStore


def _id_token(claims: dict) -> str:
    def _segment(data: dict) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()

    return f"{_segment({'alg': 'none'})}.{_segment(claims)}.signature"


class TokenEndpoint:
    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.response = httpx.Response(
            200,
            json={
                "access_token": "A1",
                "refresh_token": "R1",
                "expires_in": 3600,
                "scope": "User.Read Mail.Read",
                "id_token": _id_token({"oid": "object-id-1", "sub": "subject-1"}),
            },
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


@pytest.fixture
def overrides(tmp_path: Path):
    endpoint = TokenEndpoint()
    store = TokenStore(tmp_path / "tokens.json")
    state = AuthServerState()
    oauth = MicrosoftOAuthClient(
        MicrosoftSettings(client_id="client-123"),
        transport=httpx.MockTransport(endpoint),
    )
    app.dependency_overrides[get_token_store] = lambda: store
    app.dependency_overrides[get_auth_server_state] = lambda: state
    app.dependency_overrides[get_microsoft_oauth_client] = lambda: oauth
    yield endpoint, store, state
    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.anyio
async def test_start_rejects_missing_parameters(overrides) -> None:
    _, _, state = overrides
    async with _client() as client:
        response = await client.post("/auth/start", json={"clientId": "client-123"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing required authentication parameters"
    assert state.is_authenticating is False


@pytest.mark.anyio
async def test_start_returns_consent_url_and_marks_flow_started(overrides) -> None:
    _, _, state = overrides
    async with _client() as client:
        response = await client.post(
            "/auth/start",
            json={
                "clientId": "client-123",
                "scopes": ["User.Read", "Mail.Read"],
                "redirectUri": "http://localhost:3333/auth/callback",
                "state": "alice",
            },
        )
        status = await client.get("/auth/status")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "authentication_started"
    url = urlparse(body["authUrl"])
    params = parse_qs(url.query)
    assert url.path.endswith("/oauth2/v2.0/authorize")
    assert params["client_id"] == ["client-123"]
    assert params["scope"] == ["User.Read Mail.Read"]
    assert params["state"] == ["alice"]
    assert params["response_type"] == ["code"]

    assert status.json() == {
        "authenticated": False,
        "userId": None,
        "isAuthenticating": True,
        "error": None,
    }
    assert state.redirect_uri == "http://localhost:3333/auth/callback"


@pytest.mark.anyio
async def test_callback_exchanges_code_and_saves_token(overrides) -> None:
    endpoint, store, state = overrides
    state.begin("http://localhost:3333/auth/callback")

    async with _client() as client:
        response = await client.get("/auth/callback", params={"code": "code-1", "state": "default"})
        status = await client.get("/auth/status")

    assert response.status_code == 200
    assert "Authentication Successful" in response.text

    form = parse_qs(endpoint.requests[0].content.decode())
    assert form["grant_type"] == ["authorization_code"]
    assert form["code"] == ["code-1"]

    record = await store.get("object-id-1")
    assert record is not None
    assert record.access_token == "A1"
    assert record.expires_at is not None
    assert status.json()["authenticated"] is True
    assert status.json()["userId"] == "object-id-1"


@pytest.mark.anyio
async def test_callback_prefers_explicit_state_user(overrides) -> None:
    _, store, _ = overrides

    async with _client() as client:
        response = await client.get("/auth/callback", params={"code": "code-1", "state": "alice"})

    assert response.status_code == 200
    assert await store.list_users() == ["alice"]


@pytest.mark.anyio
async def test_callback_records_provider_error(overrides) -> None:
    endpoint, store, state = overrides
    state.begin("http://localhost:3333/auth/callback")

    async with _client() as client:
        response = await client.get(
            "/auth/callback",
            params={"error": "access_denied", "error_description": "User <declined>"},
        )

    assert response.status_code == 400
    assert "User &lt;declined&gt;" in response.text
    assert endpoint.requests == []
    assert await store.list_users() == []
    assert state.is_authenticating is False
    assert state.error is not None and "access_denied" in state.error


@pytest.mark.anyio
async def test_callback_reports_failed_exchange(overrides) -> None:
    endpoint, store, state = overrides
    endpoint.response = httpx.Response(
        400, json={"error": "invalid_grant", "error_description": "Code expired"}
    )

    async with _client() as client:
        response = await client.get("/auth/callback", params={"code": "stale"})

    assert response.status_code == 500
    assert await store.list_users() == []
    assert state.error is not None and "invalid_grant" in state.error


@pytest.mark.anyio
async def test_healthcheck() -> None:
    async with _client() as client:
        response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "environment": get_settings().environment}


@pytest.mark.anyio
async def test_callback_records_storage_failure(overrides, tmp_path: Path) -> None:
    _, _, state = overrides
    unwritable = tmp_path / "occupied"
    unwritable.mkdir()
    app.dependency_overrides[get_token_store] = lambda: TokenStore(unwritable)
    state.begin("http://localhost:3333/auth/callback")

    async with _client() as client:
        response = await client.get("/auth/callback", params={"code": "code-1", "state": "u1"})
        status = await client.get("/auth/status")

    assert response.status_code == 500
    assert "Authentication Error" in response.text
    assert state.is_authenticating is False
    assert state.error is not None and state.error.startswith("Token exchange failed")
    assert status.json()["isAuthenticating"] is False
    assert status.json()["authenticated"] is False
