try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json
from pathlib import Path

import httpx
import pytest

from outlook_mcp.clients.auth_server import AuthServerClient
from outlook_mcp.core.config import AuthServerSettings, DEFAULT_SCOPES, MicrosoftSettings
from outlook_mcp.core.errors import AuthFlowError
from outlook_mcp.models.tokens import TokenRecord
from outlook_mcp.services.auth_flow import AuthFlowService
from outlook_mcp.services.credential_resolver import CredentialResolver
from outlook_mcp.services.token_store import TokenStore


class UnusedRefresher:
    async def refresh(self, user_id: str, refresh_token: str) -> TokenRecord:  # pragma: no cover
        raise AssertionError("refresh should not be called")


def _service(tmp_path: Path, handler) -> tuple[AuthFlowService, TokenStore]:
    store = TokenStore(tmp_path / "tokens.json")
    server = AuthServerClient(
        AuthServerSettings(base_url="http://auth.test/"),
        transport=httpx.MockTransport(handler),
    )
    service = AuthFlowService(
        server,
        CredentialResolver(store, UnusedRefresher()),
        MicrosoftSettings(client_id="client-123"),
    )
    return service, store


@pytest.mark.asyncio
async def test_start_flow_posts_full_request_and_returns_url(tmp_path: Path) -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(
            200,
            json={"status": "authentication_started", "authUrl": "https://login.example/authorize?x=1"},
        )

    service, _ = _service(tmp_path, handler)

    started = await service.start_flow()

    assert started.auth_url == "https://login.example/authorize?x=1"
    assert started.user_id == "default"
    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == "http://auth.test/auth/start"
    body = json.loads(request.content)
    assert body == {
        "clientId": "client-123",
        "scopes": list(DEFAULT_SCOPES),
        "redirectUri": "http://localhost:3333/auth/callback",
        "state": "default",
    }


@pytest.mark.asyncio
async def test_start_flow_forwards_explicit_user_and_scopes(tmp_path: Path) -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"status": "authentication_started", "authUrl": "https://x"})

    service, _ = _service(tmp_path, handler)

    started = await service.start_flow(["Mail.Read"], user_id="alice")

    assert started.user_id == "alice"
    assert bodies[0]["state"] == "alice"
    assert bodies[0]["scopes"] == ["Mail.Read"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"status": "already_running"},
        {"status": "authentication_started"},
        {"authUrl": "https://x"},
    ],
)
async def test_start_flow_rejects_unexpected_response(tmp_path: Path, body: dict) -> None:
    service, _ = _service(tmp_path, lambda request: httpx.Response(200, json=body))

    with pytest.raises(AuthFlowError):
        await service.start_flow()


@pytest.mark.asyncio
async def test_start_flow_reports_unreachable_server(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service, _ = _service(tmp_path, handler)

    with pytest.raises(AuthFlowError) as excinfo:
        await service.start_flow()
    assert "unreachable" in str(excinfo.value)


@pytest.mark.asyncio
async def test_start_flow_reports_http_error(tmp_path: Path) -> None:
    service, _ = _service(
        tmp_path,
        lambda request: httpx.Response(400, json={"detail": "Missing required authentication parameters"}),
    )

    with pytest.raises(AuthFlowError) as excinfo:
        await service.start_flow()
    assert "HTTP 400" in str(excinfo.value)


@pytest.mark.asyncio
async def test_check_status_passes_through_server_view(tmp_path: Path) -> None:
    service, _ = _service(
        tmp_path,
        lambda request: httpx.Response(
            200,
            json={"authenticated": False, "userId": None, "isAuthenticating": True, "error": None},
        ),
    )

    status = await service.check_status()

    assert status.is_authenticating
    assert not status.authenticated
    assert status.user_id is None


@pytest.mark.asyncio
async def test_check_status_overlays_single_stored_user(tmp_path: Path) -> None:
    service, store = _service(
        tmp_path,
        lambda request: httpx.Response(
            200, json={"authenticated": False, "userId": None, "isAuthenticating": False}
        ),
    )
    await store.save("u1", TokenRecord(access_token="A1"))

    status = await service.check_status()

    assert status.authenticated
    assert status.user_id == "u1"


@pytest.mark.asyncio
async def test_check_status_does_not_guess_between_several_users(tmp_path: Path) -> None:
    service, store = _service(
        tmp_path,
        lambda request: httpx.Response(
            200, json={"authenticated": False, "userId": None, "isAuthenticating": False}
        ),
    )
    await store.save("u1", TokenRecord(access_token="A1"))
    await store.save("u2", TokenRecord(access_token="A2"))

    status = await service.check_status()

    assert not status.authenticated
    assert status.user_id is None
