try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import base64
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from outlook_mcp.clients.microsoft_auth import (
    MicrosoftOAuthClient,
    OAuthTokenExchangeError,
    decode_id_token_claims,
)
from outlook_mcp.core.config import MicrosoftSettings


def test_authorization_url_uses_configured_defaults() -> None:
    client = MicrosoftOAuthClient(
        MicrosoftSettings(client_id="client-123", authority="https://login.example/tenant-1/")
    )

    url = urlparse(client.build_authorization_url("default", scopes=["Mail.Read"]))
    params = parse_qs(url.query)

    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://login.example/tenant-1/oauth2/v2.0/authorize"
    assert params["client_id"] == ["client-123"]
    assert params["redirect_uri"] == ["http://localhost:3333/auth/callback"]
    assert params["scope"] == ["Mail.Read"]
    assert params["response_mode"] == ["query"]
    assert client.token_url == "https://login.example/tenant-1/oauth2/v2.0/token"


@pytest.mark.asyncio
async def test_confidential_client_sends_secret() -> None:
    forms: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        forms.append(parse_qs(request.content.decode()))
        return httpx.Response(200, json={"access_token": "A1"})

    client = MicrosoftOAuthClient(
        MicrosoftSettings(client_id="client-123", client_secret="s3cret"),
        transport=httpx.MockTransport(handler),
    )

    payload = await client.exchange_authorization_code("code-1", redirect_uri="http://cb")

    assert payload == {"access_token": "A1"}
    assert forms[0]["client_secret"] == ["s3cret"]
    assert forms[0]["redirect_uri"] == ["http://cb"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"error": "invalid_client", "error_description": "Bad secret"}),
        httpx.Response(500, text="upstream exploded"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"token_type": "Bearer"}),
    ],
)
async def test_token_endpoint_failures_raise(response: httpx.Response) -> None:
    client = MicrosoftOAuthClient(
        MicrosoftSettings(client_id="client-123"),
        transport=httpx.MockTransport(lambda request: response),
    )

    with pytest.raises(OAuthTokenExchangeError):
        await client.refresh_token("R1")


def test_decode_id_token_claims() -> None:
    payload = base64.urlsafe_b64encode(json.dumps({"oid": "abc"}).encode()).rstrip(b"=").decode()

    assert decode_id_token_claims(f"header.{payload}.sig") == {"oid": "abc"}
    assert decode_id_token_claims(None) == {}
    assert decode_id_token_claims("garbage") == {}
    assert decode_id_token_claims("a.!!!.c") == {}
