"""Tests for the token endpoint client: code exchange, refresh, terminal vs transient classification."""
import base64
from urllib.parse import parse_qs

import httpx
import pytest

from player_web.errors import GrantExchangeFailed, RefreshRejected, RefreshUnavailable
from player_web.token_exchange import TokenEndpoint

NOW = 1_700_000_000_000


def _endpoint(handler) -> TokenEndpoint:
    return TokenEndpoint(
        token_url="https://accounts.example/api/token",
        client_id="cid",
        client_secret="csecret",
        redirect_uri="http://127.0.0.1:8000/callback",
        clock=lambda: NOW,
        transport=httpx.MockTransport(handler),
    )


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


@pytest.mark.asyncio
async def test_refresh_success_computes_expiry_from_lifetime():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"access_token": "A2", "expires_in": 3600, "scope": "streaming"})

    grant = await _endpoint(handler).refresh("R1")
    assert grant.access_token == "A2"
    assert grant.expires_at == NOW + 3_600_000
    assert grant.scope == "streaming"

    request = seen[0]
    assert request.method == "POST"
    assert _form(request) == {"grant_type": "refresh_token", "refresh_token": "R1"}
    expected = base64.b64encode(b"cid:csecret").decode()
    assert request.headers["Authorization"] == f"Basic {expected}"


@pytest.mark.asyncio
async def test_refresh_without_rotation_returns_previous_refresh_token():
    grant = await _endpoint(lambda r: httpx.Response(200, json={"access_token": "A2", "expires_in": 60})).refresh("R1")
    assert grant.refresh_token == "R1"


@pytest.mark.asyncio
async def test_refresh_with_rotation_returns_new_refresh_token():
    body = {"access_token": "A2", "expires_in": 60, "refresh_token": "R2"}
    grant = await _endpoint(lambda r: httpx.Response(200, json=body)).refresh("R1")
    assert grant.refresh_token == "R2"


@pytest.mark.asyncio
async def test_refresh_invalid_grant_is_rejected():
    body = {"error": "invalid_grant", "error_description": "Refresh token revoked"}
    with pytest.raises(RefreshRejected) as exc_info:
        await _endpoint(lambda r: httpx.Response(400, json=body)).refresh("R1")
    assert exc_info.value.error == "invalid_grant"
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_refresh_bad_client_is_rejected():
    with pytest.raises(RefreshRejected):
        await _endpoint(lambda r: httpx.Response(401, json={"error": "invalid_client"})).refresh("R1")


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [429, 500, 502, 503])
async def test_refresh_server_side_failures_are_transient(status):
    with pytest.raises(RefreshUnavailable) as exc_info:
        await _endpoint(lambda r: httpx.Response(status, text="busy")).refresh("R1")
    assert exc_info.value.status_code == status


@pytest.mark.asyncio
async def test_refresh_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(RefreshUnavailable):
        await _endpoint(handler).refresh("R1")


@pytest.mark.asyncio
async def test_refresh_network_error_is_transient():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RefreshUnavailable):
        await _endpoint(handler).refresh("R1")


@pytest.mark.asyncio
async def test_refresh_malformed_body_is_transient():
    with pytest.raises(RefreshUnavailable):
        await _endpoint(lambda r: httpx.Response(200, json={"expires_in": 3600})).refresh("R1")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"access_token": None, "expires_in": 3600},
        {"access_token": "", "expires_in": 3600},
        {"access_token": "A2"},
        {"access_token": "A2", "expires_in": "soon"},
        ["not", "an", "object"],
    ],
)
async def test_refresh_incomplete_token_body_is_transient(body):
    with pytest.raises(RefreshUnavailable):
        await _endpoint(lambda r: httpx.Response(200, json=body)).refresh("R1")


@pytest.mark.asyncio
async def test_exchange_code_without_access_token_fails():
    body = {"access_token": None, "refresh_token": "R1", "expires_in": 3600}
    with pytest.raises(GrantExchangeFailed):
        await _endpoint(lambda r: httpx.Response(200, json=body)).exchange_code("grant123")


@pytest.mark.asyncio
async def test_exchange_code_without_lifetime_fails():
    body = {"access_token": "A1", "refresh_token": "R1"}
    with pytest.raises(GrantExchangeFailed):
        await _endpoint(lambda r: httpx.Response(200, json=body)).exchange_code("grant123")


@pytest.mark.asyncio
async def test_refresh_requires_token():
    with pytest.raises(ValueError):
        await _endpoint(lambda r: httpx.Response(200)).refresh("")


@pytest.mark.asyncio
async def test_exchange_code_success():
    seen = []

    def handler(request):
        seen.append(_form(request))
        return httpx.Response(
            200,
            json={"access_token": "A1", "refresh_token": "R1", "expires_in": 3600, "scope": "streaming"},
        )

    grant = await _endpoint(handler).exchange_code("grant123")
    assert grant.access_token == "A1"
    assert grant.refresh_token == "R1"
    assert grant.expires_at == NOW + 3_600_000
    assert seen[0] == {
        "grant_type": "authorization_code",
        "code": "grant123",
        "redirect_uri": "http://127.0.0.1:8000/callback",
    }


@pytest.mark.asyncio
async def test_exchange_code_rejected():
    body = {"error": "invalid_grant", "error_description": "Invalid authorization code"}
    with pytest.raises(GrantExchangeFailed) as exc_info:
        await _endpoint(lambda r: httpx.Response(400, json=body)).exchange_code("used-code")
    assert exc_info.value.error == "invalid_grant"
    assert "Invalid authorization code" in str(exc_info.value)


@pytest.mark.asyncio
async def test_exchange_code_network_error():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(GrantExchangeFailed):
        await _endpoint(handler).exchange_code("grant123")
