"""Tests for the Spotify Web API client: token pulled per call, error mapping."""
import json

import httpx
import pytest

from player_web.errors import SessionExpired
from player_web.spotify import SpotifyAPIError, SpotifyClient, handle_spotify_error


class Tokens:
    """Token provider that hands out a new token on every call."""

    def __init__(self):
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        return f"token-{self.calls}"


def _client(handler, tokens=None) -> SpotifyClient:
    return SpotifyClient(
        tokens or Tokens(),
        api_base="https://api.example/v1",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_each_call_pulls_a_fresh_token():
    auth_headers = []

    def handler(request):
        auth_headers.append(request.headers["Authorization"])
        return httpx.Response(200, json={"id": "u1"})

    tokens = Tokens()
    client = _client(handler, tokens)
    await client.get_current_user()
    await client.get_current_user()
    assert auth_headers == ["Bearer token-1", "Bearer token-2"]
    assert tokens.calls == 2


@pytest.mark.asyncio
async def test_get_user_playlists_passes_pagination():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json={"items": [], "total": 0})

    await _client(handler).get_user_playlists(limit=10, offset=20)
    assert seen[0].path == "/v1/me/playlists"
    assert seen[0].params["limit"] == "10"
    assert seen[0].params["offset"] == "20"


@pytest.mark.asyncio
async def test_get_playlist_tracks_requests_field_filter():
    seen = []

    def handler(request):
        seen.append(request.url)
        return httpx.Response(200, json={"items": []})

    await _client(handler).get_playlist_tracks("pl1", limit=50)
    assert seen[0].path == "/v1/playlists/pl1/tracks"
    assert "track(id,name" in seen[0].params["fields"]


@pytest.mark.asyncio
async def test_transfer_playback_body():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(204)

    await _client(handler).transfer_playback("dev1")
    assert seen == [("PUT", "/v1/me/player", {"device_ids": ["dev1"], "play": False})]


@pytest.mark.asyncio
async def test_start_playback_with_device_and_context():
    seen = []

    def handler(request):
        seen.append((request.url.params.get("device_id"), json.loads(request.content)))
        return httpx.Response(204)

    await _client(handler).start_playback("dev1", context_uri="spotify:playlist:pl1")
    assert seen == [("dev1", {"context_uri": "spotify:playlist:pl1"})]


@pytest.mark.asyncio
async def test_error_response_raises_with_provider_message():
    def handler(request):
        return httpx.Response(403, json={"error": {"status": 403, "message": "Player command failed: Premium required"}})

    with pytest.raises(SpotifyAPIError) as exc_info:
        await _client(handler).pause_playback()
    assert exc_info.value.status == 403
    assert "Premium required" in str(exc_info.value)


@pytest.mark.asyncio
async def test_network_error_becomes_bad_gateway():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(SpotifyAPIError) as exc_info:
        await _client(handler).skip_to_next()
    assert exc_info.value.status == 502


@pytest.mark.asyncio
async def test_session_errors_pass_through_untouched():
    async def expired():
        raise SessionExpired()

    client = SpotifyClient(expired, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with pytest.raises(SessionExpired):
        await client.get_current_user()


@pytest.mark.parametrize(
    "status,message",
    [
        (401, "Authentication required"),
        (403, "Spotify Premium required for playback"),
        (404, "Resource not found"),
        (429, "Rate limit exceeded, please try again later"),
        (502, "Spotify service temporarily unavailable"),
        (503, "Spotify service temporarily unavailable"),
    ],
)
def test_handle_spotify_error_known_statuses(status, message):
    assert handle_spotify_error(SpotifyAPIError(status, {"message": "x"})) == (message, status)


def test_handle_spotify_error_other_status_uses_provider_message():
    assert handle_spotify_error(SpotifyAPIError(400, {"message": "Bad uri"})) == ("Bad uri", 400)


def test_handle_spotify_error_unknown_exception():
    assert handle_spotify_error(RuntimeError("x")) == ("An unexpected error occurred", 500)
