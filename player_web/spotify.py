"""
Spotify Web API client used by the API gateway and the playback controller.
Every request pulls a fresh bearer token from the token provider; nothing is cached here.
"""
import logging
from typing import Any, Awaitable, Callable

import httpx

from player_web.config import API_TIMEOUT, SPOTIFY_API_BASE

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]

TRACK_FIELDS = (
    "items(added_at,is_local,track(id,name,artists(id,name),album(id,name,images),"
    "duration_ms,preview_url,uri,track_number,explicit)),next,total,limit,offset"
)


class SpotifyAPIError(Exception):
    def __init__(self, status: int, payload: dict | None = None, message: str | None = None):
        payload = payload or {}
        super().__init__(message or payload.get("message") or f"Spotify API error {status}")
        self.status = status
        self.payload = payload


def handle_spotify_error(error: Exception) -> tuple[str, int]:
    """User-facing (message, status) for a Spotify Web API failure."""
    if isinstance(error, SpotifyAPIError):
        if error.status == 401:
            return "Authentication required", 401
        if error.status == 403:
            return "Spotify Premium required for playback", 403
        if error.status == 404:
            return "Resource not found", 404
        if error.status == 429:
            return "Rate limit exceeded, please try again later", 429
        if error.status in (502, 503):
            return "Spotify service temporarily unavailable", error.status
        return str(error) or "Spotify API error", error.status
    return "An unexpected error occurred", 500


def _error_payload(response: httpx.Response) -> dict:
    # Web API errors look like {"error": {"status": 403, "message": "..."}}
    try:
        body = response.json()
    except ValueError:
        return {"status": response.status_code, "message": response.reason_phrase}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {"status": response.status_code, "message": response.reason_phrase}


class SpotifyClient:
    def __init__(
        self,
        token_provider: TokenProvider,
        *,
        api_base: str = SPOTIFY_API_BASE,
        timeout: float = API_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._token_provider = token_provider
        self.api_base = api_base
        self.timeout = timeout
        self._transport = transport

    async def token(self) -> str:
        return await self._token_provider()

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict | None = None,
        json: Any = None,
    ) -> httpx.Response:
        url = endpoint if endpoint.startswith("http") else f"{self.api_base}{endpoint}"
        access_token = await self._token_provider()
        logger.debug("Spotify API call: %s %s", method, endpoint)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.TimeoutException as e:
            raise SpotifyAPIError(503, message="Spotify request timed out") from e
        except httpx.HTTPError as e:
            raise SpotifyAPIError(502, message=f"Spotify request failed: {e}") from e

        if r.status_code >= 400:
            payload = _error_payload(r)
            logger.warning("Spotify API error: %s %s -> %s %s", method, endpoint, r.status_code, payload.get("message"))
            raise SpotifyAPIError(r.status_code, payload)
        return r

    async def get_current_user(self) -> dict:
        return (await self._request("GET", "/me")).json()

    async def get_user_playlists(self, limit: int = 20, offset: int = 0) -> dict:
        r = await self._request("GET", "/me/playlists", params={"limit": limit, "offset": offset})
        return r.json()

    async def get_playlist_tracks(self, playlist_id: str, limit: int = 100, offset: int = 0) -> dict:
        r = await self._request(
            "GET",
            f"/playlists/{playlist_id}/tracks",
            params={"limit": limit, "offset": offset, "fields": TRACK_FIELDS},
        )
        return r.json()

    async def get_available_devices(self) -> dict:
        return (await self._request("GET", "/me/player/devices")).json()

    async def transfer_playback(self, device_id: str, play: bool = False) -> None:
        await self._request("PUT", "/me/player", json={"device_ids": [device_id], "play": play})

    async def start_playback(
        self,
        device_id: str | None = None,
        context_uri: str | None = None,
        uris: list[str] | None = None,
    ) -> None:
        body: dict[str, Any] = {}
        if context_uri:
            body["context_uri"] = context_uri
        if uris:
            body["uris"] = uris
        params = {"device_id": device_id} if device_id else None
        await self._request("PUT", "/me/player/play", params=params, json=body)

    async def pause_playback(self, device_id: str | None = None) -> None:
        params = {"device_id": device_id} if device_id else None
        await self._request("PUT", "/me/player/pause", params=params)

    async def skip_to_next(self, device_id: str | None = None) -> None:
        params = {"device_id": device_id} if device_id else None
        await self._request("POST", "/me/player/next", params=params)

    async def skip_to_previous(self, device_id: str | None = None) -> None:
        params = {"device_id": device_id} if device_id else None
        await self._request("POST", "/me/player/previous", params=params)
