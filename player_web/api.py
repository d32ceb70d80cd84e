"""
API gateway (/api/spotify/*) and playback controller endpoints (/api/player/*).
Handlers take the caller's session and forward to Spotify; tokens come from the session
authority on every call. Errors are translated by the exception handlers in main.
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from player_web.sessions import UserSession, current_session, require_session

logger = logging.getLogger(__name__)
router = APIRouter()

SessionDep = Annotated[UserSession, Depends(require_session)]


class DeviceBody(BaseModel):
    device_id: str


class PlayBody(BaseModel):
    context_uri: str | None = None
    uris: list[str] | None = None


def _user_view(user: dict) -> dict:
    return {
        "id": user.get("id"),
        "display_name": user.get("display_name"),
        "email": user.get("email"),
        "images": user.get("images", []),
        "followers": user.get("followers"),
        "country": user.get("country"),
        "product": user.get("product"),
    }


def _playlist_view(playlist: dict) -> dict:
    owner = playlist.get("owner") or {}
    return {
        "id": playlist.get("id"),
        "name": playlist.get("name"),
        "description": playlist.get("description"),
        "images": playlist.get("images") or [],
        "tracks": {"total": (playlist.get("tracks") or {}).get("total", 0)},
        "owner": {"id": owner.get("id"), "display_name": owner.get("display_name")},
        "public": playlist.get("public"),
        "collaborative": playlist.get("collaborative"),
    }


def _track_item_view(item: dict) -> dict:
    track = item["track"]
    album = track.get("album") or {}
    return {
        "added_at": item.get("added_at"),
        "track": {
            "id": track.get("id"),
            "name": track.get("name"),
            "artists": [{"id": a.get("id"), "name": a.get("name")} for a in track.get("artists", [])],
            "album": {"id": album.get("id"), "name": album.get("name"), "images": album.get("images", [])},
            "duration_ms": track.get("duration_ms"),
            "preview_url": track.get("preview_url"),
            "uri": track.get("uri"),
            "track_number": track.get("track_number"),
            "explicit": track.get("explicit"),
        },
    }


def _page(data: dict, items: list[dict]) -> dict:
    return {
        "items": items,
        "next": data.get("next"),
        "total": data.get("total"),
        "limit": data.get("limit"),
        "offset": data.get("offset"),
    }


@router.get("/api/session")
def session_state(session: Annotated[UserSession | None, Depends(current_session)]):
    """Derived session state for the UI: the only session facts it may branch on."""
    if session is None:
        return {"is_authenticated": False, "is_session_expired": False, "user_id": None}
    status = session.authority.status
    return {
        "is_authenticated": status.is_authenticated,
        "is_session_expired": status.is_session_expired,
        "user_id": session.user_id,
    }


@router.get("/api/spotify/me")
async def spotify_me(session: SessionDep):
    logger.debug("API Request: GET /api/spotify/me")
    user = await session.spotify.get_current_user()
    logger.debug("API Response: GET /api/spotify/me 200 user=%s", user.get("id"))
    return _user_view(user)


@router.get("/api/spotify/playlists")
async def spotify_playlists(
    session: SessionDep,
    limit: Annotated[int, Query(ge=1)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
):
    limit = min(limit, 50)
    logger.debug("API Request: GET /api/spotify/playlists limit=%s offset=%s", limit, offset)
    data = await session.spotify.get_user_playlists(limit=limit, offset=offset)
    response = _page(data, [_playlist_view(p) for p in data.get("items", []) if p])
    logger.debug("API Response: GET /api/spotify/playlists 200 count=%s", len(response["items"]))
    return response


@router.get("/api/spotify/playlists/{playlist_id}/tracks")
async def spotify_playlist_tracks(
    playlist_id: str,
    session: SessionDep,
    limit: Annotated[int, Query(ge=1)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
):
    limit = min(limit, 100)
    logger.debug("API Request: GET /api/spotify/playlists/%s/tracks limit=%s offset=%s", playlist_id, limit, offset)
    data = await session.spotify.get_playlist_tracks(playlist_id, limit=limit, offset=offset)
    # Local files and removed tracks cannot be played or shown
    items = [
        _track_item_view(item)
        for item in data.get("items", [])
        if item.get("track") and not item.get("is_local")
    ]
    return _page(data, items)


@router.get("/api/player/token")
async def player_token(session: SessionDep):
    """getOAuthToken callback for the Web Playback SDK."""
    return {"access_token": await session.playback.get_oauth_token()}


@router.post("/api/player/ready")
async def player_ready(body: DeviceBody, session: SessionDep):
    transferred = await session.playback.on_ready(body.device_id)
    return {"device_id": body.device_id, "transferred": transferred}


@router.post("/api/player/not-ready")
def player_not_ready(body: DeviceBody, session: SessionDep):
    session.playback.on_not_ready(body.device_id)
    return {"device_id": session.playback.device_id}


@router.get("/api/player/devices")
async def player_devices(session: SessionDep):
    return await session.playback.devices()


@router.put("/api/player/play", status_code=204)
async def player_play(session: SessionDep, body: PlayBody | None = None):
    body = body or PlayBody()
    await session.playback.play(context_uri=body.context_uri, uris=body.uris)


@router.put("/api/player/pause", status_code=204)
async def player_pause(session: SessionDep):
    await session.playback.pause()


@router.post("/api/player/next", status_code=204)
async def player_next(session: SessionDep):
    await session.playback.next()


@router.post("/api/player/previous", status_code=204)
async def player_previous(session: SessionDep):
    await session.playback.previous()
