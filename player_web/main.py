"""
Player Web app: Spotify sign-in, session lifecycle, API gateway and playback endpoints.
GET /, /login, /callback, /auth/error; POST /logout. Port 8000.
"""
import html
import logging
from contextlib import asynccontextmanager
from typing import Annotated
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from player_web import sessions
from player_web.accounts import link_account
from player_web.api import router as api_router
from player_web.authorize import build_authorize_url, generate_state, safe_return_to
from player_web.config import (
    SESSION_COOKIE,
    SPOTIFY_AUTH_SCOPES,
    SPOTIFY_AUTHORIZE_URL,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_REDIRECT_URI,
)
from player_web.database import get_db, init_db
from player_web.errors import RefreshTemporarilyUnavailable, SessionError, SignInFailed
from player_web.flow_store import get_flow, store_flow
from player_web.logging_config import configure_logging
from player_web.sessions import UserSession, current_session, encode_session_cookie
from player_web.spotify import SpotifyAPIError, handle_spotify_error

logger = logging.getLogger(__name__)

ERROR_MESSAGES = {
    "Configuration": "There is a problem with the server configuration.",
    "AccessDenied": "Access was denied. Please check your Spotify account permissions.",
    "Verification": "The verification token is invalid or has expired.",
    "Default": "An error occurred during authentication. Please try again.",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and create tables on startup."""
    configure_logging()
    init_db()
    yield


app = FastAPI(title="Player Web", version="0.1.0", lifespan=lifespan)
app.include_router(api_router, tags=["api"])


@app.exception_handler(SessionError)
async def session_error_handler(request: Request, exc: SessionError):
    status_code = 503 if isinstance(exc, RefreshTemporarilyUnavailable) else 401
    headers = {"Retry-After": "5"} if status_code == 503 else None
    logger.info("Session error on %s: %s", request.url.path, exc.code)
    return JSONResponse({"error": exc.code, "message": str(exc)}, status_code=status_code, headers=headers)


@app.exception_handler(SpotifyAPIError)
async def spotify_error_handler(request: Request, exc: SpotifyAPIError):
    message, status_code = handle_spotify_error(exc)
    logger.error("API Error: %s: %s", request.url.path, exc)
    return JSONResponse({"error": "Spotify API Error", "message": message}, status_code=status_code)


def _auth_error_redirect(reason: str) -> RedirectResponse:
    return RedirectResponse(url=f"/auth/error?{urlencode({'error': reason})}", status_code=302)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "player_web"}


@app.get("/", response_class=HTMLResponse)
def home(session: Annotated[UserSession | None, Depends(current_session)]):
    """Home page: sign-in link, or session state and sign-out."""
    if session is None:
        body = '<p><a href="/login">Sign in with Spotify</a></p>'
    elif session.authority.is_session_expired:
        body = '<p>Your session has expired. <a href="/login">Sign in again</a></p>'
    else:
        body = """<p>Signed in.</p>
  <p><a href="/api/spotify/playlists">Your playlists</a></p>
  <form method="post" action="/logout"><button type="submit">Sign out</button></form>"""
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Player Web</title></head>
<body>
  <h1>Spotify Player</h1>
  {body}
</body>
</html>"""
    )


@app.get("/login")
def login(return_to: str | None = None):
    """Record a pending flow under a fresh state and redirect to Spotify's consent page."""
    state = generate_state()
    store_flow(state, return_to=safe_return_to(return_to))
    url = build_authorize_url(
        authorize_url=SPOTIFY_AUTHORIZE_URL,
        client_id=SPOTIFY_CLIENT_ID,
        redirect_uri=SPOTIFY_REDIRECT_URI,
        scope=SPOTIFY_AUTH_SCOPES,
        state=state,
    )
    return RedirectResponse(url=url, status_code=302)


@app.get("/callback")
async def callback(
    db: Annotated[Session, Depends(get_db)],
    previous: Annotated[UserSession | None, Depends(current_session)],
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
):
    """
    Handle the redirect from Spotify: validate state, exchange the code through a new
    session authority, link the local user and set the session cookie.
    Any session the browser already had is ended first.
    """
    flow = get_flow(state) if state else None
    if error:
        logger.warning("Authorization denied by provider: %s", error)
        return _auth_error_redirect("AccessDenied" if error == "access_denied" else "Default")
    if flow is None:
        logger.warning("Callback with missing or unknown state")
        return _auth_error_redirect("Verification")
    if not code:
        return _auth_error_redirect("Default")

    if previous is not None:
        logger.info("Replacing existing session: user_id=%s", previous.user_id)
        sessions.registry.discard(previous.sid)

    session = sessions.registry.create()
    try:
        await session.authority.begin_sign_in(code)
        profile = await session.spotify.get_current_user()
        user = link_account(db, profile, scope=session.authority.snapshot().scope)
    except SignInFailed as e:
        logger.error("Auth Error: sign-in failed (%s): %s", e.reason, e)
        sessions.registry.discard(session.sid)
        return _auth_error_redirect(e.reason)
    except (SpotifyAPIError, SessionError) as e:
        logger.error("Auth Error: profile fetch failed: %s", e)
        sessions.registry.discard(session.sid)
        return _auth_error_redirect("Default")
    except Exception:
        sessions.registry.discard(session.sid)
        raise

    session.user_id = user.id
    logger.info("User signed in: provider=spotify user_id=%s", user.id)

    response = RedirectResponse(url=flow.return_to, status_code=302)
    response.set_cookie(
        SESSION_COOKIE,
        encode_session_cookie(session.sid, user.id, max_age=sessions.registry.max_age),
        max_age=sessions.registry.max_age,
        httponly=True,
        samesite="lax",
    )
    return response


@app.post("/logout")
def logout(session: Annotated[UserSession | None, Depends(current_session)]):
    if session is not None:
        logger.info("User signed out: user_id=%s", session.user_id)
        sessions.registry.discard(session.sid)
    response = RedirectResponse(url="/", status_code=303)
    response.delete_cookie(SESSION_COOKIE)
    return response


@app.get("/auth/error", response_class=HTMLResponse)
def auth_error(error: str | None = None):
    message = ERROR_MESSAGES.get(error or "", ERROR_MESSAGES["Default"])
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Authentication Error</title></head>
<body>
  <h1>Authentication Error</h1>
  <p>{html.escape(message)}</p>
  <p><a href="/login">Try again</a> | <a href="/">Home</a></p>
</body>
</html>""",
        status_code=400,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "player_web.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
