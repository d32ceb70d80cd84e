"""
Browser sessions: a signed cookie (HS256 JWT with sid, sub, exp) pointing at an in-process
UserSession that owns the session authority and its consumers.
Process-local; a restart signs everybody out.
"""
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Annotated, Callable

import jwt
from fastapi import Depends, Request

from player_web.config import SESSION_COOKIE, SESSION_MAX_AGE, SESSION_SECRET
from player_web.credential_store import now_ms
from player_web.errors import NotAuthenticated
from player_web.playback import PlaybackController
from player_web.session_authority import SessionAuthority
from player_web.spotify import SpotifyClient
from player_web.token_exchange import TokenEndpoint

logger = logging.getLogger(__name__)

SESSION_ALGORITHM = "HS256"


@dataclass
class UserSession:
    sid: str
    authority: SessionAuthority
    spotify: SpotifyClient
    playback: PlaybackController
    expires_at: float
    user_id: int | None = None
    created_at: float = field(default_factory=time.time)

    def expired(self) -> bool:
        return time.time() >= self.expires_at


def encode_session_cookie(sid: str, user_id: int, *, secret: str = SESSION_SECRET, max_age: int = SESSION_MAX_AGE) -> str:
    now = int(time.time())
    token = jwt.encode(
        {"sid": sid, "sub": str(user_id), "iat": now, "exp": now + max_age},
        secret,
        algorithm=SESSION_ALGORITHM,
    )
    if isinstance(token, bytes):
        token = token.decode("utf-8")
    return token


def decode_session_cookie(value: str, *, secret: str = SESSION_SECRET) -> dict | None:
    """Claims of a valid cookie, or None if it is expired, tampered or malformed."""
    try:
        claims = jwt.decode(value, secret, algorithms=[SESSION_ALGORITHM], options={"require": ["sid", "exp"]})
    except jwt.ExpiredSignatureError:
        logger.debug("Session cookie expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug("Session cookie rejected: %s", e)
        return None
    return claims


class SessionRegistry:
    def __init__(
        self,
        endpoint_factory: Callable[[], TokenEndpoint] = TokenEndpoint,
        *,
        max_age: int = SESSION_MAX_AGE,
        spotify_factory: Callable[..., SpotifyClient] = SpotifyClient,
        clock: Callable[[], int] = now_ms,
    ):
        self._endpoint_factory = endpoint_factory
        self._clock = clock
        self._spotify_factory = spotify_factory
        self.max_age = max_age
        self._sessions: dict[str, UserSession] = {}

    def create(self) -> UserSession:
        self._clean_expired()
        sid = secrets.token_urlsafe(32)
        authority = SessionAuthority(self._endpoint_factory(), clock=self._clock)
        # Consumers get the accessor, never a token
        spotify = self._spotify_factory(authority.current_access_token)
        session = UserSession(
            sid=sid,
            authority=authority,
            spotify=spotify,
            playback=PlaybackController(spotify),
            expires_at=time.time() + self.max_age,
        )
        self._sessions[sid] = session
        return session

    def get(self, sid: str) -> UserSession | None:
        session = self._sessions.get(sid)
        if session is None:
            return None
        if session.expired():
            self.discard(sid)
            return None
        return session

    def discard(self, sid: str) -> None:
        session = self._sessions.pop(sid, None)
        if session is not None:
            session.authority.sign_out()

    def from_cookie(self, value: str | None) -> UserSession | None:
        if not value:
            return None
        claims = decode_session_cookie(value)
        if claims is None:
            return None
        return self.get(claims["sid"])

    def __len__(self) -> int:
        return len(self._sessions)

    def _clean_expired(self) -> None:
        expired = [sid for sid, s in self._sessions.items() if s.expired()]
        for sid in expired:
            self.discard(sid)


registry = SessionRegistry()


def current_session(request: Request) -> UserSession | None:
    """Dependency: the caller's session, or None when signed out."""
    return registry.from_cookie(request.cookies.get(SESSION_COOKIE))


def require_session(session: Annotated[UserSession | None, Depends(current_session)]) -> UserSession:
    """Dependency: the caller's session; NotAuthenticated (401) when signed out."""
    if session is None:
        raise NotAuthenticated()
    return session
