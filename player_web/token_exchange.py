"""
Spotify accounts token endpoint client: authorization code exchange and refresh_token grant.
Confidential client: HTTP Basic with client_id:client_secret, form-encoded body.
No state is kept here; callers decide what to store.
"""
import logging
from dataclasses import dataclass
from typing import Callable

import httpx

from player_web.config import (
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    SPOTIFY_REDIRECT_URI,
    SPOTIFY_TOKEN_URL,
    TOKEN_TIMEOUT,
)
from player_web.credential_store import now_ms
from player_web.errors import GrantExchangeFailed, RefreshRejected, RefreshUnavailable

logger = logging.getLogger(__name__)

# Statuses worth retrying later; every other 4xx is the provider saying no
TRANSIENT_STATUSES = {408, 429}


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    expires_at: int  # epoch ms
    refresh_token: str | None = None
    scope: str = ""


def _error_fields(response: httpx.Response) -> tuple[str | None, str]:
    """(error, error_description) from an OAuth error body, tolerating non-JSON bodies."""
    try:
        body = response.json()
    except ValueError:
        return None, response.text[:200]
    if not isinstance(body, dict):
        return None, str(body)[:200]
    error = body.get("error")
    description = body.get("error_description") or error or response.reason_phrase
    return error, str(description)


def _is_transient(status_code: int) -> bool:
    return status_code in TRANSIENT_STATUSES or status_code >= 500


class TokenEndpoint:
    def __init__(
        self,
        *,
        token_url: str = SPOTIFY_TOKEN_URL,
        client_id: str = SPOTIFY_CLIENT_ID,
        client_secret: str = SPOTIFY_CLIENT_SECRET,
        redirect_uri: str = SPOTIFY_REDIRECT_URI,
        timeout: float = TOKEN_TIMEOUT,
        clock: Callable[[], int] = now_ms,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._clock = clock
        self._transport = transport

    async def _post(self, data: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            return await client.post(
                self.token_url,
                data=data,
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
            )

    def _grant_from(self, body: dict, previous_refresh_token: str | None = None) -> TokenGrant:
        access_token = body["access_token"]
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token missing from token response")
        expires_in = body["expires_in"]
        if isinstance(expires_in, bool) or not isinstance(expires_in, int):
            raise ValueError(f"expires_in is not an integer: {expires_in!r}")
        # expires_at is anchored to our clock at response time
        return TokenGrant(
            access_token=access_token,
            expires_at=self._clock() + expires_in * 1000,
            refresh_token=body.get("refresh_token") or previous_refresh_token,
            scope=body.get("scope") or "",
        )

    async def exchange_code(self, code: str) -> TokenGrant:
        """
        Exchange a one-time authorization code for the initial credential.
        Raises GrantExchangeFailed; error is the OAuth error code when the provider sent one.
        """
        try:
            r = await self._post(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                }
            )
        except httpx.HTTPError as e:
            logger.warning("Authorization code exchange failed: %s", e)
            raise GrantExchangeFailed(f"Token endpoint unreachable: {e}") from e

        if r.status_code != 200:
            error, description = _error_fields(r)
            logger.warning("Authorization code exchange rejected: %s %s", r.status_code, error)
            raise GrantExchangeFailed(description, status_code=r.status_code, error=error)

        try:
            body = r.json()
            grant = self._grant_from(body)
        except (ValueError, KeyError, TypeError) as e:
            raise GrantExchangeFailed("Malformed token response", status_code=r.status_code) from e
        logger.debug("Authorization code exchanged; expires_at=%s", grant.expires_at)
        return grant

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """
        Exchange refresh_token for a new access token.
        RefreshRejected: provider refused it (terminal). RefreshUnavailable: transient, try again later.
        If the response omits refresh_token the one passed in is returned unchanged.
        """
        if not refresh_token:
            raise ValueError("refresh_token must be non-empty")

        try:
            r = await self._post({"grant_type": "refresh_token", "refresh_token": refresh_token})
        except httpx.TimeoutException as e:
            logger.warning("Token refresh timed out after %ss", self.timeout)
            raise RefreshUnavailable("Token endpoint timed out") from e
        except httpx.HTTPError as e:
            logger.warning("Token refresh request failed: %s", e)
            raise RefreshUnavailable(f"Token endpoint unreachable: {e}") from e

        if r.status_code != 200:
            error, description = _error_fields(r)
            if _is_transient(r.status_code):
                logger.warning("Token refresh unavailable: %s %s", r.status_code, description)
                raise RefreshUnavailable(description, status_code=r.status_code, error=error)
            logger.warning("Token refresh rejected: %s %s", r.status_code, error)
            raise RefreshRejected(description, status_code=r.status_code, error=error)

        try:
            grant = self._grant_from(r.json(), previous_refresh_token=refresh_token)
        except (ValueError, KeyError, TypeError) as e:
            raise RefreshUnavailable("Malformed token response", status_code=r.status_code) from e
        return grant
