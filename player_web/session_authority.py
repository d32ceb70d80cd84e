"""
Session authority: the only writer of a session's credential and the only way to get a bearer token.

State machine:
    signed_out -> signing_in -> authenticated <-> refreshing
                                refreshing -> failed   (provider rejected the refresh token)
    failed is terminal until begin_sign_in() starts over; sign_out() returns to signed_out from anywhere.

At most one refresh runs per session. Concurrent callers of current_access_token() await the
same in-flight task, and a refresh that was overtaken by sign-out or a new sign-in never writes.
"""
import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable

from player_web.config import SAFETY_MARGIN_SECONDS
from player_web.credential_store import Credential, CredentialStatus, CredentialStore, now_ms
from player_web.errors import (
    GrantExchangeFailed,
    NotAuthenticated,
    RefreshRejected,
    RefreshTemporarilyUnavailable,
    RefreshUnavailable,
    SessionExpired,
    SignInFailed,
)
from player_web.token_exchange import TokenEndpoint, TokenGrant

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    SIGNED_OUT = "signed_out"
    SIGNING_IN = "signing_in"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    FAILED = "failed"


@dataclass(frozen=True)
class SessionStatus:
    """The only session facts presentational code may branch on."""

    is_authenticated: bool
    is_session_expired: bool


Listener = Callable[[SessionStatus], None]


def _sign_in_reason(exc: GrantExchangeFailed) -> str:
    """Map a failed code exchange onto the /auth/error codes."""
    if exc.error in ("invalid_client", "unauthorized_client"):
        return "Configuration"
    if exc.error == "invalid_grant":
        return "Verification"
    return "Default"


class SessionAuthority:
    def __init__(
        self,
        token_endpoint: TokenEndpoint,
        *,
        store: CredentialStore | None = None,
        clock: Callable[[], int] = now_ms,
        safety_margin_ms: int = SAFETY_MARGIN_SECONDS * 1000,
    ):
        self._endpoint = token_endpoint
        self._store = store if store is not None else CredentialStore()
        self._clock = clock
        self._safety_margin_ms = safety_margin_ms
        self._state = SessionState.SIGNED_OUT
        self._refresh_task: asyncio.Task | None = None
        # Bumped on sign-in and sign-out; a refresh only writes if it is still current
        self._generation = 0
        self._listeners: list[Listener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> SessionStatus:
        return SessionStatus(
            is_authenticated=self.is_authenticated,
            is_session_expired=self.is_session_expired,
        )

    @property
    def is_authenticated(self) -> bool:
        # A failed session is still "signed in with an error" until sign-out
        return self._state in (SessionState.AUTHENTICATED, SessionState.REFRESHING, SessionState.FAILED)

    @property
    def is_session_expired(self) -> bool:
        return self._state is SessionState.FAILED

    def snapshot(self) -> Credential | None:
        """Read-only copy of the stored credential, for diagnostics. Do not use its access_token."""
        return self._store.get()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener with the derived status on every transition. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, state: SessionState) -> None:
        self._state = state
        status = self.status
        for listener in list(self._listeners):
            listener(status)

    async def begin_sign_in(self, authorization_code: str) -> None:
        """
        Exchange a one-time authorization code for the initial credential.
        Any previous credential is discarded first. Raises SignInFailed and stays signed out on failure.
        """
        self._generation += 1
        self._refresh_task = None
        self._store.clear()
        self._transition(SessionState.SIGNING_IN)
        generation = self._generation
        try:
            grant = await self._endpoint.exchange_code(authorization_code)
        except GrantExchangeFailed as e:
            if generation == self._generation:
                self._transition(SessionState.SIGNED_OUT)
            raise SignInFailed(str(e), reason=_sign_in_reason(e)) from e

        if generation != self._generation:
            raise SignInFailed("Sign-in was superseded")
        self._store.set(
            Credential(
                access_token=grant.access_token,
                refresh_token=grant.refresh_token,
                expires_at=grant.expires_at,
                scope=grant.scope,
            )
        )
        self._transition(SessionState.AUTHENTICATED)
        logger.info("Signed in; token expires in %ss", (grant.expires_at - self._clock()) // 1000)

    async def current_access_token(self) -> str:
        """
        Return a bearer token that is valid for at least the safety margin.
        Raises NotAuthenticated, SessionExpired or RefreshTemporarilyUnavailable.
        """
        credential = self._store.get()
        if credential is None:
            raise NotAuthenticated()
        if credential.status is CredentialStatus.ERROR:
            raise SessionExpired()
        if self._refresh_task is None and not credential.expires_within(self._safety_margin_ms, self._clock()):
            return credential.access_token

        if self._refresh_task is None:
            self._refresh_task = asyncio.get_running_loop().create_task(self._refresh(credential, self._generation))
        # Shielded: a cancelled caller must not cancel the refresh other callers are waiting on
        return await asyncio.shield(self._refresh_task)

    async def _refresh(self, credential: Credential, generation: int) -> str:
        task = asyncio.current_task()
        try:
            self._ensure_current(generation)
            if not credential.refresh_token:
                self._fail(credential, "No refresh token available")
                raise SessionExpired()

            self._store.set(replace(credential, status=CredentialStatus.REFRESHING))
            self._transition(SessionState.REFRESHING)
            try:
                grant = await self._endpoint.refresh(credential.refresh_token)
            except RefreshRejected as e:
                logger.warning("Token refresh rejected (%s); session expired", e.error or e.status_code)
                self._ensure_current(generation, e)
                self._fail(credential, str(e))
                raise SessionExpired() from e
            except RefreshUnavailable as e:
                logger.warning("Token refresh unavailable: %s", e)
                self._ensure_current(generation, e)
                self._restore(credential)
                raise RefreshTemporarilyUnavailable() from e
            except Exception as e:
                logger.exception("Unexpected error during token refresh")
                self._ensure_current(generation, e)
                self._restore(credential)
                raise RefreshTemporarilyUnavailable() from e

            self._ensure_current(generation)
            return self._apply(credential, grant)
        finally:
            if self._refresh_task is task:
                self._refresh_task = None

    def _apply(self, credential: Credential, grant: TokenGrant) -> str:
        updated = credential.refreshed(
            access_token=grant.access_token,
            expires_at=grant.expires_at,
            refresh_token=grant.refresh_token,
            scope=grant.scope,
        )
        self._store.set(updated)
        self._transition(SessionState.AUTHENTICATED)
        logger.info("Token refreshed; rotated refresh token: %s", updated.refresh_token != credential.refresh_token)
        return updated.access_token

    def _ensure_current(self, generation: int, cause: BaseException | None = None) -> None:
        # Sign-out or a new sign-in since this refresh started: its outcome is never written
        if generation != self._generation:
            raise NotAuthenticated("Session ended while refreshing") from cause

    def _restore(self, credential: Credential) -> None:
        # Transient failure: prior credential goes back untouched so the next access retries
        self._store.set(credential)
        self._transition(SessionState.AUTHENTICATED)

    def _fail(self, credential: Credential, reason: str) -> None:
        self._store.set(credential.failed(reason))
        self._transition(SessionState.FAILED)

    def sign_out(self) -> None:
        """Drop the credential. Synchronous, no network."""
        self._generation += 1
        self._refresh_task = None
        self._store.clear()
        self._transition(SessionState.SIGNED_OUT)
        logger.info("Signed out")
