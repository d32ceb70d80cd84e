"""
Session-scoped holder for the single live credential.
Credentials are frozen snapshots: set() swaps the whole object, so a reader
sees either the old or the new credential, never a mix.
"""
import time
from dataclasses import dataclass, replace
from enum import Enum


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)


class CredentialStatus(str, Enum):
    VALID = "valid"
    REFRESHING = "refreshing"
    ERROR = "error"


@dataclass(frozen=True)
class Credential:
    access_token: str
    refresh_token: str | None
    expires_at: int  # epoch ms
    scope: str = ""
    status: CredentialStatus = CredentialStatus.VALID
    last_error: str | None = None

    def expires_within(self, margin_ms: int, now: int) -> bool:
        """True if the access token is expired or will expire within margin_ms."""
        return self.expires_at - now <= margin_ms

    def refreshed(self, access_token: str, expires_at: int, refresh_token: str | None, scope: str | None) -> "Credential":
        # Provider may not rotate the refresh token; keep the one we have
        return replace(
            self,
            access_token=access_token,
            expires_at=expires_at,
            refresh_token=refresh_token or self.refresh_token,
            scope=scope or self.scope,
            status=CredentialStatus.VALID,
            last_error=None,
        )

    def failed(self, reason: str) -> "Credential":
        """Terminal error state; bearer material is dropped."""
        return replace(
            self,
            access_token="",
            refresh_token=None,
            expires_at=0,
            status=CredentialStatus.ERROR,
            last_error=reason,
        )


class CredentialStore:
    def __init__(self) -> None:
        self._credential: Credential | None = None

    def get(self) -> Credential | None:
        return self._credential

    def set(self, credential: Credential) -> None:
        self._credential = credential

    def clear(self) -> None:
        self._credential = None
