"""
Pending sign-in flows keyed by the OAuth state parameter, between /login and /callback.
Single use: get_flow() pops. TTL keeps abandoned logins from piling up.
"""
import time
from dataclasses import dataclass

# Spotify consent screen can sit open for a while; 10 minutes is plenty
FLOW_TTL = 600


@dataclass
class PendingFlow:
    return_to: str
    created_at: float

    def expired(self) -> bool:
        return (time.monotonic() - self.created_at) > FLOW_TTL


_pending: dict[str, PendingFlow] = {}


def store_flow(state: str, return_to: str = "/") -> None:
    _clean_expired()
    _pending[state] = PendingFlow(return_to=return_to, created_at=time.monotonic())


def get_flow(state: str) -> PendingFlow | None:
    flow = _pending.pop(state, None)
    if flow is None or flow.expired():
        return None
    return flow


def _clean_expired() -> None:
    expired = [s for s, f in _pending.items() if f.expired()]
    for s in expired:
        del _pending[s]
