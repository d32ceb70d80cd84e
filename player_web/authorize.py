"""
Authorization request helpers for the Spotify authorization code flow.
"""
import secrets
from urllib.parse import urlencode


def generate_state() -> str:
    """Opaque value for CSRF protection; Spotify echoes it back on the callback."""
    return secrets.token_urlsafe(32)


def safe_return_to(value: str | None) -> str:
    """Only same-site paths are allowed as post-login destinations."""
    if not value or not value.startswith("/") or value.startswith("//"):
        return "/"
    return value


def build_authorize_url(
    *,
    authorize_url: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    show_dialog: bool = False,
) -> str:
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
    }
    if show_dialog:
        params["show_dialog"] = "true"
    return f"{authorize_url}?{urlencode(params)}"
