"""
Player Web configuration. Values come from the environment; no secrets in this file.
Spotify app credentials must be registered at https://developer.spotify.com/dashboard.
"""
import os
import re
import secrets

# Spotify app (confidential client) registered for the authorization code grant
SPOTIFY_CLIENT_ID = os.environ.get("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.environ.get("SPOTIFY_CLIENT_SECRET", "")

# Callback URL Spotify redirects to after consent; must match the app settings exactly
SPOTIFY_REDIRECT_URI = os.environ.get("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:8000/callback")

# Playback SDK needs "streaming" plus the playback-state scopes
SPOTIFY_AUTH_SCOPES = re.sub(
    r"\s+",
    " ",
    os.environ.get(
        "SPOTIFY_AUTH_SCOPES",
        "user-read-email user-read-private user-read-playback-state user-modify-playback-state "
        "streaming playlist-read-private playlist-read-collaborative",
    ),
).strip()

# Accounts service (authorize + token endpoints) and Web API base
SPOTIFY_ACCOUNTS_URL = os.environ.get("SPOTIFY_ACCOUNTS_URL", "https://accounts.spotify.com").rstrip("/")
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_URL}/api/token"
SPOTIFY_API_BASE = os.environ.get("SPOTIFY_API_BASE", "https://api.spotify.com/v1").rstrip("/")

# Timeout (seconds) for token endpoint and Web API calls
TOKEN_TIMEOUT = float(os.environ.get("PLAYER_TOKEN_TIMEOUT", "10"))
API_TIMEOUT = float(os.environ.get("PLAYER_API_TIMEOUT", "10"))

# Access tokens this close to expiry are refreshed before use
SAFETY_MARGIN_SECONDS = int(os.environ.get("PLAYER_SAFETY_MARGIN_SECONDS", "60"))

# SQLite for users and linked accounts
DATABASE_URL = os.environ.get("PLAYER_DATABASE_URL", "sqlite:///./player_web.db")

# HS256 key for the session cookie. Unset: random per process, so sessions end on restart.
SESSION_SECRET = os.environ.get("PLAYER_SESSION_SECRET") or secrets.token_urlsafe(32)
SESSION_COOKIE = os.environ.get("PLAYER_SESSION_COOKIE", "player_session")
SESSION_MAX_AGE = int(os.environ.get("PLAYER_SESSION_MAX_AGE", str(30 * 24 * 3600)))

# Auto-transfer of playback to a newly ready SDK device
TRANSFER_ATTEMPTS = int(os.environ.get("PLAYER_TRANSFER_ATTEMPTS", "3"))
TRANSFER_RETRY_DELAY = float(os.environ.get("PLAYER_TRANSFER_RETRY_DELAY", "1.0"))

LOG_LEVEL = os.environ.get("PLAYER_LOG_LEVEL", "INFO").upper()
