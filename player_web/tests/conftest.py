"""
Pytest configuration for player_web. In-memory SQLite and fixed app credentials, set before any import.
"""
import os

os.environ["PLAYER_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["PLAYER_SESSION_SECRET"] = "test-session-secret"
os.environ["SPOTIFY_CLIENT_ID"] = "test-client"
os.environ["SPOTIFY_CLIENT_SECRET"] = "test-secret"
os.environ["SPOTIFY_REDIRECT_URI"] = "http://127.0.0.1:8000/callback"
