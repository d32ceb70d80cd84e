"""Tests for linking Spotify profiles to local users."""
import pytest

from player_web.accounts import get_user, link_account
from player_web.database import SessionLocal, get_db, reset_db
from player_web.models import Account, User


@pytest.fixture
def db():
    reset_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        reset_db()


PROFILE = {
    "id": "spotify-user-1",
    "display_name": "Listener",
    "email": "listener@example.com",
    "images": [{"url": "https://img.example/1.jpg"}],
    "product": "premium",
    "country": "SE",
}


def test_first_sign_in_creates_user_and_account(db):
    user = link_account(db, PROFILE, scope="streaming")
    assert user.id is not None
    assert user.name == "Listener"
    assert user.email == "listener@example.com"
    assert user.image == "https://img.example/1.jpg"
    account = db.query(Account).filter(Account.user_id == user.id).one()
    assert account.provider == "spotify"
    assert account.provider_account_id == "spotify-user-1"
    assert account.product == "premium"
    assert account.scope == "streaming"


def test_second_sign_in_reuses_user_and_updates_profile(db):
    first = link_account(db, PROFILE)
    second = link_account(db, {**PROFILE, "display_name": "Renamed", "product": "free"})
    assert second.id == first.id
    assert second.name == "Renamed"
    assert db.query(User).count() == 1
    assert db.query(Account).count() == 1
    assert db.query(Account).one().product == "free"


def test_profile_without_id_is_rejected(db):
    with pytest.raises(ValueError):
        link_account(db, {"display_name": "x"})


def test_get_user(db):
    user = link_account(db, PROFILE)
    assert get_user(db, user.id).email == "listener@example.com"
    assert get_user(db, 9999) is None


def test_request_session_rolls_back_when_handler_fails():
    reset_db()
    sessions = get_db()
    db = next(sessions)
    db.add(User(email="pending@example.com"))
    db.flush()
    with pytest.raises(RuntimeError):
        sessions.throw(RuntimeError("handler failed"))

    check = SessionLocal()
    try:
        assert check.query(User).count() == 0
    finally:
        check.close()
