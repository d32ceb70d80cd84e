"""
Link a Spotify profile to a local user on sign-in (create on first login, refresh profile fields after).
"""
import logging

from sqlalchemy.orm import Session

from player_web.models import Account, User

logger = logging.getLogger(__name__)

PROVIDER = "spotify"


def _first_image_url(profile: dict) -> str | None:
    images = profile.get("images") or []
    return images[0].get("url") if images else None


def link_account(db: Session, profile: dict, scope: str = "") -> User:
    """Return the local user for this Spotify profile, creating user and account if needed."""
    spotify_id = profile.get("id")
    if not spotify_id:
        raise ValueError("Spotify profile has no id")

    account = (
        db.query(Account)
        .filter(Account.provider == PROVIDER, Account.provider_account_id == spotify_id)
        .first()
    )
    if account is None:
        email = profile.get("email")
        user = db.query(User).filter(User.email == email).first() if email else None
        if user is None:
            user = User(email=email)
            db.add(user)
        account = Account(user=user, provider=PROVIDER, provider_account_id=spotify_id)
        db.add(account)
        logger.info("Linked new Spotify account %s", spotify_id)
    user = account.user

    user.name = profile.get("display_name") or user.name
    user.image = _first_image_url(profile) or user.image
    account.product = profile.get("product")
    account.country = profile.get("country")
    if scope:
        account.scope = scope
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> User | None:
    return db.query(User).filter(User.id == user_id).first()
