"""Session-backed principal helpers.

The session holds two keys:
    user_id   -- signed-in user (the principal)
    okta_name -- identity established by the Okta login, present even before
                 the user has registered
"""
from __future__ import annotations
from typing import Optional

from flask import current_app, session

from reviewportal.core.authorization import Principal
from reviewportal.models import User, db

SESSION_USER_KEY = "user_id"
SESSION_OKTA_KEY = "okta_name"


def current_user() -> Optional[User]:
    """Signed-in user record, or None."""
    user_id = session.get(SESSION_USER_KEY)
    if user_id is None:
        return None

    user = db.session.get(User, user_id)
    if user is None:
        current_app.logger.warning("[rbac] Session references missing user %s; signing out", user_id)
        session.pop(SESSION_USER_KEY, None)
    return user


def current_principal() -> Optional[Principal]:
    user = current_user()
    return Principal.from_user(user) if user is not None else None


def current_okta_name() -> Optional[str]:
    return session.get(SESSION_OKTA_KEY)


def establish_okta_identity(okta_name: str) -> None:
    """Record the identity returned by Okta (before any user record exists)."""
    session[SESSION_OKTA_KEY] = okta_name


def set_current_user(user: User) -> None:
    """Make ``user`` the session principal (explicit login only)."""
    session[SESSION_USER_KEY] = user.id
    if user.okta_name:
        session[SESSION_OKTA_KEY] = user.okta_name
    current_app.logger.info("[rbac] Signed in user %s", user.okta_name or user.id)


def clear_session() -> None:
    session.pop(SESSION_USER_KEY, None)
    session.pop(SESSION_OKTA_KEY, None)
