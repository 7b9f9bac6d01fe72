"""Pytest shared fixtures for the review portal."""
import os
import pathlib
import sys
import tempfile

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
_RUNTIME_DIR = pathlib.Path(tempfile.mkdtemp(prefix="reviewportal-tests-"))
os.environ["DEMO_MODE"] = "true"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MAIL_BACKEND"] = "memory"
os.environ["FLASK_SESSION_COOKIE_SECURE"] = "false"
os.environ["FLASK_SESSION_DIR"] = str(_RUNTIME_DIR / "sessions")
os.environ["AUDIT_LOG_DIR"] = str(_RUNTIME_DIR / "audit")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from reviewportal.flask_app import CSRF_SESSION_KEY, create_app
from reviewportal.models import ReviewingGroup, User, db

TEST_CSRF_TOKEN = "test-csrf-token"


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests spanning several components through HTTP")


# ─────────────────────────────────────────────────────────────────────────────
# Application + Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def app(tmp_path, monkeypatch):
    """Fresh app with an empty in-memory database and an isolated audit log."""
    monkeypatch.setenv("AUDIT_LOG_DIR", str(tmp_path / "audit"))

    flask_app = create_app()
    flask_app.config.update(TESTING=True)

    with flask_app.app_context():
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture()
def mailer(app):
    return app.extensions["reviewportal.mailer"]


# ─────────────────────────────────────────────────────────────────────────────
# Record factories
# ─────────────────────────────────────────────────────────────────────────────
def make_user(name="Regular User", email="user@example.com", okta_name="regular", admin=False):
    user = User(name=name, email=email, okta_name=okta_name, admin=admin)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def user(app):
    return make_user()


@pytest.fixture()
def admin(app):
    return make_user(name="Ada Admin", email="admin@example.com", okta_name="adminOKTA", admin=True)


@pytest.fixture()
def reviewing_group(app):
    group = ReviewingGroup(name="Platform")
    db.session.add(group)
    db.session.commit()
    return group


# ─────────────────────────────────────────────────────────────────────────────
# Session helpers
# ─────────────────────────────────────────────────────────────────────────────
def sign_in(client, user):
    """Make ``user`` the session principal, as a completed Okta login would."""
    with client.session_transaction() as sess:
        sess["user_id"] = user.id
        sess["okta_name"] = user.okta_name


def establish_okta_identity(client, okta_name):
    """Okta login finished but no user record exists yet."""
    with client.session_transaction() as sess:
        sess.pop("user_id", None)
        sess["okta_name"] = okta_name


def csrf_token(client):
    with client.session_transaction() as sess:
        sess[CSRF_SESSION_KEY] = TEST_CSRF_TOKEN
    return TEST_CSRF_TOKEN


def session_user_id(client):
    with client.session_transaction() as sess:
        return sess.get("user_id")


def flashes(client):
    with client.session_transaction() as sess:
        return [tuple(item) for item in sess.get("_flashes", [])]
