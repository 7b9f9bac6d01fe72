"""Authentication routes and Okta OIDC helpers.

Login establishes the external identity (``okta_name``) in the session. When
a user record with that name exists, the user is signed in; otherwise the
browser is sent to the self-registration form.
"""
from __future__ import annotations
import base64
import hashlib
import secrets
import string
from urllib.parse import urlencode

from authlib.integrations.flask_client import OAuth
from flask import Blueprint, current_app, redirect, render_template, request, session, url_for

from reviewportal.core.rbac import (
    clear_session,
    current_user,
    establish_okta_identity,
    set_current_user,
)
from reviewportal.models import User, db

bp = Blueprint("auth", __name__)

# Module-level OAuth instance (initialized by create_app)
oauth: OAuth = None
_okta_client = None


def init_oauth(app, cfg):
    """Register the Okta OIDC client."""
    global oauth, _okta_client

    oauth = OAuth(app)
    _okta_client = oauth.register(
        name="okta",
        server_metadata_url=f"{cfg.okta_issuer.rstrip('/')}/.well-known/openid-configuration",
        client_id=cfg.oidc_client_id,
        client_secret=cfg.oidc_client_secret or None,
        client_kwargs={"scope": "openid profile email"},
    )
    return oauth


def get_oidc_client():
    """Get the registered Okta client."""
    if _okta_client is None:
        raise RuntimeError("OIDC client not initialized. Call init_oauth first.")
    return _okta_client


def okta_name_from_claims(*sources) -> str:
    """Pick the login label from userinfo/ID token claims."""
    for source in sources:
        if not isinstance(source, dict):
            continue
        for key in ("preferred_username", "sub"):
            value = source.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return ""


# ─────────────────────────────────────────────────────────────────────────────
# PKCE Helpers
# ─────────────────────────────────────────────────────────────────────────────
def _generate_code_verifier(length: int = 64) -> str:
    """Generate PKCE code verifier."""
    alphabet = string.ascii_letters + string.digits + "-._~"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def _build_code_challenge(code_verifier: str) -> str:
    """Build PKCE code challenge from verifier."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


# ─────────────────────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/login")
def login():
    """Initiate OIDC login flow with PKCE."""
    cfg = current_app.config["APP_CONFIG"]
    client = get_oidc_client()

    code_verifier = _generate_code_verifier()
    session["pkce_code_verifier"] = code_verifier

    return client.authorize_redirect(
        redirect_uri=cfg.oidc_redirect_uri,
        code_challenge=_build_code_challenge(code_verifier),
        code_challenge_method="S256",
    )


@bp.route("/callback")
def callback():
    """Handle OIDC callback after successful authentication."""
    client = get_oidc_client()

    code_verifier = session.pop("pkce_code_verifier", None)
    if not code_verifier:
        return redirect(url_for("auth.login"))

    token = client.authorize_access_token(code_verifier=code_verifier)
    session["id_token"] = token.get("id_token")

    userinfo = token.get("userinfo")
    if not userinfo:
        try:
            userinfo = client.userinfo(token=token)
        except Exception as exc:
            current_app.logger.warning("[auth] Userinfo lookup failed: %s", exc)
            userinfo = {}

    okta_name = okta_name_from_claims(dict(userinfo or {}))
    if not okta_name:
        current_app.logger.warning("[auth] Okta response carried no usable identity")
        return redirect(url_for("auth.index"))

    clear_session()
    establish_okta_identity(okta_name)

    user = db.session.execute(
        db.select(User).filter_by(okta_name=okta_name)
    ).scalar_one_or_none()
    if user is None:
        current_app.logger.info("[auth] %s has no account yet; redirecting to registration", okta_name)
        return redirect(url_for("users.new_user"))

    set_current_user(user)
    return redirect(url_for("auth.index"))


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    """Clear the session and end the Okta session."""
    cfg = current_app.config["APP_CONFIG"]
    id_token = session.get("id_token")
    session.clear()

    params = {"post_logout_redirect_uri": cfg.post_logout_redirect_uri}
    if id_token:
        params["id_token_hint"] = id_token
    else:
        params["client_id"] = cfg.oidc_client_id

    return redirect(f"{cfg.okta_end_session_endpoint}?{urlencode(params)}")


@bp.route("/")
def index():
    """Home page."""
    return render_template("index.html", title="Welcome", user=current_user())
