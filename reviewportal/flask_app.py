"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with all blueprints, middleware, and configuration.

Gunicorn entry point: ``reviewportal.flask_app:create_app()``
"""
from __future__ import annotations
import hmac
import logging
import os
import secrets
from tempfile import gettempdir

from flask import Flask, abort, request, session
from flask_session import Session
from werkzeug.middleware.proxy_fix import ProxyFix

from reviewportal.config import load_settings
from reviewportal.core.mailer import build_mailer
from reviewportal.models import db

CSRF_SESSION_KEY = "_csrf_token"


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app() -> Flask:
    """Create and configure Flask application."""
    cfg = load_settings()

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg

    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app.logger.setLevel(log_level)

    # Flask session configuration
    app.config["SECRET_KEY"] = cfg.secret_key
    if cfg.secret_key_fallbacks:
        app.config["SECRET_KEY_FALLBACKS"] = cfg.secret_key_fallbacks

    app.config["SESSION_TYPE"] = os.environ.get("FLASK_SESSION_TYPE", "filesystem")
    if app.config["SESSION_TYPE"] == "filesystem":
        session_dir = os.environ.get("FLASK_SESSION_DIR") or os.path.join(gettempdir(), "reviewportal_flask_session")
        os.makedirs(session_dir, exist_ok=True)
        app.config["SESSION_FILE_DIR"] = session_dir

    app.config["SESSION_COOKIE_HTTPONLY"] = True
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"
    app.config["SESSION_COOKIE_SECURE"] = cfg.session_cookie_secure

    Session(app)

    # Database
    app.config["SQLALCHEMY_DATABASE_URI"] = cfg.database_url
    db.init_app(app)
    if cfg.demo_mode:
        with app.app_context():
            db.create_all()

    # Outbound mail
    app.extensions["reviewportal.mailer"] = build_mailer(cfg)

    # Trust X-Forwarded-* headers from the reverse proxy
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    from reviewportal.api import auth
    auth.init_oauth(app, cfg)

    from reviewportal.api import errors, health, users

    app.register_blueprint(auth.bp)
    app.register_blueprint(health.bp)
    app.register_blueprint(users.bp)

    errors.register_error_handlers(app)
    _register_middleware(app)
    _register_context_processors(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    app.logger.info("[flask_app] Mode=%s; mail=%s", mode_label, cfg.mail_backend)
    if cfg.demo_mode:
        app.logger.warning("[flask_app] Demo mode active - do not deploy with demo settings")

    return app


def _register_middleware(app: Flask):
    """Register before_request middleware."""

    @app.before_request
    def enforce_csrf() -> None:
        """Validate CSRF token for state-changing requests."""
        if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
            return

        submitted_token = (
            request.form.get("csrf_token")
            if not request.is_json
            else request.headers.get("X-CSRF-Token", "")
        )
        if not submitted_token:
            submitted_token = request.headers.get("X-CSRF-Token", "")

        session_token = session.get(CSRF_SESSION_KEY, "")

        if not session_token or not submitted_token or not hmac.compare_digest(session_token, submitted_token):
            abort(400, description="CSRF validation failed")


def _register_context_processors(app: Flask):
    """Register context processors for templates."""

    @app.context_processor
    def inject_global_context():
        from reviewportal.core.rbac import current_user

        user = current_user()
        return {
            "csrf_token": _generate_csrf_token(),
            "current_user": user,
            "is_authenticated": user is not None,
            "is_admin_user": bool(user and user.admin),
        }


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions
# ─────────────────────────────────────────────────────────────────────────────
def _generate_csrf_token() -> str:
    """Generate or retrieve CSRF token for current session."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token
