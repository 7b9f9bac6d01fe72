"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from reviewportal.core import audit

logger = logging.getLogger(__name__)

MAIL_BACKENDS = {"smtp", "memory"}


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.info("[settings] Loaded %s from /run/secrets", secret_name)
                return secret_value
        except OSError as exc:
            logger.warning("[settings] Failed to read /run/secrets/%s: %s", secret_name, exc)

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            logger.info("[settings] Loaded %s from environment (fallback)", env_var)
            return secret_value

    return None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Flask
    secret_key: str
    secret_key_fallbacks: list[str] = field(default_factory=list)
    session_cookie_secure: bool = True

    # Database
    database_url: str = ""

    # Okta / OIDC
    okta_issuer: str = ""
    oidc_client_id: str = "reviewportal"
    oidc_client_secret: str = ""
    oidc_redirect_uri: str = ""
    post_logout_redirect_uri: str = ""

    # Mail
    mail_backend: str = "smtp"
    mail_from: str = "no-reply@reviewportal.local"
    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    app_base_url: str = "http://localhost:5000"

    # Audit
    audit_log_dir: str = ".runtime/audit"
    audit_log_signing_key: str = ""

    @property
    def okta_end_session_endpoint(self) -> str:
        """Okta logout endpoint derived from the issuer."""
        return f"{self.okta_issuer.rstrip('/')}/v1/logout"

    def validate_mail_config(self) -> None:
        """Raise ValueError when the selected mail backend cannot deliver.

        Raises:
            ValueError: Unknown backend, or SMTP selected without a host
        """
        if self.mail_backend not in MAIL_BACKENDS:
            raise ValueError(f"MAIL_BACKEND must be one of {sorted(MAIL_BACKENDS)}, got '{self.mail_backend}'")
        if self.mail_backend == "smtp" and not self.smtp_host:
            raise ValueError("SMTP_HOST is required when MAIL_BACKEND=smtp")


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or use demo default."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        logger.info("[demo-mode] Using default for %s", var_name)
        os.environ[var_name] = demo_default
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def _env_flag(var_name: str, default: str = "false") -> bool:
    return os.environ.get(var_name, default).strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = _env_flag("DEMO_MODE")

    # Flask secret key
    secret_key = _load_secret_from_file("flask_secret_key", "FLASK_SECRET_KEY")
    if not secret_key:
        if not demo_mode:
            raise RuntimeError("FLASK_SECRET_KEY not found in /run/secrets or environment")
        secret_key = secrets.token_urlsafe(48)
        os.environ["FLASK_SECRET_KEY"] = secret_key
        logger.info("[demo-mode] Generated temporary FLASK_SECRET_KEY")

    secret_key_fallbacks = [
        key.strip()
        for key in os.environ.get("FLASK_SECRET_KEY_FALLBACKS", "").split(",")
        if key.strip()
    ]

    session_cookie_secure = _env_flag("FLASK_SESSION_COOKIE_SECURE", "true")

    database_url = _get_or_generate(
        "DATABASE_URL",
        demo_default="sqlite:///reviewportal.db",
        demo_mode=demo_mode,
    )

    # Okta
    okta_issuer = _get_or_generate(
        "OKTA_ISSUER",
        demo_default="https://example.okta.com/oauth2/default",
        demo_mode=demo_mode,
    )
    oidc_client_id = _get_or_generate("OIDC_CLIENT_ID", demo_default="reviewportal", demo_mode=demo_mode)
    oidc_client_secret = _load_secret_from_file("oidc_client_secret", "OIDC_CLIENT_SECRET") or ""
    oidc_redirect_uri = _get_or_generate(
        "OIDC_REDIRECT_URI",
        demo_default="http://localhost:5000/callback",
        demo_mode=demo_mode,
    )
    post_logout_redirect_uri = _get_or_generate(
        "POST_LOGOUT_REDIRECT_URI",
        demo_default="http://localhost:5000/",
        demo_mode=demo_mode,
    )

    # Mail: demo mode keeps messages in memory unless told otherwise
    mail_backend = os.environ.get("MAIL_BACKEND", "memory" if demo_mode else "smtp").strip().lower()
    smtp_port_raw = os.environ.get("SMTP_PORT", "587")
    try:
        smtp_port = int(smtp_port_raw)
    except ValueError as exc:
        raise RuntimeError(f"SMTP_PORT must be an integer, got '{smtp_port_raw}'") from exc
    smtp_password = _load_secret_from_file("smtp_password", "SMTP_PASSWORD") or ""

    # Audit
    audit_log_signing_key = audit.resolve_signing_key(demo_mode)
    if not audit_log_signing_key:
        logger.warning("[settings] No audit signing key configured; audit events will be unsigned")

    cfg = AppConfig(
        demo_mode=demo_mode,
        secret_key=secret_key,
        secret_key_fallbacks=secret_key_fallbacks,
        session_cookie_secure=session_cookie_secure,
        database_url=database_url,
        okta_issuer=okta_issuer,
        oidc_client_id=oidc_client_id,
        oidc_client_secret=oidc_client_secret,
        oidc_redirect_uri=oidc_redirect_uri,
        post_logout_redirect_uri=post_logout_redirect_uri,
        mail_backend=mail_backend,
        mail_from=os.environ.get("MAIL_FROM", "no-reply@reviewportal.local"),
        smtp_host=os.environ.get("SMTP_HOST", "localhost"),
        smtp_port=smtp_port,
        smtp_user=os.environ.get("SMTP_USER", ""),
        smtp_password=smtp_password,
        smtp_use_tls=_env_flag("SMTP_USE_TLS", "true"),
        app_base_url=os.environ.get("APP_BASE_URL", "http://localhost:5000").rstrip("/"),
        audit_log_dir=os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"),
        audit_log_signing_key=audit_log_signing_key or "",
    )

    try:
        cfg.validate_mail_config()
    except ValueError as exc:
        raise RuntimeError(str(exc)) from exc

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    logger.info("[settings] Mode=%s; client_id=%s; mail=%s", mode_label, oidc_client_id, mail_backend)
    if demo_mode:
        logger.warning("[settings] Demo defaults in use. Do not deploy with these settings.")

    return cfg
