"""Audit logging for user management events."""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

logger = logging.getLogger(__name__)

AUDIT_LOG_FILENAME = "user-events.jsonl"

EventType = Literal[
    "user_create", "user_update", "consultant_activate", "authz_reject",
]


DEMO_SIGNING_KEY = "demo-audit-signing-key-change-in-production"
# Docker secret mounts, checked after AUDIT_LOG_SIGNING_KEY_FILE
SECRET_PATHS: list[Path] = [
    Path("/run/secrets/audit_log_signing_key"),
    Path(".runtime/secrets/audit_log_signing_key"),
]


def audit_log_file() -> Path:
    """Current audit log path (AUDIT_LOG_DIR is read on every call)."""
    return Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit")) / AUDIT_LOG_FILENAME


def resolve_signing_key(demo_mode: bool | None = None) -> str:
    """Find the audit signing key.

    Priority:
    1. File named by AUDIT_LOG_SIGNING_KEY_FILE
    2. Secret files (``/run/secrets/audit_log_signing_key``)
    3. AUDIT_LOG_SIGNING_KEY environment variable
    4. Fixed demo key when DEMO_MODE is on

    Returns:
        The key, or "" when none is configured (events are then unsigned)
    """
    candidates = list(SECRET_PATHS)
    key_file = os.environ.get("AUDIT_LOG_SIGNING_KEY_FILE")
    if key_file:
        candidates.insert(0, Path(key_file))

    for path in candidates:
        if not path.is_file():
            continue
        try:
            key = path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            logger.warning("[audit] Cannot read signing key from %s: %s", path, exc)
            continue
        if key:
            return key

    key = os.environ.get("AUDIT_LOG_SIGNING_KEY", "").strip()
    if key:
        return key

    if demo_mode is None:
        demo_mode = os.environ.get("DEMO_MODE", "false").strip().lower() in {"1", "true", "yes", "on"}
    return DEMO_SIGNING_KEY if demo_mode else ""


def _get_signing_key() -> bytes:
    return resolve_signing_key().encode("utf-8")


def _sign_event(event: dict[str, Any]) -> str:
    """Generate HMAC-SHA256 signature for audit event."""
    signing_key = _get_signing_key()
    if not signing_key:
        return ""
    canonical = json.dumps(event, sort_keys=True, separators=(",", ":"), default=str)
    return hmac.new(signing_key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()


def log_user_event(
    event_type: EventType,
    username: str,
    *,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append a signed event to the audit trail.

    Args:
        event_type: What happened (user_create, user_update, ...)
        username: Okta name or email of the affected user
        operator: Okta name of the acting principal, "self-registration" or "cli"
        details: Additional context
        success: Whether the operation succeeded
    """
    log_file = audit_log_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    event = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "event_type": event_type,
        "username": username,
        "operator": operator,
        "success": success,
        "details": details or {},
    }

    signature = _sign_event(event)
    if signature:
        event["signature"] = signature

    with log_file.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False, default=str) + "\n")


def safe_log_user_event(
    event_type: EventType,
    username: str,
    *,
    operator: str = "system",
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> bool:
    """Log a user event, reporting failures instead of raising.

    Returns:
        True if event was logged successfully, False if logging failed
    """
    try:
        log_user_event(event_type, username, operator=operator, details=details, success=success)
        return True
    except OSError as exc:
        logger.warning("[audit] Failed to log %s event for %s: %s", event_type, username, exc)
        return False


def verify_audit_log() -> tuple[int, int]:
    """Verify all signatures in the audit log.

    Returns:
        Tuple of (total_events, valid_signatures)
    """
    log_file = audit_log_file()
    if not log_file.exists():
        return 0, 0

    total = 0
    valid = 0

    with log_file.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            total += 1
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                continue
            stored_sig = event.pop("signature", "")
            if not stored_sig:
                continue
            if hmac.compare_digest(stored_sig, _sign_event(event)):
                valid += 1

    return total, valid
