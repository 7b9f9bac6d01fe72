"""Input validation helpers for user data."""
from __future__ import annotations
import datetime
from dataclasses import dataclass
from typing import Any, Mapping, Optional

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off", ""}


class ValidationError(ValueError):
    """One or more submitted fields are invalid.

    Attributes:
        errors: Field name -> human readable message
    """

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{key}: {message}" for key, message in self.errors.items()))


@dataclass(frozen=True)
class ConsultantPayload:
    program_start_date: Optional[datetime.date]
    reviewing_group_id: Optional[int]


@dataclass(frozen=True)
class UserPayload:
    """Validated user form. ``None`` means the field was not submitted."""
    name: Optional[str] = None
    email: Optional[str] = None
    okta_name: Optional[str] = None
    admin: Optional[bool] = None
    associate_consultant: Optional[ConsultantPayload] = None


def validate_email(email: str) -> str:
    """Validate email address.

    Args:
        email: Email address to validate

    Returns:
        Normalized email address

    Raises:
        ValueError: If email is invalid
    """
    email = email.strip().lower()
    if not email or "@" not in email:
        raise ValueError("Invalid email format")

    local, domain = email.rsplit("@", 1)
    if not local or not domain or "." not in domain:
        raise ValueError("Invalid email format")
    if len(email) > 254:
        raise ValueError("Email exceeds maximum length")

    return email


def validate_name(name: str, field: str = "Name") -> str:
    """Validate a display name.

    Args:
        name: Name to validate
        field: Field name for error messages

    Returns:
        Trimmed name

    Raises:
        ValueError: If name is invalid
    """
    name = name.strip()
    if not name:
        raise ValueError(f"{field} is required")
    if len(name) > 128:
        raise ValueError(f"{field} exceeds maximum length")

    if any(char in name for char in "<>\"'`;&|$"):
        raise ValueError(f"{field} contains invalid characters")

    return name


def validate_okta_name(raw: str) -> str:
    """Validate an Okta login label (case preserved).

    Raises:
        ValueError: If the label is empty, too long or has unexpected characters
    """
    okta_name = raw.strip()
    if not okta_name:
        raise ValueError("Okta name is required")
    if len(okta_name) > 128:
        raise ValueError("Okta name exceeds maximum length")
    if not all(char.isalnum() or char in {".", "-", "_", "@"} for char in okta_name):
        raise ValueError("Okta name contains invalid characters")
    return okta_name


def parse_bool(value: Any) -> bool:
    """Interpret checkbox/JSON truthiness."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"'{value}' is not a boolean")


def parse_start_date(value: Any) -> Optional[datetime.date]:
    """Parse a programme start date; blank means "not started yet"."""
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.date.fromisoformat(text)
    except ValueError:
        raise ValueError("Program start date must be a date (YYYY-MM-DD)") from None


def parse_reviewing_group_id(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError("Reviewing group is invalid")
    try:
        group_id = int(value)
    except (TypeError, ValueError):
        raise ValueError("Reviewing group is invalid") from None
    if group_id <= 0:
        raise ValueError("Reviewing group is invalid")
    return group_id


def _consultant_attributes(data: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    nested = data.get("associate_consultant_attributes")
    if isinstance(nested, Mapping):
        return nested
    if "program_start_date" in data or "reviewing_group_id" in data:
        return {
            "program_start_date": data.get("program_start_date"),
            "reviewing_group_id": data.get("reviewing_group_id"),
        }
    return None


def parse_user_payload(data: Mapping[str, Any], *, require_identity: bool = True) -> UserPayload:
    """Validate a submitted user form and collect every field error.

    Args:
        data: Flat form fields or a JSON object
        require_identity: ``name`` and ``email`` must be present (create)

    Raises:
        ValidationError: With one message per invalid field
    """
    errors: dict[str, str] = {}
    values: dict[str, Any] = {}

    checks = (
        ("name", validate_name),
        ("email", validate_email),
        ("okta_name", validate_okta_name),
        ("admin", parse_bool),
    )
    for key, check in checks:
        raw = data.get(key)
        if raw is None:
            if require_identity and key in {"name", "email"}:
                errors[key] = f"{key.capitalize()} is required"
            continue
        try:
            values[key] = check(raw) if key == "admin" else check(str(raw))
        except ValueError as exc:
            errors[key] = str(exc)

    attributes = _consultant_attributes(data)
    if attributes is not None:
        consultant: dict[str, Any] = {}
        for key, check in (
            ("program_start_date", parse_start_date),
            ("reviewing_group_id", parse_reviewing_group_id),
        ):
            try:
                consultant[key] = check(attributes.get(key))
            except ValueError as exc:
                errors[key] = str(exc)
        if "program_start_date" in consultant and "reviewing_group_id" in consultant:
            values["associate_consultant"] = ConsultantPayload(**consultant)

    if errors:
        raise ValidationError(errors)

    return UserPayload(**values)
