"""
User create/update workflow.

Flow:
    authorize ──> validate ──> persist user (+ consultant) ──> side effects ──> outcome

Everything in one call shares a single SQLAlchemy transaction: the user, the
associate consultant record and generated reviews commit together or not at
all. Notification mail is delivered only after the commit succeeds.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from reviewportal.core import audit
from reviewportal.core.authorization import ROOT, Action, Decision, Principal, authorize
from reviewportal.core.dispatcher import SideEffectDispatcher
from reviewportal.core.validators import UserPayload, ValidationError, parse_user_payload
from reviewportal.models import AssociateConsultant, ReviewingGroup, User

logger = logging.getLogger(__name__)

USERS = "users"
CREATED_MESSAGE = "User was successfully created."
UPDATED_MESSAGE = "User was successfully updated."
# Fields only an admin may set; dropped before validation for everyone else
IDENTITY_FIELDS = frozenset({"okta_name", "admin"})


class UserNotFoundError(LookupError):
    """Update targeted a user id that does not exist."""

    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


@dataclass(frozen=True)
class Redirect:
    target: str
    flash: Optional[tuple[str, str]] = None
    # Set only when the affected user becomes the session principal
    sign_in_user_id: Optional[int] = None


@dataclass(frozen=True)
class Render:
    action: Action
    errors: dict[str, str] = field(default_factory=dict)
    user: Optional[User] = None
    status: int = 422


Outcome = Union[Redirect, Render]


class UserWorkflow:
    def __init__(self, session, dispatcher: SideEffectDispatcher):
        self._session = session
        self._dispatcher = dispatcher

    def submit(
        self,
        action: Action,
        payload: Mapping[str, Any],
        principal: Optional[Principal],
        *,
        user_id: Optional[int] = None,
        is_associate_consultant: bool = False,
        okta_name: Optional[str] = None,
    ) -> Outcome:
        """Run a create or update request end to end.

        Args:
            action: create or update
            payload: Submitted user fields (form or JSON)
            principal: Signed-in user, None for anonymous self-registration
            user_id: Target record for update
            is_associate_consultant: The ``isac`` flag; enables consultant upsert
            okta_name: Identity established by the Okta login (session)

        Returns:
            Redirect on success or rejection, Render on validation failure

        Raises:
            UserNotFoundError: Authorized update of an unknown user id
        """
        action = Action(action)
        operator = principal.okta_name if principal else "self-registration"

        decision = authorize(principal, action, user_id, okta_name)
        if not decision.allowed:
            logger.warning(
                "[users] Rejected %s (target=%s, operator=%s): %s",
                action.value, user_id, operator, decision.reason,
            )
            audit.safe_log_user_event(
                "authz_reject",
                str(user_id) if user_id is not None else (okta_name or "-"),
                operator=operator,
                details={"action": action.value, "reason": decision.reason},
                success=False,
            )
            return Redirect(target=decision.redirect_to or ROOT)

        user: Optional[User] = None
        if action is Action.UPDATE:
            user = self._session.get(User, user_id)
            if user is None:
                raise UserNotFoundError(user_id)

        if not decision.may_edit_identity:
            submitted_okta_name = payload.get("okta_name")
            payload = {k: v for k, v in payload.items() if k not in IDENTITY_FIELDS}
            if decision.self_registration and submitted_okta_name not in (None, "", okta_name):
                logger.warning(
                    "[users] Ignoring submitted okta_name '%s'; using authenticated '%s'",
                    submitted_okta_name, okta_name,
                )

        try:
            form = parse_user_payload(payload, require_identity=action is Action.CREATE)
        except ValidationError as exc:
            return Render(action, exc.errors, user)

        changes = self._base_changes(form, decision, principal, user, okta_name)
        consultant_form = form.associate_consultant if is_associate_consultant else None

        errors = self._conflicts(changes, user)
        if consultant_form is not None and consultant_form.reviewing_group_id is not None:
            if self._session.get(ReviewingGroup, consultant_form.reviewing_group_id) is None:
                errors["reviewing_group_id"] = "Reviewing group does not exist"
        if action is Action.CREATE and not changes.get("okta_name"):
            errors.setdefault("okta_name", "Okta name is required")
        if errors:
            return Render(action, errors, user)

        if user is None:
            user = User(admin=False)
            self._session.add(user)
        for key, value in changes.items():
            setattr(user, key, value)

        try:
            reviews_created = self._persist(action, user, consultant_form)
        except SQLAlchemyError:
            self._session.rollback()
            self._dispatcher.discard()
            logger.exception("[users] Failed to save user %s", changes.get("email") or user_id)
            return Render(
                action,
                {"base": "The user could not be saved. Please try again."},
                user if action is Action.UPDATE else None,
            )

        delivered = self._dispatcher.flush()

        event = "user_create" if action is Action.CREATE else "user_update"
        consultant = user.associate_consultant
        audit.safe_log_user_event(
            event,
            user.okta_name or user.email,
            operator=operator,
            details={
                "user_id": user.id,
                "admin": bool(user.admin),
                "associate_consultant": consultant is not None,
                "program_start_date": (
                    consultant.program_start_date.isoformat()
                    if consultant is not None and consultant.program_start_date
                    else None
                ),
                "reviews_created": reviews_created,
                "mail_delivered": delivered,
            },
        )
        if reviews_created:
            audit.safe_log_user_event(
                "consultant_activate",
                user.okta_name or user.email,
                operator=operator,
                details={"reviews_created": reviews_created},
            )

        logger.info(
            "[users] %s user %s by %s (reviews=%d, mail=%d)",
            "Created" if action is Action.CREATE else "Updated",
            user.id, operator, reviews_created, delivered,
        )
        message = CREATED_MESSAGE if action is Action.CREATE else UPDATED_MESSAGE
        return Redirect(
            target=USERS,
            flash=("success", message),
            sign_in_user_id=user.id if decision.may_sign_in else None,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────────────
    def _base_changes(
        self,
        form: UserPayload,
        decision: Decision,
        principal: Optional[Principal],
        user: Optional[User],
        okta_name: Optional[str],
    ) -> dict[str, Any]:
        changes: dict[str, Any] = {}
        if form.name is not None:
            changes["name"] = form.name
        if form.email is not None:
            changes["email"] = form.email

        if decision.self_registration:
            changes["okta_name"] = okta_name
        elif decision.may_edit_identity:
            if form.okta_name is not None:
                changes["okta_name"] = form.okta_name
            if form.admin is not None:
                demoting_self = (
                    user is not None and principal is not None
                    and user.id == principal.id and not form.admin
                )
                if demoting_self:
                    logger.warning("[users] Admin %s cannot remove their own admin flag", principal.okta_name)
                else:
                    changes["admin"] = form.admin
        return changes

    def _conflicts(self, changes: dict[str, Any], user: Optional[User]) -> dict[str, str]:
        errors: dict[str, str] = {}
        labels = {"email": "Email", "okta_name": "Okta name"}
        with self._session.no_autoflush:
            for key, label in labels.items():
                value = changes.get(key)
                if not value:
                    continue
                stmt = select(User.id).where(getattr(User, key) == value)
                if user is not None and user.id is not None:
                    stmt = stmt.where(User.id != user.id)
                if self._session.execute(stmt).first() is not None:
                    errors[key] = f"{label} is already taken"
        return errors

    def _persist(self, action: Action, user: User, consultant_form) -> int:
        """Flush the user, upsert the consultant, run side effects, commit.

        Returns:
            Number of reviews generated
        """
        consultant = None
        regenerate = False
        if consultant_form is not None:
            consultant = user.associate_consultant
            if consultant is None:
                consultant = AssociateConsultant()
                user.associate_consultant = consultant
            previous_start = consultant.program_start_date
            consultant.program_start_date = consultant_form.program_start_date
            group_id = consultant_form.reviewing_group_id
            consultant.reviewing_group = (
                self._session.get(ReviewingGroup, group_id) if group_id is not None else None
            )

            if consultant.program_start_date is None:
                consultant.reviews.clear()
            elif consultant.program_start_date != previous_start or not consultant.reviews:
                consultant.reviews.clear()
                regenerate = True

        self._session.flush()

        if action is Action.CREATE:
            self._dispatcher.on_user_registered(user)

        reviews_created = 0
        if regenerate:
            reviews_created = len(self._dispatcher.on_consultant_activated(consultant))

        self._session.commit()
        return reviews_created
