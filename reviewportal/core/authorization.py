"""Authorization guard for user create/update requests.

Pure Python: callers resolve the acting principal from the session and pass
it in explicitly, so the rules can be exercised without a request context.

Rules (first match wins):
    1. create by a signed-in non-admin      -> reject
    2. update of someone else by a non-admin -> reject
    3. create/update by an admin            -> allow, admin session untouched
    4. create with no principal              -> self-registration, allowed only
                                                with a pre-authenticated Okta name
    5. update with no principal              -> reject
    6. update of self by a non-admin         -> allow, identity fields locked
"""
from __future__ import annotations
import enum
from dataclasses import dataclass
from typing import Optional

ROOT = "root"


class Action(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass(frozen=True)
class Principal:
    """The signed-in user acting on the current request."""
    id: int
    is_admin: bool
    okta_name: str

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(id=user.id, is_admin=bool(user.admin), okta_name=user.okta_name or "")


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str
    redirect_to: Optional[str] = None
    # Self-registration: okta_name comes from the session, never the payload
    self_registration: bool = False
    # Whether the affected user may become the session principal afterwards
    may_sign_in: bool = False
    # Whether the caller may edit okta_name/admin on the target record
    may_edit_identity: bool = False

    @classmethod
    def reject(cls, reason: str) -> "Decision":
        return cls(allowed=False, reason=reason, redirect_to=ROOT)


def authorize(
    principal: Optional[Principal],
    action: Action,
    target_user_id: Optional[int] = None,
    okta_name: Optional[str] = None,
) -> Decision:
    """Decide whether ``principal`` may perform ``action``.

    Args:
        principal: Signed-in user, or None for an anonymous request
        action: create or update
        target_user_id: Record being updated (update only)
        okta_name: External identity already established by the Okta login

    Returns:
        Decision; rejected decisions always redirect to root
    """
    action = Action(action)

    if principal is not None and not principal.is_admin:
        if action is Action.CREATE:
            return Decision.reject("non-admin cannot create users")
        if target_user_id != principal.id:
            return Decision.reject("non-admin cannot update another user")
        return Decision(allowed=True, reason="self update")

    if principal is not None:
        return Decision(allowed=True, reason="admin", may_edit_identity=True)

    if action is Action.UPDATE:
        return Decision.reject("authentication required")

    if not okta_name:
        return Decision.reject("no pre-authenticated identity for self-registration")

    return Decision(
        allowed=True,
        reason="self-registration",
        self_registration=True,
        may_sign_in=True,
    )
