"""User management routes (list, register, edit)."""
from __future__ import annotations

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)

from reviewportal.core.authorization import ROOT, Action, authorize
from reviewportal.core.dispatcher import SideEffectDispatcher
from reviewportal.core.rbac import (
    current_okta_name,
    current_principal,
    set_current_user,
)
from reviewportal.core.user_workflow import Redirect, Render, UserWorkflow
from reviewportal.core.validators import parse_bool
from reviewportal.models import ReviewingGroup, User, db

bp = Blueprint("users", __name__)

# Form fields that are request plumbing, not user attributes
_CONTROL_FIELDS = {"csrf_token", "isac", "_method"}


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions
# ─────────────────────────────────────────────────────────────────────────────
def _workflow() -> UserWorkflow:
    mailer = current_app.extensions["reviewportal.mailer"]
    return UserWorkflow(db.session, SideEffectDispatcher(db.session, mailer))


def _submitted_payload() -> tuple[dict, bool]:
    """Extract the user fields and the ``isac`` flag from form or JSON.

    Checkbox fields may arrive twice (hidden "0" + checked "1"); the last value wins.
    """
    if request.is_json:
        data = request.get_json(silent=True) or {}
        user_data = data.get("user", data) if isinstance(data, dict) else {}
        if not isinstance(user_data, dict):
            user_data = {}
        raw_flag = data.get("isac") if isinstance(data, dict) else None
    else:
        user_data = {
            key: values[-1]
            for key, values in request.form.lists()
            if key not in _CONTROL_FIELDS
        }
        raw_flag = request.form.get("isac")

    try:
        is_ac = parse_bool(raw_flag) if raw_flag is not None else False
    except ValueError:
        is_ac = False
    return user_data, is_ac


def _reviewing_groups() -> list[ReviewingGroup]:
    return db.session.execute(db.select(ReviewingGroup).order_by(ReviewingGroup.name)).scalars().all()


def _get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        abort(404)
    return user


def _render_form(action: Action, user=None, values=None, errors=None, status=200, is_ac=False):
    return render_template(
        "users/form.html",
        title="Register" if action is Action.CREATE else "Edit user",
        action=action.value,
        user=user,
        values=values or {},
        errors=errors or {},
        is_ac=is_ac,
        reviewing_groups=_reviewing_groups(),
        okta_name=current_okta_name(),
        principal=current_principal(),
    ), status


def _respond(outcome, values: dict, is_ac: bool):
    if isinstance(outcome, Redirect):
        if outcome.sign_in_user_id is not None:
            set_current_user(db.session.get(User, outcome.sign_in_user_id))
        if outcome.flash:
            category, message = outcome.flash
            flash(message, category)
        target = url_for("auth.index") if outcome.target == ROOT else url_for("users.list_users")
        return redirect(target)

    if request.is_json:
        return jsonify({"errors": outcome.errors}), outcome.status
    return _render_form(outcome.action, outcome.user, values, outcome.errors, outcome.status, is_ac)


# ─────────────────────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────────────────────
@bp.route("/users")
def list_users():
    principal = current_principal()
    if principal is None:
        return redirect(url_for("auth.login"))

    users = db.session.execute(db.select(User).order_by(User.name)).scalars().all()
    return render_template("users/index.html", title="Users", users=users, principal=principal)


@bp.route("/users/new")
def new_user():
    principal = current_principal()
    okta_name = current_okta_name()
    decision = authorize(principal, Action.CREATE, okta_name=okta_name)
    if not decision.allowed:
        if principal is None:
            return redirect(url_for("auth.login"))
        return redirect(url_for("auth.index"))

    values = {"okta_name": okta_name} if decision.self_registration else {}
    return _render_form(Action.CREATE, values=values)


@bp.route("/users", methods=["POST"])
def create_user():
    values, is_ac = _submitted_payload()
    outcome = _workflow().submit(
        Action.CREATE,
        values,
        current_principal(),
        is_associate_consultant=is_ac,
        okta_name=current_okta_name(),
    )
    return _respond(outcome, values, is_ac)


@bp.route("/users/<int:user_id>")
def show_user(user_id: int):
    principal = current_principal()
    if principal is None:
        return redirect(url_for("auth.login"))
    if not authorize(principal, Action.UPDATE, user_id).allowed:
        return redirect(url_for("auth.index"))

    return render_template("users/show.html", title="User", user=_get_user_or_404(user_id), principal=principal)


@bp.route("/users/<int:user_id>/edit")
def edit_user(user_id: int):
    principal = current_principal()
    if not authorize(principal, Action.UPDATE, user_id).allowed:
        return redirect(url_for("auth.index"))

    user = _get_user_or_404(user_id)
    return _render_form(Action.UPDATE, user=user, is_ac=user.is_associate_consultant)


@bp.route("/users/<int:user_id>", methods=["POST", "PUT", "PATCH"])
def update_user(user_id: int):
    values, is_ac = _submitted_payload()
    outcome = _workflow().submit(
        Action.UPDATE,
        values,
        current_principal(),
        user_id=user_id,
        is_associate_consultant=is_ac,
        okta_name=current_okta_name(),
    )
    return _respond(outcome, values, is_ac)
