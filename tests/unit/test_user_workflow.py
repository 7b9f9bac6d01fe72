"""UserWorkflow driven directly, without the HTTP layer."""
import datetime
import json

import pytest
from sqlalchemy.exc import OperationalError

from reviewportal.core import audit
from reviewportal.core.authorization import ROOT, Action, Principal
from reviewportal.core.dispatcher import SideEffectDispatcher
from reviewportal.core.mailer import Mailer, MemoryTransport
from reviewportal.core.user_workflow import (
    CREATED_MESSAGE,
    USERS,
    Redirect,
    Render,
    UserNotFoundError,
    UserWorkflow,
)
from reviewportal.models import ReviewingGroup, User, db
from tests.conftest import make_user

JOE = {"name": "Joe", "email": "joe@example.com", "okta_name": "JoeCAS", "admin": "0"}


@pytest.fixture()
def mailer():
    return Mailer(MemoryTransport(), sender="portal@example.com")


@pytest.fixture()
def workflow(app, mailer):
    return UserWorkflow(db.session, SideEffectDispatcher(db.session, mailer))


@pytest.fixture()
def admin_principal(admin):
    return Principal.from_user(admin)


def audit_events():
    path = audit.audit_log_file()
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def test_admin_create_returns_redirect_to_users(workflow, admin_principal):
    outcome = workflow.submit(Action.CREATE, JOE, admin_principal)

    assert outcome == Redirect(target=USERS, flash=("success", CREATED_MESSAGE))


def test_self_registration_returns_sign_in(workflow):
    outcome = workflow.submit(Action.CREATE, JOE, None, okta_name="JoeCAS")

    joe = db.session.execute(db.select(User).filter_by(email="joe@example.com")).scalar_one()
    assert isinstance(outcome, Redirect)
    assert outcome.sign_in_user_id == joe.id


def test_rejection_writes_audit_event(workflow, user, mailer):
    outcome = workflow.submit(Action.CREATE, JOE, Principal.from_user(user))

    assert outcome == Redirect(target=ROOT)
    events = audit_events()
    assert events[-1]["event_type"] == "authz_reject"
    assert events[-1]["success"] is False
    assert events[-1]["operator"] == "regular"
    assert mailer.outbox == []


def test_successful_create_is_audited(workflow, admin_principal):
    workflow.submit(Action.CREATE, JOE, admin_principal)

    event = audit_events()[-1]
    assert event["event_type"] == "user_create"
    assert event["username"] == "JoeCAS"
    assert event["operator"] == "adminOKTA"
    assert event["details"]["mail_delivered"] == 1
    assert "signature" in event


def test_consultant_activation_is_audited(workflow, admin_principal, reviewing_group):
    payload = dict(JOE, program_start_date="2014-07-08", reviewing_group_id=str(reviewing_group.id))

    workflow.submit(Action.CREATE, payload, admin_principal, is_associate_consultant=True)

    types = [e["event_type"] for e in audit_events()]
    assert types[-2:] == ["user_create", "consultant_activate"]
    assert audit_events()[-1]["details"]["reviews_created"] == 4


def test_update_of_missing_user_raises(workflow, admin_principal):
    with pytest.raises(UserNotFoundError):
        workflow.submit(Action.UPDATE, JOE, admin_principal, user_id=404)


def test_validation_failure_renders_without_side_effects(workflow, admin_principal, mailer):
    outcome = workflow.submit(Action.CREATE, dict(JOE, email="nope"), admin_principal)

    assert isinstance(outcome, Render)
    assert outcome.status == 422
    assert "email" in outcome.errors
    assert db.session.execute(db.select(User).filter_by(okta_name="JoeCAS")).first() is None
    assert mailer.outbox == []


def test_okta_name_required_on_admin_create(workflow, admin_principal):
    payload = {k: v for k, v in JOE.items() if k != "okta_name"}

    outcome = workflow.submit(Action.CREATE, payload, admin_principal)

    assert isinstance(outcome, Render)
    assert outcome.errors == {"okta_name": "Okta name is required"}


def test_duplicate_okta_name_is_rejected(workflow, admin_principal, user):
    outcome = workflow.submit(Action.CREATE, dict(JOE, okta_name="regular"), admin_principal)

    assert isinstance(outcome, Render)
    assert outcome.errors["okta_name"] == "Okta name is already taken"


def test_database_failure_rolls_back_and_discards_mail(app, admin_principal, mailer, mocker):
    session = mocker.MagicMock(wraps=db.session)
    session.commit.side_effect = OperationalError("COMMIT", {}, Exception("disk full"))
    workflow = UserWorkflow(session, SideEffectDispatcher(session, mailer))

    outcome = workflow.submit(Action.CREATE, JOE, admin_principal)

    assert isinstance(outcome, Render)
    assert "base" in outcome.errors
    assert mailer.outbox == []
    assert db.session.execute(db.select(User).filter_by(email="joe@example.com")).first() is None


def test_admin_can_demote_other_admin(workflow, admin_principal):
    other = make_user(name="Other Admin", email="other@example.com", okta_name="otherAdmin", admin=True)

    workflow.submit(Action.UPDATE, {"admin": "0"}, admin_principal, user_id=other.id)

    assert db.session.get(User, other.id).admin is False


def test_update_without_isac_keeps_consultant(workflow, admin_principal, reviewing_group):
    payload = dict(JOE, program_start_date="2014-07-08", reviewing_group_id=str(reviewing_group.id))
    workflow.submit(Action.CREATE, payload, admin_principal, is_associate_consultant=True)
    joe = db.session.execute(db.select(User).filter_by(email="joe@example.com")).scalar_one()

    workflow.submit(Action.UPDATE, {"name": "Joseph"}, admin_principal, user_id=joe.id)

    assert joe.name == "Joseph"
    assert joe.associate_consultant.program_start_date == datetime.date(2014, 7, 8)
    assert len(joe.associate_consultant.reviews) == 4


def test_changing_reviewing_group_updates_relationship(workflow, admin_principal, reviewing_group):
    other_group = ReviewingGroup(name="Data")
    db.session.add(other_group)
    db.session.commit()
    payload = dict(JOE, program_start_date="2014-07-08", reviewing_group_id=str(reviewing_group.id))
    workflow.submit(Action.CREATE, payload, admin_principal, is_associate_consultant=True)
    joe = db.session.execute(db.select(User).filter_by(email="joe@example.com")).scalar_one()
    assert joe.associate_consultant.reviewing_group.name == "Platform"

    payload["reviewing_group_id"] = str(other_group.id)
    workflow.submit(Action.UPDATE, payload, admin_principal, user_id=joe.id, is_associate_consultant=True)

    consultant = joe.associate_consultant
    assert consultant.reviewing_group_id == other_group.id
    assert consultant.reviewing_group.name == "Data"
    assert consultant in other_group.associate_consultants
    assert consultant not in reviewing_group.associate_consultants


def test_clearing_reviewing_group_drops_relationship(workflow, admin_principal, reviewing_group):
    payload = dict(JOE, program_start_date="2014-07-08", reviewing_group_id=str(reviewing_group.id))
    workflow.submit(Action.CREATE, payload, admin_principal, is_associate_consultant=True)
    joe = db.session.execute(db.select(User).filter_by(email="joe@example.com")).scalar_one()

    payload["reviewing_group_id"] = ""
    workflow.submit(Action.UPDATE, payload, admin_principal, user_id=joe.id, is_associate_consultant=True)

    assert joe.associate_consultant.reviewing_group is None
    assert joe.associate_consultant.reviewing_group_id is None


def test_self_update_ignores_invalid_identity_fields(workflow, user):
    outcome = workflow.submit(
        Action.UPDATE,
        {"name": "Renamed", "okta_name": "bad name!", "admin": "1"},
        Principal.from_user(user),
        user_id=user.id,
    )

    assert isinstance(outcome, Redirect)
    assert user.name == "Renamed"
    assert user.okta_name == "regular"
    assert user.admin is False
