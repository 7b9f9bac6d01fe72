"""Administrative command line for the review portal.

Bootstraps the database and the first administrator, who can then manage
everyone else through the web UI.
"""
from __future__ import annotations
import argparse
import sys

from sqlalchemy.exc import IntegrityError

from reviewportal.core import audit
from reviewportal.core.validators import validate_email, validate_name, validate_okta_name
from reviewportal.models import ReviewingGroup, User, db


def _create_admin(args) -> int:
    try:
        user = User(
            name=validate_name(args.name),
            email=validate_email(args.email),
            okta_name=validate_okta_name(args.okta_name),
            admin=True,
        )
    except ValueError as e:
        print(f"[create-admin] Error: {e}", file=sys.stderr)
        return 1

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        print(f"[create-admin] Error: a user with email {user.email} or Okta name {user.okta_name} already exists",
              file=sys.stderr)
        audit.safe_log_user_event(
            "user_create", user.okta_name, operator="cli",
            details={"email": user.email, "admin": True, "error": "duplicate"}, success=False,
        )
        return 1

    audit.safe_log_user_event(
        "user_create", user.okta_name, operator="cli",
        details={"user_id": user.id, "email": user.email, "admin": True},
    )
    print(f"Created admin {user.okta_name} (id={user.id})")
    return 0


def _add_reviewing_group(args) -> int:
    try:
        name = validate_name(args.name, field="Group name")
    except ValueError as e:
        print(f"[add-reviewing-group] Error: {e}", file=sys.stderr)
        return 1

    group = ReviewingGroup(name=name)
    db.session.add(group)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        print(f"[add-reviewing-group] Error: group {name!r} already exists", file=sys.stderr)
        return 1

    print(f"Created reviewing group {group.name} (id={group.id})")
    return 0


def _list_users() -> int:
    users = db.session.execute(db.select(User).order_by(User.id)).scalars().all()
    for user in users:
        flags = []
        if user.admin:
            flags.append("admin")
        if user.is_associate_consultant:
            flags.append("ac")
        print(f"{user.id}\t{user.okta_name or '-'}\t{user.email}\t{user.name}\t{','.join(flags)}")
    return 0


def _verify_audit() -> int:
    if not audit.resolve_signing_key():
        print("[verify-audit] Error: no audit signing key configured", file=sys.stderr)
        return 1
    total, valid = audit.verify_audit_log()
    print(f"{valid}/{total} audit events carry a valid signature ({audit.audit_log_file()})")
    return 0 if valid == total else 1


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point."""
    parser = argparse.ArgumentParser(prog="reviewportal", description="Review portal administration")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("init-db", help="Create database tables")

    sa = sub.add_parser("create-admin", help="Create an administrator account")
    sa.add_argument("--name", required=True)
    sa.add_argument("--email", required=True)
    sa.add_argument("--okta-name", required=True)

    sg = sub.add_parser("add-reviewing-group", help="Create a reviewing group")
    sg.add_argument("--name", required=True)

    sub.add_parser("list-users", help="Print all users")
    sub.add_parser("verify-audit", help="Check audit log signatures")

    args = parser.parse_args(argv)

    if not args.cmd:
        parser.print_help()
        return 0

    if args.cmd == "verify-audit":
        return _verify_audit()

    from reviewportal.flask_app import create_app

    app = create_app()
    with app.app_context():
        if args.cmd == "init-db":
            db.create_all()
            print("Database tables created")
            return 0
        if args.cmd == "create-admin":
            return _create_admin(args)
        if args.cmd == "add-reviewing-group":
            return _add_reviewing_group(args)
        if args.cmd == "list-users":
            return _list_users()

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
