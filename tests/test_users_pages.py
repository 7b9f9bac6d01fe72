"""Read-only user pages: list, show and edit forms."""
import datetime
from urllib.parse import urlparse

from reviewportal.models import AssociateConsultant, db
from tests.conftest import make_user, sign_in


def test_users_list_requires_login(client):
    response = client.get("/users")

    assert urlparse(response.headers["Location"]).path == "/login"


def test_users_list_shows_everyone(client, admin, user):
    sign_in(client, admin)

    response = client.get("/users")

    body = response.get_data(as_text=True)
    assert response.status_code == 200
    assert "admin@example.com" in body
    assert "user@example.com" in body


def test_admin_edit_form_offers_identity_fields(client, admin, user, reviewing_group):
    sign_in(client, admin)

    body = client.get(f"/users/{user.id}/edit").get_data(as_text=True)

    assert 'name="okta_name"' in body
    assert 'name="admin"' in body
    assert "Platform" in body


def test_self_edit_form_hides_identity_fields(client, user):
    sign_in(client, user)

    response = client.get(f"/users/{user.id}/edit")

    body = response.get_data(as_text=True)
    assert response.status_code == 200
    assert 'name="okta_name"' not in body
    assert 'name="admin"' not in body


def test_show_lists_scheduled_reviews(client, admin):
    sign_in(client, admin)
    joe = make_user(name="Joe", email="joe@example.com", okta_name="JoeCAS")
    joe.associate_consultant = AssociateConsultant(program_start_date=datetime.date(2014, 7, 8))
    db.session.commit()

    response = client.get(f"/users/{joe.id}")

    body = response.get_data(as_text=True)
    assert response.status_code == 200
    assert "2014-07-08" in body
    assert "No reviews scheduled." in body


def test_show_other_user_forbidden_for_non_admin(client, user):
    sign_in(client, user)
    other = make_user(name="Jane", email="jane@example.com", okta_name="jane")

    response = client.get(f"/users/{other.id}")

    assert urlparse(response.headers["Location"]).path == "/"


def test_show_unknown_user_is_404(client, admin):
    sign_in(client, admin)

    assert client.get("/users/9999").status_code == 404
