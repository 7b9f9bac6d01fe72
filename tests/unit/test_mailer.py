import datetime
import smtplib
from types import SimpleNamespace

import pytest

from reviewportal.core.mailer import (
    MailDeliveryError,
    Mailer,
    MemoryTransport,
    SmtpTransport,
    build_mailer,
)


def make_user(**overrides):
    base = dict(id=7, name="Joe", email="joe@example.com", okta_name="JoeCAS")
    base.update(overrides)
    return SimpleNamespace(**base)


def make_review(user, review_type="6-Month", review_date=datetime.date(2015, 1, 8)):
    review = SimpleNamespace(
        review_type=review_type,
        review_date=review_date,
        feedback_deadline=review_date - datetime.timedelta(days=7),
        associate_consultant=None,
        recipient=user,
    )
    return review


@pytest.fixture()
def mailer():
    return Mailer(MemoryTransport(), sender="portal@example.com", base_url="https://reviews.example/")


def test_registration_confirmation_addresses_user(mailer):
    msg = mailer.registration_confirmation(make_user())

    assert msg["To"] == "joe@example.com"
    assert msg["From"] == "portal@example.com"
    assert msg["Subject"] == "Welcome to the review portal"
    assert "JoeCAS" in msg.get_content()
    assert "https://reviews.example/login" in msg.get_content()


def test_reviews_creation_goes_to_review_recipient(mailer):
    user = make_user(email="ac@example.com")
    first = make_review(user)
    second = make_review(user, "12-Month", datetime.date(2015, 7, 8))
    consultant = SimpleNamespace(reviews=[first, second])
    first.associate_consultant = consultant

    msg = mailer.reviews_creation(first)

    assert msg["To"] == "ac@example.com"
    body = msg.get_content()
    assert "6-Month: 2015-01-08" in body
    assert "12-Month: 2015-07-08" in body
    assert "https://reviews.example/users/7" in body


def test_compose_does_not_deliver(mailer):
    mailer.registration_confirmation(make_user())
    assert mailer.outbox == []


def test_deliver_appends_to_memory_outbox(mailer):
    msg = mailer.registration_confirmation(make_user())
    mailer.deliver(msg)
    assert mailer.outbox == [msg]


def test_deliver_wraps_smtp_errors(mocker):
    transport = SmtpTransport("smtp.example")
    mailer = Mailer(transport, sender="portal@example.com")
    msg = mailer.registration_confirmation(make_user())
    mocker.patch.object(transport, "send", side_effect=smtplib.SMTPServerDisconnected("gone"))

    with pytest.raises(MailDeliveryError) as exc_info:
        mailer.deliver(msg)
    assert exc_info.value.recipients == "joe@example.com"
    assert "gone" in exc_info.value.detail


def test_smtp_transport_uses_tls_and_login(mocker):
    smtp_cls = mocker.patch("reviewportal.core.mailer.smtplib.SMTP")
    server = smtp_cls.return_value.__enter__.return_value
    transport = SmtpTransport("smtp.example", 2525, username="bot", password="pw", use_tls=True)
    mailer = Mailer(transport, sender="portal@example.com")
    msg = mailer.registration_confirmation(make_user())

    transport.send(msg)

    smtp_cls.assert_called_once_with("smtp.example", 2525, timeout=10)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("bot", "pw")
    server.send_message.assert_called_once_with(msg)


def test_smtp_transport_skips_login_without_credentials(mocker):
    smtp_cls = mocker.patch("reviewportal.core.mailer.smtplib.SMTP")
    server = smtp_cls.return_value.__enter__.return_value

    SmtpTransport("smtp.example", use_tls=False).send(mailer_message())

    server.starttls.assert_not_called()
    server.login.assert_not_called()


def mailer_message():
    return Mailer(MemoryTransport(), sender="portal@example.com").registration_confirmation(make_user())


@pytest.mark.parametrize("backend, transport_type", [("memory", MemoryTransport), ("smtp", SmtpTransport)])
def test_build_mailer_selects_transport(backend, transport_type):
    cfg = SimpleNamespace(
        mail_backend=backend,
        smtp_host="smtp.example",
        smtp_port=587,
        smtp_user="",
        smtp_password="",
        smtp_use_tls=True,
        mail_from="portal@example.com",
        app_base_url="http://localhost:5000",
    )
    assert isinstance(build_mailer(cfg).transport, transport_type)
