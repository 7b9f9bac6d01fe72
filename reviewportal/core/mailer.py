"""
User notification emails.

Messages are composed as ``email.message.EmailMessage`` and handed to a
transport: SMTP in production, an in-memory outbox in demo mode and tests.
Composition and delivery are separate so callers can queue messages and send
them once the database transaction has committed.
"""
from __future__ import annotations
import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """Raised when a transport fails to hand a message off."""

    def __init__(self, recipients: str, detail: str):
        self.recipients = recipients
        self.detail = detail
        super().__init__(f"Failed to deliver mail to {recipients}: {detail}")


class Transport(Protocol):
    def send(self, message: EmailMessage) -> None: ...


class MemoryTransport:
    """Keeps delivered messages in ``outbox`` (demo mode and tests)."""

    def __init__(self):
        self.outbox: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> None:
        self.outbox.append(message)


class SmtpTransport:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: int = 10,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, message: EmailMessage) -> None:
        """Open an SMTP connection, authenticate, send, and close."""
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)


class Mailer:
    """Composes user notifications and delivers them through a transport."""

    def __init__(self, transport: Transport, sender: str, base_url: str = "http://localhost:5000"):
        self.transport = transport
        self.sender = sender
        self.base_url = base_url.rstrip("/")

    @property
    def outbox(self) -> list[EmailMessage]:
        """Delivered messages when backed by MemoryTransport, else empty."""
        return getattr(self.transport, "outbox", [])

    def _message(self, to_address: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to_address
        msg.set_content(body)
        return msg

    def registration_confirmation(self, user) -> EmailMessage:
        body = (
            f"Hi {user.name},\n\n"
            "Your review portal account has been created.\n"
            f"Okta login: {user.okta_name or '(not linked yet)'}\n\n"
            f"Sign in at {self.base_url}/login\n"
        )
        return self._message(user.email, "Welcome to the review portal", body)

    def reviews_creation(self, review) -> EmailMessage:
        """Tell the consultant their review schedule exists, starting with ``review``."""
        consultant = review.associate_consultant
        recipient = review.recipient
        lines = [
            f"Hi {recipient.name},",
            "",
            "Your associate consultant reviews have been scheduled:",
            "",
        ]
        scheduled = consultant.reviews if consultant is not None else [review]
        for item in scheduled:
            lines.append(
                f"  - {item.review_type}: {item.review_date.isoformat()} "
                f"(feedback due {item.feedback_deadline.isoformat()})"
            )
        lines.extend(["", f"Details: {self.base_url}/users/{recipient.id}", ""])
        return self._message(recipient.email, "Your reviews have been scheduled", "\n".join(lines))

    def deliver(self, message: EmailMessage) -> None:
        """Send ``message`` through the configured transport.

        Raises:
            MailDeliveryError: On SMTP or connection failure
        """
        recipients = message["To"]
        try:
            self.transport.send(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(recipients, str(exc)) from exc
        logger.info("[mailer] Delivered '%s' to %s", message["Subject"], recipients)


def build_mailer(cfg) -> Mailer:
    """Create the mailer selected by ``cfg.mail_backend``."""
    if cfg.mail_backend == "memory":
        transport: Transport = MemoryTransport()
    else:
        transport = SmtpTransport(
            cfg.smtp_host,
            cfg.smtp_port,
            username=cfg.smtp_user,
            password=cfg.smtp_password,
            use_tls=cfg.smtp_use_tls,
        )
    return Mailer(transport, sender=cfg.mail_from, base_url=cfg.app_base_url)
