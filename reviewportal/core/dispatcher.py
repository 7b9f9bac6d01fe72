"""Side effects of user registration and consultant activation.

Reviews are created inside the caller's transaction; notification mail is
queued and only delivered by ``flush()`` once the caller has committed.
"""
from __future__ import annotations
import logging
from email.message import EmailMessage

from reviewportal.core import reviews as review_service
from reviewportal.core.mailer import MailDeliveryError, Mailer

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    def __init__(self, session, mailer: Mailer):
        self._session = session
        self._mailer = mailer
        self._pending: list[EmailMessage] = []

    @property
    def pending(self) -> list[EmailMessage]:
        return list(self._pending)

    def on_user_registered(self, user) -> None:
        """Queue the registration confirmation for a newly created user."""
        self._pending.append(self._mailer.registration_confirmation(user))

    def on_consultant_activated(self, consultant) -> list:
        """Generate the default reviews and queue one "reviews created" email.

        The email is built from the first generated review and goes to that
        review's consultant.
        """
        reviews = review_service.create_default_reviews(self._session, consultant)
        if reviews:
            self._pending.append(self._mailer.reviews_creation(reviews[0]))
        else:
            logger.warning("[dispatcher] No reviews generated for consultant %s", consultant.id)
        return reviews

    def flush(self) -> int:
        """Deliver queued mail. Failures are logged, never raised.

        Returns:
            Number of messages delivered
        """
        delivered = 0
        pending, self._pending = self._pending, []
        for message in pending:
            try:
                self._mailer.deliver(message)
                delivered += 1
            except MailDeliveryError:
                logger.exception("[dispatcher] Mail delivery failed for '%s'", message["Subject"])
        return delivered

    def discard(self) -> None:
        """Drop queued mail after a rollback."""
        if self._pending:
            logger.info("[dispatcher] Discarding %d queued message(s)", len(self._pending))
        self._pending = []
