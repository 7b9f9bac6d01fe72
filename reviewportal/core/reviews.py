"""Default review schedule for associate consultants."""
from __future__ import annotations
import calendar
import datetime
import logging

from reviewportal.models import AssociateConsultant, Review

logger = logging.getLogger(__name__)

# (review_type, months after programme start)
DEFAULT_REVIEW_SCHEDULE = (
    ("6-Month", 6),
    ("12-Month", 12),
    ("18-Month", 18),
    ("24-Month", 24),
)
FEEDBACK_LEAD_DAYS = 7


def add_months(start: datetime.date, months: int) -> datetime.date:
    """Shift ``start`` by whole months, clamping to the last day of the month."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return datetime.date(year, month, day)


def create_default_reviews(session, consultant: AssociateConsultant) -> list[Review]:
    """Create the default review set for a consultant with a start date.

    Args:
        session: SQLAlchemy session the reviews are added to (not committed)
        consultant: Consultant whose ``program_start_date`` anchors the schedule

    Returns:
        The new reviews in schedule order

    Raises:
        ValueError: If the consultant has no programme start date
    """
    start = consultant.program_start_date
    if start is None:
        raise ValueError("Cannot schedule reviews without a program start date")

    reviews = []
    for review_type, months in DEFAULT_REVIEW_SCHEDULE:
        review_date = add_months(start, months)
        review = Review(
            review_type=review_type,
            review_date=review_date,
            feedback_deadline=review_date - datetime.timedelta(days=FEEDBACK_LEAD_DAYS),
        )
        consultant.reviews.append(review)
        reviews.append(review)

    session.add_all(reviews)
    session.flush()

    group = consultant.reviewing_group.name if consultant.reviewing_group else "unassigned"
    logger.info(
        "[reviews] Scheduled %d reviews for consultant %s (group=%s)",
        len(reviews), consultant.id, group,
    )
    return reviews
