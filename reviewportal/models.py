"""ORM models for users, associate consultants and their reviews."""
from __future__ import annotations
import datetime

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(254), unique=True, nullable=False)
    okta_name = db.Column(db.String(128), unique=True, nullable=True, index=True)
    admin = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    associate_consultant = db.relationship(
        "AssociateConsultant",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def is_associate_consultant(self) -> bool:
        return self.associate_consultant is not None

    def __repr__(self):
        return f"<User {self.okta_name or self.email}>"


class ReviewingGroup(db.Model):
    __tablename__ = "reviewing_groups"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), unique=True, nullable=False)

    associate_consultants = db.relationship("AssociateConsultant", back_populates="reviewing_group")

    def __repr__(self):
        return f"<ReviewingGroup {self.name}>"


class AssociateConsultant(db.Model):
    """Role sub-record owned by exactly one user; gates review generation."""
    __tablename__ = "associate_consultants"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    program_start_date = db.Column(db.Date, nullable=True)
    reviewing_group_id = db.Column(db.Integer, db.ForeignKey("reviewing_groups.id"), nullable=True)

    user = db.relationship("User", back_populates="associate_consultant")
    reviewing_group = db.relationship("ReviewingGroup", back_populates="associate_consultants")
    reviews = db.relationship(
        "Review",
        back_populates="associate_consultant",
        order_by="Review.review_date",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<AssociateConsultant user_id={self.user_id} start={self.program_start_date}>"


class Review(db.Model):
    __tablename__ = "reviews"

    id = db.Column(db.Integer, primary_key=True)
    associate_consultant_id = db.Column(
        db.Integer,
        db.ForeignKey("associate_consultants.id", ondelete="CASCADE"),
        nullable=False,
    )
    review_type = db.Column(db.String(32), nullable=False)
    review_date = db.Column(db.Date, nullable=False)
    feedback_deadline = db.Column(db.Date, nullable=False)

    associate_consultant = db.relationship("AssociateConsultant", back_populates="reviews")

    @property
    def recipient(self) -> User:
        """User the review is about; notifications for the review go to them."""
        return self.associate_consultant.user

    def __repr__(self):
        return f"<Review {self.review_type} {self.review_date}>"
