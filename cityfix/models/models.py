# models.py
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, event,
)
from sqlalchemy.orm import relationship
from ..database import Base
from .user import User


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def new_issue_id() -> str:
    return uuid.uuid4().hex


class Issue(Base):
    __tablename__ = "issues"

    issue_id = Column(String(32), primary_key=True, default=new_issue_id)
    reporter_email = Column(String(255), ForeignKey("users.email"), nullable=False, index=True)
    reporter_premium = Column(Boolean, nullable=False, default=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(100), index=True)
    location = Column(String(255))
    image = Column(String(1024))
    priority = Column(String(20), nullable=False, default="normal")
    status = Column(String(50), nullable=False, default="pending", index=True)
    assigned_staff_name = Column(String(100))
    assigned_staff_email = Column(String(255), index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    reporter = relationship("User", back_populates="issues")
    timeline = relationship(
        "TimelineEntry",
        back_populates="issue",
        order_by="TimelineEntry.seq",
        cascade="all, delete-orphan",
    )
    upvotes = relationship(
        "Upvote",
        back_populates="issue",
        order_by="Upvote.upvote_id",
        cascade="all, delete-orphan",
    )

    @property
    def assigned_staff(self):
        if self.assigned_staff_email is None:
            return None
        return {"name": self.assigned_staff_name, "email": self.assigned_staff_email}

    @property
    def voters(self):
        return [vote.voter_email for vote in self.upvotes]


class TimelineEntry(Base):
    __tablename__ = "timeline_entries"
    __table_args__ = (UniqueConstraint("issue_id", "seq", name="uq_timeline_issue_seq"),)

    entry_id = Column(Integer, primary_key=True, index=True)
    issue_id = Column(String(32), ForeignKey("issues.issue_id", ondelete="CASCADE"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    status = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    by = Column("actor", String(255), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    issue = relationship("Issue", back_populates="timeline")


@event.listens_for(TimelineEntry, "before_update")
def _refuse_timeline_update(mapper, connection, target):
    raise ValueError("Timeline entries are immutable once appended")


class Upvote(Base):
    __tablename__ = "upvotes"
    __table_args__ = (UniqueConstraint("issue_id", "voter_email", name="uq_upvote_voter"),)

    upvote_id = Column(Integer, primary_key=True, index=True)
    issue_id = Column(String(32), ForeignKey("issues.issue_id", ondelete="CASCADE"), nullable=False, index=True)
    voter_email = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    issue = relationship("Issue", back_populates="upvotes")


class Payment(Base):
    __tablename__ = "payments"

    payment_id = Column(Integer, primary_key=True, index=True)
    # One ledger record per user; a later purchase overwrites the earlier one
    user_email = Column(String(255), unique=True, nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    session_ref = Column(String(255), nullable=False)
    amount = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="usd")
    status = Column(String(20), nullable=False, default="pending")
    issue_id = Column(String(32))
    paid_at = Column(DateTime(timezone=True), default=utcnow)


class ReconciledSession(Base):
    __tablename__ = "reconciled_sessions"

    # Every checkout session ever applied; a session is applied at most once
    session_ref = Column(String(255), primary_key=True)
    user_email = Column(String(255), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    issue_id = Column(String(32))
    reconciled_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
