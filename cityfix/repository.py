"""Typed storage operations shared by the engines.

A ``Repository`` wraps one SQLAlchemy session. It is built per request
and handed to each engine, so no engine touches module-level handles.
Every conditional write here is a single statement and therefore atomic
on its own; multi-step sequences belong to the callers.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .config import ADMIN_EMAIL
from .models import Issue, Payment, ReconciledSession, Upvote, User
from .models.user import AccountStatus, Role

log = logging.getLogger(__name__)


class Repository:
    def __init__(self, session: Session):
        self.session = session

    # ---------------------------------------------------------------
    # Users
    # ---------------------------------------------------------------
    def get_user(self, email: str) -> Optional[User]:
        return self.session.execute(
            select(User).where(User.email == email)
        ).scalar_one_or_none()

    def add_user(
        self,
        email: str,
        name: Optional[str] = None,
        photo: Optional[str] = None,
        role: Optional[str] = None,
    ) -> User:
        if ADMIN_EMAIL and email == ADMIN_EMAIL:
            role = Role.ADMIN.value
        user = User(
            email=email,
            name=name,
            photo=photo,
            role=role or Role.CITIZEN.value,
            status=AccountStatus.ACTIVE.value,
            premium=False,
            issue_count=0,
        )
        self.session.add(user)
        self.session.flush()
        return user

    def ensure_user(self, email: str) -> User:
        """Return the user, provisioning a plain citizen record if unknown."""
        user = self.get_user(email)
        if user is None:
            log.info("Provisioning citizen record for %s", email)
            user = self.add_user(email)
        return user

    def count_premium_users(self) -> int:
        return self.session.execute(
            select(func.count()).select_from(User).where(User.premium.is_(True))
        ).scalar_one()

    def count_users(self, role: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(User)
        if role is not None:
            stmt = stmt.where(User.role == role)
        return self.session.execute(stmt).scalar_one()

    # ---------------------------------------------------------------
    # Quota counter
    # ---------------------------------------------------------------
    def reserve_issue_slot(self, email: str, limit: int) -> bool:
        """Increment the user's issue counter if premium or below ``limit``."""
        result = self.session.execute(
            update(User)
            .where(
                User.email == email,
                or_(User.premium.is_(True), User.issue_count < limit),
            )
            .values(issue_count=User.issue_count + 1)
            .execution_options(synchronize_session=False)
        )
        self._expire_user(email)
        return result.rowcount == 1

    def release_issue_slot(self, email: str) -> None:
        self.session.execute(
            update(User)
            .where(User.email == email, User.issue_count > 0)
            .values(issue_count=User.issue_count - 1)
            .execution_options(synchronize_session=False)
        )
        self._expire_user(email)

    def _expire_user(self, email: str) -> None:
        for obj in list(self.session.identity_map.values()):
            if isinstance(obj, User) and obj.email == email:
                self.session.expire(obj)

    # ---------------------------------------------------------------
    # Issues
    # ---------------------------------------------------------------
    def get_issue(self, issue_id: str) -> Optional[Issue]:
        return self.session.get(Issue, issue_id)

    def add_issue(self, issue: Issue) -> Issue:
        self.session.add(issue)
        self.session.flush()
        return issue

    def delete_issue(self, issue: Issue) -> None:
        self.session.delete(issue)
        self.session.flush()

    def count_issues(self, status: Optional[str] = None, reporter_email: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(Issue)
        if status is not None:
            stmt = stmt.where(Issue.status == status)
        if reporter_email is not None:
            stmt = stmt.where(Issue.reporter_email == reporter_email)
        return self.session.execute(stmt).scalar_one()

    def find_issues(
        self,
        category: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[int, List[Issue]]:
        conditions = []
        if category:
            conditions.append(Issue.category == category)
        if status:
            conditions.append(Issue.status == status)
        if priority:
            conditions.append(Issue.priority == priority)
        if search:
            term = search.lower()
            conditions.append(
                or_(
                    func.lower(Issue.title).contains(term, autoescape=True),
                    func.lower(Issue.location).contains(term, autoescape=True),
                    func.lower(Issue.category).contains(term, autoescape=True),
                )
            )

        total = self.session.execute(
            select(func.count()).select_from(Issue).where(*conditions)
        ).scalar_one()

        stmt = (
            select(Issue)
            .where(*conditions)
            .options(selectinload(Issue.timeline), selectinload(Issue.upvotes))
            .order_by(Issue.created_at.desc(), Issue.issue_id.desc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        issues = list(self.session.execute(stmt).scalars().all())
        return total, issues

    def issues_assigned_to(self, staff_email: str) -> List[Issue]:
        stmt = (
            select(Issue)
            .where(Issue.assigned_staff_email == staff_email)
            .options(selectinload(Issue.timeline), selectinload(Issue.upvotes))
            .order_by(Issue.created_at.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    # ---------------------------------------------------------------
    # Upvotes
    # ---------------------------------------------------------------
    def has_upvote(self, issue_id: str, voter_email: str) -> bool:
        return self.session.execute(
            select(Upvote.upvote_id).where(
                Upvote.issue_id == issue_id, Upvote.voter_email == voter_email
            )
        ).first() is not None

    def add_upvote(self, issue_id: str, voter_email: str) -> bool:
        """Insert a vote; False when the unique constraint already holds one."""
        self.session.add(Upvote(issue_id=issue_id, voter_email=voter_email))
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            return False
        return True

    def count_upvotes(self, issue_id: str) -> int:
        return self.session.execute(
            select(func.count()).select_from(Upvote).where(Upvote.issue_id == issue_id)
        ).scalar_one()

    # ---------------------------------------------------------------
    # Payments
    # ---------------------------------------------------------------
    def get_payment(self, user_email: str) -> Optional[Payment]:
        return self.session.execute(
            select(Payment)
            .where(Payment.user_email == user_email)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def claim_session(
        self, session_ref: str, user_email: str, kind: str, issue_id: Optional[str] = None
    ) -> bool:
        """Record ``session_ref`` as reconciled.

        Returns False when the session was already recorded, i.e. the
        confirmation is a replay, however many sessions came since.
        """
        if self.session.get(ReconciledSession, session_ref) is not None:
            return False

        self.session.add(
            ReconciledSession(
                session_ref=session_ref, user_email=user_email, kind=kind, issue_id=issue_id
            )
        )
        try:
            self.session.flush()
        except IntegrityError:
            # A concurrent confirmation recorded the session first
            self.session.rollback()
            return False
        return True

    def upsert_payment(self, user_email: str) -> Payment:
        """The user's single ledger record, created on first purchase."""
        payment = self.get_payment(user_email)
        if payment is None:
            payment = Payment(user_email=user_email, kind="premium", session_ref="")
            self.session.add(payment)
        return payment

    def total_paid_revenue(self) -> int:
        return self.session.execute(
            select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.status == "paid")
        ).scalar_one()

    # ---------------------------------------------------------------
    # Transactions
    # ---------------------------------------------------------------
    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def rollback(self) -> None:
        self.session.rollback()
