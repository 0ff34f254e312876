"""Entitlement reconciler: turns paid checkouts into premium and boost flags.

Checkout requests only talk to the gateway; nothing is stored until the
gateway confirms. ``confirm_payment`` is the single entrypoint that
mutates entitlements. It is safe to replay: every session reference
is recorded in ``reconciled_sessions`` before anything else changes,
and a confirmation whose session was already recorded changes
nothing, even after later purchases have overwritten the user's ledger record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import BOOST_PRICE, CLIENT_URL, PAYMENT_CURRENCY, PREMIUM_PRICE
from .errors import AlreadyEntitled, ValidationError
from .lifecycle import IssueLifecycle, require_issue
from .models import Payment
from .models.models import utcnow
from .models.schemas import PaymentKind, PaymentStatus
from .payments import CheckoutSession, PaymentGateway
from .repository import Repository

log = logging.getLogger(__name__)

SUCCESS_PATH = "/payment/success?session_id={CHECKOUT_SESSION_ID}"


@dataclass(frozen=True)
class ConfirmationPayload:
    user_email: Optional[str]
    session_ref: Optional[str]
    boosted_issue_id: Optional[str] = None


@dataclass(frozen=True)
class RevenueSummary:
    total_revenue: int
    premium_users: int


class EntitlementReconciler:
    def __init__(
        self,
        repo: Repository,
        gateway: PaymentGateway,
        lifecycle: Optional[IssueLifecycle] = None,
        currency: str = PAYMENT_CURRENCY,
        client_url: str = CLIENT_URL,
    ) -> None:
        self.repo = repo
        self.gateway = gateway
        self.lifecycle = lifecycle or IssueLifecycle(repo)
        self.currency = currency
        self.client_url = client_url

    # -----------------------------------------------------------------
    # Checkout
    # -----------------------------------------------------------------
    def request_premium_checkout(self, user_email: Optional[str]) -> CheckoutSession:
        if not user_email:
            raise ValidationError("Email is required")
        user = self.repo.get_user(user_email)
        if user is not None and user.premium:
            raise AlreadyEntitled("User is already premium")

        return self.gateway.create_checkout(
            amount=PREMIUM_PRICE,
            currency=self.currency,
            customer_email=user_email,
            success_url=f"{self.client_url}{SUCCESS_PATH}",
            cancel_url=f"{self.client_url}/payment/cancel",
            metadata={"email": user_email, "kind": PaymentKind.PREMIUM.value},
        )

    def request_boost_checkout(self, user_email: Optional[str], issue_id: Optional[str]) -> CheckoutSession:
        if not user_email:
            raise ValidationError("Email is required")
        issue = require_issue(self.repo, issue_id)

        return self.gateway.create_checkout(
            amount=BOOST_PRICE,
            currency=self.currency,
            customer_email=user_email,
            success_url=f"{self.client_url}{SUCCESS_PATH}&boost_issue={issue.issue_id}",
            cancel_url=f"{self.client_url}/issues/{issue.issue_id}",
            metadata={
                "email": user_email,
                "kind": PaymentKind.BOOST.value,
                "issue_id": issue.issue_id,
            },
        )

    # -----------------------------------------------------------------
    # Reconciliation
    # -----------------------------------------------------------------
    def confirm_payment(self, payload: ConfirmationPayload) -> Payment:
        """Apply a gateway success to the user, the issue and the ledger.

        Effects, committed together:
        1. a boosted issue gets priority ``high`` and a ``boosted`` entry,
        2. the user becomes premium (boost purchases included),
        3. the session is recorded as reconciled,
        4. the user's single ledger record is overwritten as ``paid``.
        """
        if not payload.user_email or not payload.session_ref:
            raise ValidationError("Email and session id are required")
        email = payload.user_email

        issue = None
        if payload.boosted_issue_id:
            issue = require_issue(self.repo, payload.boosted_issue_id)
        kind = PaymentKind.BOOST if issue is not None else PaymentKind.PREMIUM

        issue_id = issue.issue_id if issue is not None else None
        if not self.repo.claim_session(payload.session_ref, email, kind.value, issue_id):
            self.repo.rollback()
            log.warning("Confirmation %s for %s already reconciled", payload.session_ref, email)
            return self.repo.get_payment(email)

        if issue is not None:
            self.lifecycle.boost(issue, email)

        user = self.repo.ensure_user(email)
        user.premium = True

        payment = self.repo.upsert_payment(email)
        payment.session_ref = payload.session_ref
        payment.kind = kind.value
        payment.amount = BOOST_PRICE if kind is PaymentKind.BOOST else PREMIUM_PRICE
        payment.currency = self.currency
        payment.status = PaymentStatus.PAID.value
        payment.issue_id = issue_id
        payment.paid_at = utcnow()
        self.repo.commit()

        log.info(
            "Payment %s reconciled for %s (%s, %d %s)",
            payload.session_ref, email, kind.value, payment.amount, self.currency,
        )
        return payment

    def revenue_summary(self) -> RevenueSummary:
        return RevenueSummary(
            total_revenue=self.repo.total_paid_revenue(),
            premium_users=self.repo.count_premium_users(),
        )
