"""Issue lifecycle engine: the status state machine for reported issues.

States: pending (initial), in-progress, resolved, completed, rejected.
The last three are terminal. Allowed edges:

    pending      --assign/start-->      in-progress
    pending      --reject-->            rejected
    in-progress  --resolve/complete-->  resolved | completed

Assignment may also re-target an in-progress issue to other staff.
Priority escalation is an attribute change, not a transition; it only
leaves a ``boosted`` entry on the timeline.

Every mutation validates against the stored issue, applies the change
plus its timeline entry, and commits once.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import InvalidTransition, NotFound, QuotaExceeded, ValidationError
from .models import Issue
from .models.models import new_issue_id
from .models.schemas import IssueStatus, Priority, TimelineStatus
from .quota import QuotaGuard
from .repository import Repository
from .timeline import TimelineRecorder

log = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[IssueStatus, frozenset[IssueStatus]] = {
    IssueStatus.PENDING: frozenset({IssueStatus.IN_PROGRESS, IssueStatus.REJECTED}),
    IssueStatus.IN_PROGRESS: frozenset({IssueStatus.RESOLVED, IssueStatus.COMPLETED}),
}
ASSIGNABLE_STATES = frozenset({IssueStatus.PENDING, IssueStatus.IN_PROGRESS})
EDITABLE_FIELDS = ("title", "description", "category", "location", "image")

_ISSUE_ID = re.compile(r"^[0-9a-f]{32}$")


@dataclass(frozen=True)
class StaffRef:
    """Snapshot of the staff member an issue is assigned to."""
    email: str
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email


def require_issue(repo: Repository, issue_id: str) -> Issue:
    """Load an issue or raise ValidationError / NotFound."""
    if not issue_id or not _ISSUE_ID.match(issue_id):
        raise ValidationError("Invalid issue id")
    issue = repo.get_issue(issue_id)
    if issue is None:
        raise NotFound("Issue not found")
    return issue


def can_transition(current: IssueStatus, target: IssueStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class IssueLifecycle:
    def __init__(
        self,
        repo: Repository,
        quota: Optional[QuotaGuard] = None,
        timeline: Optional[TimelineRecorder] = None,
    ) -> None:
        self.repo = repo
        self.quota = quota or QuotaGuard(repo)
        self.timeline = timeline or TimelineRecorder()

    def get(self, issue_id: str) -> Issue:
        return require_issue(self.repo, issue_id)

    # -----------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------
    def create(
        self,
        reporter_email: Optional[str],
        title: Optional[str],
        description: Optional[str] = None,
        category: Optional[str] = None,
        location: Optional[str] = None,
        image: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> Issue:
        """Report a new issue.

        The quota reservation and the insert commit together; if the
        reporter is out of free slots nothing is written.
        """
        if not reporter_email:
            raise ValidationError("Reporter email is required")
        if not title or not title.strip():
            raise ValidationError("Title is required")
        priority_value = _parse_priority(priority)

        reporter = self.repo.ensure_user(reporter_email)
        reporter_premium = bool(reporter.premium)

        if not self.quota.check_and_reserve(reporter_email):
            self.repo.rollback()
            raise QuotaExceeded(
                f"Free users can report up to {self.quota.limit} issues. "
                "Upgrade to premium for unlimited reports."
            )

        issue = Issue(
            issue_id=new_issue_id(),
            reporter_email=reporter_email,
            reporter_premium=reporter_premium,
            title=title.strip(),
            description=description,
            category=category,
            location=location,
            image=image,
            priority=priority_value,
            status=IssueStatus.PENDING.value,
            assigned_staff_name=None,
            assigned_staff_email=None,
        )
        self.timeline.seed(issue, reporter_email)
        self.repo.add_issue(issue)
        self.repo.commit()

        log.info("Issue %s created by %s", issue.issue_id, reporter_email)
        return issue

    # -----------------------------------------------------------------
    # Assignment & status
    # -----------------------------------------------------------------
    def assign(self, issue_id: str, staff: Optional[StaffRef]) -> Issue:
        issue = self.get(issue_id)
        if staff is None or not staff.email:
            raise ValidationError("Staff name and email are required")

        current = IssueStatus(issue.status)
        if current not in ASSIGNABLE_STATES:
            raise InvalidTransition(f"Cannot assign staff to a {current.value} issue")

        issue.assigned_staff_name = staff.name or staff.email
        issue.assigned_staff_email = staff.email
        issue.status = IssueStatus.IN_PROGRESS.value
        self.timeline.append(
            issue, TimelineStatus.ASSIGNED, f"Assigned to {staff.display_name}", "admin"
        )
        self.repo.commit()

        log.info("Issue %s assigned to %s", issue.issue_id, staff.email)
        return issue

    def change_status(self, issue_id: str, new_status: Optional[str], actor: Optional[str]) -> Issue:
        issue = self.get(issue_id)
        target = _parse_status(new_status)
        if not actor:
            raise ValidationError("Actor is required")

        current = IssueStatus(issue.status)
        if not can_transition(current, target):
            raise InvalidTransition(
                f"Cannot change status from {current.value} to {target.value}"
            )

        issue.status = target.value
        self.timeline.append(
            issue, TimelineStatus(target.value), f"Status changed to {target.value}", actor
        )
        self.repo.commit()

        log.info("Issue %s: %s -> %s by %s", issue.issue_id, current.value, target.value, actor)
        return issue

    def reject(self, issue_id: str, actor: Optional[str] = None) -> Issue:
        issue = self.get(issue_id)
        if issue.status != IssueStatus.PENDING.value:
            raise InvalidTransition("Only pending issues can be rejected")
        return self.change_status(issue_id, IssueStatus.REJECTED.value, actor or "admin")

    # -----------------------------------------------------------------
    # Edit & delete (pending only)
    # -----------------------------------------------------------------
    def edit(self, issue_id: str, fields: Mapping[str, Any], actor: Optional[str] = None) -> Issue:
        issue = self.get(issue_id)
        if issue.status != IssueStatus.PENDING.value:
            raise InvalidTransition("Only pending issues can be edited")

        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        changes = {key: value for key, value in fields.items() if value is not None}
        if not changes:
            raise ValidationError("No editable fields supplied")
        if "title" in changes:
            if not changes["title"].strip():
                raise ValidationError("Title is required")
            changes["title"] = changes["title"].strip()

        for key, value in changes.items():
            setattr(issue, key, value)
        self.timeline.append(
            issue, TimelineStatus.EDITED, "Issue details updated", actor or issue.reporter_email
        )
        self.repo.commit()

        log.info("Issue %s edited (%s)", issue.issue_id, ", ".join(sorted(changes)))
        return issue

    def delete(self, issue_id: str) -> None:
        issue = self.get(issue_id)
        if issue.status != IssueStatus.PENDING.value:
            raise InvalidTransition("Only pending issues can be deleted")

        reporter_email = issue.reporter_email
        self.repo.delete_issue(issue)
        self.quota.release(reporter_email)
        self.repo.commit()

        log.info("Issue %s deleted", issue_id)

    # -----------------------------------------------------------------
    # Priority
    # -----------------------------------------------------------------
    def boost(self, issue: Issue, by: str) -> None:
        """Escalate priority to high. Does not commit; the caller does."""
        issue.priority = Priority.HIGH.value
        self.timeline.record_boost(issue, by)
        log.info("Issue %s boosted by %s", issue.issue_id, by)


def _parse_status(value: Optional[str]) -> IssueStatus:
    try:
        return IssueStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown status: {value!r}") from None


def _parse_priority(value: Optional[str]) -> str:
    if value is None or value == "":
        return Priority.NORMAL.value
    try:
        return Priority(value).value
    except ValueError:
        raise ValidationError(f"Unknown priority: {value!r}") from None
