"""Read-only issue listings and dashboard counters."""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .models import Issue
from .models.schemas import IssueStatus
from .models.user import Role
from .repository import Repository

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 6


@dataclass(frozen=True)
class DashboardStats:
    total_issues: int
    pending_issues: int
    in_progress_issues: int
    resolved_issues: int
    total_users: int
    total_staff: int


def _positive_int(value: Any, default: int) -> int:
    """Parse a paging parameter; anything non-numeric or below 1 gives the default."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


class IssueQueries:
    def __init__(self, repo: Repository):
        self.repo = repo

    def list_issues(
        self,
        category: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        search: Optional[str] = None,
        page: Any = None,
        page_size: Any = None,
    ) -> Tuple[int, List[Issue]]:
        """Return ``(total, page_of_issues)``, newest first.

        ``search`` matches title, location or category case-insensitively.
        """
        page = _positive_int(page, DEFAULT_PAGE)
        page_size = _positive_int(page_size, DEFAULT_PAGE_SIZE)
        return self.repo.find_issues(
            category=category or None,
            status=status or None,
            priority=priority or None,
            search=(search or "").strip() or None,
            offset=(page - 1) * page_size,
            limit=page_size,
        )

    def staff_issues(self, staff_email: str) -> List[Issue]:
        return self.repo.issues_assigned_to(staff_email)

    def dashboard_stats(self) -> DashboardStats:
        return DashboardStats(
            total_issues=self.repo.count_issues(),
            pending_issues=self.repo.count_issues(status=IssueStatus.PENDING.value),
            in_progress_issues=self.repo.count_issues(status=IssueStatus.IN_PROGRESS.value),
            resolved_issues=self.repo.count_issues(status=IssueStatus.RESOLVED.value),
            total_users=self.repo.count_users(role=Role.CITIZEN.value),
            total_staff=self.repo.count_users(role=Role.STAFF.value),
        )
