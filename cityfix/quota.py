"""Quota guard: caps how many issues a free-tier reporter may hold.

The decision and the reservation are one conditional UPDATE on the
reporter's ``issue_count``. Two concurrent creations from the same
reporter therefore cannot both pass on the last free slot. The caller
commits the reservation in the same transaction as the issue insert, so
a failed insert rolls the reservation back too.
"""

import logging
from typing import Optional

from .config import FREE_ISSUE_LIMIT
from .repository import Repository

log = logging.getLogger(__name__)


class QuotaGuard:
    def __init__(self, repo: Repository, limit: int = FREE_ISSUE_LIMIT):
        self.repo = repo
        self.limit = limit

    def check_and_reserve(self, reporter_email: str) -> bool:
        """Reserve one issue slot. Premium reporters always get one."""
        allowed = self.repo.reserve_issue_slot(reporter_email, self.limit)
        if not allowed:
            log.warning("Free-tier quota of %d reached for %s", self.limit, reporter_email)
        return allowed

    def release(self, reporter_email: str) -> None:
        self.repo.release_issue_slot(reporter_email)

    def remaining(self, reporter_email: str) -> Optional[int]:
        """Free slots left, or None when the reporter is premium (unlimited)."""
        user = self.repo.get_user(reporter_email)
        if user is None:
            return self.limit
        if user.premium:
            return None
        return max(self.limit - user.issue_count, 0)
