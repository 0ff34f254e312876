"""Timeline recorder: the append-only audit trail of an issue.

Entries are only ever appended. Each new entry gets the next sequence
number and a timestamp no earlier than the previous entry's, so the
trail stays ordered even if the wall clock steps backwards.
"""

import logging
from datetime import datetime
from typing import Optional

from .models import Issue, TimelineEntry
from .models.models import as_utc, utcnow
from .models.schemas import TimelineStatus

log = logging.getLogger(__name__)


class TimelineRecorder:
    def __init__(self, clock=utcnow):
        self._clock = clock

    def append(
        self,
        issue: Issue,
        status: TimelineStatus,
        message: str,
        by: str,
        at: Optional[datetime] = None,
    ) -> TimelineEntry:
        timestamp = as_utc(at or self._clock())
        seq = 0
        if issue.timeline:
            last = issue.timeline[-1]
            seq = last.seq + 1
            previous = as_utc(last.timestamp)
            if timestamp < previous:
                timestamp = previous

        entry = TimelineEntry(
            seq=seq,
            status=TimelineStatus(status).value,
            message=message,
            by=by,
            timestamp=timestamp,
        )
        issue.timeline.append(entry)
        log.debug("Timeline %s #%d: %s by %s", issue.issue_id, seq, entry.status, by)
        return entry

    def seed(self, issue: Issue, reporter_email: str) -> TimelineEntry:
        """First entry of every issue."""
        return self.append(issue, TimelineStatus.PENDING, "Issue created", reporter_email)

    def record_boost(self, issue: Issue, by: str) -> TimelineEntry:
        return self.append(issue, TimelineStatus.BOOSTED, "Priority boosted to high", by)
