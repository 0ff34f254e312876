"""Vote ledger: at most one upvote per voter, never by the reporter."""

import logging

from .errors import Conflict, Forbidden, ValidationError
from .lifecycle import require_issue
from .repository import Repository

log = logging.getLogger(__name__)


class VoteLedger:
    def __init__(self, repo: Repository):
        self.repo = repo

    def upvote(self, issue_id: str, voter_email: str) -> int:
        """Record one vote and return the issue's new vote count."""
        issue = require_issue(self.repo, issue_id)
        if not voter_email:
            raise ValidationError("Voter email is required")
        if voter_email == issue.reporter_email:
            raise Forbidden("You cannot upvote your own issue")
        if self.repo.has_upvote(issue_id, voter_email):
            raise Conflict("You have already upvoted this issue")

        voter = self.repo.get_user(voter_email)
        if voter is not None and voter.is_blocked:
            raise Forbidden("Blocked users cannot vote")

        if not self.repo.add_upvote(issue_id, voter_email):
            # Lost the race against a concurrent vote from the same voter
            raise Conflict("You have already upvoted this issue")
        self.repo.commit()

        count = self.repo.count_upvotes(issue_id)
        log.info("Upvote on %s by %s (now %d)", issue_id, voter_email, count)
        return count
