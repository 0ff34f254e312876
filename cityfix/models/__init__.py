from .user import User
from .models import Issue, TimelineEntry, Upvote, Payment, ReconciledSession

__all__ = ["User", "Issue", "TimelineEntry", "Upvote", "Payment", "ReconciledSession"]
