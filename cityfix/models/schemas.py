from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# -------- Enums --------
class IssueStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    COMPLETED = "completed"
    REJECTED = "rejected"


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class TimelineStatus(str, Enum):
    """Labels that may appear on a timeline entry."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"
    COMPLETED = "completed"
    REJECTED = "rejected"
    BOOSTED = "boosted"
    EDITED = "edited"


class PaymentKind(str, Enum):
    PREMIUM = "premium"
    BOOST = "boost"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -------- Requests --------
# Required fields are Optional here so the engine can report them as 400s
class IssueCreateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    reporter_email: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    image: Optional[str] = None
    priority: Optional[str] = None


class IssueUpdateRequest(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    image: Optional[str] = None
    by: Optional[str] = None


class AssignRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None


class StatusChangeRequest(CamelModel):
    status: Optional[str] = None
    by: Optional[str] = None


class RejectRequest(CamelModel):
    by: Optional[str] = None


class UpvoteRequest(BaseModel):
    voter_email: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("voterEmail", "voterId", "email"),
    )


class CheckoutRequest(CamelModel):
    email: Optional[str] = None


class BoostCheckoutRequest(CamelModel):
    email: Optional[str] = None
    issue_id: Optional[str] = None


class PaymentSuccessRequest(BaseModel):
    # Field names follow the gateway's success-redirect query parameters
    email: Optional[str] = None
    session_id: Optional[str] = None
    boost_issue: Optional[str] = None


# -------- Responses --------
class StaffResponse(BaseModel):
    name: Optional[str] = None
    email: str


class TimelineEntryResponse(CamelModel):
    status: str
    message: str
    by: str
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class IssueResponse(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    reporter_email: str
    reporter_premium: bool
    category: Optional[str] = None
    location: Optional[str] = None
    image: Optional[str] = None
    priority: str
    status: str
    assigned_staff: Optional[StaffResponse] = None
    upvotes: List[str]
    upvote_count: int
    timeline: List[TimelineEntryResponse]
    created_at: datetime

    @classmethod
    def from_issue(cls, issue) -> "IssueResponse":
        voters = issue.voters
        return cls(
            id=issue.issue_id,
            title=issue.title,
            description=issue.description,
            reporter_email=issue.reporter_email,
            reporter_premium=issue.reporter_premium,
            category=issue.category,
            location=issue.location,
            image=issue.image,
            priority=issue.priority,
            status=issue.status,
            assigned_staff=issue.assigned_staff,
            upvotes=voters,
            upvote_count=len(voters),
            timeline=[TimelineEntryResponse.model_validate(entry) for entry in issue.timeline],
            created_at=issue.created_at,
        )


class IssueListResponse(CamelModel):
    total: int
    issues: List[IssueResponse]


class InsertedResponse(CamelModel):
    inserted_id: str


class SuccessResponse(CamelModel):
    success: bool = True


class UpvoteResponse(CamelModel):
    success: bool = True
    new_count: int


class CheckoutResponse(CamelModel):
    url: str


class RevenueSummaryResponse(CamelModel):
    total_revenue: int
    premium_users: int


class DashboardStatsResponse(CamelModel):
    total_issues: int
    pending_issues: int
    in_progress_issues: int
    resolved_issues: int
    total_users: int
    total_staff: int
