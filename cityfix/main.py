import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import List, Optional

from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import config
from .auth_utils import create_access_token
from .database import Base, engine, get_db
from .entitlements import ConfirmationPayload, EntitlementReconciler
from .errors import CityFixError, NotFound
from .lifecycle import IssueLifecycle, StaffRef
from .models.schemas import (
    AssignRequest,
    BoostCheckoutRequest,
    CheckoutRequest,
    CheckoutResponse,
    DashboardStatsResponse,
    InsertedResponse,
    IssueCreateRequest,
    IssueListResponse,
    IssueResponse,
    IssueUpdateRequest,
    PaymentSuccessRequest,
    RejectRequest,
    RevenueSummaryResponse,
    StatusChangeRequest,
    SuccessResponse,
    UpvoteRequest,
    UpvoteResponse,
)
from .models.user import (
    TokenRequest,
    TokenResponse,
    UserCreateRequest,
    UserExistsResponse,
    UserResponse,
)
from .payments import PaymentGateway, StripeGateway
from .queries import IssueQueries
from .repository import Repository
from .votes import VoteLedger

log = logging.getLogger(__name__)


# -------------------------------------------------------
# FastAPI App Setup
# -------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    Base.metadata.create_all(bind=engine)
    log.info("CityFix API started")
    yield


app = FastAPI(title="CityFix Issue Service", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------------------------------------
# Error Mapping
# -------------------------------------------------------
@app.exception_handler(CityFixError)
async def cityfix_error_handler(request: Request, exc: CityFixError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    log.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Storage failure"},
    )


# -------------------------------------------------------
# Dependencies
# -------------------------------------------------------
def get_repository(db: Session = Depends(get_db)) -> Repository:
    return Repository(db)


def get_gateway() -> PaymentGateway:
    return StripeGateway()


def get_lifecycle(repo: Repository = Depends(get_repository)) -> IssueLifecycle:
    return IssueLifecycle(repo)


def get_reconciler(
    repo: Repository = Depends(get_repository),
    gateway: PaymentGateway = Depends(get_gateway),
) -> EntitlementReconciler:
    return EntitlementReconciler(repo, gateway)


# -------------------------------------------------------
# Root Endpoint
# -------------------------------------------------------
@app.get("/")
def root():
    return {"message": "CityFix Issue Service is running."}


# -------------------------------------------------------
#  Health Check Endpoints
# -------------------------------------------------------
@app.get("/health/live", tags=["Health"])
def liveness_check():
    """Liveness probe — confirms app process is alive."""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
def readiness_check(db: Session = Depends(get_db)):
    """Readiness probe — verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready"}
    except SQLAlchemyError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database not ready: {e}",
        )


# -------------------------------------------------------
# USERS & TOKENS
# -------------------------------------------------------
@app.post("/jwt", response_model=TokenResponse)
def issue_token(payload: TokenRequest):
    """Issue a signed token for the frontend session."""
    return TokenResponse(token=create_access_token({"email": payload.email}))


@app.post("/users")
def create_user(payload: UserCreateRequest, repo: Repository = Depends(get_repository)):
    """Register a user profile; existing emails are left untouched."""
    if repo.get_user(payload.email) is not None:
        return UserExistsResponse(message="User exists")

    user = repo.add_user(
        payload.email,
        name=payload.name,
        photo=payload.photo,
        role=payload.role.value if payload.role else None,
    )
    repo.commit()
    return UserResponse.model_validate(user)


@app.get("/users/{email}", response_model=UserResponse)
def get_user(email: str, repo: Repository = Depends(get_repository)):
    user = repo.get_user(email)
    if user is None:
        raise NotFound("User not found")
    return UserResponse.model_validate(user)


# -------------------------------------------------------
# ISSUES
# -------------------------------------------------------
@app.post("/issues", status_code=status.HTTP_201_CREATED, response_model=InsertedResponse)
def create_issue(payload: IssueCreateRequest, lifecycle: IssueLifecycle = Depends(get_lifecycle)):
    """Report a new issue (free users are capped, premium users are not)."""
    issue = lifecycle.create(
        reporter_email=payload.reporter_email,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        location=payload.location,
        image=payload.image,
        priority=payload.priority,
    )
    return InsertedResponse(inserted_id=issue.issue_id)


@app.get("/issues", response_model=IssueListResponse)
def list_issues(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    repo: Repository = Depends(get_repository),
):
    """Paginated listing, newest first. Paging defaults to page 1 of 6."""
    total, issues = IssueQueries(repo).list_issues(
        category=category,
        status=status,
        priority=priority,
        search=search,
        page=page,
        page_size=limit,
    )
    return IssueListResponse(total=total, issues=[IssueResponse.from_issue(i) for i in issues])


@app.get("/issues/{issue_id}", response_model=IssueResponse)
def get_issue(issue_id: str, lifecycle: IssueLifecycle = Depends(get_lifecycle)):
    return IssueResponse.from_issue(lifecycle.get(issue_id))


@app.put("/issues/{issue_id}", response_model=SuccessResponse)
def edit_issue(
    issue_id: str,
    payload: IssueUpdateRequest,
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
):
    """Edit descriptive fields of a pending issue."""
    fields = payload.model_dump(exclude={"by"}, exclude_none=True)
    lifecycle.edit(issue_id, fields, actor=payload.by)
    return SuccessResponse()


@app.delete("/issues/{issue_id}", response_model=SuccessResponse)
def delete_issue(issue_id: str, lifecycle: IssueLifecycle = Depends(get_lifecycle)):
    lifecycle.delete(issue_id)
    return SuccessResponse()


@app.patch("/issues/assign/{issue_id}", response_model=SuccessResponse)
def assign_issue(
    issue_id: str,
    payload: AssignRequest,
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
):
    staff = StaffRef(email=payload.email, name=payload.name) if payload.email else None
    lifecycle.assign(issue_id, staff)
    return SuccessResponse()


@app.patch("/issues/status/{issue_id}", response_model=SuccessResponse)
def change_issue_status(
    issue_id: str,
    payload: StatusChangeRequest,
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
):
    lifecycle.change_status(issue_id, payload.status, payload.by)
    return SuccessResponse()


@app.patch("/issues/reject/{issue_id}", response_model=SuccessResponse)
def reject_issue(
    issue_id: str,
    payload: Optional[RejectRequest] = None,
    lifecycle: IssueLifecycle = Depends(get_lifecycle),
):
    lifecycle.reject(issue_id, payload.by if payload else None)
    return SuccessResponse()


@app.patch("/issues/upvote/{issue_id}", response_model=UpvoteResponse)
def upvote_issue(
    issue_id: str,
    payload: UpvoteRequest,
    repo: Repository = Depends(get_repository),
):
    new_count = VoteLedger(repo).upvote(issue_id, payload.voter_email)
    return UpvoteResponse(new_count=new_count)


# -------------------------------------------------------
# PAYMENTS
# -------------------------------------------------------
@app.post("/create-checkout-session", response_model=CheckoutResponse)
def create_checkout_session(
    payload: CheckoutRequest,
    reconciler: EntitlementReconciler = Depends(get_reconciler),
):
    """Open a premium checkout and return the gateway redirect."""
    session = reconciler.request_premium_checkout(payload.email)
    return CheckoutResponse(url=session.url)


@app.post("/issues/boost", response_model=CheckoutResponse)
def create_boost_session(
    payload: BoostCheckoutRequest,
    reconciler: EntitlementReconciler = Depends(get_reconciler),
):
    session = reconciler.request_boost_checkout(payload.email, payload.issue_id)
    return CheckoutResponse(url=session.url)


@app.post("/payment/success", response_model=SuccessResponse)
def payment_success(
    payload: PaymentSuccessRequest,
    reconciler: EntitlementReconciler = Depends(get_reconciler),
):
    """Reconcile a gateway success. Replays are accepted and change nothing."""
    reconciler.confirm_payment(
        ConfirmationPayload(
            user_email=payload.email,
            session_ref=payload.session_id,
            boosted_issue_id=payload.boost_issue or None,
        )
    )
    return SuccessResponse()


# -------------------------------------------------------
# ADMIN & STAFF DASHBOARDS
# -------------------------------------------------------
@app.get("/admin/payments/summary", response_model=RevenueSummaryResponse)
def payments_summary(reconciler: EntitlementReconciler = Depends(get_reconciler)):
    summary = reconciler.revenue_summary()
    return RevenueSummaryResponse(
        total_revenue=summary.total_revenue,
        premium_users=summary.premium_users,
    )


@app.get("/admin/stats", response_model=DashboardStatsResponse)
def admin_stats(repo: Repository = Depends(get_repository)):
    stats = IssueQueries(repo).dashboard_stats()
    return DashboardStatsResponse(**asdict(stats))


@app.get("/staff/issues", response_model=List[IssueResponse])
def staff_issues(email: str, repo: Repository = Depends(get_repository)):
    """Issues currently assigned to the given staff member."""
    return [IssueResponse.from_issue(i) for i in IssueQueries(repo).staff_issues(email)]


# -------------------------------------------------------
# Database Connectivity Diagnostic
# -------------------------------------------------------
@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    """Manually verify DB connectivity and list tables."""
    try:
        # Inspector works for both SQLite (tests) and Postgres (prod)
        inspector = inspect(db.get_bind())
        tables = inspector.get_table_names()
        return {"status": "connected", "tables": tables}
    except SQLAlchemyError as e:
        return {"status": "error", "details": str(e)}
