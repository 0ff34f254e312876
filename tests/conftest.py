import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cityfix.database import Base, get_db
from cityfix.entitlements import EntitlementReconciler
from cityfix.lifecycle import IssueLifecycle, StaffRef
from cityfix.main import app, get_gateway
from cityfix.payments import CheckoutSession
from cityfix.repository import Repository

# -------------------------------------------------------
# Test Database Setup
# -------------------------------------------------------
# In-memory SQLite keeps every test isolated and fast
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeGateway:
    """Stands in for Stripe; records every checkout it is asked for."""

    def __init__(self):
        self.checkouts = []

    def create_checkout(self, amount, currency, customer_email, success_url, cancel_url, metadata=None):
        session_id = f"cs_test_{len(self.checkouts) + 1}"
        self.checkouts.append(
            {
                "session_id": session_id,
                "amount": amount,
                "currency": currency,
                "customer_email": customer_email,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": metadata or {},
            }
        )
        return CheckoutSession(session_id=session_id, url=f"https://checkout.test/{session_id}")


# -------------------------------------------------------
# Fixtures
# -------------------------------------------------------
@pytest.fixture(scope="function")
def db_session():
    """Create a new database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        # Drop tables to ensure clean slate for next test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def repo(db_session):
    return Repository(db_session)


@pytest.fixture
def lifecycle(repo):
    return IssueLifecycle(repo)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def reconciler(repo, gateway, lifecycle):
    return EntitlementReconciler(repo, gateway, lifecycle=lifecycle)


@pytest.fixture
def make_issue(lifecycle):
    def _make(reporter="a@x.com", title="Pothole", category="Road", location="Main St", **extra):
        return lifecycle.create(
            reporter_email=reporter,
            title=title,
            category=category,
            location=location,
            **extra,
        )
    return _make


@pytest.fixture
def issue_in_status(lifecycle, make_issue):
    """Build an issue and walk it to the requested status."""
    def _build(status):
        issue = make_issue()
        if status == "pending":
            return issue
        if status == "rejected":
            return lifecycle.reject(issue.issue_id)
        lifecycle.assign(issue.issue_id, StaffRef(name="Bob", email="bob@x.com"))
        if status in ("resolved", "completed"):
            lifecycle.change_status(issue.issue_id, status, "bob@x.com")
        return lifecycle.get(issue.issue_id)
    return _build


@pytest.fixture(scope="function")
def client(db_session, gateway):
    """Create a new test client for each test with DB and gateway overrides."""

    def override_get_db():
        try:
            yield db_session
        finally:
            db_session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
