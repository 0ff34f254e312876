"""Tests for the issue lifecycle engine and its timeline."""

from datetime import datetime, timedelta, timezone

import pytest

from cityfix.errors import InvalidTransition, NotFound, QuotaExceeded, ValidationError
from cityfix.lifecycle import IssueLifecycle, StaffRef, can_transition
from cityfix.models.schemas import IssueStatus
from cityfix.timeline import TimelineRecorder

ALL_STATUSES = ["pending", "in-progress", "resolved", "completed", "rejected"]
NON_PENDING = ["in-progress", "resolved", "completed", "rejected"]


def _assert_timeline_invariants(issue):
    assert issue.timeline
    assert issue.timeline[0].status == "pending"
    stamps = [entry.timestamp for entry in issue.timeline]
    assert stamps == sorted(stamps)


# -------------------------------------------------------
# Create
# -------------------------------------------------------

def test_create_seeds_pending_issue(make_issue):
    issue = make_issue()

    assert issue.status == "pending"
    assert issue.priority == "normal"
    assert issue.assigned_staff is None
    assert issue.voters == []
    assert len(issue.timeline) == 1
    entry = issue.timeline[0]
    assert (entry.status, entry.message, entry.by) == ("pending", "Issue created", "a@x.com")


def test_create_provisions_unknown_reporter(repo, make_issue):
    make_issue(reporter="new@x.com")

    user = repo.get_user("new@x.com")
    assert user.role == "citizen"
    assert user.premium is False
    assert user.issue_count == 1


def test_create_requires_title_and_reporter(lifecycle):
    with pytest.raises(ValidationError):
        lifecycle.create(reporter_email="a@x.com", title="  ")
    with pytest.raises(ValidationError):
        lifecycle.create(reporter_email=None, title="Pothole")


def test_create_rejects_unknown_priority(lifecycle):
    with pytest.raises(ValidationError):
        lifecycle.create(reporter_email="a@x.com", title="Pothole", priority="urgent")


def test_create_snapshots_reporter_premium(repo, make_issue):
    free_issue = make_issue()
    user = repo.get_user("a@x.com")
    user.premium = True
    repo.commit()

    premium_issue = make_issue(title="Broken light")

    assert free_issue.reporter_premium is False
    assert premium_issue.reporter_premium is True


def test_quota_refusal_writes_nothing(repo, make_issue):
    for n in range(3):
        make_issue(title=f"Report {n}")

    with pytest.raises(QuotaExceeded):
        make_issue(title="One too many")
    assert repo.count_issues(reporter_email="a@x.com") == 3


# -------------------------------------------------------
# Full walk-through
# -------------------------------------------------------

def test_pothole_scenario(lifecycle, make_issue):
    issue = make_issue(title="Pothole", reporter="a@x.com", category="Road", location="Main St")
    assert issue.status == "pending"
    assert len(issue.timeline) == 1

    issue = lifecycle.assign(issue.issue_id, StaffRef(name="Bob", email="bob@x.com"))
    assert issue.status == "in-progress"
    assert len(issue.timeline) == 2
    assert issue.assigned_staff["email"] == "bob@x.com"
    assert issue.timeline[1].status == "assigned"
    assert issue.timeline[1].message == "Assigned to Bob"
    assert issue.timeline[1].by == "admin"

    issue = lifecycle.change_status(issue.issue_id, "resolved", "bob@x.com")
    assert issue.status == "resolved"
    assert len(issue.timeline) == 3
    assert issue.timeline[2].message == "Status changed to resolved"

    with pytest.raises(InvalidTransition):
        lifecycle.change_status(issue.issue_id, "pending", "bob@x.com")
    _assert_timeline_invariants(lifecycle.get(issue.issue_id))


# -------------------------------------------------------
# Assign
# -------------------------------------------------------

def test_assign_requires_staff_email(make_issue, lifecycle):
    issue = make_issue()
    with pytest.raises(ValidationError):
        lifecycle.assign(issue.issue_id, StaffRef(name="Bob", email=""))
    with pytest.raises(ValidationError):
        lifecycle.assign(issue.issue_id, None)


def test_assign_unknown_issue(lifecycle):
    with pytest.raises(NotFound):
        lifecycle.assign("0" * 32, StaffRef(name="Bob", email="bob@x.com"))


def test_reassign_in_progress_issue(issue_in_status, lifecycle):
    issue = issue_in_status("in-progress")

    issue = lifecycle.assign(issue.issue_id, StaffRef(name="Carol", email="carol@x.com"))

    assert issue.status == "in-progress"
    assert issue.assigned_staff == {"name": "Carol", "email": "carol@x.com"}
    assert [e.status for e in issue.timeline] == ["pending", "assigned", "assigned"]


@pytest.mark.parametrize("status", ["resolved", "completed", "rejected"])
def test_assign_terminal_issue_fails(issue_in_status, lifecycle, status):
    issue = issue_in_status(status)
    with pytest.raises(InvalidTransition):
        lifecycle.assign(issue.issue_id, StaffRef(name="Bob", email="bob@x.com"))


# -------------------------------------------------------
# Status transitions
# -------------------------------------------------------

@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("pending", "in-progress", True),
        ("pending", "rejected", True),
        ("pending", "resolved", False),
        ("in-progress", "resolved", True),
        ("in-progress", "completed", True),
        ("in-progress", "pending", False),
        ("resolved", "completed", False),
        ("completed", "in-progress", False),
        ("rejected", "pending", False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(IssueStatus(current), IssueStatus(target)) is allowed


@pytest.mark.parametrize("target", ALL_STATUSES)
def test_resolved_is_terminal(issue_in_status, lifecycle, target):
    issue = issue_in_status("resolved")
    with pytest.raises(InvalidTransition):
        lifecycle.change_status(issue.issue_id, target, "bob@x.com")


def test_change_status_validates_input(make_issue, lifecycle):
    issue = make_issue()
    with pytest.raises(ValidationError):
        lifecycle.change_status(issue.issue_id, "closed", "bob@x.com")
    with pytest.raises(ValidationError):
        lifecycle.change_status(issue.issue_id, "in-progress", None)


def test_reject_only_from_pending(issue_in_status, lifecycle):
    issue = issue_in_status("pending")
    issue = lifecycle.reject(issue.issue_id)
    assert issue.status == "rejected"
    assert issue.timeline[-1].by == "admin"

    started = issue_in_status("in-progress")
    with pytest.raises(InvalidTransition):
        lifecycle.reject(started.issue_id)


# -------------------------------------------------------
# Edit & delete
# -------------------------------------------------------

def test_edit_pending_issue(make_issue, lifecycle):
    issue = make_issue()

    issue = lifecycle.edit(issue.issue_id, {"title": "Deep pothole", "location": "2nd Ave"}, "a@x.com")

    assert issue.title == "Deep pothole"
    assert issue.location == "2nd Ave"
    assert issue.timeline[-1].status == "edited"
    assert len(issue.timeline) == 2


def test_edit_refuses_non_descriptive_fields(make_issue, lifecycle):
    issue = make_issue()
    with pytest.raises(ValidationError):
        lifecycle.edit(issue.issue_id, {"status": "resolved"}, "a@x.com")
    with pytest.raises(ValidationError):
        lifecycle.edit(issue.issue_id, {}, "a@x.com")


@pytest.mark.parametrize("status", NON_PENDING)
def test_edit_and_delete_fail_once_not_pending(issue_in_status, lifecycle, status):
    issue = issue_in_status(status)

    with pytest.raises(InvalidTransition):
        lifecycle.edit(issue.issue_id, {"title": "Changed"}, "a@x.com")
    with pytest.raises(InvalidTransition):
        lifecycle.delete(issue.issue_id)


def test_delete_pending_issue(make_issue, lifecycle, repo):
    issue = make_issue()

    lifecycle.delete(issue.issue_id)

    assert repo.get_issue(issue.issue_id) is None
    with pytest.raises(NotFound):
        lifecycle.get(issue.issue_id)


def test_get_rejects_malformed_id(lifecycle):
    with pytest.raises(ValidationError):
        lifecycle.get("not-an-id")


# -------------------------------------------------------
# Timeline
# -------------------------------------------------------

def test_timeline_never_goes_backwards(repo):
    start = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    ticks = iter([start, start - timedelta(hours=1), start + timedelta(hours=1)])
    lifecycle = IssueLifecycle(repo, timeline=TimelineRecorder(clock=lambda: next(ticks)))

    issue = lifecycle.create(reporter_email="a@x.com", title="Pothole")
    lifecycle.assign(issue.issue_id, StaffRef(name="Bob", email="bob@x.com"))
    issue = lifecycle.change_status(issue.issue_id, "resolved", "bob@x.com")

    stamps = [entry.timestamp for entry in issue.timeline]
    assert stamps[0] == stamps[1]
    assert stamps == sorted(stamps)
    assert [entry.seq for entry in issue.timeline] == [0, 1, 2]


def test_timeline_entries_are_immutable(make_issue, db_session):
    issue = make_issue()
    issue.timeline[0].message = "rewritten"

    with pytest.raises(ValueError):
        db_session.flush()
    db_session.rollback()


@pytest.mark.parametrize("status", ALL_STATUSES)
def test_timeline_invariants_hold_in_every_state(issue_in_status, status):
    _assert_timeline_invariants(issue_in_status(status))
