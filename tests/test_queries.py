"""Tests for issue listing, search and dashboard counters."""

import pytest

from cityfix.lifecycle import StaffRef
from cityfix.queries import IssueQueries


@pytest.fixture
def queries(repo):
    return IssueQueries(repo)


@pytest.fixture
def seeded(make_issue, lifecycle):
    issues = [
        make_issue(reporter="a@x.com", title="Pothole on Main", category="Road", location="Main St"),
        make_issue(reporter="a@x.com", title="Broken streetlight", category="Lighting", location="Elm St"),
        make_issue(reporter="b@x.com", title="Overflowing bin", category="Waste", location="Main Square"),
        make_issue(reporter="b@x.com", title="Graffiti", category="Vandalism", location="Park 100%"),
    ]
    lifecycle.assign(issues[1].issue_id, StaffRef(name="Bob", email="bob@x.com"))
    return issues


def test_newest_first(queries, seeded):
    total, issues = queries.list_issues()

    assert total == 4
    assert [i.title for i in issues] == [
        "Graffiti", "Overflowing bin", "Broken streetlight", "Pothole on Main",
    ]


def test_exact_filters(queries, seeded):
    total, issues = queries.list_issues(category="Road")
    assert total == 1 and issues[0].title == "Pothole on Main"

    total, _ = queries.list_issues(status="in-progress")
    assert total == 1

    total, _ = queries.list_issues(priority="high")
    assert total == 0


def test_search_is_case_insensitive_across_fields(queries, seeded):
    # "main" hits a title, a location and another location
    total, issues = queries.list_issues(search="MAIN")
    assert total == 2
    assert {i.title for i in issues} == {"Pothole on Main", "Overflowing bin"}

    total, issues = queries.list_issues(search="light")
    assert [i.title for i in issues] == ["Broken streetlight"]

    total, _ = queries.list_issues(search="waste")
    assert total == 1


def test_search_treats_wildcards_literally(queries, seeded):
    total, issues = queries.list_issues(search="100%")
    assert total == 1 and issues[0].title == "Graffiti"

    total, _ = queries.list_issues(search="%")
    assert total == 1


def test_search_combines_with_filters(queries, seeded):
    total, _ = queries.list_issues(search="main", category="Waste")
    assert total == 1


def test_pagination(queries, make_issue):
    for n in range(8):
        make_issue(reporter=f"user{n}@x.com", title=f"Issue {n}")

    total, first = queries.list_issues()
    assert total == 8 and len(first) == 6

    _, second = queries.list_issues(page=2)
    assert len(second) == 2
    assert {i.issue_id for i in first}.isdisjoint({i.issue_id for i in second})

    _, sized = queries.list_issues(page="2", page_size="3")
    assert [i.title for i in sized] == ["Issue 4", "Issue 3", "Issue 2"]


@pytest.mark.parametrize("page,page_size", [(None, None), ("abc", "xyz"), ("0", "-5")])
def test_bad_paging_falls_back_to_defaults(queries, make_issue, page, page_size):
    for n in range(7):
        make_issue(reporter=f"user{n}@x.com", title=f"Issue {n}")

    total, issues = queries.list_issues(page=page, page_size=page_size)

    assert total == 7
    assert len(issues) == 6
    assert issues[0].title == "Issue 6"


def test_staff_issues(queries, seeded):
    issues = queries.staff_issues("bob@x.com")
    assert [i.title for i in issues] == ["Broken streetlight"]
    assert queries.staff_issues("nobody@x.com") == []


def test_dashboard_stats(queries, seeded, repo):
    repo.add_user("staff@x.com", role="staff")
    repo.commit()

    stats = queries.dashboard_stats()

    assert stats.total_issues == 4
    assert stats.pending_issues == 3
    assert stats.in_progress_issues == 1
    assert stats.resolved_issues == 0
    assert stats.total_users == 2
    assert stats.total_staff == 1
