"""
Shared fixtures for the capacity planning tests.
"""

from datetime import date

import pytest

from capacity_core.absences import AbsenceStore
from capacity_core.models import Issue, IssueState, Iteration, TeamMember
from capacity_core.roster import Roster
from capacity_core.storage import InMemoryStore, Namespace


SPRINT_1 = Iteration(name="Sprint-1", id="101", start_day=date(2025, 3, 3), due_day=date(2025, 3, 14))


def make_roster(namespace: Namespace, *members) -> Roster:
    """Roster with the given members; each is a username or (username, weekly_hours)."""
    roster = Roster(namespace)
    for entry in members:
        if isinstance(entry, tuple):
            username, hours = entry
        else:
            username, hours = entry, None
        roster.admit(TeamMember(username=username, base_weekly_hours=hours))
    return roster


def closed_issue(issue_id, username, iteration, points=None, labels=None) -> Issue:
    return Issue(
        id=str(issue_id),
        state=IssueState.CLOSED,
        assignee=username,
        iteration=iteration,
        weight=points,
        labels=labels or [],
    )


def open_issue(issue_id, username, points=None, due=None, created=None, iteration=None) -> Issue:
    return Issue(
        id=str(issue_id),
        state=IssueState.OPEN,
        assignee=username,
        weight=points,
        due_day=due,
        created_at=created,
        iteration=iteration,
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def namespace(store):
    return Namespace(store, "alpha")


@pytest.fixture
def roster(namespace):
    return make_roster(namespace, ("ada", 40), ("ben", 40))


@pytest.fixture
def absences(namespace, roster):
    return AbsenceStore(namespace, roster)


@pytest.fixture
def sprint_1():
    return SPRINT_1
