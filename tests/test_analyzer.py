"""
Tests for the workload analyzer.
"""

import pytest
from datetime import date, timedelta

from capacity_core.absences import AbsenceCalendar
from capacity_core.analyzer import (
    BurnoutRisk,
    MemberWorkload,
    RiskLevel,
    TeamWorkloadSummary,
    UtilizationStatus,
    WorkloadAnalyzer,
    utilization_percent,
    utilization_status
)
from capacity_core.models import Absence, IssueState, TeamMember
from capacity_core.velocity import EffectiveVelocity, VelocitySource

from conftest import open_issue


TODAY = date(2025, 3, 12)
TEAM = [TeamMember("ada", role="dev"), TeamMember("ben", role="dev"), TeamMember("cid", role="qa")]


def velocity(hours):
    return EffectiveVelocity(hours, VelocitySource.STATIC, "configured", "test")


def open_issues(username, count, prefix=None, **kwargs):
    prefix = prefix or username
    return [open_issue(f"{prefix}-{n}", username, **kwargs) for n in range(count)]


class TestUtilizationBands:
    """Tests for status classification."""

    @pytest.mark.parametrize("utilization,expected", [
        (0, UtilizationStatus.AVAILABLE),
        (59, UtilizationStatus.AVAILABLE),
        (60, UtilizationStatus.BUSY),
        (79, UtilizationStatus.BUSY),
        (80, UtilizationStatus.AT_CAPACITY),
        (99, UtilizationStatus.AT_CAPACITY),
        (100, UtilizationStatus.OVERLOADED),
        (180, UtilizationStatus.OVERLOADED),
    ])
    def test_bands(self, utilization, expected):
        assert utilization_status(utilization, 80) == expected

    def test_no_capacity_is_overloaded(self):
        """A member with zero capacity shows 0% but is overloaded."""
        assert utilization_percent(12, 0) == 0
        assert utilization_status(0, 0) == UtilizationStatus.OVERLOADED

    def test_percent_rounds_half_up(self):
        assert utilization_percent(1, 8) == 13
        assert utilization_percent(120, 80) == 150


class TestWorkloadDistribution:
    """Tests for WorkloadAnalyzer.workload_distribution."""

    def setup_method(self):
        self.analyzer = WorkloadAnalyzer(today=TODAY)
        self.members = TEAM[:2]
        self.issues = open_issues("ada", 4, points=5) + open_issues("ben", 1, points=2)

    def test_member_workload(self):
        """Test allocated hours are units times hours per unit."""
        workload = self.analyzer.member_workload(TEAM[0], self.issues, 80, velocity(6))

        assert workload.open_issues == 4
        assert workload.units == 20
        assert workload.hours_allocated == 120
        assert workload.utilization == 150
        assert workload.status == UtilizationStatus.OVERLOADED

    def test_distribution_sorted_by_utilization(self):
        summary = self.analyzer.workload_distribution(
            self.members, self.issues,
            capacities={"ada": 80, "ben": 80},
            velocities={"ada": velocity(6), "ben": velocity(6)},
        )

        assert [m.username for m in summary.members] == ["ada", "ben"]
        assert summary.members[1].utilization == 15
        assert summary.count(UtilizationStatus.OVERLOADED) == 1
        assert summary.count(UtilizationStatus.AVAILABLE) == 1
        assert not summary.is_balanced

    def test_closed_and_unassigned_issues_ignored(self):
        issues = self.issues + [open_issue("u", None, points=8)]
        issues[0].state = IssueState.CLOSED

        workload = self.analyzer.member_workload(TEAM[0], issues, 80, velocity(6))

        assert workload.open_issues == 3

    def test_overdue_and_age(self):
        issues = [
            open_issue(1, "ada", due=TODAY - timedelta(days=1), created=TODAY - timedelta(days=10)),
            open_issue(2, "ada", due=TODAY, created=TODAY - timedelta(days=21)),
            open_issue(3, "ada"),
        ]

        workload = self.analyzer.member_workload(TEAM[0], issues, 80, velocity(6))

        assert workload.overdue_issues == 1
        assert workload.mean_issue_age == 16

    def test_summary_to_dict(self):
        summary = self.analyzer.workload_distribution(
            self.members, self.issues,
            capacities={"ada": 80, "ben": 80},
            velocities={"ada": velocity(6), "ben": velocity(6)},
        )

        data = summary.to_dict()

        assert data["summary"]["teamSize"] == 2
        assert data["summary"]["totalHoursAllocated"] == 132
        assert data["summary"]["teamUtilization"] == 83
        assert data["mostLoaded"][0] == "ada"
        assert data["members"][0]["status"] == "overloaded"


class TestTeamWorkloadSummary:
    """Tests for summary metrics."""

    def test_balanced_team(self):
        members = [
            MemberWorkload("ada", hours_allocated=40, capacity_hours=80),
            MemberWorkload("ben", hours_allocated=48, capacity_hours=80),
        ]
        summary = TeamWorkloadSummary(members=members)

        assert summary.average_utilization == 55
        assert summary.utilization_spread == 5
        assert summary.is_balanced
        assert summary.get_most_available(1)[0].username == "ada"

    def test_empty(self):
        summary = TeamWorkloadSummary()

        assert summary.average_utilization == 0
        assert summary.utilization_spread == 0


class TestRebalancing:
    """Tests for rebalancing suggestions."""

    def test_suggest_rebalancing(self):
        """Test moving work from an overloaded member to the least utilized one."""
        summary = TeamWorkloadSummary(members=[
            MemberWorkload("ada", role="Developer", open_issues=10, hours_allocated=120, capacity_hours=80),
            MemberWorkload("ben", role="Developer", hours_allocated=40, capacity_hours=80),
            MemberWorkload("cid", role="Developer", hours_allocated=8, capacity_hours=80),
        ])

        suggestions = WorkloadAnalyzer().suggest_rebalancing(summary)

        assert len(suggestions) == 1
        suggestion = suggestions[0]
        assert suggestion["from"] == "ada"
        assert suggestion["to"] == "cid"
        assert suggestion["issues"] == 3
        assert suggestion["hours"] == 36
        assert suggestion["compatibilityReason"] == "Same role"
        assert "150%" in suggestion["recommendation"]

    def test_incompatible_role_gives_warning(self):
        """A Scrum Master is not offered a Developer's work."""
        summary = TeamWorkloadSummary(members=[
            MemberWorkload("ada", role="Developer", open_issues=6, hours_allocated=120, capacity_hours=80),
            MemberWorkload("sam", role="Scrum Master", hours_allocated=8, capacity_hours=80),
        ])

        suggestions = WorkloadAnalyzer().suggest_rebalancing(summary)

        assert len(suggestions) == 1
        assert suggestions[0]["to"] is None
        assert suggestions[0]["warning"] is True
        assert suggestions[0]["compatibilityReason"].startswith("Needs: Data Engineer")

    def test_compatible_role_in_same_group(self):
        summary = TeamWorkloadSummary(members=[
            MemberWorkload("ada", open_issues=4, hours_allocated=100, capacity_hours=80),
            MemberWorkload("sam", role="Scrum Master", hours_allocated=0, capacity_hours=80),
            MemberWorkload("quinn", role="QA Engineer", hours_allocated=20, capacity_hours=80),
        ])

        suggestion = WorkloadAnalyzer().suggest_rebalancing(summary)[0]

        # a missing role counts as Developer
        assert suggestion["to"] == "quinn"
        assert suggestion["fromRole"] == "Developer"
        assert suggestion["compatibilityReason"].startswith("Compatible roles")

    def test_members_without_capacity_are_not_targets(self):
        summary = TeamWorkloadSummary(members=[
            MemberWorkload("ada", hours_allocated=120, capacity_hours=80),
            MemberWorkload("ben", hours_allocated=0, capacity_hours=0),
            MemberWorkload("cid", hours_allocated=70, capacity_hours=80),
        ])

        suggestions = WorkloadAnalyzer().suggest_rebalancing(summary)

        # ben has no capacity and cid is at 88%
        assert [s["to"] for s in suggestions] == [None]

    def test_overloaded_without_work(self):
        summary = TeamWorkloadSummary(members=[
            MemberWorkload("ada", hours_allocated=0, capacity_hours=0),
            MemberWorkload("ben", hours_allocated=0, capacity_hours=80),
        ])

        # ada is overloaded at 0% but has nothing to hand over
        assert WorkloadAnalyzer().suggest_rebalancing(summary) == []


class TestBurnoutRisks:
    """Tests for burnout detection."""

    def test_critical_overload(self):
        """Twelve open issues against a team average of four scores 95."""
        created = TODAY - timedelta(days=60)
        issues = (
            open_issues("ben", 4, prefix="late", due=TODAY - timedelta(days=3), created=created)
            + open_issues("ben", 8, created=created)
        )

        risks = WorkloadAnalyzer(today=TODAY).burnout_risks(TEAM, issues)

        assert len(risks) == 1
        risk = risks[0]
        assert risk.username == "ben"
        assert risk.score == 95
        assert risk.level == RiskLevel.HIGH
        assert risk.overdue_issues == 4
        assert "Critical overload" in risk.factors
        assert "12 open issues (team avg: 4)" in risk.factors

    def test_members_on_leave_excluded(self):
        """A member away today is neither flagged nor part of the averages."""
        calendar = AbsenceCalendar([Absence("cid", TODAY, TODAY + timedelta(days=4))])
        issues = open_issues("ada", 12) + open_issues("cid", 30)

        risks = WorkloadAnalyzer(absences=calendar, today=TODAY).burnout_risks(TEAM, issues)

        assert [r.username for r in risks] == ["ada"]
        assert risks[0].score == 30
        assert risks[0].level == RiskLevel.LOW

    def test_medium_risk(self):
        issues = (
            open_issues("ada", 5, created=TODAY - timedelta(days=50))
            + open_issues("ben", 3)
            + open_issues("cid", 1)
        )

        risks = WorkloadAnalyzer(today=TODAY).burnout_risks(TEAM, issues)

        assert [(r.username, r.score) for r in risks] == [("ada", 45)]
        assert risks[0].level == RiskLevel.MEDIUM

    def test_below_threshold_not_reported(self):
        """Story points alone add 25, short of the reporting threshold."""
        issues = open_issues("ada", 3, points=10) + open_issues("ben", 3, points=1)

        risks = WorkloadAnalyzer(today=TODAY).burnout_risks(TEAM[:2], issues)

        assert risks == []

    def test_everyone_on_leave(self):
        calendar = AbsenceCalendar([Absence(m.username, TODAY, TODAY) for m in TEAM])

        assert WorkloadAnalyzer(absences=calendar, today=TODAY).burnout_risks(TEAM, []) == []

    def test_levels(self):
        assert BurnoutRisk("ada", 60).level == RiskLevel.HIGH
        assert BurnoutRisk("ada", 59).level == RiskLevel.MEDIUM
        assert BurnoutRisk("ada", 40).level == RiskLevel.MEDIUM
        assert BurnoutRisk("ada", 39).level == RiskLevel.LOW
