"""
Utilization Analyzer

Compares each member's allocated work with their capacity, classifies the
result into status bands, and flags members at risk of burnout.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Iterable, Optional

from .absences import AbsenceCalendar
from .calendar import round_half_up
from .models import Issue, TeamMember
from .policy import MetricType
from .roster import DEFAULT_ROLE, compatible_roles, roles_compatible
from .velocity import EffectiveVelocity


logger = logging.getLogger(__name__)


class UtilizationStatus(Enum):
    """Utilization band."""
    AVAILABLE = "available"      # < 60%
    BUSY = "busy"                # 60-80%
    AT_CAPACITY = "at-capacity"  # 80-100%
    OVERLOADED = "overloaded"    # 100%+, or no capacity at all


def utilization_percent(hours_allocated: float, capacity_hours: float) -> int:
    """Allocated hours as a whole percentage of capacity; 0 without capacity."""
    if capacity_hours <= 0:
        return 0
    return round_half_up(100 * hours_allocated / capacity_hours)


def utilization_status(utilization: float, capacity_hours: float) -> UtilizationStatus:
    if capacity_hours <= 0 or utilization >= 100:
        return UtilizationStatus.OVERLOADED
    if utilization >= 80:
        return UtilizationStatus.AT_CAPACITY
    if utilization >= 60:
        return UtilizationStatus.BUSY
    return UtilizationStatus.AVAILABLE


class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class MemberWorkload:
    """Workload picture of one member."""
    username: str
    role: Optional[str] = None
    open_issues: int = 0
    units: int = 0
    story_points: int = 0
    overdue_issues: int = 0
    mean_issue_age: int = 0
    on_leave: bool = False
    hours_allocated: float = 0.0
    capacity_hours: float = 0.0
    velocity: Optional[EffectiveVelocity] = None

    @property
    def utilization(self) -> int:
        return utilization_percent(self.hours_allocated, self.capacity_hours)

    @property
    def status(self) -> UtilizationStatus:
        return utilization_status(self.utilization, self.capacity_hours)

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "role": self.role,
            "openIssues": self.open_issues,
            "units": self.units,
            "storyPoints": self.story_points,
            "overdueIssues": self.overdue_issues,
            "meanIssueAge": self.mean_issue_age,
            "onLeave": self.on_leave,
            "hoursAllocated": round_half_up(self.hours_allocated, 1),
            "capacityHours": self.capacity_hours,
            "utilization": self.utilization,
            "status": self.status.value,
            "velocity": self.velocity.to_dict() if self.velocity else None,
        }


@dataclass
class TeamWorkloadSummary:
    """Summary of team workload."""
    members: list[MemberWorkload] = field(default_factory=list)
    calculated_at: datetime = field(default_factory=datetime.now)

    @property
    def team_size(self) -> int:
        return len(self.members)

    def count(self, status: UtilizationStatus) -> int:
        return len([m for m in self.members if m.status == status])

    @property
    def total_hours_allocated(self) -> float:
        return sum(m.hours_allocated for m in self.members)

    @property
    def total_capacity_hours(self) -> float:
        return sum(m.capacity_hours for m in self.members)

    @property
    def average_utilization(self) -> float:
        if not self.members:
            return 0
        return sum(m.utilization for m in self.members) / len(self.members)

    @property
    def utilization_spread(self) -> float:
        """Standard deviation of member utilization."""
        if len(self.members) < 2:
            return 0
        avg = self.average_utilization
        variance = sum((m.utilization - avg) ** 2 for m in self.members) / len(self.members)
        return variance ** 0.5

    @property
    def is_balanced(self) -> bool:
        return self.utilization_spread < 30

    def get_most_loaded(self, n: int = 3) -> list[MemberWorkload]:
        return sorted(self.members, key=lambda m: m.utilization, reverse=True)[:n]

    def get_most_available(self, n: int = 3) -> list[MemberWorkload]:
        return sorted(self.members, key=lambda m: m.utilization)[:n]

    def to_dict(self) -> dict:
        return {
            "calculatedAt": self.calculated_at.isoformat(),
            "summary": {
                "teamSize": self.team_size,
                "available": self.count(UtilizationStatus.AVAILABLE),
                "busy": self.count(UtilizationStatus.BUSY),
                "atCapacity": self.count(UtilizationStatus.AT_CAPACITY),
                "overloaded": self.count(UtilizationStatus.OVERLOADED),
                "totalHoursAllocated": round_half_up(self.total_hours_allocated, 1),
                "totalCapacityHours": round_half_up(self.total_capacity_hours, 1),
                "teamUtilization": utilization_percent(self.total_hours_allocated, self.total_capacity_hours),
                "averageUtilization": round_half_up(self.average_utilization, 1),
                "spread": round_half_up(self.utilization_spread, 1),
                "isBalanced": self.is_balanced,
            },
            "mostLoaded": [m.username for m in self.get_most_loaded()],
            "mostAvailable": [m.username for m in self.get_most_available()],
            "members": [m.to_dict() for m in self.members],
        }


@dataclass
class BurnoutRisk:
    """A member whose load pattern suggests burnout."""
    username: str
    score: int
    role: Optional[str] = None
    factors: list[str] = field(default_factory=list)
    open_issues: int = 0
    story_points: int = 0
    overdue_issues: int = 0

    @property
    def level(self) -> RiskLevel:
        if self.score >= 60:
            return RiskLevel.HIGH
        elif self.score >= 40:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "role": self.role,
            "score": self.score,
            "level": self.level.value,
            "factors": self.factors,
            "openIssues": self.open_issues,
            "storyPoints": self.story_points,
            "overdueIssues": self.overdue_issues,
        }


class WorkloadAnalyzer:
    """
    Analyzes team workload against capacity.

    Usage:
        analyzer = WorkloadAnalyzer(metric_type, absences.snapshot(), today)
        summary = analyzer.workload_distribution(members, issues, capacities, velocities)
        risks = analyzer.burnout_risks(members, issues)
    """

    def __init__(
        self,
        metric_type: MetricType = MetricType.POINTS,
        absences: Optional[AbsenceCalendar] = None,
        today: Optional[date] = None
    ):
        self.metric_type = metric_type
        self.absences = absences or AbsenceCalendar()
        self.today = today or date.today()

    def _base_workload(self, member: TeamMember, issues: list[Issue]) -> MemberWorkload:
        """Counts, overdue items and issue age over the member's open issues."""
        workload = MemberWorkload(
            username=member.username,
            role=member.role,
            on_leave=self.absences.is_absent(member.username, self.today),
        )
        ages = []
        for issue in issues:
            if not issue.is_open or issue.assignee != member.username:
                continue
            workload.open_issues += 1
            workload.units += issue.units(self.metric_type)
            workload.story_points += issue.story_points
            if issue.due_day is not None and issue.due_day < self.today:
                workload.overdue_issues += 1
            if issue.created_at is not None:
                ages.append((self.today - issue.created_at).days)

        if ages:
            workload.mean_issue_age = round_half_up(sum(ages) / len(ages))
        return workload

    def member_workload(
        self,
        member: TeamMember,
        issues: Iterable[Issue],
        capacity_hours: float,
        velocity: EffectiveVelocity
    ) -> MemberWorkload:
        """
        Workload for a single member.

        Args:
            member: Roster entry
            issues: Issues in the window being analyzed
            capacity_hours: Final capacity of the member over the window
            velocity: Effective hours per unit for the member
        """
        workload = self._base_workload(member, list(issues))
        workload.capacity_hours = capacity_hours
        workload.velocity = velocity
        workload.hours_allocated = workload.units * velocity.hours_per_unit
        return workload

    def workload_distribution(
        self,
        members: Iterable[TeamMember],
        issues: Iterable[Issue],
        capacities: dict[str, float],
        velocities: dict[str, EffectiveVelocity]
    ) -> TeamWorkloadSummary:
        """Workload of every member, most utilized first."""
        issues = list(issues)
        workloads = [
            self.member_workload(m, issues, capacities.get(m.username, 0.0), velocities[m.username])
            for m in members
        ]
        workloads.sort(key=lambda w: w.utilization, reverse=True)
        return TeamWorkloadSummary(members=workloads)

    def burnout_risks(self, members: Iterable[TeamMember], issues: Iterable[Issue]) -> list[BurnoutRisk]:
        """
        Members at risk of burnout, highest score first.

        Members on leave today are neither counted in the team averages nor
        flagged.
        """
        issues = list(issues)
        active = [w for w in (self._base_workload(m, issues) for m in members) if not w.on_leave]
        if not active:
            return []

        avg_open = sum(w.open_issues for w in active) / len(active)
        avg_points = sum(w.story_points for w in active) / len(active)

        risks = []
        for workload in active:
            risk = BurnoutRisk(
                username=workload.username,
                score=0,
                role=workload.role,
                open_issues=workload.open_issues,
                story_points=workload.story_points,
                overdue_issues=workload.overdue_issues,
            )
            if workload.open_issues > avg_open * 1.5:
                risk.score += 30
                risk.factors.append(f"{workload.open_issues} open issues (team avg: {round_half_up(avg_open)})")
            if workload.story_points > avg_points * 1.5:
                risk.score += 25
                risk.factors.append(f"{workload.story_points} story points (team avg: {round_half_up(avg_points)})")
            if workload.overdue_issues >= 3:
                risk.score += 20
                risk.factors.append(f"{workload.overdue_issues} overdue issues")
            if workload.mean_issue_age > 45:
                risk.score += 15
                risk.factors.append(f"Average issue age: {workload.mean_issue_age} days")
            if workload.open_issues > avg_open * 2:
                risk.score += 30
                risk.factors.append("Critical overload")

            if risk.score >= 30:
                risks.append(risk)

        logger.debug("Burnout check over %d active members: %d at risk", len(active), len(risks))
        return sorted(risks, key=lambda r: r.score, reverse=True)

    def suggest_rebalancing(self, summary: TeamWorkloadSummary) -> list[dict]:
        """
        Suggest moving work from overloaded members to less loaded ones.

        Each overloaded member with work gets one suggestion toward the least
        utilized member below 80% whose role is compatible and who has
        capacity. Without such a member the suggestion is a warning with no
        target.
        """
        suggestions = []

        overloaded = [
            m for m in summary.members
            if m.status == UtilizationStatus.OVERLOADED and m.hours_allocated > 0
        ]
        candidates = sorted(
            (m for m in summary.members if m.capacity_hours > 0 and m.utilization < 80),
            key=lambda m: m.utilization,
        )

        for over in overloaded:
            from_role = over.role or DEFAULT_ROLE
            match = next(
                (m for m in candidates if m.username != over.username and roles_compatible(over.role, m.role)),
                None,
            )
            if match is None:
                needs = compatible_roles(over.role) or [from_role]
                suggestions.append({
                    "from": over.username,
                    "fromRole": from_role,
                    "to": None,
                    "toRole": None,
                    "fromUtilization": over.utilization,
                    "toUtilization": None,
                    "issues": 0,
                    "hours": 0,
                    "warning": True,
                    "recommendation": f"No available team members with compatible role ({from_role})",
                    "compatibilityReason": f"Needs: {', '.join(needs)}",
                })
                continue

            to_role = match.role or DEFAULT_ROLE
            if to_role == from_role:
                reason = "Same role"
            else:
                reason = f"Compatible roles ({', '.join(compatible_roles(over.role))})"
            suggestions.append({
                "from": over.username,
                "fromRole": from_role,
                "to": match.username,
                "toRole": to_role,
                "fromUtilization": over.utilization,
                "toUtilization": match.utilization,
                "issues": math.ceil(over.open_issues * 3 / 10),
                "hours": round_half_up(over.hours_allocated * 3 / 10, 1),
                "warning": False,
                "recommendation": (
                    f"Consider moving some work from {over.username} ({over.utilization}%) "
                    f"to {match.username} ({match.utilization}%)"
                ),
                "compatibilityReason": reason,
            })

        logger.debug("Rebalancing: %d overloaded, %d suggestions", len(overloaded), len(suggestions))
        return suggestions
