"""
Capacity Forecaster

Week-by-week forward projection of team capacity against the work due in
each week. Weeks run Monday to Sunday; week 1 is the week containing
"today".
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable, Optional

from .absences import AbsenceCalendar
from .analyzer import UtilizationStatus, utilization_percent, utilization_status
from .calendar import week_window, round_half_up
from .errors import PolicyViolation
from .models import Issue, Milestone
from .policy import MetricType
from .scenarios import Scenario, ScenarioSimulator, SimulatedMember, TeamChange
from .velocity import EffectiveVelocity


logger = logging.getLogger(__name__)

DEFAULT_FORECAST_WEEKS = 12


@dataclass
class ForecastWeek:
    """Projected capacity and workload for one week."""
    week: int
    week_start: date
    week_end: date
    team_count: int = 0
    total_capacity: float = 0.0
    effective_capacity: float = 0.0
    estimated_workload: float = 0.0
    issue_count: int = 0
    milestones: list[Milestone] = field(default_factory=list)
    team_changes: list[TeamChange] = field(default_factory=list)

    @property
    def utilization(self) -> int:
        return utilization_percent(self.estimated_workload, self.effective_capacity)

    @property
    def status(self) -> UtilizationStatus:
        return utilization_status(self.utilization, self.effective_capacity)

    def to_dict(self) -> dict:
        return {
            "week": self.week,
            "weekStart": self.week_start.isoformat(),
            "weekEnd": self.week_end.isoformat(),
            "teamCount": self.team_count,
            "totalCapacity": round_half_up(self.total_capacity, 1),
            "effectiveCapacity": round_half_up(self.effective_capacity, 1),
            "estimatedWorkload": round_half_up(self.estimated_workload, 1),
            "utilization": self.utilization,
            "status": self.status.value,
            "issueCount": self.issue_count,
            "milestones": [m.to_dict() for m in self.milestones],
            "teamChanges": [
                dict(c.to_dict(), description=c.describe()) for c in self.team_changes
            ],
        }


@dataclass
class ForecastResult:
    weeks: list[ForecastWeek] = field(default_factory=list)
    scenario_id: Optional[str] = None
    scenario_name: Optional[str] = None
    generated_on: date = field(default_factory=date.today)

    @property
    def peak_utilization(self) -> int:
        return max((w.utilization for w in self.weeks), default=0)

    @property
    def overloaded_weeks(self) -> int:
        return len([w for w in self.weeks if w.status == UtilizationStatus.OVERLOADED])

    def to_dict(self) -> dict:
        return {
            "scenario": {"id": self.scenario_id, "name": self.scenario_name},
            "generatedOn": self.generated_on.isoformat(),
            "summary": {
                "weeks": len(self.weeks),
                "peakUtilization": self.peak_utilization,
                "overloadedWeeks": self.overloaded_weeks,
            },
            "weeks": [w.to_dict() for w in self.weeks],
        }


class Forecaster:
    """
    Projects capacity and workload over the coming weeks.

    Usage:
        forecaster = Forecaster(issues, milestones, absences.snapshot(), velocity_for, today=today)
        result = forecaster.forecast(ScenarioSimulator(roster.members()), weeks=12)
    """

    def __init__(
        self,
        issues: Iterable[Issue],
        milestones: Iterable[Milestone],
        absences: AbsenceCalendar,
        velocity_for: Callable[[Optional[str]], EffectiveVelocity],
        metric_type: MetricType = MetricType.POINTS,
        today: Optional[date] = None
    ):
        self.issues = [i for i in issues if i.is_open and i.due_day is not None]
        self.milestones = [m for m in milestones if m.due_day is not None]
        self.absences = absences
        self.velocity_for = velocity_for
        self.metric_type = metric_type
        self.today = today or date.today()

    def _member_capacity(self, member: SimulatedMember, week: int, start: date, end: date) -> tuple[float, float]:
        """Ramped weekly hours, and the same less absences (never negative)."""
        ramped = member.effective_weekly_hours(week)
        days_off = self.absences.working_days_lost(member.username, start, end)
        effective = max(0.0, ramped - days_off * member.weekly_hours / 5)
        return ramped, effective

    def project_week(self, simulator: ScenarioSimulator, week: int) -> ForecastWeek:
        window = week_window(self.today, week)
        team = simulator.team_for_week(week)
        result = ForecastWeek(
            week=week,
            week_start=window.start,
            week_end=window.end,
            team_count=len(team),
            team_changes=simulator.changes_in_week(week),
        )

        for member in team:
            total, effective = self._member_capacity(member, week, window.start, window.end)
            result.total_capacity += total
            result.effective_capacity += effective

        for issue in self.issues:
            if not window.contains(issue.due_day):
                continue
            result.issue_count += 1
            result.estimated_workload += issue.units(self.metric_type) * self.velocity_for(issue.assignee).hours_per_unit

        result.milestones = [m for m in self.milestones if window.contains(m.due_day)]
        return result

    def forecast(
        self,
        simulator: ScenarioSimulator,
        weeks: int = DEFAULT_FORECAST_WEEKS,
        scenario: Optional[Scenario] = None
    ) -> ForecastResult:
        """
        Forecast ``weeks`` weeks for the team the simulator produces.

        A simulator built without changes gives the baseline forecast.
        """
        if isinstance(weeks, bool) or not isinstance(weeks, int) or weeks < 1:
            raise PolicyViolation(f"Forecast length must be a positive number of weeks, got {weeks!r}")

        result = ForecastResult(
            scenario_id=scenario.id if scenario else None,
            scenario_name=scenario.name if scenario else None,
            generated_on=self.today,
        )
        for week in range(1, weeks + 1):
            result.weeks.append(self.project_week(simulator, week))

        logger.debug(
            "Forecast %s: %d weeks, peak utilization %d%%",
            result.scenario_id or "baseline", weeks, result.peak_utilization
        )
        return result
