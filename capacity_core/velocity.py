"""
Velocity Estimator

Derives each member's empirical hours per unit of work (story point or
issue) from the iterations in which they closed work, and resolves the
effective value used downstream through the fallback chain
individual -> team average -> static.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Optional

from .absences import AbsenceCalendar
from .calendar import working_days, round_half_up
from .models import Issue, Iteration, IterationCatalogue, TeamMember
from .policy import MetricType, VelocityMode, VelocityPolicy


logger = logging.getLogger(__name__)

# A member's own velocity is trusted from this many iterations on.
MIN_INDIVIDUAL_ITERATIONS = 2


class VelocityQuality(Enum):
    INSUFFICIENT = "insufficient"
    LOW = "low"
    MODERATE = "moderate"
    GOOD = "good"
    EXCELLENT = "excellent"


class VelocitySource(Enum):
    INDIVIDUAL = "individual"
    TEAM_AVERAGE = "team-average"
    STATIC = "static"


@dataclass
class IterationVelocity:
    """One iteration's contribution to a member's velocity."""
    name: str
    start_day: date
    due_day: date
    working_days: int
    units: int
    issue_count: int
    gross_hours: float
    absence_hours: float
    available_hours: float

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "startDate": self.start_day.isoformat(),
            "dueDate": self.due_day.isoformat(),
            "workingDays": self.working_days,
            "units": self.units,
            "issueCount": self.issue_count,
            "grossHours": round_half_up(self.gross_hours, 1),
            "absenceHours": self.absence_hours,
            "availableHours": round_half_up(self.available_hours, 1),
        }


@dataclass
class VelocityRecord:
    """Empirical velocity of a single member."""
    username: str
    unit: MetricType
    hours_per_unit: Optional[float] = None
    iterations_analyzed: int = 0
    total_units: int = 0
    total_available_hours: float = 0.0
    quality: VelocityQuality = VelocityQuality.INSUFFICIENT
    iterations: list[IterationVelocity] = field(default_factory=list)

    @property
    def is_reliable(self) -> bool:
        """Enough history for the member's own value to be used."""
        return self.hours_per_unit is not None and self.iterations_analyzed >= MIN_INDIVIDUAL_ITERATIONS

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "unit": self.unit.value,
            "hoursPerUnit": self.hours_per_unit,
            "iterationsAnalyzed": self.iterations_analyzed,
            "totalUnits": self.total_units,
            "totalAvailableHours": self.total_available_hours,
            "quality": self.quality.value,
            "iterations": [i.to_dict() for i in self.iterations],
        }


@dataclass
class EffectiveVelocity:
    """Hours per unit selected by the fallback chain, with its source."""
    hours_per_unit: float
    source: VelocitySource
    quality: str
    detail: str

    def to_dict(self) -> dict:
        return {
            "hoursPerUnit": self.hours_per_unit,
            "source": self.source.value,
            "quality": self.quality,
            "detail": self.detail,
        }


@dataclass
class TeamVelocity:
    """Velocity of every member plus the team average of the reliable ones."""
    unit: MetricType
    members: dict[str, VelocityRecord] = field(default_factory=dict)

    @property
    def reliable(self) -> list[VelocityRecord]:
        return [r for r in self.members.values() if r.is_reliable]

    @property
    def average_hours_per_unit(self) -> Optional[float]:
        reliable = self.reliable
        if not reliable:
            return None
        return round_half_up(sum(r.hours_per_unit for r in reliable) / len(reliable), 1)

    @property
    def quality(self) -> str:
        count = len(self.reliable)
        if count == 0:
            return VelocityQuality.INSUFFICIENT.value
        return VelocityQuality.GOOD.value if count >= 3 else VelocityQuality.MODERATE.value

    def to_dict(self) -> dict:
        return {
            "unit": self.unit.value,
            "averageHoursPerUnit": self.average_hours_per_unit,
            "membersAnalyzed": len(self.reliable),
            "quality": self.quality,
            "members": {name: record.to_dict() for name, record in self.members.items()},
        }


def classify_quality(units_chronological: list[int]) -> VelocityQuality:
    """
    Map the analyzed iterations to a quality level.

    Three or more iterations are ``excellent`` when every one has work and
    the amount never drops from one iteration to the next.
    """
    count = len(units_chronological)
    if count == 0:
        return VelocityQuality.INSUFFICIENT
    if count == 1:
        return VelocityQuality.LOW
    if count == 2:
        return VelocityQuality.MODERATE

    steady = all(u > 0 for u in units_chronological) and all(
        a <= b for a, b in zip(units_chronological, units_chronological[1:])
    )
    return VelocityQuality.EXCELLENT if steady else VelocityQuality.GOOD


class VelocityEstimator:
    """
    Estimates hours per unit of work from closed issues.

    Usage:
        estimator = VelocityEstimator(issues, policy, absences.snapshot(), catalogue)
        record = estimator.member(roster.require("ada"))
        team = estimator.team(roster.members())
        effective = estimator.effective("ada", team)
    """

    def __init__(
        self,
        issues: Iterable[Issue],
        policy: Optional[VelocityPolicy] = None,
        absences: Optional[AbsenceCalendar] = None,
        catalogue: Optional[IterationCatalogue] = None
    ):
        self.issues = list(issues)
        self.policy = policy or VelocityPolicy()
        self.absences = absences or AbsenceCalendar()
        self.catalogue = catalogue or IterationCatalogue()

    def _closed_by_iteration(self, username: str) -> dict[str, tuple[Iteration, list[Issue]]]:
        unit = self.policy.metric_type
        grouped: dict[str, tuple[Iteration, list[Issue]]] = {}

        for issue in self.issues:
            if issue.assignee != username or not issue.is_closed:
                continue
            iteration = self.catalogue.for_issue(issue)
            if iteration is None or not iteration.has_window:
                continue
            if unit == MetricType.POINTS and issue.story_points <= 0:
                continue
            grouped.setdefault(iteration.key, (iteration, []))[1].append(issue)

        return grouped

    def member(self, member: TeamMember) -> VelocityRecord:
        """Velocity of one member over the policy's lookback window."""
        unit = self.policy.metric_type
        weekly_hours = member.weekly_hours(self.policy.default_weekly_capacity)
        record = VelocityRecord(username=member.username, unit=unit)

        grouped = self._closed_by_iteration(member.username)
        recent = sorted(grouped.values(), key=lambda pair: pair[0].due_day, reverse=True)
        recent = recent[:self.policy.velocity_lookback_iterations]

        total_hours = 0.0
        for iteration, issues in recent:
            days = working_days(iteration.start_day, iteration.due_day)
            gross = days * weekly_hours / 5
            absence_hours = self.absences.hours_lost(
                member.username, iteration.start_day, iteration.due_day, weekly_hours
            )
            available = max(0.0, gross - absence_hours)
            units = sum(issue.units(unit) for issue in issues)

            record.iterations.append(IterationVelocity(
                name=iteration.name,
                start_day=iteration.start_day,
                due_day=iteration.due_day,
                working_days=days,
                units=units,
                issue_count=len(issues),
                gross_hours=gross,
                absence_hours=absence_hours,
                available_hours=available,
            ))
            record.total_units += units
            total_hours += available

        record.iterations_analyzed = len(record.iterations)
        record.total_available_hours = round_half_up(total_hours, 1)
        if record.total_units > 0:
            record.hours_per_unit = round_half_up(total_hours / record.total_units, 1)
        record.quality = classify_quality([i.units for i in reversed(record.iterations)])

        logger.debug(
            "Velocity for %s: %s h/%s from %d iterations (%s)",
            member.username, record.hours_per_unit, unit.value,
            record.iterations_analyzed, record.quality.value
        )
        return record

    def team(self, members: Iterable[TeamMember]) -> TeamVelocity:
        team = TeamVelocity(unit=self.policy.metric_type)
        for member in members:
            team.members[member.username] = self.member(member)
        return team

    def static(self) -> EffectiveVelocity:
        return EffectiveVelocity(
            hours_per_unit=self.policy.static_hours_per_unit,
            source=VelocitySource.STATIC,
            quality="configured",
            detail=f"Configured static value per {self.policy.metric_type.value}",
        )

    def effective(self, username: Optional[str], team: TeamVelocity) -> EffectiveVelocity:
        """
        Hours per unit for ``username`` through the fallback chain.

        ``username`` may be None or off the roster; such work is estimated
        with the team average, or the static value when there is none.
        """
        if self.policy.velocity_mode == VelocityMode.STATIC:
            return self.static()

        record = team.members.get(username) if username else None
        if record is not None and record.is_reliable:
            return EffectiveVelocity(
                hours_per_unit=record.hours_per_unit,
                source=VelocitySource.INDIVIDUAL,
                quality=record.quality.value,
                detail=f"Based on {record.iterations_analyzed} iterations",
            )

        average = team.average_hours_per_unit
        if average is not None:
            logger.debug("Velocity for %s falls back to the team average", username)
            return EffectiveVelocity(
                hours_per_unit=average,
                source=VelocitySource.TEAM_AVERAGE,
                quality=team.quality,
                detail=f"Team average ({len(team.reliable)} members)",
            )

        logger.debug("Velocity for %s falls back to the static value", username)
        return self.static()
