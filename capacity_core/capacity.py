"""
Capacity Resolver

Per-member per-iteration capacity: the base hours of the iteration, less
the hours lost to absences, unless an operator has set a manual override.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from .absences import AbsenceCalendar
from .calendar import working_days, round_half_up
from .errors import PolicyViolation
from .models import Iteration, TeamMember
from .roster import Roster
from .storage import Namespace, SPRINT_CAPACITY_KEY


logger = logging.getLogger(__name__)


@dataclass
class ManualOverride:
    iteration_id: str
    username: str
    final_hours: float
    reason: str = ""

    def to_dict(self) -> dict:
        return {
            "iterationId": self.iteration_id,
            "username": self.username,
            "finalHours": self.final_hours,
            "reason": self.reason,
        }


@dataclass
class SprintCapacity:
    """Capacity of one member for one iteration."""
    username: str
    weekly_hours: float
    base_hours: float = 0
    absence_hours_lost: float = 0.0
    working_days_lost: int = 0
    auto_adjusted_hours: float = 0
    manual_override_hours: Optional[float] = None
    override_reason: str = ""

    @property
    def final_hours(self) -> float:
        if self.manual_override_hours is not None:
            return self.manual_override_hours
        return self.auto_adjusted_hours

    @property
    def has_override(self) -> bool:
        return self.manual_override_hours is not None

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "weeklyHours": self.weekly_hours,
            "baseHours": self.base_hours,
            "absenceHoursLost": self.absence_hours_lost,
            "workingDaysLost": self.working_days_lost,
            "autoAdjustedHours": self.auto_adjusted_hours,
            "manualOverrideHours": self.manual_override_hours,
            "overrideReason": self.override_reason,
            "finalHours": self.final_hours,
        }


@dataclass
class IterationCapacity:
    """Capacity breakdown of the whole team for one iteration."""
    iteration: Iteration
    working_days: int = 0
    members: list[SprintCapacity] = field(default_factory=list)

    @property
    def total_base_hours(self) -> float:
        return sum(m.base_hours for m in self.members)

    @property
    def total_absence_hours(self) -> float:
        return round_half_up(sum(m.absence_hours_lost for m in self.members), 1)

    @property
    def total_auto_adjusted_hours(self) -> float:
        return round_half_up(sum(m.auto_adjusted_hours for m in self.members), 1)

    @property
    def total_final_hours(self) -> float:
        return round_half_up(sum(m.final_hours for m in self.members), 1)

    def get(self, username: str) -> Optional[SprintCapacity]:
        return next((m for m in self.members if m.username == username), None)

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration.to_dict(),
            "workingDays": self.working_days,
            "totals": {
                "baseHours": self.total_base_hours,
                "absenceHoursLost": self.total_absence_hours,
                "autoAdjustedHours": self.total_auto_adjusted_hours,
                "finalHours": self.total_final_hours,
            },
            "members": [m.to_dict() for m in self.members],
        }


class OverrideStore:
    """
    Manual capacity overrides persisted under ``sprintCapacity``.

    Overrides are keyed by iteration id and username. They are never
    invalidated automatically; writing None clears one.
    """

    def __init__(self, namespace: Namespace, roster: Optional[Roster] = None):
        self.namespace = namespace
        self.roster = roster

    def _load(self) -> list[dict]:
        sprints = []
        for _origin, blob in self.namespace.iter_blobs(SPRINT_CAPACITY_KEY):
            sprints.extend(blob.get("sprints", []))
        return sprints

    def all(self) -> list[ManualOverride]:
        overrides = []
        for sprint in self._load():
            for entry in sprint.get("memberCapacity", []):
                overrides.append(ManualOverride(
                    iteration_id=str(sprint["sprintId"]),
                    username=entry["username"],
                    final_hours=entry["availableHours"],
                    reason=entry.get("reason", ""),
                ))
        return overrides

    def get(self, iteration_id: str, username: str) -> Optional[ManualOverride]:
        return next(
            (o for o in self.all() if o.iteration_id == str(iteration_id) and o.username == username),
            None
        )

    def for_iteration(self, iteration_id: str) -> dict[str, ManualOverride]:
        return {o.username: o for o in self.all() if o.iteration_id == str(iteration_id)}

    def set(
        self,
        iteration_id: str,
        username: str,
        hours: Optional[float],
        reason: str = "",
        iteration_name: Optional[str] = None
    ) -> Optional[ManualOverride]:
        """Set the final hours for a member in an iteration; ``hours=None`` clears."""
        if hours is not None and (isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours < 0):
            raise PolicyViolation(f"Override hours must be a non-negative number, got {hours!r}")
        if self.roster is not None:
            self.roster.require(username)
        self.namespace.ensure_writable()

        iteration_id = str(iteration_id)
        sprints = self._load()
        sprint = next((s for s in sprints if str(s.get("sprintId")) == iteration_id), None)
        if sprint is None:
            if hours is None:
                return None
            sprint = {"sprintId": iteration_id, "sprintName": iteration_name or iteration_id, "memberCapacity": []}
            sprints.append(sprint)

        entries = [e for e in sprint["memberCapacity"] if e["username"] != username]
        override = None
        if hours is not None:
            override = ManualOverride(iteration_id, username, hours, reason or "")
            entries.append({"username": username, "availableHours": hours, "reason": override.reason})
        sprint["memberCapacity"] = entries

        self.namespace.save(SPRINT_CAPACITY_KEY, {
            "sprints": [s for s in sprints if s["memberCapacity"]],
            "lastUpdated": datetime.now().isoformat(),
        })
        logger.debug("Override for %s in %s set to %s", username, iteration_id, hours)
        return override

    def clear(self, iteration_id: str, username: str) -> None:
        self.set(iteration_id, username, None)


class CapacityResolver:
    """
    Derives SprintCapacity records.

    Usage:
        resolver = CapacityResolver(absences.snapshot(), default_weekly_hours=40)
        capacity = resolver.resolve(iteration, member, override_hours=None)
    """

    def __init__(self, absences: Optional[AbsenceCalendar] = None, default_weekly_hours: float = 40.0):
        self.absences = absences or AbsenceCalendar()
        self.default_weekly_hours = default_weekly_hours

    def resolve(
        self,
        iteration: Iteration,
        member: TeamMember,
        override: Optional[ManualOverride] = None
    ) -> SprintCapacity:
        weekly = member.weekly_hours(self.default_weekly_hours)
        capacity = SprintCapacity(username=member.username, weekly_hours=weekly)
        if override is not None:
            capacity.manual_override_hours = override.final_hours
            capacity.override_reason = override.reason

        # dateless or inverted iterations have no capacity
        if not iteration.has_window or iteration.due_day < iteration.start_day:
            return capacity

        days = working_days(iteration.start_day, iteration.due_day)
        capacity.base_hours = round_half_up(days / 5 * weekly)
        capacity.working_days_lost = self.absences.working_days_lost(
            member.username, iteration.start_day, iteration.due_day
        )
        capacity.absence_hours_lost = round_half_up(capacity.working_days_lost * weekly / 5, 1)
        capacity.auto_adjusted_hours = max(0, capacity.base_hours - capacity.absence_hours_lost)
        return capacity

    def resolve_iteration(
        self,
        iteration: Iteration,
        members: Iterable[TeamMember],
        overrides: Optional[dict[str, ManualOverride]] = None
    ) -> IterationCapacity:
        overrides = overrides or {}
        result = IterationCapacity(iteration=iteration)
        if iteration.has_window:
            result.working_days = working_days(iteration.start_day, iteration.due_day)
        for member in members:
            result.members.append(self.resolve(iteration, member, overrides.get(member.username)))
        return result
