"""
Scenario Simulator

What-if scenarios: ordered team changes (hires, departures, capacity
changes) folded week by week over the current roster.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from .errors import PolicyViolation, UnknownMember, UnknownScenario
from .models import TeamMember
from .roster import Roster
from .storage import Namespace, SCENARIOS_KEY


logger = logging.getLogger(__name__)

BASELINE_ID = "baseline"
DEFAULT_RAMP_UP_WEEKS = 4


class TeamChangeType(Enum):
    HIRE = "hire"
    DEPARTURE = "departure"
    CAPACITY_CHANGE = "capacity_change"

    @classmethod
    def parse(cls, value) -> "TeamChangeType":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        if text == "capacityChange":
            return cls.CAPACITY_CHANGE
        try:
            return cls(text)
        except ValueError:
            raise PolicyViolation(f"Unknown team change type: {value!r}") from None


def _check_hours(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise PolicyViolation(f"{name} must be a non-negative number, got {value!r}")


@dataclass
class TeamChange:
    """A single team change taking effect at the start of a 1-based week."""
    type: TeamChangeType
    week: int
    username: str
    id: str = field(default_factory=lambda: f"change-{uuid.uuid4().hex[:12]}")
    display_name: Optional[str] = None
    role: Optional[str] = None
    weekly_hours: Optional[float] = None
    ramp_up_weeks: int = DEFAULT_RAMP_UP_WEEKS
    new_weekly_hours: Optional[float] = None

    def validate(self) -> "TeamChange":
        if isinstance(self.week, bool) or not isinstance(self.week, int) or self.week < 1:
            raise PolicyViolation(f"Change week must be a positive integer, got {self.week!r}")
        if not self.username:
            raise PolicyViolation("A team change needs a username")
        if self.type == TeamChangeType.HIRE:
            _check_hours("weekly_hours", self.weekly_hours)
            if isinstance(self.ramp_up_weeks, bool) or not isinstance(self.ramp_up_weeks, int):
                raise PolicyViolation(f"ramp_up_weeks must be an integer, got {self.ramp_up_weeks!r}")
        elif self.type == TeamChangeType.CAPACITY_CHANGE:
            _check_hours("new_weekly_hours", self.new_weekly_hours)
        return self

    def describe(self) -> str:
        if self.type == TeamChangeType.HIRE:
            return f"Hire {self.display_name or self.username} ({self.role or 'member'}, {self.weekly_hours}h/week)"
        if self.type == TeamChangeType.DEPARTURE:
            return f"{self.username} leaves"
        return f"{self.username} moves to {self.new_weekly_hours}h/week"

    def to_dict(self) -> dict:
        data = {"id": self.id, "type": self.type.value, "week": self.week, "username": self.username}
        if self.type == TeamChangeType.HIRE:
            data.update({
                "displayName": self.display_name,
                "role": self.role,
                "weeklyHours": self.weekly_hours,
                "rampUpWeeks": self.ramp_up_weeks,
            })
        elif self.type == TeamChangeType.CAPACITY_CHANGE:
            data["newWeeklyHours"] = self.new_weekly_hours
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "TeamChange":
        change = cls(
            type=TeamChangeType.parse(data.get("type")),
            week=data.get("week"),
            username=data.get("username") or "",
            display_name=data.get("displayName"),
            role=data.get("role"),
            weekly_hours=data.get("weeklyHours"),
            ramp_up_weeks=data.get("rampUpWeeks", DEFAULT_RAMP_UP_WEEKS),
            new_weekly_hours=data.get("newWeeklyHours"),
        )
        if data.get("id"):
            change.id = data["id"]
        return change


@dataclass(frozen=True)
class BaselineDescriptor:
    """The roster a scenario was drafted against, frozen at creation."""
    members: tuple[tuple[str, float], ...] = ()
    captured_at: Optional[str] = None

    @classmethod
    def capture(cls, members: Iterable[TeamMember], default_weekly_hours: float) -> "BaselineDescriptor":
        return cls(
            members=tuple((m.username, m.weekly_hours(default_weekly_hours)) for m in members),
            captured_at=datetime.now().isoformat(),
        )

    def to_dict(self) -> dict:
        return {
            "members": [{"username": name, "weeklyHours": hours} for name, hours in self.members],
            "capturedAt": self.captured_at,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "BaselineDescriptor":
        data = data or {}
        return cls(
            members=tuple((m["username"], m["weeklyHours"]) for m in data.get("members", [])),
            captured_at=data.get("capturedAt"),
        )


@dataclass
class Scenario:
    id: str
    name: str
    description: str = ""
    team_changes: list[TeamChange] = field(default_factory=list)
    baseline: BaselineDescriptor = field(default_factory=BaselineDescriptor)
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_baseline(self) -> bool:
        return self.id == BASELINE_ID

    @property
    def hires(self) -> set[str]:
        return {c.username for c in self.team_changes if c.type == TeamChangeType.HIRE}

    def changes_in_week(self, week: int) -> list[TeamChange]:
        return [c for c in self.team_changes if c.week == week]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "teamChanges": [c.to_dict() for c in sorted(self.team_changes, key=lambda c: c.week)],
            "baseline": self.baseline.to_dict(),
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Scenario":
        created = data.get("createdAt")
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            description=data.get("description") or "",
            team_changes=[TeamChange.from_dict(c) for c in data.get("teamChanges", [])],
            baseline=BaselineDescriptor.from_dict(data.get("baseline")),
            created_at=datetime.fromisoformat(created) if created else datetime.now(),
        )


class ScenarioStore:
    """
    Named scenarios persisted under ``scenarios``.

    The ``baseline`` scenario always exists, reflects the current roster
    with no changes, and can be neither modified nor deleted.
    """

    def __init__(self, namespace: Namespace, roster: Roster, default_weekly_hours: float = 40.0):
        self.namespace = namespace
        self.roster = roster
        self.default_weekly_hours = default_weekly_hours

    def _load(self) -> list[Scenario]:
        scenarios = []
        for _origin, blob in self.namespace.iter_blobs(SCENARIOS_KEY):
            scenarios.extend(
                Scenario.from_dict(s) for s in blob.get("scenarios", []) if s.get("id") != BASELINE_ID
            )
        return scenarios

    def _save(self, scenarios: list[Scenario]) -> None:
        self.namespace.save(SCENARIOS_KEY, {
            "scenarios": [s.to_dict() for s in scenarios],
            "lastUpdated": datetime.now().isoformat(),
        })

    def baseline(self) -> Scenario:
        return Scenario(
            id=BASELINE_ID,
            name="Current Team (Baseline)",
            description="Current team configuration without changes",
            baseline=BaselineDescriptor.capture(self.roster.members(), self.default_weekly_hours),
        )

    def all(self) -> list[Scenario]:
        return [self.baseline()] + self._load()

    def get(self, scenario_id: str) -> Scenario:
        if scenario_id == BASELINE_ID:
            return self.baseline()
        scenario = next((s for s in self._load() if s.id == scenario_id), None)
        if scenario is None:
            raise UnknownScenario(scenario_id)
        return scenario

    def create(self, name: str, description: str = "") -> Scenario:
        if not name or not name.strip():
            raise PolicyViolation("A scenario needs a name")
        self.namespace.ensure_writable()
        scenario = Scenario(
            id=f"scenario-{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            description=description or "",
            baseline=BaselineDescriptor.capture(self.roster.members(), self.default_weekly_hours),
        )
        self._save(self._load() + [scenario])
        return scenario

    def _require_mutable(self, scenario_id: str) -> list[Scenario]:
        if scenario_id == BASELINE_ID:
            raise PolicyViolation("The baseline scenario cannot be modified")
        self.namespace.ensure_writable()
        scenarios = self._load()
        if not any(s.id == scenario_id for s in scenarios):
            raise UnknownScenario(scenario_id)
        return scenarios

    def delete(self, scenario_id: str) -> None:
        scenarios = self._require_mutable(scenario_id)
        self._save([s for s in scenarios if s.id != scenario_id])

    def add_change(self, scenario_id: str, change: TeamChange) -> TeamChange:
        """
        Append a team change after validating it against the roster and
        the scenario's own hires.
        """
        scenarios = self._require_mutable(scenario_id)
        scenario = next(s for s in scenarios if s.id == scenario_id)
        change.validate()

        roster_names = {m.username for m in self.roster.members()}
        if change.type == TeamChangeType.HIRE:
            if change.username in roster_names or change.username in scenario.hires:
                raise PolicyViolation(f"Team member {change.username} already exists")
        elif change.username not in roster_names:
            hire = next(
                (c for c in scenario.team_changes
                 if c.type == TeamChangeType.HIRE and c.username == change.username),
                None,
            )
            if hire is None:
                raise UnknownMember(change.username)
            if change.week < hire.week:
                raise PolicyViolation(
                    f"{change.username} is hired in week {hire.week}; "
                    f"a {change.type.value} in week {change.week} would come first"
                )

        scenario.team_changes.append(change)
        self._save(scenarios)
        logger.debug("Scenario %s: added %s in week %d", scenario_id, change.type.value, change.week)
        return change

    def remove_change(self, scenario_id: str, change_id: str) -> None:
        scenarios = self._require_mutable(scenario_id)
        scenario = next(s for s in scenarios if s.id == scenario_id)
        scenario.team_changes = [c for c in scenario.team_changes if c.id != change_id]
        self._save(scenarios)


@dataclass
class SimulatedMember:
    """A roster member, or a scenario hire, as seen by a simulation run."""
    username: str
    weekly_hours: float
    display_name: Optional[str] = None
    role: Optional[str] = None
    start_week: int = 1
    end_week: Optional[int] = None
    ramp_up_weeks: int = 0
    hired: bool = False

    def is_active(self, week: int) -> bool:
        return self.start_week <= week and (self.end_week is None or week < self.end_week)

    def ramp_factor(self, week: int) -> float:
        if self.ramp_up_weeks <= 0:
            return 1.0
        return min(1.0, (week - self.start_week + 1) / self.ramp_up_weeks)

    def effective_weekly_hours(self, week: int) -> float:
        return self.weekly_hours * self.ramp_factor(week)

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "displayName": self.display_name,
            "role": self.role,
            "weeklyHours": self.weekly_hours,
            "startWeek": self.start_week,
            "endWeek": self.end_week,
            "rampUpWeeks": self.ramp_up_weeks,
            "hired": self.hired,
        }


class ScenarioSimulator:
    """
    Folds a scenario's changes over a roster.

    Usage:
        simulator = ScenarioSimulator(roster.members(), scenario.team_changes)
        for member in simulator.team_for_week(3):
            print(member.username, member.effective_weekly_hours(3))
    """

    def __init__(
        self,
        members: Iterable[TeamMember],
        changes: Iterable[TeamChange] = (),
        default_weekly_hours: float = 40.0
    ):
        self.base = [
            SimulatedMember(
                username=m.username,
                weekly_hours=m.weekly_hours(default_weekly_hours),
                display_name=m.display_name,
                role=m.role,
            )
            for m in members
        ]
        # stable: same-week changes apply in insertion order
        self.changes = sorted(changes, key=lambda c: c.week)

    def _fold(self, week: int) -> dict[str, SimulatedMember]:
        team = {m.username: replace(m) for m in self.base}
        for change in self.changes:
            if change.week > week:
                break
            if change.type == TeamChangeType.HIRE:
                team[change.username] = SimulatedMember(
                    username=change.username,
                    weekly_hours=change.weekly_hours,
                    display_name=change.display_name,
                    role=change.role,
                    start_week=change.week,
                    ramp_up_weeks=change.ramp_up_weeks,
                    hired=True,
                )
            elif change.username in team:
                member = team[change.username]
                if change.type == TeamChangeType.DEPARTURE:
                    member.end_week = change.week
                else:
                    member.weekly_hours = change.new_weekly_hours
        return team

    def team_for_week(self, week: int) -> list[SimulatedMember]:
        """Members contributing in ``week`` (1-based), ramp-up not yet applied."""
        return [m for m in self._fold(week).values() if m.is_active(week)]

    def changes_in_week(self, week: int) -> list[TeamChange]:
        return [c for c in self.changes if c.week == week]
