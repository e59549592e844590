"""
Data model for the capacity planning core.

Issues, iterations and milestones arrive already materialized from the
issue tracker; the core only reads them.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Any, Iterable, Optional

from .calendar import normalize_day, optional_day
from .errors import InvalidAbsenceType, PolicyViolation, UnknownIteration
from .policy import MetricType


class AbsenceType(Enum):
    VACATION = "vacation"
    TRAINING = "training"
    SICK = "sick"
    OTHER = "other"

    @classmethod
    def parse(cls, value, strict: bool = True) -> "AbsenceType":
        if isinstance(value, cls):
            return value
        text = (value or "").strip().lower()
        if not text:
            return cls.VACATION
        try:
            return cls(text)
        except ValueError:
            if strict:
                raise InvalidAbsenceType(value) from None
            return cls.OTHER


class IssueState(Enum):
    OPEN = "open"
    CLOSED = "closed"

    @classmethod
    def parse(cls, value: Optional[str]) -> "IssueState":
        return cls.CLOSED if (value or "").lower() == "closed" else cls.OPEN


@dataclass
class TeamMember:
    """A roster entry. ``base_weekly_hours`` of None means "use the default"."""
    username: str
    display_name: Optional[str] = None
    role: Optional[str] = None
    employee_id: Optional[str] = None
    avatar_url: Optional[str] = None
    base_weekly_hours: Optional[float] = None
    active: bool = True
    source: str = "manual"

    def weekly_hours(self, default: float) -> float:
        # 0 is a legitimate capacity, only None falls back
        return default if self.base_weekly_hours is None else self.base_weekly_hours

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "displayName": self.display_name,
            "role": self.role,
            "employeeId": self.employee_id,
            "avatarUrl": self.avatar_url,
            "baseWeeklyHours": self.base_weekly_hours,
            "active": self.active,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TeamMember":
        return cls(
            username=data["username"],
            display_name=data.get("displayName"),
            role=data.get("role"),
            employee_id=data.get("employeeId"),
            avatar_url=data.get("avatarUrl"),
            base_weekly_hours=data.get("baseWeeklyHours"),
            active=data.get("active", True),
            source=data.get("source", "manual"),
        )


def absence_id(username: str, start: date, end: date) -> str:
    return f"{username}-{start.isoformat()}-{end.isoformat()}"


@dataclass
class Absence:
    """A member's leave over an inclusive range of days."""
    username: str
    start_day: date
    end_day: date
    type: AbsenceType = AbsenceType.VACATION
    reason: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    origin: Optional[str] = None

    @property
    def id(self) -> str:
        return absence_id(self.username, self.start_day, self.end_day)

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_day <= end and start <= self.end_day

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "username": self.username,
            "startDate": self.start_day.isoformat(),
            "endDate": self.end_day.isoformat(),
            "type": self.type.value,
            "reason": self.reason,
            "createdAt": self.created_at.isoformat(),
        }
        if self.origin is not None:
            data["origin"] = self.origin
        return data

    @classmethod
    def from_dict(cls, data: dict, origin: Optional[str] = None) -> "Absence":
        created = data.get("createdAt")
        return cls(
            username=data["username"],
            start_day=normalize_day(data["startDate"]),
            end_day=normalize_day(data["endDate"]),
            type=AbsenceType.parse(data.get("type"), strict=False),
            reason=data.get("reason") or "",
            created_at=datetime.fromisoformat(created) if created else datetime.now(),
            origin=origin,
        )


@dataclass
class Iteration:
    """A sprint window with inclusive start and due days."""
    name: str
    id: Optional[str] = None
    start_day: Optional[date] = None
    due_day: Optional[date] = None

    @property
    def key(self) -> str:
        """Stable identity: the structured id, or the name when it is missing."""
        return self.id if self.id is not None else self.name

    @property
    def has_window(self) -> bool:
        return self.start_day is not None and self.due_day is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "startDate": self.start_day.isoformat() if self.start_day else None,
            "dueDate": self.due_day.isoformat() if self.due_day else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Iteration":
        raw_id = data.get("id")
        return cls(
            name=data.get("name") or data.get("title") or str(raw_id),
            id=str(raw_id) if raw_id is not None else None,
            start_day=optional_day(data.get("start_date") or data.get("startDate")),
            due_day=optional_day(data.get("due_date") or data.get("dueDate")),
        )


@dataclass
class Milestone:
    id: str
    title: str
    due_day: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "dueDate": self.due_day.isoformat() if self.due_day else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Milestone":
        return cls(
            id=str(data.get("id")),
            title=data.get("title") or data.get("name") or "",
            due_day=optional_day(data.get("due_date") or data.get("dueDate")),
        )


_STORY_POINT_LABEL = re.compile(r"^sp::\s*(\d+)\s*$", re.IGNORECASE)


def story_points_from_labels(labels: Iterable[str]) -> Optional[int]:
    """Read the ``sp::N`` label convention; None when no label carries points."""
    for label in labels or []:
        if not isinstance(label, str):
            continue
        match = _STORY_POINT_LABEL.match(label.strip())
        if match:
            return int(match.group(1))
    return None


def parse_weight(value: Any) -> Optional[int]:
    """Structured weight as a non-negative integer, None when missing or unusable."""
    if value is None or isinstance(value, bool):
        return None
    try:
        weight = int(value)
    except (TypeError, ValueError):
        return None
    return weight if weight >= 0 else None


def iteration_name_from_labels(labels: Iterable[str]) -> Optional[str]:
    """Labels such as "Sprint 12" or "Iteration 3.5" name the iteration."""
    for label in labels or []:
        if not isinstance(label, str):
            continue
        lower = label.lower()
        if lower.startswith("sprint") or lower.startswith("iteration"):
            return label
    return None


@dataclass
class Issue:
    """Read-only issue record as delivered by the tracker."""
    id: str
    state: IssueState = IssueState.OPEN
    assignee: Optional[str] = None
    iid: Optional[int] = None
    title: str = ""
    iteration: Optional[Iteration] = None
    iteration_label: Optional[str] = None
    closed_at: Optional[date] = None
    due_day: Optional[date] = None
    created_at: Optional[date] = None
    weight: Optional[int] = None
    labels: list[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.state == IssueState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state == IssueState.CLOSED

    @property
    def story_points(self) -> int:
        """Structured weight first, then the ``sp::`` label, else 0."""
        if self.weight is not None:
            return self.weight
        from_labels = story_points_from_labels(self.labels)
        return from_labels if from_labels is not None else 0

    @property
    def iteration_name(self) -> Optional[str]:
        if self.iteration is not None:
            return self.iteration.name
        return self.iteration_label

    def units(self, metric: MetricType) -> int:
        """Amount of work this issue represents for the given metric type."""
        return 1 if metric == MetricType.ISSUES else self.story_points

    @classmethod
    def from_dict(cls, data: dict) -> "Issue":
        assignee = data.get("assignee") or {}
        username = assignee.get("username") if isinstance(assignee, dict) else None
        if not username:
            assignees = data.get("assignees") or []
            if assignees:
                username = assignees[0].get("username")

        labels = [l for l in (data.get("labels") or []) if isinstance(l, str)]
        raw_iteration = data.get("iteration")
        iteration = Iteration.from_dict(raw_iteration) if isinstance(raw_iteration, dict) else None

        return cls(
            id=str(data.get("id")),
            iid=data.get("iid"),
            title=data.get("title") or "",
            state=IssueState.parse(data.get("state")),
            assignee=username,
            iteration=iteration,
            iteration_label=None if iteration else iteration_name_from_labels(labels),
            closed_at=optional_day(data.get("closed_at")),
            due_day=optional_day(data.get("due_date")),
            created_at=optional_day(data.get("created_at")),
            weight=parse_weight(data.get("weight")),
            labels=labels,
        )


class IterationCatalogue:
    """
    Iterations indexed by id and by name.

    When an iteration has no structured id its name is its identity; two
    different iterations sharing a name cannot be told apart and are rejected.
    """

    def __init__(self, iterations: Iterable[Iteration] = ()):
        self._by_key: dict[str, Iteration] = {}
        self._by_name: dict[str, Iteration] = {}
        for iteration in iterations:
            self.add(iteration)

    def add(self, iteration: Iteration) -> None:
        existing = self._by_name.get(iteration.name)
        if existing is not None and not _same_iteration(existing, iteration):
            raise PolicyViolation(
                f"Iteration name '{iteration.name}' refers to more than one iteration"
            )
        self._by_name[iteration.name] = iteration
        self._by_key[iteration.key] = iteration

    def __iter__(self):
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def find(self, ref: str) -> Optional[Iteration]:
        return self._by_key.get(str(ref)) or self._by_name.get(str(ref))

    def get(self, ref) -> Iteration:
        if isinstance(ref, Iteration):
            return ref
        iteration = self.find(ref)
        if iteration is None:
            raise UnknownIteration(ref)
        return iteration

    def for_issue(self, issue: Issue) -> Optional[Iteration]:
        """The issue's iteration, completed from the catalogue when only named."""
        if issue.iteration is not None:
            if issue.iteration.has_window:
                return issue.iteration
            return self.find(issue.iteration.key) or self.find(issue.iteration.name) or issue.iteration
        if issue.iteration_label:
            return self.find(issue.iteration_label)
        return None

    def containing(self, day: date) -> Optional[Iteration]:
        """The iteration whose window contains ``day``; latest start wins."""
        candidates = [
            i for i in self._by_key.values()
            if i.has_window and i.start_day <= day <= i.due_day
        ]
        return max(candidates, key=lambda i: i.start_day) if candidates else None


def _same_iteration(a: Iteration, b: Iteration) -> bool:
    if a.id is not None and b.id is not None:
        return a.id == b.id
    return a.start_day == b.start_day and a.due_day == b.due_day
