"""
Capacity Planner

The query surface over a namespace. Every query reads the namespace
snapshot at entry and returns a plain dictionary ready for JSON.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Union

from .absences import AbsenceCalendar, AbsenceStore
from .analyzer import WorkloadAnalyzer
from .calendar import DayLike, normalize_range, optional_day, week_window
from .capacity import CapacityResolver, OverrideStore
from .forecaster import DEFAULT_FORECAST_WEEKS, Forecaster
from .models import Issue, Iteration, IterationCatalogue, Milestone, TeamMember
from .policy import PolicyStore, VelocityPolicy
from .roster import Roster
from .scenarios import ScenarioSimulator, ScenarioStore
from .storage import KeyValueStore, Namespace
from .velocity import TeamVelocity, VelocityEstimator


logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Namespace state read once per query."""
    members: list[TeamMember]
    absences: AbsenceCalendar
    policy: VelocityPolicy

    def fingerprint(self) -> str:
        return json.dumps({
            "members": [m.to_dict() for m in self.members],
            "absences": [a.to_dict() for a in self.absences.all()],
            "policy": self.policy.to_dict(),
        }, sort_keys=True, default=str)


def _as_issue(value: Union[Issue, dict]) -> Issue:
    return value if isinstance(value, Issue) else Issue.from_dict(value)


def _as_iteration(value: Union[Iteration, dict]) -> Iteration:
    return value if isinstance(value, Iteration) else Iteration.from_dict(value)


def _as_milestone(value: Union[Milestone, dict]) -> Milestone:
    return value if isinstance(value, Milestone) else Milestone.from_dict(value)


class CapacityPlanner:
    """
    Capacity planning queries for one project namespace.

    Issues, iterations and milestones are supplied by the caller, either as
    model objects or as tracker dictionaries.

    Usage:
        planner = CapacityPlanner(store, "alpha", issues=issues, iterations=iterations)
        planner.absences.add("ada", "2025-03-10", "2025-03-12", "vacation")
        planner.capacity_breakdown("Sprint-1")
        planner.forecast(weeks=8)
    """

    def __init__(
        self,
        store: KeyValueStore,
        project_key: str,
        issues: Iterable = (),
        iterations: Iterable = (),
        milestones: Iterable = (),
        today: Optional[DayLike] = None,
        roster_seed: Optional[list[dict]] = None,
        policy_seed: Optional[dict] = None,
        namespace: Optional[Namespace] = None
    ):
        self.namespace = namespace or Namespace(store, project_key)
        self.roster = Roster(self.namespace, seed=roster_seed)
        self.policy = PolicyStore(self.namespace, seed=policy_seed)
        self.absences = AbsenceStore(self.namespace, self.roster)
        self.overrides = OverrideStore(self.namespace, self.roster)
        self._today = optional_day(today)

        self.issues: list[Issue] = []
        self.catalogue = IterationCatalogue()
        self.milestones: list[Milestone] = []
        self._corpus_version = 0
        self._velocity_cache: Optional[tuple[tuple, VelocityEstimator, TeamVelocity]] = None
        self.load(issues, iterations, milestones)

    @property
    def today(self) -> date:
        return self._today or date.today()

    @property
    def scenarios(self) -> ScenarioStore:
        return ScenarioStore(self.namespace, self.roster, self.policy.load().default_weekly_capacity)

    def load(
        self,
        issues: Optional[Iterable] = None,
        iterations: Optional[Iterable] = None,
        milestones: Optional[Iterable] = None
    ) -> None:
        """Replace the tracker data. Arguments left as None are kept."""
        if iterations is not None:
            catalogue = IterationCatalogue(_as_iteration(i) for i in iterations)
            self.catalogue = catalogue
        if issues is not None:
            self.issues = [_as_issue(i) for i in issues]
            # iterations that only arrive embedded in issues are catalogued too
            for issue in self.issues:
                if issue.iteration is not None and self.catalogue.find(issue.iteration.key) is None:
                    self.catalogue.add(issue.iteration)
        if milestones is not None:
            self.milestones = [_as_milestone(m) for m in milestones]
        self._corpus_version += 1
        logger.debug(
            "Loaded %d issues, %d iterations, %d milestones into %s",
            len(self.issues), len(self.catalogue), len(self.milestones), self.namespace.project_key
        )

    # Snapshot and velocity

    def snapshot(self) -> Snapshot:
        return Snapshot(
            members=self.roster.members(),
            absences=self.absences.snapshot(),
            policy=self.policy.load(),
        )

    def _velocity(self, snapshot: Snapshot) -> tuple[VelocityEstimator, TeamVelocity]:
        key = (self._corpus_version, snapshot.fingerprint())
        if self._velocity_cache is not None and self._velocity_cache[0] == key:
            return self._velocity_cache[1], self._velocity_cache[2]

        estimator = VelocityEstimator(self.issues, snapshot.policy, snapshot.absences, self.catalogue)
        team = estimator.team(snapshot.members)
        self._velocity_cache = (key, estimator, team)
        return estimator, team

    def _resolver(self, snapshot: Snapshot) -> CapacityResolver:
        return CapacityResolver(snapshot.absences, snapshot.policy.default_weekly_capacity)

    def _analyzer(self, snapshot: Snapshot) -> WorkloadAnalyzer:
        return WorkloadAnalyzer(snapshot.policy.metric_type, snapshot.absences, self.today)

    def _in_iteration(self, issue: Issue, iteration: Iteration) -> bool:
        found = self.catalogue.for_issue(issue)
        return found is not None and found.key == iteration.key

    def _overrides_for(self, iteration: Iteration) -> dict:
        overrides = self.overrides.for_iteration(iteration.name)
        overrides.update(self.overrides.for_iteration(iteration.key))
        return overrides

    # Queries

    def capacity_breakdown(self, iteration) -> dict:
        """Per-member capacity for an iteration given by id, name or object."""
        iteration = self.catalogue.get(iteration)
        snapshot = self.snapshot()
        result = self._resolver(snapshot).resolve_iteration(
            iteration, snapshot.members, self._overrides_for(iteration)
        )
        return result.to_dict()

    def team_absence_stats(self, start: DayLike, end: DayLike) -> dict:
        window = normalize_range(start, end)
        snapshot = self.snapshot()
        stats = snapshot.absences.team_stats(
            snapshot.members, window.start, window.end, snapshot.policy.default_weekly_capacity
        )
        return stats.to_dict()

    def member_velocity(self, username: str) -> dict:
        member = self.roster.require(username)
        snapshot = self.snapshot()
        estimator, team = self._velocity(snapshot)
        record = team.members.get(username) or estimator.member(member)
        data = record.to_dict()
        data["effective"] = estimator.effective(username, team).to_dict()
        return data

    def team_velocity(self) -> dict:
        estimator, team = self._velocity(self.snapshot())
        data = team.to_dict()
        data["effective"] = {
            name: estimator.effective(name, team).to_dict() for name in team.members
        }
        return data

    def workload_distribution(self, iteration=None) -> dict:
        """
        Workload against capacity for an iteration.

        Without an iteration the one containing today is used; when there is
        none, all open issues are measured against one week of capacity.
        """
        snapshot = self.snapshot()
        estimator, team = self._velocity(snapshot)

        if iteration is not None:
            selected = self.catalogue.get(iteration)
        else:
            selected = self.catalogue.containing(self.today)

        if selected is not None:
            issues = [i for i in self.issues if i.is_open and self._in_iteration(i, selected)]
            breakdown = self._resolver(snapshot).resolve_iteration(
                selected, snapshot.members, self._overrides_for(selected)
            )
            capacities = {m.username: m.final_hours for m in breakdown.members}
        else:
            issues = [i for i in self.issues if i.is_open]
            week = week_window(self.today, 1)
            default = snapshot.policy.default_weekly_capacity
            capacities = {}
            for member in snapshot.members:
                weekly = member.weekly_hours(default)
                lost = snapshot.absences.hours_lost(member.username, week.start, week.end, weekly)
                capacities[member.username] = max(0.0, weekly - lost)

        velocities = {m.username: estimator.effective(m.username, team) for m in snapshot.members}
        analyzer = self._analyzer(snapshot)
        summary = analyzer.workload_distribution(snapshot.members, issues, capacities, velocities)

        data = summary.to_dict()
        data["iteration"] = selected.to_dict() if selected else None
        data["rebalancing"] = analyzer.suggest_rebalancing(summary)
        return data

    def burnout_risks(self) -> list[dict]:
        snapshot = self.snapshot()
        risks = self._analyzer(snapshot).burnout_risks(snapshot.members, self.issues)
        return [r.to_dict() for r in risks]

    def _forecaster(self, snapshot: Snapshot) -> Forecaster:
        estimator, team = self._velocity(snapshot)
        return Forecaster(
            self.issues,
            self.milestones,
            snapshot.absences,
            lambda username: estimator.effective(username, team),
            metric_type=snapshot.policy.metric_type,
            today=self.today,
        )

    def forecast(self, weeks: int = DEFAULT_FORECAST_WEEKS) -> dict:
        """Baseline forecast: the current roster with no team changes."""
        return self.scenario_forecast("baseline", weeks)

    def scenario_forecast(self, scenario_id: str, weeks: int = DEFAULT_FORECAST_WEEKS) -> dict:
        snapshot = self.snapshot()
        scenario = self.scenarios.get(scenario_id)
        simulator = ScenarioSimulator(
            snapshot.members, scenario.team_changes, snapshot.policy.default_weekly_capacity
        )
        return self._forecaster(snapshot).forecast(simulator, weeks, scenario).to_dict()

    # Roster helpers

    def import_team_from_issues(self) -> list[dict]:
        """Admit every issue assignee not yet on the roster."""
        return [m.to_dict() for m in self.roster.import_from_assignees(self.issues)]
