"""
Team Capacity Core

Capacity and absence planning for delivery teams: per-iteration capacity,
member velocity, utilization and burnout indicators, forecasts and
what-if scenarios.
"""

__version__ = "1.0.0"

from .errors import (
    CapacityError,
    InvalidRange,
    InvalidDate,
    UnknownMember,
    UnknownIteration,
    UnknownScenario,
    PolicyViolation,
    InvalidAbsenceType,
    ReadOnlyNamespace,
    NamespaceNotConfigured,
    ImportRowError
)

from .calendar import (
    DayRange,
    normalize_day,
    working_days,
    overlap,
    week_window
)

from .models import (
    TeamMember,
    Absence,
    AbsenceType,
    Iteration,
    Issue,
    IssueState,
    Milestone,
    IterationCatalogue
)

from .storage import (
    KeyValueStore,
    InMemoryStore,
    JsonFileStore,
    Namespace,
    ProjectGroup,
    ProjectGroupStore
)

from .policy import (
    VelocityPolicy,
    VelocityMode,
    MetricType,
    PolicyStore
)

from .roster import Roster
from .absences import AbsenceStore, AbsenceCalendar, ImportResult
from .velocity import VelocityEstimator, VelocityRecord, VelocityQuality, VelocitySource
from .capacity import CapacityResolver, SprintCapacity, OverrideStore
from .analyzer import WorkloadAnalyzer, UtilizationStatus, BurnoutRisk
from .scenarios import ScenarioStore, ScenarioSimulator, Scenario, TeamChange, TeamChangeType
from .forecaster import Forecaster, ForecastWeek, ForecastResult
from .planner import CapacityPlanner

__all__ = [
    # Version
    "__version__",

    # Errors
    "CapacityError",
    "InvalidRange",
    "InvalidDate",
    "UnknownMember",
    "UnknownIteration",
    "UnknownScenario",
    "PolicyViolation",
    "InvalidAbsenceType",
    "ReadOnlyNamespace",
    "NamespaceNotConfigured",
    "ImportRowError",

    # Calendar
    "DayRange",
    "normalize_day",
    "working_days",
    "overlap",
    "week_window",

    # Model
    "TeamMember",
    "Absence",
    "AbsenceType",
    "Iteration",
    "Issue",
    "IssueState",
    "Milestone",
    "IterationCatalogue",

    # Storage
    "KeyValueStore",
    "InMemoryStore",
    "JsonFileStore",
    "Namespace",
    "ProjectGroup",
    "ProjectGroupStore",

    # Policy
    "VelocityPolicy",
    "VelocityMode",
    "MetricType",
    "PolicyStore",

    # Services
    "Roster",
    "AbsenceStore",
    "AbsenceCalendar",
    "ImportResult",
    "VelocityEstimator",
    "VelocityRecord",
    "VelocityQuality",
    "VelocitySource",
    "CapacityResolver",
    "SprintCapacity",
    "OverrideStore",
    "WorkloadAnalyzer",
    "UtilizationStatus",
    "BurnoutRisk",
    "ScenarioStore",
    "ScenarioSimulator",
    "Scenario",
    "TeamChange",
    "TeamChangeType",
    "Forecaster",
    "ForecastWeek",
    "ForecastResult",

    # Facade
    "CapacityPlanner",
]
