"""
Velocity and capacity policy.

Persisted per namespace under ``velocityConfig``.
"""

import logging
from dataclasses import dataclass, replace, fields
from enum import Enum
from typing import Optional

from .errors import PolicyViolation
from .storage import Namespace, VELOCITY_CONFIG_KEY


logger = logging.getLogger(__name__)


class VelocityMode(Enum):
    DYNAMIC = "dynamic"  # individual -> team average -> static
    STATIC = "static"    # always the configured static value


class MetricType(Enum):
    POINTS = "points"
    ISSUES = "issues"


@dataclass(frozen=True)
class VelocityPolicy:
    """Options driving velocity estimation and capacity defaults."""
    velocity_mode: VelocityMode = VelocityMode.DYNAMIC
    metric_type: MetricType = MetricType.POINTS
    static_hours_per_story_point: float = 6.0
    static_hours_per_issue: float = 8.0
    velocity_lookback_iterations: int = 3
    default_weekly_capacity: float = 40.0

    @property
    def static_hours_per_unit(self) -> float:
        if self.metric_type == MetricType.ISSUES:
            return self.static_hours_per_issue
        return self.static_hours_per_story_point

    def validate(self) -> "VelocityPolicy":
        for name in ("static_hours_per_story_point", "static_hours_per_issue", "default_weekly_capacity"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise PolicyViolation(f"{name} must be a non-negative number, got {value!r}")

        lookback = self.velocity_lookback_iterations
        if isinstance(lookback, bool) or not isinstance(lookback, int) or lookback < 1:
            raise PolicyViolation(f"velocity_lookback_iterations must be a positive integer, got {lookback!r}")
        return self

    def to_dict(self) -> dict:
        return {
            "velocityMode": self.velocity_mode.value,
            "metricType": self.metric_type.value,
            "staticHoursPerStoryPoint": self.static_hours_per_story_point,
            "staticHoursPerIssue": self.static_hours_per_issue,
            "velocityLookbackIterations": self.velocity_lookback_iterations,
            "defaultWeeklyCapacity": self.default_weekly_capacity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VelocityPolicy":
        defaults = cls()
        return cls(
            velocity_mode=_parse_enum(VelocityMode, data.get("velocityMode", defaults.velocity_mode)),
            metric_type=_parse_enum(MetricType, data.get("metricType", defaults.metric_type)),
            static_hours_per_story_point=data.get("staticHoursPerStoryPoint", defaults.static_hours_per_story_point),
            static_hours_per_issue=data.get("staticHoursPerIssue", defaults.static_hours_per_issue),
            velocity_lookback_iterations=data.get("velocityLookbackIterations", defaults.velocity_lookback_iterations),
            default_weekly_capacity=data.get("defaultWeeklyCapacity", defaults.default_weekly_capacity),
        ).validate()


def _parse_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise PolicyViolation(f"Unknown {enum_cls.__name__} {value!r} (expected one of: {allowed})") from None


class PolicyStore:
    """Load, update and reset the namespace policy."""

    def __init__(self, namespace: Namespace, seed: Optional[dict] = None):
        self.namespace = namespace
        self.seed = seed or {}

    def load(self) -> VelocityPolicy:
        data = self.namespace.load(VELOCITY_CONFIG_KEY)
        if data is None:
            return VelocityPolicy.from_dict(self.seed)
        return VelocityPolicy.from_dict(data)

    def update(self, **changes) -> VelocityPolicy:
        """
        Apply changes given as dataclass field names.

        Enum fields accept their wire values. Nothing is written if the
        result fails validation.
        """
        known = {f.name for f in fields(VelocityPolicy)}
        unknown = set(changes) - known
        if unknown:
            raise PolicyViolation(f"Unknown policy option(s): {', '.join(sorted(unknown))}")

        if "velocity_mode" in changes:
            changes["velocity_mode"] = _parse_enum(VelocityMode, changes["velocity_mode"])
        if "metric_type" in changes:
            changes["metric_type"] = _parse_enum(MetricType, changes["metric_type"])

        self.namespace.ensure_writable()
        policy = replace(self.load(), **changes).validate()
        self.namespace.save(VELOCITY_CONFIG_KEY, policy.to_dict())
        logger.debug("Policy for %s updated: %s", self.namespace.project_key, policy.to_dict())
        return policy

    def reset(self) -> VelocityPolicy:
        self.namespace.ensure_writable()
        policy = VelocityPolicy()
        self.namespace.save(VELOCITY_CONFIG_KEY, policy.to_dict())
        return policy
