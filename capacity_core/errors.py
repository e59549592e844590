"""
Error kinds raised by the capacity planning core.

Every error carries the exit code the command line uses for it.
"""

from dataclasses import dataclass


EXIT_OK = 0
EXIT_INVALID_INPUT = 2
EXIT_NOT_CONFIGURED = 3


class CapacityError(Exception):
    """Base class for all capacity planning errors."""
    exit_code = EXIT_INVALID_INPUT


class InvalidRange(CapacityError):
    """A date range whose start falls after its end."""

    def __init__(self, start, end):
        self.start = start
        self.end = end
        super().__init__(f"Invalid range: {start} is after {end}")


class InvalidDate(CapacityError):
    """A value that cannot be read as a calendar day."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid date: {value!r}")


class UnknownMember(CapacityError):
    """A username absent from the namespace roster."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Unknown team member: {username}")


class UnknownIteration(CapacityError):
    """An iteration name or id missing from the supplied catalogue."""

    def __init__(self, ref):
        self.ref = ref
        super().__init__(f"Unknown iteration: {ref}")


class UnknownScenario(CapacityError):
    def __init__(self, scenario_id: str):
        self.scenario_id = scenario_id
        super().__init__(f"Unknown scenario: {scenario_id}")


class PolicyViolation(CapacityError):
    """Out-of-range configuration or a forbidden change."""


class InvalidAbsenceType(PolicyViolation):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Unknown absence type: {value!r}")


class ReadOnlyNamespace(CapacityError):
    """Mutation attempted through a read-only (cross-project or group) view."""

    def __init__(self, project_key: str):
        self.project_key = project_key
        super().__init__(f"Namespace '{project_key}' is read-only")


class NamespaceNotConfigured(CapacityError):
    exit_code = EXIT_NOT_CONFIGURED

    def __init__(self, message: str = "No project namespace configured"):
        super().__init__(message)


@dataclass
class ImportRowError:
    """Per-row failure collected during CSV import."""
    row: int
    message: str

    def __str__(self) -> str:
        return f"Line {self.row}: {self.message}"

    def to_dict(self) -> dict:
        return {"row": self.row, "message": self.message}
