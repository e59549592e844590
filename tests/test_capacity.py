"""
Tests for per-iteration capacity and manual overrides.
"""

import pytest
from datetime import date

from capacity_core.capacity import CapacityResolver, ManualOverride, OverrideStore
from capacity_core.errors import PolicyViolation, UnknownMember
from capacity_core.models import Iteration, TeamMember


ADA = TeamMember("ada", base_weekly_hours=40)


class TestCapacityResolver:
    """Tests for deriving a member's iteration capacity."""

    def test_full_availability(self, sprint_1):
        """Ten working days at 40 h/week is 80 hours."""
        capacity = CapacityResolver().resolve(sprint_1, ADA)

        assert capacity.base_hours == 80
        assert capacity.absence_hours_lost == 0
        assert capacity.auto_adjusted_hours == 80
        assert capacity.final_hours == 80
        assert not capacity.has_override

    def test_absence_reduces_capacity(self, absences, sprint_1):
        absences.add("ada", "2025-03-10", "2025-03-12")
        resolver = CapacityResolver(absences.snapshot())

        capacity = resolver.resolve(sprint_1, ADA)

        assert capacity.working_days_lost == 3
        assert capacity.absence_hours_lost == 24.0
        assert capacity.auto_adjusted_hours == 56
        assert capacity.final_hours == 56

    def test_absence_clipped_to_iteration(self, absences, sprint_1):
        """Only the part of an absence inside the iteration counts."""
        absences.add("ada", "2025-03-13", "2025-03-18")

        capacity = CapacityResolver(absences.snapshot()).resolve(sprint_1, ADA)

        assert capacity.absence_hours_lost == 16.0
        assert capacity.auto_adjusted_hours == 64

    def test_override_wins(self, sprint_1):
        override = ManualOverride(sprint_1.id, "ada", 30, "Part-time this sprint")

        capacity = CapacityResolver().resolve(sprint_1, ADA, override)

        assert capacity.auto_adjusted_hours == 80
        assert capacity.final_hours == 30
        assert capacity.override_reason == "Part-time this sprint"

    def test_override_of_zero_is_kept(self, sprint_1):
        capacity = CapacityResolver().resolve(sprint_1, ADA, ManualOverride(sprint_1.id, "ada", 0))

        assert capacity.has_override
        assert capacity.final_hours == 0

    def test_zero_weekly_hours(self, sprint_1):
        capacity = CapacityResolver().resolve(sprint_1, TeamMember("ada", base_weekly_hours=0))

        assert capacity.base_hours == 0
        assert capacity.final_hours == 0

    def test_default_weekly_hours(self, sprint_1):
        capacity = CapacityResolver(default_weekly_hours=30).resolve(sprint_1, TeamMember("ben"))

        assert capacity.weekly_hours == 30
        assert capacity.base_hours == 60

    def test_base_rounds_half_up(self):
        """37.5 h/week over seven working days is 52.5, rounded to 53."""
        iteration = Iteration("Short", start_day=date(2025, 3, 3), due_day=date(2025, 3, 11))

        capacity = CapacityResolver().resolve(iteration, TeamMember("ada", base_weekly_hours=37.5))

        assert capacity.base_hours == 53

    def test_inverted_iteration_has_no_capacity(self):
        iteration = Iteration("Broken", start_day=date(2025, 3, 14), due_day=date(2025, 3, 3))

        capacity = CapacityResolver().resolve(iteration, ADA)

        assert capacity.base_hours == 0
        assert capacity.final_hours == 0

    def test_dateless_iteration_has_no_capacity(self):
        capacity = CapacityResolver().resolve(Iteration("Backlog"), ADA)

        assert capacity.base_hours == 0
        assert capacity.auto_adjusted_hours == 0

    def test_absence_beyond_base_floors_at_zero(self, absences):
        iteration = Iteration("One day", start_day=date(2025, 3, 10), due_day=date(2025, 3, 10))
        absences.add("ada", "2025-03-03", "2025-03-21")

        capacity = CapacityResolver(absences.snapshot()).resolve(iteration, ADA)

        assert capacity.base_hours == 8
        assert capacity.auto_adjusted_hours == 0

    def test_auto_never_exceeds_base(self, absences, sprint_1):
        absences.add("ada", "2025-03-04", "2025-03-04")
        absences.add("ben", "2025-03-01", "2025-03-31")
        resolver = CapacityResolver(absences.snapshot())

        for member in (ADA, TeamMember("ben", base_weekly_hours=32)):
            capacity = resolver.resolve(sprint_1, member)
            assert 0 <= capacity.auto_adjusted_hours <= capacity.base_hours
            assert capacity.final_hours == capacity.auto_adjusted_hours


class TestIterationCapacity:
    """Tests for the whole-team breakdown."""

    def test_totals(self, absences, roster, sprint_1):
        absences.add("ben", "2025-03-10", "2025-03-12")
        overrides = {"ada": ManualOverride(sprint_1.id, "ada", 70)}

        result = CapacityResolver(absences.snapshot()).resolve_iteration(sprint_1, roster.members(), overrides)

        assert result.working_days == 10
        assert result.total_base_hours == 160
        assert result.total_absence_hours == 24.0
        assert result.total_auto_adjusted_hours == 136
        assert result.total_final_hours == 126
        assert result.get("ben").final_hours == 56

        data = result.to_dict()
        assert data["iteration"]["id"] == "101"
        assert data["totals"]["finalHours"] == 126
        assert data["members"][0]["manualOverrideHours"] == 70


class TestOverrideStore:
    """Tests for persisted manual overrides."""

    def test_set_and_get(self, namespace, roster):
        overrides = OverrideStore(namespace, roster)

        overrides.set("101", "ada", 30, "Conference prep", iteration_name="Sprint-1")

        stored = overrides.get("101", "ada")
        assert stored.final_hours == 30
        assert stored.reason == "Conference prep"
        assert namespace.load("sprintCapacity")["sprints"][0]["sprintName"] == "Sprint-1"

    def test_set_replaces(self, namespace, roster):
        overrides = OverrideStore(namespace, roster)
        overrides.set("101", "ada", 30)
        overrides.set("101", "ada", 20)

        assert len(overrides.all()) == 1
        assert overrides.get("101", "ada").final_hours == 20

    def test_clear(self, namespace, roster):
        overrides = OverrideStore(namespace, roster)
        overrides.set("101", "ada", 30)
        overrides.set("101", "ben", 10)

        overrides.clear("101", "ada")

        assert overrides.get("101", "ada") is None
        assert list(overrides.for_iteration("101")) == ["ben"]

    def test_clear_missing_is_noop(self, namespace, roster):
        overrides = OverrideStore(namespace, roster)

        assert overrides.set("101", "ada", None) is None
        assert overrides.all() == []

    def test_negative_hours_rejected(self, namespace, roster):
        with pytest.raises(PolicyViolation):
            OverrideStore(namespace, roster).set("101", "ada", -1)

    def test_unknown_member_rejected(self, namespace, roster):
        with pytest.raises(UnknownMember):
            OverrideStore(namespace, roster).set("101", "zed", 10)

    def test_ids_compared_as_text(self, namespace, roster):
        overrides = OverrideStore(namespace, roster)
        overrides.set(101, "ada", 12)

        assert overrides.get("101", "ada").final_hours == 12
