"""
Tests for the team roster.
"""

import pytest

from capacity_core.errors import PolicyViolation, UnknownMember
from capacity_core.models import Issue, TeamMember
from capacity_core.roster import Roster


class TestRoster:
    """Tests for admitting, updating and removing members."""

    def test_admit(self, namespace):
        roster = Roster(namespace)
        roster.admit(TeamMember("ada", display_name="Ada", base_weekly_hours=32))

        assert roster.require("ada").base_weekly_hours == 32
        assert "ada" in roster
        assert "ben" not in roster

    def test_duplicate_rejected(self, roster):
        with pytest.raises(PolicyViolation):
            roster.admit(TeamMember("ada"))

    def test_negative_hours_rejected(self, roster):
        with pytest.raises(PolicyViolation):
            roster.admit(TeamMember("cid", base_weekly_hours=-4))
        with pytest.raises(PolicyViolation):
            roster.update("ada", base_weekly_hours=-1)

    def test_update(self, roster):
        member = roster.update("ada", role="lead", base_weekly_hours=0)

        assert member.role == "lead"
        assert roster.require("ada").base_weekly_hours == 0

    def test_update_unknown_field(self, roster):
        with pytest.raises(PolicyViolation):
            roster.update("ada", username="eve")

    def test_update_unknown_member(self, roster):
        with pytest.raises(UnknownMember):
            roster.update("zed", role="dev")

    def test_soft_remove(self, roster):
        """Removed members keep their record but drop out of active queries."""
        roster.remove("ben")

        assert [m.username for m in roster.members()] == ["ada"]
        assert roster.require("ben").active is False
        assert len(roster.members(include_inactive=True)) == 2

    def test_readmit_after_remove(self, roster):
        roster.remove("ben")
        roster.admit(TeamMember("ben", base_weekly_hours=20))

        assert roster.require("ben").active
        assert roster.require("ben").base_weekly_hours == 20

    def test_remove_unknown(self, roster):
        with pytest.raises(UnknownMember):
            roster.remove("zed")

    def test_seed_until_first_save(self, namespace):
        roster = Roster(namespace, seed=[{"username": "ada", "baseWeeklyHours": 40}])

        assert [m.username for m in roster.members()] == ["ada"]

        roster.admit(TeamMember("ben"))
        assert [m.username for m in Roster(namespace).members()] == ["ada", "ben"]

    def test_import_from_assignees(self, roster):
        issues = [Issue(id="1", assignee="ada"), Issue(id="2", assignee="cid"),
                  Issue(id="3", assignee="cid"), Issue(id="4")]

        added = roster.import_from_assignees(issues)

        assert [m.username for m in added] == ["cid"]
        assert roster.require("cid").source == "imported"
