"""
Team roster for a namespace.

Members are admitted explicitly or imported from issue assignees, and
are only ever soft-removed so historical attribution survives.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Optional

from .errors import PolicyViolation, UnknownMember
from .models import Issue, TeamMember
from .storage import Namespace, TEAM_CONFIG_KEY


logger = logging.getLogger(__name__)

_EDITABLE = {"display_name", "role", "employee_id", "avatar_url", "base_weekly_hours"}

DEFAULT_ROLE = "Developer"

# Roles within one group can pick up each other's work.
ROLE_COMPATIBILITY_GROUPS = {
    "technical": ["Developer", "Data Engineer", "SRE", "DevOps Engineer", "QA Engineer"],
    "analysis": ["Business Analyst", "Product Owner", "Initiative Manager"],
    "management": ["Scrum Master"],
}


def roles_compatible(first: Optional[str], second: Optional[str]) -> bool:
    """Whether work can move between two roles; a missing role counts as Developer."""
    first = first or DEFAULT_ROLE
    second = second or DEFAULT_ROLE
    if first == second:
        return True
    # Custom roles need a manual decision
    if "Custom" in (first, second):
        return False
    return any(first in group and second in group for group in ROLE_COMPATIBILITY_GROUPS.values())


def compatible_roles(role: Optional[str]) -> list[str]:
    """Other roles sharing a compatibility group with ``role``."""
    role = role or DEFAULT_ROLE
    for group in ROLE_COMPATIBILITY_GROUPS.values():
        if role in group:
            return [r for r in group if r != role]
    return []


def _check_hours(hours) -> None:
    if hours is None:
        return
    if isinstance(hours, bool) or not isinstance(hours, (int, float)) or hours < 0:
        raise PolicyViolation(f"Weekly hours must be a non-negative number, got {hours!r}")


class Roster:
    """Roster persisted under ``teamConfig``."""

    def __init__(self, namespace: Namespace, seed: Optional[list[dict]] = None):
        self.namespace = namespace
        self.seed = seed or []

    def _load(self) -> list[TeamMember]:
        seen = {}
        found = False
        for _origin, blob in self.namespace.iter_blobs(TEAM_CONFIG_KEY):
            found = True
            for data in blob.get("teamMembers", []):
                member = TeamMember.from_dict(data)
                # first namespace wins when views overlap
                seen.setdefault(member.username, member)
        if not found:
            for data in self.seed:
                member = TeamMember.from_dict(data)
                seen.setdefault(member.username, member)
        return list(seen.values())

    def _save(self, members: list[TeamMember]) -> None:
        self.namespace.save(TEAM_CONFIG_KEY, {
            "teamMembers": [m.to_dict() for m in members],
            "lastUpdated": datetime.now().isoformat(),
        })

    def members(self, include_inactive: bool = False) -> list[TeamMember]:
        return [m for m in self._load() if include_inactive or m.active]

    def get(self, username: str) -> Optional[TeamMember]:
        return next((m for m in self._load() if m.username == username), None)

    def require(self, username: str) -> TeamMember:
        member = self.get(username)
        if member is None:
            raise UnknownMember(username)
        return member

    def __contains__(self, username: str) -> bool:
        return self.get(username) is not None

    def admit(self, member: TeamMember) -> TeamMember:
        """Add a member, or re-activate and replace a soft-removed one."""
        _check_hours(member.base_weekly_hours)
        self.namespace.ensure_writable()

        members = self._load()
        existing = next((m for m in members if m.username == member.username), None)
        if existing is not None and existing.active:
            raise PolicyViolation(f"Team member {member.username} already exists")

        member = replace(member, active=True)
        members = [m for m in members if m.username != member.username] + [member]
        self._save(members)
        logger.debug("Admitted %s to %s", member.username, self.namespace.project_key)
        return member

    def update(self, username: str, /, **changes) -> TeamMember:
        unknown = set(changes) - _EDITABLE
        if unknown:
            raise PolicyViolation(f"Cannot update member field(s): {', '.join(sorted(unknown))}")
        _check_hours(changes.get("base_weekly_hours"))
        self.namespace.ensure_writable()

        members = self._load()
        for index, member in enumerate(members):
            if member.username == username:
                members[index] = replace(member, **changes)
                self._save(members)
                return members[index]
        raise UnknownMember(username)

    def remove(self, username: str) -> TeamMember:
        """Soft-remove: the record stays, flagged inactive."""
        self.namespace.ensure_writable()
        members = self._load()
        for index, member in enumerate(members):
            if member.username == username:
                members[index] = replace(member, active=False)
                self._save(members)
                return members[index]
        raise UnknownMember(username)

    def import_from_assignees(self, issues: Iterable[Issue]) -> list[TeamMember]:
        """Admit every assignee not yet on the roster. Returns the new members."""
        self.namespace.ensure_writable()
        members = self._load()
        known = {m.username for m in members}

        added = []
        for issue in issues:
            if issue.assignee and issue.assignee not in known:
                member = TeamMember(username=issue.assignee, source="imported")
                members.append(member)
                added.append(member)
                known.add(issue.assignee)

        if added:
            self._save(members)
            logger.debug("Imported %d assignees into %s", len(added), self.namespace.project_key)
        return added
