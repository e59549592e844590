"""
Persistence substrate for the capacity planning core.

An opaque key-value store holding JSON-encodable blobs. Collections are
scoped by a project key: ``absences`` for project ``alpha`` lives under
``absences_alpha``. The special ``cross-project`` key reads the union of
every namespace and forbids writes.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from .errors import NamespaceNotConfigured, PolicyViolation, ReadOnlyNamespace


logger = logging.getLogger(__name__)

CROSS_PROJECT = "cross-project"
DEFAULT_ORIGIN = "default"

ABSENCES_KEY = "absences"
SPRINT_CAPACITY_KEY = "sprintCapacity"
TEAM_CONFIG_KEY = "teamConfig"
VELOCITY_CONFIG_KEY = "velocityConfig"
PROJECT_GROUPS_KEY = "projectGroups"
SCENARIOS_KEY = "scenarios"


class KeyValueStore(ABC):
    """Abstract blob store keyed by string."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the decoded blob stored under ``key`` or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        pass


class InMemoryStore(KeyValueStore):
    """Dictionary-backed store. Values are round-tripped through JSON."""

    def __init__(self, data: Optional[dict] = None):
        self._data: dict[str, str] = {}
        for key, value in (data or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore(KeyValueStore):
    """
    Store persisted as a single JSON document on disk.

    Writes replace the file atomically so a crash never leaves a partial blob.
    """

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, encoding="utf-8") as f:
            return json.load(f) or {}

    def _save(self, data: dict) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def keys(self) -> list[str]:
        return list(self._load())


def namespaced_key(base_key: str, project_key: Optional[str]) -> str:
    if not project_key or project_key == CROSS_PROJECT:
        return base_key
    return f"{base_key}_{project_key}"


def origin_of(key: str, base_key: str) -> Optional[str]:
    """Project key a stored key belongs to, or None if it is another collection."""
    if key == base_key:
        return DEFAULT_ORIGIN
    prefix = f"{base_key}_"
    if key.startswith(prefix):
        return key[len(prefix):]
    return None


class Namespace:
    """
    A project-scoped view over a store.

    ``cross-project`` and project-group views are read-only unions.
    """

    def __init__(
        self,
        store: KeyValueStore,
        project_key: str,
        projects: Optional[list[str]] = None
    ):
        if not project_key:
            raise NamespaceNotConfigured()
        self.store = store
        self.project_key = project_key
        self._projects = projects

    @property
    def read_only(self) -> bool:
        return self.project_key == CROSS_PROJECT or self._projects is not None

    def ensure_writable(self) -> None:
        if self.read_only:
            raise ReadOnlyNamespace(self.project_key)

    def key(self, base_key: str) -> str:
        # read-only views fall back to the global, unsuffixed blob
        if self.read_only:
            return base_key
        return namespaced_key(base_key, self.project_key)

    def load(self, base_key: str, default: Any = None) -> Any:
        value = self.store.get(self.key(base_key))
        return default if value is None else value

    def save(self, base_key: str, value: Any) -> None:
        self.ensure_writable()
        self.store.set(self.key(base_key), value)

    def iter_blobs(self, base_key: str) -> Iterator[tuple[str, Any]]:
        """
        Yield ``(origin, blob)`` pairs visible from this namespace.

        A writable namespace sees only its own blob; read-only views see
        every namespace they cover, in key order.
        """
        if not self.read_only:
            value = self.store.get(self.key(base_key))
            if value is not None:
                yield self.project_key, value
            return

        for key in sorted(self.store.keys()):
            origin = origin_of(key, base_key)
            if origin is None:
                continue
            if self._projects is not None and origin not in self._projects:
                continue
            value = self.store.get(key)
            if value is not None:
                yield origin, value


@dataclass
class ProjectGroup:
    """A named grouping of project keys read together."""
    id: str
    name: str
    project_keys: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "projectKeys": list(self.project_keys)}

    @classmethod
    def from_dict(cls, data: dict) -> "ProjectGroup":
        return cls(id=data["id"], name=data.get("name", data["id"]),
                   project_keys=list(data.get("projectKeys", [])))


class ProjectGroupStore:
    """Composite project groupings, stored globally under ``projectGroups``."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def all(self) -> list[ProjectGroup]:
        return [ProjectGroup.from_dict(g) for g in self.store.get(PROJECT_GROUPS_KEY) or []]

    def get(self, group_id: str) -> Optional[ProjectGroup]:
        return next((g for g in self.all() if g.id == group_id), None)

    def save(self, group: ProjectGroup) -> ProjectGroup:
        if CROSS_PROJECT in group.project_keys:
            raise PolicyViolation("A project group cannot contain the cross-project view")
        groups = [g for g in self.all() if g.id != group.id]
        groups.append(group)
        self.store.set(PROJECT_GROUPS_KEY, [g.to_dict() for g in groups])
        return group

    def remove(self, group_id: str) -> None:
        groups = [g for g in self.all() if g.id != group_id]
        self.store.set(PROJECT_GROUPS_KEY, [g.to_dict() for g in groups])

    def namespace(self, group_id: str) -> Namespace:
        group = self.get(group_id)
        if group is None:
            raise NamespaceNotConfigured(f"Unknown project group: {group_id}")
        logger.debug("Opening group namespace %s over %s", group.id, group.project_keys)
        return Namespace(self.store, f"group:{group.id}", projects=list(group.project_keys))
