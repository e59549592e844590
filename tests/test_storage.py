"""
Tests for the key-value stores and namespaces.
"""

import json
import pytest

from capacity_core.errors import NamespaceNotConfigured, PolicyViolation, ReadOnlyNamespace
from capacity_core.storage import (
    CROSS_PROJECT,
    InMemoryStore,
    JsonFileStore,
    Namespace,
    ProjectGroup,
    ProjectGroupStore,
    namespaced_key,
    origin_of
)


class TestStores:
    """Tests for the store backends."""

    def test_in_memory_copies_values(self):
        store = InMemoryStore()
        value = {"absences": []}
        store.set("absences_alpha", value)
        value["absences"].append("changed")

        assert store.get("absences_alpha") == {"absences": []}

    def test_json_file_store(self, tmp_path):
        path = tmp_path / "nested" / "capacity.json"
        store = JsonFileStore(str(path))

        assert store.get("missing") is None
        store.set("teamConfig_alpha", {"teamMembers": []})
        store.set("absences_alpha", {"absences": []})
        store.delete("absences_alpha")

        assert json.loads(path.read_text()) == {"teamConfig_alpha": {"teamMembers": []}}
        assert JsonFileStore(str(path)).keys() == ["teamConfig_alpha"]


class TestKeys:
    """Tests for namespaced keys."""

    def test_namespaced_key(self):
        assert namespaced_key("absences", "alpha") == "absences_alpha"
        assert namespaced_key("absences", CROSS_PROJECT) == "absences"
        assert namespaced_key("absences", None) == "absences"

    def test_origin_of(self):
        assert origin_of("absences_alpha", "absences") == "alpha"
        assert origin_of("absences", "absences") == "default"
        assert origin_of("teamConfig_alpha", "absences") is None


class TestNamespace:
    """Tests for project scoping."""

    def test_requires_project_key(self, store):
        with pytest.raises(NamespaceNotConfigured):
            Namespace(store, "")

    def test_isolation(self, store):
        alpha = Namespace(store, "alpha")
        beta = Namespace(store, "beta")
        alpha.save("absences", {"absences": [1]})

        assert beta.load("absences") is None
        assert beta.load("absences", {}) == {}

    def test_cross_project_reads_union(self, store):
        Namespace(store, "alpha").save("absences", {"absences": [1]})
        Namespace(store, "beta").save("absences", {"absences": [2]})
        store.set("absences", {"absences": [0]})

        cross = Namespace(store, CROSS_PROJECT)

        assert cross.read_only
        assert [origin for origin, _ in cross.iter_blobs("absences")] == ["default", "alpha", "beta"]
        with pytest.raises(ReadOnlyNamespace):
            cross.save("absences", {"absences": []})


class TestProjectGroups:
    """Tests for project groupings."""

    def test_save_and_list(self, store):
        groups = ProjectGroupStore(store)
        groups.save(ProjectGroup("core", "Core", ["alpha", "beta"]))
        groups.save(ProjectGroup("core", "Core teams", ["alpha"]))

        assert [g.to_dict() for g in groups.all()] == [
            {"id": "core", "name": "Core teams", "projectKeys": ["alpha"]}
        ]

    def test_group_cannot_contain_cross_project(self, store):
        with pytest.raises(PolicyViolation):
            ProjectGroupStore(store).save(ProjectGroup("all", "All", [CROSS_PROJECT]))

    def test_group_namespace_is_read_only_union(self, store):
        Namespace(store, "alpha").save("absences", {"absences": [1]})
        Namespace(store, "beta").save("absences", {"absences": [2]})
        Namespace(store, "gamma").save("absences", {"absences": [3]})
        groups = ProjectGroupStore(store)
        groups.save(ProjectGroup("core", "Core", ["alpha", "gamma"]))

        view = groups.namespace("core")

        assert [o for o, _ in view.iter_blobs("absences")] == ["alpha", "gamma"]
        with pytest.raises(ReadOnlyNamespace):
            view.ensure_writable()

    def test_unknown_group(self, store):
        with pytest.raises(NamespaceNotConfigured):
            ProjectGroupStore(store).namespace("missing")

    def test_remove(self, store):
        groups = ProjectGroupStore(store)
        groups.save(ProjectGroup("core", "Core"))
        groups.remove("core")

        assert groups.all() == []
