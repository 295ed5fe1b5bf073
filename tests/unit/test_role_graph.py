"""Tests for RoleGraph."""
from __future__ import annotations

import pytest

from enterprise_permissions.graph.role_graph import RoleGraph
from enterprise_permissions.model.errors import CycleError, UnknownRoleError
from enterprise_permissions.model.types import CustomRole


@pytest.fixture()
def diamond() -> RoleGraph:
    # admin -> (editor, auditor) -> viewer
    return RoleGraph(
        {
            "viewer": (),
            "editor": ("viewer",),
            "auditor": ("viewer",),
            "admin": ("editor", "auditor"),
        }
    )


class TestStructure:
    def test_from_roles(self) -> None:
        graph = RoleGraph.from_roles(
            [
                CustomRole(id="viewer", name="viewer"),
                CustomRole(id="editor", name="editor", inheritance=("viewer",)),
            ]
        )
        assert graph.parents("editor") == ("viewer",)
        assert "viewer" in graph
        assert len(graph) == 2

    def test_parents_keep_declaration_order(self, diamond: RoleGraph) -> None:
        assert diamond.parents("admin") == ("editor", "auditor")

    def test_children_sorted(self, diamond: RoleGraph) -> None:
        assert diamond.children("viewer") == ("auditor", "editor")

    def test_ancestors(self, diamond: RoleGraph) -> None:
        assert diamond.ancestors("admin") == frozenset({"editor", "auditor", "viewer"})
        assert diamond.ancestors("viewer") == frozenset()

    def test_descendants(self, diamond: RoleGraph) -> None:
        assert diamond.descendants("viewer") == frozenset({"editor", "auditor", "admin"})

    def test_unknown_role_raises(self, diamond: RoleGraph) -> None:
        with pytest.raises(UnknownRoleError):
            diamond.parents("ghost")

    def test_duplicate_parent_collapsed(self) -> None:
        graph = RoleGraph({"viewer": (), "editor": ("viewer", "viewer")})
        assert graph.parents("editor") == ("viewer",)

    def test_missing_parents_reported(self) -> None:
        graph = RoleGraph({"editor": ("viewer", "ghost")})
        assert graph.missing_parents() == {"editor": ("viewer", "ghost")}

    def test_repr_counts_edges(self, diamond: RoleGraph) -> None:
        assert repr(diamond) == "RoleGraph(roles=4, edges=4)"


class TestCycles:
    def test_acyclic_graph_has_no_cycle(self, diamond: RoleGraph) -> None:
        assert diamond.find_cycle() is None
        diamond.validate()

    def test_self_loop(self) -> None:
        graph = RoleGraph({"a": ("a",)})
        assert graph.find_cycle() == ["a", "a"]

    def test_two_node_cycle_starts_at_focus(self) -> None:
        graph = RoleGraph({"a": ("b",), "b": ("a",)})
        assert graph.find_cycle(start="b") == ["b", "a", "b"]
        assert graph.find_cycle(start="a") == ["a", "b", "a"]

    def test_transitive_cycle(self) -> None:
        graph = RoleGraph({"a": ("b",), "b": ("c",), "c": ("a",), "d": ()})
        cycle = graph.find_cycle(start="a")
        assert cycle == ["a", "b", "c", "a"]

    def test_validate_raises_with_repeated_id(self) -> None:
        graph = RoleGraph({"a": ("b",), "b": ("a",)})
        with pytest.raises(CycleError) as exc_info:
            graph.validate(start="a")
        assert exc_info.value.role_id == "a"
        assert exc_info.value.path == ("a", "b", "a")

    def test_cycle_below_acyclic_root(self) -> None:
        graph = RoleGraph({"root": ("x",), "x": ("y",), "y": ("x",)})
        cycle = graph.find_cycle(start="root")
        assert cycle == ["x", "y", "x"]

    def test_deep_chain_does_not_recurse(self) -> None:
        edges = {f"r{i}": (f"r{i + 1}",) for i in range(5000)}
        edges["r5000"] = ()
        graph = RoleGraph(edges)
        assert graph.find_cycle(start="r0") is None


class TestOrdering:
    def test_topological_order_parents_first(self, diamond: RoleGraph) -> None:
        assert diamond.topological_order() == ["viewer", "auditor", "editor", "admin"]

    def test_topological_order_rejects_cycle(self) -> None:
        with pytest.raises(CycleError):
            RoleGraph({"a": ("b",), "b": ("a",)}).topological_order()

    def test_depth(self, diamond: RoleGraph) -> None:
        assert diamond.depth("viewer") == 0
        assert diamond.depth("admin") == 2

    def test_path_between(self, diamond: RoleGraph) -> None:
        assert diamond.path_between("admin", "viewer") == ["admin", "editor", "viewer"]
        assert diamond.path_between("viewer", "admin") is None
