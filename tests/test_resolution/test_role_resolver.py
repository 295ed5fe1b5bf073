"""Tests for RoleHierarchyResolver."""
from __future__ import annotations

import itertools

import pytest

from enterprise_permissions.graph.role_graph import RoleGraph
from enterprise_permissions.model.errors import CycleError, UnknownRoleError
from enterprise_permissions.model.types import CustomRole, PermissionRule
from enterprise_permissions.resolution.role_resolver import (
    EffectiveRule,
    RoleHierarchyResolver,
)
from enterprise_permissions.rules.rule_set import RuleSet
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot


def _rule(rule_id: str, resource: str, action: str, granted: bool = True) -> PermissionRule:
    return PermissionRule(id=rule_id, resource=resource, action=action, granted=granted)


def _role(role_id: str, *rules: PermissionRule, inherits: tuple[str, ...] = ()) -> CustomRole:
    return CustomRole(id=role_id, name=role_id, permissions=rules, inheritance=inherits)


def _resolver(*roles: CustomRole) -> RoleHierarchyResolver:
    return RoleHierarchyResolver(PermissionSnapshot.build(1, roles, []))


def _unvalidated(*roles: CustomRole) -> PermissionSnapshot:
    """Build a snapshot without validation, to exercise resolver-side cycle detection."""
    return PermissionSnapshot(
        1,
        {r.id: r for r in roles},
        {},
        RoleGraph.from_roles(roles),
        {r.id: RuleSet.from_rules(r.permissions, r.id) for r in roles},
        {},
    )


@pytest.fixture()
def viewer() -> CustomRole:
    return _role("viewer", _rule("p-view", "project", "view"))


@pytest.fixture()
def editor() -> CustomRole:
    return _role("editor", _rule("p-edit", "project", "edit"), inherits=("viewer",))


# ---------------------------------------------------------------------------
# Inheritance
# ---------------------------------------------------------------------------


class TestInheritance:
    def test_own_rules_only(self, viewer: CustomRole) -> None:
        effective = _resolver(viewer).resolve("viewer")
        assert effective.as_mapping() == {("project", "view"): True}
        assert effective.conflicts == ()

    def test_inherited_rule_attributed_to_ancestor(
        self, viewer: CustomRole, editor: CustomRole
    ) -> None:
        effective = _resolver(viewer, editor).resolve("editor")
        assert effective.get("project", "view") == EffectiveRule(
            granted=True, rule_id="p-view", role_id="viewer"
        )
        assert effective.is_inherited("project", "view")
        assert not effective.is_inherited("project", "edit")

    def test_own_rule_overrides_inherited(self, viewer: CustomRole) -> None:
        restricted = _role(
            "restricted-viewer", _rule("no-view", "project", "view", granted=False),
            inherits=("viewer",),
        )
        effective = _resolver(viewer, restricted).resolve("restricted-viewer")
        rule = effective.get("project", "view")
        assert rule is not None
        assert rule.granted is False
        assert rule.role_id == "restricted-viewer"

    def test_own_grant_overrides_inherited_deny(self) -> None:
        base = _role("base", _rule("d", "report", "export", granted=False))
        child = _role("child", _rule("g", "report", "export"), inherits=("base",))
        assert _resolver(base, child).resolve("child").is_granted("report", "export") is True

    def test_transitive_inheritance(self, viewer: CustomRole, editor: CustomRole) -> None:
        admin = _role("admin", _rule("p-del", "project", "delete"), inherits=("editor",))
        effective = _resolver(viewer, editor, admin).resolve("admin")
        assert effective.as_mapping() == {
            ("project", "view"): True,
            ("project", "edit"): True,
            ("project", "delete"): True,
        }
        assert effective.get("project", "view").role_id == "viewer"  # type: ignore[union-attr]

    def test_absent_pair_is_none(self, viewer: CustomRole) -> None:
        assert _resolver(viewer).resolve("viewer").is_granted("project", "edit") is None

    def test_unknown_role(self, viewer: CustomRole) -> None:
        with pytest.raises(UnknownRoleError):
            _resolver(viewer).resolve("ghost")

    def test_results_memoised(self, viewer: CustomRole) -> None:
        resolver = _resolver(viewer)
        assert resolver.resolve("viewer") is resolver.resolve("viewer")

    def test_resolve_all_parents_first(self, viewer: CustomRole, editor: CustomRole) -> None:
        resolved = _resolver(viewer, editor).resolve_all()
        assert list(resolved) == ["viewer", "editor"]


# ---------------------------------------------------------------------------
# Parent conflicts
# ---------------------------------------------------------------------------


class TestParentConflicts:
    def _roles(self, parent_order: tuple[str, ...]) -> list[CustomRole]:
        return [
            _role("grants", _rule("g1", "billing", "view")),
            _role("denies", _rule("d1", "billing", "view", granted=False)),
            _role("child", inherits=parent_order),
        ]

    def test_deny_wins_between_parents(self) -> None:
        effective = _resolver(*self._roles(("grants", "denies"))).resolve("child")
        rule = effective.get("billing", "view")
        assert rule is not None
        assert rule.granted is False
        assert rule.conflicted is True
        assert rule.role_id == "denies"

    def test_conflict_recorded(self) -> None:
        effective = _resolver(*self._roles(("grants", "denies"))).resolve("child")
        assert len(effective.conflicts) == 1
        conflict = effective.conflicts[0]
        assert conflict.role_id == "child"
        assert conflict.key == ("billing", "view")
        assert conflict.granting_parents == ("grants",)
        assert conflict.denying_parents == ("denies",)

    def test_deny_wins_regardless_of_parent_order(self) -> None:
        first = _resolver(*self._roles(("grants", "denies"))).resolve("child")
        second = _resolver(*self._roles(("denies", "grants"))).resolve("child")
        assert first == second

    def test_child_rule_settles_conflict(self) -> None:
        roles = self._roles(("grants", "denies"))
        roles[2] = _role("child", _rule("c1", "billing", "view"), inherits=("grants", "denies"))
        effective = _resolver(*roles).resolve("child")
        assert effective.is_granted("billing", "view") is True
        assert effective.conflicts == ()

    def test_conflict_propagates_to_grandchild(self) -> None:
        roles = self._roles(("grants", "denies"))
        roles.append(_role("grandchild", inherits=("child",)))
        effective = _resolver(*roles).resolve("grandchild")
        assert effective.is_granted("billing", "view") is False
        assert [c.role_id for c in effective.conflicts] == ["child"]

    def test_agreeing_parents_are_not_a_conflict(self) -> None:
        roles = [
            _role("a", _rule("ra", "project", "view")),
            _role("b", _rule("rb", "project", "view")),
            _role("child", inherits=("b", "a")),
        ]
        effective = _resolver(*roles).resolve("child")
        assert effective.conflicts == ()
        assert effective.get("project", "view").role_id == "a"  # type: ignore[union-attr]


class TestSiblingOrderIndependence:
    def test_all_permutations_resolve_identically(self) -> None:
        parents = [
            _role("p1", _rule("r1", "project", "view"), _rule("r1b", "task", "edit", granted=False)),
            _role("p2", _rule("r2", "project", "view"), _rule("r2b", "report", "export")),
            _role("p3", _rule("r3", "task", "edit", granted=False)),
        ]
        results = []
        for order in itertools.permutations(["p1", "p2", "p3"]):
            child = _role("child", inherits=order)
            results.append(_resolver(*parents, child).resolve("child"))
        assert all(result == results[0] for result in results)


# ---------------------------------------------------------------------------
# Cycles in unvalidated data
# ---------------------------------------------------------------------------


class TestCycleDetection:
    def test_two_role_cycle_raises(self) -> None:
        snapshot = _unvalidated(
            _role("a", _rule("ra", "x", "y"), inherits=("b",)),
            _role("b", _rule("rb", "x", "z"), inherits=("a",)),
        )
        with pytest.raises(CycleError) as exc_info:
            RoleHierarchyResolver(snapshot).resolve("a")
        assert exc_info.value.role_id == "a"
        assert exc_info.value.path == ("a", "b", "a")

    def test_self_inheritance_raises(self) -> None:
        snapshot = _unvalidated(_role("a", inherits=("a",)))
        with pytest.raises(CycleError):
            RoleHierarchyResolver(snapshot).resolve("a")

    def test_no_partial_result_cached(self) -> None:
        snapshot = _unvalidated(
            _role("a", inherits=("b",)),
            _role("b", inherits=("c",)),
            _role("c", inherits=("a",)),
        )
        resolver = RoleHierarchyResolver(snapshot)
        for role_id in ("a", "b", "c"):
            with pytest.raises(CycleError):
                resolver.resolve(role_id)

    def test_role_outside_cycle_names_cycle_member(self) -> None:
        snapshot = _unvalidated(
            _role("entry", inherits=("a",)),
            _role("a", inherits=("b",)),
            _role("b", inherits=("a",)),
        )
        with pytest.raises(CycleError) as exc_info:
            RoleHierarchyResolver(snapshot).resolve("entry")
        assert exc_info.value.role_id == "a"
