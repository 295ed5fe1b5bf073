"""Role hierarchy resolution.

Flattens a role's own rules plus every inherited rule into a single
effective rule set.  Precedence, from strongest to weakest:

1. the role's own rule for a ``(resource, action)`` pair;
2. inherited rules on which all parents agree;
3. inherited rules on which parents disagree: deny wins, and the conflict
   is recorded on the result.

Attribution never depends on the order of the inheritance list: when
several parents contribute the same decision, the rule with the smallest
``(role_id, rule_id)`` is reported.

Example
-------
::

    resolver = RoleHierarchyResolver(snapshot)
    effective = resolver.resolve("editor")
    effective.get("project", "view")
    # EffectiveRule(granted=True, rule_id='r-view', role_id='viewer', conflicted=False)
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Iterator, Mapping

from enterprise_permissions.model.errors import CycleError, UnknownRoleError
from enterprise_permissions.model.types import RuleKey
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectiveRule:
    """The resolved decision for one ``(resource, action)`` pair of a role.

    Attributes
    ----------
    granted:
        Resolved boolean decision.
    rule_id:
        Id of the rule that decided (the last rule applied).
    role_id:
        Role that owns ``rule_id``; an ancestor when the rule was inherited.
    conflicted:
        ``True`` when parents disagreed and deny-wins was applied.
    """

    granted: bool
    rule_id: str
    role_id: str
    conflicted: bool = False

    def _attribution(self) -> tuple[str, str, bool]:
        return (self.role_id, self.rule_id, self.conflicted)


@dataclass(frozen=True)
class RuleConflict:
    """Two or more parents disagree on a pair the child does not define."""

    role_id: str
    resource: str
    action: str
    granting_parents: tuple[str, ...]
    denying_parents: tuple[str, ...]

    @property
    def key(self) -> RuleKey:
        return (self.resource, self.action)

    def to_dict(self) -> dict[str, object]:
        return {
            "role_id": self.role_id,
            "resource": self.resource,
            "action": self.action,
            "granting_parents": list(self.granting_parents),
            "denying_parents": list(self.denying_parents),
        }


class EffectiveRuleSet:
    """Fully resolved ``(resource, action) -> EffectiveRule`` mapping for a role."""

    def __init__(
        self,
        role_id: str,
        rules: Mapping[RuleKey, EffectiveRule],
        conflicts: tuple[RuleConflict, ...] = (),
    ) -> None:
        self._role_id = role_id
        self._rules: Mapping[RuleKey, EffectiveRule] = MappingProxyType(dict(rules))
        self._conflicts = conflicts

    @property
    def role_id(self) -> str:
        return self._role_id

    @property
    def conflicts(self) -> tuple[RuleConflict, ...]:
        return self._conflicts

    def get(self, resource: str, action: str) -> EffectiveRule | None:
        return self._rules.get((resource, action))

    def is_granted(self, resource: str, action: str) -> bool | None:
        """Return the resolved boolean, or ``None`` when no rule applies."""
        rule = self._rules.get((resource, action))
        return None if rule is None else rule.granted

    def is_inherited(self, resource: str, action: str) -> bool:
        rule = self._rules.get((resource, action))
        return rule is not None and rule.role_id != self._role_id

    def items(self) -> Iterator[tuple[RuleKey, EffectiveRule]]:
        return iter(sorted(self._rules.items()))

    def as_mapping(self) -> dict[RuleKey, bool]:
        """Return the plain ``(resource, action) -> granted`` mapping."""
        return {key: rule.granted for key, rule in self._rules.items()}

    def __contains__(self, key: object) -> bool:
        return key in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EffectiveRuleSet):
            return NotImplemented
        return (
            self._role_id == other._role_id
            and dict(self._rules) == dict(other._rules)
            and self._conflicts == other._conflicts
        )

    def __repr__(self) -> str:
        return (
            f"EffectiveRuleSet(role_id={self._role_id!r}, rules={len(self._rules)}, "
            f"conflicts={len(self._conflicts)})"
        )


class RoleHierarchyResolver:
    """Resolves effective rule sets for the roles of one snapshot.

    Results are memoised for the lifetime of the resolver; since snapshots
    are immutable, a resolver must be discarded together with its snapshot.

    Parameters
    ----------
    snapshot:
        The snapshot whose roles are resolved.
    """

    def __init__(self, snapshot: PermissionSnapshot) -> None:
        self._snapshot = snapshot
        self._resolved: dict[str, EffectiveRuleSet] = {}
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> PermissionSnapshot:
        return self._snapshot

    def resolve(self, role_id: str) -> EffectiveRuleSet:
        """Return the effective rule set of ``role_id``.

        Raises
        ------
        UnknownRoleError
            If ``role_id`` (or a parent it names) is absent.
        CycleError
            If ``role_id`` reaches itself through inheritance.  No partial
            result is ever returned in that case.
        """
        with self._lock:
            return self._resolve(role_id, [])

    def resolve_all(self) -> dict[str, EffectiveRuleSet]:
        """Resolve every role of the snapshot, parents first."""
        return {
            role_id: self.resolve(role_id)
            for role_id in self._snapshot.graph.topological_order()
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve(self, role_id: str, path: list[str]) -> EffectiveRuleSet:
        if role_id in path:
            cycle = path[path.index(role_id):] + [role_id]
            raise CycleError(role_id, cycle)
        cached = self._resolved.get(role_id)
        if cached is not None:
            return cached
        if role_id not in self._snapshot.roles:
            raise UnknownRoleError(role_id)

        role = self._snapshot.roles[role_id]
        path.append(role_id)
        try:
            parents: list[tuple[str, EffectiveRuleSet]] = []
            for parent_id in dict.fromkeys(role.inheritance):
                parents.append((parent_id, self._resolve(parent_id, path)))
        finally:
            path.pop()

        effective = self._merge(role_id, parents)
        self._resolved[role_id] = effective
        logger.debug(
            "Resolved role %s: %d effective rules, %d conflicts",
            role_id,
            len(effective),
            len(effective.conflicts),
        )
        return effective

    def _merge(
        self,
        role_id: str,
        parents: list[tuple[str, EffectiveRuleSet]],
    ) -> EffectiveRuleSet:
        own = self._snapshot.role_rules(role_id)

        candidates: dict[RuleKey, list[tuple[str, EffectiveRule]]] = {}
        for parent_id, parent_set in parents:
            for key, rule in parent_set.items():
                candidates.setdefault(key, []).append((parent_id, rule))

        conflicts: set[RuleConflict] = set()
        for _, parent_set in parents:
            conflicts.update(c for c in parent_set.conflicts if c.key not in own)

        rules: dict[RuleKey, EffectiveRule] = {}
        for key, contributions in candidates.items():
            if key in own:
                continue
            granting = [(p, r) for p, r in contributions if r.granted]
            denying = [(p, r) for p, r in contributions if not r.granted]
            if granting and denying:
                winner = min((r for _, r in denying), key=EffectiveRule._attribution)
                rules[key] = replace(winner, conflicted=True)
                conflicts.add(
                    RuleConflict(
                        role_id=role_id,
                        resource=key[0],
                        action=key[1],
                        granting_parents=tuple(sorted({p for p, _ in granting})),
                        denying_parents=tuple(sorted({p for p, _ in denying})),
                    )
                )
                logger.debug(
                    "Role %s: parents disagree on %s:%s, deny wins", role_id, key[0], key[1]
                )
            else:
                rules[key] = min((r for _, r in contributions), key=EffectiveRule._attribution)

        for rule in own:
            rules[rule.key] = EffectiveRule(
                granted=rule.granted, rule_id=rule.id, role_id=role_id
            )

        ordered = tuple(sorted(conflicts, key=lambda c: (c.role_id, c.resource, c.action)))
        return EffectiveRuleSet(role_id, rules, ordered)
