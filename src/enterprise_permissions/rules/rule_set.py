"""Keyed permission rule collections.

A RuleSet holds the rules of one scope (a role's own permissions or a user's
custom permissions) indexed by their ``(resource, action)`` identity.  A
scope may define at most one rule per pair; defining two is rejected rather
than silently resolved, because the two rules could disagree.

Example
-------
::

    rules = RuleSet.from_rules(
        [
            PermissionRule(id="r1", resource="projects", action="view", granted=True),
            PermissionRule(id="r2", resource="projects", action="delete", granted=False),
        ],
        scope="role:editor",
    )
    assert rules.get("projects", "view").granted is True
    assert rules.get("projects", "edit") is None
"""
from __future__ import annotations

import datetime
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from enterprise_permissions.model.errors import DuplicateIdentifierError
from enterprise_permissions.model.types import PermissionRule, Restriction, RuleKey


class RuleSet:
    """Immutable ``(resource, action) -> PermissionRule`` mapping for one scope.

    Parameters
    ----------
    rules:
        Rules keyed by identity.  Use :meth:`from_rules` to build one from a
        sequence with duplicate detection.
    scope:
        Label of the owning scope, used in error messages.
    """

    def __init__(self, rules: Mapping[RuleKey, PermissionRule], scope: str = "") -> None:
        self._rules: Mapping[RuleKey, PermissionRule] = MappingProxyType(dict(rules))
        self._scope = scope

    @classmethod
    def from_rules(
        cls,
        rules: Iterable[PermissionRule],
        scope: str = "",
        as_of: datetime.datetime | None = None,
    ) -> RuleSet:
        """Index ``rules`` by key.

        When ``as_of`` is given, rules expired at that instant are validated
        but left out of the set.

        Raises
        ------
        DuplicateIdentifierError
            If two rules share a ``(resource, action)`` pair or a rule id.
        """
        by_key: dict[RuleKey, PermissionRule] = {}
        seen_ids: set[str] = set()
        for rule in rules:
            if rule.key in by_key:
                raise DuplicateIdentifierError(
                    "rule", f"{rule.resource}:{rule.action}", scope or None
                )
            if rule.id in seen_ids:
                raise DuplicateIdentifierError("rule id", rule.id, scope or None)
            seen_ids.add(rule.id)
            by_key[rule.key] = rule
        if as_of is not None:
            by_key = {k: r for k, r in by_key.items() if not r.is_expired(as_of)}
        return cls(by_key, scope)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, resource: str, action: str) -> PermissionRule | None:
        return self._rules.get((resource, action))

    def __contains__(self, key: object) -> bool:
        return key in self._rules

    def __iter__(self) -> Iterator[PermissionRule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def keys(self) -> frozenset[RuleKey]:
        return frozenset(self._rules)

    def items(self) -> Iterator[tuple[RuleKey, PermissionRule]]:
        return iter(self._rules.items())

    def rules_for_resource(self, resource: str) -> list[PermissionRule]:
        """Return all rules targeting ``resource``, sorted by action."""
        return sorted(
            (r for r in self._rules.values() if r.resource == resource),
            key=lambda r: r.action,
        )

    @property
    def scope(self) -> str:
        return self._scope

    @property
    def granted_count(self) -> int:
        return sum(1 for r in self._rules.values() if r.granted)

    @property
    def denied_count(self) -> int:
        return len(self._rules) - self.granted_count

    def summary(self) -> dict[str, object]:
        """Return a plain dict summarising the rule set."""
        return {
            "scope": self._scope,
            "rule_count": len(self._rules),
            "granted": self.granted_count,
            "denied": self.denied_count,
            "resources": sorted({r.resource for r in self._rules.values()}),
        }

    def __repr__(self) -> str:
        return f"RuleSet(scope={self._scope!r}, rules={len(self._rules)})"


def index_restrictions(
    restrictions: Iterable[Restriction],
    scope: str = "",
    as_of: datetime.datetime | None = None,
) -> dict[RuleKey, Restriction]:
    """Index the enabled restrictions of one user by key.

    Restrictions expired at ``as_of`` are skipped like disabled ones.

    Several restrictions may lock the same pair; the first enabled one (in
    declaration order) is used for attribution.

    Raises
    ------
    DuplicateIdentifierError
        If two restrictions share an id.
    """
    seen_ids: set[str] = set()
    indexed: dict[RuleKey, Restriction] = {}
    for restriction in restrictions:
        if restriction.id in seen_ids:
            raise DuplicateIdentifierError("restriction id", restriction.id, scope or None)
        seen_ids.add(restriction.id)
        if not restriction.enabled or restriction.key in indexed:
            continue
        if as_of is not None and restriction.is_expired(as_of):
            continue
        indexed[restriction.key] = restriction
    return indexed
