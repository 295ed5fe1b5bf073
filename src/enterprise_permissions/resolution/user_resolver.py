"""User permission resolution.

Combines everything that contributes to one user's permissions into a single
effective set.  Layers are applied in ascending precedence; a later layer
overrides an earlier one for the same ``(resource, action)`` key:

1. effective rules of the primary role;
2. effective rules of each additional role, in the order listed on the
   user record (a later role overrides an earlier one, deny does not
   automatically win);
3. the user's custom permissions;
4. the user's enabled restrictions, which force a deny.

Inactive users short-circuit to an always-deny set.  Inactive roles
contribute nothing.

Example
-------
::

    resolver = UserPermissionResolver(RoleHierarchyResolver(snapshot))
    permissions = resolver.resolve("alice")
    permissions.lookup("project", "view").source
    # <RuleSource.ROLE_RULE: 'role_rule'>
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterator, Mapping

from enterprise_permissions.model.types import Decision, RuleKey, RuleSource
from enterprise_permissions.resolution.role_resolver import RoleHierarchyResolver
from enterprise_permissions.rules.rule_set import index_restrictions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserPermissionEntry:
    """The decision for one key of a user's effective set, with its origin.

    Attributes
    ----------
    decision:
        Resolved decision.
    source:
        Layer that decided.
    role_id:
        For role rules, the role owning the deciding rule.
    via_role_id:
        For role rules, the assigned role the rule was reached through.
    rule_id:
        Deciding rule or restriction id.
    """

    decision: Decision
    source: RuleSource
    role_id: str | None = None
    via_role_id: str | None = None
    rule_id: str | None = None

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


class EffectiveUserPermissions:
    """A user's fully resolved permission set.

    The set is computed against one snapshot version and is never persisted;
    it becomes stale as soon as a newer snapshot is published.
    """

    def __init__(
        self,
        user_id: str,
        snapshot_version: int,
        entries: Mapping[RuleKey, UserPermissionEntry],
        active: bool = True,
    ) -> None:
        self._user_id = user_id
        self._snapshot_version = snapshot_version
        self._entries: Mapping[RuleKey, UserPermissionEntry] = MappingProxyType(dict(entries))
        self._active = active

    @classmethod
    def deny_all(cls, user_id: str, snapshot_version: int) -> EffectiveUserPermissions:
        """Return the set used for inactive users: every lookup denies by default."""
        return cls(user_id, snapshot_version, {}, active=False)

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def snapshot_version(self) -> int:
        return self._snapshot_version

    @property
    def active(self) -> bool:
        return self._active

    def lookup(self, resource: str, action: str) -> UserPermissionEntry | None:
        """Return the entry for a key, or ``None`` when no layer has an opinion."""
        return self._entries.get((resource, action))

    def items(self) -> Iterator[tuple[RuleKey, UserPermissionEntry]]:
        return iter(sorted(self._entries.items()))

    def allowed_keys(self) -> list[RuleKey]:
        return sorted(k for k, e in self._entries.items() if e.allowed)

    def resources(self) -> list[str]:
        return sorted({resource for resource, _ in self._entries})

    def matrix(self) -> dict[str, dict[str, UserPermissionEntry]]:
        """Return ``{resource: {action: entry}}`` for rendering a permission matrix."""
        grid: dict[str, dict[str, UserPermissionEntry]] = {}
        for (resource, action), entry in sorted(self._entries.items()):
            grid.setdefault(resource, {})[action] = entry
        return grid

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return (
            f"EffectiveUserPermissions(user_id={self._user_id!r}, "
            f"version={self._snapshot_version}, entries={len(self._entries)}, "
            f"active={self._active})"
        )


class UserPermissionResolver:
    """Builds :class:`EffectiveUserPermissions` from a role resolver's snapshot.

    Parameters
    ----------
    role_resolver:
        Resolver bound to the snapshot the users are read from.
    """

    def __init__(self, role_resolver: RoleHierarchyResolver) -> None:
        self._roles = role_resolver
        self._snapshot = role_resolver.snapshot

    def resolve(self, user_id: str) -> EffectiveUserPermissions:
        """Return the effective permissions of ``user_id``.

        Raises
        ------
        UnknownUserError
            If ``user_id`` is absent from the snapshot.
        """
        user = self._snapshot.user(user_id)
        version = self._snapshot.version
        if not user.is_active:
            logger.debug("User %s is inactive; denying everything", user_id)
            return EffectiveUserPermissions.deny_all(user_id, version)

        entries: dict[RuleKey, UserPermissionEntry] = {}

        for assigned_id in user.role_ids:
            role = self._snapshot.role(assigned_id)
            if not role.is_active:
                logger.debug("User %s: skipping inactive role %s", user_id, assigned_id)
                continue
            for key, rule in self._roles.resolve(assigned_id).items():
                entries[key] = UserPermissionEntry(
                    decision=Decision.from_granted(rule.granted),
                    source=RuleSource.ROLE_RULE,
                    role_id=rule.role_id,
                    via_role_id=assigned_id,
                    rule_id=rule.rule_id,
                )

        for key, rule in self._snapshot.user_rules(user_id).items():
            entries[key] = UserPermissionEntry(
                decision=Decision.from_granted(rule.granted),
                source=RuleSource.USER_OVERRIDE,
                rule_id=rule.id,
            )

        restrictions = index_restrictions(user.restrictions, as_of=self._snapshot.captured_at)
        for key, restriction in restrictions.items():
            entries[key] = UserPermissionEntry(
                decision=Decision.DENY,
                source=RuleSource.RESTRICTION,
                rule_id=restriction.id,
            )

        logger.debug(
            "Resolved user %s at v%d: %d entries", user_id, version, len(entries)
        )
        return EffectiveUserPermissions(user_id, version, entries)
