"""Immutable, versioned views of all role, user and rule data.

A PermissionSnapshot is only ever constructed through :meth:`build`, which
validates the whole candidate before returning it:

- role ids, user ids and role names are unique;
- each rule scope defines at most one rule per ``(resource, action)``;
- every inheritance edge and every user role assignment names a role that
  exists in the same snapshot;
- the inheritance relation is acyclic.

A snapshot that fails any check is never returned, so everything downstream
(resolvers, the evaluation engine) may assume a consistent, cycle-free view.

Each snapshot also carries the instant it was built (:attr:`captured_at`).
Rules and restrictions with an ``expires_at`` are judged against that
instant, so one snapshot always answers the same way; an expiry takes effect
with the next published snapshot.

Example
-------
::

    snapshot = PermissionSnapshot.build(
        version=1,
        roles=[viewer, editor],
        users=[alice],
    )
    snapshot.role("editor").inheritance   # ('viewer',)
"""
from __future__ import annotations

import datetime
import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from enterprise_permissions.graph.role_graph import RoleGraph
from enterprise_permissions.model.errors import (
    DuplicateIdentifierError,
    ReferentialIntegrityError,
    UnknownRoleError,
    UnknownUserError,
)
from enterprise_permissions.model.types import CustomRole, EnterpriseUser
from enterprise_permissions.rules.rule_set import RuleSet, index_restrictions

logger = logging.getLogger(__name__)


class PermissionSnapshot:
    """A validated, read-only view of roles and users at one version.

    Do not instantiate directly; use :meth:`build` or :meth:`empty`.
    """

    __slots__ = (
        "_version",
        "_roles",
        "_users",
        "_graph",
        "_role_rules",
        "_user_rules",
        "_captured_at",
    )

    def __init__(
        self,
        version: int,
        roles: Mapping[str, CustomRole],
        users: Mapping[str, EnterpriseUser],
        graph: RoleGraph,
        role_rules: Mapping[str, RuleSet],
        user_rules: Mapping[str, RuleSet],
        captured_at: datetime.datetime | None = None,
    ) -> None:
        self._version = version
        self._roles = MappingProxyType(dict(roles))
        self._users = MappingProxyType(dict(users))
        self._graph = graph
        self._role_rules = MappingProxyType(dict(role_rules))
        self._user_rules = MappingProxyType(dict(user_rules))
        self._captured_at = captured_at or datetime.datetime.now(datetime.timezone.utc)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def empty(cls) -> PermissionSnapshot:
        """Return the version-0 snapshot with no roles and no users."""
        return cls(0, {}, {}, RoleGraph({}), {}, {})

    @classmethod
    def build(
        cls,
        version: int,
        roles: Iterable[CustomRole],
        users: Iterable[EnterpriseUser],
        focus_role: str | None = None,
        captured_at: datetime.datetime | None = None,
    ) -> PermissionSnapshot:
        """Validate a candidate and return it as a snapshot.

        Parameters
        ----------
        version:
            Version number to tag the snapshot with.
        roles, users:
            Full role and user sets of the candidate.
        focus_role:
            Role id being edited, if any.  Cycle detection starts there so a
            reported :class:`CycleError` names the edited role.
        captured_at:
            Clock reading that expiry is judged against.  Defaults to now (UTC).

        Raises
        ------
        DuplicateIdentifierError
            Duplicate role id, user id, role name or rule key.
        ReferentialIntegrityError
            An inheritance edge or role assignment names an unknown role.
        CycleError
            The inheritance relation contains a cycle.
        """
        if captured_at is None:
            captured_at = datetime.datetime.now(datetime.timezone.utc)
        role_map: dict[str, CustomRole] = {}
        names: dict[str, str] = {}
        role_rules: dict[str, RuleSet] = {}
        for role in roles:
            if role.id in role_map:
                raise DuplicateIdentifierError("role id", role.id)
            if role.name in names:
                raise DuplicateIdentifierError("role name", role.name)
            role_map[role.id] = role
            names[role.name] = role.id
            role_rules[role.id] = RuleSet.from_rules(
                role.permissions, f"role:{role.id}", as_of=captured_at
            )

        graph = RoleGraph.from_roles(role_map.values())
        missing = graph.missing_parents()
        if missing:
            role_id = focus_role if focus_role in missing else sorted(missing)[0]
            raise ReferentialIntegrityError(role_id, missing_ids=missing[role_id])
        graph.validate(focus_role if focus_role in graph else None)

        user_map: dict[str, EnterpriseUser] = {}
        user_rules: dict[str, RuleSet] = {}
        for user in users:
            if user.id in user_map:
                raise DuplicateIdentifierError("user id", user.id)
            unknown = [r for r in user.role_ids if r not in role_map]
            if unknown:
                raise ReferentialIntegrityError(user.id, missing_ids=unknown)
            scope = f"user:{user.id}"
            user_rules[user.id] = RuleSet.from_rules(
                user.custom_permissions, scope, as_of=captured_at
            )
            index_restrictions(user.restrictions, scope)
            user_map[user.id] = user

        logger.debug(
            "Validated snapshot v%d: %d roles, %d users", version, len(role_map), len(user_map)
        )
        return cls(version, role_map, user_map, graph, role_rules, user_rules, captured_at)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        return self._version

    @property
    def captured_at(self) -> datetime.datetime:
        """Instant the snapshot was built; expiry is judged against it."""
        return self._captured_at

    @property
    def roles(self) -> Mapping[str, CustomRole]:
        return self._roles

    @property
    def users(self) -> Mapping[str, EnterpriseUser]:
        return self._users

    @property
    def graph(self) -> RoleGraph:
        return self._graph

    def role(self, role_id: str) -> CustomRole:
        try:
            return self._roles[role_id]
        except KeyError:
            raise UnknownRoleError(role_id) from None

    def user(self, user_id: str) -> EnterpriseUser:
        try:
            return self._users[user_id]
        except KeyError:
            raise UnknownUserError(user_id) from None

    def find_user(self, user_id: str) -> EnterpriseUser | None:
        return self._users.get(user_id)

    def role_by_name(self, name: str) -> CustomRole | None:
        for role in self._roles.values():
            if role.name == name:
                return role
        return None

    def role_rules(self, role_id: str) -> RuleSet:
        """Return the role's own rules (not including inherited ones)."""
        try:
            return self._role_rules[role_id]
        except KeyError:
            raise UnknownRoleError(role_id) from None

    def user_rules(self, user_id: str) -> RuleSet:
        """Return the user's custom permission overrides."""
        try:
            return self._user_rules[user_id]
        except KeyError:
            raise UnknownUserError(user_id) from None

    def referrers(self, role_id: str) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """Return ``(role_ids, user_ids)`` that directly reference ``role_id``."""
        role_refs = tuple(
            sorted(r.id for r in self._roles.values() if role_id in r.inheritance)
        )
        user_refs = tuple(
            sorted(u.id for u in self._users.values() if role_id in u.role_ids)
        )
        return role_refs, user_refs

    def users_with_role(self, role_id: str) -> list[EnterpriseUser]:
        return [u for u in self._users.values() if role_id in u.role_ids]

    def to_dict(self) -> dict[str, object]:
        """Serialise the snapshot as a definitions document."""
        return {
            "version": self._version,
            "roles": [self._roles[r].to_dict() for r in sorted(self._roles)],
            "users": [self._users[u].to_dict() for u in sorted(self._users)],
        }

    def __repr__(self) -> str:
        return (
            f"PermissionSnapshot(version={self._version}, roles={len(self._roles)}, "
            f"users={len(self._users)})"
        )
