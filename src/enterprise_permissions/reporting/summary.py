"""Role, user and permission reports for one snapshot.

Example
-------
::

    reporter = PermissionReporter(store.current)
    reporter.role_summary()["active"]
    reporter.to_csv(Path("/tmp/permission_matrix.csv"))
"""
from __future__ import annotations

import csv
from pathlib import Path

from enterprise_permissions.model.types import Decision, RuleKey
from enterprise_permissions.resolution.role_resolver import RoleHierarchyResolver
from enterprise_permissions.resolution.user_resolver import (
    EffectiveUserPermissions,
    UserPermissionResolver,
)
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot


class PermissionReporter:
    """Aggregate statistics and a permission matrix for a :class:`PermissionSnapshot`.

    Parameters
    ----------
    snapshot:
        The snapshot to report on.  Reports never change over the
        reporter's lifetime.
    """

    def __init__(self, snapshot: PermissionSnapshot) -> None:
        self._snapshot = snapshot
        self._users = UserPermissionResolver(RoleHierarchyResolver(snapshot))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def role_summary(self) -> dict[str, object]:
        """Return ``total``, ``active``, ``system``, ``custom`` and ``users_with_roles``."""
        roles = list(self._snapshot.roles.values())
        users = self._snapshot.users.values()
        return {
            "total": len(roles),
            "active": sum(1 for r in roles if r.is_active),
            "system": sum(1 for r in roles if r.is_system),
            "custom": sum(1 for r in roles if not r.is_system),
            "users_with_roles": sum(1 for u in users if u.role_ids),
        }

    def user_summary(self) -> dict[str, object]:
        """Return ``total``, ``active``, ``with_custom_permissions`` and ``with_restrictions``."""
        users = list(self._snapshot.users.values())
        return {
            "total": len(users),
            "active": sum(1 for u in users if u.is_active),
            "with_custom_permissions": sum(1 for u in users if u.custom_permissions),
            "with_restrictions": sum(
                1 for u in users if any(r.enabled for r in u.restrictions)
            ),
        }

    def permission_summary(self) -> dict[str, object]:
        """Count role rules by outcome and the distinct pairs locked by restrictions.

        Returns
        -------
        dict[str, object]
            ``total_rules``, ``granted``, ``denied`` (own role rules only,
            inherited copies are not double counted), ``resources`` and
            ``restricted_pairs``.
        """
        granted = denied = 0
        resources: set[str] = set()
        for role_id in self._snapshot.roles:
            rules = self._snapshot.role_rules(role_id)
            granted += rules.granted_count
            denied += rules.denied_count
            resources.update(rule.resource for rule in rules)
        restricted: set[RuleKey] = {
            r.key
            for user in self._snapshot.users.values()
            for r in user.restrictions
            if r.enabled
        }
        return {
            "total_rules": granted + denied,
            "granted": granted,
            "denied": denied,
            "resources": len(resources),
            "restricted_pairs": len(restricted),
        }

    def summary(self) -> dict[str, object]:
        return {
            "snapshot_version": self._snapshot.version,
            "roles": self.role_summary(),
            "users": self.user_summary(),
            "permissions": self.permission_summary(),
        }

    def user_permissions(self, user_id: str) -> EffectiveUserPermissions:
        return self._users.resolve(user_id)

    def permission_keys(self) -> list[RuleKey]:
        """Every ``(resource, action)`` pair mentioned anywhere in the snapshot."""
        keys: set[RuleKey] = set()
        for role in self._snapshot.roles.values():
            keys.update(rule.key for rule in role.permissions)
        for user in self._snapshot.users.values():
            keys.update(rule.key for rule in user.custom_permissions)
            keys.update(r.key for r in user.restrictions)
        return sorted(keys)

    def permission_matrix(self) -> dict[str, dict[RuleKey, Decision]]:
        """Return ``{user_id: {(resource, action): decision}}`` for every user.

        Pairs where no layer has an opinion are reported as deny, which is
        what evaluation would answer.
        """
        keys = self.permission_keys()
        matrix: dict[str, dict[RuleKey, Decision]] = {}
        for user_id in sorted(self._snapshot.users):
            permissions = self._users.resolve(user_id)
            row: dict[RuleKey, Decision] = {}
            for resource, action in keys:
                entry = permissions.lookup(resource, action)
                row[(resource, action)] = entry.decision if entry else Decision.DENY
            matrix[user_id] = row
        return matrix

    def to_csv(self, output_path: Path) -> int:
        """Write the permission matrix as CSV, one row per user.

        Returns
        -------
        int
            Number of user rows written.
        """
        keys = self.permission_keys()
        matrix = self.permission_matrix()
        output_path.parent.mkdir(parents=True, exist_ok=True)

        fieldnames = ["user_id"] + [f"{resource}:{action}" for resource, action in keys]
        with output_path.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=fieldnames)
            writer.writeheader()
            for user_id, row in matrix.items():
                record: dict[str, str] = {"user_id": user_id}
                for (resource, action), decision in row.items():
                    record[f"{resource}:{action}"] = decision.value
                writer.writerow(record)

        return len(matrix)
