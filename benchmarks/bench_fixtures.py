"""Shared bootstrap and fixtures for enterprise-permissions benchmarks."""
from __future__ import annotations

import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).parent.parent
_SRC = _REPO_ROOT / "src"
_BENCHMARKS = _REPO_ROOT / "benchmarks"

for _path in [str(_SRC), str(_BENCHMARKS)]:
    if _path not in sys.path:
        sys.path.insert(0, _path)

from enterprise_permissions.model.types import (
    CustomRole,
    EnterpriseUser,
    PermissionRule,
    Restriction,
)
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot


def make_snapshot(depth: int = 6, width: int = 4, rules_per_role: int = 10) -> PermissionSnapshot:
    """Build a layered role hierarchy with one user per leaf role.

    Every role of layer ``n`` inherits every role of layer ``n - 1``, so the
    deepest roles resolve through ``depth`` levels of inheritance.
    """
    roles: list[CustomRole] = []
    previous: tuple[str, ...] = ()
    for level in range(depth):
        layer: list[str] = []
        for column in range(width):
            role_id = f"role-{level}-{column}"
            rules = tuple(
                PermissionRule(
                    id=f"{role_id}-r{i}",
                    resource=f"resource-{column}-{i}",
                    action="edit" if level % 2 else "view",
                    granted=(i + level) % 5 != 0,
                )
                for i in range(rules_per_role)
            )
            roles.append(
                CustomRole(id=role_id, name=role_id, permissions=rules, inheritance=previous)
            )
            layer.append(role_id)
        previous = tuple(layer)

    users = [
        EnterpriseUser(
            id=f"user-{column}",
            primary_role=role_id,
            restrictions=(
                Restriction(id=f"x-{column}", resource=f"resource-{column}-0", action="view"),
            ),
        )
        for column, role_id in enumerate(previous)
    ]
    return PermissionSnapshot.build(1, roles, users)


__all__ = [
    "CustomRole",
    "EnterpriseUser",
    "PermissionRule",
    "PermissionSnapshot",
    "Restriction",
    "make_snapshot",
]
