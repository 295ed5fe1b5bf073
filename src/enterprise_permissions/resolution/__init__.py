"""Role hierarchy and user permission resolution."""
from __future__ import annotations

from enterprise_permissions.resolution.role_resolver import (
    EffectiveRule,
    EffectiveRuleSet,
    RoleHierarchyResolver,
    RuleConflict,
)
from enterprise_permissions.resolution.user_resolver import (
    EffectiveUserPermissions,
    UserPermissionEntry,
    UserPermissionResolver,
)

__all__ = [
    "EffectiveRule",
    "EffectiveRuleSet",
    "EffectiveUserPermissions",
    "RoleHierarchyResolver",
    "RuleConflict",
    "UserPermissionEntry",
    "UserPermissionResolver",
]
