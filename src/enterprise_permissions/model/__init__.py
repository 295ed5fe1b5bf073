"""Data model and error taxonomy for the permission engine."""
from __future__ import annotations

from enterprise_permissions.model.errors import (
    CycleError,
    DefinitionConfigError,
    DuplicateIdentifierError,
    PermissionEngineError,
    ReferentialIntegrityError,
    SinkDeliveryFailure,
    SnapshotVersionError,
    SystemRoleError,
    UnknownRoleError,
    UnknownSubjectWarning,
    UnknownUserError,
)
from enterprise_permissions.model.types import (
    CustomRole,
    Decision,
    EnterpriseUser,
    PermissionEvaluation,
    PermissionRule,
    Restriction,
    RuleKey,
    RuleSource,
)

__all__ = [
    # Types
    "CustomRole",
    "Decision",
    "EnterpriseUser",
    "PermissionEvaluation",
    "PermissionRule",
    "Restriction",
    "RuleKey",
    "RuleSource",
    # Errors
    "CycleError",
    "DefinitionConfigError",
    "DuplicateIdentifierError",
    "PermissionEngineError",
    "ReferentialIntegrityError",
    "SinkDeliveryFailure",
    "SnapshotVersionError",
    "SystemRoleError",
    "UnknownRoleError",
    "UnknownSubjectWarning",
    "UnknownUserError",
]
