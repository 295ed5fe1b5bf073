"""enterprise-permissions — Role hierarchy and permission evaluation engine.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
::

    import enterprise_permissions as perms
    source = perms.InMemoryRoleUserSource(
        roles=[perms.CustomRole(id="viewer", name="viewer", permissions=(
            perms.PermissionRule(id="p1", resource="project", action="view", granted=True),
        ))],
        users=[perms.EnterpriseUser(id="alice", primary_role="viewer")],
    )
    service = perms.build_engine(source=source)
    service.evaluate("alice", "project", "view").allowed   # True
    service.evaluate("alice", "project", "edit").allowed   # False (default deny)
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------
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

# ---------------------------------------------------------------------------
# Graph, rules and resolution
# ---------------------------------------------------------------------------
from enterprise_permissions.graph.role_graph import RoleGraph
from enterprise_permissions.rules.rule_set import RuleSet
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

# ---------------------------------------------------------------------------
# Snapshots and administration
# ---------------------------------------------------------------------------
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot
from enterprise_permissions.snapshot.source import (
    ChangeNotification,
    FileRoleUserSource,
    InMemoryRoleUserSource,
    RoleUserSource,
    SnapshotPayload,
)
from enterprise_permissions.snapshot.store import SnapshotStore
from enterprise_permissions.snapshot.admin import PermissionAdministrator

# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
from enterprise_permissions.engine.cache import ResolutionCache
from enterprise_permissions.engine.evaluator import EvaluationEngine

# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------
from enterprise_permissions.audit.records import (
    AuditCategory,
    AuditEntry,
    MutationKind,
    MutationRecord,
)
from enterprise_permissions.audit.recorder import AuditRecorder
from enterprise_permissions.audit.sinks import (
    AuditSink,
    InMemoryAuditSink,
    JsonlAuditSink,
    NullAuditSink,
)

# ---------------------------------------------------------------------------
# Configuration, reporting and wiring
# ---------------------------------------------------------------------------
from enterprise_permissions.config.definitions import (
    DefinitionDocument,
    DefinitionLoader,
    dump_definitions,
    write_definitions,
)
from enterprise_permissions.config.settings import ConfigLoader, EngineConfig
from enterprise_permissions.reporting.summary import PermissionReporter
from enterprise_permissions.service import PermissionService, build_engine

__all__ = [
    "__version__",
    "PermissionService",
    "build_engine",
    # Model
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
    # Graph, rules and resolution
    "EffectiveRule",
    "EffectiveRuleSet",
    "EffectiveUserPermissions",
    "RoleGraph",
    "RoleHierarchyResolver",
    "RuleConflict",
    "RuleSet",
    "UserPermissionEntry",
    "UserPermissionResolver",
    # Snapshots and administration
    "ChangeNotification",
    "FileRoleUserSource",
    "InMemoryRoleUserSource",
    "PermissionAdministrator",
    "PermissionSnapshot",
    "RoleUserSource",
    "SnapshotPayload",
    "SnapshotStore",
    # Evaluation
    "EvaluationEngine",
    "ResolutionCache",
    # Audit
    "AuditCategory",
    "AuditEntry",
    "AuditRecorder",
    "AuditSink",
    "InMemoryAuditSink",
    "JsonlAuditSink",
    "MutationKind",
    "MutationRecord",
    "NullAuditSink",
    # Configuration and reporting
    "ConfigLoader",
    "DefinitionDocument",
    "DefinitionLoader",
    "EngineConfig",
    "PermissionReporter",
    "dump_definitions",
    "write_definitions",
]
