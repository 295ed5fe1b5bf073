"""Audit trail for permission decisions and role/user mutations.

Entries are appended by :class:`AuditRecorder` and delivered to an
:class:`AuditSink` (in-memory, JSONL file, or a caller-supplied sink).
"""
from __future__ import annotations

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

__all__ = [
    "AuditCategory",
    "AuditEntry",
    "AuditRecorder",
    "AuditSink",
    "InMemoryAuditSink",
    "JsonlAuditSink",
    "MutationKind",
    "MutationRecord",
    "NullAuditSink",
]
