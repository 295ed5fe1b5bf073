"""Audit record types.

Two kinds of facts are recorded:

- :class:`MutationRecord` for every role create/update/delete, user role
  assignment/removal and permission override change;
- :class:`~enterprise_permissions.model.types.PermissionEvaluation` for
  security-sensitive decisions (at minimum every deny caused by a
  restriction).

Both are wrapped in an immutable :class:`AuditEntry` carrying a sequence
number and timestamp before they are handed to an audit sink.
"""
from __future__ import annotations

import datetime
import json
from dataclasses import dataclass, field
from enum import Enum


class MutationKind(str, Enum):
    """What a mutation record describes."""

    ROLE_CREATED = "RoleCreated"
    ROLE_UPDATED = "RoleUpdated"
    ROLE_DELETED = "RoleDeleted"
    USER_ROLE_ASSIGNED = "UserRoleAssigned"
    USER_ROLE_REMOVED = "UserRoleRemoved"
    PERMISSION_OVERRIDE_CHANGED = "PermissionOverrideChanged"
    RESTRICTION_CHANGED = "RestrictionChanged"
    USER_CREATED = "UserCreated"
    USER_UPDATED = "UserUpdated"
    USER_DELETED = "UserDeleted"


class AuditCategory(str, Enum):
    EVALUATION = "evaluation"
    MUTATION = "mutation"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class MutationRecord:
    """A single change to role or user data.

    Attributes
    ----------
    actor_id:
        Who performed the change.
    kind:
        What kind of change it was.
    target_id:
        The role or user id that changed.
    before, after:
        Plain-dict views of the target before and after the change;
        ``None`` for creations and deletions respectively.
    snapshot_version:
        Version of the snapshot that the change published.
    timestamp:
        UTC time of the change.
    """

    actor_id: str
    kind: MutationKind
    target_id: str
    before: dict[str, object] | None = None
    after: dict[str, object] | None = None
    snapshot_version: int = 0
    timestamp: datetime.datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, object]:
        return {
            "actor_id": self.actor_id,
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "target_id": self.target_id,
            "before": self.before,
            "after": self.after,
            "snapshot_version": self.snapshot_version,
        }


@dataclass(frozen=True)
class AuditEntry:
    """An immutable audit trail entry as delivered to a sink.

    Attributes
    ----------
    entry_id:
        Unique identifier, ``"<recorder_id>-<sequence>"``.
    sequence:
        Monotonic position in the recorder's append-only log.
    recorded_at:
        UTC time the recorder accepted the entry.
    category:
        Whether ``payload`` is an evaluation or a mutation.
    payload:
        Plain-dict view of the recorded fact.
    """

    entry_id: str
    sequence: int
    recorded_at: datetime.datetime
    category: AuditCategory
    payload: dict[str, object]

    def to_dict(self) -> dict[str, object]:
        return {
            "entry_id": self.entry_id,
            "sequence": self.sequence,
            "recorded_at": self.recorded_at.isoformat(),
            "category": self.category.value,
            "payload": self.payload,
        }

    def to_jsonl(self) -> str:
        """Return this entry as a single JSON Lines line."""
        return json.dumps(self.to_dict(), default=str) + "\n"

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> AuditEntry:
        recorded_raw = data["recorded_at"]
        recorded_at = (
            datetime.datetime.fromisoformat(recorded_raw)
            if isinstance(recorded_raw, str)
            else recorded_raw
        )
        return cls(
            entry_id=str(data["entry_id"]),
            sequence=int(data["sequence"]),  # type: ignore[arg-type]
            recorded_at=recorded_at,  # type: ignore[arg-type]
            category=AuditCategory(data["category"]),
            payload=dict(data.get("payload") or {}),  # type: ignore[arg-type]
        )
