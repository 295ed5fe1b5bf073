"""Immutable snapshots, atomic publication and copy-on-write administration."""
from __future__ import annotations

from enterprise_permissions.snapshot.snapshot import PermissionSnapshot
from enterprise_permissions.snapshot.source import (
    ChangeNotification,
    FileRoleUserSource,
    InMemoryRoleUserSource,
    RoleUserSource,
    SnapshotPayload,
)
from enterprise_permissions.snapshot.store import SnapshotStore

__all__ = [
    "ChangeNotification",
    "FileRoleUserSource",
    "InMemoryRoleUserSource",
    "PermissionSnapshot",
    "RoleUserSource",
    "SnapshotPayload",
    "SnapshotStore",
]
