"""Snapshot summaries and permission matrices."""
from __future__ import annotations

from enterprise_permissions.reporting.summary import PermissionReporter

__all__ = ["PermissionReporter"]
