"""Role inheritance graph with cycle checks and topological views."""
from __future__ import annotations

from enterprise_permissions.graph.role_graph import RoleGraph

__all__ = ["RoleGraph"]
