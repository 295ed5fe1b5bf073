"""Per-role and per-user permission rule collections."""
from __future__ import annotations

from enterprise_permissions.rules.rule_set import RuleSet, index_restrictions

__all__ = ["RuleSet", "index_restrictions"]
