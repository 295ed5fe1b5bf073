"""Evaluation engine and its per-snapshot resolution cache."""
from __future__ import annotations

from enterprise_permissions.engine.cache import ResolutionCache
from enterprise_permissions.engine.evaluator import EvaluationEngine

__all__ = ["EvaluationEngine", "ResolutionCache"]
