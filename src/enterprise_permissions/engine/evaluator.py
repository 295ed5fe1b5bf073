"""Evaluation engine: the public decision API.

``evaluate(user_id, resource, action)`` answers one question against the
live snapshot and explains the answer:

- if the user's effective set has an entry for the pair, its decision and
  deciding layer are returned;
- otherwise the answer is deny with source ``DEFAULT`` (absence of a rule
  is never a grant);
- unknown users get deny/``DEFAULT`` with ``unknown_subject=True`` and an
  :class:`UnknownSubjectWarning` attached, never an exception.

Evaluation is pure and in-memory.  Its only side effect is handing
sensitive decisions to the audit recorder, which never blocks or fails the
call.

Example
-------
::

    engine = EvaluationEngine(store, recorder)
    result = engine.evaluate("alice", "project", "view")
    result.decision          # <Decision.ALLOW: 'allow'>
    result.deciding_role_id  # 'viewer'
"""
from __future__ import annotations

import logging
import threading
from typing import Iterable

from enterprise_permissions.audit.recorder import AuditRecorder
from enterprise_permissions.engine.cache import ResolutionCache
from enterprise_permissions.model.errors import UnknownSubjectWarning
from enterprise_permissions.model.types import Decision, PermissionEvaluation, RuleSource
from enterprise_permissions.resolution.role_resolver import (
    EffectiveRuleSet,
    RoleHierarchyResolver,
)
from enterprise_permissions.resolution.user_resolver import (
    EffectiveUserPermissions,
    UserPermissionResolver,
)
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot
from enterprise_permissions.snapshot.store import SnapshotStore

logger = logging.getLogger(__name__)


class EvaluationEngine:
    """Answers permission queries against the live snapshot of a store.

    Parameters
    ----------
    store:
        Store holding the live snapshot.
    recorder:
        Optional audit recorder for sensitive decisions.
    cache:
        Optional resolution cache.  Pass ``None`` to recompute the user's
        effective set on every evaluation.
    """

    def __init__(
        self,
        store: SnapshotStore,
        recorder: AuditRecorder | None = None,
        cache: ResolutionCache | None = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._cache = cache
        self._resolver: RoleHierarchyResolver | None = None
        self._resolver_lock = threading.Lock()
        if cache is not None:
            store.subscribe(lambda snapshot: cache.invalidate(snapshot.version))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> PermissionSnapshot:
        return self._store.current

    def evaluate(self, user_id: str, resource: str, action: str) -> PermissionEvaluation:
        """Decide whether ``user_id`` may perform ``action`` on ``resource``.

        Resource and action are matched exactly (case-sensitive, no
        wildcards).

        Returns
        -------
        PermissionEvaluation
            Decision plus the layer, role and rule that decided it.
        """
        snapshot = self._store.current
        evaluation = self._evaluate(snapshot, user_id, resource, action)
        logger.debug(
            "evaluate user=%s %s:%s -> %s (%s) v%d",
            user_id,
            resource,
            action,
            evaluation.decision.value,
            evaluation.deciding_source.value,
            snapshot.version,
        )
        if self._recorder is not None:
            self._recorder.record_evaluation(evaluation)
        return evaluation

    def evaluate_many(
        self, user_id: str, requests: Iterable[tuple[str, str]]
    ) -> list[PermissionEvaluation]:
        """Evaluate several ``(resource, action)`` pairs against one snapshot."""
        snapshot = self._store.current
        results: list[PermissionEvaluation] = []
        for resource, action in requests:
            evaluation = self._evaluate(snapshot, user_id, resource, action)
            if self._recorder is not None:
                self._recorder.record_evaluation(evaluation)
            results.append(evaluation)
        return results

    def is_allowed(self, user_id: str, resource: str, action: str) -> bool:
        return self.evaluate(user_id, resource, action).allowed

    def resolve_role(self, role_id: str) -> EffectiveRuleSet:
        """Return the effective rule set of a role in the live snapshot.

        Raises
        ------
        UnknownRoleError
            If the role does not exist.
        CycleError
            If the role reaches itself through inheritance.
        """
        return self._role_resolver(self._store.current).resolve(role_id)

    def resolve_user(self, user_id: str) -> EffectiveUserPermissions:
        """Return the effective permissions of a user in the live snapshot.

        Raises
        ------
        UnknownUserError
            If the user does not exist.
        """
        snapshot = self._store.current
        snapshot.user(user_id)
        return self._user_permissions(snapshot, user_id)

    def cache_info(self) -> dict[str, int] | None:
        return self._cache.info() if self._cache is not None else None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _evaluate(
        self,
        snapshot: PermissionSnapshot,
        user_id: str,
        resource: str,
        action: str,
    ) -> PermissionEvaluation:
        if snapshot.find_user(user_id) is None:
            warning = UnknownSubjectWarning(user_id, snapshot.version)
            logger.warning("%s; denying %s:%s", warning, resource, action)
            return PermissionEvaluation(
                user_id=user_id,
                resource=resource,
                action=action,
                decision=Decision.DENY,
                deciding_source=RuleSource.DEFAULT,
                snapshot_version=snapshot.version,
                unknown_subject=True,
                warning=warning,
            )

        permissions = self._user_permissions(snapshot, user_id)
        entry = permissions.lookup(resource, action)
        if entry is None:
            return PermissionEvaluation(
                user_id=user_id,
                resource=resource,
                action=action,
                decision=Decision.DENY,
                deciding_source=RuleSource.DEFAULT,
                snapshot_version=snapshot.version,
            )
        return PermissionEvaluation(
            user_id=user_id,
            resource=resource,
            action=action,
            decision=entry.decision,
            deciding_source=entry.source,
            deciding_role_id=entry.role_id,
            via_role_id=entry.via_role_id,
            rule_id=entry.rule_id,
            snapshot_version=snapshot.version,
        )

    def _user_permissions(
        self, snapshot: PermissionSnapshot, user_id: str
    ) -> EffectiveUserPermissions:
        if self._cache is not None:
            cached = self._cache.get(user_id, snapshot.version)
            if cached is not None:
                return cached
        permissions = UserPermissionResolver(self._role_resolver(snapshot)).resolve(user_id)
        if self._cache is not None:
            self._cache.put(permissions)
        return permissions

    def _role_resolver(self, snapshot: PermissionSnapshot) -> RoleHierarchyResolver:
        with self._resolver_lock:
            resolver = self._resolver
            if resolver is not None and resolver.snapshot is snapshot:
                return resolver
            fresh = RoleHierarchyResolver(snapshot)
            if resolver is None or snapshot.version >= resolver.snapshot.version:
                self._resolver = fresh
            return fresh
