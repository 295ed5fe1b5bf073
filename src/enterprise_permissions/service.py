"""Wiring for a ready-to-use engine.

Example
-------
::

    from enterprise_permissions import build_engine, ConfigLoader
    service = build_engine(ConfigLoader().load("engine.yaml"))
    print(service.evaluate("alice", "project", "edit").allowed)

"""
from __future__ import annotations

import logging

from enterprise_permissions.audit.recorder import AuditRecorder
from enterprise_permissions.audit.sinks import (
    AuditSink,
    InMemoryAuditSink,
    JsonlAuditSink,
    NullAuditSink,
)
from enterprise_permissions.config.settings import AuditConfig, EngineConfig
from enterprise_permissions.engine.cache import ResolutionCache
from enterprise_permissions.engine.evaluator import EvaluationEngine
from enterprise_permissions.model.types import PermissionEvaluation
from enterprise_permissions.resolution.role_resolver import EffectiveRuleSet
from enterprise_permissions.resolution.user_resolver import EffectiveUserPermissions
from enterprise_permissions.snapshot.admin import PermissionAdministrator
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot
from enterprise_permissions.snapshot.source import FileRoleUserSource, RoleUserSource
from enterprise_permissions.snapshot.store import SnapshotStore

logger = logging.getLogger(__name__)


def build_sink(audit: AuditConfig) -> AuditSink:
    """Create the audit sink named by ``audit.sink``."""
    match audit.sink:
        case "jsonl":
            return JsonlAuditSink(audit.log_path)
        case "null":
            return NullAuditSink()
        case _:
            return InMemoryAuditSink()


class PermissionService:
    """Store, audit recorder, evaluation engine and administrator in one object.

    Parameters
    ----------
    config:
        Engine configuration.  Defaults to :class:`EngineConfig` defaults.
    source:
        Role/user source to attach.  When omitted and
        ``config.definitions_path`` is set, that file is attached.
    sink:
        Audit sink overriding ``config.audit.sink``.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        source: RoleUserSource | None = None,
        sink: AuditSink | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        audit = self._config.audit
        self._sink = sink if sink is not None else build_sink(audit)
        self._recorder = AuditRecorder(
            self._sink,
            evaluation_policy=audit.evaluation_policy,
            asynchronous=audit.asynchronous,
            max_retries=audit.max_retries,
            backoff_seconds=audit.backoff_seconds,
            backoff_multiplier=audit.backoff_multiplier,
            max_retained=audit.max_retained,
        )
        self._store = SnapshotStore()
        cache = (
            ResolutionCache(self._config.cache.max_entries)
            if self._config.cache.enabled
            else None
        )
        self._engine = EvaluationEngine(self._store, self._recorder, cache)
        self._admin = PermissionAdministrator(self._store, self._recorder)

        if source is None and self._config.definitions_path is not None:
            source = FileRoleUserSource(self._config.definitions_path)
        self._source = source
        if source is not None:
            self._store.attach(source)

    # ------------------------------------------------------------------
    # Delegates
    # ------------------------------------------------------------------

    def evaluate(self, user_id: str, resource: str, action: str) -> PermissionEvaluation:
        return self._engine.evaluate(user_id, resource, action)

    def resolve_role(self, role_id: str) -> EffectiveRuleSet:
        return self._engine.resolve_role(role_id)

    def resolve_user(self, user_id: str) -> EffectiveUserPermissions:
        return self._engine.resolve_user(user_id)

    def close(self) -> None:
        """Flush and stop the audit recorder."""
        self._recorder.close()

    def __enter__(self) -> PermissionService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def engine(self) -> EvaluationEngine:
        return self._engine

    @property
    def admin(self) -> PermissionAdministrator:
        return self._admin

    @property
    def store(self) -> SnapshotStore:
        return self._store

    @property
    def recorder(self) -> AuditRecorder:
        return self._recorder

    @property
    def sink(self) -> AuditSink:
        return self._sink

    @property
    def source(self) -> RoleUserSource | None:
        return self._source

    @property
    def snapshot(self) -> PermissionSnapshot:
        return self._store.current

    def __repr__(self) -> str:
        return f"PermissionService(snapshot={self._store.current!r})"


def build_engine(
    config: EngineConfig | None = None, source: RoleUserSource | None = None
) -> PermissionService:
    """Wire source, store, recorder and engine from ``config``."""
    service = PermissionService(config, source=source)
    logger.info(
        "Engine ready: snapshot v%d, audit sink=%s, cache=%s",
        service.snapshot.version,
        service.config.audit.sink,
        "on" if service.config.cache.enabled else "off",
    )
    return service
