"""Tests for PermissionService wiring and build_engine."""
from __future__ import annotations

import pathlib

import pytest

from enterprise_permissions.audit.sinks import InMemoryAuditSink, JsonlAuditSink, NullAuditSink
from enterprise_permissions.config.settings import AuditConfig, ConfigLoader, EngineConfig
from enterprise_permissions.model.errors import CycleError
from enterprise_permissions.model.types import (
    CustomRole,
    Decision,
    EnterpriseUser,
    PermissionRule,
    Restriction,
    RuleSource,
)
from enterprise_permissions.service import PermissionService, build_engine, build_sink
from enterprise_permissions.snapshot.source import FileRoleUserSource, InMemoryRoleUserSource

_DEFINITIONS = """
roles:
  - id: admin
    permissions:
      - {id: a1, resource: billing, action: view, granted: true}
users:
  - id: alice
    primary_role: admin
    restrictions:
      - {id: x1, resource: billing, action: view, reason: "Under review"}
  - id: bob
    primary_role: admin
"""


@pytest.fixture()
def definitions_path(tmp_path: pathlib.Path) -> pathlib.Path:
    path = tmp_path / "roles.yaml"
    path.write_text(_DEFINITIONS, encoding="utf-8")
    return path


@pytest.fixture()
def sync_config() -> EngineConfig:
    return EngineConfig(audit=AuditConfig(asynchronous=False))


class TestBuildSink:
    def test_memory(self) -> None:
        assert isinstance(build_sink(AuditConfig()), InMemoryAuditSink)

    def test_null(self) -> None:
        assert isinstance(build_sink(AuditConfig(sink="null")), NullAuditSink)

    def test_jsonl(self, tmp_path: pathlib.Path) -> None:
        sink = build_sink(AuditConfig(sink="jsonl", log_path=tmp_path / "a.jsonl"))
        assert isinstance(sink, JsonlAuditSink)
        assert sink.log_path == tmp_path / "a.jsonl"


class TestPermissionService:
    def test_definitions_path_attaches_file_source(
        self, definitions_path: pathlib.Path, sync_config: EngineConfig
    ) -> None:
        config = sync_config.model_copy(update={"definitions_path": definitions_path})
        service = build_engine(config)
        assert isinstance(service.source, FileRoleUserSource)
        assert service.snapshot.version == 1
        assert service.evaluate("bob", "billing", "view").allowed

    def test_restricted_denial_is_audited(
        self, definitions_path: pathlib.Path, sync_config: EngineConfig
    ) -> None:
        config = sync_config.model_copy(update={"definitions_path": definitions_path})
        service = build_engine(config)
        result = service.evaluate("alice", "billing", "view")
        assert result.decision is Decision.DENY
        assert result.deciding_source is RuleSource.RESTRICTION
        sink = service.sink
        assert isinstance(sink, InMemoryAuditSink)
        assert len(sink) == 1
        assert sink.entries[0].payload["rule_id"] == "x1"

    def test_jsonl_audit_from_config(self, definitions_path: pathlib.Path, tmp_path: pathlib.Path) -> None:
        log_path = tmp_path / "logs" / "audit.jsonl"
        config = ConfigLoader().load_string(
            f"definitions_path: {definitions_path}\n"
            f"audit:\n  sink: jsonl\n  log_path: {log_path}\n"
        )
        with build_engine(config) as service:
            service.evaluate("alice", "billing", "view")
        assert JsonlAuditSink(log_path).count() == 1

    def test_explicit_sink_overrides_config(self, sync_config: EngineConfig) -> None:
        sink = InMemoryAuditSink()
        service = PermissionService(sync_config, sink=sink)
        assert service.sink is sink
        assert service.recorder.evaluation_policy == "restricted"

    def test_admin_changes_are_visible_and_audited(self, sync_config: EngineConfig) -> None:
        source = InMemoryRoleUserSource(
            roles=[CustomRole(id="admin", name="admin")],
            users=[EnterpriseUser(id="alice", primary_role="admin")],
        )
        service = PermissionService(sync_config, source=source)
        assert not service.evaluate("alice", "billing", "view").allowed

        service.admin.update_role(
            CustomRole(
                id="admin",
                name="admin",
                permissions=(
                    PermissionRule(id="a1", resource="billing", action="view", granted=True),
                ),
            ),
            actor_id="root",
        )
        assert service.evaluate("alice", "billing", "view").allowed

        service.admin.add_restriction(
            "alice", Restriction(id="x1", resource="billing", action="view"), actor_id="root"
        )
        assert not service.evaluate("alice", "billing", "view").allowed
        kinds = [e.payload.get("kind") for e in service.recorder.entries]
        assert kinds == ["RoleUpdated", "RestrictionChanged", None]

    def test_source_notifications_republish(self, sync_config: EngineConfig) -> None:
        source = InMemoryRoleUserSource(roles=[CustomRole(id="admin", name="admin")])
        service = PermissionService(sync_config, source=source)
        assert service.evaluate("alice", "billing", "view").unknown_subject
        source.put_user(EnterpriseUser(id="alice", primary_role="admin"))
        assert not service.evaluate("alice", "billing", "view").unknown_subject

    def test_invalid_source_change_keeps_live_snapshot(self, sync_config: EngineConfig) -> None:
        source = InMemoryRoleUserSource(
            roles=[
                CustomRole(id="a", name="a"),
                CustomRole(id="b", name="b", inheritance=("a",)),
            ]
        )
        service = PermissionService(sync_config, source=source)
        live = service.snapshot
        with pytest.raises(CycleError):
            source.put_role(CustomRole(id="a", name="a", inheritance=("b",)))
        assert service.snapshot is live

    def test_cache_disabled(self, sync_config: EngineConfig) -> None:
        config = sync_config.model_copy(
            update={"cache": sync_config.cache.model_copy(update={"enabled": False})}
        )
        service = PermissionService(config)
        assert service.engine.cache_info() is None

    def test_valid_source_change_after_rejected_one_is_published(
        self, sync_config: EngineConfig
    ) -> None:
        source = InMemoryRoleUserSource(
            roles=[
                CustomRole(id="a", name="a"),
                CustomRole(id="b", name="b", inheritance=("a",)),
            ]
        )
        service = PermissionService(sync_config, source=source)
        with pytest.raises(CycleError):
            source.put_role(CustomRole(id="a", name="a", inheritance=("b",)))
        source.put_user(EnterpriseUser(id="alice", primary_role="b"))
        assert service.snapshot.find_user("alice") is not None
        assert not service.evaluate("alice", "billing", "view").unknown_subject

    def test_audit_retention_from_config(self) -> None:
        config = EngineConfig(audit=AuditConfig(asynchronous=False, max_retained=2))
        service = PermissionService(config, sink=InMemoryAuditSink())
        for role_id in ("r1", "r2", "r3"):
            service.admin.create_role(CustomRole(id=role_id, name=role_id), actor_id="root")
        assert len(service.recorder.entries) == 2
        assert service.recorder.recorded_count == 3
