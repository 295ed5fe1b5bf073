"""Tests for DefinitionLoader and the definitions exporter."""
from __future__ import annotations

import datetime
import pathlib

import pytest

from enterprise_permissions.config.definitions import (
    DefinitionDocument,
    DefinitionLoader,
    dump_definitions,
    write_definitions,
)
from enterprise_permissions.model.errors import (
    CycleError,
    DefinitionConfigError,
    ReferentialIntegrityError,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

_VALID_YAML = """
version: 4
roles:
  - id: viewer
    name: viewer
    permissions:
      - {id: p1, resource: project, action: view, granted: true}
  - id: editor
    displayName: Editor
    isSystem: true
    inheritance: [viewer]
    permissions:
      - {id: p2, resource: project, action: edit, granted: true}
      - {id: p3, resource: billing, action: view, granted: false, reason: "Finance only"}
users:
  - id: alice
    primaryRole: editor
    customPermissions:
      - {id: o1, resource: project, action: delete, granted: true}
    restrictions:
      - {id: r1, resource: project, action: edit, reason: "Frozen"}
  - id: bob
    primary_role: viewer
    is_active: false
"""


@pytest.fixture()
def loader() -> DefinitionLoader:
    return DefinitionLoader()


@pytest.fixture()
def strict_loader() -> DefinitionLoader:
    return DefinitionLoader(strict=True)


@pytest.fixture()
def document(loader: DefinitionLoader) -> DefinitionDocument:
    return loader.load_from_yaml_string(_VALID_YAML)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParsing:
    def test_version_and_counts(self, document: DefinitionDocument) -> None:
        assert document.version == 4
        assert [r.id for r in document.roles] == ["viewer", "editor"]
        assert [u.id for u in document.users] == ["alice", "bob"]

    def test_camel_case_keys(self, document: DefinitionDocument) -> None:
        editor = document.roles[1]
        assert editor.name == "editor"
        assert editor.display_name == "Editor"
        assert editor.is_system is True
        assert editor.inheritance == ("viewer",)
        alice = document.users[0]
        assert alice.primary_role == "editor"
        assert alice.custom_permissions[0].id == "o1"

    def test_display_name_defaults_to_name(self, document: DefinitionDocument) -> None:
        assert document.roles[0].display_name == "viewer"

    def test_rule_fields(self, document: DefinitionDocument) -> None:
        deny = document.roles[1].permissions[1]
        assert deny.granted is False
        assert deny.reason == "Finance only"

    def test_restriction_defaults_enabled(self, document: DefinitionDocument) -> None:
        restriction = document.users[0].restrictions[0]
        assert restriction.enabled is True
        assert restriction.reason == "Frozen"

    def test_inactive_user(self, document: DefinitionDocument) -> None:
        assert document.users[1].is_active is False

    def test_empty_document(self, loader: DefinitionLoader) -> None:
        document = loader.load_from_yaml_string("")
        assert document == DefinitionDocument(version=None, roles=(), users=())

    def test_build_snapshot_uses_document_version(self, document: DefinitionDocument) -> None:
        snapshot = document.build_snapshot()
        assert snapshot.version == 4
        assert snapshot.role("editor").inheritance == ("viewer",)

    def test_build_snapshot_default_version(self, loader: DefinitionLoader) -> None:
        document = loader.load_from_dict({"roles": [{"id": "viewer"}]})
        assert document.build_snapshot().version == 1
        assert document.build_snapshot(default_version=9).version == 9

    def test_grant_metadata_and_expiry(self, loader: DefinitionLoader) -> None:
        document = loader.load_from_yaml_string(
            "roles:\n"
            "  - id: viewer\n"
            "users:\n"
            "  - id: carol\n"
            "    primaryRole: viewer\n"
            "    customPermissions:\n"
            "      - {id: c1, resource: billing, action: view, granted: true,\n"
            "         grantedBy: root, grantedAt: '2026-01-05T09:00:00Z', expiresAt: 2026-07-01}\n"
            "    restrictions:\n"
            "      - {id: x1, resource: billing, action: edit, expires_at: '2026-07-01T00:00:00Z'}\n"
        )
        carol = document.users[0]
        deadline = datetime.datetime(2026, 7, 1, tzinfo=datetime.timezone.utc)
        assert carol.custom_permissions[0].granted_by == "root"
        assert carol.custom_permissions[0].expires_at == deadline
        assert carol.restrictions[0].expires_at == deadline


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_missing_file(self, loader: DefinitionLoader, tmp_path: pathlib.Path) -> None:
        with pytest.raises(FileNotFoundError):
            loader.load(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, loader: DefinitionLoader) -> None:
        with pytest.raises(DefinitionConfigError, match="Failed to parse YAML"):
            loader.load_from_yaml_string("roles: [unclosed")

    def test_non_mapping_document(self, loader: DefinitionLoader) -> None:
        with pytest.raises(DefinitionConfigError, match="mapping"):
            loader.load_from_yaml_string("- just\n- a list\n")

    @pytest.mark.parametrize("version", [-1, "seven", True, 1.5])
    def test_bad_version(self, loader: DefinitionLoader, version: object) -> None:
        with pytest.raises(DefinitionConfigError, match="version"):
            loader.load_from_dict({"version": version})

    def test_roles_must_be_list(self, loader: DefinitionLoader) -> None:
        with pytest.raises(DefinitionConfigError, match="'roles' must be a list"):
            loader.load_from_dict({"roles": {"id": "viewer"}})

    def test_entry_must_be_mapping(self, loader: DefinitionLoader) -> None:
        with pytest.raises(DefinitionConfigError, match="Entry 0 of 'users'"):
            loader.load_from_dict({"users": ["alice"]})

    def test_malformed_rule_names_index(self, loader: DefinitionLoader) -> None:
        config = {
            "roles": [
                {"id": "viewer"},
                {"id": "editor", "permissions": [{"id": "p1", "resource": "x", "action": "y"}]},
            ]
        }
        with pytest.raises(DefinitionConfigError, match="role at index 1"):
            loader.load_from_dict(config)

    def test_error_carries_path(self, loader: DefinitionLoader, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("users:\n  - {primary_role: viewer}\n", encoding="utf-8")
        with pytest.raises(DefinitionConfigError) as exc_info:
            loader.load(path)
        assert exc_info.value.config_path == str(path)
        assert str(path) in str(exc_info.value)

    def test_strict_rejects_unknown_keys(self, strict_loader: DefinitionLoader) -> None:
        with pytest.raises(DefinitionConfigError, match="Unknown top-level keys"):
            strict_loader.load_from_dict({"roles": [], "groups": []})

    def test_lenient_ignores_unknown_keys(self, loader: DefinitionLoader) -> None:
        document = loader.load_from_dict({"roles": [], "groups": []})
        assert document.roles == ()

    def test_strict_accepts_metadata(self, strict_loader: DefinitionLoader) -> None:
        strict_loader.load_from_dict({"metadata": {"owner": "iam"}, "description": "x"})

    def test_cycle_detected_at_build(self, loader: DefinitionLoader) -> None:
        document = loader.load_from_dict(
            {
                "roles": [
                    {"id": "a", "inheritance": ["b"]},
                    {"id": "b", "inheritance": ["a"]},
                ]
            }
        )
        with pytest.raises(CycleError):
            document.build_snapshot()

    def test_dangling_reference_detected_at_build(self, loader: DefinitionLoader) -> None:
        document = loader.load_from_dict({"users": [{"id": "alice", "primary_role": "ghost"}]})
        with pytest.raises(ReferentialIntegrityError):
            document.build_snapshot()


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


class TestExport:
    def test_dump_and_reload(self, document: DefinitionDocument, loader: DefinitionLoader) -> None:
        snapshot = document.build_snapshot()
        reloaded = loader.load_from_yaml_string(dump_definitions(snapshot))
        assert reloaded.version == snapshot.version
        assert {r.id: r for r in reloaded.roles} == dict(snapshot.roles)
        assert {u.id: u for u in reloaded.users} == dict(snapshot.users)

    def test_write_definitions(
        self, document: DefinitionDocument, loader: DefinitionLoader, tmp_path: pathlib.Path
    ) -> None:
        snapshot = document.build_snapshot()
        path = write_definitions(snapshot, tmp_path / "export" / "roles.yaml")
        assert path.exists()
        assert loader.load(path).build_snapshot().to_dict() == snapshot.to_dict()
