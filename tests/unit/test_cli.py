"""Tests for the perm-engine CLI."""
from __future__ import annotations

import csv
import pathlib

import pytest
from click.testing import CliRunner

from enterprise_permissions.cli.main import cli

_DEFINITIONS = """
version: 3
roles:
  - id: viewer
    permissions:
      - {id: p1, resource: doc, action: view, granted: true}
  - id: auditor
    permissions:
      - {id: p2, resource: doc, action: export, granted: true}
  - id: locked
    permissions:
      - {id: p3, resource: doc, action: export, granted: false}
  - id: editor
    inheritance: [viewer, auditor, locked]
    permissions:
      - {id: p4, resource: doc, action: edit, granted: true}
users:
  - id: alice
    primary_role: editor
    restrictions:
      - {id: r1, resource: doc, action: edit, reason: frozen}
  - id: bob
    primary_role: viewer
  - id: carol
    primary_role: viewer
    is_active: false
  - id: dave
"""


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def definitions_file(tmp_path: pathlib.Path) -> str:
    path = tmp_path / "permissions.yaml"
    path.write_text(_DEFINITIONS, encoding="utf-8")
    return str(path)


# ---------------------------------------------------------------------------
# evaluate
# ---------------------------------------------------------------------------


class TestEvaluate:
    def test_allowed_exits_zero(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["evaluate", "bob", "doc", "view", "-d", definitions_file])
        assert result.exit_code == 0
        assert "ALLOW" in result.output
        assert "role_rule" in result.output

    def test_denied_exits_one(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["evaluate", "bob", "doc", "edit", "-d", definitions_file])
        assert result.exit_code == 1
        assert "DENY" in result.output
        assert "default" in result.output

    def test_restriction_reported(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(
            cli, ["evaluate", "alice", "doc", "edit", "--definitions", definitions_file]
        )
        assert result.exit_code == 1
        assert "restriction" in result.output

    def test_unknown_user_denied(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["evaluate", "zed", "doc", "view", "-d", definitions_file])
        assert result.exit_code == 1
        assert "DENY" in result.output

    def test_missing_definitions_file(self, runner: CliRunner, tmp_path: pathlib.Path) -> None:
        result = runner.invoke(
            cli, ["evaluate", "bob", "doc", "view", "-d", str(tmp_path / "none.yaml")]
        )
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# resolve-role / resolve-user
# ---------------------------------------------------------------------------


class TestResolve:
    def test_resolve_role_shows_inherited_rules(
        self, runner: CliRunner, definitions_file: str
    ) -> None:
        result = runner.invoke(cli, ["resolve-role", "editor", "-d", definitions_file])
        assert result.exit_code == 0
        assert "Effective Rules" in result.output
        assert "viewer" in result.output
        assert "(own)" in result.output

    def test_resolve_role_shows_conflicts(
        self, runner: CliRunner, definitions_file: str
    ) -> None:
        result = runner.invoke(cli, ["resolve-role", "editor", "-d", definitions_file])
        assert "Inheritance Conflicts" in result.output
        assert "auditor" in result.output
        assert "locked" in result.output

    def test_resolve_unknown_role(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["resolve-role", "ghost", "-d", definitions_file])
        assert result.exit_code == 1

    def test_resolve_user(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["resolve-user", "alice", "-d", definitions_file])
        assert result.exit_code == 0
        assert "Permissions: alice" in result.output
        assert "restriction" in result.output

    def test_resolve_inactive_user(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["resolve-user", "carol", "-d", definitions_file])
        assert result.exit_code == 0
        assert "inactive" in result.output

    def test_resolve_user_without_roles(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["resolve-user", "dave", "-d", definitions_file])
        assert result.exit_code == 0
        assert "no permissions" in result.output

    def test_resolve_unknown_user(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["resolve-user", "zed", "-d", definitions_file])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


class TestValidate:
    def test_valid_definitions(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["validate", "-d", definitions_file])
        assert result.exit_code == 0
        assert "Valid" in result.output
        assert "Roles: 4" in result.output
        assert "Users: 4" in result.output
        assert "conflicts" in result.output

    def test_cycle_exits_nonzero(self, runner: CliRunner, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "cycle.yaml"
        path.write_text(
            "roles:\n  - {id: a, inheritance: [b]}\n  - {id: b, inheritance: [a]}\n",
            encoding="utf-8",
        )
        result = runner.invoke(cli, ["validate", "-d", str(path)])
        assert result.exit_code == 1

    def test_dangling_reference_exits_nonzero(
        self, runner: CliRunner, tmp_path: pathlib.Path
    ) -> None:
        path = tmp_path / "dangling.yaml"
        path.write_text("users:\n  - {id: alice, primary_role: ghost}\n", encoding="utf-8")
        result = runner.invoke(cli, ["validate", "-d", str(path)])
        assert result.exit_code == 1

    def test_bad_yaml_exits_nonzero(self, runner: CliRunner, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("roles: [", encoding="utf-8")
        result = runner.invoke(cli, ["validate", "-d", str(path)])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# summary / version
# ---------------------------------------------------------------------------


class TestSummaryAndVersion:
    def test_summary_tables(self, runner: CliRunner, definitions_file: str) -> None:
        result = runner.invoke(cli, ["summary", "-d", definitions_file])
        assert result.exit_code == 0
        for title in ("Roles", "Users", "Permissions"):
            assert title in result.output
        assert "restricted pairs" in result.output

    def test_summary_matrix_csv(
        self, runner: CliRunner, definitions_file: str, tmp_path: pathlib.Path
    ) -> None:
        csv_path = tmp_path / "out" / "matrix.csv"
        result = runner.invoke(
            cli, ["summary", "-d", definitions_file, "--matrix-csv", str(csv_path)]
        )
        assert result.exit_code == 0
        with csv_path.open(encoding="utf-8") as fh:
            rows = list(csv.DictReader(fh))
        assert [r["user_id"] for r in rows] == ["alice", "bob", "carol", "dave"]

    def test_version_command(self, runner: CliRunner) -> None:
        from enterprise_permissions import __version__

        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output
