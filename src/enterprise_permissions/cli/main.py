"""CLI entry point for enterprise-permissions.

Invoked as::

    perm-engine [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m enterprise_permissions.cli.main

Commands
--------
- evaluate       Decide one (user, resource, action) request
- resolve-role   Show a role's effective rules and inheritance conflicts
- resolve-user   Show a user's effective permission matrix
- validate       Load and validate a definitions file
- summary        Role, user and permission summaries
- version        Show version information
"""
from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from enterprise_permissions.config.definitions import DefinitionLoader
from enterprise_permissions.engine.evaluator import EvaluationEngine
from enterprise_permissions.model.errors import (
    CycleError,
    DefinitionConfigError,
    PermissionEngineError,
    ReferentialIntegrityError,
)
from enterprise_permissions.model.types import Decision
from enterprise_permissions.reporting.summary import PermissionReporter
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot
from enterprise_permissions.snapshot.store import SnapshotStore

console = Console()
err_console = Console(stderr=True)

_DEFAULT_DEFINITIONS = Path("permissions.yaml")

_definitions_option = click.option(
    "--definitions",
    "-d",
    "definitions_path",
    default=str(_DEFAULT_DEFINITIONS),
    show_default=True,
    type=click.Path(),
    help="Path to the role/user definitions YAML file.",
)


def _decision_markup(decision: Decision) -> str:
    return "[green]ALLOW[/green]" if decision is Decision.ALLOW else "[red]DENY[/red]"


def _load_snapshot(definitions_path: str) -> PermissionSnapshot:
    """Load and validate definitions, exiting with status 1 on any problem."""
    try:
        document = DefinitionLoader().load(definitions_path)
        return document.build_snapshot()
    except FileNotFoundError as exc:
        err_console.print(f"[red]Not found:[/red] {exc}")
    except DefinitionConfigError as exc:
        err_console.print(f"[red]Invalid definitions:[/red] {exc}")
    except CycleError as exc:
        err_console.print(f"[red]Cycle:[/red] {' -> '.join(exc.path)}")
    except ReferentialIntegrityError as exc:
        err_console.print(f"[red]Dangling reference:[/red] {exc}")
    except PermissionEngineError as exc:
        err_console.print(f"[red]Rejected:[/red] {exc}")
    sys.exit(1)


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="enterprise-permissions")
def cli() -> None:
    """Permission engine CLI: evaluate, resolve and validate role definitions."""


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from enterprise_permissions import __version__

    console.print(
        Panel(
            f"[bold]enterprise-permissions[/bold]  v[cyan]{__version__}[/cyan]\n"
            "Role hierarchy and permission evaluation engine.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# evaluate
# ---------------------------------------------------------------------------


@cli.command(name="evaluate")
@click.argument("user_id")
@click.argument("resource")
@click.argument("action")
@_definitions_option
def evaluate_command(user_id: str, resource: str, action: str, definitions_path: str) -> None:
    """Decide whether USER_ID may perform ACTION on RESOURCE.

    Exits 0 when allowed and 1 when denied.
    """
    snapshot = _load_snapshot(definitions_path)
    engine = EvaluationEngine(SnapshotStore(snapshot))
    result = engine.evaluate(user_id, resource, action)

    console.print(
        Panel(
            f"{_decision_markup(result.decision)}  {resource}:{action} for [bold]{user_id}[/bold]",
            title="Permission Decision",
            border_style="blue",
        )
    )
    console.print(f"  Source: [cyan]{result.deciding_source.value}[/cyan]")
    console.print(f"  Reason: {result.reason}")
    console.print(f"  Snapshot version: [cyan]{result.snapshot_version}[/cyan]")
    if result.unknown_subject:
        err_console.print(f"[yellow]Warning:[/yellow] {result.warning}")

    sys.exit(0 if result.allowed else 1)


# ---------------------------------------------------------------------------
# resolve-role
# ---------------------------------------------------------------------------


@cli.command(name="resolve-role")
@click.argument("role_id")
@_definitions_option
def resolve_role_command(role_id: str, definitions_path: str) -> None:
    """Show the effective rules of ROLE_ID, including inherited ones."""
    snapshot = _load_snapshot(definitions_path)
    engine = EvaluationEngine(SnapshotStore(snapshot))
    try:
        effective = engine.resolve_role(role_id)
    except CycleError as exc:
        err_console.print(f"[red]Cycle:[/red] {' -> '.join(exc.path)}")
        sys.exit(1)
    except PermissionEngineError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    if not len(effective):
        console.print(f"[yellow]Role '{role_id}' has no effective rules.[/yellow]")
        return

    table = Table(title=f"Effective Rules: {role_id}", box=box.SIMPLE)
    table.add_column("Resource", style="cyan")
    table.add_column("Action", style="magenta")
    table.add_column("Decision")
    table.add_column("From Role")
    table.add_column("Rule", style="dim")
    for (resource, action), rule in effective.items():
        origin = rule.role_id if rule.role_id != role_id else f"{rule.role_id} (own)"
        table.add_row(
            resource,
            action,
            _decision_markup(Decision.from_granted(rule.granted)),
            origin,
            rule.rule_id,
        )
    console.print(table)

    if effective.conflicts:
        conflicts = Table(title="Inheritance Conflicts (deny wins)", box=box.SIMPLE)
        conflicts.add_column("Resource", style="cyan")
        conflicts.add_column("Action", style="magenta")
        conflicts.add_column("Granting Parents", style="green")
        conflicts.add_column("Denying Parents", style="red")
        for conflict in effective.conflicts:
            conflicts.add_row(
                conflict.resource,
                conflict.action,
                ", ".join(conflict.granting_parents),
                ", ".join(conflict.denying_parents),
            )
        console.print(conflicts)


# ---------------------------------------------------------------------------
# resolve-user
# ---------------------------------------------------------------------------


@cli.command(name="resolve-user")
@click.argument("user_id")
@_definitions_option
def resolve_user_command(user_id: str, definitions_path: str) -> None:
    """Show the effective permissions of USER_ID and the layer that decided each."""
    snapshot = _load_snapshot(definitions_path)
    engine = EvaluationEngine(SnapshotStore(snapshot))
    try:
        permissions = engine.resolve_user(user_id)
    except PermissionEngineError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    if not permissions.active:
        console.print(f"[yellow]User '{user_id}' is inactive; every action is denied.[/yellow]")
        return
    if not len(permissions):
        console.print(f"[yellow]User '{user_id}' has no permissions; every action is denied.[/yellow]")
        return

    table = Table(title=f"Permissions: {user_id}", box=box.SIMPLE)
    table.add_column("Resource", style="cyan")
    table.add_column("Action", style="magenta")
    table.add_column("Decision")
    table.add_column("Source")
    table.add_column("Role")
    table.add_column("Via")
    table.add_column("Rule", style="dim")
    for (resource, action), entry in permissions.items():
        table.add_row(
            resource,
            action,
            _decision_markup(entry.decision),
            entry.source.value,
            entry.role_id or "",
            entry.via_role_id or "",
            entry.rule_id or "",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@cli.command(name="validate")
@_definitions_option
def validate_command(definitions_path: str) -> None:
    """Load and validate a definitions file; report inheritance conflicts."""
    snapshot = _load_snapshot(definitions_path)
    engine = EvaluationEngine(SnapshotStore(snapshot))

    conflict_count = 0
    for role_id in snapshot.graph.topological_order():
        conflict_count += len(engine.resolve_role(role_id).conflicts)

    console.print(
        f"[green]Valid[/green] definitions: [bold]{definitions_path}[/bold] "
        f"(version {snapshot.version})"
    )
    console.print(f"  Roles: [cyan]{len(snapshot.roles)}[/cyan]")
    console.print(f"  Users: [cyan]{len(snapshot.users)}[/cyan]")
    if conflict_count:
        console.print(
            f"  [yellow]Inheritance conflicts resolved as deny:[/yellow] {conflict_count}"
        )


# ---------------------------------------------------------------------------
# summary
# ---------------------------------------------------------------------------


@cli.command(name="summary")
@_definitions_option
@click.option(
    "--matrix-csv",
    "matrix_csv",
    default=None,
    type=click.Path(),
    help="Also write the per-user permission matrix to this CSV file.",
)
def summary_command(definitions_path: str, matrix_csv: str | None) -> None:
    """Show role, user and permission summaries."""
    snapshot = _load_snapshot(definitions_path)
    reporter = PermissionReporter(snapshot)

    sections = [
        ("Roles", reporter.role_summary()),
        ("Users", reporter.user_summary()),
        ("Permissions", reporter.permission_summary()),
    ]
    for title, data in sections:
        table = Table(title=title, box=box.SIMPLE)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        for metric, value in data.items():
            table.add_row(metric.replace("_", " "), str(value))
        console.print(table)

    if matrix_csv:
        rows = reporter.to_csv(Path(matrix_csv))
        console.print(f"[green]Exported[/green] {rows} user rows to [bold]{matrix_csv}[/bold].")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
