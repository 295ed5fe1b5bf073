#!/usr/bin/env python3
"""Example: Quickstart — enterprise-permissions

Minimal working example: define roles with inheritance, evaluate requests,
and read the explanation behind each decision.

Usage:
    python examples/01_quickstart.py

Requirements:
    pip install enterprise-permissions
"""
from __future__ import annotations

import enterprise_permissions as perms


def main() -> None:
    print(f"enterprise-permissions version: {perms.__version__}")

    # Step 1: Describe roles and users
    viewer = perms.CustomRole(
        id="viewer",
        name="viewer",
        display_name="Viewer",
        permissions=(
            perms.PermissionRule(id="p1", resource="project", action="view", granted=True),
        ),
    )
    editor = perms.CustomRole(
        id="editor",
        name="editor",
        display_name="Editor",
        inheritance=("viewer",),
        permissions=(
            perms.PermissionRule(id="p2", resource="project", action="edit", granted=True),
        ),
    )
    admin = perms.CustomRole(
        id="admin",
        name="admin",
        display_name="Administrator",
        permissions=(
            perms.PermissionRule(id="p3", resource="billing", action="view", granted=True),
        ),
    )
    users = [
        perms.EnterpriseUser(id="alice", primary_role="editor"),
        perms.EnterpriseUser(
            id="bob",
            primary_role="admin",
            restrictions=(
                perms.Restriction(
                    id="x1", resource="billing", action="view", reason="Billing audit"
                ),
            ),
        ),
    ]
    source = perms.InMemoryRoleUserSource(roles=[viewer, editor, admin], users=users)

    # Step 2: Wire the engine
    with perms.build_engine(source=source) as service:
        print(f"Engine ready: {service.snapshot!r}")

        # Step 3: Evaluate requests
        requests = [
            ("alice", "project", "view"),
            ("alice", "project", "delete"),
            ("bob", "billing", "view"),
            ("mallory", "project", "view"),
        ]
        print("\nDecisions:")
        for user_id, resource, action in requests:
            result = service.evaluate(user_id, resource, action)
            icon = "ALLOW" if result.allowed else "DENY"
            print(f"  [{icon}] {user_id} {resource}:{action} -> {result.reason}")

        # Step 4: Restricted denials land in the audit trail
        service.recorder.flush()
        print(f"\nAudit trail: {len(service.recorder.entries)} entries")
        for entry in service.recorder.entries:
            print(f"  {entry.entry_id} {entry.category.value}: {entry.payload}")


if __name__ == "__main__":
    main()
