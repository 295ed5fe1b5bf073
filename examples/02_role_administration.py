#!/usr/bin/env python3
"""Example: Role administration — enterprise-permissions

Copy-on-write role edits: preview a role before saving, reject a change that
would close an inheritance cycle, protect referenced roles from deletion and
export the result as YAML.

Usage:
    python examples/02_role_administration.py
"""
from __future__ import annotations

from dataclasses import replace

import enterprise_permissions as perms


def main() -> None:
    service = perms.PermissionService(
        perms.EngineConfig.model_validate({"audit": {"asynchronous": False}})
    )
    admin = service.admin

    viewer = perms.CustomRole(
        id="viewer",
        name="viewer",
        permissions=(
            perms.PermissionRule(id="p1", resource="project", action="view", granted=True),
        ),
    )
    editor = perms.CustomRole(
        id="editor",
        name="editor",
        inheritance=("viewer",),
        permissions=(
            perms.PermissionRule(id="p2", resource="project", action="edit", granted=True),
        ),
    )
    admin.create_role(viewer, actor_id="root")
    admin.create_role(editor, actor_id="root")
    admin.create_user(perms.EnterpriseUser(id="alice", primary_role="editor"), actor_id="root")

    # Preview before saving
    draft = perms.CustomRole(id="lead", name="lead", inheritance=("editor",))
    preview = admin.preview_role(draft)
    print("Preview of 'lead':")
    for (resource, action), rule in preview.items():
        print(f"  {resource}:{action} granted={rule.granted} from {rule.role_id}")

    # A cycle is rejected and the live snapshot is unchanged
    live = service.snapshot
    try:
        admin.update_role(replace(viewer, inheritance=("editor",)), actor_id="root")
    except perms.CycleError as exc:
        print(f"\nRejected: {exc}")
    assert service.snapshot is live

    # A referenced role cannot be deleted
    try:
        admin.delete_role("viewer", actor_id="root")
    except perms.ReferentialIntegrityError as exc:
        print(f"Rejected: {exc}")

    admin.duplicate_role("editor", "editor-copy", "editor-copy", actor_id="root")

    print(f"\nMutation records ({len(service.sink)}):")  # type: ignore[arg-type]
    for entry in service.recorder.entries:
        print(f"  v{entry.payload['snapshot_version']} {entry.payload['kind']} "
              f"{entry.payload['target_id']}")

    print("\nExported definitions:")
    print(perms.dump_definitions(service.snapshot))


if __name__ == "__main__":
    main()
