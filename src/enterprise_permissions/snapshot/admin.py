"""Role and user administration through copy-on-write snapshots.

Every operation of :class:`PermissionAdministrator` follows the same steps:

1. read the live snapshot;
2. build a candidate with the change applied (records are replaced, never
   mutated);
3. validate the candidate: cycle detection, referential integrity, system
   role protection, uniqueness;
4. publish it atomically and append one audit record per change.

A rejected change raises, is logged, produces no audit record, and leaves
the live snapshot exactly as it was.

Example
-------
::

    admin = PermissionAdministrator(store, recorder)
    admin.create_role(CustomRole(id="viewer", name="viewer"), actor_id="root")
    admin.update_role(replace(viewer, inheritance=("editor",)), actor_id="root")
    # CycleError: Role inheritance cycle through role 'viewer': viewer -> editor -> viewer
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from enterprise_permissions.audit.records import MutationKind, MutationRecord
from enterprise_permissions.audit.recorder import AuditRecorder
from enterprise_permissions.model.errors import (
    DuplicateIdentifierError,
    PermissionEngineError,
    ReferentialIntegrityError,
    SystemRoleError,
    UnknownRoleError,
)
from enterprise_permissions.model.types import (
    CustomRole,
    EnterpriseUser,
    PermissionRule,
    Restriction,
)
from enterprise_permissions.resolution.role_resolver import (
    EffectiveRuleSet,
    RoleHierarchyResolver,
)
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot
from enterprise_permissions.snapshot.store import SnapshotStore

logger = logging.getLogger(__name__)

_Roles = dict[str, CustomRole]
_Users = dict[str, EnterpriseUser]
_Change = tuple[MutationKind, str, dict[str, object] | None, dict[str, object] | None]


class PermissionAdministrator:
    """Mutation API for roles and users.

    Parameters
    ----------
    store:
        The snapshot store to publish into.
    recorder:
        Optional audit recorder; when given, every accepted change appends
        a :class:`MutationRecord`.
    """

    def __init__(self, store: SnapshotStore, recorder: AuditRecorder | None = None) -> None:
        self._store = store
        self._recorder = recorder

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(
        self, role: CustomRole, actor_id: str, privileged: bool = False
    ) -> PermissionSnapshot:
        """Add a new role.  Creating a system role requires a privileged actor."""

        def change(live: PermissionSnapshot) -> tuple[_Roles, _Users, list[_Change]]:
            if role.id in live.roles:
                raise DuplicateIdentifierError("role id", role.id)
            if role.is_system and not privileged:
                raise SystemRoleError(role.id, actor_id)
            roles = dict(live.roles)
            roles[role.id] = role
            return roles, dict(live.users), [
                (MutationKind.ROLE_CREATED, role.id, None, role.to_dict())
            ]

        return self._commit(change, actor_id, focus_role=role.id)

    def update_role(
        self, role: CustomRole, actor_id: str, privileged: bool = False
    ) -> PermissionSnapshot:
        """Replace an existing role definition (matched by ``role.id``).

        Raises
        ------
        CycleError
            If the new inheritance list closes a cycle; the error names
            ``role.id``.
        SystemRoleError
            If the role is a system role and ``privileged`` is false.
        """

        def change(live: PermissionSnapshot) -> tuple[_Roles, _Users, list[_Change]]:
            existing = live.role(role.id)
            self._guard_system(existing, actor_id, privileged)
            if role.is_system and not privileged:
                raise SystemRoleError(role.id, actor_id)
            roles = dict(live.roles)
            roles[role.id] = role
            return roles, dict(live.users), [
                (MutationKind.ROLE_UPDATED, role.id, existing.to_dict(), role.to_dict())
            ]

        return self._commit(change, actor_id, focus_role=role.id)

    def set_inheritance(
        self,
        role_id: str,
        parents: list[str] | tuple[str, ...],
        actor_id: str,
        privileged: bool = False,
    ) -> PermissionSnapshot:
        """Replace the inheritance list of ``role_id``."""
        role = self._store.current.role(role_id)
        return self.update_role(
            replace(role, inheritance=tuple(parents)), actor_id, privileged
        )

    def add_parent(
        self, role_id: str, parent_id: str, actor_id: str, privileged: bool = False
    ) -> PermissionSnapshot:
        """Append ``parent_id`` to the inheritance list of ``role_id``."""
        role = self._store.current.role(role_id)
        if parent_id in role.inheritance:
            return self._store.current
        return self.set_inheritance(
            role_id, role.inheritance + (parent_id,), actor_id, privileged
        )

    def delete_role(
        self, role_id: str, actor_id: str, privileged: bool = False
    ) -> PermissionSnapshot:
        """Delete a role that nothing references any more.

        Raises
        ------
        ReferentialIntegrityError
            If another role inherits from it or a user is assigned to it.
            The error lists the referencing roles and users.
        """

        def change(live: PermissionSnapshot) -> tuple[_Roles, _Users, list[_Change]]:
            existing = live.role(role_id)
            self._guard_system(existing, actor_id, privileged)
            role_refs, user_refs = live.referrers(role_id)
            if role_refs or user_refs:
                raise ReferentialIntegrityError(role_id, role_refs, user_refs)
            roles = dict(live.roles)
            del roles[role_id]
            return roles, dict(live.users), [
                (MutationKind.ROLE_DELETED, role_id, existing.to_dict(), None)
            ]

        return self._commit(change, actor_id)

    def duplicate_role(
        self, role_id: str, new_id: str, new_name: str, actor_id: str
    ) -> PermissionSnapshot:
        """Copy a role's rules and inheritance into a new, non-system role."""
        original = self._store.current.role(role_id)
        copy = replace(
            original,
            id=new_id,
            name=new_name,
            display_name=f"{original.display_name or original.name} (Copy)",
            is_system=False,
        )
        return self.create_role(copy, actor_id)

    def preview_role(self, role: CustomRole) -> EffectiveRuleSet:
        """Resolve ``role`` as if it were saved, without publishing anything.

        Raises
        ------
        CycleError, ReferentialIntegrityError
            If saving the role would be rejected.
        """
        live = self._store.current
        roles = dict(live.roles)
        roles[role.id] = role
        candidate = PermissionSnapshot.build(
            live.version + 1, roles.values(), live.users.values(), focus_role=role.id
        )
        return RoleHierarchyResolver(candidate).resolve(role.id)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, user: EnterpriseUser, actor_id: str) -> PermissionSnapshot:
        def change(live: PermissionSnapshot) -> tuple[_Roles, _Users, list[_Change]]:
            if user.id in live.users:
                raise DuplicateIdentifierError("user id", user.id)
            users = dict(live.users)
            users[user.id] = user
            return dict(live.roles), users, [
                (MutationKind.USER_CREATED, user.id, None, user.to_dict())
            ]

        return self._commit(change, actor_id)

    def update_user(self, user: EnterpriseUser, actor_id: str) -> PermissionSnapshot:
        """Replace a user record, recording one entry per kind of change."""
        if self._store.current.find_user(user.id) == user:
            return self._store.current

        def change(live: PermissionSnapshot) -> tuple[_Roles, _Users, list[_Change]]:
            existing = live.user(user.id)
            users = dict(live.users)
            users[user.id] = user
            return dict(live.roles), users, _user_changes(existing, user)

        return self._commit(change, actor_id)

    def delete_user(self, user_id: str, actor_id: str) -> PermissionSnapshot:
        def change(live: PermissionSnapshot) -> tuple[_Roles, _Users, list[_Change]]:
            existing = live.user(user_id)
            users = dict(live.users)
            del users[user_id]
            return dict(live.roles), users, [
                (MutationKind.USER_DELETED, user_id, existing.to_dict(), None)
            ]

        return self._commit(change, actor_id)

    def assign_role(
        self, user_id: str, role_id: str, actor_id: str, primary: bool = False
    ) -> PermissionSnapshot:
        """Assign ``role_id`` to a user.

        With ``primary=True`` the role becomes the primary role (and is
        removed from the additional roles).  Otherwise it is appended to the
        additional roles, where it takes precedence over those already
        listed.  Re-assigning an already assigned additional role is a
        no-op.
        """
        user = self._store.current.user(user_id)
        if role_id not in self._store.current.roles:
            raise UnknownRoleError(role_id)
        if primary:
            updated = replace(
                user,
                primary_role=role_id,
                additional_roles=tuple(r for r in user.additional_roles if r != role_id),
            )
        elif role_id in user.role_ids:
            return self._store.current
        else:
            updated = replace(user, additional_roles=user.additional_roles + (role_id,))
        return self.update_user(updated, actor_id)

    def remove_role(self, user_id: str, role_id: str, actor_id: str) -> PermissionSnapshot:
        """Unassign ``role_id`` from a user (primary or additional)."""
        user = self._store.current.user(user_id)
        if role_id not in user.role_ids:
            return self._store.current
        updated = replace(
            user,
            primary_role=None if user.primary_role == role_id else user.primary_role,
            additional_roles=tuple(r for r in user.additional_roles if r != role_id),
        )
        return self.update_user(updated, actor_id)

    def set_custom_permission(
        self, user_id: str, rule: PermissionRule, actor_id: str
    ) -> PermissionSnapshot:
        """Add a per-user override, replacing any override for the same pair."""
        user = self._store.current.user(user_id)
        kept = tuple(p for p in user.custom_permissions if p.key != rule.key and p.id != rule.id)
        return self.update_user(replace(user, custom_permissions=kept + (rule,)), actor_id)

    def remove_custom_permission(
        self, user_id: str, rule_id: str, actor_id: str
    ) -> PermissionSnapshot:
        user = self._store.current.user(user_id)
        kept = tuple(p for p in user.custom_permissions if p.id != rule_id)
        if len(kept) == len(user.custom_permissions):
            return self._store.current
        return self.update_user(replace(user, custom_permissions=kept), actor_id)

    def add_restriction(
        self, user_id: str, restriction: Restriction, actor_id: str
    ) -> PermissionSnapshot:
        user = self._store.current.user(user_id)
        kept = tuple(r for r in user.restrictions if r.id != restriction.id)
        return self.update_user(replace(user, restrictions=kept + (restriction,)), actor_id)

    def remove_restriction(
        self, user_id: str, restriction_id: str, actor_id: str
    ) -> PermissionSnapshot:
        user = self._store.current.user(user_id)
        kept = tuple(r for r in user.restrictions if r.id != restriction_id)
        if len(kept) == len(user.restrictions):
            return self._store.current
        return self.update_user(replace(user, restrictions=kept), actor_id)

    def set_user_active(self, user_id: str, active: bool, actor_id: str) -> PermissionSnapshot:
        user = self._store.current.user(user_id)
        if user.is_active == active:
            return self._store.current
        return self.update_user(replace(user, is_active=active), actor_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _guard_system(role: CustomRole, actor_id: str, privileged: bool) -> None:
        if role.is_system and not privileged:
            raise SystemRoleError(role.id, actor_id)

    def _commit(
        self,
        change: Callable[[PermissionSnapshot], tuple[_Roles, _Users, list[_Change]]],
        actor_id: str,
        focus_role: str | None = None,
    ) -> PermissionSnapshot:
        changes: list[_Change] = []

        def build(live: PermissionSnapshot) -> PermissionSnapshot:
            roles, users, produced = change(live)
            changes.extend(produced)
            return PermissionSnapshot.build(
                live.version + 1, roles.values(), users.values(), focus_role=focus_role
            )

        try:
            _, after = self._store.mutate(build)
        except PermissionEngineError as exc:
            logger.warning("Rejected change by %s: %s", actor_id, exc)
            raise

        if self._recorder is not None:
            for kind, target_id, before, after_view in changes:
                self._recorder.record(
                    MutationRecord(
                        actor_id=actor_id,
                        kind=kind,
                        target_id=target_id,
                        before=before,
                        after=after_view,
                        snapshot_version=after.version,
                    )
                )
        return after


def _user_changes(before: EnterpriseUser, after: EnterpriseUser) -> list[_Change]:
    """Describe a user replacement as audit changes, most specific kinds first."""
    changes: list[_Change] = []
    if before.primary_role != after.primary_role:
        kind = (
            MutationKind.USER_ROLE_REMOVED
            if after.primary_role is None
            else MutationKind.USER_ROLE_ASSIGNED
        )
        changes.append(
            (
                kind,
                after.id,
                {"primary_role": before.primary_role},
                {"primary_role": after.primary_role},
            )
        )
    for role_id in [r for r in after.additional_roles if r not in before.additional_roles]:
        changes.append(
            (MutationKind.USER_ROLE_ASSIGNED, after.id, None, {"additional_role": role_id})
        )
    for role_id in [r for r in before.additional_roles if r not in after.additional_roles]:
        changes.append(
            (MutationKind.USER_ROLE_REMOVED, after.id, {"additional_role": role_id}, None)
        )
    if before.custom_permissions != after.custom_permissions:
        changes.append(
            (
                MutationKind.PERMISSION_OVERRIDE_CHANGED,
                after.id,
                {"custom_permissions": [p.to_dict() for p in before.custom_permissions]},
                {"custom_permissions": [p.to_dict() for p in after.custom_permissions]},
            )
        )
    if before.restrictions != after.restrictions:
        changes.append(
            (
                MutationKind.RESTRICTION_CHANGED,
                after.id,
                {"restrictions": [r.to_dict() for r in before.restrictions]},
                {"restrictions": [r.to_dict() for r in after.restrictions]},
            )
        )
    if before.is_active != after.is_active or before.display_name != after.display_name:
        changes.append((MutationKind.USER_UPDATED, after.id, before.to_dict(), after.to_dict()))
    if not changes and before != after:
        changes.append((MutationKind.USER_UPDATED, after.id, before.to_dict(), after.to_dict()))
    return changes
