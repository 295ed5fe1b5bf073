"""Error taxonomy for the permission engine.

Errors that would corrupt the decision model (cycles, dangling references,
unauthorised edits to system roles) are raised synchronously at the mutation
boundary.  Every error carries the identifiers that caused it so the operator
can fix the actual conflict.

Audit side-channel failures (:class:`SinkDeliveryFailure`) are handled inside
the recorder and never reach :meth:`EvaluationEngine.evaluate`.
"""
from __future__ import annotations

from typing import Sequence


class PermissionEngineError(Exception):
    """Base class for every error raised by the permission engine."""


class CycleError(PermissionEngineError):
    """Raised when role inheritance would close (or already closes) a cycle.

    Attributes
    ----------
    role_id:
        The role id that reappeared on the traversal path.
    path:
        The inheritance path that closes the cycle, starting and ending
        with ``role_id``.
    """

    def __init__(self, role_id: str, path: Sequence[str]) -> None:
        self.role_id = role_id
        self.path: tuple[str, ...] = tuple(path)
        chain = " -> ".join(self.path)
        super().__init__(
            f"Role inheritance cycle through role '{role_id}': {chain}"
        )


class ReferentialIntegrityError(PermissionEngineError):
    """Raised when a mutation would leave or create a dangling role reference.

    Two situations produce this error:

    - deleting a role that is still referenced by another role's
      inheritance list or by a user's role assignment;
    - saving a role or user that references a role id absent from the
      candidate snapshot.

    Attributes
    ----------
    target_id:
        The role (or user) id the mutation was applied to.
    referencing_roles:
        Role ids whose ``inheritance`` lists still reference ``target_id``.
    referencing_users:
        User ids whose ``primary_role`` or ``additional_roles`` still
        reference ``target_id``.
    missing_ids:
        Role ids referenced by ``target_id`` that do not exist.
    """

    def __init__(
        self,
        target_id: str,
        referencing_roles: Sequence[str] = (),
        referencing_users: Sequence[str] = (),
        missing_ids: Sequence[str] = (),
    ) -> None:
        self.target_id = target_id
        self.referencing_roles: tuple[str, ...] = tuple(referencing_roles)
        self.referencing_users: tuple[str, ...] = tuple(referencing_users)
        self.missing_ids: tuple[str, ...] = tuple(missing_ids)

        parts: list[str] = []
        if self.referencing_roles:
            parts.append(f"inherited by roles {list(self.referencing_roles)}")
        if self.referencing_users:
            parts.append(f"assigned to users {list(self.referencing_users)}")
        if self.missing_ids:
            parts.append(f"references unknown roles {list(self.missing_ids)}")
        detail = "; ".join(parts) or "dangling reference"
        super().__init__(f"Referential integrity violation for '{target_id}': {detail}")


class SystemRoleError(PermissionEngineError):
    """Raised when a non-privileged actor attempts to change a system role."""

    def __init__(self, role_id: str, actor_id: str) -> None:
        self.role_id = role_id
        self.actor_id = actor_id
        super().__init__(
            f"Role '{role_id}' is a system role and cannot be changed by "
            f"non-privileged actor '{actor_id}'"
        )


class UnknownRoleError(PermissionEngineError):
    """Raised when a role id is not present in the snapshot."""

    def __init__(self, role_id: str) -> None:
        self.role_id = role_id
        super().__init__(f"Unknown role '{role_id}'")


class UnknownUserError(PermissionEngineError):
    """Raised when an administrative operation names an absent user id."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"Unknown user '{user_id}'")


class DuplicateIdentifierError(PermissionEngineError):
    """Raised when an id, a role name or a rule key is defined twice in one scope."""

    def __init__(self, kind: str, identifier: str, scope: str | None = None) -> None:
        self.kind = kind
        self.identifier = identifier
        self.scope = scope
        where = f" in '{scope}'" if scope else ""
        super().__init__(f"Duplicate {kind} '{identifier}'{where}")


class SnapshotVersionError(PermissionEngineError):
    """Raised when a snapshot version does not advance past the live version."""

    def __init__(self, offered: int, current: int) -> None:
        self.offered = offered
        self.current = current
        super().__init__(
            f"Snapshot version {offered} is not newer than live version {current}"
        )


class DefinitionConfigError(ValueError):
    """Raised when role/user definitions or engine configuration are malformed.

    Attributes
    ----------
    config_path:
        The path of the file that caused the error, if known.
    """

    def __init__(self, message: str, config_path: str | None = None) -> None:
        self.config_path = config_path
        prefix = f"[{config_path}] " if config_path else ""
        super().__init__(f"{prefix}{message}")


class SinkDeliveryFailure(PermissionEngineError):
    """Raised when an audit entry cannot be delivered to the external sink.

    Attributes
    ----------
    entry_id:
        Identifier of the audit entry that failed.
    attempts:
        Number of delivery attempts made so far.
    """

    def __init__(self, entry_id: str, attempts: int, cause: str = "") -> None:
        self.entry_id = entry_id
        self.attempts = attempts
        suffix = f": {cause}" if cause else ""
        super().__init__(
            f"Audit entry '{entry_id}' not delivered after {attempts} attempt(s){suffix}"
        )


class UnknownSubjectWarning(UserWarning):
    """Attached to an evaluation requested for a user absent from the snapshot.

    This is never raised by the engine; it is returned on
    :attr:`PermissionEvaluation.warning` for the caller to log or report.
    """

    def __init__(self, user_id: str, snapshot_version: int) -> None:
        self.user_id = user_id
        self.snapshot_version = snapshot_version
        super().__init__(
            f"User '{user_id}' is not present in snapshot version {snapshot_version}"
        )
