"""Role/User Store collaborator interface.

The engine reads role and user definitions from a source that can:

- return a full, versioned payload (:meth:`RoleUserSource.load_snapshot`);
- notify subscribers when a role or a user changed, so the engine can
  re-snapshot.

The internals of the real store (database, hosted backend...) are outside
this library.  Two sources are provided: :class:`InMemoryRoleUserSource`
for tests and embedding, and :class:`FileRoleUserSource`, which reads a
YAML definitions file.
"""
from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal, Protocol, runtime_checkable

from enterprise_permissions.model.types import CustomRole, EnterpriseUser
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot

logger = logging.getLogger(__name__)

ChangeKind = Literal["role", "user", "reload"]


@dataclass(frozen=True)
class SnapshotPayload:
    """Raw, not yet validated role and user data tagged with a version."""

    version: int
    roles: tuple[CustomRole, ...]
    users: tuple[EnterpriseUser, ...]


@dataclass(frozen=True)
class ChangeNotification:
    """Tells subscribers that a role or user changed at ``version``."""

    kind: ChangeKind
    target_id: str
    version: int


ChangeListener = Callable[[ChangeNotification], None]


@runtime_checkable
class RoleUserSource(Protocol):
    """Anything the snapshot store can load role and user data from."""

    def load_snapshot(self) -> SnapshotPayload:
        ...

    def subscribe(self, listener: ChangeListener) -> None:
        ...


class _Notifier:
    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def _notify(self, notification: ChangeNotification) -> None:
        for listener in list(self._listeners):
            listener(notification)


class InMemoryRoleUserSource(_Notifier):
    """Dict-backed source.  Every accepted change bumps the version and notifies.

    Changes are validated as a whole candidate before they are applied; a
    change that would break the role graph or its references raises and
    leaves the source as it was.

    Parameters
    ----------
    roles, users:
        Initial data.
    version:
        Initial version number.
    """

    def __init__(
        self,
        roles: list[CustomRole] | None = None,
        users: list[EnterpriseUser] | None = None,
        version: int = 1,
    ) -> None:
        super().__init__()
        self._roles: dict[str, CustomRole] = {r.id: r for r in roles or []}
        self._users: dict[str, EnterpriseUser] = {u.id: u for u in users or []}
        self._version = version
        self._lock = threading.Lock()

    def load_snapshot(self) -> SnapshotPayload:
        with self._lock:
            return SnapshotPayload(
                version=self._version,
                roles=tuple(self._roles.values()),
                users=tuple(self._users.values()),
            )

    @property
    def version(self) -> int:
        return self._version

    def put_role(self, role: CustomRole) -> None:
        def edit(roles: dict[str, CustomRole], users: dict[str, EnterpriseUser]) -> None:
            roles[role.id] = role

        self._commit("role", role.id, edit, focus_role=role.id)

    def remove_role(self, role_id: str) -> None:
        def edit(roles: dict[str, CustomRole], users: dict[str, EnterpriseUser]) -> None:
            roles.pop(role_id, None)

        self._commit("role", role_id, edit)

    def put_user(self, user: EnterpriseUser) -> None:
        def edit(roles: dict[str, CustomRole], users: dict[str, EnterpriseUser]) -> None:
            users[user.id] = user

        self._commit("user", user.id, edit)

    def remove_user(self, user_id: str) -> None:
        def edit(roles: dict[str, CustomRole], users: dict[str, EnterpriseUser]) -> None:
            users.pop(user_id, None)

        self._commit("user", user_id, edit)

    def _commit(
        self,
        kind: ChangeKind,
        target_id: str,
        edit: Callable[[dict[str, CustomRole], dict[str, EnterpriseUser]], None],
        focus_role: str | None = None,
    ) -> None:
        with self._lock:
            roles = dict(self._roles)
            users = dict(self._users)
            edit(roles, users)
            # Raises before anything is assigned when the candidate is invalid.
            PermissionSnapshot.build(
                self._version + 1, roles.values(), users.values(), focus_role=focus_role
            )
            self._roles = roles
            self._users = users
            self._version += 1
            version = self._version
        self._notify(ChangeNotification(kind, target_id, version))


class FileRoleUserSource(_Notifier):
    """Source backed by a YAML definitions file.

    The payload version is the document's ``version`` key when present;
    otherwise it advances every time the file content changes.

    Parameters
    ----------
    path:
        Path to the definitions YAML file.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path)
        self._digest: str | None = None
        self._counter = 0

    def load_snapshot(self) -> SnapshotPayload:
        from enterprise_permissions.config.definitions import DefinitionLoader

        raw = self._path.read_bytes()
        digest = hashlib.sha256(raw).hexdigest()
        if digest != self._digest:
            self._digest = digest
            self._counter += 1
        document = DefinitionLoader().load_from_yaml_string(
            raw.decode("utf-8"), config_path=str(self._path)
        )
        version = document.version if document.version is not None else self._counter
        logger.info(
            "Loaded %d roles and %d users from %s (version %d)",
            len(document.roles),
            len(document.users),
            self._path,
            version,
        )
        return SnapshotPayload(version=version, roles=document.roles, users=document.users)

    def check_for_changes(self) -> bool:
        """Notify subscribers if the file content changed since the last load."""
        digest = hashlib.sha256(self._path.read_bytes()).hexdigest()
        if digest == self._digest:
            return False
        self._notify(ChangeNotification("reload", str(self._path), self._counter + 1))
        return True

    @property
    def path(self) -> Path:
        return self._path