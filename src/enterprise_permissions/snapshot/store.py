"""Atomic snapshot publication.

SnapshotStore holds the single live :class:`PermissionSnapshot`.  Readers
take ``store.current`` without locking: publication is one reference
assignment, so an evaluation sees either the old or the new snapshot in
full, never a mix.

Writers are serialised by a lock.  A writer builds a candidate from the live
snapshot (copy-on-write); the candidate is validated while it is built, and
only a valid candidate with a newer version replaces the live one.  On any
failure the previous snapshot stays live and the error propagates.

Example
-------
::

    store = SnapshotStore()
    store.attach(InMemoryRoleUserSource(roles=[viewer, editor], users=[alice]))
    store.current.version          # 1
"""
from __future__ import annotations

import logging
import threading
from typing import Callable

from enterprise_permissions.model.errors import PermissionEngineError, SnapshotVersionError
from enterprise_permissions.snapshot.snapshot import PermissionSnapshot
from enterprise_permissions.snapshot.source import ChangeNotification, RoleUserSource

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[PermissionSnapshot], None]


class SnapshotStore:
    """Holds and atomically replaces the live snapshot.

    Parameters
    ----------
    initial:
        Snapshot to start with.  Defaults to the empty version-0 snapshot.
    """

    def __init__(self, initial: PermissionSnapshot | None = None) -> None:
        self._current = initial or PermissionSnapshot.empty()
        self._write_lock = threading.RLock()
        self._listeners: list[SnapshotListener] = []

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def current(self) -> PermissionSnapshot:
        """The live snapshot."""
        return self._current

    @property
    def version(self) -> int:
        return self._current.version

    def subscribe(self, listener: SnapshotListener) -> None:
        """Call ``listener(snapshot)`` after every successful publication.

        A listener that raises is logged and skipped; the publication stands.
        """
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def publish(self, candidate: PermissionSnapshot) -> PermissionSnapshot:
        """Make ``candidate`` the live snapshot.

        Raises
        ------
        SnapshotVersionError
            If ``candidate.version`` is not greater than the live version.
        """
        with self._write_lock:
            live = self._current
            if candidate.version <= live.version:
                raise SnapshotVersionError(candidate.version, live.version)
            self._current = candidate
        logger.info(
            "Published snapshot v%d (%d roles, %d users)",
            candidate.version,
            len(candidate.roles),
            len(candidate.users),
        )
        for listener in list(self._listeners):
            try:
                listener(candidate)
            except Exception:
                logger.exception(
                    "Snapshot listener %r failed after publishing v%d", listener, candidate.version
                )
        return candidate

    def mutate(
        self, build: Callable[[PermissionSnapshot], PermissionSnapshot]
    ) -> tuple[PermissionSnapshot, PermissionSnapshot]:
        """Apply a copy-on-write change.

        ``build`` receives the live snapshot and must return a validated
        candidate (normally via :meth:`PermissionSnapshot.build` with
        ``version = live.version + 1``).  Any exception it raises leaves
        the live snapshot untouched.

        Returns
        -------
        tuple[PermissionSnapshot, PermissionSnapshot]
            ``(before, after)``.
        """
        with self._write_lock:
            before = self._current
            after = build(before)
            self.publish(after)
        return before, after

    def load_from(self, source: RoleUserSource) -> PermissionSnapshot:
        """Build, validate and publish a snapshot from ``source``.

        Raises
        ------
        PermissionEngineError
            Validation failures (cycles, dangling references, duplicates)
            or a stale version.  The live snapshot is unchanged.
        """
        payload = source.load_snapshot()
        candidate = PermissionSnapshot.build(payload.version, payload.roles, payload.users)
        return self.publish(candidate)

    def attach(self, source: RoleUserSource) -> PermissionSnapshot:
        """Load ``source`` now and re-snapshot whenever it reports a change."""

        def _on_change(notification: ChangeNotification) -> None:
            logger.debug(
                "Source change: %s %s (v%d)",
                notification.kind,
                notification.target_id,
                notification.version,
            )
            try:
                self.load_from(source)
            except PermissionEngineError:
                logger.warning(
                    "Rejected snapshot after %s change to %s; v%d stays live",
                    notification.kind,
                    notification.target_id,
                    self.version,
                    exc_info=True,
                )
                raise

        snapshot = self.load_from(source)
        source.subscribe(_on_change)
        return snapshot
