"""Per-snapshot cache of resolved user permissions.

Entries are keyed by ``(user_id, snapshot_version)``.  The cache only ever
holds entries for a single version: as soon as a newer version is seen, the
whole cache is dropped.  Entries are never patched incrementally.
"""
from __future__ import annotations

import logging
import threading

from enterprise_permissions.resolution.user_resolver import EffectiveUserPermissions

logger = logging.getLogger(__name__)


class ResolutionCache:
    """Thread-safe ``(user_id, version) -> EffectiveUserPermissions`` cache.

    Parameters
    ----------
    max_entries:
        Upper bound on cached users; the oldest entry is evicted first.
    """

    def __init__(self, max_entries: int = 10_000) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1; got {max_entries}.")
        self._max_entries = max_entries
        self._version = -1
        self._entries: dict[str, EffectiveUserPermissions] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, user_id: str, version: int) -> EffectiveUserPermissions | None:
        with self._lock:
            if version != self._version:
                self._misses += 1
                return None
            cached = self._entries.get(user_id)
            if cached is None:
                self._misses += 1
            else:
                self._hits += 1
            return cached

    def put(self, permissions: EffectiveUserPermissions) -> None:
        version = permissions.snapshot_version
        with self._lock:
            if version < self._version:
                return
            if version > self._version:
                self._reset(version)
            if len(self._entries) >= self._max_entries and permissions.user_id not in self._entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[permissions.user_id] = permissions

    def invalidate(self, version: int | None = None) -> None:
        """Drop every entry; with ``version``, also advance to that version."""
        with self._lock:
            self._reset(self._version if version is None else max(version, self._version))

    def _reset(self, version: int) -> None:
        if self._entries:
            logger.debug(
                "Dropping %d cached user resolutions (v%d -> v%d)",
                len(self._entries),
                self._version,
                version,
            )
        self._entries = {}
        self._version = version

    def info(self) -> dict[str, int]:
        with self._lock:
            return {
                "version": self._version,
                "size": len(self._entries),
                "max_entries": self._max_entries,
                "hits": self._hits,
                "misses": self._misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
