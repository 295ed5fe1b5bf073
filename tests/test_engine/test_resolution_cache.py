"""Tests for ResolutionCache."""
from __future__ import annotations

import pytest

from enterprise_permissions.engine.cache import ResolutionCache
from enterprise_permissions.resolution.user_resolver import EffectiveUserPermissions


def _permissions(user_id: str, version: int) -> EffectiveUserPermissions:
    return EffectiveUserPermissions(user_id, version, {})


class TestResolutionCache:
    def test_miss_then_hit(self) -> None:
        cache = ResolutionCache()
        assert cache.get("u", 1) is None
        cached = _permissions("u", 1)
        cache.put(cached)
        assert cache.get("u", 1) is cached

    def test_other_version_misses(self) -> None:
        cache = ResolutionCache()
        cache.put(_permissions("u", 1))
        assert cache.get("u", 2) is None

    def test_newer_version_drops_everything(self) -> None:
        cache = ResolutionCache()
        cache.put(_permissions("a", 1))
        cache.put(_permissions("b", 1))
        cache.put(_permissions("c", 2))
        assert len(cache) == 1
        assert cache.get("a", 1) is None

    def test_older_version_ignored(self) -> None:
        cache = ResolutionCache()
        cache.put(_permissions("a", 2))
        cache.put(_permissions("b", 1))
        assert cache.get("b", 1) is None
        assert len(cache) == 1

    def test_invalidate_advances_version(self) -> None:
        cache = ResolutionCache()
        cache.put(_permissions("a", 1))
        cache.invalidate(5)
        assert len(cache) == 0
        cache.put(_permissions("a", 3))
        assert len(cache) == 0

    def test_max_entries_evicts_oldest(self) -> None:
        cache = ResolutionCache(max_entries=2)
        for user_id in ("a", "b", "c"):
            cache.put(_permissions(user_id, 1))
        assert cache.get("a", 1) is None
        assert cache.get("c", 1) is not None
        assert len(cache) == 2

    def test_invalid_max_entries(self) -> None:
        with pytest.raises(ValueError):
            ResolutionCache(max_entries=0)

    def test_info_counts(self) -> None:
        cache = ResolutionCache(max_entries=10)
        cache.get("a", 1)
        cache.put(_permissions("a", 1))
        cache.get("a", 1)
        assert cache.info() == {"version": 1, "size": 1, "max_entries": 10, "hits": 1, "misses": 1}
