"""Benchmark: cold role and user resolution throughput.

Each iteration resolves every user of a fresh snapshot with a fresh resolver,
so nothing is served from a resolver memo or the engine cache.
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from bench_fixtures import make_snapshot

from enterprise_permissions.resolution.role_resolver import RoleHierarchyResolver
from enterprise_permissions.resolution.user_resolver import UserPermissionResolver

_ITERATIONS: int = 200


def bench_resolve_throughput() -> dict[str, object]:
    """Benchmark full-snapshot user resolution with no memoisation."""
    snapshot = make_snapshot()
    user_ids = sorted(snapshot.users)

    start = time.perf_counter()
    for _ in range(_ITERATIONS):
        resolver = UserPermissionResolver(RoleHierarchyResolver(snapshot))
        for user_id in user_ids:
            resolver.resolve(user_id)
    total = time.perf_counter() - start

    resolutions = _ITERATIONS * len(user_ids)
    result: dict[str, object] = {
        "operation": "resolve_throughput",
        "iterations": _ITERATIONS,
        "roles": len(snapshot.roles),
        "users": len(user_ids),
        "total_seconds": round(total, 4),
        "ops_per_second": round(resolutions / total, 1),
        "avg_latency_ms": round(total / resolutions * 1000, 4),
    }
    print(
        f"[bench_resolve_throughput] {result['operation']}: "
        f"{result['ops_per_second']} users/s"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_resolve_throughput()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "resolve_throughput.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
