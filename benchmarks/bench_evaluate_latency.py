"""Benchmark: evaluate() latency — per-call p50/p99 against a warm cache.

Measures the per-call latency of EvaluationEngine.evaluate() for a user whose
primary role sits at the bottom of a layered inheritance hierarchy.
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from bench_fixtures import make_snapshot

from enterprise_permissions.engine.cache import ResolutionCache
from enterprise_permissions.engine.evaluator import EvaluationEngine
from enterprise_permissions.snapshot.store import SnapshotStore

_WARMUP: int = 100
_ITERATIONS: int = 5_000


def bench_evaluate_latency() -> dict[str, object]:
    """Benchmark EvaluationEngine.evaluate() per-call latency.

    Returns
    -------
    dict with keys: operation, iterations, total_seconds, ops_per_second,
    avg_latency_ms, p50_latency_ms, p99_latency_ms.
    """
    engine = EvaluationEngine(SnapshotStore(make_snapshot()), cache=ResolutionCache())
    requests = [
        ("resource-0-0", "view"),
        ("resource-1-3", "edit"),
        ("resource-2-9", "delete"),
    ]

    # Warmup.
    for i in range(_WARMUP):
        resource, action = requests[i % len(requests)]
        engine.evaluate("user-0", resource, action)

    latencies_ms: list[float] = []
    for i in range(_ITERATIONS):
        resource, action = requests[i % len(requests)]
        t0 = time.perf_counter()
        engine.evaluate("user-0", resource, action)
        latencies_ms.append((time.perf_counter() - t0) * 1000)

    sorted_lats = sorted(latencies_ms)
    n = len(sorted_lats)
    total = sum(latencies_ms) / 1000

    result: dict[str, object] = {
        "operation": "evaluate_latency",
        "iterations": _ITERATIONS,
        "total_seconds": round(total, 4),
        "ops_per_second": round(_ITERATIONS / total, 1),
        "avg_latency_ms": round(sum(latencies_ms) / n, 4),
        "p50_latency_ms": round(sorted_lats[n // 2], 4),
        "p99_latency_ms": round(sorted_lats[min(int(n * 0.99), n - 1)], 4),
        "cache": engine.cache_info(),
    }
    print(
        f"[bench_evaluate_latency] {result['operation']}: "
        f"p99={result['p99_latency_ms']:.4f}ms  "
        f"mean={result['avg_latency_ms']:.4f}ms"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_evaluate_latency()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "evaluate_latency.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
