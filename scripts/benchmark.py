#!/usr/bin/env python3
"""
Recall and latency benchmark for the HNSW-backed in-memory store.

Builds an exact (brute-force) store and an HNSW store over the same random
unit vectors, runs the same queries against both and reports how many of the
exact top-k results the approximate search recovers. Optionally deletes part
of the collection and runs index validation and rebuild afterwards.
"""

import argparse
import json
import random
import sys
import time
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

import numpy as np

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from vecstore.core.maintenance import MaintenanceError, rebuild_index, validate_index
from vecstore.core.memory import format_bytes
from vecstore.core.schema import HNSWConfig
from vecstore.vector.errors import VectorStoreError
from vecstore.vector.memory_store import InMemoryVectorStore
from vecstore.vector.types import VectorRecord


def random_unit_vectors(count: int, dimensions: int, seed: int) -> np.ndarray:
    """Rows drawn from a standard normal and scaled to unit length."""
    rng = np.random.default_rng(seed)
    vectors = rng.standard_normal((count, dimensions))
    return vectors / np.linalg.norm(vectors, axis=1, keepdims=True)


def _load(store: InMemoryVectorStore, vectors: np.ndarray) -> float:
    records = [VectorRecord(id=f"vec-{i}", vector=vector, metadata={"position": i})
               for i, vector in enumerate(vectors)]
    start = time.perf_counter()
    store.insert(records)
    return time.perf_counter() - start


def _recall(exact: InMemoryVectorStore, approximate: InMemoryVectorStore,
            queries: np.ndarray, top_k: int) -> Dict[str, float]:
    overlaps: List[float] = []
    latencies: List[float] = []

    for query in queries:
        expected = {result.id for result in exact.search(query, top_k=top_k)}

        start = time.perf_counter()
        found = approximate.search(query, top_k=top_k)
        latencies.append((time.perf_counter() - start) * 1000)

        if expected:
            overlaps.append(len(expected & {result.id for result in found}) / len(expected))

    return {
        "recall": float(np.mean(overlaps)) if overlaps else 0.0,
        "mean_latency_ms": round(float(np.mean(latencies)), 3),
        "p95_latency_ms": round(float(np.percentile(latencies, 95)), 3),
    }


def run_benchmark(count: int = 1000, dimensions: int = 64, queries: int = 50, top_k: int = 10,
                  hnsw_config: HNSWConfig = None, metric: str = "cosine", seed: int = 42,
                  delete_fraction: float = 0.0) -> Dict[str, Any]:
    """
    Run the benchmark and return its results.

    Args:
        count: Number of indexed vectors
        dimensions: Vector dimensionality
        queries: Number of query vectors
        top_k: Neighbors requested per query
        hnsw_config: Index parameters, defaults when None
        metric: Store scoring metric
        seed: Seed for vectors and level assignment
        delete_fraction: Share of vectors deleted before validation/rebuild
    """
    hnsw_config = hnsw_config or HNSWConfig()
    vectors = random_unit_vectors(count, dimensions, seed)
    query_vectors = random_unit_vectors(queries, dimensions, seed + 1)

    exact = InMemoryVectorStore(dimensions, distance_metric=metric)
    approximate = InMemoryVectorStore(dimensions, distance_metric=metric, index_type="hnsw",
                                      hnsw_config=hnsw_config, rng=random.Random(seed))

    _load(exact, vectors)
    build_seconds = _load(approximate, vectors)

    results: Dict[str, Any] = {
        "config": {
            "count": count,
            "dimensions": dimensions,
            "queries": queries,
            "top_k": top_k,
            "metric": metric,
            "m": hnsw_config.m,
            "ef_construction": hnsw_config.ef_construction,
            "ef_search": hnsw_config.ef_search,
            "seed": seed,
        },
        "build_seconds": round(build_seconds, 3),
        "memory": format_bytes(approximate.memory_usage()),
        "index": asdict(approximate.index.get_stats()),
        "search": _recall(exact, approximate, query_vectors, top_k),
    }

    if delete_fraction > 0:
        delete_ids = [f"vec-{i}" for i in range(0, count, max(1, int(round(1 / delete_fraction))))]
        exact.delete(delete_ids)
        approximate.delete(delete_ids)

        validation = validate_index(approximate)
        results["after_delete"] = {
            "deleted": len(delete_ids),
            "validation": validation.to_dict(),
            "search": _recall(exact, approximate, query_vectors, top_k),
        }

        rebuild = rebuild_index(approximate, force=True)
        results["after_rebuild"] = {
            "rebuild": rebuild.to_dict(),
            "search": _recall(exact, approximate, query_vectors, top_k),
        }

    return results


def format_report(report: Dict[str, Any]) -> str:
    """Format a serialized maintenance report for display."""
    lines = [f"  Operation: {report['operation']}"]
    if report["errors"]:
        lines.append(f"  Status: FAILED ({len(report['errors'])} errors)")
    elif report["issues_found"] > 0:
        lines.append(f"  Status: ISSUES FOUND ({report['issues_found']} issues)")
    else:
        lines.append("  Status: SUCCESS")

    for error in report["errors"]:
        lines.append(f"    - {error}")
    for rec in report["recommendations"]:
        lines.append(f"    - {rec}")
    return "\n".join(lines)


def format_search(label: str, search: Dict[str, float]) -> str:
    return (f"{label}: recall={search['recall']:.3f} "
            f"mean={search['mean_latency_ms']:.3f}ms p95={search['p95_latency_ms']:.3f}ms")


def main(argv: List[str] = None) -> int:
    parser = argparse.ArgumentParser(
        description="HNSW recall and latency benchmark over random unit vectors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # 1000 vectors, 64 dims, default parameters
  %(prog)s --count 20000 --ef-search 50 # Larger collection, faster queries
  %(prog)s --delete-fraction 0.2        # Delete 20%%, then validate and rebuild
  %(prog)s --min-recall 0.9 --json      # Machine-readable, fail below 90%% recall

Exit codes:
  0 - benchmark completed and recall met --min-recall
  1 - benchmark failed with an error
  2 - recall below --min-recall
        """
    )

    parser.add_argument("--count", "-n", type=int, default=1000, help="Number of indexed vectors")
    parser.add_argument("--dimensions", "-d", type=int, default=64, help="Vector dimensionality")
    parser.add_argument("--queries", "-q", type=int, default=50, help="Number of query vectors")
    parser.add_argument("--top-k", "-k", type=int, default=10, help="Neighbors requested per query")
    parser.add_argument("--metric", default="cosine", help="Scoring metric: cosine, euclidean or dot_product")
    parser.add_argument("--m", type=int, default=16, help="HNSW connections per node")
    parser.add_argument("--ef-construction", type=int, default=200, help="HNSW build candidate list size")
    parser.add_argument("--ef-search", type=int, default=100, help="HNSW search candidate list size")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument(
        "--delete-fraction",
        type=float,
        default=0.0,
        help="Delete this share of vectors, then validate and rebuild the index"
    )
    parser.add_argument("--min-recall", type=float, default=0.0, help="Exit with code 2 below this recall")
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")

    args = parser.parse_args(argv)

    if not 0 <= args.delete_fraction < 1:
        parser.error("--delete-fraction must be in [0, 1)")

    try:
        hnsw_config = HNSWConfig(m=args.m, ef_construction=args.ef_construction, ef_search=args.ef_search)
        results = run_benchmark(
            count=args.count,
            dimensions=args.dimensions,
            queries=args.queries,
            top_k=args.top_k,
            hnsw_config=hnsw_config,
            metric=args.metric,
            seed=args.seed,
            delete_fraction=args.delete_fraction,
        )
    except (MaintenanceError, VectorStoreError, ValueError) as e:
        print(f"ERROR: Benchmark failed: {e}")
        return 1

    if args.json:
        print(json.dumps(results, indent=2, default=str))
    else:
        config = results["config"]
        print(f"Vectors: {config['count']} x {config['dimensions']} ({config['metric']}), "
              f"m={config['m']} ef_construction={config['ef_construction']} ef_search={config['ef_search']}")
        print(f"Build: {results['build_seconds']:.3f}s, memory {results['memory']}")
        print(f"Layers: {results['index']['nodes_per_level']}")
        print(format_search("Search", results["search"]))

        if "after_delete" in results:
            print("-" * 60)
            print(f"Deleted {results['after_delete']['deleted']} vectors")
            print(format_search("After delete", results["after_delete"]["search"]))
            print(format_report(results["after_delete"]["validation"]))
            print(format_search("After rebuild", results["after_rebuild"]["search"]))
            print(format_report(results["after_rebuild"]["rebuild"]))

    return 0 if results["search"]["recall"] >= args.min_recall else 2


if __name__ == "__main__":
    sys.exit(main())
