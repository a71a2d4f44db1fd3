"""
Maintenance routines for HNSW-backed stores: consistency validation and
graph rebuilds.

Both return a MaintenanceReport; problems found are recorded in the report
rather than raised, so a caller can run them on a schedule and inspect the
outcome.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..util.logging import logger

# Dangling links reported in full up to this many, then only counted
MAX_REPORTED_DANGLING = 10


@dataclass
class MaintenanceReport:
    """Maintenance operation report."""
    operation: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    issues_found: int = 0
    issues_resolved: int = 0
    actions_taken: List[str] = None
    recommendations: List[str] = None
    errors: List[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.actions_taken is None:
            self.actions_taken = []
        if self.recommendations is None:
            self.recommendations = []
        if self.errors is None:
            self.errors = []
        if self.metadata is None:
            self.metadata = {}

    @property
    def healthy(self) -> bool:
        return self.issues_found == 0 and not self.errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        data = {
            "operation": self.operation,
            "started_at": self.started_at.isoformat(),
            "issues_found": self.issues_found,
            "issues_resolved": self.issues_resolved,
            "actions_taken": self.actions_taken,
            "recommendations": self.recommendations,
            "errors": self.errors,
            "metadata": self.metadata
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data


class MaintenanceError(Exception):
    """Raised when a maintenance routine cannot run against the given store."""
    pass


def _require_index_support(store) -> None:
    if not hasattr(store, "index") or not hasattr(store, "rebuild_index"):
        raise MaintenanceError(f"{type(store).__name__} does not expose an HNSW index")


def validate_index(store) -> MaintenanceReport:
    """
    Check that a store and its HNSW index agree.

    Checks:
      - every stored id is indexed and every indexed id is stored
      - no link points at a deleted node
      - the entry point exists and sits on the top layer

    Raises:
        MaintenanceError: store has no index support at all
    """
    _require_index_support(store)

    report = MaintenanceReport(
        operation="index_validation",
        started_at=datetime.now()
    )
    report.metadata["store"] = store.name

    index = store.index
    if index is None:
        report.metadata["index_type"] = "brute-force"
        report.recommendations.append("Store uses brute-force search - no index to validate")
        report.completed_at = datetime.now()
        return report

    stats = index.get_stats()
    report.metadata.update({
        "index_type": "hnsw",
        "stored_count": store.count(),
        "indexed_count": stats.node_count,
        "max_layer": stats.max_layer,
        "mean_layer0_degree": round(stats.mean_layer0_degree, 2),
        "nodes_per_level": stats.nodes_per_level,
    })

    stored_ids = set(store.ids())
    indexed_ids = set(index.ids())

    missing = sorted(stored_ids - indexed_ids)
    if missing:
        report.issues_found += 1
        report.errors.append(f"{len(missing)} stored records missing from index: {missing[:5]}")

    orphaned = sorted(indexed_ids - stored_ids)
    if orphaned:
        report.issues_found += 1
        report.errors.append(f"{len(orphaned)} indexed nodes without a stored record: {orphaned[:5]}")

    # One-way links to deleted nodes are tolerated by search, so they are a warning only
    dangling = index.dangling_references()
    report.metadata["dangling_references"] = len(dangling)
    if dangling:
        report.metadata["dangling_sample"] = [list(link) for link in dangling[:MAX_REPORTED_DANGLING]]
        report.recommendations.append(
            f"{len(dangling)} links point at deleted nodes - rebuild to restore connectivity"
        )

    entry_point = index.entry_point
    if stats.node_count == 0:
        if entry_point is not None:
            report.issues_found += 1
            report.errors.append(f"Empty index still has entry point {entry_point}")
    elif entry_point is None:
        report.issues_found += 1
        report.errors.append("Non-empty index has no entry point")
    else:
        entry_level = index.get_level(entry_point)
        if entry_level is None:
            report.issues_found += 1
            report.errors.append(f"Entry point {entry_point} is not in the index")
        elif entry_level != stats.max_layer:
            report.issues_found += 1
            report.errors.append(
                f"Entry point {entry_point} is on layer {entry_level}, top layer is {stats.max_layer}"
            )

    if report.issues_found == 0:
        report.metadata["index_health"] = "good" if not dangling else "degraded"
    else:
        report.metadata["index_health"] = "critical"
        report.recommendations.append("Index is inconsistent with the store - rebuild required")

    report.completed_at = datetime.now()
    logger.log_operation("maintenance.validate", "completed", {
        "store": store.name,
        "issues_found": report.issues_found,
        "dangling_references": len(dangling),
    })
    return report


def rebuild_index(store, force: bool = False) -> MaintenanceReport:
    """
    Rebuild a store's HNSW graph from its stored vectors.

    Args:
        store: Store exposing index / rebuild_index()
        force: Rebuild even when validation finds nothing to fix

    Raises:
        MaintenanceError: store has no index support at all
    """
    _require_index_support(store)

    report = MaintenanceReport(
        operation="index_rebuild",
        started_at=datetime.now(),
        metadata={"store": store.name, "force_rebuild": force}
    )

    if store.index is None:
        report.recommendations.append("Store uses brute-force search - nothing to rebuild")
        report.completed_at = datetime.now()
        return report

    validation_report = validate_index(store)
    dangling = validation_report.metadata.get("dangling_references", 0)
    needs_rebuild = force or validation_report.issues_found > 0 or dangling > 0

    report.metadata["validation_issues"] = validation_report.issues_found
    report.metadata["rebuild_needed"] = needs_rebuild

    if not needs_rebuild:
        report.recommendations.append("Index validation passed - rebuild not needed")
        report.completed_at = datetime.now()
        return report

    rebuilt = store.rebuild_index()
    report.actions_taken.append(f"Rebuilt index from {rebuilt} stored vectors")
    report.metadata["vectors_rebuilt"] = rebuilt

    post_validation = validate_index(store)
    if post_validation.issues_found == 0:
        report.issues_resolved = validation_report.issues_found
        report.metadata["rebuild_successful"] = True
        report.actions_taken.append("Index rebuild validated successfully")
    else:
        report.metadata["rebuild_successful"] = False
        report.errors.extend(post_validation.errors)
        report.recommendations.append("Index rebuild completed but validation failed")

    report.completed_at = datetime.now()
    return report
