"""
Tests for index validation and rebuild maintenance routines.
"""

import random
from datetime import datetime

import numpy as np
import pytest

from vecstore.core.maintenance import MaintenanceError, MaintenanceReport, rebuild_index, validate_index
from vecstore.vector.memory_store import InMemoryVectorStore
from vecstore.vector.types import VectorRecord


@pytest.fixture
def hnsw_store():
    """HNSW store with 200 random vectors and a seeded graph."""
    rng = np.random.default_rng(21)
    store = InMemoryVectorStore(8, index_type="hnsw", hnsw_config={"m": 4}, rng=random.Random(21))
    store.insert([VectorRecord(id=str(i), vector=rng.standard_normal(8)) for i in range(200)])
    return store


class TestMaintenanceReport:
    """Test maintenance report functionality."""

    def test_report_defaults(self):
        report = MaintenanceReport(operation="test_op", started_at=datetime.now())

        assert report.actions_taken == []
        assert report.recommendations == []
        assert report.errors == []
        assert report.metadata == {}
        assert report.healthy

    def test_report_to_dict(self):
        """Test report serialization."""
        report = MaintenanceReport(
            operation="test_op",
            started_at=datetime(2025, 1, 1, 12, 0, 0),
            completed_at=datetime(2025, 1, 1, 12, 1, 0),
            issues_found=1,
            metadata={"key": "value"}
        )

        data = report.to_dict()
        assert data["operation"] == "test_op"
        assert data["started_at"] == "2025-01-01T12:00:00"
        assert data["completed_at"] == "2025-01-01T12:01:00"
        assert data["issues_found"] == 1
        assert data["metadata"] == {"key": "value"}
        assert not report.healthy

    def test_incomplete_report_has_no_completed_at(self):
        report = MaintenanceReport(operation="op", started_at=datetime.now())
        assert "completed_at" not in report.to_dict()


class TestValidateIndex:
    """Test index consistency checks."""

    def test_unsupported_store(self):
        class PlainStore:
            name = "PlainStore"

        with pytest.raises(MaintenanceError):
            validate_index(PlainStore())

    def test_brute_force_store(self):
        store = InMemoryVectorStore(3)
        report = validate_index(store)

        assert report.issues_found == 0
        assert report.metadata["index_type"] == "brute-force"
        assert report.completed_at is not None

    def test_healthy_index(self, hnsw_store):
        hnsw_store.delete(["5", "6"])
        report = validate_index(hnsw_store)

        assert report.issues_found == 0
        assert report.errors == []
        assert report.metadata["stored_count"] == 198
        assert report.metadata["indexed_count"] == 198
        assert report.metadata["index_health"] in ("good", "degraded")

    def test_missing_from_index(self, hnsw_store):
        hnsw_store.index.delete("7")
        report = validate_index(hnsw_store)

        assert report.issues_found == 1
        assert "missing from index" in report.errors[0]
        assert report.metadata["index_health"] == "critical"

    def test_orphaned_index_node(self, hnsw_store):
        hnsw_store.index.insert("ghost", np.zeros(8))
        report = validate_index(hnsw_store)

        assert report.issues_found == 1
        assert "without a stored record" in report.errors[0]

    def test_dangling_links(self, hnsw_store):
        """Links to deleted nodes are reported as a recommendation, not an error."""
        hnsw_store.index._nodes["0"].neighbors[0]["gone"] = 1.0
        report = validate_index(hnsw_store)

        assert report.issues_found == 0
        assert report.metadata["dangling_references"] == 1
        assert report.metadata["dangling_sample"] == [["0", 0, "gone"]]
        assert report.metadata["index_health"] == "degraded"
        assert report.recommendations

    def test_entry_point_not_on_top_layer(self, hnsw_store):
        index = hnsw_store.index
        assert index.max_layer > 0
        low_node = next(node_id for node_id in index.ids() if index.get_level(node_id) == 0)
        index._entry_point = low_node

        report = validate_index(hnsw_store)

        assert report.issues_found == 1
        assert "top layer" in report.errors[0]


class TestRebuildIndex:
    """Test graph rebuilds."""

    def test_not_needed(self, hnsw_store):
        report = rebuild_index(hnsw_store)

        assert report.metadata["rebuild_needed"] is False
        assert "vectors_rebuilt" not in report.metadata
        assert report.recommendations == ["Index validation passed - rebuild not needed"]

    def test_forced(self, hnsw_store):
        old_index = hnsw_store.index
        report = rebuild_index(hnsw_store, force=True)

        assert report.metadata["vectors_rebuilt"] == 200
        assert report.metadata["rebuild_successful"] is True
        assert hnsw_store.index is not old_index

    def test_repairs_inconsistency(self, hnsw_store):
        hnsw_store.index.delete("7")
        hnsw_store.index.insert("ghost", np.zeros(8))

        report = rebuild_index(hnsw_store)

        assert report.metadata["validation_issues"] == 2
        assert report.issues_resolved == 2
        assert report.metadata["rebuild_successful"] is True
        assert hnsw_store.index.has("7")
        assert not hnsw_store.index.has("ghost")
        assert validate_index(hnsw_store).healthy

    def test_dangling_links_trigger_rebuild(self, hnsw_store):
        hnsw_store.index._nodes["0"].neighbors[0]["gone"] = 1.0

        report = rebuild_index(hnsw_store)

        assert report.metadata["rebuild_needed"] is True
        assert hnsw_store.index.dangling_references() == []

    def test_brute_force_store(self):
        report = rebuild_index(InMemoryVectorStore(3))

        assert report.actions_taken == []
        assert report.recommendations == ["Store uses brute-force search - nothing to rebuild"]

    def test_search_still_works_after_rebuild(self, hnsw_store):
        query = hnsw_store.get_vector("42")
        rebuild_index(hnsw_store, force=True)

        assert hnsw_store.search(query, top_k=1)[0].id == "42"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
