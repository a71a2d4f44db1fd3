"""
Tests for memory accounting, budgets and insertion-order eviction.
"""

import pytest

from vecstore.core.memory import (
    BYTES_PER_FLOAT32,
    BYTES_PER_FLOAT64,
    MemoryBudget,
    bytes_per_vector,
    estimate_embedding_memory,
    format_bytes,
)
from vecstore.vector.errors import InsertFailedError
from vecstore.vector.memory_store import InMemoryVectorStore
from vecstore.vector.types import MemoryStats, VectorRecord

DIMS = 4
RECORD_BYTES = DIMS * BYTES_PER_FLOAT32


def record(record_id, value=1.0):
    return VectorRecord(id=record_id, vector=[value, 0.0, 0.0, 1.0], content=record_id)


class EvictionRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, ids, bytes_freed):
        self.calls.append((list(ids), bytes_freed))


@pytest.fixture
def recorder():
    return EvictionRecorder()


@pytest.fixture(params=["brute-force", "hnsw"])
def bounded_store(request, recorder):
    """Store with room for exactly three float32 records."""
    return InMemoryVectorStore(DIMS, index_type=request.param, max_memory_bytes=3 * RECORD_BYTES,
                               on_eviction=recorder)


class TestMemoryHelpers:
    """Test byte-size helpers."""

    def test_bytes_per_vector(self):
        assert bytes_per_vector(384) == 384 * BYTES_PER_FLOAT32
        assert bytes_per_vector(384, use_float32=False) == 384 * BYTES_PER_FLOAT64

    def test_estimate_embedding_memory(self):
        assert estimate_embedding_memory(1536, 1000) == 6_144_000
        assert estimate_embedding_memory(1536, 1000, use_float32=False) == 12_288_000

    @pytest.mark.parametrize("num_bytes, expected", [
        (0, "0 B"),
        (512, "512.00 B"),
        (1024, "1.00 KB"),
        (1536, "1.50 KB"),
        (5 * 1024 * 1024, "5.00 MB"),
    ])
    def test_format_bytes(self, num_bytes, expected):
        assert format_bytes(num_bytes) == expected


class TestMemoryBudget:
    """Test the standalone budget tracker."""

    def test_tracking(self):
        budget = MemoryBudget(100)
        budget.track(40)
        budget.release(10)

        assert budget.usage == 30
        assert not budget.would_exceed(70)
        assert budget.would_exceed(71)
        assert budget.check() == {"ok": True, "used": 30, "available": 70, "percentage": 30.0}

    def test_callbacks_fire_once_and_rearm(self):
        """Crossing a threshold fires once until usage drops back below it."""
        warnings, exceeded = [], []
        budget = MemoryBudget(100, warning_threshold=0.5,
                              on_warning=lambda used, limit: warnings.append(used),
                              on_exceeded=lambda used, limit: exceeded.append(used))

        budget.track(60)
        budget.track(10)
        assert warnings == [60]
        assert exceeded == []

        budget.track(40)
        assert exceeded == [110]
        assert budget.check()["ok"] is False

        budget.release(80)
        budget.track(40)
        assert warnings == [60, 70]

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            MemoryBudget(0)
        with pytest.raises(ValueError):
            MemoryBudget(100, warning_threshold=1.5)

        budget = MemoryBudget(100)
        with pytest.raises(ValueError):
            budget.track(-1)
        with pytest.raises(ValueError):
            budget.release(-1)

    def test_release_never_negative(self):
        budget = MemoryBudget(100)
        budget.track(10)
        budget.release(50)
        assert budget.usage == 0


class TestAccounting:
    """Test store memory accounting."""

    def test_float32_default(self):
        store = InMemoryVectorStore(DIMS)
        store.insert([record("a"), record("b")])

        assert store.is_using_float32()
        assert store.memory_usage() == 2 * DIMS * BYTES_PER_FLOAT32

    def test_float64(self):
        store = InMemoryVectorStore(DIMS, use_float32=False)
        store.insert([record("a"), record("b")])

        assert not store.is_using_float32()
        assert store.memory_usage() == 2 * DIMS * BYTES_PER_FLOAT64
        assert store.get_vector("a").dtype.itemsize == BYTES_PER_FLOAT64

    def test_memory_stats(self, bounded_store):
        bounded_store.insert([record("a"), record("b")])

        assert bounded_store.get_memory_stats() == MemoryStats(
            used_bytes=2 * RECORD_BYTES,
            max_bytes=3 * RECORD_BYTES,
            chunk_count=2,
            bytes_per_chunk=float(RECORD_BYTES),
            percent_used=pytest.approx(200 / 3),
            use_float32=True,
        )

    def test_memory_stats_without_budget(self):
        store = InMemoryVectorStore(DIMS)
        stats = store.get_memory_stats()

        assert stats.max_bytes == 0
        assert stats.percent_used == 0.0
        assert stats.bytes_per_chunk == 0.0
        assert stats.chunk_count == 0

    def test_zero_budget_means_unbounded(self):
        store = InMemoryVectorStore(DIMS, max_memory_bytes=0)
        store.insert([record(str(i)) for i in range(50)])
        assert store.count() == 50

    def test_negative_budget_rejected(self):
        with pytest.raises(ValueError):
            InMemoryVectorStore(DIMS, max_memory_bytes=-1)

    def test_update_does_not_double_count(self):
        store = InMemoryVectorStore(DIMS)
        store.insert([record("a")])
        store.insert([record("a", 2.0)])

        assert store.memory_usage() == RECORD_BYTES

    def test_delete_and_clear_release(self, bounded_store):
        bounded_store.insert([record("a"), record("b"), record("c")])

        bounded_store.delete(["a", "missing"])
        assert bounded_store.memory_usage() == 2 * RECORD_BYTES

        bounded_store.clear()
        assert bounded_store.memory_usage() == 0
        assert bounded_store.get_memory_stats().percent_used == 0.0


class TestEviction:
    """Test insertion-order eviction under a memory budget."""

    def test_evicts_single_oldest(self, bounded_store, recorder):
        """One record over capacity evicts exactly the oldest one."""
        bounded_store.insert([record("a"), record("b"), record("c")])
        assert recorder.calls == []

        bounded_store.insert([record("d")])

        assert bounded_store.count() == 3
        assert recorder.calls == [(["a"], RECORD_BYTES)]
        assert bounded_store.ids() == ["b", "c", "d"]
        assert bounded_store.memory_usage() == 3 * RECORD_BYTES
        assert "a" not in {r.id for r in bounded_store.search([1.0, 0.0, 0.0, 1.0], top_k=10)}

    def test_evicted_records_leave_the_index(self, recorder):
        store = InMemoryVectorStore(DIMS, index_type="hnsw", max_memory_bytes=2 * RECORD_BYTES,
                                    on_eviction=recorder)
        store.insert([record(str(i), float(i)) for i in range(5)])

        assert store.count() == 2
        assert set(store.index.ids()) == {"3", "4"}

    def test_eviction_within_one_batch(self, bounded_store, recorder):
        """Each record that needs room triggers its own eviction pass."""
        bounded_store.insert([record(name) for name in "abcde"])

        assert bounded_store.ids() == ["c", "d", "e"]
        assert recorder.calls == [(["a"], RECORD_BYTES), (["b"], RECORD_BYTES)]

    def test_update_counts_as_newest(self, bounded_store, recorder):
        """Re-inserting an id moves it to the back of the eviction order."""
        bounded_store.insert([record("a"), record("b"), record("c")])
        bounded_store.insert([record("a", 5.0)])
        assert recorder.calls == []

        bounded_store.insert([record("d")])

        assert recorder.calls == [(["b"], RECORD_BYTES)]
        assert bounded_store.ids() == ["c", "a", "d"]

    def test_reads_do_not_affect_order(self, bounded_store, recorder):
        """Eviction is by insertion order, not by access."""
        bounded_store.insert([record("a"), record("b"), record("c")])
        bounded_store.get("a")
        bounded_store.search([1.0, 0.0, 0.0, 1.0], top_k=3)

        bounded_store.insert([record("d")])
        assert recorder.calls[0][0] == ["a"]

    def test_record_larger_than_budget(self, recorder):
        """A vector that can never fit is rejected before anything changes."""
        store = InMemoryVectorStore(DIMS, max_memory_bytes=RECORD_BYTES - 1, on_eviction=recorder)

        with pytest.raises(InsertFailedError):
            store.insert([record("a")])

        assert store.count() == 0
        assert store.memory_usage() == 0
        assert recorder.calls == []

    def test_rejected_batch_evicts_nothing(self, bounded_store, recorder):
        """A bad record later in the batch stops the insert before any eviction."""
        bounded_store.insert([record("a"), record("b"), record("c")])

        with pytest.raises(InsertFailedError):
            bounded_store.insert([record("d"), VectorRecord(id="e", vector=["x", 0.0, 0.0, 1.0])])

        assert bounded_store.ids() == ["a", "b", "c"]
        assert recorder.calls == []

    def test_no_callback_is_fine(self):
        store = InMemoryVectorStore(DIMS, max_memory_bytes=RECORD_BYTES)
        store.insert([record("a"), record("b")])

        assert store.ids() == ["b"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
