"""
In-memory vector store with exact (brute-force) or HNSW search and an
optional memory budget enforced by insertion-order eviction.
"""

import logging
import random
import time
from typing import Callable, Dict, List, Optional, Union

import numpy as np

from ..core.memory import MemoryBudget, bytes_per_vector
from ..core.schema import HNSWConfig, InMemoryVectorStoreConfig, IndexType
from ..util.logging import logger
from .errors import ChunkNotFoundError, InsertFailedError, InvalidQueryError
from .hnsw import HNSWIndex
from .index import BaseVectorStore
from .types import Chunk, MemoryStats, QueryResult, SearchOptions, VectorRecord

# Called with (evicted_ids, bytes_freed) after each eviction pass
EvictionCallback = Callable[[List[str], int], None]

# HNSW candidate over-fetch: top_k * factor, never fewer than the floor
OVERFETCH_FACTOR = 2
FILTERED_OVERFETCH_FACTOR = 4
MIN_CANDIDATES = 50


class _StoredRecord:
    __slots__ = ("chunk", "vector", "size")

    def __init__(self, chunk: Chunk, vector: np.ndarray, size: int):
        self.chunk = chunk
        self.vector = vector
        self.size = size


class InMemoryVectorStore(BaseVectorStore):
    """
    Vector store keeping every record in process memory.

    In "brute-force" mode every search scores all stored vectors, so results
    are exact. In "hnsw" mode an HNSWIndex proposes candidates which are then
    re-scored with the configured metric, filtered and ranked.

    When max_memory_bytes is set the oldest records (by insertion order; an
    update counts as a fresh insertion) are evicted until a new record fits.
    """

    name = "InMemoryVectorStore"

    def __init__(self, dimensions: int, distance_metric: str = "cosine",
                 index_type: Union[str, IndexType] = IndexType.BRUTE_FORCE,
                 hnsw_config: Optional[Union[HNSWConfig, Dict[str, int]]] = None,
                 use_float32: bool = True, max_memory_bytes: Optional[int] = None,
                 memory_warning_threshold: float = 0.8,
                 on_eviction: Optional[EvictionCallback] = None,
                 rng: Optional[random.Random] = None):
        settings = dict(
            dimensions=dimensions,
            distance_metric=distance_metric,
            index_type=index_type,
            use_float32=use_float32,
            max_memory_bytes=max_memory_bytes,
            memory_warning_threshold=memory_warning_threshold,
        )
        if hnsw_config is not None:
            settings["hnsw_config"] = hnsw_config
        self.config = InMemoryVectorStoreConfig(**settings)

        super().__init__(self.config.dimensions, self.config.distance_metric)

        self.on_eviction = on_eviction
        self._rng = rng
        self._dtype = np.float32 if self.config.use_float32 else np.float64
        self._record_bytes = bytes_per_vector(self.dimensions, self.config.use_float32)

        # Insertion-ordered: the first key is always the eviction candidate
        self._records: Dict[str, _StoredRecord] = {}
        self._used_bytes = 0

        self._budget: Optional[MemoryBudget] = None
        if self.config.max_memory_bytes:
            self._budget = MemoryBudget(
                self.config.max_memory_bytes,
                warning_threshold=self.config.memory_warning_threshold,
                on_warning=logger.log_memory_warning,
            )

        self._index: Optional[HNSWIndex] = None
        if self.config.index_type == IndexType.HNSW:
            self._index = HNSWIndex.from_config(self.dimensions, self.config.hnsw_config, rng=rng)

        logger.log_operation("store.init", "success", {
            "store": self.name,
            "dimensions": self.dimensions,
            "distance_metric": self.distance_metric.value,
            "index_type": self.config.index_type.value,
            "max_memory_bytes": self.config.max_memory_bytes or 0,
        }, logging.DEBUG)

    @classmethod
    def from_config(cls, config: InMemoryVectorStoreConfig,
                    on_eviction: Optional[EvictionCallback] = None,
                    rng: Optional[random.Random] = None) -> "InMemoryVectorStore":
        return cls(
            dimensions=config.dimensions,
            distance_metric=config.distance_metric,
            index_type=config.index_type,
            hnsw_config=config.hnsw_config,
            use_float32=config.use_float32,
            max_memory_bytes=config.max_memory_bytes,
            memory_warning_threshold=config.memory_warning_threshold,
            on_eviction=on_eviction,
            rng=rng,
        )

    # Store hooks

    def _insert(self, records: List[VectorRecord]) -> List[str]:
        max_bytes = self.config.max_memory_bytes
        if max_bytes and self._record_bytes > max_bytes:
            raise InsertFailedError(
                self.name,
                f"a single vector needs {self._record_bytes} bytes, memory budget is {max_bytes} bytes",
            )

        # Convert the whole batch before mutating anything
        with np.errstate(over="ignore"):
            vectors = [np.array(record.vector, dtype=self._dtype) for record in records]
        for record, vector in zip(records, vectors):
            if not np.all(np.isfinite(vector)):
                raise InsertFailedError(
                    self.name, f"vector for '{record.id}' overflows {np.dtype(self._dtype).name} storage"
                )

        ids = []
        evicted_total = 0
        for record, vector in zip(records, vectors):
            record_id = record.id or self.generate_id()

            # Overwrite: drop the old copy so the update counts as the newest insertion
            previous = self._records.pop(record_id, None)
            if previous is not None:
                self._release(previous.size)
                logger.log_vector_operation("update", record_id, {"store": self.name},
                                            level=logging.DEBUG)

            evicted_total += self._make_room(self._record_bytes)

            chunk = Chunk(
                id=record_id,
                content=record.content,
                metadata=dict(record.metadata or {}),
                document_id=record.document_id,
            )
            self._records[record_id] = _StoredRecord(chunk, vector, self._record_bytes)
            self._track(self._record_bytes)

            if self._index is not None:
                # Same precision as rebuild_index, which only has the stored copy
                self._index.insert(record_id, vector)

            ids.append(record_id)

        logger.log_batch_operation("insert", self.name, len(ids), {
            "evicted": evicted_total,
            "total": len(self._records),
        })
        return ids

    def _search(self, query: np.ndarray, options: SearchOptions) -> List[QueryResult]:
        if not self._records:
            return []

        if self._index is not None:
            factor = FILTERED_OVERFETCH_FACTOR if options.filter else OVERFETCH_FACTOR
            fetch = max(options.top_k * factor, MIN_CANDIDATES)
            candidate_ids = [hit.id for hit in self._index.search(query, fetch)]
        else:
            candidate_ids = list(self._records)

        scored = []
        for record_id in candidate_ids:
            stored = self._records.get(record_id)
            if stored is None:
                continue
            if options.filter and not self.matches_filter(stored.chunk.metadata, options.filter):
                continue

            score = self.compute_score(query, stored.vector)
            if options.min_score is not None and score < options.min_score:
                continue
            scored.append((score, stored))

        scored.sort(key=lambda item: item[0], reverse=True)
        results = [self._to_result(score, stored, options) for score, stored in scored[:options.top_k]]

        logger.log_operation("vector.search", "success", {
            "store": self.name,
            "candidates": len(candidate_ids),
            "results": len(results),
        }, logging.DEBUG)
        return results

    def _delete(self, ids: List[str]) -> None:
        removed = 0
        for record_id in ids:
            if self._remove(record_id) is not None:
                removed += 1

        logger.log_batch_operation("delete", self.name, removed, {"requested": len(ids)})

    def count(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self._records.clear()
        self._used_bytes = 0
        if self._budget is not None:
            self._budget.reset()
        if self._index is not None:
            self._index.clear()

        logger.log_operation("vector.clear", "success", {"store": self.name})

    # Memory accounting

    def memory_usage(self) -> int:
        """Bytes used by stored vectors."""
        return self._used_bytes

    def get_memory_stats(self) -> MemoryStats:
        count = len(self._records)
        max_bytes = self.config.max_memory_bytes or 0
        return MemoryStats(
            used_bytes=self._used_bytes,
            max_bytes=max_bytes,
            chunk_count=count,
            bytes_per_chunk=self._used_bytes / count if count else 0.0,
            percent_used=self._used_bytes * 100 / max_bytes if max_bytes else 0.0,
            use_float32=self.config.use_float32,
        )

    def is_using_float32(self) -> bool:
        return self.config.use_float32

    # Index management

    def get_index_type(self) -> IndexType:
        return self.config.index_type

    @property
    def index(self) -> Optional[HNSWIndex]:
        """The HNSW index, or None in brute-force mode."""
        return self._index

    def set_ef_search(self, ef_search: int) -> None:
        if self._index is None:
            raise InvalidQueryError(self.name, "ef_search only applies to the hnsw index type")
        self._index.set_ef_search(ef_search)

    def rebuild_index(self) -> int:
        """
        Replace the HNSW graph with one freshly built from every stored vector.

        Deletes leave the graph less well connected over time; a rebuild
        restores full connectivity. Returns the number of vectors indexed,
        0 in brute-force mode.
        """
        if self._index is None:
            return 0

        start_time = time.time()
        current = self._index.get_config()
        config = HNSWConfig(m=current.m, ef_construction=current.ef_construction,
                            ef_search=current.ef_search)

        index = HNSWIndex.from_config(self.dimensions, config, rng=self._rng)
        for record_id, stored in self._records.items():
            index.insert(record_id, stored.vector)
        self._index = index

        logger.log_index_rebuild(self.name, len(self._records), start_time, time.time())
        return len(self._records)

    def get(self, record_id: str) -> Chunk:
        """Return the stored chunk for an id."""
        stored = self._records.get(record_id)
        if stored is None:
            raise ChunkNotFoundError(self.name, [record_id])
        return stored.chunk

    def get_vector(self, record_id: str) -> np.ndarray:
        """Return a copy of the stored vector for an id."""
        stored = self._records.get(record_id)
        if stored is None:
            raise ChunkNotFoundError(self.name, [record_id])
        return stored.vector.copy()

    def ids(self) -> List[str]:
        """Stored ids, oldest insertion first."""
        return list(self._records)

    # Internal helpers

    def _to_result(self, score: float, stored: _StoredRecord, options: SearchOptions) -> QueryResult:
        chunk = stored.chunk
        result_chunk = Chunk(
            id=chunk.id,
            content=chunk.content,
            metadata=dict(chunk.metadata) if options.include_metadata else {},
            document_id=chunk.document_id,
        )
        return QueryResult(
            id=chunk.id,
            score=score,
            chunk=result_chunk,
            vector=stored.vector.tolist() if options.include_vectors else None,
        )

    def _make_room(self, needed: int) -> int:
        """Evict oldest records until `needed` more bytes fit the budget."""
        max_bytes = self.config.max_memory_bytes
        if not max_bytes:
            return 0

        evicted = []
        bytes_freed = 0
        while self._records and self._used_bytes + needed > max_bytes:
            oldest_id = next(iter(self._records))
            stored = self._remove(oldest_id)
            evicted.append(oldest_id)
            bytes_freed += stored.size

        if evicted:
            logger.log_eviction(self.name, evicted, bytes_freed)
            if self.on_eviction:
                self.on_eviction(evicted, bytes_freed)
        return len(evicted)

    def _remove(self, record_id: str) -> Optional[_StoredRecord]:
        stored = self._records.pop(record_id, None)
        if stored is None:
            return None

        self._release(stored.size)
        if self._index is not None:
            self._index.delete(record_id)
        return stored

    def _track(self, num_bytes: int) -> None:
        self._used_bytes += num_bytes
        if self._budget is not None:
            self._budget.track(num_bytes)

    def _release(self, num_bytes: int) -> None:
        self._used_bytes = max(0, self._used_bytes - num_bytes)
        if self._budget is not None:
            self._budget.release(num_bytes)
