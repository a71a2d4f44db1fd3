"""
FAISS-backed vector store.

FAISS does exact search over a flat index here; the store adds chunk
bookkeeping, metadata filtering and the same scoring as InMemoryVectorStore
so the two are interchangeable behind IVectorStore.
"""

from typing import Dict, List, Tuple

import numpy as np

from ..core.schema import DistanceMetric
from ..util.logging import logger
from .errors import DeleteFailedError, InsertFailedError, StoreUnavailableError
from .index import BaseVectorStore
from .types import Chunk, QueryResult, SearchOptions, VectorRecord

OVERFETCH_FACTOR = 2
FILTERED_OVERFETCH_FACTOR = 4
MIN_CANDIDATES = 50


class FaissVectorStore(BaseVectorStore):
    """FAISS-backed implementation of IVectorStore."""

    name = "FaissVectorStore"

    def __init__(self, dimensions: int, distance_metric: str = "cosine"):
        """
        Initialize FAISS vector store.

        Args:
            dimensions: Dimension of the vectors
            distance_metric: cosine, euclidean or dot_product

        Raises:
            StoreUnavailableError: faiss is not installed
        """
        super().__init__(dimensions, distance_metric)

        try:
            import faiss
        except ImportError as e:
            raise StoreUnavailableError(
                self.name, "faiss is not installed, install the faiss-cpu package", cause=e
            ) from e

        self.faiss = faiss
        if self.distance_metric == DistanceMetric.EUCLIDEAN:
            base_index = faiss.IndexFlatL2(self.dimensions)
        else:
            # Inner product; cosine vectors are normalized before adding
            base_index = faiss.IndexFlatIP(self.dimensions)
        self.index = faiss.IndexIDMap2(base_index)

        # record id -> (chunk, raw float32 vector, faiss id)
        self._records: Dict[str, Tuple[Chunk, np.ndarray, int]] = {}
        self._record_ids: Dict[int, str] = {}
        self._next_faiss_id = 0

    def _prepare(self, vector) -> np.ndarray:
        arr = np.asarray(vector, dtype=np.float32)
        if self.distance_metric == DistanceMetric.COSINE:
            norm = np.linalg.norm(arr)
            if norm > 0:
                arr = arr / norm
        return arr

    def _insert(self, records: List[VectorRecord]) -> List[str]:
        ids = []
        pending: Dict[str, Tuple[Chunk, np.ndarray]] = {}
        for record in records:
            record_id = record.id or self.generate_id()
            chunk = Chunk(
                id=record_id,
                content=record.content,
                metadata=dict(record.metadata or {}),
                document_id=record.document_id,
            )
            # Later duplicates in the same batch win
            pending.pop(record_id, None)
            with np.errstate(over="ignore"):
                vector = np.asarray(record.vector, dtype=np.float32)
            if not np.all(np.isfinite(vector)):
                raise InsertFailedError(self.name, f"vector for '{record_id}' overflows float32 storage")
            pending[record_id] = (chunk, vector)
            ids.append(record_id)

        new_ids = list(pending)
        faiss_ids = np.arange(self._next_faiss_id, self._next_faiss_id + len(new_ids), dtype=np.int64)
        matrix = np.stack([self._prepare(vector) for _, vector in pending.values()])
        replaced = np.array(
            [self._records[rid][2] for rid in new_ids if rid in self._records], dtype=np.int64
        )

        try:
            self.index.add_with_ids(matrix, faiss_ids)
            if replaced.size:
                self.index.remove_ids(replaced)
        except Exception as e:
            raise InsertFailedError(self.name, f"faiss add failed: {e}", cause=e) from e

        for faiss_id in replaced.tolist():
            self._record_ids.pop(faiss_id, None)
        for record_id, faiss_id in zip(new_ids, faiss_ids.tolist()):
            chunk, vector = pending[record_id]
            self._records[record_id] = (chunk, vector, faiss_id)
            self._record_ids[faiss_id] = record_id
        self._next_faiss_id += len(new_ids)

        logger.log_batch_operation("insert", self.name, len(ids), {
            "replaced": int(replaced.size),
            "total": self.index.ntotal,
        })
        return ids

    def _search(self, query: np.ndarray, options: SearchOptions) -> List[QueryResult]:
        if not self._records:
            return []

        factor = FILTERED_OVERFETCH_FACTOR if options.filter else OVERFETCH_FACTOR
        fetch = min(max(options.top_k * factor, MIN_CANDIDATES), self.index.ntotal)
        _, labels = self.index.search(self._prepare(query).reshape(1, -1), fetch)

        scored = []
        for faiss_id in labels[0].tolist():
            # -1 marks an empty slot
            record_id = self._record_ids.get(faiss_id)
            if record_id is None:
                continue

            chunk, vector, _ = self._records[record_id]
            if options.filter and not self.matches_filter(chunk.metadata, options.filter):
                continue

            score = self.compute_score(query, vector)
            if options.min_score is not None and score < options.min_score:
                continue
            scored.append((score, chunk, vector))

        scored.sort(key=lambda item: item[0], reverse=True)

        results = []
        for score, chunk, vector in scored[:options.top_k]:
            results.append(QueryResult(
                id=chunk.id,
                score=score,
                chunk=Chunk(
                    id=chunk.id,
                    content=chunk.content,
                    metadata=dict(chunk.metadata) if options.include_metadata else {},
                    document_id=chunk.document_id,
                ),
                vector=vector.tolist() if options.include_vectors else None,
            ))
        return results

    def _delete(self, ids: List[str]) -> None:
        present = [record_id for record_id in dict.fromkeys(ids) if record_id in self._records]
        if not present:
            return

        faiss_ids = np.array([self._records[record_id][2] for record_id in present], dtype=np.int64)
        try:
            self.index.remove_ids(faiss_ids)
        except Exception as e:
            raise DeleteFailedError(self.name, f"faiss remove failed: {e}", cause=e) from e

        for record_id in present:
            _, _, faiss_id = self._records.pop(record_id)
            self._record_ids.pop(faiss_id, None)

        logger.log_batch_operation("delete", self.name, len(present), {"requested": len(ids)})

    def count(self) -> int:
        return len(self._records)

    def clear(self) -> None:
        self.index.reset()
        self._records.clear()
        self._record_ids.clear()
        logger.log_operation("vector.clear", "success", {"store": self.name})
