"""
Vector store contract and the mechanics shared by every implementation:
input validation, metadata filtering and metric-based scoring.
"""

import random
import string
import time
from abc import ABC, abstractmethod
from numbers import Real
from typing import Any, List, Mapping, Optional

import numpy as np

from ..core.schema import DistanceMetric, VectorStoreConfig
from .distance import cosine_similarity, dot_product, euclidean_distance
from .errors import DimensionMismatchError, InsertFailedError, InvalidFilterError, InvalidQueryError
from .types import MetadataFilter, QueryResult, SearchOptions, VectorLike, VectorRecord

FILTER_OPERATORS = ("$in", "$gt", "$gte", "$lt", "$lte", "$ne")
_NUMERIC_OPERATORS = ("$gt", "$gte", "$lt", "$lte")
_ID_ALPHABET = string.ascii_lowercase + string.digits


class IVectorStore(ABC):
    """Abstract interface for vector storage operations."""

    @abstractmethod
    def insert(self, records: List[VectorRecord]) -> List[str]:
        """Insert records, returning their ids. Existing ids are overwritten."""
        pass

    @abstractmethod
    def upsert(self, records: List[VectorRecord]) -> List[str]:
        """Insert or update records, returning their ids."""
        pass

    @abstractmethod
    def search(self, query_vector: VectorLike, top_k: int = 10, min_score: Optional[float] = None,
               filter: Optional[MetadataFilter] = None, include_metadata: bool = True,
               include_vectors: bool = False) -> List[QueryResult]:
        """Search for similar vectors and return results ranked by score, highest first."""
        pass

    @abstractmethod
    def delete(self, ids: List[str]) -> None:
        """Delete records by id. Missing ids are ignored."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _is_operator(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and len(condition) == 1
        and next(iter(condition)) in FILTER_OPERATORS
    )


class BaseVectorStore(IVectorStore):
    """
    Shared mechanics for vector stores.

    Public operations validate their input and then delegate to the
    store-specific hooks. Subclasses implement:
      - _insert(records)  store validated records, return ids
      - _search(query, options)  ranked results for a validated query
      - _delete(ids)  remove a non-empty list of ids
      - count() / clear()
    and may override _upsert() when they have a native upsert.
    """

    name = "BaseVectorStore"

    def __init__(self, dimensions: int, distance_metric: str = "cosine"):
        config = VectorStoreConfig(dimensions=dimensions, distance_metric=distance_metric)
        self.dimensions = config.dimensions
        self.distance_metric = config.distance_metric

    def insert(self, records: List[VectorRecord]) -> List[str]:
        if not records:
            return []

        self.validate_records(records)
        return self._insert(records)

    def upsert(self, records: List[VectorRecord]) -> List[str]:
        if not records:
            return []

        self.validate_records(records)
        return self._upsert(records)

    def search(self, query_vector: VectorLike, top_k: int = 10, min_score: Optional[float] = None,
               filter: Optional[MetadataFilter] = None, include_metadata: bool = True,
               include_vectors: bool = False) -> List[QueryResult]:
        query = self.validate_query(query_vector)
        if top_k < 1:
            raise InvalidQueryError(self.name, f"top_k must be >= 1, got {top_k}")
        if filter:
            self.validate_filter(filter)

        options = SearchOptions(
            top_k=top_k,
            min_score=min_score,
            filter=filter or None,
            include_metadata=include_metadata,
            include_vectors=include_vectors,
        )
        return self._search(query, options)

    def delete(self, ids: List[str]) -> None:
        if not ids:
            return

        self._delete(list(ids))

    # Store-specific hooks

    @abstractmethod
    def _insert(self, records: List[VectorRecord]) -> List[str]:
        pass

    def _upsert(self, records: List[VectorRecord]) -> List[str]:
        # Overwrite semantics by default
        return self._insert(records)

    @abstractmethod
    def _search(self, query: np.ndarray, options: SearchOptions) -> List[QueryResult]:
        pass

    @abstractmethod
    def _delete(self, ids: List[str]) -> None:
        pass

    # Helpers

    def validate_records(self, records: List[VectorRecord]) -> None:
        """
        Reject the whole batch if any vector is unusable.

        Runs before the store is touched, so a bad record anywhere in the
        batch leaves every existing record in place.
        """
        for record in records:
            if record.vector is None:
                raise DimensionMismatchError(self.name, self.dimensions, 0)

            try:
                arr = np.asarray(record.vector, dtype=np.float64)
            except (TypeError, ValueError) as e:
                raise InsertFailedError(self.name, f"vector for '{record.id}' is not numeric: {e}", e) from e

            if arr.ndim != 1:
                raise DimensionMismatchError(self.name, self.dimensions, arr.shape)
            if arr.shape[0] != self.dimensions:
                raise DimensionMismatchError(self.name, self.dimensions, arr.shape[0])
            if not np.all(np.isfinite(arr)):
                raise InsertFailedError(self.name, f"vector for '{record.id}' contains NaN or infinite values")

    def validate_query(self, query_vector: VectorLike) -> np.ndarray:
        """Return the query as a float64 array, or raise if it is unusable."""
        if query_vector is None:
            raise InvalidQueryError(self.name, "query vector is missing")

        try:
            query = np.asarray(query_vector, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidQueryError(self.name, f"query vector is not numeric: {e}") from e

        if query.size == 0:
            raise InvalidQueryError(self.name, "query vector is empty")
        if query.ndim != 1:
            raise InvalidQueryError(self.name, f"query vector must be one-dimensional, got shape {query.shape}")
        if query.shape[0] != self.dimensions:
            raise DimensionMismatchError(self.name, self.dimensions, query.shape[0])
        if not np.all(np.isfinite(query)):
            raise InvalidQueryError(self.name, "query vector contains NaN or infinite values")
        return query

    def validate_filter(self, filter: MetadataFilter) -> None:
        """Check operator syntax up front so bad filters fail before any scanning."""
        for key, condition in filter.items():
            if not isinstance(condition, Mapping):
                continue

            dollar_keys = [k for k in condition if isinstance(k, str) and k.startswith("$")]
            if not dollar_keys:
                # Plain nested value, compared by equality
                continue
            if len(condition) != 1:
                raise InvalidFilterError(self.name, f"'{key}' must hold exactly one operator, got {list(condition)}")

            operator, operand = next(iter(condition.items()))
            if operator not in FILTER_OPERATORS:
                raise InvalidFilterError(self.name, f"unknown operator '{operator}' on '{key}'")
            if operator == "$in" and not isinstance(operand, (list, tuple, set, frozenset)):
                raise InvalidFilterError(self.name, f"$in on '{key}' requires a list")
            if operator in _NUMERIC_OPERATORS and not _is_number(operand):
                raise InvalidFilterError(self.name, f"{operator} on '{key}' requires a number")

    def compute_score(self, a: VectorLike, b: VectorLike) -> float:
        """Similarity between two vectors. Higher is more similar for every metric."""
        if self.distance_metric == DistanceMetric.DOT_PRODUCT:
            return dot_product(a, b)
        if self.distance_metric == DistanceMetric.EUCLIDEAN:
            # Maps distance into (0, 1]
            return 1 / (1 + euclidean_distance(a, b))
        return cosine_similarity(a, b)

    def matches_filter(self, metadata: Mapping[str, Any], filter: MetadataFilter) -> bool:
        """True when metadata satisfies every filter condition."""
        for key, condition in filter.items():
            value = metadata.get(key)

            if _is_operator(condition):
                if not self._evaluate_operator(value, condition):
                    return False
            elif value != condition:
                return False

        return True

    @staticmethod
    def _evaluate_operator(value: Any, operator: Mapping[str, Any]) -> bool:
        op, operand = next(iter(operator.items()))

        if op == "$in":
            # Equality scan, list and dict metadata values are unhashable
            return any(value == item for item in operand)
        if op == "$ne":
            return value != operand

        if not _is_number(value):
            return False

        if op == "$gt":
            return value > operand
        if op == "$gte":
            return value >= operand
        if op == "$lt":
            return value < operand
        if op == "$lte":
            return value <= operand
        return False

    def generate_id(self) -> str:
        """Generate a unique id for a record inserted without one."""
        suffix = "".join(random.choices(_ID_ALPHABET, k=9))
        return f"chunk_{int(time.time() * 1000)}_{suffix}"
