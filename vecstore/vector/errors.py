"""
Vector store error vocabulary shared by every store implementation and the HNSW index.
"""

from typing import Any, Dict, List, Optional, Tuple, Union


class VectorStoreError(Exception):
    """Base error for vector store operations."""

    code = "STORE_ERROR"

    def __init__(self, message: str, store_name: str = "VectorStore", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.store_name = store_name
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_details(self) -> Dict[str, Any]:
        """Get error details as a structured dict."""
        return {
            "code": self.code,
            "store_name": self.store_name,
            "cause": self.cause,
        }


class DimensionMismatchError(VectorStoreError, ValueError):
    """Vector length differs from the configured dimensionality."""

    code = "DIMENSION_MISMATCH"

    def __init__(self, store_name: str, expected: int, received: Union[int, Tuple[int, ...]]):
        super().__init__(
            f"Dimension mismatch: store expects {expected} dimensions, got {received}",
            store_name,
        )
        self.expected = expected
        self.received = received


class ChunkNotFoundError(VectorStoreError, KeyError):
    code = "CHUNK_NOT_FOUND"

    def __init__(self, store_name: str, ids: List[str]):
        id_list = ", ".join(ids) if len(ids) <= 3 else f"{', '.join(ids[:3])}..."
        super().__init__(f"Chunk(s) not found: {id_list}", store_name)
        self.ids = list(ids)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.message


class StoreUnavailableError(VectorStoreError):
    code = "STORE_UNAVAILABLE"

    def __init__(self, store_name: str, reason: str, cause: Optional[BaseException] = None):
        super().__init__(f"Store unavailable: {reason}", store_name, cause)


class InvalidQueryError(VectorStoreError, ValueError):
    code = "INVALID_QUERY"

    def __init__(self, store_name: str, reason: str):
        super().__init__(f"Invalid query: {reason}", store_name)


class InvalidFilterError(VectorStoreError, ValueError):
    code = "INVALID_FILTER"

    def __init__(self, store_name: str, reason: str):
        super().__init__(f"Invalid filter: {reason}", store_name)


class InsertFailedError(VectorStoreError):
    code = "INSERT_FAILED"

    def __init__(self, store_name: str, reason: str, cause: Optional[BaseException] = None):
        super().__init__(f"Insert failed: {reason}", store_name, cause)


class DeleteFailedError(VectorStoreError):
    code = "DELETE_FAILED"

    def __init__(self, store_name: str, reason: str, cause: Optional[BaseException] = None):
        super().__init__(f"Delete failed: {reason}", store_name, cause)
