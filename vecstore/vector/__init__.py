"""
Vector stores, the HNSW index and the types they share.
"""

# Package initialization for vector module
from .errors import (
    ChunkNotFoundError,
    DeleteFailedError,
    DimensionMismatchError,
    InsertFailedError,
    InvalidFilterError,
    InvalidQueryError,
    StoreUnavailableError,
    VectorStoreError,
)
from .faiss_store import FaissVectorStore
from .hnsw import HNSWIndex
from .index import BaseVectorStore, IVectorStore
from .memory_store import InMemoryVectorStore
from .types import (
    Chunk,
    DistanceMetric,
    IndexSearchResult,
    IndexStats,
    IndexType,
    MemoryStats,
    QueryResult,
    SearchOptions,
    VectorRecord,
)

__all__ = [
    'IVectorStore',
    'BaseVectorStore',
    'InMemoryVectorStore',
    'FaissVectorStore',
    'HNSWIndex',
    'VectorRecord',
    'Chunk',
    'QueryResult',
    'SearchOptions',
    'IndexSearchResult',
    'IndexStats',
    'MemoryStats',
    'DistanceMetric',
    'IndexType',
    'VectorStoreError',
    'DimensionMismatchError',
    'ChunkNotFoundError',
    'StoreUnavailableError',
    'InvalidQueryError',
    'InvalidFilterError',
    'InsertFailedError',
    'DeleteFailedError',
]
