"""
vecstore - in-process similarity search for text-chunk embeddings.

Exact (brute-force) or approximate (HNSW) search over in-memory vectors,
with metadata filtering and an optional memory budget.
"""

from .core.config import VERSION
from .core.schema import HNSWConfig, InMemoryVectorStoreConfig, VectorStoreConfig
from .vector import (
    BaseVectorStore,
    Chunk,
    ChunkNotFoundError,
    DeleteFailedError,
    DimensionMismatchError,
    DistanceMetric,
    FaissVectorStore,
    HNSWIndex,
    IndexType,
    InMemoryVectorStore,
    InsertFailedError,
    InvalidFilterError,
    InvalidQueryError,
    IVectorStore,
    MemoryStats,
    QueryResult,
    StoreUnavailableError,
    VectorRecord,
    VectorStoreError,
)

__version__ = VERSION

__all__ = [
    'VERSION',
    'HNSWConfig',
    'VectorStoreConfig',
    'InMemoryVectorStoreConfig',
    'IVectorStore',
    'BaseVectorStore',
    'InMemoryVectorStore',
    'FaissVectorStore',
    'HNSWIndex',
    'VectorRecord',
    'Chunk',
    'QueryResult',
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
