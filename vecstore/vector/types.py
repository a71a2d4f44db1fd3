"""
Record, result and option types shared by the vector stores and the HNSW index.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from ..core.schema import DistanceMetric, IndexType

VectorLike = Union[Sequence[float], np.ndarray]
MetadataFilter = Mapping[str, Any]

__all__ = [
    "DistanceMetric",
    "IndexType",
    "VectorLike",
    "MetadataFilter",
    "VectorRecord",
    "Chunk",
    "QueryResult",
    "SearchOptions",
    "IndexSearchResult",
    "MemoryStats",
    "IndexStats",
]


@dataclass
class VectorRecord:
    """A chunk plus its embedding, the input format for insert/upsert."""

    vector: VectorLike
    """The embedding vector, length must equal the store dimensionality"""

    content: str = ""
    """Text content of the chunk"""

    metadata: Dict[str, Any] = field(default_factory=dict)
    """Free-form metadata, used by search filters"""

    id: Optional[str] = None
    """Record identifier, generated on insert when missing"""

    document_id: Optional[str] = None
    """Identifier of the parent document"""


@dataclass
class Chunk:
    """A stored chunk without its vector."""

    id: str
    content: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    document_id: Optional[str] = None


@dataclass
class QueryResult:
    """Represents a search result from a vector store."""

    id: str
    """Identifier for the matching record"""

    score: float
    """Similarity score, higher means more similar for every metric"""

    chunk: Chunk
    """The matched chunk (metadata emptied when include_metadata=False)"""

    vector: Optional[List[float]] = None
    """The stored vector, only set when include_vectors=True"""

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.chunk.metadata


@dataclass
class SearchOptions:
    """Search options with defaults applied, handed to store-specific search."""

    top_k: int = 10
    min_score: Optional[float] = None
    filter: Optional[MetadataFilter] = None
    include_metadata: bool = True
    include_vectors: bool = False


@dataclass(frozen=True)
class IndexSearchResult:
    """Result of an HNSW search: lower distance means closer."""

    id: str
    distance: float


@dataclass(frozen=True)
class MemoryStats:
    """Memory accounting snapshot of an in-memory store."""

    used_bytes: int
    max_bytes: int
    chunk_count: int
    bytes_per_chunk: float
    percent_used: float
    use_float32: bool


@dataclass(frozen=True)
class IndexStats:
    """Structural snapshot of an HNSW graph."""

    node_count: int
    max_layer: int
    entry_point: Optional[str]
    nodes_per_level: Dict[int, int]
    mean_layer0_degree: float
