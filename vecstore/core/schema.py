"""
Configuration models for the HNSW index and the vector stores.
Validated with pydantic so bad parameters fail at construction time.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class DistanceMetric(str, Enum):
    """Similarity metric used for final scoring."""

    COSINE = "cosine"
    EUCLIDEAN = "euclidean"
    DOT_PRODUCT = "dot_product"


class IndexType(str, Enum):
    """Search strategy of the in-memory store."""

    BRUTE_FORCE = "brute-force"
    HNSW = "hnsw"


_METRIC_ALIASES = {
    "dotProduct": "dot_product",
    "dot": "dot_product",
    "ip": "dot_product",
    "l2": "euclidean",
}


class HNSWConfig(BaseModel):
    """
    Tunable parameters of the HNSW graph.

    m: max bidirectional connections per node per layer (layer 0 allows 2*m)
    ef_construction: candidate list size while building
    ef_search: candidate list size while querying, adjustable at runtime
    """
    model_config = ConfigDict(frozen=True)

    m: int = 16
    ef_construction: int = 200
    ef_search: int = 100

    @field_validator('m')
    @classmethod
    def m_must_allow_layering(cls, v):
        # ln(1) == 0 would make the level factor infinite
        if v < 2:
            raise ValueError('m must be >= 2')
        return v

    @field_validator('ef_construction', 'ef_search')
    @classmethod
    def ef_must_be_positive(cls, v):
        if v < 1:
            raise ValueError('ef values must be >= 1')
        return v


class VectorStoreConfig(BaseModel):
    dimensions: int
    distance_metric: DistanceMetric = DistanceMetric.COSINE

    @field_validator('dimensions')
    @classmethod
    def dimensions_must_be_positive(cls, v):
        if v <= 0:
            raise ValueError(f'dimensions must be positive, got {v}')
        return v

    @field_validator('distance_metric', mode='before')
    @classmethod
    def metric_aliases(cls, v):
        if isinstance(v, DistanceMetric):
            return v
        if isinstance(v, str):
            v = _METRIC_ALIASES.get(v, v)
            valid_metrics = [m.value for m in DistanceMetric]
            if v not in valid_metrics:
                raise ValueError(f'distance_metric must be one of: {valid_metrics}')
        return v


class InMemoryVectorStoreConfig(VectorStoreConfig):
    """Construction-time configuration of InMemoryVectorStore."""

    index_type: IndexType = IndexType.BRUTE_FORCE
    hnsw_config: HNSWConfig = HNSWConfig()
    use_float32: bool = True
    max_memory_bytes: Optional[int] = None
    memory_warning_threshold: float = 0.8

    @field_validator('index_type', mode='before')
    @classmethod
    def index_type_must_be_valid(cls, v):
        if isinstance(v, IndexType):
            return v
        if isinstance(v, str):
            valid_types = [t.value for t in IndexType]
            if v not in valid_types:
                raise ValueError(f'index_type must be one of: {valid_types}')
        return v

    @field_validator('max_memory_bytes')
    @classmethod
    def max_memory_must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('max_memory_bytes cannot be negative')
        # 0 means unbounded, same as None
        return v or None

    @field_validator('memory_warning_threshold')
    @classmethod
    def threshold_must_be_fraction(cls, v):
        if not 0 <= v <= 1:
            raise ValueError('memory_warning_threshold must be between 0 and 1')
        return v
