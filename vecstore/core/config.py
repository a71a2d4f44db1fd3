"""
Environment-driven configuration for vecstore.

Values are read from the environment each time a getter is called so tests
and long-running processes can change them without reimporting. Call
load_env_file() to pull in a .env file first.
"""

import logging
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from ..util.logging import logger
from .schema import HNSWConfig, InMemoryVectorStoreConfig

# Defaults
DEFAULT_PROVIDER = "memory"  # memory|faiss
DEFAULT_DIMENSIONS = 384
DEFAULT_METRIC = "cosine"  # cosine|euclidean|dot_product
DEFAULT_INDEX_TYPE = "brute-force"  # brute-force|hnsw
DEFAULT_HNSW_M = 16
DEFAULT_HNSW_EF_CONSTRUCTION = 200
DEFAULT_HNSW_EF_SEARCH = 100
DEFAULT_MEMORY_WARNING_THRESHOLD = 0.8

VALID_PROVIDERS = ["memory", "faiss"]

# Version string
VERSION = "1.0.0"


def load_env_file(path: Optional[str] = None) -> bool:
    """Load variables from a .env file without overriding ones already set."""
    return load_dotenv(dotenv_path=path, override=False)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def get_vector_provider() -> str:
    """Get vector store provider (memory|faiss)."""
    return os.getenv("VECTOR_PROVIDER", DEFAULT_PROVIDER).lower()


def debug_enabled() -> bool:
    """Check if debug mode is enabled."""
    return _env_bool("DEBUG", "false")


def get_hnsw_config() -> HNSWConfig:
    return HNSWConfig(
        m=_env_int("HNSW_M", DEFAULT_HNSW_M),
        ef_construction=_env_int("HNSW_EF_CONSTRUCTION", DEFAULT_HNSW_EF_CONSTRUCTION),
        ef_search=_env_int("HNSW_EF_SEARCH", DEFAULT_HNSW_EF_SEARCH),
    )


def get_store_config() -> InMemoryVectorStoreConfig:
    """
    Build the store configuration from the environment.

    Raises:
        ValueError: a numeric variable does not parse
        pydantic.ValidationError: a value is out of range
    """
    return InMemoryVectorStoreConfig(
        dimensions=_env_int("VECTOR_DIMENSIONS", DEFAULT_DIMENSIONS),
        distance_metric=os.getenv("VECTOR_METRIC", DEFAULT_METRIC),
        index_type=os.getenv("VECTOR_INDEX_TYPE", DEFAULT_INDEX_TYPE),
        hnsw_config=get_hnsw_config(),
        use_float32=_env_bool("VECTOR_USE_FLOAT32", "true"),
        max_memory_bytes=_env_int("VECTOR_MAX_MEMORY_BYTES", 0),
        memory_warning_threshold=_env_float("MEMORY_WARNING_THRESHOLD", DEFAULT_MEMORY_WARNING_THRESHOLD),
    )


def validate_vector_config() -> List[str]:
    """Validate vector configuration and return any issues."""
    issues = []

    provider = get_vector_provider()
    if provider not in VALID_PROVIDERS:
        issues.append(f"Invalid VECTOR_PROVIDER: {provider}")

    try:
        config = get_store_config()
    except ValidationError as e:
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            issues.append(f"Invalid {field}: {error['msg']}")
        return issues
    except ValueError as e:
        issues.append(f"Unparseable numeric setting: {e}")
        return issues

    if provider == "faiss" and config.index_type.value == "hnsw":
        issues.append("VECTOR_INDEX_TYPE=hnsw is ignored by the faiss provider")

    if provider == "faiss" and config.max_memory_bytes:
        issues.append("VECTOR_MAX_MEMORY_BYTES is ignored by the faiss provider")

    return issues


def get_vector_store(on_eviction=None):
    """
    Get configured vector store implementation.

    Raises:
        ValueError: VECTOR_PROVIDER is not a known provider
        StoreUnavailableError: faiss provider selected but faiss is missing
    """
    provider = get_vector_provider()
    config = get_store_config()

    if debug_enabled():
        logger.logger.setLevel(logging.DEBUG)

    if provider == "memory":
        from ..vector.memory_store import InMemoryVectorStore
        return InMemoryVectorStore.from_config(config, on_eviction=on_eviction)
    elif provider == "faiss":
        from ..vector.faiss_store import FaissVectorStore
        return FaissVectorStore(config.dimensions, config.distance_metric)
    else:
        raise ValueError(f"VECTOR_PROVIDER must be one of: {VALID_PROVIDERS}, got {provider}")
