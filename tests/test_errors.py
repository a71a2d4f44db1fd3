"""
Tests for the vector store error hierarchy.
"""

import pytest

from vecstore.vector.errors import (
    ChunkNotFoundError,
    DeleteFailedError,
    DimensionMismatchError,
    InsertFailedError,
    InvalidFilterError,
    InvalidQueryError,
    StoreUnavailableError,
    VectorStoreError,
)


def test_dimension_mismatch_message_and_fields():
    """Message names both dimensionalities."""
    error = DimensionMismatchError("InMemoryVectorStore", 384, 3)

    assert str(error) == "Dimension mismatch: store expects 384 dimensions, got 3"
    assert error.code == "DIMENSION_MISMATCH"
    assert error.expected == 384
    assert error.received == 3
    assert error.store_name == "InMemoryVectorStore"


def test_chunk_not_found_truncates_ids():
    """At most three ids are listed."""
    short = ChunkNotFoundError("store", ["a", "b"])
    assert str(short) == "Chunk(s) not found: a, b"

    long = ChunkNotFoundError("store", ["a", "b", "c", "d", "e"])
    assert str(long) == "Chunk(s) not found: a, b, c..."
    assert long.ids == ["a", "b", "c", "d", "e"]


@pytest.mark.parametrize("error, code, prefix", [
    (StoreUnavailableError("s", "down"), "STORE_UNAVAILABLE", "Store unavailable: down"),
    (InvalidQueryError("s", "empty"), "INVALID_QUERY", "Invalid query: empty"),
    (InvalidFilterError("s", "bad op"), "INVALID_FILTER", "Invalid filter: bad op"),
    (InsertFailedError("s", "boom"), "INSERT_FAILED", "Insert failed: boom"),
    (DeleteFailedError("s", "boom"), "DELETE_FAILED", "Delete failed: boom"),
])
def test_codes_and_messages(error, code, prefix):
    """Each subclass carries its own code."""
    assert isinstance(error, VectorStoreError)
    assert error.code == code
    assert str(error) == prefix


def test_builtin_compatibility():
    """Validation errors are ValueErrors, missing chunks are KeyErrors."""
    assert isinstance(DimensionMismatchError("s", 2, 3), ValueError)
    assert isinstance(InvalidQueryError("s", "x"), ValueError)
    assert isinstance(InvalidFilterError("s", "x"), ValueError)
    assert isinstance(ChunkNotFoundError("s", ["x"]), KeyError)


def test_cause_is_chained():
    """The underlying failure is kept for callers and tracebacks."""
    root = RuntimeError("faiss exploded")
    error = InsertFailedError("FaissVectorStore", "add failed", cause=root)

    assert error.cause is root
    assert error.__cause__ is root

    details = error.to_details()
    assert details == {"code": "INSERT_FAILED", "store_name": "FaissVectorStore", "cause": root}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
