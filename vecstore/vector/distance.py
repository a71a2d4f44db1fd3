"""
Distance and similarity functions over equal-length vectors.
Callers validate lengths; these functions only do the math.
"""

import numpy as np

from .types import VectorLike


def _as_array(v: VectorLike) -> np.ndarray:
    return np.asarray(v, dtype=np.float64)


def dot_product(a: VectorLike, b: VectorLike) -> float:
    """Sum of elementwise products."""
    return float(np.dot(_as_array(a), _as_array(b)))


def l2_norm(v: VectorLike) -> float:
    """Euclidean magnitude of a vector."""
    return float(np.linalg.norm(_as_array(v)))


def normalize_l2(v: VectorLike) -> np.ndarray:
    """Scale a vector to unit length. Zero vectors are returned unchanged."""
    arr = _as_array(v)
    norm = np.linalg.norm(arr)
    if norm == 0:
        return arr
    return arr / norm


def is_normalized(v: VectorLike, tolerance: float = 1e-6) -> bool:
    """Check whether a vector has unit length."""
    return abs(l2_norm(v) - 1.0) <= tolerance


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """
    Cosine of the angle between two vectors.

    Returns 0.0 when either vector has zero magnitude.
    """
    a_arr = _as_array(a)
    b_arr = _as_array(b)
    norm_a = np.linalg.norm(a_arr)
    norm_b = np.linalg.norm(b_arr)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a_arr, b_arr) / (norm_a * norm_b))


def euclidean_distance(a: VectorLike, b: VectorLike) -> float:
    """Square root of summed squared differences."""
    return float(np.linalg.norm(_as_array(a) - _as_array(b)))
