"""Cosine similarity tolerant of vectors with different lengths."""
import logging
from typing import Optional, Sequence
import numpy as np

logger = logging.getLogger(__name__)


class DegenerateVectorError(ValueError):
    """Raised when a vector has no direction (zero magnitude or empty)."""


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity over two possibly unequal-length vectors.

    Positions past the end of the shorter vector count towards the longer
    vector's magnitude but contribute nothing to the dot product. Query and
    stored embeddings can come from models with different dimensionality,
    and rankings rely on this exact behaviour.

    Args:
        a: First vector
        b: Second vector

    Returns:
        dot(a, b) / (|a| * |b|) with the shorter vector zero-padded

    Raises:
        DegenerateVectorError: If either sum of squares is zero
    """
    vec_a = np.asarray(a, dtype=np.float64).ravel()
    vec_b = np.asarray(b, dtype=np.float64).ravel()

    length = max(vec_a.size, vec_b.size)
    if vec_a.size < length:
        vec_a = np.pad(vec_a, (0, length - vec_a.size))
    if vec_b.size < length:
        vec_b = np.pad(vec_b, (0, length - vec_b.size))

    sum_sq_a = float(np.dot(vec_a, vec_a))
    sum_sq_b = float(np.dot(vec_b, vec_b))
    if sum_sq_a == 0 or sum_sq_b == 0:
        raise DegenerateVectorError("sum of squares is zero for one of the vectors")

    return float(np.dot(vec_a, vec_b)) / (np.sqrt(sum_sq_a) * np.sqrt(sum_sq_b))


def cosine_or_zero(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine similarity, or 0.0 when it is unavailable for this pair."""
    try:
        return cosine(a if a is not None else [], b if b is not None else [])
    except DegenerateVectorError as e:
        logger.debug(f"Similarity unavailable: {e}")
        return 0.0
