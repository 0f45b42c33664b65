"""Vector helpers: index dimension fitting, cosine similarity, record ids."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence

import numpy as np

logger = logging.getLogger(__name__)


def fit_vector_dimension(vector: Sequence[float], dimension: int | None) -> list[float]:
    """Return ``vector`` fitted to an index of ``dimension`` components.

    Longer vectors are truncated to their first ``dimension`` components and
    shorter ones are zero-padded at the tail. An unknown or non-positive
    dimension leaves the vector unchanged.
    """

    values = [float(value) for value in vector]
    if dimension is None or dimension <= 0 or len(values) == dimension:
        return values
    if len(values) > dimension:
        logger.debug("Truncating vector from %d to %d dimensions.", len(values), dimension)
        return values[:dimension]
    logger.debug("Zero-padding vector from %d to %d dimensions.", len(values), dimension)
    return values + [0.0] * (dimension - len(values))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either is all-zero."""

    left = np.asarray(a, dtype=float)
    right = np.asarray(b, dtype=float)
    if left.shape != right.shape or left.size == 0:
        return 0.0
    denominator = float(np.linalg.norm(left) * np.linalg.norm(right))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(left, right) / denominator)


def content_hash_id(text: str) -> str:
    """Stable content-addressed id for a transcript."""

    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def placeholder_vector(dimension: int) -> list[float]:
    """Query vector for metadata-only scans."""

    return [0.0] * max(1, dimension)
