"""
Vector helpers for fingerprints and centroids.

Plain lists of floats; fingerprints are small (384 cells) and stored as JSON.
"""

import math
from typing import List, Sequence


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero magnitude
    """
    dot_product = sum(a * b for a, b in zip(vec1, vec2))

    mag1 = math.sqrt(sum(a * a for a in vec1))
    mag2 = math.sqrt(sum(b * b for b in vec2))

    if mag1 == 0 or mag2 == 0:
        return 0.0

    return dot_product / (mag1 * mag2)


def l2_norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(v * v for v in vector))


def l2_normalize(vector: Sequence[float]) -> List[float]:
    """Scale to unit length. A zero vector is returned unchanged."""
    magnitude = l2_norm(vector)
    if magnitude == 0:
        return list(vector)
    return [v / magnitude for v in vector]


def mean_vector(vectors: Sequence[Sequence[float]]) -> List[float]:
    """Element-wise arithmetic mean. Not renormalized."""
    if not vectors:
        raise ValueError("Cannot average an empty set of vectors")

    dimensions = len(vectors[0])
    totals = [0.0] * dimensions
    for vector in vectors:
        for i, value in enumerate(vector):
            totals[i] += value

    count = len(vectors)
    return [total / count for total in totals]
