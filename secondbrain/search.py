"""
Similarity search over the embedding cache.
"""

import logging
import math
from typing import Optional, Sequence

from .cache import EmbeddingCache
from .errors import DimensionMismatchError
from .types import SimilarNote

logger = logging.getLogger(__name__)


def _norm(v: Sequence[float]) -> float:
    return math.sqrt(sum(x * x for x in v))


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity dot(a, b) / (|a| * |b|), in [-1, 1].

    Raises:
        DimensionMismatchError: a and b differ in length
        ValueError: either vector has zero norm
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))
    norm_a = _norm(a)
    norm_b = _norm(b)
    if norm_a == 0 or norm_b == 0:
        raise ValueError("Cosine similarity is undefined for a zero vector")
    dot = sum(x * y for x, y in zip(a, b))
    # Clamp rounding drift so identical vectors score exactly 1.0 at most
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def search(
    query_vector: Sequence[float],
    cache: EmbeddingCache,
    k: int = 5,
    min_similarity: float = 0.0,
    exclude_id: Optional[str] = None,
) -> list[SimilarNote]:
    """
    Rank cached notes by cosine similarity to query_vector.

    Results are ordered by similarity descending, then note id ascending.
    Notes scoring <= min_similarity are dropped, as are zero vectors and the
    querying note itself (exclude_id). A cached vector whose dimensionality
    differs from the query is logged and skipped.

    Args:
        query_vector: Embedding of the query (usually the active note)
        cache: Cache to scan (read only)
        k: Maximum number of results
        min_similarity: Exclusive lower bound on similarity
        exclude_id: Note id to leave out of the results

    Returns:
        Up to k SimilarNote results
    """
    if k <= 0:
        return []
    if _norm(query_vector) == 0:
        logger.debug("Query vector has zero norm, no results")
        return []

    scored: list[SimilarNote] = []
    for entry in cache:
        if entry.note_id == exclude_id:
            continue
        try:
            similarity = cosine_similarity(query_vector, entry.vector)
        except DimensionMismatchError as e:
            logger.warning("Skipping %s in search: %s", entry.note_id, e)
            continue
        except ValueError:
            logger.debug("Skipping %s in search: zero vector", entry.note_id)
            continue
        if similarity <= min_similarity:
            continue
        scored.append(SimilarNote(note_id=entry.note_id, similarity=similarity))

    scored.sort(key=lambda s: (-s.similarity, s.note_id))
    return scored[:k]
