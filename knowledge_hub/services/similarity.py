"""Vector similarity and ranking helpers."""

from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Mapping, Optional, Sequence, TypeVar

import numpy as np

T = TypeVar("T")

Vector = Optional[Sequence[float]]


@dataclass(frozen=True)
class Ranked(Generic[T]):
    """A candidate paired with its similarity score."""

    item: T
    score: float


def cosine_similarity(a: Vector, b: Vector) -> float:
    """
    Cosine similarity between two vectors.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        Score in [-1, 1]; 0.0 when either vector is missing or empty, the
        lengths differ, or either magnitude is zero.
    """
    if a is None or b is None or len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0

    a_arr = np.asarray(a, dtype=float)
    b_arr = np.asarray(b, dtype=float)

    norm_a = np.linalg.norm(a_arr)
    norm_b = np.linalg.norm(b_arr)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = float(np.dot(a_arr, b_arr) / (norm_a * norm_b))
    return max(-1.0, min(1.0, score))


def embedding_of(candidate: Any) -> Vector:
    """Default vector accessor: mapping key or attribute named embedding."""
    if isinstance(candidate, Mapping):
        return candidate.get("embedding")
    return getattr(candidate, "embedding", None)


def rank_by_similarity(
    query_vector: Vector,
    candidates: Sequence[T],
    min_similarity: float,
    limit: Optional[int] = None,
    key: Callable[[T], Vector] = embedding_of,
) -> List[Ranked[T]]:
    """
    Score, filter and order candidates against a query vector.

    Candidates without a vector score 0. Equal scores keep their input
    order (list.sort is stable).

    Args:
        query_vector: Query embedding.
        candidates: Items to rank.
        min_similarity: Scores below this are dropped.
        limit: Maximum number of results, None for no cap.
        key: Extracts the vector from a candidate.

    Returns:
        Ranked candidates, highest score first.
    """
    if limit is not None and limit <= 0:
        return []

    scored = [Ranked(item=c, score=cosine_similarity(query_vector, key(c))) for c in candidates]
    kept = [r for r in scored if r.score >= min_similarity]
    kept.sort(key=lambda r: r.score, reverse=True)
    return kept if limit is None else kept[:limit]
