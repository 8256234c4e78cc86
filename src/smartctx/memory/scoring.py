"""Relevance scoring for micro-chunk retrieval.

score = 0.4 * keyword overlap + 0.3 * category match
      + 0.2 * recency + 0.1 * confidence

Keyword and category matching are case-insensitive substring tests in
either direction, so short query terms can match unrelated words
("go" matches "algorithm").
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from smartctx.memory.chunk import Chunk

KEYWORD_WEIGHT = 0.4
CATEGORY_WEIGHT = 0.3
RECENCY_WEIGHT = 0.2
CONFIDENCE_WEIGHT = 0.1

DEFAULT_LIMIT = 6


@dataclass(frozen=True)
class ScoredChunk:
    chunk: Chunk
    score: float


def _fuzzy_match(a: str, b: str) -> bool:
    a, b = a.lower(), b.lower()
    return a in b or b in a


def keyword_overlap(query_keywords: Sequence[str], chunk_keywords: Iterable[str]) -> float:
    """Fraction of query keywords matching at least one chunk keyword."""
    if not query_keywords:
        return 0.0
    chunk_keywords = list(chunk_keywords)
    matched = sum(
        1 for q in query_keywords if any(_fuzzy_match(q, k) for k in chunk_keywords)
    )
    return matched / len(query_keywords)


def category_match(query_categories: Iterable[str], bucket: str) -> bool:
    return any(_fuzzy_match(c, bucket) for c in query_categories)


def recency_factor(chunk_id: str, positions: Mapping[str, int], length: int) -> float:
    """1 for the newest chunk, falling linearly; 0 once evicted."""
    position = positions.get(chunk_id)
    if position is None or length == 0:
        return 0.0
    return 1 - position / length


def score_chunk(
    chunk: Chunk,
    keywords: Sequence[str],
    categories: Sequence[str],
    positions: Mapping[str, int],
    recency_length: int,
) -> float:
    score = KEYWORD_WEIGHT * keyword_overlap(keywords, chunk.relevance_keywords)
    if category_match(categories, chunk.bucket):
        score += CATEGORY_WEIGHT
    score += RECENCY_WEIGHT * recency_factor(chunk.id, positions, recency_length)
    score += CONFIDENCE_WEIGHT * chunk.confidence
    return score


def rank_chunks(
    chunks: Iterable[Chunk],
    recency: Sequence[str],
    keywords: Sequence[str],
    categories: Sequence[str],
    limit: int = DEFAULT_LIMIT,
) -> list[ScoredChunk]:
    """Score every chunk, drop zero scores, return the top `limit` descending.

    The sort is stable, so equal scores keep index iteration order.
    """
    positions: dict[str, int] = {}
    for i, chunk_id in enumerate(recency):
        positions.setdefault(chunk_id, i)
    scored = []
    for chunk in chunks:
        score = score_chunk(chunk, keywords, categories, positions, len(recency))
        if score > 0:
            scored.append(ScoredChunk(chunk, score))
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[: max(limit, 0)]
