"""Micro-chunk store — Markdown files on disk, derived index in memory.

Chunk files are the source of truth. The index (by id, keyword, bucket and
recency) is rebuilt on initialize() by replaying every parsed file through
the same update path used for fresh writes, then updated incrementally as
chunks are stored.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from smartctx.errors import InvalidInsightError, StoreNotInitializedError, TreeError
from smartctx.memory import taxonomy
from smartctx.memory.chunk import (
    SOURCES,
    Chunk,
    ChunkSource,
    Insight,
    id_counter,
    make_chunk_id,
    parse_chunk,
    render_chunk,
)
from smartctx.memory.scoring import DEFAULT_LIMIT, ScoredChunk, rank_chunks
from smartctx.memory.tree import TreeManager

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 300
RECENCY_LIMIT = 1000
SCAN_LIMIT = 100  # files read per bucket on startup


@dataclass
class ChunkIndex:
    """In-memory lookup tables, derived entirely from chunk files."""

    chunks: dict[str, Chunk] = field(default_factory=dict)
    keywords: dict[str, list[str]] = field(default_factory=dict)
    categories: dict[str, list[str]] = field(default_factory=dict)
    recency: deque[str] = field(default_factory=lambda: deque(maxlen=RECENCY_LIMIT))


@dataclass
class StoreStats:
    total_chunks: int
    keywords: int
    categories: int
    recent_chunks: int


def _write_chunk_file(path: Path, text: str) -> None:
    """Create `path`; raises FileExistsError rather than overwrite."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("x", encoding="utf-8") as f:
        f.write(text)


class ChunkStore:
    """Store and retrieve micro-chunks under a context tree."""

    def __init__(
        self,
        tree: TreeManager,
        *,
        max_content_chars: int = MAX_CONTENT_CHARS,
        recency_limit: int = RECENCY_LIMIT,
        scan_limit: int = SCAN_LIMIT,
    ) -> None:
        self.tree = tree
        self.max_content_chars = max_content_chars
        self.recency_limit = recency_limit
        self.scan_limit = scan_limit
        self.index = self._new_index()
        self._root: Path | None = None
        self._counter = 0
        self._pending: set[asyncio.Task] = set()

    def _new_index(self) -> ChunkIndex:
        return ChunkIndex(recency=deque(maxlen=self.recency_limit))

    @property
    def root(self) -> Path:
        self._check_initialized()
        return self._root

    def _check_initialized(self) -> None:
        if self._root is None:
            raise StoreNotInitializedError("ChunkStore not initialized; call initialize() first")

    @property
    def initialized(self) -> bool:
        return self._root is not None

    # ── Initialization ───────────────────────────────────────

    def initialize(self) -> int:
        """Ensure the tree exists and rebuild the index from disk.

        Returns the number of chunks loaded.
        """
        if not self.tree.ensure_tree():
            logger.warning("Context tree at %s is incomplete; continuing", self.tree.root)
        self.index = self._new_index()
        self._counter = 0
        self._root = self.tree.root
        loaded = self._build_index()
        logger.info("Chunk store initialized at %s with %d chunks", self._root, loaded)
        return loaded

    def _build_index(self) -> int:
        chunks: list[Chunk] = []
        for category, subcategory in taxonomy.iter_buckets():
            try:
                files = self.tree.list_files(category, subcategory)
            except TreeError as e:
                logger.warning("Skipping bucket %s/%s: %s", category, subcategory, e)
                continue

            # Seed from every file name so unread files still reserve their ids.
            for path in files:
                self._bump_counter(path.stem)

            for path in files[-self.scan_limit :]:
                try:
                    text = path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning("Failed to read chunk %s: %s", path, e)
                    continue
                chunk = parse_chunk(text, category, subcategory)
                if chunk is None:
                    logger.debug("Skipping malformed chunk file %s", path)
                    continue
                chunks.append(chunk)

        # Replay oldest first across buckets so recency ends newest-first.
        chunks.sort(key=lambda c: id_counter(c.id) or 0)
        for chunk in chunks:
            self._update_index(chunk)
            self._bump_counter(chunk.id)
        return len(chunks)

    def _bump_counter(self, chunk_id: str) -> None:
        n = id_counter(chunk_id)
        if n is not None and n > self._counter:
            self._counter = n

    def _update_index(self, chunk: Chunk) -> None:
        self.index.chunks[chunk.id] = chunk
        for keyword in chunk.relevance_keywords:
            self.index.keywords.setdefault(keyword, []).append(chunk.id)
        self.index.categories.setdefault(chunk.bucket, []).append(chunk.id)
        # deque(maxlen) drops the oldest id from the right.
        self.index.recency.appendleft(chunk.id)

    # ── Storage ──────────────────────────────────────────────

    def validate_insight(self, insight: Insight) -> Insight:
        """Return a normalized copy of `insight` or raise InvalidInsightError."""
        if not taxonomy.is_valid(insight.category, insight.subcategory):
            raise InvalidInsightError(
                f"Not in taxonomy: {insight.category}/{insight.subcategory}"
            )

        keywords = [
            k.strip() for k in (insight.keywords or []) if isinstance(k, str) and k.strip()
        ]
        if not keywords:
            raise InvalidInsightError("Insight has no keywords")

        try:
            confidence = float(insight.confidence)
        except (TypeError, ValueError):
            raise InvalidInsightError(f"Invalid confidence: {insight.confidence!r}")
        if math.isnan(confidence):
            raise InvalidInsightError("Invalid confidence: nan")
        confidence = min(max(confidence, 0.0), 1.0)

        content = str(insight.content or "").strip()[: self.max_content_chars].rstrip()
        if not content:
            raise InvalidInsightError("Insight has no content")

        return Insight(
            category=insight.category,
            subcategory=insight.subcategory,
            keywords=keywords,
            content=content,
            confidence=confidence,
        )

    def _allocate_id(self, category: str, subcategory: str) -> str:
        self._counter += 1
        return make_chunk_id(category, subcategory, self._counter)

    async def store_chunk(self, insight: Insight, source: ChunkSource) -> Chunk:
        """Validate, write and index one insight.

        Ids are allocated and the index updated without yielding to other
        tasks; only file I/O runs off the event loop. A file already holding
        the allocated name is left alone and the next id is tried.
        """
        self._check_initialized()
        if source not in SOURCES:
            raise InvalidInsightError(f"Unknown source: {source!r}")
        insight = self.validate_insight(insight)
        bucket_dir = self.root / insight.category / insight.subcategory

        while True:
            chunk = Chunk(
                id=self._allocate_id(insight.category, insight.subcategory),
                created=datetime.now(timezone.utc).isoformat(),
                relevance_keywords=tuple(insight.keywords),
                confidence=insight.confidence,
                source=source,
                category=insight.category,
                subcategory=insight.subcategory,
                content=insight.content,
            )
            path = bucket_dir / f"{chunk.id}.md"
            try:
                await asyncio.to_thread(_write_chunk_file, path, render_chunk(chunk))
                break
            except FileExistsError:
                logger.debug("Chunk file %s already exists, allocating next id", path)

        self._update_index(chunk)
        logger.info("Stored %s (%d chars) in %s", chunk.id, len(chunk.content), chunk.bucket)
        return chunk

    def store_insights(
        self, insights: Iterable[Insight], source: ChunkSource
    ) -> asyncio.Task[list[Chunk]]:
        """Schedule a batch for background storage and return its task.

        Insights in a batch are stored one after another. Failures are
        logged and skipped; the task resolves to the chunks that were stored.
        Must be called from a running event loop.
        """
        self._check_initialized()
        batch = list(insights)
        task = asyncio.get_running_loop().create_task(self._store_batch(batch, source))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _store_batch(self, insights: list[Insight], source: ChunkSource) -> list[Chunk]:
        stored: list[Chunk] = []
        for insight in insights:
            try:
                stored.append(await self.store_chunk(insight, source))
            except (InvalidInsightError, OSError) as e:
                logger.warning("Failed to store insight: %s", e)
        return stored

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled background batch to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Retrieval ────────────────────────────────────────────

    def retrieve_scored(
        self,
        keywords: Sequence[str],
        categories: Sequence[str],
        limit: int = DEFAULT_LIMIT,
    ) -> list[ScoredChunk]:
        self._check_initialized()
        start = time.perf_counter()
        results = rank_chunks(
            self.index.chunks.values(), self.index.recency, keywords, categories, limit
        )
        logger.debug(
            "Retrieved %d chunks in %.1fms", len(results), (time.perf_counter() - start) * 1000
        )
        return results

    def retrieve(
        self,
        keywords: Sequence[str],
        categories: Sequence[str],
        limit: int = DEFAULT_LIMIT,
    ) -> list[Chunk]:
        """Top `limit` chunks by relevance score, best first."""
        return [s.chunk for s in self.retrieve_scored(keywords, categories, limit)]

    def get(self, chunk_id: str) -> Chunk | None:
        return self.index.chunks.get(chunk_id)

    def stats(self) -> StoreStats:
        return StoreStats(
            total_chunks=len(self.index.chunks),
            keywords=len(self.index.keywords),
            categories=len(self.index.categories),
            recent_chunks=len(self.index.recency),
        )
