"""Smart context service — the seam between callers, the extractor and the store.

Responsibilities:
1. Retrieval — prompt → retrieval query → ranked chunks → context block
   appended to the caller's instructions
2. Storage — prompt or reasoning → insights → background store
3. Degrade quietly — every failure returns the original instructions and a
   summary string, never an exception
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

from smartctx.config import SmartContextConfig
from smartctx.engines import build_engine
from smartctx.errors import ExtractionError
from smartctx.extractor import InsightExtractor
from smartctx.memory.chunk import Chunk, ChunkSource
from smartctx.memory.store import ChunkStore
from smartctx.memory.tree import TreeManager

logger = logging.getLogger(__name__)

MAX_CHUNKS_PER_BUCKET = 2

CONTEXT_FOOTER = (
    "*The above context insights are based on previous interactions and should "
    "inform your response. Use this accumulated knowledge to provide more accurate, "
    "consistent, and helpful assistance.*"
)


@dataclass
class EnhancementResult:
    enhanced_instructions: str
    context_summary: str
    chunks_used: int = 0
    keywords: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    success: bool = True
    error: str | None = None


@dataclass
class StorageResult:
    stored: bool
    insights_stored: int
    source: ChunkSource
    processing_time: float = 0.0
    error: str | None = None
    task: asyncio.Task | None = None  # completes when the chunks are on disk


@dataclass
class ServiceStats:
    available: bool
    initialized: bool
    chunks: int
    keywords: int
    categories: int


def format_context_block(original: str, chunks: list[Chunk]) -> str:
    """Append chunks, grouped by bucket, to `original`."""
    if not chunks:
        return original

    by_bucket: dict[str, list[Chunk]] = {}
    for chunk in chunks:
        by_bucket.setdefault(chunk.bucket, []).append(chunk)

    sections = [
        "## Smart Context Insights",
        f"Applied {len(chunks)} relevant insights from previous interactions:",
    ]
    for bucket_chunks in by_bucket.values():
        first = bucket_chunks[0]
        title = f"{first.category.replace('_', ' ')} - {first.subcategory.replace('_', ' ')}"
        sections.append(f"### {title}")
        for chunk in bucket_chunks[:MAX_CHUNKS_PER_BUCKET]:
            sections.append(f"- {chunk.content}")

    return f"{original}\n\n" + "\n\n".join(sections) + f"\n\n---\n{CONTEXT_FOOTER}"


class SmartContextService:
    """Enhance instructions with stored insights and learn new ones."""

    def __init__(
        self, store: ChunkStore, extractor: InsightExtractor, *, max_chunks: int = 6
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.max_chunks = max_chunks
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls, config: SmartContextConfig, start_dir: Path | None = None
    ) -> SmartContextService:
        """Build tree, store, engine and extractor from configuration."""
        tree = TreeManager(start_dir, root=config.store.context_dir)
        store = ChunkStore(
            tree,
            max_content_chars=config.store.max_content_chars,
            recency_limit=config.store.recency_limit,
            scan_limit=config.store.scan_limit,
        )
        try:
            engine = build_engine(config.engine)
        except (ImportError, ExtractionError) as e:
            logger.warning("Extraction engine %s unavailable: %s", config.engine.name, e)
            engine = None
        return cls(store, InsightExtractor(engine), max_chunks=config.store.max_chunks)

    def is_available(self) -> bool:
        return self.extractor.is_available()

    def _ensure_initialized(self) -> None:
        if not self.store.initialized:
            self.store.initialize()

    # ── Retrieval ────────────────────────────────────────────

    async def enhance_instructions(
        self, original_instructions: str, user_prompt: str
    ) -> EnhancementResult:
        """Append relevant stored insights to `original_instructions`."""
        start = time.perf_counter()

        def unchanged(summary: str, success: bool = True, **kwargs) -> EnhancementResult:
            return EnhancementResult(
                enhanced_instructions=original_instructions,
                context_summary=summary,
                processing_time=time.perf_counter() - start,
                success=success,
                **kwargs,
            )

        if not self.is_available():
            return unchanged(
                "Smart context not available",
                success=False,
                error="Smart context service not available",
            )

        try:
            self._ensure_initialized()
            query = await self.extractor.extract_retrieval_query(user_prompt)
            if query.empty:
                return unchanged("No relevant context query generated")

            chunks = self.store.retrieve(query.keywords, query.categories, self.max_chunks)
            if not chunks:
                return unchanged(
                    "No relevant context found",
                    keywords=query.keywords,
                    categories=query.categories,
                )

            result = EnhancementResult(
                enhanced_instructions=format_context_block(original_instructions, chunks),
                context_summary=f"Applied {len(chunks)} context insights",
                chunks_used=len(chunks),
                keywords=query.keywords,
                categories=query.categories,
                processing_time=time.perf_counter() - start,
            )
            logger.info(
                "Enhanced instructions (%.0fms): %s",
                result.processing_time * 1000,
                result.context_summary,
            )
            return result
        except Exception as e:
            logger.error("Context enhancement failed: %s", e)
            return unchanged("Context enhancement failed", success=False, error=str(e))

    # ── Storage ──────────────────────────────────────────────

    async def store_from_prompt(
        self, user_prompt: str, context: dict | None = None
    ) -> StorageResult:
        """Extract insights from a user prompt and store them in the background."""
        return await self._store(user_prompt, "user_prompt", context)

    async def store_from_reasoning(
        self, reasoning: str, context: dict | None = None
    ) -> StorageResult:
        """Extract insights from an AI reasoning trace and store them in the background."""
        return await self._store(reasoning, "reasoning_stream", context)

    async def _store(
        self, text: str, source: ChunkSource, context: dict | None
    ) -> StorageResult:
        start = time.perf_counter()
        if not self.is_available():
            return StorageResult(
                stored=False,
                insights_stored=0,
                source=source,
                error="Smart context service not available",
            )

        try:
            self._ensure_initialized()
            if source == "reasoning_stream":
                insights = await self.extractor.extract_from_reasoning(text, context)
            else:
                insights = await self.extractor.extract_insights(text, context)

            if not insights:
                return StorageResult(
                    stored=False,
                    insights_stored=0,
                    source=source,
                    processing_time=time.perf_counter() - start,
                )

            task = self.store.store_insights(insights, source)
            logger.info("Scheduled %d insights from %s", len(insights), source)
            return StorageResult(
                stored=True,
                insights_stored=len(insights),
                source=source,
                processing_time=time.perf_counter() - start,
                task=task,
            )
        except Exception as e:
            logger.error("Storage from %s failed: %s", source, e)
            return StorageResult(
                stored=False,
                insights_stored=0,
                source=source,
                processing_time=time.perf_counter() - start,
                error=str(e),
            )

    def learn_in_background(
        self, text: str, source: ChunkSource = "user_prompt", context: dict | None = None
    ) -> asyncio.Task[StorageResult]:
        """Fire-and-forget extraction plus storage; the caller never waits on it."""
        task = asyncio.get_running_loop().create_task(self._store(text, source, context))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """Wait for background extraction and every pending chunk write."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
        await self.store.drain()

    # ── Diagnostics ──────────────────────────────────────────

    def stats(self) -> ServiceStats:
        stats = self.store.stats()
        return ServiceStats(
            available=self.is_available(),
            initialized=self.store.initialized,
            chunks=stats.total_chunks,
            keywords=stats.keywords,
            categories=stats.categories,
        )

    async def test_system(self) -> dict[str, bool]:
        extractor_ok = await self.extractor.test_connection()
        try:
            self._ensure_initialized()
            store_ok = True
        except Exception as e:
            logger.error("Chunk store check failed: %s", e)
            store_ok = False
        return {
            "insight_extractor": extractor_ok,
            "chunk_store": store_ok,
            "overall": extractor_ok and store_ok,
        }
