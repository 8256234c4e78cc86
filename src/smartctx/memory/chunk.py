"""Micro-chunk model and its Markdown file format.

A chunk file is YAML frontmatter followed by a title derived from the id,
the content body, and a provenance footer::

    ---
    id: solutions-bug_fixes-001
    created: 2026-10-19T09:12:44.120511+00:00
    relevance_keywords: ["jwt","token"]
    confidence: 0.8
    source: user_prompt
    ---

    # Solutions Bug_fixes 001

    Always validate JWT tokens before processing requests.

    *Generated by Smart Context from user prompt analysis*
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal

import frontmatter
import yaml

logger = logging.getLogger(__name__)

ChunkSource = Literal["user_prompt", "reasoning_stream"]
SOURCES: tuple[str, ...] = ("user_prompt", "reasoning_stream")

_SOURCE_PHRASES = {
    "user_prompt": "user prompt analysis",
    "reasoning_stream": "AI reasoning analysis",
}

_FOOTER_RE = re.compile(r"\*Generated by[^\n]*\Z")
_COUNTER_RE = re.compile(r"-(\d+)$")
_HEADER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n(.*))?\Z", re.DOTALL)

HEADER_KEYS = ("id", "created", "relevance_keywords", "confidence", "source")


@dataclass
class Insight:
    """A categorized insight as returned by the extraction step."""

    category: str
    subcategory: str
    keywords: list[str] = field(default_factory=list)
    content: str = ""
    confidence: float = 0.5


@dataclass(frozen=True)
class Chunk:
    """An immutable stored insight."""

    id: str
    created: str
    relevance_keywords: tuple[str, ...]
    confidence: float
    source: str
    category: str
    subcategory: str
    content: str

    @property
    def bucket(self) -> str:
        return f"{self.category}/{self.subcategory}"


def make_chunk_id(category: str, subcategory: str, counter: int) -> str:
    return f"{category.lower()}-{subcategory}-{counter:03d}"


def id_counter(chunk_id: str) -> int | None:
    """Numeric suffix of a chunk id, or None if it has none."""
    match = _COUNTER_RE.search(chunk_id)
    return int(match.group(1)) if match else None


def chunk_title(chunk_id: str) -> str:
    """'solutions-bug_fixes-001' -> 'Solutions Bug_fixes 001'."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), chunk_id.replace("-", " "))


def render_chunk(chunk: Chunk) -> str:
    """Serialize a chunk to its canonical Markdown form."""
    # ASCII escapes keep control characters out of the YAML header.
    keywords = json.dumps(list(chunk.relevance_keywords), separators=(",", ":"))
    phrase = _SOURCE_PHRASES.get(chunk.source, _SOURCE_PHRASES["user_prompt"])
    return (
        f"---\n"
        f"id: {chunk.id}\n"
        f"created: {chunk.created}\n"
        f"relevance_keywords: {keywords}\n"
        f"confidence: {chunk.confidence}\n"
        f"source: {chunk.source}\n"
        f"---\n\n"
        f"# {chunk_title(chunk.id)}\n\n"
        f"{chunk.content}\n\n"
        f"*Generated by Smart Context from {phrase}*"
    )


def _coerce_keywords(value: object) -> tuple[str, ...] | None:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return None
    if not isinstance(value, list):
        return None
    return tuple(str(k) for k in value)


def _coerce_created(value: object) -> str:
    # YAML turns ISO timestamps into datetime objects.
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return "" if value is None else str(value)


def _extract_body(text: str) -> str:
    lines = text.split("\n")
    for i, line in enumerate(lines):
        if line.startswith("# "):
            text = "\n".join(lines[i + 1 :])
            break
    return _FOOTER_RE.sub("", text.strip()).strip()


def _scan_header(markdown: str) -> tuple[dict, str] | None:
    """Read known `key: value` lines from a header YAML rejected.

    Lines without a colon and unknown keys are skipped; values stay strings.
    """
    match = _HEADER_RE.match(markdown)
    if not match:
        return None
    meta: dict = {}
    for line in match.group(1).splitlines():
        key, sep, value = line.partition(":")
        key = key.strip()
        if sep and key in HEADER_KEYS:
            meta[key] = value.strip()
    return meta, match.group(2) or ""


def parse_chunk(markdown: str, category: str, subcategory: str) -> Chunk | None:
    """Parse a chunk file; category and subcategory come from its bucket.

    Unknown frontmatter keys are ignored, and a header that is not valid
    YAML is read line by line. Returns None when there is no header, no id,
    or the keywords are unreadable.
    """
    try:
        post = frontmatter.loads(markdown)
        meta, body = post.metadata, post.content
    except (yaml.YAMLError, ValueError) as e:
        logger.debug("Chunk frontmatter is not YAML, scanning lines: %s", e)
        meta = None
    if not isinstance(meta, dict):
        scanned = _scan_header(markdown)
        if scanned is None:
            return None
        meta, body = scanned

    chunk_id = meta.get("id")
    if not chunk_id:
        return None

    keywords = _coerce_keywords(meta.get("relevance_keywords"))
    if keywords is None:
        return None

    try:
        confidence = float(meta.get("confidence", 0.0))
    except (TypeError, ValueError):
        confidence = 0.0

    return Chunk(
        id=str(chunk_id),
        created=_coerce_created(meta.get("created")),
        relevance_keywords=keywords,
        confidence=confidence,
        source=str(meta.get("source", "user_prompt")),
        category=category,
        subcategory=subcategory,
        content=_extract_body(body),
    )
