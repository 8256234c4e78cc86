"""Insight extraction — asks an LLM engine to categorize free text.

Two calls are made against the engine: one turns a prompt or reasoning
trace into categorized insights for storage, the other turns a prompt into
a retrieval query (keywords + "CATEGORY/subcategory" strings). Responses are
JSON; anything unparseable yields an empty result.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field

from smartctx.engines.base import Engine
from smartctx.memory import taxonomy
from smartctx.memory.chunk import Insight

logger = logging.getLogger(__name__)

MAX_INSIGHTS = 3
MIN_CONTENT_CHARS = 20
MAX_CONTENT_CHARS = 300
MIN_REASONING_CHARS = 50
MAX_REASONING_CHARS = 2000

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

PROMPT_SYSTEM_PROMPT = """\
You are a context insight extractor. Analyze user prompts and extract 1-3 key
insights worth storing for future reference.

AVAILABLE CATEGORIES:
{categories}

Extract rules, technical decisions, solutions, best practices and domain
knowledge. For each insight, provide:
- category: one of the main categories
- subcategory: a subcategory listed under it
- keywords: 2-4 search keywords
- content: a concise, actionable insight of 50-200 characters
- confidence: 0.1-1.0

Respond with JSON only:
{{"insights": [{{"category": "SOLUTIONS", "subcategory": "bug_fixes",
"keywords": ["auth", "token"], "content": "Validate JWT tokens before processing requests.",
"confidence": 0.8}}]}}

Return an empty insights array if nothing is worth storing."""

REASONING_SYSTEM_PROMPT = """\
You are an AI reasoning analyzer. Extract valuable insights from an AI's
reasoning for future reference.

AVAILABLE CATEGORIES:
{categories}

Approaches that worked belong in SOLUTIONS or BEST_PRACTICES, failures in
FAILED_ATTEMPTS or TROUBLESHOOTING, choices in DECISIONS or PROJECT_RULES,
demonstrated knowledge in KNOWLEDGE.

Context: {user_prompt}
Result: {outcome}
Model: {model}

Respond with JSON only, in the form {{"insights": [...]}} with the fields
category, subcategory, keywords (2-4), content (50-200 characters) and
confidence (0.1-1.0). Extract 0-2 of the most valuable insights."""

RETRIEVAL_SYSTEM_PROMPT = """\
You are a context retrieval analyzer. Decide which stored context would help
answer the user's prompt.

AVAILABLE CATEGORIES:
{categories}

Identify the 3-5 most relevant search keywords and the 2-3 most relevant
categories. Respond with JSON only:
{{"keywords": ["auth", "token", "validation"],
"categories": ["SOLUTIONS/bug_fixes", "BEST_PRACTICES/security_guidelines"]}}"""


@dataclass
class RetrievalQuery:
    keywords: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.keywords and not self.categories


def _parse_json(text: str) -> dict | None:
    text = text.strip()
    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def validate_insights(raw: object) -> list[Insight]:
    """Keep well-formed insights inside the taxonomy, at most MAX_INSIGHTS."""
    if not isinstance(raw, list):
        return []
    valid: list[Insight] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        category = item.get("category")
        subcategory = item.get("subcategory")
        keywords = item.get("keywords")
        content = item.get("content")
        confidence = item.get("confidence")
        if not (
            isinstance(category, str)
            and isinstance(subcategory, str)
            and taxonomy.is_valid(category, subcategory)
            and isinstance(keywords, list)
            and keywords
            and all(isinstance(k, str) for k in keywords)
            and isinstance(content, str)
            and MIN_CONTENT_CHARS <= len(content) <= MAX_CONTENT_CHARS
            and isinstance(confidence, (int, float))
            and not isinstance(confidence, bool)
            and 0.1 <= confidence <= 1.0
        ):
            continue
        valid.append(Insight(category, subcategory, list(keywords), content, float(confidence)))
    return valid[:MAX_INSIGHTS]


class InsightExtractor:
    """LLM-backed extraction of insights and retrieval queries."""

    def __init__(self, engine: Engine | None) -> None:
        self.engine = engine

    def is_available(self) -> bool:
        return self.engine is not None

    async def _ask(self, system_prompt: str, message: str, **kwargs) -> dict | None:
        response = await self.engine.send(message, system_prompt=system_prompt, **kwargs)
        if not response.ok:
            logger.warning("Extraction call failed: %s", response.error)
            return None
        data = _parse_json(response.text)
        if data is None:
            logger.info("Unparseable extraction response: %.100s", response.text)
        return data

    async def extract_insights(self, text: str, context: dict | None = None) -> list[Insight]:
        """Insights worth remembering from a user prompt."""
        if not self.is_available() or not text.strip():
            return []
        message = f'Extract insights from user prompt: "{text}"'
        if context:
            message += f"\n\nContext: {json.dumps(context, ensure_ascii=False)}"
        system = PROMPT_SYSTEM_PROMPT.format(categories=taxonomy.describe_for_prompt())

        data = await self._ask(system, message, temperature=0.1, max_tokens=800)
        insights = validate_insights(data.get("insights")) if data else []
        if insights:
            logger.info("Extracted %d insights from user prompt", len(insights))
        return insights

    async def extract_from_reasoning(
        self, reasoning: str, context: dict | None = None
    ) -> list[Insight]:
        """Insights from an AI reasoning trace; short traces are ignored."""
        if not self.is_available() or len(reasoning) < MIN_REASONING_CHARS:
            return []
        context = context or {}
        if context.get("success"):
            outcome = "SUCCESS"
        elif context.get("error_occurred"):
            outcome = "ERROR"
        else:
            outcome = "UNKNOWN"
        user_prompt = context.get("user_prompt")
        system = REASONING_SYSTEM_PROMPT.format(
            categories=taxonomy.describe_for_prompt(),
            user_prompt=f'User asked: "{user_prompt}"' if user_prompt else "No user prompt",
            outcome=outcome,
            model=context.get("model_used") or "Unknown",
        )
        message = f"Analyze this AI reasoning:\n\n{reasoning[:MAX_REASONING_CHARS]}"

        data = await self._ask(system, message, temperature=0.2, max_tokens=600)
        insights = validate_insights(data.get("insights")) if data else []
        if insights:
            logger.info("Extracted %d insights from AI reasoning", len(insights))
        return insights

    async def extract_retrieval_query(self, text: str) -> RetrievalQuery:
        """Keywords (max 5) and bucket strings (max 3) to search for."""
        if not self.is_available() or not text.strip():
            return RetrievalQuery()
        system = RETRIEVAL_SYSTEM_PROMPT.format(categories=taxonomy.describe_for_prompt())
        message = f'Analyze for context retrieval: "{text}"'

        data = await self._ask(system, message, temperature=0.1, max_tokens=300)
        if not data:
            return RetrievalQuery()
        keywords = data.get("keywords")
        categories = data.get("categories")
        return RetrievalQuery(
            keywords=[k for k in keywords if isinstance(k, str)][:5]
            if isinstance(keywords, list)
            else [],
            categories=[c for c in categories if isinstance(c, str)][:3]
            if isinstance(categories, list)
            else [],
        )

    async def test_connection(self) -> bool:
        if not self.is_available():
            return False
        return await self.engine.health_check()
