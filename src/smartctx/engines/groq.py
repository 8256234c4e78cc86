"""Groq engine — OpenAI-compatible chat completions against api.groq.com."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass

from smartctx.engines.base import AgentResponse
from smartctx.errors import ExtractionError

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


@dataclass
class GroqEngine:
    """Groq Llama models through the `openai` SDK."""

    model: str = "llama-3.1-8b-instant"
    max_tokens: int = 800
    timeout: int = 30
    api_key: str | None = None
    base_url: str | None = None

    def __post_init__(self) -> None:
        try:
            from openai import OpenAI
        except ImportError:
            raise ImportError("openai package required. Install with: pip install 'smartctx[groq]'")

        key = self.api_key or os.environ.get("GROQ_API_KEY")
        if not key:
            raise ExtractionError("Groq API key required. Set GROQ_API_KEY")

        self._client = OpenAI(
            api_key=key,
            base_url=self.base_url or os.environ.get("GROQ_BASE_URL") or GROQ_BASE_URL,
            timeout=self.timeout,
        )

    @property
    def name(self) -> str:
        return "groq"

    async def send(
        self,
        message: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.1,
        max_tokens: int | None = None,
    ) -> AgentResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": message})

        try:
            response = await asyncio.to_thread(
                self._client.chat.completions.create,
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens or self.max_tokens,
            )
        except Exception as e:
            logger.error("Groq API error: %s", e)
            return AgentResponse(text="", error=f"Groq API error: {e}")

        text = response.choices[0].message.content if response.choices else ""
        return AgentResponse(text=text or "", model=response.model)

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(
                self._client.chat.completions.create,
                model=self.model,
                messages=[{"role": "user", "content": "test"}],
                max_tokens=1,
            )
            return True
        except Exception as e:
            logger.debug("Groq health check failed: %s", e)
            return False
