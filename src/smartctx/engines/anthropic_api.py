"""Anthropic API engine."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from smartctx.engines.base import AgentResponse

logger = logging.getLogger(__name__)


@dataclass
class AnthropicAPIEngine:
    """Direct Anthropic API via the `anthropic` SDK."""

    model: str = "claude-3-5-haiku-latest"
    max_tokens: int = 800
    timeout: int = 30

    def __post_init__(self) -> None:
        try:
            import anthropic

            self._client = anthropic.Anthropic(timeout=self.timeout)
        except ImportError:
            raise ImportError(
                "anthropic package required. Install with: pip install 'smartctx[anthropic]'"
            )

    @property
    def name(self) -> str:
        return "anthropic_api"

    async def send(
        self,
        message: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.1,
        max_tokens: int | None = None,
    ) -> AgentResponse:
        kwargs: dict = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": message}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = await asyncio.to_thread(self._client.messages.create, **kwargs)
        except Exception as e:
            logger.error("Anthropic API error: %s", e)
            return AgentResponse(text="", error=f"Anthropic API error: {e}")

        text = response.content[0].text if response.content else ""
        return AgentResponse(text=text, model=response.model)

    async def health_check(self) -> bool:
        try:
            response = await asyncio.to_thread(
                self._client.messages.create,
                model=self.model,
                max_tokens=1,
                messages=[{"role": "user", "content": "ping"}],
            )
            return bool(response.content)
        except Exception:
            return False
