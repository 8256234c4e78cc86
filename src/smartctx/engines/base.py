"""Engine protocol and shared types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass
class AgentResponse:
    """Response from an LLM engine."""

    text: str
    model: str | None = None
    error: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None


@runtime_checkable
class Engine(Protocol):
    """Protocol that all engine backends must implement."""

    @property
    def name(self) -> str: ...

    async def send(
        self,
        message: str,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.1,
        max_tokens: int | None = None,
    ) -> AgentResponse:
        """Send a message to the engine and return the response."""
        ...

    async def health_check(self) -> bool:
        """Check if the engine is available. Returns True if healthy."""
        ...
