"""Extraction engines, selected by provider name."""

from __future__ import annotations

from collections.abc import Callable

from smartctx.config import EngineConfig
from smartctx.engines.base import AgentResponse, Engine


def _build_groq(config: EngineConfig) -> Engine:
    from smartctx.engines.groq import GroqEngine

    kwargs: dict = {"timeout": config.timeout, "max_tokens": config.max_tokens}
    if config.model:
        kwargs["model"] = config.model
    return GroqEngine(**kwargs)


def _build_anthropic(config: EngineConfig) -> Engine:
    from smartctx.engines.anthropic_api import AnthropicAPIEngine

    kwargs: dict = {"timeout": config.timeout, "max_tokens": config.max_tokens}
    if config.model:
        kwargs["model"] = config.model
    return AnthropicAPIEngine(**kwargs)


ENGINES: dict[str, Callable[[EngineConfig], Engine]] = {
    "groq": _build_groq,
    "anthropic_api": _build_anthropic,
}


def build_engine(config: EngineConfig) -> Engine:
    """Instantiate the engine registered under `config.name`."""
    factory = ENGINES.get(config.name)
    if factory is None:
        raise ValueError(f"Unknown engine: {config.name}. Available: {sorted(ENGINES)}")
    return factory(config)


__all__ = ["AgentResponse", "ENGINES", "Engine", "build_engine"]
