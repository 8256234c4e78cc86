"""Configuration loading from environment variables and smartctx.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_CONFIG_FILENAME = "smartctx.toml"


@dataclass
class EngineConfig:
    """Configuration for the extraction engine."""

    name: str = "groq"
    model: str | None = None
    timeout: int = 30
    max_tokens: int = 800


@dataclass
class StoreConfig:
    """Chunk store configuration."""

    context_dir: Path | None = None  # None: discover from the working directory
    max_content_chars: int = 300
    recency_limit: int = 1000
    scan_limit: int = 100
    max_chunks: int = 6


@dataclass
class SmartContextConfig:
    """Top-level smartctx configuration."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> SmartContextConfig:
    """Load configuration from environment variables and optional smartctx.toml.

    Priority: environment variables > smartctx.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".smartctx" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    engine_data = file_data.get("engine", {})
    store_data = file_data.get("store", {})

    context_dir = os.getenv("SMARTCTX_CONTEXT_DIR", store_data.get("context_dir"))

    return SmartContextConfig(
        engine=EngineConfig(
            name=os.getenv("SMARTCTX_ENGINE", engine_data.get("name", "groq")),
            model=os.getenv("SMARTCTX_MODEL", engine_data.get("model")),
            timeout=int(os.getenv("SMARTCTX_TIMEOUT", engine_data.get("timeout", 30))),
            max_tokens=int(engine_data.get("max_tokens", 800)),
        ),
        store=StoreConfig(
            context_dir=Path(context_dir).expanduser() if context_dir else None,
            max_content_chars=int(store_data.get("max_content_chars", 300)),
            recency_limit=int(store_data.get("recency_limit", 1000)),
            scan_limit=int(store_data.get("scan_limit", 100)),
            max_chunks=int(os.getenv("SMARTCTX_MAX_CHUNKS", store_data.get("max_chunks", 6))),
        ),
        log_level=os.getenv("SMARTCTX_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
