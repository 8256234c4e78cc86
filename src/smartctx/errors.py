"""Exception types raised by smartctx."""

from __future__ import annotations


class SmartContextError(Exception):
    """Base class for all smartctx errors."""


class TreeError(SmartContextError):
    """Unexpected I/O failure while inspecting or changing the context tree."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class TaxonomyError(SmartContextError, ValueError):
    """A category or subcategory outside the fixed taxonomy."""


class StoreNotInitializedError(SmartContextError, RuntimeError):
    """The chunk store was used before initialize() resolved its root."""


class InvalidInsightError(SmartContextError, ValueError):
    """An insight failed validation and was not written."""


class ExtractionError(SmartContextError):
    """The extraction engine is misconfigured or unavailable."""
