"""Custom exceptions for fabricdocs."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fabricdocs.core.models import ProcessingRun


class FabricDocsError(Exception):
    """Base exception for all fabricdocs errors."""

    pass


class ConfigError(FabricDocsError):
    """Configuration-related errors."""

    pass


class CatalogError(FabricDocsError):
    """Pattern catalog errors."""

    pass


class PatternRunError(FabricDocsError):
    """A single pattern invocation against one model failed.

    The message is kept verbatim from the backend so callers can inspect it
    for rate-limit and overload signals.
    """

    pass


class ToolUnavailableError(FabricDocsError):
    """The pattern backend cannot be reached at all (binary or key missing)."""

    pass


class PatternExecutionError(FabricDocsError):
    """Every model in the fallback chain failed on every attempt."""

    def __init__(self, pattern_name: str, message: str, attempts: list[str] | None = None) -> None:
        super().__init__(message)
        self.pattern_name = pattern_name
        self.attempts = attempts or []


class PipelineError(FabricDocsError):
    """A processing run failed before or outside pattern execution."""

    def __init__(self, message: str, run: ProcessingRun | None = None) -> None:
        super().__init__(message)
        self.run = run


class OutputError(FabricDocsError):
    """File output errors."""

    pass
