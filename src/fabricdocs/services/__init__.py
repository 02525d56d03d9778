"""Service modules for fabricdocs."""

from fabricdocs.services.executor import (
    PatternExecutor,
    RetryState,
    RetryStep,
    is_transient_error,
    next_step,
)
from fabricdocs.services.runner import (
    AnthropicRunner,
    FabricRunner,
    PatternRunner,
    create_runner,
    locate_fabric,
)

__all__ = [
    "AnthropicRunner",
    "FabricRunner",
    "PatternExecutor",
    "PatternRunner",
    "RetryState",
    "RetryStep",
    "create_runner",
    "is_transient_error",
    "locate_fabric",
    "next_step",
]
