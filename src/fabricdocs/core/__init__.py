"""Core modules for fabricdocs."""

from fabricdocs.core.chunker import Chunker, aggregate_results
from fabricdocs.core.config import (
    ChunkingConfig,
    Config,
    FabricConfig,
    ProcessingConfig,
    get_config,
    load_config,
)
from fabricdocs.core.errors import (
    CatalogError,
    ConfigError,
    FabricDocsError,
    OutputError,
    PatternExecutionError,
    PatternRunError,
    PipelineError,
    ToolUnavailableError,
)
from fabricdocs.core.parser import ParseOptions, detect_format, normalize_text, parse_transcript
from fabricdocs.core.patterns import default_patterns, load_patterns, strategy_for
from fabricdocs.core.progress import ProgressStream

__all__ = [
    "CatalogError",
    "Chunker",
    "ChunkingConfig",
    "Config",
    "ConfigError",
    "FabricConfig",
    "FabricDocsError",
    "OutputError",
    "ParseOptions",
    "PatternExecutionError",
    "PatternRunError",
    "PipelineError",
    "ProcessingConfig",
    "ProgressStream",
    "ToolUnavailableError",
    "aggregate_results",
    "default_patterns",
    "detect_format",
    "get_config",
    "load_config",
    "load_patterns",
    "normalize_text",
    "parse_transcript",
    "strategy_for",
]
