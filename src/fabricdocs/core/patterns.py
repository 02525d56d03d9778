"""Pattern catalog for fabricdocs.

Holds the fabric pattern sequence used to turn a transcript into a document
set, the display names of its phases, and the table that maps each pattern to
the aggregation strategy used for chunked transcripts. A catalog can be loaded
from a TOML file; the built-in sequence is the fallback.
"""

from __future__ import annotations

import sys
import tomllib
from pathlib import Path
from typing import Any

from fabricdocs.core.errors import CatalogError
from fabricdocs.core.models import AggregationStrategy, Pattern

PHASE_DESCRIPTIONS: dict[int, str] = {
    1: "Primary Extraction",
    2: "Content Analysis",
    3: "Knowledge Graph Building",
    4: "Synthesis Materials",
}

# Pattern name -> how its chunked outputs are merged
AGGREGATION_STRATEGIES: dict[str, AggregationStrategy] = {
    "youtube_summary": AggregationStrategy.SUMMARY,
    "create_5_sentence_summary": AggregationStrategy.BRIEF_SUMMARY,
    "extract_wisdom": AggregationStrategy.LIST_EXTRACTION,
    "extract_insights": AggregationStrategy.LIST_EXTRACTION,
    "extract_ideas": AggregationStrategy.LIST_EXTRACTION,
    "extract_patterns": AggregationStrategy.LIST_EXTRACTION,
    "extract_recommendations": AggregationStrategy.LIST_EXTRACTION,
    "extract_predictions": AggregationStrategy.LIST_EXTRACTION,
    "extract_references": AggregationStrategy.LIST_EXTRACTION,
    "extract_questions": AggregationStrategy.LIST_EXTRACTION,
    "create_tags": AggregationStrategy.TAG_SET,
    "extract_core_message": AggregationStrategy.SYNTHESIS,
    "to_flashcards": AggregationStrategy.FLASHCARDS,
}

# (phase, name, description)
_DEFAULT_SEQUENCE: list[tuple[int, str, str]] = [
    (1, "youtube_summary", "Comprehensive video summary"),
    (1, "extract_core_message", "Central thesis and key messages"),
    (2, "extract_wisdom", "Life lessons and insights"),
    (2, "extract_insights", "Deep analytical observations"),
    (2, "extract_ideas", "Novel concepts and innovations"),
    (2, "extract_patterns", "Recurring themes and structures"),
    (2, "extract_recommendations", "Actionable guidance"),
    (2, "extract_predictions", "Future implications and trends"),
    (3, "extract_references", "People, organizations, and resources"),
    (3, "extract_questions", "Critical questions raised"),
    (3, "create_tags", "Comprehensive tagging system"),
    (4, "create_5_sentence_summary", "Ultra-concise overview"),
    (4, "to_flashcards", "Educational flashcards for learning"),
]


def strategy_for(pattern_name: str) -> AggregationStrategy:
    """Look up the aggregation strategy for a pattern name.

    Args:
        pattern_name: fabric pattern identifier.

    Returns:
        The mapped strategy, or DEFAULT for unknown patterns.
    """
    return AGGREGATION_STRATEGIES.get(pattern_name, AggregationStrategy.DEFAULT)


def make_pattern(
    name: str,
    phase: int,
    description: str,
    filename: str | None = None,
    aggregation: AggregationStrategy | str | None = None,
    position: int | None = None,
) -> Pattern:
    """Build a Pattern, resolving its filename and aggregation strategy.

    Args:
        name: fabric pattern identifier.
        phase: Display phase (1-4).
        description: Human description.
        filename: Output filename. Defaults to "NN-name.txt" when a position
            is given, otherwise "name.txt".
        aggregation: Explicit strategy; looked up from the name when omitted.
        position: One-based position in the catalog, used for the filename.

    Returns:
        Pattern descriptor.

    Raises:
        CatalogError: If the phase or aggregation value is invalid.
    """
    if phase not in PHASE_DESCRIPTIONS:
        raise CatalogError(
            f"Invalid phase {phase} for pattern '{name}'. "
            f"Valid phases: {', '.join(str(p) for p in PHASE_DESCRIPTIONS)}"
        )

    if filename is None:
        filename = f"{position:02d}-{name}.txt" if position is not None else f"{name}.txt"

    if aggregation is None:
        strategy = strategy_for(name)
    else:
        try:
            strategy = AggregationStrategy(aggregation)
        except ValueError as e:
            valid = ", ".join(s.value for s in AggregationStrategy)
            raise CatalogError(
                f"Invalid aggregation '{aggregation}' for pattern '{name}'. Valid options: {valid}"
            ) from e

    return Pattern(
        name=name,
        phase=phase,
        description=description,
        filename=filename,
        aggregation=strategy,
    )


def default_patterns() -> list[Pattern]:
    """Return the built-in 13-pattern document sequence."""
    return [
        make_pattern(name, phase, description, position=position)
        for position, (phase, name, description) in enumerate(_DEFAULT_SEQUENCE, 1)
    ]


def _display_warning(message: str) -> None:
    """Display a warning message to stderr.

    Args:
        message: Warning message to display.
    """
    print(f"Warning: {message}", file=sys.stderr)


def _parse_catalog(data: dict[str, Any], source: Path) -> list[Pattern]:
    entries = data.get("patterns")
    if not isinstance(entries, list) or not entries:
        raise CatalogError(f"Pattern catalog {source} has no [[patterns]] entries")

    patterns: list[Pattern] = []
    for position, entry in enumerate(entries, 1):
        if not isinstance(entry, dict):
            raise CatalogError(f"Pattern entry {position} in {source} is not a table")
        name = entry.get("name")
        phase = entry.get("phase")
        if not isinstance(name, str) or not name.strip():
            raise CatalogError(f"Pattern entry {position} in {source} is missing a name")
        if not isinstance(phase, int):
            raise CatalogError(f"Pattern '{name}' in {source} must have an integer phase")

        patterns.append(
            make_pattern(
                name=name.strip(),
                phase=phase,
                description=str(entry.get("description", name)),
                filename=entry.get("filename"),
                aggregation=entry.get("aggregation"),
                position=position,
            )
        )

    filenames = [pattern.filename for pattern in patterns]
    duplicates = sorted({f for f in filenames if filenames.count(f) > 1})
    if duplicates:
        raise CatalogError(f"Duplicate output filenames in {source}: {', '.join(duplicates)}")

    return patterns


def load_patterns(path: Path | None = None, warn_on_fallback: bool = True) -> list[Pattern]:
    """Load the pattern catalog from a TOML file.

    Falls back to the built-in sequence when no path is given or the file
    does not exist. A file that exists but is malformed is an error.

    Args:
        path: Catalog file path.
        warn_on_fallback: If True, warn when a configured file is missing.

    Returns:
        Ordered list of patterns.

    Raises:
        CatalogError: If the file cannot be parsed or has invalid entries.
    """
    if path is None:
        return default_patterns()

    if not path.exists():
        if warn_on_fallback:
            _display_warning(f"Pattern catalog {path} not found. Using built-in patterns.")
        return default_patterns()

    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as e:
        raise CatalogError(f"Invalid TOML in pattern catalog {path}: {e}") from e

    return _parse_catalog(data, path)
