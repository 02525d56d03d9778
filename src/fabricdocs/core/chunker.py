"""Transcript chunking and chunk-result aggregation.

Long transcripts are split into overlapping chunks at sentence or paragraph
boundaries so every fabric call stays inside the model's context window.
Each pattern's per-chunk outputs are merged back with a strategy that fits
the shape of that pattern's output.
"""

from __future__ import annotations

import re
from typing import Callable

from fabricdocs.core.models import (
    CHARS_PER_TOKEN,
    AggregationStrategy,
    Chunk,
    ContentMetadata,
    estimate_tokens,
)
from fabricdocs.core.patterns import strategy_for
from fabricdocs.utils.text import strip_markdown_headers

# Default chunking budget, in estimated tokens
DEFAULT_MAX_TOKENS_PER_CHUNK = 50000
DEFAULT_OVERLAP_TOKENS = 2000

# Characters searched on each side of the ideal cut for a boundary
DEFAULT_SEARCH_WINDOW = 1000

# Boundary patterns, most preferred first
SPLIT_PATTERNS = [
    re.compile(r"[.!?][\"')\]]*\s+"),  # sentence end
    re.compile(r"\n[^\S\n]*\n"),  # paragraph break
    re.compile(r"\n"),  # any newline
    re.compile(r"\s+"),  # any whitespace
]

# Aggregation limits
MAX_LIST_ITEMS = 20
MAX_TAGS = 20
MAX_BRIEF_SENTENCES = 5
BRIEF_SENTENCES_PER_PART = 2
DEDUP_PREFIX_CHARS = 30

_BULLET = re.compile(r"^(?:[-*•]|\d+[.)])\s+")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_TAG_SPLIT = re.compile(r"[,\n#]")


class Chunker:
    """Splits oversized text and merges per-chunk pattern outputs.

    Example:
        >>> chunker = Chunker(max_tokens_per_chunk=1000, overlap_tokens=100)
        >>> chunks = chunker.split(long_text)
        >>> "".join(chunk.core_text for chunk in chunks) == long_text
        True
    """

    def __init__(
        self,
        max_tokens_per_chunk: int = DEFAULT_MAX_TOKENS_PER_CHUNK,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
        chars_per_token: int = CHARS_PER_TOKEN,
        search_window: int = DEFAULT_SEARCH_WINDOW,
    ) -> None:
        """Initialize the chunker.

        Args:
            max_tokens_per_chunk: Token budget per chunk.
            overlap_tokens: Tokens of trailing context repeated in the next chunk.
            chars_per_token: Divisor used for token estimates.
            search_window: Characters searched around a cut for a boundary.

        Raises:
            ValueError: If the overlap does not fit inside the chunk budget.
        """
        if max_tokens_per_chunk <= 0 or chars_per_token <= 0:
            raise ValueError("Chunk budget and chars_per_token must be positive")
        if not 0 <= overlap_tokens < max_tokens_per_chunk:
            raise ValueError("overlap_tokens must be smaller than max_tokens_per_chunk")

        self.max_tokens_per_chunk = max_tokens_per_chunk
        self.overlap_tokens = overlap_tokens
        self.chars_per_token = chars_per_token
        self.search_window = max(search_window, 0)
        self.max_chars = max_tokens_per_chunk * chars_per_token
        self.overlap_chars = overlap_tokens * chars_per_token

    def estimate_tokens(self, text: str) -> int:
        """Estimate tokens with this chunker's characters-per-token ratio."""
        return estimate_tokens(text, self.chars_per_token)

    def needs_chunking(self, text: str) -> bool:
        """Return True when text exceeds the per-chunk token budget."""
        return self.estimate_tokens(text) > self.max_tokens_per_chunk

    def find_split_point(self, text: str, target: int, lo: int, hi: int) -> int:
        """Find the best boundary near target within text[lo:hi].

        Boundary kinds are tried in order of preference; within a kind the
        candidate closest to target wins. The split lands after the boundary
        so whitespace stays with the earlier chunk.

        Args:
            text: Full source text.
            target: Ideal cut position.
            lo: Lowest acceptable split position.
            hi: Highest acceptable split position.

        Returns:
            Split position, or target if no boundary exists in range.
        """
        for pattern in SPLIT_PATTERNS:
            best: int | None = None
            for match in pattern.finditer(text, lo, hi):
                position = match.end()
                if position <= lo:
                    continue
                if best is None or abs(position - target) < abs(best - target):
                    best = position
            if best is not None:
                return best
        return target

    def split(self, text: str) -> list[Chunk]:
        """Split text into overlapping chunks.

        Args:
            text: Normalized transcript text.

        Returns:
            Ordered chunks. Text within budget comes back as a single chunk.
        """
        if not self.needs_chunking(text):
            return [Chunk(text=text, index=0, total=1, start=0, end=len(text), core_start=0)]

        spans: list[tuple[int, int, int]] = []
        length = len(text)
        position = 0
        previous_end = 0

        while True:
            ideal_end = position + self.max_chars
            if ideal_end >= length:
                spans.append((position, length, previous_end))
                break

            lo = max(previous_end + 1, ideal_end - self.search_window)
            hi = min(length, ideal_end + self.search_window)
            end = self.find_split_point(text, ideal_end, lo, hi)
            if end <= previous_end:
                end = ideal_end

            spans.append((position, end, previous_end))
            if end >= length:
                break

            # Always move forward, even if the overlap would pull us back
            position = max(end - self.overlap_chars, position + 1)
            previous_end = end

        total = len(spans)
        return [
            Chunk(
                text=text[start:end],
                index=index,
                total=total,
                start=start,
                end=end,
                core_start=core_start,
            )
            for index, (start, end, core_start) in enumerate(spans)
        ]

    def split_into_chunks(self, text: str) -> list[str]:
        """Split text and return just the chunk strings."""
        return [chunk.text for chunk in self.split(text)]

    def add_chunk_headers(
        self,
        chunks: list[Chunk],
        metadata: ContentMetadata | None = None,
    ) -> list[str]:
        """Prefix each chunk with a "Part K of N" orientation header.

        Args:
            chunks: Chunks from split().
            metadata: Optional source metadata restated in every header.

        Returns:
            Chunk texts ready to send to the pattern executor.
        """
        return [_chunk_header(chunk, metadata) + chunk.text for chunk in chunks]

    def aggregate(
        self,
        results: list[str],
        strategy: AggregationStrategy | str,
    ) -> str:
        """Merge per-chunk outputs of one pattern into a single document.

        Args:
            results: Pattern output for each chunk, in chunk order.
            strategy: Aggregation strategy, or a pattern name to look up.

        Returns:
            Aggregated text. A single result is returned unchanged.
        """
        if not isinstance(strategy, AggregationStrategy):
            strategy = strategy_for(strategy)
        return aggregate_results(results, strategy)

    def chunking_stats(self, text: str, chunks: list[Chunk]) -> dict[str, int]:
        """Summarize a split for logging and processing notes."""
        token_counts = [self.estimate_tokens(chunk.text) for chunk in chunks]
        return {
            "original_length": len(text),
            "original_tokens": self.estimate_tokens(text),
            "total_chunks": len(chunks),
            "avg_chunk_tokens": round(sum(token_counts) / len(chunks)) if chunks else 0,
            "max_chunk_tokens": max(token_counts, default=0),
        }


def _chunk_header(chunk: Chunk, metadata: ContentMetadata | None) -> str:
    part = f"Part {chunk.index + 1} of {chunk.total}"

    if metadata is None:
        return f"# Transcript Analysis - {part}\n\n"

    lines = [f"# Content Analysis - {part}", ""]
    if metadata.title:
        lines.append(f"**Title**: {metadata.title}")
    if metadata.channel:
        lines.append(f"**Channel**: {metadata.channel}")
    if metadata.url:
        lines.append(f"**URL**: {metadata.url}")
    if metadata.content_type:
        lines.append(f"**Content Type**: {metadata.content_type}")
    lines.append(f"**Part**: {chunk.index + 1}/{chunk.total}")
    lines.append("")
    if chunk.index == 0:
        lines.append(
            f"**Note**: This is a long transcript that has been split into "
            f"{chunk.total} parts for processing."
        )
        lines.append("")
    lines.append(f"## Transcript (Part {chunk.index + 1})")
    lines.append("")
    return "\n".join(lines) + "\n"


def aggregate_results(results: list[str], strategy: AggregationStrategy) -> str:
    """Merge per-chunk outputs using the given strategy.

    Args:
        results: Pattern outputs in chunk order.
        strategy: How to merge them.

    Returns:
        A single aggregated document.
    """
    if not results:
        return ""
    if len(results) == 1:
        return results[0]
    return _STRATEGIES[strategy](results)


def _aggregate_summaries(results: list[str]) -> str:
    parts = [
        "# Comprehensive Summary",
        "",
        f"**Note**: This summary combines analysis from {len(results)} parts of long-form content.",
        "",
    ]
    for index, result in enumerate(results, 1):
        cleaned = strip_markdown_headers(result)
        if cleaned:
            parts.extend([f"## Part {index} Summary", "", cleaned, ""])

    parts.extend(
        [
            "## Overall Themes",
            "",
            f"This content spans {len(results)} segments, and the summaries above "
            "follow it from beginning to end.",
        ]
    )
    return "\n".join(parts)


def _aggregate_brief_summaries(results: list[str]) -> str:
    sentences: list[str] = []
    for result in results:
        candidates = [
            sentence.strip()
            for sentence in _SENTENCE_SPLIT.split(strip_markdown_headers(result))
            if len(sentence.strip()) > 10
        ]
        sentences.extend(candidates[:BRIEF_SENTENCES_PER_PART])

    selected = sentences[:MAX_BRIEF_SENTENCES]
    if not selected:
        return ""
    return ". ".join(selected) + "."


def _is_duplicate(point: str, collected: list[str]) -> bool:
    prefix = point[:DEDUP_PREFIX_CHARS].lower()
    return any(prefix in existing.lower() for existing in collected)


def _aggregate_extractions(results: list[str]) -> str:
    points: list[str] = []
    for result in results:
        for raw_line in strip_markdown_headers(result).split("\n"):
            line = raw_line.strip()
            if not (_BULLET.match(line) or len(line) > 20):
                continue
            point = _BULLET.sub("", line).strip()
            if len(point) > 10 and not _is_duplicate(point, points):
                points.append(point)

    header = f"# Comprehensive Analysis\n\n**Note**: Combined analysis from {len(results)} parts.\n\n"
    return header + "\n".join(f"- {point}" for point in points[:MAX_LIST_ITEMS])


def _aggregate_tags(results: list[str]) -> str:
    tags: dict[str, None] = {}
    for result in results:
        for tag in _TAG_SPLIT.split(strip_markdown_headers(result)):
            tag = tag.strip().lower()
            if len(tag) > 2:
                tags.setdefault(tag, None)
    return ", ".join(list(tags)[:MAX_TAGS])


def _aggregate_core_message(results: list[str]) -> str:
    messages = [message for message in map(strip_markdown_headers, results) if message]
    header = f"# Core Message\n\n**Synthesized from {len(messages)} parts:**\n\n"

    if len(messages) == 1:
        return header + messages[0]

    merged = " ".join(" ".join(message.split()) for message in messages)
    return header + f"This content conveys: {merged}"


def _aggregate_flashcards(results: list[str]) -> str:
    parts = [
        "# Comprehensive Flashcards",
        "",
        f"**Combined from {len(results)} parts:**",
        "",
    ]
    for index, result in enumerate(results, 1):
        cleaned = strip_markdown_headers(result)
        if cleaned:
            parts.extend([f"## Part {index} Cards", "", cleaned, ""])
    return "\n".join(parts)


def _aggregate_default(results: list[str]) -> str:
    parts = [
        "# Combined Analysis",
        "",
        f"**Note**: Analysis combined from {len(results)} parts.",
        "",
    ]
    for index, result in enumerate(results, 1):
        parts.extend([f"## Part {index}", "", result.strip(), "", "---", ""])
    return "\n".join(parts)


_STRATEGIES: dict[AggregationStrategy, Callable[[list[str]], str]] = {
    AggregationStrategy.SUMMARY: _aggregate_summaries,
    AggregationStrategy.BRIEF_SUMMARY: _aggregate_brief_summaries,
    AggregationStrategy.LIST_EXTRACTION: _aggregate_extractions,
    AggregationStrategy.TAG_SET: _aggregate_tags,
    AggregationStrategy.SYNTHESIS: _aggregate_core_message,
    AggregationStrategy.FLASHCARDS: _aggregate_flashcards,
    AggregationStrategy.DEFAULT: _aggregate_default,
}
