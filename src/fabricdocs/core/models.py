"""Data models for fabricdocs."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Rough characters-per-token ratio used for every size estimate
CHARS_PER_TOKEN = 4


def estimate_tokens(text: str, chars_per_token: int = CHARS_PER_TOKEN) -> int:
    """Estimate token count from character length.

    This is an approximation, not a tokenizer.
    """
    return math.ceil(len(text) / chars_per_token)


class TranscriptFormat(str, Enum):
    """Source format of a transcript."""

    VTT = "subtitle-vtt"
    SRT = "subtitle-srt"
    SPEAKER_LABELED = "speaker-labeled"
    PLATFORM_TIMESTAMPED = "platform-timestamped"
    GENERIC_TIMESTAMPED = "generic-timestamped"
    PLAIN_TEXT = "plain-text"
    EMPTY = "empty"


class AggregationStrategy(str, Enum):
    """How chunked outputs of a pattern are merged back together."""

    SUMMARY = "summary"
    BRIEF_SUMMARY = "brief-summary"
    LIST_EXTRACTION = "list-extraction"
    TAG_SET = "tag-set"
    SYNTHESIS = "synthesis"
    FLASHCARDS = "flashcards"
    DEFAULT = "default"


class RunState(str, Enum):
    """Lifecycle of a processing run."""

    STARTING = "starting"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RunMethod(str, Enum):
    """How a run produced its results."""

    DIRECT = "direct"
    SIMULATION = "simulation"


class EventKind(str, Enum):
    """Kinds of progress events."""

    PATTERN = "pattern"
    RUN_FAILED = "run-failed"


@dataclass(frozen=True)
class FormatDetection:
    """Result of transcript format detection."""

    format: TranscriptFormat
    confidence: float
    heuristics: frozenset[str] = frozenset()


@dataclass(frozen=True)
class NormalizedTranscript:
    """Cleaned transcript text plus structural metadata.

    Created once per submission and shared by every pattern execution.
    """

    text: str
    format: TranscriptFormat
    confidence: float
    speakers: frozenset[str] = frozenset()
    estimated_duration: float | None = None  # seconds
    original_chars: int = 0
    processed_chars: int = 0
    processing_notes: tuple[str, ...] = ()
    content_type: str = "general"
    heuristics: frozenset[str] = frozenset()

    @property
    def estimated_tokens(self) -> int:
        """Approximate token count of the cleaned text."""
        return estimate_tokens(self.text)


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of an oversized transcript.

    Attributes:
        text: The chunk text, including the overlap with the previous chunk.
        index: Zero-based position of the chunk.
        total: Number of chunks the source was split into.
        start: Offset of the chunk in the source text.
        end: End offset (exclusive) in the source text.
        core_start: Offset where the non-overlapping part begins.
    """

    text: str
    index: int
    total: int
    start: int
    end: int
    core_start: int

    @property
    def core_text(self) -> str:
        """Chunk text without the leading overlap region."""
        return self.text[self.core_start - self.start :]

    @property
    def overlap(self) -> int:
        """Number of characters shared with the previous chunk."""
        return self.core_start - self.start


@dataclass(frozen=True)
class Pattern:
    """A fixed fabric pattern descriptor."""

    name: str
    phase: int
    description: str
    filename: str
    aggregation: AggregationStrategy = AggregationStrategy.DEFAULT


@dataclass(frozen=True)
class ContentMetadata:
    """Optional context about where a transcript came from."""

    title: str | None = None
    url: str | None = None
    channel: str | None = None
    content_type: str | None = None


@dataclass
class PatternResult:
    """Output of one pattern for one submission."""

    content: str
    pattern_name: str
    phase: int
    description: str
    error: bool = False
    simulated: bool = False


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification published by the pipeline."""

    kind: EventKind
    current: int
    total: int
    pattern_name: str = ""
    phase: int | None = None
    description: str = ""
    error: bool = False


@dataclass
class ProcessingRun:
    """State of one submission through the pipeline."""

    content: str
    patterns: list[Pattern]
    metadata: ContentMetadata = field(default_factory=ContentMetadata)
    state: RunState = RunState.STARTING
    method: RunMethod = RunMethod.DIRECT
    current: int = 0
    results: dict[str, PatternResult] = field(default_factory=dict)
    transcript: NormalizedTranscript | None = None
    chunk_count: int = 1
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None

    @property
    def total(self) -> int:
        """Number of patterns in the run."""
        return len(self.patterns)

    @property
    def successful(self) -> int:
        """Number of patterns that produced a result without error."""
        return sum(1 for result in self.results.values() if not result.error)

    @property
    def failed(self) -> int:
        """Number of patterns that produced an error document."""
        return sum(1 for result in self.results.values() if result.error)

    @property
    def elapsed(self) -> float:
        """Wall-clock seconds between start and finish (or now)."""
        if self.started_at is None:
            return 0.0
        end = self.finished_at or datetime.now(self.started_at.tzinfo)
        return (end - self.started_at).total_seconds()
