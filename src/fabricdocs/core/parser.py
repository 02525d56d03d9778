"""Transcript format detection and normalization.

Recognizes subtitle files (WebVTT, SRT), speaker-labeled dialogue,
bracket-timestamped platform exports, generic timestamped lines and plain
text, and turns any of them into clean prose for the pattern pipeline.
Parsing never raises for string input.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

from fabricdocs.core.models import FormatDetection, NormalizedTranscript, TranscriptFormat
from fabricdocs.utils.text import format_duration, timestamp_to_seconds

# Confidence reported when nothing structural matched
PLAIN_TEXT_CONFIDENCE = 0.8

# Longest repeated phrase (in words) collapsed by repetition removal
MAX_REPEAT_PHRASE = 4

_VTT_TIME = r"(?:\d{2}:)?\d{2}:\d{2}\.\d{3}"
_SRT_TIME = r"\d{2}:\d{2}:\d{2},\d{3}"
_SPEAKER_LABEL = r"[A-Za-z][\w .'&-]{0,39}?"

# Structural patterns, checked in priority order
FORMAT_PATTERNS: list[tuple[TranscriptFormat, re.Pattern[str]]] = [
    (
        TranscriptFormat.VTT,
        re.compile(rf"^WEBVTT\b|^{_VTT_TIME}[ \t]*-->[ \t]*{_VTT_TIME}", re.MULTILINE),
    ),
    (
        TranscriptFormat.SRT,
        re.compile(rf"^\d+[ \t]*\r?\n{_SRT_TIME}[ \t]*-->[ \t]*{_SRT_TIME}", re.MULTILINE),
    ),
    (
        TranscriptFormat.SPEAKER_LABELED,
        re.compile(rf"^{_SPEAKER_LABEL}:[ \t]+\S", re.MULTILINE),
    ),
    (
        TranscriptFormat.PLATFORM_TIMESTAMPED,
        re.compile(r"^\[(?:\d{1,2}:)?\d{2}:\d{2}\]", re.MULTILINE),
    ),
    (
        TranscriptFormat.GENERIC_TIMESTAMPED,
        re.compile(r"^\d{1,2}:\d{2}(?::\d{2})?[ \t]+", re.MULTILINE),
    ),
]

# Per-line markers used for confidence scoring, keyed by heuristic name
LINE_MARKERS: dict[TranscriptFormat, dict[str, re.Pattern[str]]] = {
    TranscriptFormat.VTT: {
        "webvtt-header": re.compile(r"^WEBVTT\b"),
        "cue-timing": re.compile(r"-->"),
    },
    TranscriptFormat.SRT: {
        "cue-index": re.compile(r"^\d+$"),
        "cue-timing": re.compile(r"-->"),
    },
    TranscriptFormat.SPEAKER_LABELED: {
        "speaker-label": re.compile(rf"^{_SPEAKER_LABEL}:[ \t]+\S"),
    },
    TranscriptFormat.PLATFORM_TIMESTAMPED: {
        "bracket-timestamp": re.compile(r"^\[(?:\d{1,2}:)?\d{2}:\d{2}\]"),
    },
    TranscriptFormat.GENERIC_TIMESTAMPED: {
        "leading-timestamp": re.compile(r"^\d{1,2}:\d{2}(?::\d{2})?\s+"),
    },
}

# Non-speech annotations removed during normalization
NOISE_WORDS = [
    "music",
    "applause",
    "laughter",
    "laughs",
    "inaudible",
    "background noise",
    "static",
    "silence",
    "crosstalk",
    "cheering",
]
NOISE_PATTERN = re.compile(
    r"[\[(]\s*(?:" + "|".join(re.escape(word) for word in NOISE_WORDS) + r")\s*[\])]",
    re.IGNORECASE,
)

# Keyword heuristics for the informational content-type guess
CONTENT_TYPE_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("educational", ("lesson", "tutorial", "learn", "explain")),
    ("presentation", ("presentation", "slide", "today we will", "agenda")),
    ("podcast", ("podcast", "episode", "welcome back")),
]

_VOICE_TAG = re.compile(r"<v(?:\.[\w.-]+)?\s+([^>]+)>")
_INLINE_TAG = re.compile(r"</?[^>]+>")
_VTT_TIMESTAMP = re.compile(_VTT_TIME)
_SRT_TIMESTAMP = re.compile(_SRT_TIME)
_SPEAKER_LINE = re.compile(rf"^({_SPEAKER_LABEL}):[ \t]+(.+)$")
_PLATFORM_STAMP = re.compile(r"^\[((?:\d{1,2}:)?\d{2}:\d{2})\]\s*")
_GENERIC_STAMP = re.compile(r"^(\d{1,2}:\d{2}(?::\d{2})?)\s+")
_HORIZONTAL_SPACE = re.compile(r"[^\S\n]+")
_BLANK_RUNS = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class ParseOptions:
    """Options controlling transcript normalization.

    Attributes:
        keep_noise: Keep non-speech markers such as [Music].
        keep_repetition: Keep back-to-back repeated words and phrases.
        force_format: Skip detection and parse as this format.
    """

    keep_noise: bool = False
    keep_repetition: bool = False
    force_format: TranscriptFormat | None = None


@dataclass
class _Extraction:
    """Intermediate result of a format-specific extraction."""

    text: str
    speakers: list[str]
    last_timestamp: str | None = None


def detect_format(content: str) -> FormatDetection:
    """Detect the structural format of a transcript.

    Args:
        content: Raw transcript text.

    Returns:
        FormatDetection with format, confidence and the heuristics that fired.
    """
    clean = content.strip()
    if not clean:
        return FormatDetection(TranscriptFormat.EMPTY, 1.0)

    for transcript_format, pattern in FORMAT_PATTERNS:
        if pattern.search(clean):
            confidence, heuristics = _score_format(clean, transcript_format)
            return FormatDetection(transcript_format, confidence, heuristics)

    return FormatDetection(TranscriptFormat.PLAIN_TEXT, PLAIN_TEXT_CONFIDENCE)


def _score_format(content: str, transcript_format: TranscriptFormat) -> tuple[float, frozenset[str]]:
    """Score how much of the content carries the format's line markers."""
    lines = [line.strip() for line in content.split("\n") if line.strip()]
    markers = LINE_MARKERS[transcript_format]

    matching = 0
    fired: set[str] = set()
    for line in lines:
        hits = [name for name, marker in markers.items() if marker.search(line)]
        if hits:
            matching += 1
            fired.update(hits)

    confidence = min(matching / max(len(lines) * 0.3, 1), 1.0)
    return confidence, frozenset(fired)


def _extract_vtt(content: str) -> _Extraction:
    lines: list[str] = []
    speakers: list[str] = []
    last_timestamp = None
    in_note = False

    for raw_line in content.split("\n"):
        line = raw_line.strip()
        if not line:
            in_note = False
            continue
        if in_note or line.startswith("WEBVTT"):
            continue
        if line.startswith(("NOTE", "STYLE", "REGION")):
            in_note = True
            continue
        if "-->" in line:
            stamps = _VTT_TIMESTAMP.findall(line)
            if len(stamps) >= 2:
                last_timestamp = stamps[1]
            continue

        voice = _VOICE_TAG.search(line)
        if voice:
            speaker = voice.group(1).strip()
            if speaker not in speakers:
                speakers.append(speaker)
            text = _INLINE_TAG.sub("", line).strip()
            if text:
                lines.append(f"{speaker}: {text}")
            continue

        text = _INLINE_TAG.sub("", line).strip()
        # Cue identifiers sit alone on the line before the timing line
        if text and not text.isdigit():
            lines.append(text)

    return _Extraction(" ".join(lines), speakers, last_timestamp)


def _extract_srt(content: str) -> _Extraction:
    lines: list[str] = []
    last_timestamp = None
    in_text_block = False

    for raw_line in content.split("\n"):
        line = raw_line.strip()
        if not line:
            in_text_block = False
            continue
        if line.isdigit() and not in_text_block:
            continue
        if "-->" in line:
            stamps = _SRT_TIMESTAMP.findall(line)
            if len(stamps) >= 2:
                last_timestamp = stamps[1]
            in_text_block = True
            continue
        if in_text_block:
            text = _INLINE_TAG.sub("", line).strip()
            if text:
                lines.append(text)

    return _Extraction(" ".join(lines), [], last_timestamp)


def _extract_speaker_labeled(content: str) -> _Extraction:
    lines: list[str] = []
    speakers: list[str] = []

    for raw_line in content.split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        match = _SPEAKER_LINE.match(line)
        if match:
            speaker = match.group(1).strip()
            if speaker not in speakers:
                speakers.append(speaker)
            lines.append(f"{speaker}: {match.group(2).strip()}")
        else:
            lines.append(line)

    return _Extraction("\n".join(lines), speakers)


def _extract_stamped(content: str, stamp: re.Pattern[str]) -> _Extraction:
    lines: list[str] = []
    last_timestamp = None

    for raw_line in content.split("\n"):
        line = raw_line.strip()
        if not line:
            continue
        match = stamp.match(line)
        if match:
            last_timestamp = match.group(1)
            line = line[match.end() :]
        if line:
            lines.append(line)

    return _Extraction(" ".join(lines), [], last_timestamp)


def _extract_plain(content: str) -> _Extraction:
    return _Extraction(content.strip(), [])


_EXTRACTORS: dict[TranscriptFormat, Callable[[str], _Extraction]] = {
    TranscriptFormat.VTT: _extract_vtt,
    TranscriptFormat.SRT: _extract_srt,
    TranscriptFormat.SPEAKER_LABELED: _extract_speaker_labeled,
    TranscriptFormat.PLATFORM_TIMESTAMPED: lambda text: _extract_stamped(text, _PLATFORM_STAMP),
    TranscriptFormat.GENERIC_TIMESTAMPED: lambda text: _extract_stamped(text, _GENERIC_STAMP),
    TranscriptFormat.PLAIN_TEXT: _extract_plain,
    TranscriptFormat.EMPTY: _extract_plain,
}


def _repeat_size(lowered: list[str], i: int) -> int:
    """Length of the shortest phrase starting at i that is immediately repeated."""
    for size in range(1, MAX_REPEAT_PHRASE + 1):
        if i + 2 * size > len(lowered):
            return 0
        if lowered[i : i + size] == lowered[i + size : i + 2 * size]:
            return size
    return 0


def _collapse_repeats(words: list[str]) -> list[str]:
    """Drop one copy of every phrase of 1-4 words that repeats back-to-back."""
    result: list[str] = []
    lowered = [word.lower() for word in words]
    i = 0
    while i < len(words):
        size = _repeat_size(lowered, i)
        if size:
            i += size
        else:
            result.append(words[i])
            i += 1
    return result


def remove_repetition(text: str) -> str:
    """Remove stutter repetitions line by line until nothing changes.

    Args:
        text: Whitespace-normalized text.

    Returns:
        Text with back-to-back duplicate words and short phrases collapsed.
    """
    lines = []
    for line in text.split("\n"):
        words = line.split()
        while True:
            collapsed = _collapse_repeats(words)
            if len(collapsed) == len(words):
                break
            words = collapsed
        lines.append(" ".join(words))
    return "\n".join(lines)


def _collapse_whitespace(text: str) -> str:
    text = _HORIZONTAL_SPACE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    return _BLANK_RUNS.sub("\n\n", text).strip()


def normalize_text(text: str, options: ParseOptions | None = None) -> str:
    """Apply format-independent cleaning to extracted transcript text.

    Removes noise markers, collapses whitespace and blank lines, and removes
    repeated words and phrases. Applying it twice gives the same result as
    applying it once.

    Args:
        text: Extracted transcript text.
        options: Normalization toggles. Defaults apply both cleanups.

    Returns:
        Cleaned text.
    """
    options = options or ParseOptions()

    # Removing one marker or repeat can expose another, so run to a fixed point
    while True:
        cleaned = _normalize_once(text, options)
        if cleaned == text:
            return cleaned
        text = cleaned


def _normalize_once(text: str, options: ParseOptions) -> str:
    if not options.keep_noise:
        text = NOISE_PATTERN.sub("", text)

    text = _collapse_whitespace(text)

    if not options.keep_repetition:
        text = remove_repetition(text)

    return text


def estimate_content_type(text: str, speakers: frozenset[str] | set[str] = frozenset()) -> str:
    """Guess the kind of content for display purposes only.

    Args:
        text: Cleaned transcript text.
        speakers: Detected speaker names.

    Returns:
        One of educational, interview, presentation, podcast, general.
    """
    lowered = text.lower()

    educational_words = CONTENT_TYPE_KEYWORDS[0][1]
    if any(word in lowered for word in educational_words):
        return "educational"

    if len(speakers) >= 2 or "interview" in lowered or "conversation" in lowered:
        return "interview"

    for content_type, keywords in CONTENT_TYPE_KEYWORDS[1:]:
        if any(word in lowered for word in keywords):
            return content_type

    return "general"


def _processing_notes(
    transcript_format: TranscriptFormat,
    speakers: list[str],
    duration: float | None,
    original_chars: int,
    processed_chars: int,
) -> tuple[str, ...]:
    notes = [f"Original format: {transcript_format.value}"]

    if speakers:
        notes.append(f"Detected speakers: {', '.join(speakers)}")

    if duration:
        notes.append(f"Estimated duration: {format_duration(duration)}")

    if original_chars:
        reduction = round((1 - processed_chars / original_chars) * 100)
        if reduction > 0:
            notes.append(f"Content cleaned: {reduction}% reduction")

    return tuple(notes)


def parse_transcript(content: str, options: ParseOptions | None = None) -> NormalizedTranscript:
    """Detect the format of a transcript and normalize it.

    Args:
        content: Raw transcript text in any supported format.
        options: Normalization options.

    Returns:
        NormalizedTranscript ready for chunking and pattern execution.
    """
    options = options or ParseOptions()
    detection = detect_format(content)
    transcript_format = options.force_format or detection.format

    extraction = _EXTRACTORS[transcript_format](content)
    text = normalize_text(extraction.text, options)

    duration = None
    if extraction.last_timestamp:
        duration = timestamp_to_seconds(extraction.last_timestamp)

    original_chars = len(content)
    processed_chars = len(text)

    return NormalizedTranscript(
        text=text,
        format=transcript_format,
        confidence=detection.confidence,
        speakers=frozenset(extraction.speakers),
        estimated_duration=duration,
        original_chars=original_chars,
        processed_chars=processed_chars,
        processing_notes=_processing_notes(
            transcript_format,
            extraction.speakers,
            duration,
            original_chars,
            processed_chars,
        ),
        content_type=estimate_content_type(text, frozenset(extraction.speakers)),
        heuristics=detection.heuristics,
    )
