"""Document set writer for fabricdocs.

Writes a finished run to its own folder: one file per pattern result, an
index.md grouping the files by phase, and a metadata.yaml describing the
transcript and the run.
"""

from __future__ import annotations

import re
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from fabricdocs.core.errors import OutputError
from fabricdocs.core.models import ProcessingRun, RunMethod
from fabricdocs.core.patterns import PHASE_DESCRIPTIONS
from fabricdocs.utils.text import format_duration

# Maximum length of a sanitized folder name component
MAX_COMPONENT_LENGTH = 30

DEFAULT_FOLDER_TITLE = "transcript"

_UNSAFE_CHARS = re.compile(r'[/\\:*?"<>|\s]+')
_UNDERSCORE_RUNS = re.compile(r"_{2,}")


def sanitize_path_component(value: str, max_length: int = MAX_COMPONENT_LENGTH) -> str:
    """Make value safe to use as a single folder name component.

    Path separators, reserved characters and whitespace become underscores,
    underscore runs collapse to one, and the result is trimmed and cut to
    max_length.

    Args:
        value: Raw text, typically a title.
        max_length: Maximum length of the result.

    Returns:
        Sanitized component, possibly empty.
    """
    cleaned = _UNSAFE_CHARS.sub("_", value)
    cleaned = _UNDERSCORE_RUNS.sub("_", cleaned)
    cleaned = cleaned.strip("_. ")
    return cleaned[:max_length].rstrip("_. ")


def run_folder_name(run: ProcessingRun, today: date | None = None) -> str:
    """Return the `<YYYY-MM-DD>_<title>` folder name for a run."""
    today = today or date.today()
    title = sanitize_path_component(run.metadata.title or "") or DEFAULT_FOLDER_TITLE
    return f"{today.isoformat()}_{title}"


def _unique_path(path: Path) -> Path:
    if not path.exists():
        return path
    counter = 2
    while True:
        candidate = path.with_name(f"{path.name}-{counter}")
        if not candidate.exists():
            return candidate
        counter += 1


def build_metadata(run: ProcessingRun) -> dict[str, Any]:
    """Collect the metadata.yaml contents for a run.

    Args:
        run: A finished processing run.

    Returns:
        Plain dictionary safe for yaml.dump.
    """
    data: dict[str, Any] = {}
    if run.metadata.title:
        data["title"] = run.metadata.title
    if run.metadata.url:
        data["url"] = run.metadata.url
    if run.metadata.channel:
        data["channel"] = run.metadata.channel

    transcript = run.transcript
    if transcript is not None:
        data["format"] = transcript.format.value
        data["confidence"] = round(transcript.confidence, 2)
        data["speakers"] = sorted(transcript.speakers)
        if transcript.estimated_duration is not None:
            data["duration"] = format_duration(transcript.estimated_duration)
        data["content_type"] = run.metadata.content_type or transcript.content_type
        data["original_chars"] = transcript.original_chars
        data["processed_chars"] = transcript.processed_chars
        data["processing_notes"] = list(transcript.processing_notes)

    data["method"] = run.method.value
    data["state"] = run.state.value
    data["chunks"] = run.chunk_count
    data["total"] = run.total
    data["successful"] = run.successful
    data["failed"] = run.failed
    data["elapsed_seconds"] = round(run.elapsed, 2)
    if run.started_at is not None:
        data["started_at"] = run.started_at.isoformat()

    data["patterns"] = [
        {
            "name": pattern.name,
            "file": pattern.filename,
            "phase": pattern.phase,
            "status": _pattern_status(run, pattern.filename),
        }
        for pattern in run.patterns
    ]
    return data


def _pattern_status(run: ProcessingRun, filename: str) -> str:
    result = run.results.get(filename)
    if result is None:
        return "missing"
    if result.error:
        return "error"
    if result.simulated:
        return "simulated"
    return "ok"


def build_index(run: ProcessingRun) -> str:
    """Render index.md listing the generated files grouped by phase."""
    heading = run.metadata.title or "Transcript Analysis"
    lines = [f"# {heading}", ""]
    if run.metadata.url:
        lines.append(f"**Source**: {run.metadata.url}")
    if run.metadata.channel:
        lines.append(f"**Channel**: {run.metadata.channel}")
    lines.append(f"**Patterns**: {run.successful}/{run.total} successful")
    if run.method is RunMethod.SIMULATION:
        lines.append("**Note**: Simulation run, outputs are placeholders.")
    lines.extend(["", "## Files Generated", ""])

    for phase, phase_name in PHASE_DESCRIPTIONS.items():
        in_phase = [p for p in run.patterns if p.phase == phase and p.filename in run.results]
        if not in_phase:
            continue
        lines.append(f"### Phase {phase}: {phase_name}")
        lines.append("")
        for pattern in in_phase:
            marker = " (failed)" if run.results[pattern.filename].error else ""
            lines.append(f"- **{pattern.filename}** - {pattern.description}{marker}")
        lines.append("")

    return "\n".join(lines)


def write_run(run: ProcessingRun, output_dir: Path, today: date | None = None) -> Path:
    """Write a run's document set to a new folder under output_dir.

    Args:
        run: A finished processing run.
        output_dir: Parent directory for run folders.
        today: Date used in the folder name; today when None.

    Returns:
        Path to the created folder.

    Raises:
        OutputError: If the folder or its files cannot be written.
    """
    folder = _unique_path(output_dir / run_folder_name(run, today))

    metadata_yaml = yaml.dump(
        build_metadata(run),
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
        width=80,
    )

    try:
        folder.mkdir(parents=True, exist_ok=False)
        for filename, result in run.results.items():
            (folder / filename).write_text(result.content, encoding="utf-8")
        (folder / "index.md").write_text(build_index(run), encoding="utf-8")
        (folder / "metadata.yaml").write_text(metadata_yaml, encoding="utf-8")
    except OSError as e:
        raise OutputError(f"Could not write results to {folder}: {e}") from e

    return folder
