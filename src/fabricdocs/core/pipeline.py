"""Pattern pipeline for fabricdocs.

Orchestrates one submission: detect and normalize the transcript once,
chunk it if it is too long, run every pattern over it in concurrent batches,
and merge chunked outputs back into one document per pattern.

Per-pattern failures become error documents and the run carries on. The run
as a whole fails only when parsing breaks or the backend is unreachable.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import TypeVar

from fabricdocs.core.chunker import Chunker
from fabricdocs.core.errors import PatternExecutionError, PipelineError, ToolUnavailableError
from fabricdocs.core.models import (
    ContentMetadata,
    EventKind,
    NormalizedTranscript,
    Pattern,
    PatternResult,
    ProcessingRun,
    ProgressEvent,
    RunMethod,
    RunState,
)
from fabricdocs.core.parser import ParseOptions, parse_transcript
from fabricdocs.core.patterns import default_patterns
from fabricdocs.core.progress import ProgressSink
from fabricdocs.services.executor import PatternExecutor, format_context_header
from fabricdocs.utils.text import truncate_text

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 3


def create_batches(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split items into consecutive batches of at most batch_size.

    Raises:
        ValueError: If batch_size is not positive.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]


def error_document(pattern: Pattern, message: str) -> str:
    """Build the substitute document for a pattern that failed."""
    return (
        f"# Error executing {pattern.name}\n\n"
        f"{message}\n\n"
        "This pattern failed to process the transcript. The transcript was parsed "
        "successfully but the fabric pattern execution encountered an issue."
    )


def simulated_document(
    pattern: Pattern,
    metadata: ContentMetadata,
    transcript: NormalizedTranscript | None = None,
) -> str:
    """Build the labeled placeholder used when fabric is not installed."""
    title = pattern.name.replace("_", " ").title()
    lines = [
        f"# {title}",
        "",
        f"This is a simulated output for pattern: **{pattern.name}**",
        "",
    ]
    if metadata.title:
        lines.append(f"**Title**: {metadata.title}")
    if metadata.url:
        lines.append(f"**Source**: {metadata.url}")
    if transcript is not None:
        lines.append(
            f"**Transcript**: {transcript.format.value}, "
            f"{transcript.processed_chars:,} characters"
        )
    lines.extend(
        [
            "",
            "## Simulated Analysis",
            "",
            f"This pattern would normally run over the normalized transcript and "
            f"produce: {pattern.description.lower()}.",
            "",
            "**Note**: This is a simulation. Install the fabric CLI for actual "
            "processing: go install github.com/danielmiessler/fabric@latest",
            "",
            f"*Generated at: {datetime.now(timezone.utc).isoformat()}*",
        ]
    )
    return "\n".join(lines)


def _display_warning(message: str) -> None:
    """Display a warning message to stderr.

    Args:
        message: Warning message to display.
    """
    print(f"Warning: {message}", file=sys.stderr)


class PatternPipeline:
    """Runs the pattern sequence over one transcript.

    Example:
        >>> pipeline = PatternPipeline(PatternExecutor(FabricRunner()))
        >>> run = await pipeline.process(text, ContentMetadata(title="Talk"))
        >>> run.successful, run.total
        (13, 13)
    """

    def __init__(
        self,
        executor: PatternExecutor,
        patterns: Sequence[Pattern] | None = None,
        chunker: Chunker | None = None,
        parse_options: ParseOptions | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        simulate_when_unavailable: bool = True,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            executor: Runs individual patterns
            patterns: Pattern sequence; the built-in 13 when None
            chunker: Splits oversized transcripts
            parse_options: Normalization toggles
            batch_size: Patterns executed concurrently
            simulate_when_unavailable: Produce placeholders if fabric is missing
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.executor = executor
        self.patterns = list(patterns) if patterns is not None else default_patterns()
        self.chunker = chunker or Chunker()
        self.parse_options = parse_options or ParseOptions()
        self.batch_size = batch_size
        self.simulate_when_unavailable = simulate_when_unavailable

    def _new_run(self, content: str, metadata: ContentMetadata | None) -> ProcessingRun:
        return ProcessingRun(
            content=content,
            patterns=list(self.patterns),
            metadata=metadata or ContentMetadata(),
            started_at=datetime.now(timezone.utc),
        )

    def _parse(self, run: ProcessingRun, progress: ProgressSink | None) -> NormalizedTranscript:
        try:
            transcript = parse_transcript(run.content, self.parse_options)
        except Exception as e:
            self._fail(run, f"Transcript parsing failed: {e}", progress)
            raise PipelineError(run.error or str(e), run=run) from e

        run.transcript = transcript
        return transcript

    async def process(
        self,
        content: str,
        metadata: ContentMetadata | None = None,
        progress: ProgressSink | None = None,
    ) -> ProcessingRun:
        """Run every pattern over content.

        Args:
            content: Raw transcript text in any supported format.
            metadata: Optional source information.
            progress: Called once per completed pattern, and once if the run fails.

        Returns:
            The completed run. Individual patterns may carry error results.

        Raises:
            PipelineError: If the backend is unreachable (and simulation is
                disabled), parsing fails, or the transcript is empty.
        """
        run = self._new_run(content, metadata)

        if not await self.executor.is_available():
            if self.simulate_when_unavailable:
                _display_warning("fabric is not available, using simulation mode")
                return await self._simulate_run(run, progress)
            self._fail(run, "fabric is not available", progress)
            raise PipelineError(run.error or "", run=run)

        transcript = self._parse(run, progress)
        if not transcript.text:
            self._fail(run, "Transcript is empty after normalization", progress)
            raise PipelineError(run.error or "", run=run)

        run.state = RunState.PROCESSING

        text = transcript.text
        context: str | None = None
        stats: dict[str, int] = {}
        if self.chunker.needs_chunking(text):
            chunks = self.chunker.split(text)
            stats = self.chunker.chunking_stats(text, chunks)
            units = self.chunker.add_chunk_headers(chunks, run.metadata)
        else:
            units = [text]
            context = format_context_header(run.metadata, transcript) or None
        run.chunk_count = len(units)

        try:
            for batch in create_batches(run.patterns, self.batch_size):
                outcomes = await asyncio.gather(
                    *(
                        self._run_pattern(run, pattern, units, context, stats, progress)
                        for pattern in batch
                    ),
                    return_exceptions=True,
                )
                for outcome in outcomes:
                    if isinstance(outcome, BaseException):
                        raise outcome
        except ToolUnavailableError as e:
            self._fail(run, str(e), progress)
            raise PipelineError(f"fabric became unavailable: {e}", run=run) from e
        except Exception as e:
            self._fail(run, f"Unexpected error: {type(e).__name__}: {e}", progress)
            raise PipelineError(run.error or str(e), run=run) from e

        run.state = RunState.COMPLETED
        run.finished_at = datetime.now(timezone.utc)
        return run

    async def simulate(
        self,
        content: str,
        metadata: ContentMetadata | None = None,
        progress: ProgressSink | None = None,
    ) -> ProcessingRun:
        """Produce placeholder results for every pattern without calling fabric."""
        run = self._new_run(content, metadata)
        return await self._simulate_run(run, progress)

    async def _simulate_run(self, run: ProcessingRun, progress: ProgressSink | None) -> ProcessingRun:
        transcript = self._parse(run, progress)
        run.state = RunState.PROCESSING
        run.method = RunMethod.SIMULATION

        for pattern in run.patterns:
            run.results[pattern.filename] = PatternResult(
                content=simulated_document(pattern, run.metadata, transcript),
                pattern_name=pattern.name,
                phase=pattern.phase,
                description=pattern.description,
                simulated=True,
            )
            run.current += 1
            self._emit(
                progress,
                ProgressEvent(
                    kind=EventKind.PATTERN,
                    current=run.current,
                    total=run.total,
                    pattern_name=pattern.name,
                    phase=pattern.phase,
                    description=pattern.description,
                ),
            )
            # Yield so async progress consumers see events as they happen
            await asyncio.sleep(0)

        run.state = RunState.COMPLETED
        run.finished_at = datetime.now(timezone.utc)
        return run

    async def _run_pattern(
        self,
        run: ProcessingRun,
        pattern: Pattern,
        units: list[str],
        context: str | None,
        stats: dict[str, int],
        progress: ProgressSink | None,
    ) -> None:
        try:
            content = await self._execute_pattern(pattern, units, context, stats)
            result = PatternResult(
                content=content,
                pattern_name=pattern.name,
                phase=pattern.phase,
                description=pattern.description,
            )
            description = pattern.description
        except PatternExecutionError as e:
            _display_warning(f"Pattern {pattern.name} failed: {e}")
            result = PatternResult(
                content=error_document(pattern, str(e)),
                pattern_name=pattern.name,
                phase=pattern.phase,
                description=pattern.description,
                error=True,
            )
            description = f"Error: {e}"

        run.results[pattern.filename] = result
        run.current += 1
        self._emit(
            progress,
            ProgressEvent(
                kind=EventKind.PATTERN,
                current=run.current,
                total=run.total,
                pattern_name=pattern.name,
                phase=pattern.phase,
                description=description,
                error=result.error,
            ),
        )

    async def _execute_pattern(
        self,
        pattern: Pattern,
        units: list[str],
        context: str | None,
        stats: dict[str, int] | None = None,
    ) -> str:
        if len(units) == 1:
            return await self.executor.execute(pattern.name, units[0], context=context)

        outputs: list[str] = []
        failed_parts: list[int] = []
        for part, unit in enumerate(units, 1):
            try:
                outputs.append(await self.executor.execute(pattern.name, unit))
            except PatternExecutionError as e:
                failed_parts.append(part)
                _display_warning(
                    f"{pattern.name}: part {part} of {len(units)} failed: {truncate_text(str(e), 120)}"
                )

        if not outputs:
            raise PatternExecutionError(pattern.name, f"All {len(units)} chunks failed")

        combined = self.chunker.aggregate(outputs, pattern.aggregation)
        source_tokens = stats["original_tokens"] if stats else 0
        note = (
            f"*This content was processed in {len(units)} chunks due to length "
            f"({source_tokens:,} estimated tokens).*"
        )
        if failed_parts:
            note += f" *Parts {', '.join(str(p) for p in failed_parts)} failed and are not included.*"
        return f"{combined}\n\n---\n\n{note}"

    def _fail(self, run: ProcessingRun, message: str, progress: ProgressSink | None) -> None:
        run.state = RunState.FAILED
        run.error = message
        run.finished_at = datetime.now(timezone.utc)
        self._emit(
            progress,
            ProgressEvent(
                kind=EventKind.RUN_FAILED,
                current=run.current,
                total=run.total,
                description=f"Error: {message}",
                error=True,
            ),
        )

    @staticmethod
    def _emit(progress: ProgressSink | None, event: ProgressEvent) -> None:
        if progress is not None:
            progress(event)
