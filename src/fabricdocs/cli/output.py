"""CLI output formatting utilities."""

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from fabricdocs.core.models import NormalizedTranscript, Pattern, ProcessingRun, RunMethod
from fabricdocs.core.patterns import PHASE_DESCRIPTIONS
from fabricdocs.utils.text import format_duration


def display_patterns(patterns: list[Pattern], console: Console) -> None:
    """Display the pattern catalog grouped by phase."""
    if not patterns:
        console.print("[yellow]No patterns configured.[/yellow]")
        return

    table = Table(title="Pattern Catalog")
    table.add_column("#", style="dim", width=4)
    table.add_column("Phase", style="magenta")
    table.add_column("Pattern", style="bold")
    table.add_column("Description")
    table.add_column("Aggregation", style="cyan")
    table.add_column("File", style="dim")

    ordered = sorted(enumerate(patterns, 1), key=lambda item: item[1].phase)
    for i, pattern in ordered:
        table.add_row(
            str(i),
            f"{pattern.phase}. {PHASE_DESCRIPTIONS.get(pattern.phase, '-')}",
            pattern.name,
            pattern.description,
            pattern.aggregation.value,
            pattern.filename,
        )

    console.print(table)


def display_detection(transcript: NormalizedTranscript, console: Console) -> None:
    """Display format analysis for a transcript."""
    table = Table(title="Transcript Analysis", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Format", transcript.format.value)
    table.add_row("Confidence", f"{transcript.confidence:.0%}")
    table.add_row("Speakers", ", ".join(sorted(transcript.speakers)) or "-")
    duration = transcript.estimated_duration
    table.add_row("Duration", format_duration(duration) if duration is not None else "-")
    table.add_row("Content type", transcript.content_type)
    table.add_row("Characters", f"{transcript.original_chars:,} -> {transcript.processed_chars:,}")
    table.add_row("Estimated tokens", f"{transcript.estimated_tokens:,}")
    table.add_row("Heuristics", ", ".join(sorted(transcript.heuristics)) or "-")

    console.print(table)

    for note in transcript.processing_notes:
        console.print(f"[dim]- {escape(note)}[/dim]")


def display_run_summary(run: ProcessingRun, console: Console) -> None:
    """Display per-pattern status and run totals."""
    table = Table(title="Processing Results")
    table.add_column("Phase", style="magenta", width=6)
    table.add_column("Pattern", style="bold")
    table.add_column("File", style="dim")
    table.add_column("Status")

    for pattern in run.patterns:
        result = run.results.get(pattern.filename)
        if result is None:
            status = "[dim]not run[/dim]"
        elif result.error:
            status = "[red]failed[/red]"
        elif result.simulated:
            status = "[yellow]simulated[/yellow]"
        else:
            status = "[green]ok[/green]"
        table.add_row(str(pattern.phase), pattern.name, pattern.filename, status)

    console.print(table)

    method = "simulation" if run.method is RunMethod.SIMULATION else "fabric"
    chunks = f", {run.chunk_count} chunks" if run.chunk_count > 1 else ""
    console.print(
        f"{run.successful}/{run.total} patterns successful in {run.elapsed:.1f}s "
        f"(method: {method}{chunks})"
    )
