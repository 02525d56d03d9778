"""Main CLI application for fabricdocs."""

import asyncio
import sys
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from fabricdocs.core.config import Config, Verbosity, get_config, load_config
from fabricdocs.core.errors import ConfigError

app = typer.Typer(
    name="fabricdocs",
    help="Turn transcripts into document sets with fabric patterns.",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


class State:
    """Global CLI state."""

    def __init__(self) -> None:
        self.verbosity: Verbosity = Verbosity.NORMAL
        self.config: Config | None = None


state = State()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from fabricdocs import __version__

        console.print(f"fabricdocs version {__version__}")
        raise typer.Exit()


def _read_source(source: str) -> str:
    """Read transcript text from a file path, or stdin for "-"."""
    if source == "-":
        return sys.stdin.read()

    path = Path(source)
    if not path.is_file():
        error_console.print(f"[red]Error:[/red] File not found: {escape(source)}")
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8", errors="replace")


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress all output except errors"),
    ] = False,
    config_path: Annotated[
        str | None,
        typer.Option("--config", help="Path to configuration file"),
    ] = None,
    version: Annotated[  # noqa: ARG001
        bool,
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    """fabricdocs - transcript to document set processor."""
    if quiet:
        state.verbosity = Verbosity.QUIET
    elif verbose:
        state.verbosity = Verbosity.VERBOSE
    else:
        state.verbosity = Verbosity.NORMAL

    try:
        if config_path:
            state.config = load_config(local_path=Path(config_path), auto_create_local=False)
        else:
            state.config = get_config()
    except ConfigError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


@app.command()
def process(
    source: Annotated[str, typer.Argument(help="Transcript file, or - for stdin")],
    title: Annotated[str | None, typer.Option("--title", "-t", help="Content title")] = None,
    url: Annotated[str | None, typer.Option("--url", help="Source URL")] = None,
    channel: Annotated[str | None, typer.Option("--channel", help="Channel or author")] = None,
    content_type: Annotated[
        str | None,
        typer.Option("--content-type", help="Content type hint, e.g. interview"),
    ] = None,
    output_dir: Annotated[
        str | None,
        typer.Option("--output-dir", "-o", help="Output directory for document sets"),
    ] = None,
    models: Annotated[
        list[str] | None,
        typer.Option("--model", "-m", help="Fallback model, repeat to build the chain"),
    ] = None,
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", "-b", min=1, help="Patterns run concurrently"),
    ] = None,
    simulate: Annotated[
        bool,
        typer.Option("--simulate", help="Produce placeholder output without calling fabric"),
    ] = False,
    keep_noise: Annotated[
        bool,
        typer.Option("--keep-noise", help="Keep markers such as [Music]"),
    ] = False,
    keep_repetition: Annotated[
        bool,
        typer.Option("--keep-repetition", help="Keep back-to-back repeated phrases"),
    ] = False,
) -> None:
    """Run every pattern over a transcript and write the document set."""
    from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn

    from fabricdocs.cli.output import display_run_summary
    from fabricdocs.core.chunker import Chunker
    from fabricdocs.core.errors import FabricDocsError, PipelineError
    from fabricdocs.core.models import ContentMetadata, EventKind, ProgressEvent
    from fabricdocs.core.output import write_run
    from fabricdocs.core.parser import ParseOptions
    from fabricdocs.core.patterns import load_patterns
    from fabricdocs.core.pipeline import PatternPipeline
    from fabricdocs.core.progress import ProgressStream
    from fabricdocs.services.executor import PatternExecutor
    from fabricdocs.services.runner import create_runner

    assert state.config is not None
    config = state.config

    content = _read_source(source)
    metadata = ContentMetadata(title=title, url=url, channel=channel, content_type=content_type)

    try:
        fabric_config = config.fabric
        if models:
            fabric_config = fabric_config.with_models(models)
        patterns = load_patterns(config.get_patterns_file())
        pipeline = PatternPipeline(
            executor=PatternExecutor(create_runner(config), fabric_config),
            patterns=patterns,
            chunker=Chunker(
                max_tokens_per_chunk=config.chunking.max_tokens_per_chunk,
                overlap_tokens=config.chunking.overlap_tokens,
                chars_per_token=config.chunking.chars_per_token,
                search_window=config.chunking.search_window,
            ),
            parse_options=ParseOptions(
                keep_noise=keep_noise or config.parser.keep_noise,
                keep_repetition=keep_repetition or config.parser.keep_repetition,
            ),
            batch_size=batch_size or config.processing.batch_size,
            simulate_when_unavailable=config.processing.simulate_when_unavailable,
        )
    except FabricDocsError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    stream = ProgressStream()

    try:
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            disable=state.verbosity == Verbosity.QUIET,
        ) as progress:
            task = progress.add_task("Processing patterns...", total=len(patterns))

            def on_event(event: ProgressEvent) -> None:
                if event.kind is EventKind.RUN_FAILED:
                    progress.update(task, description="[red]Failed[/red]")
                    return
                label = f"[red]{event.pattern_name}[/red]" if event.error else event.pattern_name
                progress.update(task, completed=event.current, description=label)
                if state.verbosity == Verbosity.VERBOSE:
                    progress.console.print(
                        f"  ({event.current}/{event.total}) {escape(event.description)}"
                    )

            stream.subscribe(on_event)
            execute = pipeline.simulate if simulate else pipeline.process
            run = asyncio.run(execute(content, metadata, progress=stream))
            progress.update(task, description="[green]Complete![/green]")
    except PipelineError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None
    finally:
        stream.close()

    if state.verbosity == Verbosity.VERBOSE and run.transcript is not None:
        for note in run.transcript.processing_notes:
            console.print(f"[dim]- {escape(note)}[/dim]")

    try:
        out_dir = Path(output_dir) if output_dir else config.get_output_dir()
        folder = write_run(run, out_dir)
    except FabricDocsError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    if state.verbosity != Verbosity.QUIET:
        display_run_summary(run, console)
        console.print(f"\n[green]Documents saved to:[/green] {folder}")


@app.command()
def detect(
    source: Annotated[str, typer.Argument(help="Transcript file, or - for stdin")],
    keep_noise: Annotated[
        bool,
        typer.Option("--keep-noise", help="Keep markers such as [Music]"),
    ] = False,
    keep_repetition: Annotated[
        bool,
        typer.Option("--keep-repetition", help="Keep back-to-back repeated phrases"),
    ] = False,
) -> None:
    """Detect a transcript's format and show what normalization does."""
    from fabricdocs.cli.output import display_detection
    from fabricdocs.core.parser import ParseOptions, parse_transcript

    content = _read_source(source)
    transcript = parse_transcript(
        content, ParseOptions(keep_noise=keep_noise, keep_repetition=keep_repetition)
    )

    if state.verbosity != Verbosity.QUIET:
        display_detection(transcript, console)
    if state.verbosity == Verbosity.VERBOSE:
        console.print()
        console.print(transcript.text, markup=False, highlight=False)


@app.command()
def patterns() -> None:
    """List the pattern catalog grouped by phase."""
    from fabricdocs.cli.output import display_patterns
    from fabricdocs.core.errors import CatalogError
    from fabricdocs.core.patterns import load_patterns

    assert state.config is not None

    try:
        catalog = load_patterns(state.config.get_patterns_file())
    except CatalogError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    display_patterns(catalog, console)


@app.command()
def check() -> None:
    """Check whether the configured pattern backend is reachable."""
    from fabricdocs.core.errors import FabricDocsError
    from fabricdocs.services.executor import PatternExecutor
    from fabricdocs.services.runner import create_runner

    assert state.config is not None
    config = state.config

    try:
        executor = PatternExecutor(create_runner(config), config.fabric)
    except FabricDocsError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None

    available = asyncio.run(executor.is_available())
    backend = config.backend.kind

    if available:
        if state.verbosity != Verbosity.QUIET:
            console.print(f"[green]{backend} backend is available[/green]")
            console.print(f"Models: {', '.join(config.fabric.models)}")
        return

    error_console.print(f"[red]{backend} backend is not available[/red]")
    if backend == "fabric":
        error_console.print(
            "Install it with: go install github.com/danielmiessler/fabric@latest "
            "or set FABRIC_BINARY"
        )
    else:
        error_console.print("Set ANTHROPIC_API_KEY and run `fabric --setup` to download patterns")
    raise typer.Exit(1)


if __name__ == "__main__":
    app()
