"""Pattern execution with a fallback model chain and retry backoff.

Every call walks the configured model list in order. A failing model hands
over to the next one immediately. Only when the last model fails with a
transient-looking error does the whole chain restart, after an exponential
backoff delay. The bookkeeping lives in a small state machine so the
termination rules can be tested without running anything.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from fabricdocs.core.config import FabricConfig
from fabricdocs.core.errors import PatternExecutionError, PatternRunError, ToolUnavailableError
from fabricdocs.core.models import ContentMetadata, NormalizedTranscript
from fabricdocs.services.runner import PatternRunner
from fabricdocs.utils.text import format_duration, truncate_text

# Lowercase fragments that mark an error as worth a backoff retry
TRANSIENT_MARKERS = (
    "429",
    "529",
    "overload",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "quota",
    "timeout",
    "timed out",
    "suspiciously short",
)


def is_transient_error(message: str) -> bool:
    """Check whether an error message looks like load rather than a real fault.

    Args:
        message: Error text from a runner or the executor itself.

    Returns:
        True for rate limit, overload, quota, timeout and short-output errors.
    """
    lowered = message.lower()
    return any(marker in lowered for marker in TRANSIENT_MARKERS)


class RetryStep(str, Enum):
    """What to do after a failed invocation."""

    NEXT_MODEL = "next-model"
    BACKOFF = "backoff"
    GIVE_UP = "give-up"


@dataclass(frozen=True)
class RetryState:
    """Position in the retry schedule.

    Attributes:
        attempt: Zero-based pass through the model list.
        model_index: Index of the model being tried in this pass.
    """

    attempt: int = 0
    model_index: int = 0

    def advance(self, step: RetryStep) -> RetryState:
        """Return the state to use after taking step."""
        if step is RetryStep.NEXT_MODEL:
            return RetryState(self.attempt, self.model_index + 1)
        if step is RetryStep.BACKOFF:
            return RetryState(self.attempt + 1, 0)
        return self


def next_step(state: RetryState, transient: bool, config: FabricConfig) -> RetryStep:
    """Decide what follows a failure at state.

    Args:
        state: Where the failure happened.
        transient: Whether the failure looked transient.
        config: Execution settings (model list and retry budget).

    Returns:
        NEXT_MODEL while models remain in this pass, BACKOFF when the last
        model failed transiently and retries remain, otherwise GIVE_UP.
    """
    if state.model_index < len(config.models) - 1:
        return RetryStep.NEXT_MODEL
    if transient and state.attempt < config.max_retries:
        return RetryStep.BACKOFF
    return RetryStep.GIVE_UP


def backoff_delay(attempt: int, config: FabricConfig) -> float:
    """Seconds to wait before restarting the chain after pass attempt."""
    return config.retry_base_delay * (2**attempt)


def format_context_header(
    metadata: ContentMetadata | None,
    transcript: NormalizedTranscript | None = None,
) -> str:
    """Build the orientation header prefixed to an unchunked transcript.

    Args:
        metadata: Caller-supplied source information.
        transcript: Parsed transcript, for format, speakers and duration.

    Returns:
        Header text ending in a blank line, or "" when there is nothing to say.
    """
    lines: list[str] = []
    if metadata is not None:
        if metadata.title:
            lines.append(f"Title: {metadata.title}")
        if metadata.channel:
            lines.append(f"Channel: {metadata.channel}")
        if metadata.url:
            lines.append(f"Source: {metadata.url}")
        elif metadata.content_type:
            lines.append(f"Content type: {metadata.content_type}")

    if transcript is not None:
        lines.append(f"Original format: {transcript.format.value}")
        if transcript.speakers:
            lines.append(f"Speakers: {', '.join(sorted(transcript.speakers))}")
        if transcript.estimated_duration:
            lines.append(f"Duration: {format_duration(transcript.estimated_duration)}")

    if not lines:
        return ""
    return "\n".join(["# Content Context", *lines]) + "\n\n"


def _display_warning(message: str) -> None:
    """Display a warning message to stderr.

    Args:
        message: Warning message to display.
    """
    print(f"Warning: {message}", file=sys.stderr)


@dataclass
class _Attempt:
    model: str
    attempt: int
    error: str


@dataclass
class _AttemptLog:
    entries: list[_Attempt] = field(default_factory=list)

    def record(self, state: RetryState, model: str, error: str) -> None:
        self.entries.append(_Attempt(model=model, attempt=state.attempt, error=error))

    def lines(self) -> list[str]:
        return [f"attempt {e.attempt + 1}, {e.model}: {e.error}" for e in self.entries]


class PatternExecutor:
    """Runs one pattern against one unit of text.

    The config is frozen; derive a changed copy with FabricConfig.with_models()
    rather than altering the executor's settings in place.
    """

    def __init__(
        self,
        runner: PatternRunner,
        config: FabricConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the executor.

        Args:
            runner: Backend that performs a single invocation
            config: Models, timeout and retry budget
            sleep: Awaitable used for backoff delays
        """
        self.runner = runner
        self.config = config or FabricConfig()
        self._sleep = sleep

    async def is_available(self) -> bool:
        """Ask the runner whether its backend can be reached."""
        check = getattr(self.runner, "is_available", None)
        if check is None:
            return True
        return bool(await check())

    async def _invoke(self, pattern_name: str, model: str, text: str) -> str:
        try:
            output = await asyncio.wait_for(
                self.runner.run(pattern_name, model, text), self.config.timeout
            )
        except asyncio.TimeoutError as e:
            raise PatternRunError(f"timed out after {self.config.timeout:g}s") from e

        output = output.strip()
        if len(output) < self.config.min_output_chars:
            raise PatternRunError(
                f"suspiciously short output ({len(output)} chars): {truncate_text(output, 40)!r}"
            )
        return output

    async def execute(
        self,
        pattern_name: str,
        text: str,
        context: str | None = None,
    ) -> str:
        """Run a pattern through the fallback chain until one model succeeds.

        Args:
            pattern_name: fabric pattern identifier.
            text: Input text (a whole transcript or one headed chunk).
            context: Header to prefix to text, if any.

        Returns:
            The pattern output.

        Raises:
            PatternExecutionError: If every model failed on every allowed pass.
            ToolUnavailableError: If the backend cannot be reached at all.
        """
        models = self.config.models
        if not models:
            raise PatternExecutionError(pattern_name, "No models configured")

        payload = f"{context}{text}" if context else text
        state = RetryState()
        log = _AttemptLog()

        while True:
            model = models[state.model_index]
            try:
                return await self._invoke(pattern_name, model, payload)
            except ToolUnavailableError:
                raise
            except PatternRunError as e:
                error = str(e)
            except Exception as e:
                error = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__

            log.record(state, model, error)
            step = next_step(state, is_transient_error(error), self.config)

            if step is RetryStep.NEXT_MODEL:
                _display_warning(
                    f"{pattern_name}: {model} failed ({truncate_text(error, 80)}), "
                    f"trying {models[state.model_index + 1]}"
                )
            elif step is RetryStep.BACKOFF:
                delay = backoff_delay(state.attempt, self.config)
                _display_warning(
                    f"{pattern_name}: all models failed, retrying in {delay:g}s "
                    f"(retry {state.attempt + 1} of {self.config.max_retries})"
                )
                await self._sleep(delay)
            else:
                passes = state.attempt + 1
                raise PatternExecutionError(
                    pattern_name,
                    f"All {len(models)} models failed after {passes} "
                    f"pass{'es' if passes != 1 else ''}. Last error: {error}",
                    attempts=log.lines(),
                )

            state = state.advance(step)
