"""Pattern backends for fabricdocs.

A runner executes one fabric pattern against one model for one piece of
text. FabricRunner pipes a staged input file into the fabric CLI;
AnthropicRunner sends fabric's pattern system prompt straight to the
Anthropic Messages API. Failures raise PatternRunError with the backend's
own wording so the executor can spot rate limits and overloads.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

import anthropic
from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    RateLimitError,
)

from fabricdocs.core.config import Config
from fabricdocs.core.errors import ConfigError, PatternRunError, ToolUnavailableError

# Locations checked after PATH when no binary is configured
COMMON_FABRIC_PATHS = [
    Path.home() / "go" / "bin" / "fabric",
    Path("/usr/local/bin/fabric"),
    Path("/opt/homebrew/bin/fabric"),
    Path.home() / ".local" / "bin" / "fabric",
]

INSTALL_HINT = "Install it with: go install github.com/danielmiessler/fabric@latest"

# Seconds allowed for `fabric --version`
VERSION_CHECK_TIMEOUT = 5.0

# Tokens requested from the API per pattern call
MAX_OUTPUT_TOKENS = 4096


@runtime_checkable
class PatternRunner(Protocol):
    """Anything that can run a named pattern with a given model."""

    async def run(self, pattern_name: str, model: str, text: str) -> str:
        """Run pattern_name with model against text and return the output."""
        ...


def locate_fabric(configured: str = "") -> Path | None:
    """Find the fabric binary.

    Args:
        configured: Explicit binary path or command name, tried first.

    Returns:
        Path to the binary, or None if it cannot be found.
    """
    if configured:
        found = shutil.which(configured)
        return Path(found) if found else None

    found = shutil.which("fabric")
    if found:
        return Path(found)

    for candidate in COMMON_FABRIC_PATHS:
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate

    return None


@contextmanager
def staged_input(text: str, directory: Path | None = None) -> Iterator[Path]:
    """Write text to a uniquely named temporary file for piping.

    The file is removed when the context exits, whether or not the
    invocation succeeded.

    Args:
        text: Input text.
        directory: Staging directory; the system temp dir when None.

    Yields:
        Path to the staged file.
    """
    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        prefix="fabricdocs_",
        suffix=".txt",
        dir=directory,
        delete=False,
    ) as handle:
        handle.write(text)
        path = Path(handle.name)

    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


class FabricRunner:
    """Runs patterns through the fabric command-line tool."""

    def __init__(self, binary: str = "", staging_dir: Path | None = None) -> None:
        """
        Initialize the runner.

        Args:
            binary: Configured fabric binary; searched for when empty
            staging_dir: Directory for staged input files
        """
        self.binary = binary
        self.staging_dir = staging_dir
        self._resolved: Path | None = None

    def _resolve_binary(self) -> Path:
        if self._resolved is None:
            self._resolved = locate_fabric(self.binary)
        if self._resolved is None:
            raise ToolUnavailableError(f"Fabric CLI not found. {INSTALL_HINT}")
        return self._resolved

    async def is_available(self) -> bool:
        """Check that fabric exists and answers `--version`."""
        try:
            binary = self._resolve_binary()
        except ToolUnavailableError:
            return False

        try:
            process = await asyncio.create_subprocess_exec(
                str(binary),
                "--version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError:
            return False

        try:
            await asyncio.wait_for(process.communicate(), VERSION_CHECK_TIMEOUT)
        except asyncio.TimeoutError:
            await _kill(process)
            return False
        return process.returncode == 0

    async def run(self, pattern_name: str, model: str, text: str) -> str:
        """Pipe text into `fabric -p <pattern> --model <model>`.

        Raises:
            ToolUnavailableError: If fabric cannot be found or started.
            PatternRunError: If fabric exits with an error.
        """
        binary = self._resolve_binary()

        with staged_input(text, self.staging_dir) as input_path, input_path.open("rb") as stdin:
            try:
                process = await asyncio.create_subprocess_exec(
                    str(binary),
                    "-p",
                    pattern_name,
                    "--model",
                    model,
                    stdin=stdin,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise ToolUnavailableError(f"Could not start fabric at {binary}: {e}") from e

            try:
                stdout, stderr = await process.communicate()
            finally:
                # Reached on cancellation too, e.g. when the executor times out
                await _kill(process)

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() or "no error output"
            raise PatternRunError(f"fabric exited with status {process.returncode}: {detail}")

        return stdout.decode("utf-8", errors="replace").strip()


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()


class AnthropicRunner:
    """Runs fabric patterns by calling the Anthropic API directly.

    Uses the pattern's system.md from a local fabric patterns directory as
    the system prompt and the text as the user message.
    """

    def __init__(self, api_key: str, patterns_dir: Path) -> None:
        """
        Initialize the runner.

        Args:
            api_key: Anthropic API key
            patterns_dir: fabric patterns directory (one folder per pattern)
        """
        self.api_key = api_key
        self.patterns_dir = patterns_dir
        self._client: anthropic.AsyncAnthropic | None = None

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if not self.api_key:
            raise ToolUnavailableError(
                "Anthropic API key not configured. "
                "Set ANTHROPIC_API_KEY environment variable or configure in .fabricdocs/config"
            )
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    def load_system_prompt(self, pattern_name: str) -> str:
        """Read a pattern's system prompt.

        Raises:
            ToolUnavailableError: If the patterns directory does not exist.
            PatternRunError: If this pattern has no system.md.
        """
        if not self.patterns_dir.is_dir():
            raise ToolUnavailableError(
                f"fabric patterns directory {self.patterns_dir} not found. "
                "Run `fabric --setup` to download the patterns."
            )
        prompt_path = self.patterns_dir / pattern_name / "system.md"
        if not prompt_path.is_file():
            raise PatternRunError(f"Pattern '{pattern_name}' has no system.md in {self.patterns_dir}")
        return prompt_path.read_text(encoding="utf-8")

    async def is_available(self) -> bool:
        """Check that a key is configured and the patterns directory exists."""
        return bool(self.api_key) and self.patterns_dir.is_dir()

    async def run(self, pattern_name: str, model: str, text: str) -> str:
        """Send the pattern prompt and text to the Messages API.

        Raises:
            ToolUnavailableError: If the key is missing or rejected.
            PatternRunError: On rate limits, overloads, connection and API errors.
        """
        client = self._get_client()
        system_prompt = self.load_system_prompt(pattern_name)

        try:
            message = await client.messages.create(
                model=model,
                max_tokens=MAX_OUTPUT_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": text}],
            )
        except AuthenticationError as e:
            raise ToolUnavailableError(f"Anthropic API rejected the API key: {e}") from e
        except RateLimitError as e:
            raise PatternRunError(f"Anthropic API rate limit exceeded: {e}") from e
        except APIStatusError as e:
            if e.status_code == 529:
                raise PatternRunError(f"Anthropic API overloaded (529): {e}") from e
            raise PatternRunError(f"Anthropic API error ({e.status_code}): {e}") from e
        except APITimeoutError as e:
            raise PatternRunError(f"Anthropic API request timed out: {e}") from e
        except APIConnectionError as e:
            raise PatternRunError(f"Anthropic API connection error: {e}") from e
        except APIError as e:
            raise PatternRunError(f"Anthropic API error: {e}") from e

        return "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        ).strip()


def create_runner(config: Config, staging_dir: Path | None = None) -> PatternRunner:
    """Build the runner selected by the configuration.

    Args:
        config: Application configuration.
        staging_dir: Staging directory for the fabric runner.

    Returns:
        A FabricRunner or AnthropicRunner.

    Raises:
        ConfigError: If the configured backend is unknown.
    """
    kind = config.backend.kind
    if kind == "fabric":
        return FabricRunner(binary=config.get_fabric_binary(), staging_dir=staging_dir)
    if kind == "anthropic":
        return AnthropicRunner(
            api_key=config.get_anthropic_key(),
            patterns_dir=config.get_patterns_dir(),
        )
    raise ConfigError(f"Unknown backend '{kind}'")
