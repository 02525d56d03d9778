"""Configuration management for fabricdocs.

Handles TOML configuration loading from local and global paths,
with environment variable precedence for the API key and fabric binary.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from fabricdocs.core.errors import ConfigError

# Configuration file paths
LOCAL_CONFIG_PATH = Path(".fabricdocs/config")
GLOBAL_CONFIG_PATH = Path.home() / ".fabricdocs" / "config"

# Anthropic models tried in order, primary first
DEFAULT_MODELS: tuple[str, ...] = (
    "claude-3-5-sonnet-20241022",
    "claude-3-5-haiku-20241022",
    "claude-3-sonnet-20240229",
    "claude-3-haiku-20240307",
)

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "fabric": {
        "binary": "",
        "models": list(DEFAULT_MODELS),
        "timeout": 60.0,
        "max_retries": 3,
        "retry_base_delay": 2.0,
        "min_output_chars": 50,
    },
    "processing": {
        "batch_size": 3,
        "simulate_when_unavailable": True,
        "patterns_file": "",
    },
    "chunking": {
        "max_tokens_per_chunk": 50000,
        "overlap_tokens": 2000,
        "chars_per_token": 4,
        "search_window": 1000,
    },
    "parser": {
        "keep_noise": False,
        "keep_repetition": False,
    },
    "backend": {
        "kind": "fabric",
        "anthropic_key": "",
        "patterns_dir": "~/.config/fabric/patterns",
    },
    "storage": {
        "output_dir": ".fabricdocs/output/",
    },
}

# Valid pattern backends
VALID_BACKENDS = {"fabric", "anthropic"}


class Verbosity(Enum):
    """Output verbosity levels for the CLI."""

    QUIET = 0
    NORMAL = 1
    VERBOSE = 2


@dataclass(frozen=True)
class FabricConfig:
    """Pattern execution settings.

    Immutable: use with_models() and friends to derive a changed copy
    instead of mutating a config another run may be reading.
    """

    binary: str = ""
    models: tuple[str, ...] = DEFAULT_MODELS
    timeout: float = 60.0
    max_retries: int = 3
    retry_base_delay: float = 2.0
    min_output_chars: int = 50

    def with_models(self, models: list[str] | tuple[str, ...]) -> FabricConfig:
        """Return a copy using a different fallback model chain."""
        if not models:
            raise ConfigError("Fallback model list must not be empty")
        return replace(self, models=tuple(models))


@dataclass(frozen=True)
class ProcessingConfig:
    """Pipeline scheduling settings."""

    batch_size: int = 3
    simulate_when_unavailable: bool = True
    patterns_file: str = ""


@dataclass(frozen=True)
class ChunkingConfig:
    """Chunk budget settings, in estimated tokens."""

    max_tokens_per_chunk: int = 50000
    overlap_tokens: int = 2000
    chars_per_token: int = 4
    search_window: int = 1000


@dataclass(frozen=True)
class ParserConfig:
    """Transcript normalization toggles."""

    keep_noise: bool = False
    keep_repetition: bool = False


@dataclass(frozen=True)
class BackendConfig:
    """Which pattern backend to use and its credentials."""

    kind: str = "fabric"
    anthropic_key: str = ""
    patterns_dir: str = "~/.config/fabric/patterns"


@dataclass(frozen=True)
class StorageConfig:
    """Storage configuration settings."""

    output_dir: str = ".fabricdocs/output/"


@dataclass(frozen=True)
class Config:
    """Main configuration container.

    Holds all configuration settings for fabricdocs, loaded from
    local and global config files with environment variable overrides.
    """

    fabric: FabricConfig = field(default_factory=FabricConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    parser: ParserConfig = field(default_factory=ParserConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def get_anthropic_key(self) -> str:
        """Get the Anthropic API key with environment variable precedence.

        Returns:
            The API key from ANTHROPIC_API_KEY env var if set,
            otherwise the value from config file.
        """
        env_key = os.environ.get("ANTHROPIC_API_KEY", "")
        if env_key:
            return env_key
        return self.backend.anthropic_key

    def get_fabric_binary(self) -> str:
        """Get the configured fabric binary, FABRIC_BINARY env var first."""
        return os.environ.get("FABRIC_BINARY", "") or self.fabric.binary

    def get_output_dir(self) -> Path:
        """Get the output directory as a Path object."""
        return Path(self.storage.output_dir)

    def get_patterns_dir(self) -> Path:
        """Get the fabric patterns directory with ~ expanded."""
        return Path(self.backend.patterns_dir).expanduser()

    def get_patterns_file(self) -> Path | None:
        """Get the pattern catalog file, or None for the built-in catalog."""
        if not self.processing.patterns_file:
            return None
        return Path(self.processing.patterns_file).expanduser()


def _generate_default_config_toml() -> str:
    """Generate default configuration as TOML string.

    Returns:
        TOML-formatted string with default configuration values.
    """
    models = ",\n".join(f'    "{model}"' for model in DEFAULT_MODELS)
    return f"""# fabricdocs Configuration File

[fabric]
# Path to the fabric binary; empty means search PATH and common locations
# Environment variable FABRIC_BINARY takes precedence
binary = ""
# Models tried in order for every pattern call, primary first
models = [
{models},
]
# Seconds before a single fabric invocation is abandoned
timeout = 60.0
# Full passes through the model list after the first one
max_retries = 3
# Backoff before pass N is retry_base_delay * 2^(N-1) seconds
retry_base_delay = 2.0
# Outputs shorter than this are treated as failures
min_output_chars = 50

[processing]
# Patterns executed concurrently
batch_size = 3
# Produce labeled placeholder output when fabric is not installed
simulate_when_unavailable = true
# Optional TOML pattern catalog; empty uses the built-in 13 patterns
patterns_file = ""

[chunking]
# Token budget per chunk (estimated as characters / chars_per_token)
max_tokens_per_chunk = 50000
overlap_tokens = 2000
chars_per_token = 4
search_window = 1000

[parser]
# Keep non-speech markers such as [Music]
keep_noise = false
# Keep back-to-back repeated words and phrases
keep_repetition = false

[backend]
# "fabric" runs the fabric CLI, "anthropic" calls the API with fabric's pattern prompts
kind = "fabric"
# Environment variable ANTHROPIC_API_KEY takes precedence
anthropic_key = ""
patterns_dir = "~/.config/fabric/patterns"

[storage]
# Directory for generated document sets
output_dir = ".fabricdocs/output/"
"""


def _ensure_local_config_exists(local_path: Path) -> None:
    """Create local config file with defaults if it doesn't exist.

    Args:
        local_path: Path to the local config file.
    """
    if not local_path.exists():
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_text(_generate_default_config_toml())


def _load_toml_file(path: Path) -> dict[str, Any]:
    """Load and parse a TOML configuration file.

    Args:
        path: Path to the TOML file.

    Returns:
        Parsed configuration dictionary.

    Raises:
        ConfigError: If the file exists but cannot be parsed.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text()
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in config file {path}: {e}") from e


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary.
        override: Dictionary with values that override base.

    Returns:
        Merged dictionary with override values taking precedence.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _require_positive(section: dict[str, Any], name: str, key: str) -> None:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"{name}.{key} must be a positive number, got {value!r}")


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values.

    Args:
        config_dict: Configuration dictionary to validate.

    Raises:
        ConfigError: If configuration values are invalid.
    """
    for section in DEFAULT_CONFIG:
        if not isinstance(config_dict.get(section), dict):
            raise ConfigError(f"[{section}] must be a table")

    fabric = config_dict["fabric"]
    models = fabric.get("models")
    if not isinstance(models, list) or not models or not all(isinstance(m, str) for m in models):
        raise ConfigError("fabric.models must be a non-empty list of model names")
    for key in ["timeout", "min_output_chars"]:
        _require_positive(fabric, "fabric", key)
    retries = fabric.get("max_retries")
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
        raise ConfigError(f"fabric.max_retries must be a non-negative integer, got {retries!r}")
    delay = fabric.get("retry_base_delay")
    if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
        raise ConfigError(f"fabric.retry_base_delay must be non-negative, got {delay!r}")

    processing = config_dict["processing"]
    _require_positive(processing, "processing", "batch_size")

    chunking = config_dict["chunking"]
    for key in ["max_tokens_per_chunk", "chars_per_token"]:
        _require_positive(chunking, "chunking", key)
    overlap = chunking.get("overlap_tokens")
    if not isinstance(overlap, int) or not 0 <= overlap < chunking["max_tokens_per_chunk"]:
        raise ConfigError("chunking.overlap_tokens must be smaller than max_tokens_per_chunk")

    for key in ["keep_noise", "keep_repetition"]:
        value = config_dict["parser"].get(key)
        if not isinstance(value, bool):
            raise ConfigError(f"parser.{key} must be a boolean, got {type(value).__name__}")

    kind = config_dict["backend"].get("kind")
    if kind not in VALID_BACKENDS:
        raise ConfigError(
            f"Invalid backend '{kind}'. Valid options: {', '.join(sorted(VALID_BACKENDS))}"
        )

    output_dir = config_dict["storage"].get("output_dir")
    if not isinstance(output_dir, str):
        raise ConfigError(f"storage.output_dir must be a string, got {type(output_dir).__name__}")


def _dict_to_config(config_dict: dict[str, Any]) -> Config:
    """Convert configuration dictionary to Config dataclass.

    Args:
        config_dict: Validated configuration dictionary.

    Returns:
        Config object with values from dictionary.
    """
    fabric = config_dict["fabric"]
    processing = config_dict["processing"]
    chunking = config_dict["chunking"]
    parser = config_dict["parser"]
    backend = config_dict["backend"]

    return Config(
        fabric=FabricConfig(
            binary=fabric["binary"],
            models=tuple(fabric["models"]),
            timeout=float(fabric["timeout"]),
            max_retries=fabric["max_retries"],
            retry_base_delay=float(fabric["retry_base_delay"]),
            min_output_chars=int(fabric["min_output_chars"]),
        ),
        processing=ProcessingConfig(
            batch_size=int(processing["batch_size"]),
            simulate_when_unavailable=bool(processing["simulate_when_unavailable"]),
            patterns_file=processing["patterns_file"],
        ),
        chunking=ChunkingConfig(
            max_tokens_per_chunk=int(chunking["max_tokens_per_chunk"]),
            overlap_tokens=chunking["overlap_tokens"],
            chars_per_token=int(chunking["chars_per_token"]),
            search_window=int(chunking["search_window"]),
        ),
        parser=ParserConfig(
            keep_noise=parser["keep_noise"],
            keep_repetition=parser["keep_repetition"],
        ),
        backend=BackendConfig(
            kind=backend["kind"],
            anthropic_key=backend["anthropic_key"],
            patterns_dir=backend["patterns_dir"],
        ),
        storage=StorageConfig(
            output_dir=config_dict["storage"]["output_dir"],
        ),
    )


def load_config(
    local_path: Path | None = None,
    global_path: Path | None = None,
    auto_create_local: bool = True,
) -> Config:
    """Load configuration from local and global config files.

    Configuration priority (highest to lowest):
    1. Local config file (.fabricdocs/config in current directory)
    2. Global config file ($HOME/.fabricdocs/config)
    3. Default values

    If no configuration exists, creates local config with defaults.
    Global config is never auto-created.

    Args:
        local_path: Override path for local config file.
        global_path: Override path for global config file.
        auto_create_local: If True, create local config with defaults if no config exists.

    Returns:
        Config object with merged configuration values.

    Raises:
        ConfigError: If configuration files are invalid.
    """
    local_path = local_path or LOCAL_CONFIG_PATH
    global_path = global_path or GLOBAL_CONFIG_PATH

    merged_config = {section: values.copy() for section, values in DEFAULT_CONFIG.items()}

    global_config = _load_toml_file(global_path)
    if global_config:
        merged_config = _deep_merge(merged_config, global_config)

    local_config = _load_toml_file(local_path)
    if local_config:
        merged_config = _deep_merge(merged_config, local_config)

    if auto_create_local and not local_config and not global_config:
        _ensure_local_config_exists(local_path)

    _validate_config(merged_config)

    return _dict_to_config(merged_config)


def get_config() -> Config:
    """Get the application configuration using default paths.

    Returns:
        Config object with merged configuration values.

    Raises:
        ConfigError: If configuration files are invalid.
    """
    return load_config()
