"""Pytest fixtures for fabricdocs tests."""

import pytest

from fabricdocs.core.config import FabricConfig
from fabricdocs.core.models import ContentMetadata, Pattern
from fabricdocs.core.patterns import make_pattern

SPEAKER_TRANSCRIPT = """Host: Welcome to the show, today we are talking about soil health.
Guest: Thanks for having me, it is a topic I care about deeply.
Host: Why does soil matter so much for farmers?
Guest: Healthy soil holds water and feeds the crops through dry spells.
Host: What is the biggest mistake people make?
Guest: They till too often and break up the structure underground.
Host: How long does it take to rebuild that structure?
Guest: Usually several seasons of cover crops and patience.
Host: Any advice for someone just starting out?
Guest: Start small, test your soil, and keep notes every season."""


@pytest.fixture
def fast_config() -> FabricConfig:
    """Execution settings with three models and quick timeouts."""
    return FabricConfig(
        models=("model-a", "model-b", "model-c"),
        timeout=5.0,
        max_retries=3,
        retry_base_delay=2.0,
        min_output_chars=50,
    )


@pytest.fixture
def speaker_transcript() -> str:
    """A ten-line Host/Guest dialogue."""
    return SPEAKER_TRANSCRIPT


@pytest.fixture
def sample_metadata() -> ContentMetadata:
    """Source metadata for a video."""
    return ContentMetadata(
        title="Soil Health Basics",
        url="https://www.youtube.com/watch?v=abc123",
        channel="Farm Talk",
    )


@pytest.fixture
def summary_patterns() -> list[Pattern]:
    """Three summary-shaped patterns."""
    return [
        make_pattern("youtube_summary", 1, "Comprehensive video summary", position=1),
        make_pattern("create_5_sentence_summary", 4, "Ultra-concise overview", position=2),
        make_pattern("extract_core_message", 1, "Central thesis", position=3),
    ]
