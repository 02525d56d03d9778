"""Tests for writing document sets.

Property tests verify folder-name sanitization across generated titles.
"""

from datetime import date, datetime, timezone
from pathlib import Path

import pytest
import yaml
from hypothesis import given, settings
from hypothesis import strategies as st

from fabricdocs.core.errors import OutputError
from fabricdocs.core.models import (
    ContentMetadata,
    Pattern,
    PatternResult,
    ProcessingRun,
    RunMethod,
    RunState,
)
from fabricdocs.core.output import (
    MAX_COMPONENT_LENGTH,
    build_index,
    build_metadata,
    run_folder_name,
    sanitize_path_component,
    write_run,
)
from fabricdocs.core.parser import parse_transcript

TODAY = date(2024, 1, 15)


def make_run(
    content: str,
    patterns: list[Pattern],
    metadata: ContentMetadata | None = None,
    failed: tuple[str, ...] = (),
    simulated: bool = False,
) -> ProcessingRun:
    """Build a finished run with one result per pattern."""
    run = ProcessingRun(
        content=content,
        patterns=patterns,
        metadata=metadata or ContentMetadata(),
        state=RunState.COMPLETED,
        method=RunMethod.SIMULATION if simulated else RunMethod.DIRECT,
        transcript=parse_transcript(content),
        started_at=datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc),
        finished_at=datetime(2024, 1, 15, 9, 31, 15, tzinfo=timezone.utc),
    )
    for pattern in patterns:
        run.results[pattern.filename] = PatternResult(
            content=f"# {pattern.name}\n\nOutput for {pattern.name}.",
            pattern_name=pattern.name,
            phase=pattern.phase,
            description=pattern.description,
            error=pattern.name in failed,
            simulated=simulated,
        )
        run.current += 1
    return run


class TestSanitizePathComponent:
    """Tests for folder-name sanitization."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("Soil Health: Basics / Part 1", "Soil_Health_Basics_Part_1"),
            ("What? Why*", "What_Why"),
            ('a<b>c|d"e', "a_b_c_d_e"),
            ("back\\slash", "back_slash"),
            ("  ..hidden..  ", "hidden"),
            ("under___scores", "under_scores"),
            ("", ""),
        ],
    )
    def test_cases(self, value: str, expected: str) -> None:
        assert sanitize_path_component(value) == expected

    def test_truncates(self) -> None:
        assert sanitize_path_component("a" * 50) == "a" * MAX_COMPONENT_LENGTH

    def test_no_trailing_underscore_after_truncation(self) -> None:
        assert sanitize_path_component("x" * 29 + " tail") == "x" * 29

    @settings(max_examples=200)
    @given(value=st.text(max_size=100))
    def test_result_is_safe(self, value: str) -> None:
        result = sanitize_path_component(value)

        assert len(result) <= MAX_COMPONENT_LENGTH
        assert not any(char in result for char in '/\\:*?"<>|')
        assert not any(char.isspace() for char in result)
        assert "__" not in result
        assert not result.startswith(("_", ".")) and not result.endswith(("_", "."))

    @settings(max_examples=200)
    @given(value=st.text(max_size=100))
    def test_idempotent(self, value: str) -> None:
        once = sanitize_path_component(value)

        assert sanitize_path_component(once) == once


class TestFolderName:
    """Tests for the run folder name."""

    def test_uses_date_and_title(self, summary_patterns: list[Pattern]) -> None:
        run = make_run("hello", summary_patterns, ContentMetadata(title="Soil Health Basics"))

        assert run_folder_name(run, TODAY) == "2024-01-15_Soil_Health_Basics"

    @pytest.mark.parametrize("title", [None, "", "???"])
    def test_falls_back_without_usable_title(
        self, summary_patterns: list[Pattern], title: str | None
    ) -> None:
        run = make_run("hello", summary_patterns, ContentMetadata(title=title))

        assert run_folder_name(run, TODAY) == "2024-01-15_transcript"


class TestWriteRun:
    """Tests for writing a run to disk."""

    def test_writes_every_file(
        self,
        tmp_path: Path,
        speaker_transcript: str,
        sample_metadata: ContentMetadata,
        summary_patterns: list[Pattern],
    ) -> None:
        run = make_run(speaker_transcript, summary_patterns, sample_metadata)

        folder = write_run(run, tmp_path / "output", today=TODAY)

        assert folder == tmp_path / "output" / "2024-01-15_Soil_Health_Basics"
        assert sorted(p.name for p in folder.iterdir()) == [
            "01-youtube_summary.txt",
            "02-create_5_sentence_summary.txt",
            "03-extract_core_message.txt",
            "index.md",
            "metadata.yaml",
        ]
        assert (folder / "01-youtube_summary.txt").read_text() == (
            "# youtube_summary\n\nOutput for youtube_summary."
        )

    def test_metadata_yaml(
        self,
        tmp_path: Path,
        speaker_transcript: str,
        sample_metadata: ContentMetadata,
        summary_patterns: list[Pattern],
    ) -> None:
        run = make_run(
            speaker_transcript,
            summary_patterns,
            sample_metadata,
            failed=("create_5_sentence_summary",),
        )

        folder = write_run(run, tmp_path, today=TODAY)
        metadata = yaml.safe_load((folder / "metadata.yaml").read_text())

        assert metadata["title"] == "Soil Health Basics"
        assert metadata["url"] == "https://www.youtube.com/watch?v=abc123"
        assert metadata["channel"] == "Farm Talk"
        assert metadata["format"] == "speaker-labeled"
        assert metadata["speakers"] == ["Guest", "Host"]
        assert metadata["content_type"] == "interview"
        assert metadata["method"] == "direct"
        assert metadata["state"] == "completed"
        assert metadata["total"] == 3
        assert metadata["successful"] == 2
        assert metadata["failed"] == 1
        assert metadata["elapsed_seconds"] == 75.0
        assert metadata["started_at"] == "2024-01-15T09:30:00+00:00"
        assert [p["status"] for p in metadata["patterns"]] == ["ok", "error", "ok"]
        assert list(metadata)[0] == "title"

    def test_folder_collision_gets_suffix(
        self, tmp_path: Path, sample_metadata: ContentMetadata, summary_patterns: list[Pattern]
    ) -> None:
        run = make_run("hello there", summary_patterns, sample_metadata)

        first = write_run(run, tmp_path, today=TODAY)
        second = write_run(run, tmp_path, today=TODAY)
        third = write_run(run, tmp_path, today=TODAY)

        assert first.name == "2024-01-15_Soil_Health_Basics"
        assert second.name == "2024-01-15_Soil_Health_Basics-2"
        assert third.name == "2024-01-15_Soil_Health_Basics-3"

    def test_unwritable_output_dir(self, tmp_path: Path, summary_patterns: list[Pattern]) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file")
        run = make_run("hello", summary_patterns)

        with pytest.raises(OutputError, match="Could not write results"):
            write_run(run, blocker, today=TODAY)


class TestBuildIndex:
    """Tests for index.md."""

    def test_groups_by_phase(
        self, speaker_transcript: str, sample_metadata: ContentMetadata, summary_patterns: list[Pattern]
    ) -> None:
        run = make_run(
            speaker_transcript, summary_patterns, sample_metadata, failed=("extract_core_message",)
        )

        index = build_index(run)

        assert index.startswith("# Soil Health Basics\n")
        assert "**Patterns**: 2/3 successful" in index
        assert "### Phase 1: Primary Extraction" in index
        assert "### Phase 4: Synthesis Materials" in index
        assert "### Phase 2" not in index
        assert "- **01-youtube_summary.txt** - Comprehensive video summary\n" in index
        assert "- **03-extract_core_message.txt** - Central thesis (failed)" in index
        assert index.index("Phase 1") < index.index("Phase 4")

    def test_simulation_note(self, summary_patterns: list[Pattern]) -> None:
        run = make_run("hello", summary_patterns, simulated=True)

        index = build_index(run)

        assert index.startswith("# Transcript Analysis\n")
        assert "Simulation run" in index


class TestBuildMetadata:
    """Tests for metadata collection."""

    def test_missing_result_status(self, summary_patterns: list[Pattern]) -> None:
        run = make_run("hello", summary_patterns)
        del run.results["02-create_5_sentence_summary.txt"]

        metadata = build_metadata(run)

        assert [p["status"] for p in metadata["patterns"]] == ["ok", "missing", "ok"]

    def test_simulated_status(self, summary_patterns: list[Pattern]) -> None:
        run = make_run("hello", summary_patterns, simulated=True)

        metadata = build_metadata(run)

        assert metadata["method"] == "simulation"
        assert {p["status"] for p in metadata["patterns"]} == {"simulated"}

    def test_without_transcript(self, summary_patterns: list[Pattern]) -> None:
        run = ProcessingRun(content="", patterns=summary_patterns)

        metadata = build_metadata(run)

        assert "format" not in metadata
        assert metadata["successful"] == 0
        assert [p["status"] for p in metadata["patterns"]] == ["missing"] * 3
