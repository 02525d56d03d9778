"""Tests for the pattern catalog."""

from pathlib import Path

import pytest
import tomli_w

from fabricdocs.core.errors import CatalogError
from fabricdocs.core.models import AggregationStrategy
from fabricdocs.core.patterns import (
    AGGREGATION_STRATEGIES,
    PHASE_DESCRIPTIONS,
    default_patterns,
    load_patterns,
    make_pattern,
    strategy_for,
)


class TestDefaultPatterns:
    """Tests for the built-in sequence."""

    def test_thirteen_patterns_in_order(self) -> None:
        patterns = default_patterns()

        assert len(patterns) == 13
        assert patterns[0].name == "youtube_summary"
        assert patterns[6].name == "extract_recommendations"
        assert patterns[-1].name == "to_flashcards"

    def test_filenames_are_numbered(self) -> None:
        patterns = default_patterns()

        assert patterns[0].filename == "01-youtube_summary.txt"
        assert patterns[12].filename == "13-to_flashcards.txt"
        assert len({pattern.filename for pattern in patterns}) == 13

    def test_phases_are_known(self) -> None:
        assert {pattern.phase for pattern in default_patterns()} == set(PHASE_DESCRIPTIONS)

    def test_every_default_pattern_has_a_strategy(self) -> None:
        for pattern in default_patterns():
            assert pattern.name in AGGREGATION_STRATEGIES
            assert pattern.aggregation == AGGREGATION_STRATEGIES[pattern.name]


class TestStrategyLookup:
    """Tests for mapping pattern names to aggregation strategies."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("youtube_summary", AggregationStrategy.SUMMARY),
            ("create_5_sentence_summary", AggregationStrategy.BRIEF_SUMMARY),
            ("extract_wisdom", AggregationStrategy.LIST_EXTRACTION),
            ("create_tags", AggregationStrategy.TAG_SET),
            ("extract_core_message", AggregationStrategy.SYNTHESIS),
            ("to_flashcards", AggregationStrategy.FLASHCARDS),
            ("analyze_claims", AggregationStrategy.DEFAULT),
        ],
    )
    def test_strategy_for(self, name: str, expected: AggregationStrategy) -> None:
        assert strategy_for(name) == expected


class TestMakePattern:
    """Tests for building pattern descriptors."""

    def test_filename_without_position(self) -> None:
        assert make_pattern("extract_ideas", 2, "Ideas").filename == "extract_ideas.txt"

    def test_explicit_aggregation(self) -> None:
        pattern = make_pattern("analyze_claims", 2, "Claims", aggregation="list-extraction")

        assert pattern.aggregation == AggregationStrategy.LIST_EXTRACTION

    def test_invalid_phase(self) -> None:
        with pytest.raises(CatalogError, match="Invalid phase 7"):
            make_pattern("extract_ideas", 7, "Ideas")

    def test_invalid_aggregation(self) -> None:
        with pytest.raises(CatalogError, match="Invalid aggregation"):
            make_pattern("extract_ideas", 2, "Ideas", aggregation="bogus")


class TestLoadPatterns:
    """Tests for loading a catalog file."""

    def write_catalog(self, path: Path, entries: list[dict[str, object]]) -> Path:
        path.write_text(tomli_w.dumps({"patterns": entries}))
        return path

    def test_no_path_uses_defaults(self) -> None:
        assert load_patterns(None) == default_patterns()

    def test_missing_file_falls_back_with_warning(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        patterns = load_patterns(tmp_path / "catalog.toml")

        assert patterns == default_patterns()
        assert "Using built-in patterns" in capsys.readouterr().err

    def test_missing_file_without_warning(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        load_patterns(tmp_path / "catalog.toml", warn_on_fallback=False)

        assert capsys.readouterr().err == ""

    def test_loads_entries(self, tmp_path: Path) -> None:
        path = self.write_catalog(
            tmp_path / "catalog.toml",
            [
                {"name": "summarize", "phase": 1, "description": "Short summary"},
                {
                    "name": "analyze_claims",
                    "phase": 2,
                    "aggregation": "list-extraction",
                    "filename": "claims.md",
                },
            ],
        )

        patterns = load_patterns(path)

        assert [p.name for p in patterns] == ["summarize", "analyze_claims"]
        assert patterns[0].filename == "01-summarize.txt"
        assert patterns[0].description == "Short summary"
        assert patterns[1].filename == "claims.md"
        assert patterns[1].description == "analyze_claims"
        assert patterns[1].aggregation == AggregationStrategy.LIST_EXTRACTION

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "catalog.toml"
        path.write_text("[[patterns]\nname = ")

        with pytest.raises(CatalogError, match="Invalid TOML"):
            load_patterns(path)

    def test_empty_catalog(self, tmp_path: Path) -> None:
        path = tmp_path / "catalog.toml"
        path.write_text("title = 'nothing here'\n")

        with pytest.raises(CatalogError, match="no \\[\\[patterns\\]\\] entries"):
            load_patterns(path)

    def test_entry_without_name(self, tmp_path: Path) -> None:
        path = self.write_catalog(tmp_path / "catalog.toml", [{"phase": 1}])

        with pytest.raises(CatalogError, match="missing a name"):
            load_patterns(path)

    def test_entry_without_phase(self, tmp_path: Path) -> None:
        path = self.write_catalog(tmp_path / "catalog.toml", [{"name": "summarize"}])

        with pytest.raises(CatalogError, match="integer phase"):
            load_patterns(path)

    def test_duplicate_filenames(self, tmp_path: Path) -> None:
        path = self.write_catalog(
            tmp_path / "catalog.toml",
            [
                {"name": "a", "phase": 1, "filename": "same.txt"},
                {"name": "b", "phase": 2, "filename": "same.txt"},
            ],
        )

        with pytest.raises(CatalogError, match="Duplicate output filenames.*same.txt"):
            load_patterns(path)
