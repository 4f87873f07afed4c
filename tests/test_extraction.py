"""Tests for tally row parsing and labeled field extraction."""

import pytest

from src.correction.text_corrector import TextCorrector
from src.extraction.field_extractor import FieldExtractor
from src.extraction.row_parser import ROW_PATTERNS, RowParser, format_rows, has_headers
from src.models import ConfidenceTag, ExtractionMethod, ParsedRow
from src.utils.config import ExtractionConfig


def _make_row(
    row_number: int = 1,
    identifier: str = "267",
    length: float = 80.0,
    weight: float = 78.0,
) -> ParsedRow:
    """Create a structural test row with defaults."""
    return ParsedRow(
        row_number=row_number,
        identifier=identifier,
        length_meters=length,
        weight_kg=weight,
        confidence_tag=ConfidenceTag.HIGH,
        source_line=f"{row_number} {identifier} {length} {weight}",
        extraction_method=ExtractionMethod.STRUCTURAL,
        pattern="standard",
    )


class TestRowPatterns:
    """Tests for the ordered layout cascade."""

    def test_strictest_first(self) -> None:
        names = [name for name, _ in ROW_PATTERNS]
        assert names[0] == "standard"
        assert names.index("decimal_weight") < names.index("integer_weight")
        assert names.index("integer_weight") < names.index("permissive")

    def test_every_pattern_has_four_groups(self) -> None:
        for name, pattern in ROW_PATTERNS:
            assert pattern.groups == 4, name


class TestRowParser:
    """Tests for the RowParser class."""

    def setup_method(self) -> None:
        self.parser = RowParser()

    def test_standard_row(self) -> None:
        rows = self.parser.parse_rows("1) 267 80 78.00")
        assert len(rows) == 1
        row = rows[0]
        assert row.row_number == 1
        assert row.identifier == "267"
        assert row.length_meters == 80.0
        assert row.weight_kg == 78.0
        assert row.confidence_tag == ConfidenceTag.HIGH
        assert row.extraction_method == ExtractionMethod.STRUCTURAL
        assert row.pattern == "standard"

    def test_integer_weight(self) -> None:
        rows = self.parser.parse_rows("5) 1539 88 20")
        assert len(rows) == 1
        assert rows[0].pattern == "integer_weight"
        assert rows[0].identifier == "1539"
        assert rows[0].weight_kg == 20.0

    def test_total_line_skipped(self) -> None:
        assert self.parser.parse_rows("Total 500") == []

    def test_mtr_unit_token(self) -> None:
        rows = self.parser.parse_rows("4 271 80 mtr 79.25")
        assert rows[0].pattern == "standard"
        assert rows[0].length_meters == 80.0

    def test_trailing_text_uses_decimal_weight(self) -> None:
        rows = self.parser.parse_rows("2 268 80 79.50 kg")
        assert rows[0].pattern == "decimal_weight"
        assert rows[0].weight_kg == 79.5

    def test_meter_suffix(self) -> None:
        rows = self.parser.parse_rows("3 270 82m 81.5")
        assert rows[0].pattern == "meter_suffix"
        assert rows[0].length_meters == 82.0

    @pytest.mark.parametrize("line", ["1 267 80 MTR 78", "1 267 80 mtr 78"])
    def test_mtr_unit_with_integer_weight(self, line: str) -> None:
        rows = self.parser.parse_rows(TextCorrector().correct(line))
        assert len(rows) == 1
        assert rows[0].pattern == "integer_weight"
        assert (rows[0].length_meters, rows[0].weight_kg) == (80.0, 78.0)

    def test_meter_suffix_after_correction(self) -> None:
        corrected = TextCorrector().correct("3 270 82m 81.5")
        assert corrected == "3 270 82 m 81.5"
        rows = self.parser.parse_rows(corrected)
        assert rows[0].pattern == "meter_suffix"
        assert (rows[0].length_meters, rows[0].weight_kg) == (82.0, 81.5)

    def test_pipe_separated(self) -> None:
        rows = self.parser.parse_rows("8 | 1542 | 85 | 24.5")
        assert rows[0].pattern == "pipe_separated"
        assert rows[0].identifier == "1542"

    def test_comma_separated(self) -> None:
        rows = self.parser.parse_rows("9, 1543, 86, 25.5")
        assert rows[0].pattern == "comma_separated"
        assert rows[0].weight_kg == 25.5

    def test_dash_separated(self) -> None:
        rows = self.parser.parse_rows("10 - 1544 - 87 - 26.5")
        assert rows[0].pattern == "dash_separated"
        assert rows[0].row_number == 10

    def test_circled_row_number(self) -> None:
        rows = self.parser.parse_rows("① 267 80 78.00")
        assert rows[0].row_number == 1

    def test_hyphen_as_decimal_point(self) -> None:
        rows = self.parser.parse_rows("2 268 80 79-50")
        assert rows[0].weight_kg == 79.5

    def test_trailing_dot_after_row_number(self) -> None:
        rows = self.parser.parse_rows("1. 267 80 78.00")
        assert rows[0].row_number == 1
        assert rows[0].pattern == "standard"

    def test_heuristic_row(self) -> None:
        rows = self.parser.parse_rows("3 a 269 b 81 c 80.5")
        assert len(rows) == 1
        row = rows[0]
        assert row.extraction_method == ExtractionMethod.HEURISTIC
        assert row.confidence_tag == ConfidenceTag.MEDIUM
        assert row.pattern is None
        assert (row.row_number, row.identifier) == (3, "269")
        assert (row.length_meters, row.weight_kg) == (81.0, 80.5)

    def test_structural_wins_over_heuristic(self) -> None:
        text = "3 269 81 80.25\n3 a 270 b 82 c 81.5"
        rows = self.parser.parse_rows(text)
        assert len(rows) == 1
        assert rows[0].extraction_method == ExtractionMethod.STRUCTURAL
        assert rows[0].identifier == "269"

    def test_structural_replaces_earlier_heuristic(self) -> None:
        text = "3 a 270 b 82 c 81.5\n3 269 81 80.25"
        rows = self.parser.parse_rows(text)
        assert len(rows) == 1
        assert rows[0].extraction_method == ExtractionMethod.STRUCTURAL

    def test_first_row_kept_among_equals(self) -> None:
        rows = self.parser.parse_rows("1 267 80 78.00\n1 999 70 60.00")
        assert len(rows) == 1
        assert rows[0].identifier == "267"

    def test_header_line_skipped(self) -> None:
        corrected = TextCorrector().correct("S NO Serial Number MTR Weight")
        assert self.parser.parse_rows(corrected) == []

    def test_rejected_match_not_retried(self) -> None:
        # "permissive" matches as (7, 15, 4, 0) and the zero weight rejects it.
        assert self.parser.parse_rows("7 1540 x 85 24.5") == []

    def test_low_density_line_skipped(self) -> None:
        assert self.parser.parse_rows("1 267") == []

    @pytest.mark.parametrize(
        "line",
        [
            "0 267 80 78.00",
            "1 267 150 78.00",
            "1 267 80 1500.00",
            "1 267 0 78.00",
        ],
    )
    def test_out_of_bounds_rejected(self, line: str) -> None:
        assert self.parser.parse_rows(line) == []

    def test_custom_bounds(self) -> None:
        parser = RowParser(ExtractionConfig(max_weight_kg=50.0))
        assert parser.parse_rows("1 267 80 78.00") == []

    def test_order_stable_and_idempotent(self, tally_text: str) -> None:
        text = TextCorrector().correct(tally_text)
        first = self.parser.parse_rows(text)
        second = self.parser.parse_rows(text)
        assert first == second
        assert [r.row_number for r in first] == [1, 2, 3]

    def test_invariants_on_noisy_text(self) -> None:
        text = "\n".join(
            [
                "1) 267 80 78.00",
                "2) 268 8O 79.5O",
                "2) 268 80 79.50",
                "x 3 y 269 z 81 w 80",
                "Total 500",
                "7 1000 999 9999",
                "",
                "4 271 80 mtr 79.25",
            ]
        )
        rows = self.parser.parse_rows(TextCorrector().correct(text))
        numbers = [r.row_number for r in rows]
        assert len(numbers) == len(set(numbers))
        for row in rows:
            assert row.row_number >= 1
            assert 0 < row.length_meters <= 100
            assert 0 < row.weight_kg <= 1000

    def test_empty_text(self) -> None:
        assert self.parser.parse_rows("") == []


class TestHelpers:
    """Tests for header detection and table formatting."""

    def test_has_headers(self) -> None:
        assert has_headers("S NO  Serial Number  MTR  Weight")
        assert has_headers("weight")
        assert not has_headers("1 267 80 78.00")

    def test_format_rows_sorted(self) -> None:
        table = format_rows([_make_row(2, "268", 80, 79.5), _make_row(1)])
        lines = table.splitlines()
        assert lines[0] == "S NO  Serial Number  MTR  Weight"
        assert lines[1].split() == ["1", "267", "80", "78.00"]
        assert lines[2].split() == ["2", "268", "80", "79.50"]

    def test_format_fractional_length(self) -> None:
        table = format_rows([_make_row(1, "267", 80.5, 78.0)])
        assert table.splitlines()[1].split()[2] == "80.5"

    def test_format_no_rows(self) -> None:
        assert format_rows([]) == "S NO  Serial Number  MTR  Weight"


class TestFieldExtractor:
    """Tests for the FieldExtractor class."""

    def setup_method(self) -> None:
        self.extractor = FieldExtractor()

    def test_labeled_form(self) -> None:
        text = (
            "Serial Number: 1539\n"
            "Color Grade: A\n"
            "Size: 4 inch\n"
            "Length: 12.5\n"
            "Weight: 20.3"
        )
        record = self.extractor.extract_fields(text)
        assert record.identifier == "1539"
        assert record.color_grade == "A"
        assert record.size_label == "4 inch"
        assert record.length_meters == 12.5
        assert record.weight_kg == 20.3
        assert record.validation.is_valid is True
        assert not record.is_empty

    def test_synonym_labels(self) -> None:
        record = self.extractor.extract_fields("BNO-77 MTR 9 WT 14.5 b grade")
        assert record.identifier == "77"
        assert record.length_meters == 9.0
        assert record.weight_kg == 14.5
        assert record.color_grade == "B"

    def test_label_inside_word_ignored(self) -> None:
        record = self.extractor.extract_fields("Diameter: 3 inch")
        assert record.size_label == "3 inch"
        assert record.length_meters == 0.0

    def test_fallback_text_restores_labels(self) -> None:
        raw = "Serial Number: 1539 Weight: 20"
        corrected = TextCorrector().correct(raw)
        assert self.extractor.extract_fields(corrected).identifier == ""

        record = self.extractor.extract_fields(corrected, fallback_text=raw)
        assert record.identifier == "1539"
        assert record.weight_kg == 20.0

    def test_empty_text(self) -> None:
        record = self.extractor.extract_fields("")
        assert record.is_empty
        assert record.validation.is_valid is False
        assert "Serial number not found" in record.validation.issues

    def test_tally_rows_are_not_fields(self, tally_text: str) -> None:
        corrected = TextCorrector().correct(tally_text)
        record = self.extractor.extract_fields(corrected)
        assert record.identifier == ""
