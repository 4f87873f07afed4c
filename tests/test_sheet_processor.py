"""Tests for end-to-end sheet processing with stubbed providers."""

import pytest

from src.models import ConfidenceTag
from src.ocr.base import ProviderId
from src.ocr.errors import AllProvidersExhausted
from src.ocr.orchestrator import ServiceOrchestrator
from src.ocr.sheet_processor import ResultShape, SheetProcessor
from src.ocr.tesseract_engine import TesseractProvider
from src.utils.config import AppConfig

PLAIN_ROWS = "1) 267 80 78.00\n2) 268 80 79.50\n3) 269 81 80.25"
LABELED_FORM = "Serial Number: 1539 Length: 12.5 Weight: 20.3"


def _processor(stub_provider, text: str = PLAIN_ROWS, confidence: float = 0.9):
    gemini = stub_provider(ProviderId.GEMINI, [(text, confidence)], 0.85, 3)
    fallback = stub_provider(ProviderId.TESSERACT, [("", 0.6)], 0.0)
    orchestrator = ServiceOrchestrator([gemini], fallback, sleep=lambda s: None)
    return SheetProcessor(AppConfig(), orchestrator=orchestrator)


class TestProcess:
    """Tests for image-to-result processing."""

    def test_rows_result(self, stub_provider, sample_png: bytes) -> None:
        result = _processor(stub_provider).process(sample_png)

        assert result.shape == ResultShape.ROWS
        assert [r.row_number for r in result.rows] == [1, 2, 3]
        assert result.providers_used == [ProviderId.GEMINI]
        assert result.confidence == 0.9
        assert result.raw_text == PLAIN_ROWS
        assert result.has_structured_data is True
        assert result.validation.is_valid is True
        assert result.validation.data_quality == "excellent"
        assert result.formatted_text.startswith("S NO  Serial Number  MTR  Weight")

    def test_header_and_total_lines(
        self, stub_provider, sample_png: bytes, tally_text: str
    ) -> None:
        result = _processor(stub_provider, tally_text).process(sample_png)
        assert [r.identifier for r in result.rows] == ["267", "268", "269"]
        assert all(r.confidence_tag == ConfidenceTag.HIGH for r in result.rows)

    def test_offline_fallback(self, stub_provider, sample_png: bytes) -> None:
        gemini = stub_provider(ProviderId.GEMINI, [("x", 0.99)], 0.85, enabled=False)
        fallback = stub_provider(ProviderId.TESSERACT, [(PLAIN_ROWS, 0.55)], 0.0)
        processor = SheetProcessor(
            AppConfig(), orchestrator=ServiceOrchestrator([gemini], fallback)
        )

        result = processor.process(sample_png)

        assert result.providers_used == [ProviderId.TESSERACT]
        assert len(result.rows) == 3
        assert result.shape == ResultShape.ROWS
        assert "Low confidence extraction - manual verification recommended" in (
            result.validation.warnings
        )

    def test_exhausted_propagates(self, stub_provider, sample_png: bytes) -> None:
        processor = _processor(stub_provider, text="")
        with pytest.raises(AllProvidersExhausted):
            processor.process(sample_png)

    def test_undecodable_image(self, stub_provider) -> None:
        with pytest.raises(ValueError):
            _processor(stub_provider).process(b"not an image")


class TestProcessText:
    """Tests for text-only processing and shape selection."""

    def setup_method(self) -> None:
        offline = ServiceOrchestrator([], TesseractProvider())
        self.processor = SheetProcessor(AppConfig(), orchestrator=offline)

    def test_deterministic(self, tally_text: str) -> None:
        first = self.processor.process_text(tally_text, 0.9, [ProviderId.GEMINI])
        second = self.processor.process_text(tally_text, 0.9, [ProviderId.GEMINI])
        assert first == second

    def test_rows_when_fields_empty_even_at_low_confidence(self) -> None:
        result = self.processor.process_text(PLAIN_ROWS, 0.5, [ProviderId.TESSERACT])
        assert result.fields.is_empty
        assert result.shape == ResultShape.ROWS

    def test_fields_shape(self) -> None:
        result = self.processor.process_text(LABELED_FORM, 0.9, [ProviderId.GEMINI])
        assert result.rows == []
        assert result.shape == ResultShape.FIELDS
        assert result.fields.identifier == "1539"
        assert result.fields.length_meters == 12.5
        assert result.fields.weight_kg == 20.3
        assert result.formatted_text is None
        assert result.has_structured_data is True

    def test_fields_preferred_below_row_threshold(self, tally_text: str) -> None:
        text = tally_text + LABELED_FORM
        high = self.processor.process_text(text, 0.9, [ProviderId.GEMINI])
        low = self.processor.process_text(text, 0.6, [ProviderId.GEMINI])
        assert high.shape == ResultShape.ROWS
        assert low.shape == ResultShape.FIELDS
        assert low.rows == high.rows

    def test_no_structured_data(self) -> None:
        result = self.processor.process_text("hello world", 0.9, [ProviderId.GEMINI])
        assert result.has_structured_data is False
        assert result.shape == ResultShape.FIELDS
        assert "No valid pipe data extracted" in result.validation.issues

    def test_corrected_text_recorded(self) -> None:
        result = self.processor.process_text("l) 2G7 8O 78.OO", 0.9, [])
        assert result.raw_text == "l) 2G7 8O 78.OO"
        assert result.corrected_text == "1) 267 80 78.00"
        assert result.rows[0].identifier == "267"

    @pytest.mark.parametrize(
        ("raw", "corrected"),
        [
            ("1. 267 80 78.00", "1.267 80 78.00"),
            ("9, 1543, 86, 25.5", "9.1543, 86.25.5"),
        ],
    )
    def test_split_decimal_repair_merges_separators(
        self, raw: str, corrected: str
    ) -> None:
        result = self.processor.process_text(raw, 0.9, [ProviderId.GEMINI])
        assert result.corrected_text == corrected
        assert result.rows == []

    def test_meter_suffix_row(self) -> None:
        result = self.processor.process_text("3 270 82m 81.5", 0.9, [])
        assert result.shape == ResultShape.ROWS
        assert result.rows[0].pattern == "meter_suffix"
        assert result.rows[0].length_meters == 82.0
