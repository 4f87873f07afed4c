"""End-to-end tally sheet processing.

Combines image normalization, provider orchestration, text correction,
row and field extraction, and quality checks into a single interface.
"""

from dataclasses import dataclass, field
from enum import StrEnum

from src.correction.text_corrector import TextCorrector
from src.extraction.field_extractor import FieldExtractor
from src.extraction.row_parser import RowParser, format_rows
from src.models import FieldRecord, ParsedRow, QualityReport, ValidationResult
from src.preprocessing.pipeline import ImageNormalizer
from src.utils.config import AppConfig
from src.utils.logger import get_logger
from src.validation.quality import QualityAnalyzer
from src.validation.validator import Validator

from .base import ProviderId
from .orchestrator import ServiceOrchestrator

logger = get_logger(__name__)


class ResultShape(StrEnum):
    """Which extraction the caller should use."""

    ROWS = "rows"
    FIELDS = "fields"


@dataclass
class SheetResult:
    """Complete processing results for one tally sheet image."""

    shape: ResultShape
    rows: list[ParsedRow]
    fields: FieldRecord
    raw_text: str
    corrected_text: str
    quality: QualityReport
    validation: ValidationResult
    providers_used: list[ProviderId] = field(default_factory=list)
    confidence: float = 0.0
    formatted_text: str | None = None

    @property
    def has_structured_data(self) -> bool:
        """False when neither rows nor labeled fields were found."""
        return bool(self.rows) or not self.fields.is_empty


class SheetProcessor:
    """Tally sheet pipeline from image bytes to structured rows.

    Args:
        config: Application configuration object.
        orchestrator: Provider chain; built from ``config`` when None.
    """

    def __init__(
        self,
        config: AppConfig,
        orchestrator: ServiceOrchestrator | None = None,
    ) -> None:
        self.config = config
        self.normalizer = ImageNormalizer(config.preprocessing)
        self.orchestrator = orchestrator or ServiceOrchestrator.from_config(config)
        self.corrector = TextCorrector()
        self.validator = Validator(config.validation, config.extraction)
        self.row_parser = RowParser(config.extraction)
        self.field_extractor = FieldExtractor(self.validator)
        self.quality_analyzer = QualityAnalyzer()

    def process(self, image: bytes, timeout: float | None = None) -> SheetResult:
        """Recognize and extract one tally sheet image.

        Args:
            image: Encoded image bytes.
            timeout: Seconds allowed for the cloud providers.

        Returns:
            Extraction results in the selected shape.

        Raises:
            AllProvidersExhausted: If no provider produced any text.
            ValueError: If the image cannot be decoded.
        """
        normalized = self.normalizer.normalize(image)
        recognition = self.orchestrator.recognize(normalized, timeout=timeout)
        return self.process_text(
            recognition.text,
            recognition.confidence,
            [recognition.provider_id],
        )

    def process_text(
        self,
        raw_text: str,
        confidence: float,
        providers_used: list[ProviderId],
    ) -> SheetResult:
        """Run correction, extraction and validation on recognized text.

        Args:
            raw_text: Text as returned by the provider.
            confidence: Provider confidence in [0, 1].
            providers_used: Providers that produced ``raw_text``.

        Returns:
            Extraction results in the selected shape.
        """
        corrected = self.corrector.correct(raw_text)
        rows = self.row_parser.parse_rows(corrected)
        fields = self.field_extractor.extract_fields(corrected, fallback_text=raw_text)

        quality = self.quality_analyzer.analyze(
            corrected, confidence, providers_used, raw_text=raw_text
        )
        validation = self.validator.validate(rows, fields, confidence)

        shape = self._select_shape(rows, fields, confidence)
        result = SheetResult(
            shape=shape,
            rows=rows,
            fields=fields,
            raw_text=raw_text,
            corrected_text=corrected,
            quality=quality,
            validation=validation,
            providers_used=list(providers_used),
            confidence=confidence,
            formatted_text=format_rows(rows) if shape == ResultShape.ROWS else None,
        )

        if not result.has_structured_data:
            logger.warning("No structured data found in recognized text")
        logger.info(
            "Extracted %d rows as %s with quality score %.1f",
            len(rows),
            shape,
            quality.score,
        )
        return result

    def _select_shape(
        self, rows: list[ParsedRow], fields: FieldRecord, confidence: float
    ) -> ResultShape:
        if rows and (
            fields.is_empty
            or confidence >= self.config.extraction.prefer_rows_threshold
        ):
            return ResultShape.ROWS
        return ResultShape.FIELDS
