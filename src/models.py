"""Value objects shared by the extraction and validation stages.

All records are created per request and never shared between requests.
"""

from dataclasses import dataclass, field
from enum import StrEnum


class ConfidenceTag(StrEnum):
    """Coarse confidence label attached to a parsed row."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ExtractionMethod(StrEnum):
    """Which parsing path produced a row."""

    STRUCTURAL = "structural"
    HEURISTIC = "heuristic"


@dataclass(frozen=True)
class ParsedRow:
    """A single tally sheet row: number, pipe identifier, length and weight."""

    row_number: int
    identifier: str
    length_meters: float
    weight_kg: float
    confidence_tag: ConfidenceTag
    source_line: str
    extraction_method: ExtractionMethod
    pattern: str | None = None


@dataclass
class ValidationResult:
    """Outcome of a validation pass.

    ``issues`` make the result invalid; ``warnings`` only ask for review.
    """

    is_valid: bool
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    data_quality: str | None = None


@dataclass
class FieldRecord:
    """Single-record fields read from a labeled form."""

    identifier: str = ""
    color_grade: str = ""
    size_label: str = ""
    length_meters: float = 0.0
    weight_kg: float = 0.0
    validation: ValidationResult = field(
        default_factory=lambda: ValidationResult(is_valid=False)
    )

    @property
    def is_empty(self) -> bool:
        """True when none of the identifying or measured fields were found."""
        return not self.identifier and not self.length_meters and not self.weight_kg


@dataclass
class QualityReport:
    """Recognition quality score with actionable guidance."""

    issues: list[str]
    recommendations: list[str]
    score: float
    confidence: float = 0.0
    text_length: int = 0
    number_count: int = 0
