"""Data-quality validation for parsed tally rows and form fields.

Validation annotates a result with issues and warnings for human review;
it never removes rows or blocks output.
"""

import numpy as np

from src.models import ConfidenceTag, FieldRecord, ParsedRow, ValidationResult
from src.utils.config import ExtractionConfig, ValidationConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

VALID_COLOR_GRADES: frozenset[str] = frozenset({"A", "B", "C", "D"})


def data_quality_label(confidence: float) -> str:
    """Map a recognition confidence to a coarse quality label."""
    if confidence >= 0.9:
        return "excellent"
    if confidence >= 0.8:
        return "good"
    if confidence >= 0.7:
        return "fair"
    return "poor"


class Validator:
    """Validates rows, single-record fields, and whole batches.

    Args:
        config: Thresholds for outliers, confidence, and plausibility.
        extraction: Domain bounds shared with the row parser.
    """

    def __init__(
        self,
        config: ValidationConfig | None = None,
        extraction: ExtractionConfig | None = None,
    ) -> None:
        self.config = config or ValidationConfig()
        self.extraction = extraction or ExtractionConfig()

    def validate(
        self,
        rows: list[ParsedRow],
        fields: FieldRecord | None,
        confidence: float,
    ) -> ValidationResult:
        """Validate one extraction result as a batch.

        Args:
            rows: Parsed tally rows, possibly empty.
            fields: Single-record fields, if extracted.
            confidence: Recognition confidence of the source text.

        Returns:
            Batch validation result with a data quality label.
        """
        issues: list[str] = []
        warnings: list[str] = []

        if not rows and not (fields and fields.identifier):
            issues.append("No valid pipe data extracted")

        if rows:
            warnings.extend(
                self._dispersion_warnings("length", [r.length_meters for r in rows])
            )
            warnings.extend(
                self._dispersion_warnings("weight", [r.weight_kg for r in rows])
            )
            warnings.extend(self._outlier_warnings(rows))

            duplicates = self._duplicate_identifiers(rows)
            if duplicates:
                issues.append(
                    "Duplicate serial numbers detected: " + ", ".join(duplicates)
                )

            for row in rows:
                if row.confidence_tag != ConfidenceTag.HIGH:
                    warnings.append(
                        f"Row {row.row_number} was extracted heuristically "
                        "- manual review required"
                    )
                warnings.extend(self.validate_row(row).warnings)

        if confidence < self.config.low_confidence_threshold:
            warnings.append(
                "Low confidence extraction - manual verification recommended"
            )

        result = ValidationResult(
            is_valid=not issues,
            issues=issues,
            warnings=warnings,
            data_quality=data_quality_label(confidence),
        )
        logger.info(
            "Validation %s: %d issues, %d warnings",
            "PASSED" if result.is_valid else "FAILED",
            len(issues),
            len(warnings),
        )
        return result

    def validate_row(self, row: ParsedRow) -> ValidationResult:
        """Check a single row for physically implausible values."""
        issues: list[str] = []
        warnings: list[str] = []

        if not 0 < row.length_meters <= self.extraction.max_length_meters:
            issues.append(f"Row {row.row_number}: invalid length {row.length_meters}")
        if not 0 < row.weight_kg <= self.extraction.max_weight_kg:
            issues.append(f"Row {row.row_number}: invalid weight {row.weight_kg}")

        if row.length_meters > 0 and row.weight_kg > 0:
            per_meter = row.weight_kg / row.length_meters
            if per_meter > self.config.max_weight_per_meter:
                warnings.append(
                    f"Row {row.row_number}: unusually high weight per meter "
                    f"({per_meter:.2f} kg/m)"
                )
            elif per_meter < self.config.min_weight_per_meter:
                warnings.append(
                    f"Row {row.row_number}: unusually low weight per meter "
                    f"({per_meter:.2f} kg/m)"
                )

        return ValidationResult(is_valid=not issues, issues=issues, warnings=warnings)

    def validate_fields(
        self,
        identifier: str,
        color_grade: str,
        size_label: str,
        length_meters: float,
        weight_kg: float,
    ) -> ValidationResult:
        """Validate the fields of a single labeled form."""
        issues: list[str] = []
        warnings: list[str] = []

        if not identifier:
            issues.append("Serial number not found")

        if not color_grade:
            warnings.append("Color grade not detected")
        elif color_grade not in VALID_COLOR_GRADES:
            issues.append(f"Invalid color grade: {color_grade}")

        if not size_label:
            warnings.append("Size type not detected")

        if length_meters <= 0:
            issues.append("Invalid or missing length")
        elif length_meters > self.extraction.max_length_meters:
            warnings.append(f"Length seems unusually high: {length_meters}")

        if weight_kg <= 0:
            issues.append("Invalid or missing weight")
        elif weight_kg > self.extraction.max_weight_kg:
            warnings.append(f"Weight seems unusually high: {weight_kg}")

        return ValidationResult(is_valid=not issues, issues=issues, warnings=warnings)

    def _dispersion_warnings(self, name: str, values: list[float]) -> list[str]:
        """Warn when the mean absolute deviation exceeds the outlier ratio."""
        data = np.array([v for v in values if v > 0], dtype=float)
        if data.size == 0:
            return []
        mean = data.mean()
        if np.abs(data - mean).mean() > mean * self.config.outlier_ratio:
            return [f"High variance in pipe {name}s detected"]
        return []

    def _outlier_warnings(self, rows: list[ParsedRow]) -> list[str]:
        """Flag rows whose length or weight is far from the batch mean."""
        if len(rows) < 2:
            return []

        warnings: list[str] = []
        ratio = self.config.outlier_ratio
        lengths = np.array([r.length_meters for r in rows], dtype=float)
        weights = np.array([r.weight_kg for r in rows], dtype=float)
        mean_length = lengths.mean()
        mean_weight = weights.mean()

        for row, length, weight in zip(rows, lengths, weights):
            if abs(length - mean_length) > mean_length * ratio:
                warnings.append(
                    f"Row {row.row_number}: length {length:g} deviates more than "
                    f"{ratio:.0%} from the batch mean {mean_length:.2f}"
                )
            if abs(weight - mean_weight) > mean_weight * ratio:
                warnings.append(
                    f"Row {row.row_number}: weight {weight:g} deviates more than "
                    f"{ratio:.0%} from the batch mean {mean_weight:.2f}"
                )
        return warnings

    def _duplicate_identifiers(self, rows: list[ParsedRow]) -> list[str]:
        seen: set[str] = set()
        duplicates: list[str] = []
        for row in rows:
            if row.identifier in seen and row.identifier not in duplicates:
                duplicates.append(row.identifier)
            seen.add(row.identifier)
        return duplicates
