"""Label-based field extraction for single-pipe forms.

Used when a photo shows one labeled record ("Serial Number: 1539",
"Weight: 20") instead of a tally table. Each field has an ordered list of
label synonyms; the first pattern that matches wins.
"""

import re

from src.models import FieldRecord
from src.utils.logger import get_logger
from src.validation.validator import Validator

logger = get_logger(__name__)

_IDENTIFIER_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\bSerial\s*Number\s*[:-]?\s*([A-Za-z0-9\-_]+)", re.IGNORECASE),
    re.compile(r"\bBNO\b\s*[:-]?\s*([A-Za-z0-9\-_]+)", re.IGNORECASE),
    re.compile(r"\bB\s*NO\b\s*[:-]?\s*([A-Za-z0-9\-_]+)", re.IGNORECASE),
    re.compile(r"\bS\s*NO\b\s*[:-]?\s*([A-Za-z0-9\-_]+)", re.IGNORECASE),
    re.compile(r"\bID\b\s*[:-]?\s*([A-Za-z0-9\-_]+)", re.IGNORECASE),
]

_COLOR_GRADE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\bColor\s*Grade\s*[:-]?\s*([ABCD])\b", re.IGNORECASE),
    re.compile(r"\bGrade\s*[:-]?\s*([ABCD])\b", re.IGNORECASE),
    re.compile(r"\bQuality\s*[:-]?\s*([ABCD])\b", re.IGNORECASE),
    re.compile(r"\b([ABCD])\s*Grade", re.IGNORECASE),
    re.compile(r"\b([ABCD])\s*Quality", re.IGNORECASE),
]

_SIZE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\bSize\s*Type\s*[:-]?\s*([\d.\-]+\s*inch)", re.IGNORECASE),
    re.compile(r"\bSize\s*[:-]?\s*([\d.\-]+\s*inch)", re.IGNORECASE),
    re.compile(r"\bDiameter\s*[:-]?\s*([\d.\-]+\s*inch)", re.IGNORECASE),
    re.compile(r"\bWidth\s*[:-]?\s*([\d.\-]+\s*inch)", re.IGNORECASE),
]

_LENGTH_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\bLength\s*[:-]?\s*([\d.]+)", re.IGNORECASE),
    re.compile(r"\bMTR\b\s*[:-]?\s*([\d.]+)", re.IGNORECASE),
    re.compile(r"\bMeter\s*[:-]?\s*([\d.]+)", re.IGNORECASE),
    re.compile(r"\bHeight\s*[:-]?\s*([\d.]+)", re.IGNORECASE),
]

_WEIGHT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"\bWeight\s*[:-]?\s*([\d.]+)", re.IGNORECASE),
    re.compile(r"\bWT\b\s*[:-]?\s*([\d.]+)", re.IGNORECASE),
    re.compile(r"\bMass\s*[:-]?\s*([\d.]+)", re.IGNORECASE),
    re.compile(r"\bKG\b\s*[:-]?\s*([\d.]+)", re.IGNORECASE),
]

_LEADING_FLOAT = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def _first_match(patterns: list[re.Pattern[str]], text: str) -> str:
    for pattern in patterns:
        match = pattern.search(text)
        if match and match.group(1):
            return match.group(1).strip()
    return ""


def _parse_number(value: str) -> float:
    match = _LEADING_FLOAT.match(value)
    return float(match.group(0)) if match else 0.0


class FieldExtractor:
    """Extracts the fields of a single labeled pipe record.

    Args:
        validator: Validator used to annotate the extracted record.
    """

    def __init__(self, validator: Validator | None = None) -> None:
        self.validator = validator or Validator()

    def extract_fields(
        self, text: str, fallback_text: str | None = None
    ) -> FieldRecord:
        """Extract identifier, grade, size, length and weight from text.

        Args:
            text: Corrected recognition text.
            fallback_text: Text searched for any field missing from
                ``text``, typically the uncorrected recognition output
                whose letter labels survived.

        Returns:
            Field record; unmatched fields are empty strings or 0.0.
        """
        sources = [text] if fallback_text is None else [text, fallback_text]

        identifier = self._search(_IDENTIFIER_PATTERNS, sources)
        color_grade = self._search(_COLOR_GRADE_PATTERNS, sources).upper()
        size_label = self._search(_SIZE_PATTERNS, sources)
        length = _parse_number(self._search(_LENGTH_PATTERNS, sources))
        weight = _parse_number(self._search(_WEIGHT_PATTERNS, sources))

        validation = self.validator.validate_fields(
            identifier, color_grade, size_label, length, weight
        )
        if not validation.is_valid:
            logger.debug("Field record validation issues: %s", validation.issues)

        return FieldRecord(
            identifier=identifier,
            color_grade=color_grade,
            size_label=size_label,
            length_meters=length,
            weight_kg=weight,
            validation=validation,
        )

    def _search(self, patterns: list[re.Pattern[str]], sources: list[str]) -> str:
        for source in sources:
            value = _first_match(patterns, source)
            if value:
                return value
        return ""
