"""Tally sheet row parsing using a cascade of structural patterns.

Turns corrected recognition text into typed rows of
``row number | pipe identifier | length (m) | weight (kg)``. Each line is
matched against an ordered list of layouts, strictest first; lines that
defeat every layout fall back to positional assignment of their numbers.
"""

import re

from src.models import ConfidenceTag, ExtractionMethod, ParsedRow
from src.utils.config import ExtractionConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)

_CIRCLED_NUMERALS: dict[str, str] = {
    "①": "1",
    "②": "2",
    "③": "3",
    "④": "4",
    "⑤": "5",
    "⑥": "6",
    "⑦": "7",
    "⑧": "8",
    "⑨": "9",
    "⑩": "10",
}
_CIRCLED_TABLE = str.maketrans(_CIRCLED_NUMERALS)

_HYPHEN_DECIMAL = re.compile(r"(\d)[\-–](\d{2,})")
_ELLIPSIS = re.compile(r"\.\.+")
_TRAILING_DOT = re.compile(r"(\d+)\.(?=\s|$)")
_NOISE = re.compile(r"[^\w\s.\-,|]", re.ASCII)
_MULTI_SPACE = re.compile(r"\s{2,}")
_NUMERIC_TOKEN = re.compile(r"[\d.]+")
_NON_NUMERIC = re.compile(r"[^\d\s.]")
_LEADING_FLOAT = re.compile(r"\d+(?:\.\d*)?|\.\d+")

_HEADER = re.compile(
    r"\bS\s*NO\b|\bSerial\s*Number\b|\bMTR\b|\bWeight\b", re.IGNORECASE
)

# Ordered layouts: (name, regex). Every regex captures
# (row number, identifier, length, weight). Later entries are more
# permissive and must not run before the stricter ones.
ROW_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    (
        "standard",
        re.compile(
            r"^(\d+)[).]?\s+(\d{2,})\s+(\d{1,3})(?:\s*mtr)?\s+(\d+\.\d+)\s*$",
            re.IGNORECASE,
        ),
    ),
    (
        "decimal_weight",
        re.compile(
            r"^(\d+)[).]?\s+(\d{2,})\s+(\d{1,3})(?:\s*mtr)?\s+(\d+\.\d+)",
            re.IGNORECASE,
        ),
    ),
    (
        "meter_suffix",
        re.compile(
            r"^(\d+)\s+(\d{2,})\s+(\d{1,3})\s?m\s+([\d.]+)", re.IGNORECASE
        ),
    ),
    (
        "integer_weight",
        re.compile(
            r"^(\d+)[).]?\s+(\d{2,})\s+(\d{1,3})(?:\s*mtr)?\s+(\d+)\b",
            re.IGNORECASE,
        ),
    ),
    (
        "permissive",
        re.compile(r"^(\d+)\s*(\d{2,})\s*(\d{1,3})\s*([\d.]+)"),
    ),
    (
        "tab_separated",
        re.compile(r"^(\d+)\t+(\d+)\t+(\d+)\t+([\d.]+)"),
    ),
    (
        "comma_separated",
        re.compile(r"^(\d+),\s*(\d+),\s*(\d+),\s*([\d.]+)"),
    ),
    (
        "pipe_separated",
        re.compile(r"^(\d+)\s*\|\s*(\d+)\s*\|\s*(\d+)\s*\|\s*([\d.]+)"),
    ),
    (
        "dash_separated",
        re.compile(r"^(\d+)\s*-\s*(\d+)\s*-\s*(\d+)\s*-\s*([\d.]+)"),
    ),
]


def _to_float(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        return None


def _leading_float(token: str) -> float | None:
    """Parse the numeric prefix of a token, e.g. ``"12.5.3"`` -> 12.5."""
    match = _LEADING_FLOAT.match(token)
    return float(match.group(0)) if match else None


def _format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def has_headers(text: str) -> bool:
    """Check whether text contains a tally sheet column header."""
    return bool(_HEADER.search(text))


def format_rows(rows: list[ParsedRow]) -> str:
    """Render rows as a fixed-width table sorted by row number.

    Args:
        rows: Parsed rows in any order.

    Returns:
        Header line followed by one line per row.
    """
    header = "S NO  Serial Number  MTR  Weight"
    lines = [
        f"{str(r.row_number):<5} {r.identifier:<15} "
        f"{_format_number(r.length_meters):<5} {r.weight_kg:.2f}"
        for r in sorted(rows, key=lambda r: r.row_number)
    ]
    return "\n".join([header, *lines])


class RowParser:
    """Parses tally sheet text into de-duplicated rows.

    Args:
        config: Extraction configuration with domain bounds.
    """

    def __init__(self, config: ExtractionConfig | None = None) -> None:
        self.config = config or ExtractionConfig()
        self.patterns = ROW_PATTERNS

    def parse_rows(self, text: str) -> list[ParsedRow]:
        """Extract rows from corrected recognition text.

        Args:
            text: Corrected text with one sheet row per line.

        Returns:
            Rows with unique row numbers, in first-seen order.
        """
        lines = [self.normalize_line(line) for line in text.splitlines()]
        candidates: list[ParsedRow] = []

        for line in lines:
            if not line:
                continue
            if len(_NUMERIC_TOKEN.findall(line)) < self.config.min_numeric_tokens:
                logger.debug("Skipping low-density line: %r", line)
                continue

            matched, row = self._match_structural(line)
            if not matched:
                if has_headers(line):
                    logger.debug("Skipping header line: %r", line)
                    continue
                row = self._match_heuristic(line)
            if row is not None:
                candidates.append(row)

        rows = self._deduplicate(candidates)
        logger.info(
            "Row parsing kept %d of %d candidate rows from %d lines",
            len(rows),
            len(candidates),
            len(lines),
        )
        return rows

    def normalize_line(self, line: str) -> str:
        """Clean one line of OCR noise before pattern matching.

        Args:
            line: A single raw line.

        Returns:
            Normalized line, or an empty string when nothing is left.
        """
        s = line.translate(_CIRCLED_TABLE)
        s = _HYPHEN_DECIMAL.sub(r"\1.\2", s)
        s = _ELLIPSIS.sub(" ", s)
        s = _TRAILING_DOT.sub(r"\1", s)
        s = _NOISE.sub(" ", s)
        s = _MULTI_SPACE.sub(" ", s)
        return s.strip()

    def _match_structural(self, line: str) -> tuple[bool, ParsedRow | None]:
        """Try each layout in order; the first match decides the line.

        Returns:
            Whether any layout matched, and the row unless the match was
            rejected by the bounds check.
        """
        for name, pattern in self.patterns:
            match = pattern.match(line)
            if not match:
                continue

            row_number = int(match.group(1))
            length = _to_float(match.group(3))
            weight = _to_float(match.group(4))
            if not self._within_bounds(row_number, length, weight):
                logger.debug(
                    "Rejecting %s match out of bounds: row=%s length=%s weight=%s",
                    name,
                    row_number,
                    length,
                    weight,
                )
                return True, None

            return True, ParsedRow(
                row_number=row_number,
                identifier=match.group(2),
                length_meters=length,
                weight_kg=weight,
                confidence_tag=ConfidenceTag.HIGH,
                source_line=line,
                extraction_method=ExtractionMethod.STRUCTURAL,
                pattern=name,
            )
        return False, None

    def _match_heuristic(self, line: str) -> ParsedRow | None:
        """Assign the first four numbers of a line to the four columns.

        Best effort for garbled lines: the positional assignment can put a
        value in the wrong column, so rows are tagged ``medium``.
        """
        tokens = _NON_NUMERIC.sub(" ", line).split()
        numbers = [
            value for value in (_leading_float(t) for t in tokens) if value is not None
        ]
        if len(numbers) < 4:
            return None

        row_number = int(numbers[0])
        length, weight = numbers[2], numbers[3]
        if not self._within_bounds(row_number, length, weight):
            return None

        logger.debug("Heuristic row from line: %r", line)
        return ParsedRow(
            row_number=row_number,
            identifier=_format_number(numbers[1]),
            length_meters=length,
            weight_kg=weight,
            confidence_tag=ConfidenceTag.MEDIUM,
            source_line=line,
            extraction_method=ExtractionMethod.HEURISTIC,
        )

    def _within_bounds(
        self, row_number: int, length: float | None, weight: float | None
    ) -> bool:
        if length is None or weight is None or row_number < 1:
            return False
        return (
            0 < length <= self.config.max_length_meters
            and 0 < weight <= self.config.max_weight_kg
        )

    def _deduplicate(self, rows: list[ParsedRow]) -> list[ParsedRow]:
        """Keep one row per row number, preferring high-confidence rows."""
        unique: dict[int, ParsedRow] = {}
        for row in rows:
            existing = unique.get(row.row_number)
            if existing is None:
                unique[row.row_number] = row
            elif (
                row.confidence_tag == ConfidenceTag.HIGH
                and existing.confidence_tag != ConfidenceTag.HIGH
            ):
                unique[row.row_number] = row
        return list(unique.values())
