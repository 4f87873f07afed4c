"""Multi-pass correction of recognized tally sheet text.

Fixes systematic character confusions (O/0, S/5, l/1, ...) and number
formatting damage introduced by handwriting recognition. The passes run in
a fixed order because later passes rely on the output of earlier ones.
"""

import re

from src.utils.logger import get_logger

logger = get_logger(__name__)

# Confusable character -> replacement, applied in insertion order.
CHARACTER_CORRECTIONS: dict[str, str] = {
    "O": "0",
    "o": "0",
    "l": "1",
    "I": "1",
    "i": "1",
    "S": "5",
    "s": "5",
    "G": "6",
    "g": "6",
    "B": "8",
    "Z": "2",
    "z": "2",
    "A": "4",
    "a": "4",
    "|": "1",
    "_": "",
    "?": "",
    "!": "1",
    "D": "0",
    "d": "0",
    "Q": "0",
    "q": "0",
}

_SUBSTITUTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(re.escape(wrong)), replacement)
    for wrong, replacement in CHARACTER_CORRECTIONS.items()
]

_SPLIT_DECIMAL = re.compile(r"(\d+) ?[.,] ?(\d+)")
_METER_NOTATION = re.compile(r"(\d+) ?[mM] ?(\d+)")
_WHITESPACE = re.compile(r"\s+")
_DIGIT_THEN_UPPER = re.compile(r"(\d)([A-Z])")
_UPPER_THEN_DIGIT = re.compile(r"([A-Z])(\d)")


class TextCorrector:
    """Deterministic corrector for raw recognition output.

    ``correct`` is total and pure, but not a fixed point: a second pass can
    still change text whose whitespace was only normalized by the first.
    """

    def correct(self, raw_text: str) -> str:
        """Run all correction passes over recognized text.

        Args:
            raw_text: Text as returned by a recognition provider.

        Returns:
            Corrected text, one non-empty line per source line.
        """
        corrected = self.substitute_characters(raw_text)
        corrected = self.repair_numbers(corrected)
        corrected = self.normalize_whitespace(corrected)
        corrected = self.split_fused_tokens(corrected)

        logger.debug(
            "Corrected %d characters into %d characters",
            len(raw_text),
            len(corrected),
        )
        return corrected

    def substitute_characters(self, text: str) -> str:
        """Replace characters commonly confused with digits."""
        for pattern, replacement in _SUBSTITUTIONS:
            text = pattern.sub(replacement, text)
        return text

    def repair_numbers(self, text: str) -> str:
        """Join split decimals and normalize meter notation."""
        text = _SPLIT_DECIMAL.sub(r"\1.\2", text)
        return _METER_NOTATION.sub(r"\1 m \2", text)

    def normalize_whitespace(self, text: str) -> str:
        """Collapse whitespace runs within each line and drop blank lines."""
        lines = (_WHITESPACE.sub(" ", line).strip() for line in text.splitlines())
        return "\n".join(line for line in lines if line)

    def split_fused_tokens(self, text: str) -> str:
        """Insert a space at every digit/upper-case letter boundary."""
        text = _DIGIT_THEN_UPPER.sub(r"\1 \2", text)
        return _UPPER_THEN_DIGIT.sub(r"\1 \2", text)
