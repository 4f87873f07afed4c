"""Recognition quality scoring for review signalling.

Scores recognized text on provider confidence, text length, digit density
and the accuracy tier of the provider that produced it, and turns the
weak spots into recommendations a user can act on.
"""

import re

from src.models import QualityReport
from src.ocr.base import ProviderId
from src.utils.logger import get_logger

logger = get_logger(__name__)

# Higher-accuracy providers earn a larger share of the score.
PROVIDER_BONUS: dict[ProviderId, float] = {
    ProviderId.GEMINI: 15.0,
    ProviderId.GOOGLE_VISION: 12.0,
    ProviderId.AZURE_VISION: 10.0,
    ProviderId.OCR_SPACE: 8.0,
}
_DEFAULT_PROVIDER_BONUS = 5.0

_UNCERTAIN_CHARACTERS = ("?", "|", "_")
_ARTIFACT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"[^\w\s.,\-]", re.ASCII),
    re.compile(r"[^\x00-\x7F]"),
]
_DIGIT = re.compile(r"[0-9]")


def _count_digits(text: str) -> int:
    return len(_DIGIT.findall(text))


class QualityAnalyzer:
    """Scores a recognition result and explains its weak spots."""

    def analyze(
        self,
        text: str,
        confidence: float,
        providers_used: list[ProviderId],
        raw_text: str | None = None,
    ) -> QualityReport:
        """Build a quality report for recognized text.

        Args:
            text: Corrected recognition text.
            confidence: Provider confidence in [0, 1].
            providers_used: Providers whose output produced ``text``.
            raw_text: Uncorrected text, used to spot uncertain characters
                and artifacts that correction already removed.

        Returns:
            Quality report with a score in [0, 100].
        """
        source = text if raw_text is None else raw_text
        issues: list[str] = []
        recommendations: list[str] = []
        number_count = _count_digits(text)

        if len(text) < 10:
            issues.append("Very short text extracted")
            recommendations.append("Ensure image contains sufficient text content")

        if any(ch in source for ch in _UNCERTAIN_CHARACTERS):
            issues.append("Uncertain characters detected")
            recommendations.append("Improve image clarity and contrast")

        if confidence < 0.7:
            issues.append("Low confidence in text extraction")
            recommendations.append("Use higher resolution images with better lighting")

        if number_count < 4:
            issues.append("Insufficient numbers detected")
            recommendations.append(
                "Ensure numbers are clearly visible and well-spaced"
            )

        if self._has_artifacts(source):
            issues.append("High number of OCR artifacts detected")
            recommendations.append("Clean image and remove noise before processing")

        score = self.score(text, confidence, providers_used)
        logger.debug("Quality score %.1f with %d issues", score, len(issues))
        return QualityReport(
            issues=issues,
            recommendations=recommendations,
            score=score,
            confidence=confidence,
            text_length=len(text),
            number_count=number_count,
        )

    def score(
        self, text: str, confidence: float, providers_used: list[ProviderId]
    ) -> float:
        """Combine confidence, length, digit density and provider tier."""
        score = confidence * 40

        if len(text) > 50:
            score += 20
        elif len(text) > 20:
            score += 15
        elif len(text) > 10:
            score += 10

        digits = _count_digits(text)
        if digits > 10:
            score += 20
        elif digits > 5:
            score += 15
        elif digits > 2:
            score += 10

        bonuses = [
            PROVIDER_BONUS.get(p, _DEFAULT_PROVIDER_BONUS) for p in providers_used
        ]
        score += max(bonuses, default=_DEFAULT_PROVIDER_BONUS)

        return min(100.0, max(0.0, score))

    def _has_artifacts(self, text: str) -> bool:
        if not text:
            return False
        return any(
            len(pattern.findall(text)) > len(text) * 0.1
            for pattern in _ARTIFACT_PATTERNS
        )
