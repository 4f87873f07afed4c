"""Recognition provider interface and result type.

Every back-end (cloud APIs and the local Tesseract engine) implements
``RecognitionProvider`` so the orchestrator can try them in priority order
without knowing how each one talks to its service.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum


class ProviderId(StrEnum):
    """Known recognition back-ends, in default priority order."""

    GEMINI = "gemini"
    GOOGLE_VISION = "google_vision"
    AZURE_VISION = "azure_vision"
    OCR_SPACE = "ocr_space"
    TESSERACT = "tesseract"


@dataclass(frozen=True)
class RecognitionResult:
    """Text recognized by one provider attempt."""

    text: str
    confidence: float
    provider_id: ProviderId


def normalize_confidence(value: object, default: float) -> float:
    """Coerce a provider-reported confidence into [0, 1].

    Values above 1 are treated as percentages. Missing or non-numeric
    values fall back to ``default``.

    Args:
        value: Raw confidence from a provider payload.
        default: Confidence to use when ``value`` is unusable.

    Returns:
        Confidence in the closed interval [0, 1].
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    confidence = float(value)
    if math.isnan(confidence):
        return default
    if confidence > 1:
        confidence /= 100
    return min(1.0, max(0.0, confidence))


class RecognitionProvider(ABC):
    """A text-recognition back-end.

    Args:
        confidence_threshold: Minimum confidence for a result to qualify.
        max_retries: Attempts the orchestrator may make per request.
    """

    provider_id: ProviderId

    def __init__(self, confidence_threshold: float, max_retries: int) -> None:
        self.confidence_threshold = confidence_threshold
        self.max_retries = max_retries

    @property
    def enabled(self) -> bool:
        """Whether the provider can be called (credentials present)."""
        return True

    @abstractmethod
    def call(self, image: bytes) -> RecognitionResult:
        """Recognize text in an encoded image.

        Args:
            image: Normalized image bytes (PNG or JPEG).

        Returns:
            Recognized text with the provider's confidence.

        Raises:
            ProviderTransportError: On network, server, or payload errors.
            ProviderAuthError: On missing or rejected credentials.
        """

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(threshold={self.confidence_threshold}, "
            f"max_retries={self.max_retries}, enabled={self.enabled})"
        )
