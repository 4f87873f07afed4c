"""Shared test fixtures for the tally sheet OCR test suite."""

import io
from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from src.ocr.base import ProviderId, RecognitionProvider, RecognitionResult
from src.ocr.errors import ProviderAuthError, ProviderTransportError


class StubProvider(RecognitionProvider):
    """Provider that replays scripted responses.

    Each entry of ``responses`` is either ``(text, confidence)`` or an
    exception instance to raise. The last entry repeats once exhausted.
    """

    def __init__(
        self,
        provider_id: ProviderId,
        responses: list,
        confidence_threshold: float = 0.8,
        max_retries: int = 2,
        enabled: bool = True,
    ) -> None:
        super().__init__(confidence_threshold, max_retries)
        self.provider_id = provider_id
        self.responses = list(responses)
        self.calls = 0
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def call(self, image: bytes) -> RecognitionResult:
        response = self.responses[min(self.calls, len(self.responses) - 1)]
        self.calls += 1
        if isinstance(response, Exception):
            raise response
        text, confidence = response
        return RecognitionResult(text, confidence, self.provider_id)


@pytest.fixture
def stub_provider() -> Callable[..., StubProvider]:
    """Factory for scripted recognition providers."""
    return StubProvider


@pytest.fixture
def transport_error() -> ProviderTransportError:
    return ProviderTransportError("connection reset")


@pytest.fixture
def auth_error() -> ProviderAuthError:
    return ProviderAuthError("invalid key")


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_png(sample_image: np.ndarray) -> bytes:
    """PNG-encoded bytes of the synthetic test image."""
    buffer = io.BytesIO()
    Image.fromarray(sample_image).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def tally_text() -> str:
    """Recognized text of a small tally sheet."""
    return (
        "S NO Serial Number MTR Weight\n"
        "1) 267 80 78.00\n"
        "2) 268 80 79.50\n"
        "3) 269 81 80.25\n"
        "Total 500\n"
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
