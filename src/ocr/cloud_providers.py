"""Cloud recognition providers reached over HTTP.

Implements Google Gemini, Google Cloud Vision, Azure Computer Vision (Read
API) and OCR.space on top of a shared ``httpx`` client. HTTP failures are
mapped onto the provider error taxonomy: 401/403 become
``ProviderAuthError``, everything else ``ProviderTransportError``.
"""

import base64
import time
from abc import abstractmethod
from collections.abc import Callable
from typing import Any

import httpx

from src.utils.config import ProviderSettings
from src.utils.logger import get_logger

from .base import (
    ProviderId,
    RecognitionProvider,
    RecognitionResult,
    normalize_confidence,
)
from .errors import ProviderAuthError, ProviderTransportError

logger = get_logger(__name__)

_AUTH_STATUS_CODES = frozenset({401, 403})

GEMINI_PROMPT = (
    "Extract all readable text from this image. Preserve line breaks. "
    "Do not explain, return only the extracted text."
)


def _detect_mime_type(image: bytes) -> str:
    if image.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    return "image/png"


class HttpRecognitionProvider(RecognitionProvider):
    """Base class for providers that call a JSON HTTP API.

    Args:
        settings: Credentials, endpoint, threshold and retry settings.
        client: HTTP client to use. A private client is created when
            ``None``.
    """

    default_confidence: float = 0.9

    def __init__(
        self,
        settings: ProviderSettings,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__(
            confidence_threshold=settings.confidence_threshold,
            max_retries=settings.max_retries,
        )
        self.settings = settings
        self.client = client or httpx.Client(timeout=settings.request_timeout)

    @property
    def enabled(self) -> bool:
        return self.settings.enabled

    def call(self, image: bytes) -> RecognitionResult:
        if not self.settings.api_key:
            raise ProviderAuthError(f"{self.provider_id} API key is not configured")
        try:
            text, confidence = self._recognize(image)
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as exc:
            raise ProviderTransportError(
                f"Malformed {self.provider_id} response: {exc!r}"
            ) from exc
        return RecognitionResult(
            text=text,
            confidence=normalize_confidence(confidence, self.default_confidence),
            provider_id=self.provider_id,
        )

    @abstractmethod
    def _recognize(self, image: bytes) -> tuple[str, Any]:
        """Call the service and return ``(text, raw confidence)``."""

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and translate failures into provider errors."""
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderTransportError(
                f"{self.provider_id} request failed: {exc}"
            ) from exc

        if response.status_code in _AUTH_STATUS_CODES:
            raise ProviderAuthError(
                f"{self.provider_id} rejected credentials "
                f"(HTTP {response.status_code})"
            )
        if response.is_error:
            raise ProviderTransportError(
                f"{self.provider_id} returned HTTP {response.status_code}"
            )
        return response


class GeminiProvider(HttpRecognitionProvider):
    """Google Gemini multimodal model used as a transcriber."""

    provider_id = ProviderId.GEMINI
    default_confidence = 0.95

    def _recognize(self, image: bytes) -> tuple[str, Any]:
        url = f"{self.settings.endpoint}/{self.settings.model}:generateContent"
        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": GEMINI_PROMPT},
                        {
                            "inline_data": {
                                "mime_type": _detect_mime_type(image),
                                "data": base64.b64encode(image).decode("ascii"),
                            }
                        },
                    ]
                }
            ]
        }
        response = self._send(
            "POST", url, params={"key": self.settings.api_key}, json=payload
        )
        candidates = response.json().get("candidates") or []
        if not candidates:
            return "", None
        parts = candidates[0]["content"].get("parts", [])
        text = "\n".join(part.get("text", "") for part in parts)
        # The model reports no confidence of its own.
        return text, None


class GoogleVisionProvider(HttpRecognitionProvider):
    """Google Cloud Vision ``TEXT_DETECTION``; strong on handwriting."""

    provider_id = ProviderId.GOOGLE_VISION
    default_confidence = 0.9

    def _recognize(self, image: bytes) -> tuple[str, Any]:
        payload = {
            "requests": [
                {
                    "image": {"content": base64.b64encode(image).decode("ascii")},
                    "features": [{"type": "TEXT_DETECTION", "maxResults": 1}],
                    "imageContext": {
                        "languageHints": ["en"],
                        "textDetectionParams": {
                            "enableTextDetectionConfidenceScore": True
                        },
                    },
                }
            ]
        }
        response = self._send(
            "POST",
            self.settings.endpoint,
            params={"key": self.settings.api_key},
            json=payload,
        )
        responses = response.json().get("responses") or [{}]
        first = responses[0]
        if "error" in first:
            raise ProviderTransportError(
                f"Google Vision error: {first['error'].get('message', first['error'])}"
            )
        annotations = first.get("textAnnotations") or []
        if not annotations:
            return "", None
        return annotations[0]["description"], annotations[0].get("confidence")


class AzureVisionProvider(HttpRecognitionProvider):
    """Azure Computer Vision Read API (asynchronous submit-then-poll).

    Args:
        settings: Credentials, endpoint, threshold and retry settings.
        client: HTTP client to use.
        poll_attempts: Status polls before giving up.
        poll_interval: Seconds between status polls.
        sleep: Sleep function, injectable for tests.
    """

    provider_id = ProviderId.AZURE_VISION
    default_confidence = 0.95

    def __init__(
        self,
        settings: ProviderSettings,
        client: httpx.Client | None = None,
        poll_attempts: int = 10,
        poll_interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(settings, client)
        self.poll_attempts = poll_attempts
        self.poll_interval = poll_interval
        self._sleep = sleep

    def _recognize(self, image: bytes) -> tuple[str, Any]:
        headers = {"Ocp-Apim-Subscription-Key": self.settings.api_key}
        submit = self._send(
            "POST",
            self.settings.endpoint,
            headers={**headers, "Content-Type": "application/octet-stream"},
            content=image,
        )
        operation_url = submit.headers.get("Operation-Location")
        if not operation_url:
            raise ProviderTransportError("Azure response has no Operation-Location")

        for _ in range(self.poll_attempts):
            self._sleep(self.poll_interval)
            status = self._send("GET", operation_url, headers=headers).json()
            state = status.get("status")
            if state == "succeeded":
                pages = status["analyzeResult"]["readResults"]
                text = "\n".join(
                    line["text"] for page in pages for line in page.get("lines", [])
                )
                # The Read API reports per-word confidence only.
                return text, None
            if state == "failed":
                raise ProviderTransportError("Azure read operation failed")

        raise ProviderTransportError(
            f"Azure read operation not finished after {self.poll_attempts} polls"
        )


class OcrSpaceProvider(HttpRecognitionProvider):
    """OCR.space free-tier API using its more accurate engine 2."""

    provider_id = ProviderId.OCR_SPACE
    default_confidence = 0.8

    def _recognize(self, image: bytes) -> tuple[str, Any]:
        data = {
            "apikey": self.settings.api_key,
            "language": "eng",
            "isOverlayRequired": "true",
            "filetype": "png",
            "detectOrientation": "true",
            "scale": "true",
            "OCREngine": "2",
        }
        files = {"file": ("image.png", image, _detect_mime_type(image))}
        response = self._send("POST", self.settings.endpoint, data=data, files=files)
        body = response.json()

        if body.get("IsErroredOnProcessing"):
            message = body.get("ErrorMessage") or "unknown error"
            raise ProviderTransportError(f"OCR.space processing error: {message}")

        results = body.get("ParsedResults") or []
        if not results:
            return "", None
        parsed = results[0]
        overlay = parsed.get("TextOverlay") or {}
        lines = overlay.get("Lines") or [{}]
        words = lines[0].get("Words") or [{}]
        return parsed.get("ParsedText", ""), words[0].get("Confidence")
