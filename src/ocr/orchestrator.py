"""Confidence-based orchestration of recognition providers.

Providers are tried in priority order with bounded retries. The first
result that clears its provider's threshold becomes the candidate; later
providers are only consulted while they could still beat it. When no cloud
provider qualifies, the offline Tesseract fallback always runs.
"""

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import httpx

from src.utils.config import AppConfig, OCRConfig
from src.utils.logger import get_logger

from .base import ProviderId, RecognitionProvider, RecognitionResult
from .cloud_providers import (
    AzureVisionProvider,
    GeminiProvider,
    GoogleVisionProvider,
    OcrSpaceProvider,
)
from .errors import AllProvidersExhausted, ProviderAuthError, ProviderTransportError
from .tesseract_engine import TesseractProvider

logger = get_logger(__name__)


@dataclass
class ProviderOutcome:
    """What happened during one provider's turn."""

    provider_id: ProviderId
    result: RecognitionResult | None = None
    attempts: int = 0
    error: str | None = None
    auth_failed: bool = False
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.result is not None


def build_providers(
    config: OCRConfig, client: httpx.Client | None = None
) -> list[RecognitionProvider]:
    """Create the cloud providers in priority order.

    Args:
        config: Provider settings.
        client: Shared HTTP client; each provider creates its own if None.

    Returns:
        Gemini, Google Vision, Azure Read and OCR.space providers.
    """
    return [
        GeminiProvider(config.gemini, client),
        GoogleVisionProvider(config.google_vision, client),
        AzureVisionProvider(config.azure_vision, client),
        OcrSpaceProvider(config.ocr_space, client),
    ]


class ServiceOrchestrator:
    """Runs the provider chain for one image at a time.

    Holds no per-request state, so one instance can serve many requests.

    Args:
        providers: Cloud providers in priority order.
        fallback: Offline provider tried when no cloud result qualifies.
        retry_base_delay: Backoff unit; attempt ``n`` waits ``n`` units.
        force_provider: Provider id to use exclusively, without threshold
            or fallback.
        sleep: Sleep function, injectable for tests.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        providers: Sequence[RecognitionProvider],
        fallback: RecognitionProvider,
        retry_base_delay: float = 1.0,
        force_provider: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.providers = list(providers)
        self.fallback = fallback
        self.retry_base_delay = retry_base_delay
        self.force_provider = force_provider
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(
        cls, config: AppConfig, client: httpx.Client | None = None
    ) -> "ServiceOrchestrator":
        """Build the default provider chain from configuration."""
        return cls(
            providers=build_providers(config.ocr, client),
            fallback=TesseractProvider(config.ocr.tesseract),
            retry_base_delay=config.ocr.retry_base_delay,
            force_provider=config.ocr.force_provider,
        )

    def available_providers(self) -> list[ProviderId]:
        """Ids of enabled cloud providers followed by the fallback."""
        enabled = [p.provider_id for p in self.providers if p.enabled]
        return [*enabled, self.fallback.provider_id]

    def recognize(
        self, image: bytes, timeout: float | None = None
    ) -> RecognitionResult:
        """Recognize text with the best available provider.

        Args:
            image: Normalized image bytes.
            timeout: Seconds the cloud providers may take in total. The
                fallback still runs once the deadline has passed.

        Returns:
            The selected recognition result.

        Raises:
            AllProvidersExhausted: If no provider produced any text.
        """
        deadline = None if timeout is None else self._clock() + timeout

        if self.force_provider:
            return self._recognize_forced(image, deadline)

        candidate: RecognitionResult | None = None
        outcomes: list[ProviderOutcome] = []

        for provider in self.providers:
            if not provider.enabled:
                logger.debug("Skipping %s: no credentials", provider.provider_id)
                continue
            if self._expired(deadline):
                logger.warning(
                    "Recognition deadline reached before %s, using fallback",
                    provider.provider_id,
                )
                break
            if candidate and candidate.confidence >= provider.confidence_threshold:
                logger.debug(
                    "Skipping %s: candidate from %s already at %.2f",
                    provider.provider_id,
                    candidate.provider_id,
                    candidate.confidence,
                )
                continue

            outcome = self._run_provider(provider, image, deadline)
            outcomes.append(outcome)
            result = outcome.result
            if result is None:
                if outcome.timed_out:
                    break
                continue
            if result.confidence < provider.confidence_threshold:
                logger.info(
                    "%s confidence %.2f below threshold %.2f",
                    provider.provider_id,
                    result.confidence,
                    provider.confidence_threshold,
                )
                continue
            if candidate is None or result.confidence > candidate.confidence:
                candidate = result

        if candidate is not None:
            logger.info(
                "Selected %s with confidence %.2f",
                candidate.provider_id,
                candidate.confidence,
            )
            return candidate

        logger.info(
            "No cloud result qualified (%d providers tried), falling back to %s",
            len(outcomes),
            self.fallback.provider_id,
        )
        outcome = self._run_provider(self.fallback, image, deadline=None)
        if outcome.result is not None:
            return outcome.result

        outcomes.append(outcome)
        raise AllProvidersExhausted(
            "No provider produced text: "
            + "; ".join(f"{o.provider_id}: {o.error}" for o in outcomes)
        )

    def _recognize_forced(
        self, image: bytes, deadline: float | None
    ) -> RecognitionResult:
        provider = self._find_provider(self.force_provider)
        if provider is None or not provider.enabled:
            raise AllProvidersExhausted(
                f"Forced provider {self.force_provider} is not configured"
            )

        logger.info("Using forced provider %s", provider.provider_id)
        outcome = self._run_provider(provider, image, deadline)
        if outcome.result is None:
            raise AllProvidersExhausted(
                f"Forced provider {provider.provider_id} failed: {outcome.error}"
            )
        return outcome.result

    def _find_provider(self, provider_id: str | None) -> RecognitionProvider | None:
        for provider in [*self.providers, self.fallback]:
            if provider.provider_id == provider_id:
                return provider
        return None

    def _run_provider(
        self,
        provider: RecognitionProvider,
        image: bytes,
        deadline: float | None,
    ) -> ProviderOutcome:
        """Call a provider up to ``max_retries`` times with linear backoff."""
        outcome = ProviderOutcome(provider_id=provider.provider_id)

        for attempt in range(1, provider.max_retries + 1):
            outcome.attempts = attempt
            try:
                result = provider.call(image)
            except ProviderAuthError as exc:
                logger.warning(
                    "%s disabled for this run: %s", provider.provider_id, exc
                )
                outcome.error = str(exc)
                outcome.auth_failed = True
                return outcome
            except ProviderTransportError as exc:
                logger.warning(
                    "%s attempt %d/%d failed: %s",
                    provider.provider_id,
                    attempt,
                    provider.max_retries,
                    exc,
                )
                outcome.error = str(exc)
            else:
                if result.text.strip():
                    logger.info(
                        "%s returned %d characters with confidence %.2f",
                        provider.provider_id,
                        len(result.text),
                        result.confidence,
                    )
                    outcome.result = result
                    return outcome
                logger.warning(
                    "%s attempt %d/%d returned no text",
                    provider.provider_id,
                    attempt,
                    provider.max_retries,
                )
                outcome.error = "empty text"

            if attempt == provider.max_retries:
                break
            delay = attempt * self.retry_base_delay
            if deadline is not None and self._clock() + delay > deadline:
                logger.warning(
                    "Not retrying %s: backoff would pass the deadline",
                    provider.provider_id,
                )
                outcome.timed_out = True
                break
            self._sleep(delay)

        return outcome

    def _expired(self, deadline: float | None) -> bool:
        return deadline is not None and self._clock() >= deadline
