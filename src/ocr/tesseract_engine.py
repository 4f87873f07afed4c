"""Local Tesseract recognition, the offline fallback provider.

Runs without credentials or network access, so the orchestrator can always
fall back to it when every cloud provider is disabled or unusable.
"""

import io

import pytesseract
from PIL import Image, UnidentifiedImageError

from src.utils.config import TesseractSettings
from src.utils.logger import get_logger

from .base import ProviderId, RecognitionProvider, RecognitionResult
from .errors import ProviderTransportError

logger = get_logger(__name__)


class TesseractProvider(RecognitionProvider):
    """Wrapper around Tesseract OCR tuned for tally sheets.

    Uses a single-block page segmentation mode and a character whitelist
    so handwritten columns are read as one table.

    Args:
        settings: Tesseract command, language, and page segmentation mode.
    """

    provider_id = ProviderId.TESSERACT

    def __init__(self, settings: TesseractSettings | None = None) -> None:
        settings = settings or TesseractSettings()
        super().__init__(confidence_threshold=0.0, max_retries=settings.max_retries)
        if settings.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = settings.tesseract_cmd
        self.settings = settings

    @property
    def tesseract_config(self) -> str:
        """Command-line options passed to Tesseract."""
        whitelist = self.settings.char_whitelist.replace(" ", "")
        return (
            f"--psm {self.settings.psm} "
            f"-c tessedit_char_whitelist={whitelist} "
            "-c preserve_interword_spaces=1"
        )

    def call(self, image: bytes) -> RecognitionResult:
        """Extract text from an image with average word confidence.

        Args:
            image: Encoded image bytes.

        Returns:
            Recognized text and the mean confidence of its words.

        Raises:
            ProviderTransportError: If the image cannot be decoded or
                Tesseract fails to run.
        """
        try:
            pil_image = Image.open(io.BytesIO(image))
            pil_image.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ProviderTransportError(f"Cannot decode image: {exc}") from exc

        lang = self.settings.default_lang
        config = self.tesseract_config
        try:
            text = pytesseract.image_to_string(pil_image, lang=lang, config=config)
            data = pytesseract.image_to_data(
                pil_image,
                lang=lang,
                config=config,
                output_type=pytesseract.Output.DICT,
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError) as exc:
            raise ProviderTransportError(f"Tesseract failed: {exc}") from exc

        confidences = [
            float(conf)
            for conf, word in zip(data["conf"], data["text"])
            if float(conf) > 0 and str(word).strip()
        ]
        if confidences:
            confidence = sum(confidences) / len(confidences) / 100.0
        else:
            confidence = self.settings.default_confidence

        logger.info(
            "Tesseract recognized %d words with average confidence %.2f",
            len(confidences),
            confidence,
        )
        return RecognitionResult(
            text=text,
            confidence=confidence,
            provider_id=self.provider_id,
        )
