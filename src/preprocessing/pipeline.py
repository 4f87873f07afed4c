"""Image normalization applied before text recognition.

Converts photos of tally sheets to a consistent grayscale PNG so every
provider receives the same input regardless of camera or file format.
"""

import io

import numpy as np
from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from src.utils.config import PreprocessingConfig
from src.utils.logger import get_logger

logger = get_logger(__name__)


def calculate_contrast(image: Image.Image) -> float:
    """Calculate image contrast as the standard deviation of pixel intensities.

    Args:
        image: Input image in any mode.

    Returns:
        Contrast score (higher means more contrast).
    """
    return float(np.asarray(image.convert("L"), dtype=np.float64).std())


class ImageNormalizer:
    """Configurable image normalization for recognition providers.

    Args:
        config: Preprocessing configuration controlling which steps to apply.
    """

    def __init__(self, config: PreprocessingConfig | None = None) -> None:
        self.config = config or PreprocessingConfig()

    def normalize(self, image: bytes) -> bytes:
        """Normalize encoded image bytes into a PNG.

        Args:
            image: Encoded input image (PNG, JPEG, TIFF, ...).

        Returns:
            PNG-encoded normalized image, or the input unchanged when
            normalization is disabled.

        Raises:
            ValueError: If the bytes are not a decodable image.
        """
        if not self.config.enabled:
            return image

        try:
            result = Image.open(io.BytesIO(image))
            result.load()
        except (UnidentifiedImageError, OSError) as exc:
            raise ValueError(f"Cannot decode image: {exc}") from exc

        contrast_before = calculate_contrast(result)
        result = ImageOps.exif_transpose(result)

        if self.config.grayscale:
            result = result.convert("L")
        elif result.mode not in ("RGB", "L"):
            result = result.convert("RGB")

        if self.config.autocontrast:
            result = ImageOps.autocontrast(result)

        if self.config.sharpen:
            result = result.filter(ImageFilter.SHARPEN)

        result = self._resize(result)

        logger.info(
            "Normalized image to %dx%d, contrast %.1f->%.1f",
            result.width,
            result.height,
            contrast_before,
            calculate_contrast(result),
        )
        buffer = io.BytesIO()
        result.save(buffer, format="PNG")
        return buffer.getvalue()

    def _resize(self, image: Image.Image) -> Image.Image:
        """Scale to the target width, preserving aspect ratio."""
        target_width = self.config.target_width
        if image.width == target_width:
            return image
        height = max(1, round(image.height * target_width / image.width))
        return image.resize((target_width, height), Image.Resampling.LANCZOS)
