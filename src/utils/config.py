"""Configuration management for the tally sheet OCR system.

Loads and validates YAML configuration with sensible defaults for image
normalization, recognition providers, row extraction, and validation.
Provider credentials are read from the environment once, at load time.
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_FROZEN = ConfigDict(frozen=True)


class PreprocessingConfig(BaseModel):
    """Configuration for the default image normalizer."""

    model_config = _FROZEN

    enabled: bool = True
    grayscale: bool = True
    autocontrast: bool = True
    sharpen: bool = True
    target_width: int = Field(default=2000, gt=0)


class ProviderSettings(BaseModel):
    """Settings for a single cloud recognition provider.

    A provider is enabled only when its API key is present.
    """

    model_config = _FROZEN

    api_key: str | None = None
    endpoint: str | None = None
    model: str | None = None
    confidence_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    max_retries: int = Field(default=2, ge=1)
    request_timeout: float = Field(default=30.0, gt=0)

    @property
    def enabled(self) -> bool:
        """Whether credentials are available for this provider."""
        return bool(self.api_key)


class TesseractSettings(BaseModel):
    """Settings for the local, offline Tesseract fallback."""

    model_config = _FROZEN

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    psm: int = 6
    char_whitelist: str = (
        "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz.-:() "
    )
    max_retries: int = Field(default=2, ge=1)
    default_confidence: float = Field(default=0.6, ge=0.0, le=1.0)


class OCRConfig(BaseModel):
    """Configuration for the recognition provider chain."""

    model_config = _FROZEN

    gemini: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            endpoint="https://generativelanguage.googleapis.com/v1beta/models",
            model="gemini-1.5-flash",
            confidence_threshold=0.85,
            max_retries=3,
        )
    )
    google_vision: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            endpoint="https://vision.googleapis.com/v1/images:annotate",
            confidence_threshold=0.80,
            max_retries=2,
        )
    )
    azure_vision: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            endpoint=(
                "https://eastus.api.cognitive.microsoft.com"
                "/vision/v3.2/read/analyze"
            ),
            confidence_threshold=0.75,
            max_retries=2,
        )
    )
    ocr_space: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            endpoint="https://api.ocr.space/parse/image",
            confidence_threshold=0.70,
            max_retries=2,
        )
    )
    tesseract: TesseractSettings = Field(default_factory=TesseractSettings)
    retry_base_delay: float = Field(default=1.0, ge=0.0)
    force_provider: str | None = None


class ExtractionConfig(BaseModel):
    """Configuration for row and field extraction."""

    model_config = _FROZEN

    max_length_meters: float = 100.0
    max_weight_kg: float = 1000.0
    min_numeric_tokens: int = 3
    prefer_rows_threshold: float = Field(default=0.75, ge=0.0, le=1.0)


class ValidationConfig(BaseModel):
    """Configuration for batch validation and quality signalling."""

    model_config = _FROZEN

    outlier_ratio: float = 0.5
    low_confidence_threshold: float = 0.8
    max_weight_per_meter: float = 50.0
    min_weight_per_meter: float = 0.1


class AppConfig(BaseModel):
    """Top-level application configuration."""

    model_config = _FROZEN

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    log_level: str = "INFO"
    debug: bool = False

    @property
    def effective_log_level(self) -> str:
        """Log level after applying the debug toggle."""
        return "DEBUG" if self.debug else self.log_level


# Environment variable -> (ocr section, setting name)
_ENV_CREDENTIALS: dict[str, tuple[str, str]] = {
    "GEMINI_API_KEY": ("gemini", "api_key"),
    "GEMINI_MODEL": ("gemini", "model"),
    "GOOGLE_CLOUD_API_KEY": ("google_vision", "api_key"),
    "AZURE_VISION_API_KEY": ("azure_vision", "api_key"),
    "AZURE_VISION_ENDPOINT": ("azure_vision", "endpoint"),
    "OCR_SPACE_API_KEY": ("ocr_space", "api_key"),
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict):
            if isinstance(value, Mapping):
                merged[key] = _deep_merge(merged[key], value)
            # An empty YAML section (``ocr:``) keeps the defaults.
        else:
            merged[key] = value
    return merged


def _apply_environment(raw: dict[str, Any], environ: Mapping[str, str]) -> None:
    """Merge credentials and toggles from environment variables into ``raw``."""
    ocr = raw["ocr"]

    for var, (section, key) in _ENV_CREDENTIALS.items():
        value = environ.get(var)
        if value:
            ocr[section][key] = value

    if environ.get("FORCE_OCR_SPACE", "").lower() == "true":
        ocr["force_provider"] = "ocr_space"

    if environ.get("DEBUG_OCR", "").lower() == "true":
        raw["debug"] = True


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from a YAML file and the process environment.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.
        environ: Environment mapping to read credentials from.
            Defaults to ``os.environ``.

    Returns:
        Validated, immutable application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")
    if environ is None:
        environ = os.environ

    overrides: dict[str, Any] = {}
    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found at %s, using defaults", path)

    raw = _deep_merge(AppConfig().model_dump(), overrides)
    _apply_environment(raw, environ)
    return AppConfig(**raw)
