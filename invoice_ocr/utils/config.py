"""Configuration management for the invoice OCR pipeline.

Loads and validates YAML configuration with sensible defaults for
rasterization, OCR, extraction and file locations, then applies
environment overrides (optionally read from a ``.env`` file).
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

# Environment variable -> (section, field). ``None`` section means top level.
ENV_OVERRIDES: dict[str, tuple[str | None, str]] = {
    "TESSERACT_FORMAT": ("raster", "format"),
    "TESSERACT_DENSITY": ("raster", "density"),
    "TESSERACT_QUALITY": ("raster", "quality"),
    "TESSERACT_LANG": ("ocr", "lang"),
    "BASE_URL": ("extraction", "base_url"),
    "ANALYTICS_FILE": ("paths", "analytics_file"),
    "INPUT_DIR": ("paths", "input_dir"),
    "OUTPUT_DIR": ("paths", "output_dir"),
    "LOG_LEVEL": (None, "log_level"),
}


class RasterConfig(BaseModel):
    """Configuration for PDF page rasterization."""

    format: str = "png"
    density: int = 300
    quality: int = 100
    upscale_factor: int = 3
    preserve_aspect_ratio: bool = True


class OCRConfig(BaseModel):
    """Configuration for Tesseract OCR engine."""

    tesseract_cmd: str | None = None
    lang: str = "deu"
    psm: int = 3


class ExtractionConfig(BaseModel):
    """Configuration for the completion endpoint used for field extraction."""

    base_url: str = "http://localhost:8080"
    n_predict: int = 1024
    temperature: float = 0.1
    top_k: int = 40
    top_p: float = 0.9
    repeat_penalty: float = 1.1
    stop: list[str] = Field(default_factory=lambda: ["</s>"])
    timeout: float | None = None


class PathsConfig(BaseModel):
    """Input, output and analytics locations."""

    input_dir: Path = Path("input")
    output_dir: Path = Path("output")
    analytics_file: Path = Path("analytics.json")


class AppConfig(BaseModel):
    """Top-level application configuration."""

    raster: RasterConfig = Field(default_factory=RasterConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    log_level: str = "INFO"


def _apply_env(raw: dict, environ: Mapping[str, str]) -> dict:
    """Merge recognized environment variables into raw config data."""
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is None or value == "":
            continue
        if section is None:
            raw[key] = value
        else:
            raw.setdefault(section, {})[key] = value
        logger.debug("Config override from %s", var)
    return raw


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load configuration from a YAML file and the environment.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.
        environ: Environment mapping to read overrides from. Defaults to
            ``os.environ`` after loading a ``.env`` file if present.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if environ is None:
        load_dotenv(override=False)
        environ = os.environ

    raw: dict = {}
    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logger.info("No config file found at %s, using defaults", path)

    return AppConfig(**_apply_env(raw, environ))
