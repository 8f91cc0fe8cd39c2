"""Tesseract OCR engine wrapper producing plain text and hOCR markup.

The engine follows an initialize/recognize/shutdown lifecycle so the
pipeline can bracket a whole document with a single OCR session.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

import pytesseract
from PIL import Image

from invoice_ocr.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RecognitionResult:
    """OCR output for a single page image."""

    text: str
    markup: str


class TesseractEngine:
    """Wrapper around Tesseract OCR for page image recognition.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        psm: Tesseract page segmentation mode.
    """

    def __init__(self, tesseract_cmd: str | None = None, psm: int = 3) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.psm = psm
        self.lang: str | None = None

    @property
    def is_initialized(self) -> bool:
        return self.lang is not None

    def initialize(self, lang: str) -> "TesseractEngine":
        """Start an OCR session for a language.

        Args:
            lang: Tesseract language code, e.g. ``deu`` or ``eng+deu``.

        Returns:
            The engine itself, ready for :meth:`recognize`.

        Raises:
            pytesseract.TesseractNotFoundError: If Tesseract is not installed.
            ValueError: If a requested language pack is not installed.
        """
        version = pytesseract.get_tesseract_version()
        available = set(pytesseract.get_languages(config=""))
        missing = [code for code in lang.split("+") if code not in available]
        if missing:
            raise ValueError(f"Tesseract language not installed: {', '.join(missing)}")

        self.lang = lang
        logger.info("Tesseract %s initialized for language %s", version, lang)
        return self

    def recognize(self, image_path: Path) -> RecognitionResult:
        """Recognize text and layout markup from an image file.

        Args:
            image_path: Path to the page image.

        Returns:
            Plain text and hOCR markup for the page.

        Raises:
            RuntimeError: If the engine was not initialized.
            FileNotFoundError: If the image does not exist.
        """
        if not self.is_initialized:
            raise RuntimeError("TesseractEngine.recognize called before initialize")

        path = Path(image_path)
        if not path.exists():
            raise FileNotFoundError(f"Image file not found: {path}")

        config = f"--psm {self.psm}"
        with Image.open(path) as image:
            text = pytesseract.image_to_string(image, lang=self.lang, config=config)
            hocr = pytesseract.image_to_pdf_or_hocr(
                image, lang=self.lang, config=config, extension="hocr"
            )

        markup = hocr.decode("utf-8") if isinstance(hocr, bytes) else hocr
        logger.debug("Recognized %d characters from %s", len(text), path.name)
        return RecognitionResult(text=text, markup=markup)

    def shutdown(self) -> None:
        """End the OCR session. Safe to call more than once."""
        if self.lang is not None:
            logger.debug("Tesseract session for %s terminated", self.lang)
        self.lang = None

    @contextmanager
    def session(self, lang: str) -> Iterator["TesseractEngine"]:
        """Context manager wrapping :meth:`initialize` and :meth:`shutdown`."""
        self.initialize(lang)
        try:
            yield self
        finally:
            self.shutdown()
