"""Shared test fixtures for the invoice OCR test suite."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from invoice_ocr.extraction.llm_extractor import ExtractionOutcome
from invoice_ocr.ocr.rasterizer import (
    ImageDescriptor,
    PDFDocument,
    RenderOptions,
    image_path,
)
from invoice_ocr.ocr.tesseract_engine import RecognitionResult
from invoice_ocr.utils.config import AppConfig, PathsConfig


class FakeRasterizer:
    """Rasterizer double that writes placeholder images and records calls."""

    def __init__(self, page_counts: dict[str, int] | None = None) -> None:
        self.page_counts = page_counts or {}
        self.loaded: list[str] = []
        self.rendered: list[tuple[str, int]] = []

    def load(self, pdf_path: Path) -> PDFDocument:
        path = Path(pdf_path)
        if not path.exists():
            raise FileNotFoundError(f"PDF file not found: {path}")
        self.loaded.append(path.name)
        return PDFDocument(
            data=path.read_bytes(),
            page_count=self.page_counts.get(path.stem, 3),
            width=595.0,
            height=842.0,
        )

    def render(
        self, document_bytes: bytes, page_index: int, options: RenderOptions
    ) -> ImageDescriptor:
        target = image_path(
            options.output_directory,
            options.output_base_name,
            page_index,
            options.format,
        )
        target.write_bytes(b"image")
        self.rendered.append((options.output_base_name, page_index))
        return ImageDescriptor(
            page=page_index,
            path=str(target),
            name=target.name,
            format=options.format,
            width=options.target_width,
            height=options.target_height,
            size=5,
        )


class FakeEngine:
    """OCR engine double returning multi-line text per page."""

    def __init__(self) -> None:
        self.lang: str | None = None
        self.initialized = 0
        self.shutdowns = 0
        self.recognized: list[str] = []

    def initialize(self, lang: str) -> "FakeEngine":
        self.lang = lang
        self.initialized += 1
        return self

    def recognize(self, image_path: Path) -> RecognitionResult:
        path = Path(image_path)
        if not path.exists():
            raise FileNotFoundError(f"Image file not found: {path}")
        self.recognized.append(path.name)
        page = path.name.split(".")[-2]
        return RecognitionResult(
            text=f"Rechnung Seite {page}\nSumme 100,00 EUR\n",
            markup=f"<div class='ocr_page' id='page_{page}'></div>\n",
        )

    def shutdown(self) -> None:
        self.lang = None
        self.shutdowns += 1


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Configuration pointing at temporary input/output/analytics locations."""
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    return AppConfig(
        paths=PathsConfig(
            input_dir=input_dir,
            output_dir=tmp_path / "output",
            analytics_file=tmp_path / "analytics.json",
        )
    )


@pytest.fixture
def fake_rasterizer() -> FakeRasterizer:
    return FakeRasterizer()


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_extractor() -> MagicMock:
    """Extractor double that always succeeds."""
    extractor = MagicMock()
    extractor.extract.return_value = ExtractionOutcome.success(
        {"vendor_name": "ACME GmbH", "total_amount": "100,00"}, 200
    )
    return extractor


@pytest.fixture
def make_pdf(app_config: AppConfig):
    """Factory creating placeholder PDF files in the input directory."""

    def _make(name: str) -> Path:
        path = Path(app_config.paths.input_dir) / f"{name}.pdf"
        path.write_bytes(b"%PDF-1.4 fake content")
        return path

    return _make
