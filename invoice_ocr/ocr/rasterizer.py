"""PDF page rasterization for OCR processing.

Renders single PDF pages to image files on disk using pdf2image (Poppler)
and Pillow, one page per call, with a deterministic file naming scheme
shared with the recognition stage.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from pdf2image import convert_from_bytes
from pdf2image.pdf2image import pdfinfo_from_bytes
from pydantic import BaseModel

from invoice_ocr.utils.logger import get_logger

logger = get_logger(__name__)

_PAGE_SIZE_RE = re.compile(r"([\d.]+)\s*x\s*([\d.]+)")
_PIL_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "tif": "TIFF",
    "tiff": "TIFF",
    "bmp": "BMP",
}


class RasterizationError(RuntimeError):
    """Raised when a PDF cannot be inspected or a page cannot be rendered."""


@dataclass
class PDFDocument:
    """A PDF loaded into memory with the geometry of its first page."""

    data: bytes
    page_count: int
    width: float
    height: float


@dataclass
class RenderOptions:
    """Settings for rendering one page to an image file."""

    format: str
    density: int
    quality: int
    target_width: int
    target_height: int
    preserve_aspect_ratio: bool
    output_directory: Path
    output_base_name: str


class ImageDescriptor(BaseModel):
    """Description of a rendered page image written to disk."""

    page: int
    path: str
    name: str
    format: str
    width: int
    height: int
    size: int


def image_path(output_directory: Path, base_name: str, page: int, fmt: str) -> Path:
    """Return the path of the rendered image for a 1-based page index."""
    return Path(output_directory) / f"{base_name}.{page}.{fmt}"


def _parse_page_size(value: str) -> tuple[float, float]:
    match = _PAGE_SIZE_RE.search(value or "")
    if match is None:
        raise RasterizationError(f"Unrecognized PDF page size: {value!r}")
    return float(match.group(1)), float(match.group(2))


class PDFRasterizer:
    """Converts PDF pages to image files.

    Args:
        poppler_path: Optional directory containing the Poppler binaries.
    """

    def __init__(self, poppler_path: str | None = None) -> None:
        self.poppler_path = poppler_path

    def load(self, pdf_path: Path) -> PDFDocument:
        """Load a PDF into memory and read its page count and page size.

        All pages are assumed to share the size of the first page.

        Args:
            pdf_path: Path to the PDF file.

        Returns:
            The loaded document.

        Raises:
            FileNotFoundError: If the file does not exist.
            RasterizationError: If the PDF cannot be inspected.
        """
        path = Path(pdf_path)
        if not path.exists():
            raise FileNotFoundError(f"PDF file not found: {path}")

        data = path.read_bytes()
        try:
            info = pdfinfo_from_bytes(data, poppler_path=self.poppler_path)
        except Exception as exc:
            raise RasterizationError(f"PDF inspection failed: {exc}") from exc

        width, height = _parse_page_size(info.get("Page size", ""))
        page_count = int(info["Pages"])
        logger.debug(
            "PDF %s has %d pages of %.1fx%.1f pts", path, page_count, width, height
        )
        return PDFDocument(data=data, page_count=page_count, width=width, height=height)

    def render(
        self,
        document_bytes: bytes,
        page_index: int,
        options: RenderOptions,
    ) -> ImageDescriptor:
        """Render one page of a PDF to an image file.

        Args:
            document_bytes: Raw PDF content.
            page_index: 1-based page number.
            options: Rendering settings and output location.

        Returns:
            Descriptor of the written image.

        Raises:
            RasterizationError: If rendering or saving fails.
        """
        if options.preserve_aspect_ratio:
            size = (options.target_width, None)
        else:
            size = (options.target_width, options.target_height)

        target = image_path(
            options.output_directory,
            options.output_base_name,
            page_index,
            options.format,
        )
        pil_format = _PIL_FORMATS.get(options.format.lower(), options.format.upper())

        try:
            images = convert_from_bytes(
                document_bytes,
                dpi=options.density,
                first_page=page_index,
                last_page=page_index,
                size=size,
                poppler_path=self.poppler_path,
            )
            if not images:
                raise RasterizationError(f"Page {page_index} produced no image")
            image = images[0]
            target.parent.mkdir(parents=True, exist_ok=True)
            image.save(target, format=pil_format, quality=options.quality)
        except RasterizationError:
            raise
        except Exception as exc:
            raise RasterizationError(
                f"Rendering page {page_index} failed: {exc}"
            ) from exc

        return ImageDescriptor(
            page=page_index,
            path=str(target),
            name=target.name,
            format=options.format,
            width=image.width,
            height=image.height,
            size=target.stat().st_size,
        )
