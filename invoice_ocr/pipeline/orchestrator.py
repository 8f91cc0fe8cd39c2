"""Pipeline orchestrator: conversion, recognition and extraction per document.

Documents are processed strictly one at a time and each stage completes for
all pages before the next one starts. Conversion and recognition failures
propagate to the caller; extraction failures are recorded on the run record
and the batch continues.
"""

import re
from pathlib import Path

from invoice_ocr.extraction.llm_extractor import LLMExtractor
from invoice_ocr.ocr.rasterizer import (
    ImageDescriptor,
    PDFRasterizer,
    RenderOptions,
    image_path,
)
from invoice_ocr.ocr.tesseract_engine import TesseractEngine
from invoice_ocr.utils.config import AppConfig
from invoice_ocr.utils.logger import get_logger

from .run_record import RasterSettings, RunRecord, RunRecordBuilder, utcnow

logger = get_logger(__name__)

PDF_EXTENSION = ".pdf"
_LINE_BREAK_RE = re.compile(r"\r\n|[\r\n]")


def find_documents(input_dir: Path) -> list[str]:
    """List the base names of all PDF files in a directory.

    Args:
        input_dir: Directory to scan.

    Returns:
        Base names (without extension) sorted by file name.
    """
    names = [
        entry.name[: -len(PDF_EXTENSION)]
        for entry in Path(input_dir).iterdir()
        if entry.name.endswith(PDF_EXTENSION)
        and len(entry.name) > len(PDF_EXTENSION)
        and entry.is_file()
    ]
    return sorted(names)


class PipelineOrchestrator:
    """Drives documents through rasterization, OCR and field extraction.

    Args:
        config: Application configuration.
        rasterizer: PDF rasterizer; built from defaults if omitted.
        engine: OCR engine; built from ``config.ocr`` if omitted.
        extractor: Field extractor; built from ``config.extraction`` if omitted.
    """

    def __init__(
        self,
        config: AppConfig,
        rasterizer: PDFRasterizer | None = None,
        engine: TesseractEngine | None = None,
        extractor: LLMExtractor | None = None,
    ) -> None:
        self.config = config
        self.rasterizer = rasterizer or PDFRasterizer()
        self.engine = engine or TesseractEngine(
            tesseract_cmd=config.ocr.tesseract_cmd,
            psm=config.ocr.psm,
        )
        self.extractor = extractor or LLMExtractor(config.extraction)

    @property
    def input_dir(self) -> Path:
        return Path(self.config.paths.input_dir)

    @property
    def output_dir(self) -> Path:
        return Path(self.config.paths.output_dir)

    def text_path(self, name: str) -> Path:
        return self.output_dir / f"{name}.ocr-recognition.txt"

    def markup_path(self, name: str) -> Path:
        return self.output_dir / f"{name}.ocr-recognition.html"

    def run_single(self, name: str) -> list[RunRecord]:
        """Process one document given by its base name."""
        return [self.process_document(name)]

    def run_all(self) -> list[RunRecord]:
        """Process every PDF in the input directory, one after another."""
        names = find_documents(self.input_dir)
        logger.info("OCR all %d pdf files in %s...", len(names), self.input_dir)

        batch: list[RunRecord] = []
        for i, name in enumerate(names, 1):
            logger.info("[%d/%d] %s%s", i, len(names), name, PDF_EXTENSION)
            batch.append(self.process_document(name))
        return batch

    def process_document(self, name: str) -> RunRecord:
        """Run all three stages for one document.

        Args:
            name: Document base name without the ``.pdf`` extension.

        Returns:
            The finalized run record.
        """
        builder = RunRecordBuilder(f"{name}{PDF_EXTENSION}")
        self.convert(name, builder)
        self.recognize(name, builder)
        self.extract(builder)
        return builder.finalize()

    def convert(self, name: str, builder: RunRecordBuilder) -> list[ImageDescriptor]:
        """Rasterize every page of a document into the output directory."""
        raster = self.config.raster
        start = utcnow()
        logger.info("Converting %s%s to image...", name, PDF_EXTENSION)

        document = self.rasterizer.load(self.input_dir / f"{name}{PDF_EXTENSION}")
        settings = RasterSettings(
            format=raster.format,
            density=raster.density,
            quality=raster.quality,
            upscale_factor=raster.upscale_factor,
            width=round(document.width * raster.upscale_factor),
            height=round(document.height * raster.upscale_factor),
            preserve_aspect_ratio=raster.preserve_aspect_ratio,
        )
        options = RenderOptions(
            format=settings.format,
            density=settings.density,
            quality=settings.quality,
            target_width=settings.width,
            target_height=settings.height,
            preserve_aspect_ratio=settings.preserve_aspect_ratio,
            output_directory=self.output_dir,
            output_base_name=name,
        )
        self.output_dir.mkdir(parents=True, exist_ok=True)

        pages: list[ImageDescriptor] = []
        for page in range(1, document.page_count + 1):
            descriptor = self.rasterizer.render(document.data, page, options)
            logger.debug("Page %d was converted to image: %s", page, descriptor)
            pages.append(descriptor)

        end = utcnow()
        builder.record_conversion(start, end, settings, pages)
        logger.info(
            "Conversion of %d pages took: %.3fs.",
            document.page_count,
            (end - start).total_seconds(),
        )
        return pages

    def recognize(self, name: str, builder: RunRecordBuilder) -> str:
        """OCR every rasterized page and write the cumulative text and markup."""
        fmt = self.config.raster.format
        start = utcnow()
        logger.info("Recognizing %s.%s with Tesseract...", name, fmt)

        text_file = self.text_path(name)
        markup_file = self.markup_path(name)
        text_file.write_text("", encoding="utf-8")
        markup_file.write_text("", encoding="utf-8")

        images: list[str] = []
        self.engine.initialize(self.config.ocr.lang)
        try:
            for page in range(1, builder.page_count + 1):
                path = image_path(self.output_dir, name, page, fmt)
                result = self.engine.recognize(path)
                flat = _LINE_BREAK_RE.sub(" ", result.text)
                with open(text_file, "a", encoding="utf-8", newline="") as f:
                    f.write(flat)
                with open(markup_file, "a", encoding="utf-8") as f:
                    f.write(result.markup)
                images.append(str(path))

            with open(text_file, encoding="utf-8", newline="") as f:
                text = f.read()
            word_count = len(text.split())
            logger.info("Recognition found %d words.", word_count)
            logger.debug("Recognized text: %s", text)
        finally:
            self.engine.shutdown()

        end = utcnow()
        builder.record_recognition(
            start,
            end,
            images=images,
            text_path=str(text_file),
            markup_path=str(markup_file),
            text=text,
            word_count=word_count,
        )
        logger.info("Recognition took: %.3fs.", (end - start).total_seconds())
        return text

    def extract(self, builder: RunRecordBuilder) -> None:
        """Ask the completion endpoint for the invoice fields of a document."""
        start = utcnow()
        logger.info(
            "Analyzing text for %s to find assignable properties...", builder.filename
        )
        outcome = self.extractor.extract(builder.ocr_text or "")
        end = utcnow()

        builder.record_extraction(start, end, outcome.result, outcome.error)
        if outcome.ok:
            logger.info("Found: %s", outcome.result)
        else:
            logger.warning(
                "Continuing without extraction result for %s", builder.filename
            )
        logger.info("Analyzing took: %.3fs.", (end - start).total_seconds())
