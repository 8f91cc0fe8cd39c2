"""Per-document analytics record for one pass through the pipeline.

A :class:`RunRecordBuilder` is created for each document, filled stage by
stage by the orchestrator and finalized into an immutable
:class:`RunRecord` that joins the batch.
"""

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from invoice_ocr.ocr.rasterizer import ImageDescriptor


class RecordStateError(RuntimeError):
    """Raised when a record is populated out of stage order."""


class RecordState(StrEnum):
    """Lifecycle states of a run record."""

    CREATED = "created"
    CONVERSION_POPULATED = "conversion-populated"
    RECOGNITION_POPULATED = "recognition-populated"
    EXTRACTION_POPULATED = "extraction-populated"
    EXTRACTION_ABSENT = "extraction-absent"
    FINALIZED = "finalized"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StageTiming(BaseModel):
    """Start, end and duration (seconds) of one stage."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    duration: float

    @classmethod
    def between(cls, start: datetime, end: datetime) -> "StageTiming":
        return cls(start=start, end=end, duration=(end - start).total_seconds())


class RasterSettings(BaseModel):
    """Rasterization settings actually used for a document."""

    model_config = ConfigDict(frozen=True)

    format: str
    density: int
    quality: int
    upscale_factor: int
    width: int
    height: int
    preserve_aspect_ratio: bool


class RunRecord(BaseModel):
    """Immutable analytics record of one processed document."""

    model_config = ConfigDict(frozen=True)

    filename: str
    state: RecordState = RecordState.FINALIZED
    page_count: int = 0

    conversion: StageTiming | None = None
    raster_settings: RasterSettings | None = None
    pages: list[ImageDescriptor] = Field(default_factory=list)

    recognition: StageTiming | None = None
    ocr_images: list[str] = Field(default_factory=list)
    ocr_text_path: str | None = None
    ocr_markup_path: str | None = None
    ocr_text: str | None = None
    word_count: int | None = None

    extraction: StageTiming | None = None
    extraction_result: dict[str, Any] | None = None
    extraction_error: str | None = None


class RunRecordBuilder:
    """Mutable accumulator for a document's run record.

    Stages must be recorded in order: conversion, recognition, extraction.
    A stage that appears to start before the previous stage ended is
    clamped to that end.

    Args:
        filename: Source file name of the document.
    """

    def __init__(self, filename: str) -> None:
        self.filename = filename
        self.state = RecordState.CREATED
        self._data: dict[str, Any] = {"filename": filename}
        self._last_end: datetime | None = None

    def _require(self, *states: RecordState) -> None:
        if self.state not in states:
            expected = " or ".join(s.value for s in states)
            raise RecordStateError(
                f"Record for {self.filename} is {self.state.value}, expected {expected}"
            )

    def _timing(self, start: datetime, end: datetime) -> StageTiming:
        # Wall-clock steps backwards are clamped so stages stay ordered.
        if self._last_end is not None and start < self._last_end:
            start = self._last_end
        if end < start:
            end = start
        self._last_end = end
        return StageTiming.between(start, end)

    @property
    def page_count(self) -> int:
        return self._data.get("page_count", 0)

    @property
    def ocr_text(self) -> str | None:
        return self._data.get("ocr_text")

    def record_conversion(
        self,
        start: datetime,
        end: datetime,
        settings: RasterSettings,
        pages: list[ImageDescriptor],
    ) -> None:
        self._require(RecordState.CREATED)
        self._data.update(
            conversion=self._timing(start, end),
            raster_settings=settings,
            page_count=len(pages),
            pages=list(pages),
        )
        self.state = RecordState.CONVERSION_POPULATED

    def record_recognition(
        self,
        start: datetime,
        end: datetime,
        images: list[str],
        text_path: str,
        markup_path: str,
        text: str,
        word_count: int,
    ) -> None:
        self._require(RecordState.CONVERSION_POPULATED)
        if len(images) != self.page_count:
            raise RecordStateError(
                f"Recognized {len(images)} images for {self.page_count} pages"
            )
        self._data.update(
            recognition=self._timing(start, end),
            ocr_images=list(images),
            ocr_text_path=text_path,
            ocr_markup_path=markup_path,
            ocr_text=text,
            word_count=word_count,
        )
        self.state = RecordState.RECOGNITION_POPULATED

    def record_extraction(
        self,
        start: datetime,
        end: datetime,
        result: dict[str, Any] | None,
        error: str | None = None,
    ) -> None:
        self._require(RecordState.RECOGNITION_POPULATED)
        self._data.update(
            extraction=self._timing(start, end),
            extraction_result=result,
            extraction_error=error,
        )
        if result is None:
            self.state = RecordState.EXTRACTION_ABSENT
        else:
            self.state = RecordState.EXTRACTION_POPULATED

    def finalize(self) -> RunRecord:
        """Freeze the accumulated data into a :class:`RunRecord`."""
        self._require(RecordState.EXTRACTION_POPULATED, RecordState.EXTRACTION_ABSENT)
        self.state = RecordState.FINALIZED
        return RunRecord(**self._data)
