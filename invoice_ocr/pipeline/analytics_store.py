"""Durable history of run records.

The history is a single JSON list on disk. Every flush reads it in full,
appends the batch and rewrites the file. The file must already exist;
:func:`initialize` creates an empty one.
"""

import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any, NoReturn

from invoice_ocr.utils.logger import get_logger

from .run_record import RunRecord

logger = get_logger(__name__)


class AnalyticsStoreError(RuntimeError):
    """Raised when the analytics history cannot be read."""


def initialize(path: Path) -> bool:
    """Create an empty history file if none exists.

    Args:
        path: Location of the history file.

    Returns:
        ``True`` if a file was created, ``False`` if one already existed.
    """
    path = Path(path)
    if path.exists() and path.stat().st_size > 0:
        logger.info("Analytics history already exists at %s", path)
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("[]\n", encoding="utf-8")
    logger.info("Initialized empty analytics history at %s", path)
    return True


class AnalyticsStore:
    """Loads, merges and persists the analytics history.

    Args:
        path: Location of the JSON history file.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> list[dict[str, Any]]:
        """Read the full history.

        Raises:
            AnalyticsStoreError: If the file is missing, empty, not valid JSON
                or not a JSON list.
        """
        if not self.path.exists():
            raise AnalyticsStoreError(f"Analytics history not found: {self.path}")

        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            raise AnalyticsStoreError(f"Analytics history is empty: {self.path}")

        try:
            history = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise AnalyticsStoreError(
                f"Analytics history is corrupt: {self.path}: {exc}"
            ) from exc

        if not isinstance(history, list):
            raise AnalyticsStoreError(
                f"Analytics history must be a JSON list: {self.path}"
            )
        return history

    def flush(self, records: Sequence[RunRecord]) -> int:
        """Append a batch of records to the history and rewrite it.

        Args:
            records: Run records of the current batch, in processing order.

        Returns:
            Number of records in the history after the flush.
        """
        history = self.load()
        previous = len(history)
        history.extend(record.model_dump(mode="json") for record in records)

        self.path.write_text(
            json.dumps(history, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        logger.info(
            "Appended %d run records to %s (%d -> %d)",
            len(records),
            self.path,
            previous,
            len(history),
        )
        return len(history)

    def finish(self, records: Sequence[RunRecord]) -> NoReturn:
        """Flush the batch and terminate the process successfully."""
        self.flush(records)
        sys.exit(0)
