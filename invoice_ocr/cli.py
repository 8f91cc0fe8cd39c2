"""Command-line interface for OCR and field extraction of invoice PDFs.

Processes either a single named PDF or every PDF in the configured input
directory, then appends the run records to the analytics history.
"""

import argparse
import sys
from pathlib import Path

from invoice_ocr.pipeline.analytics_store import AnalyticsStore, initialize
from invoice_ocr.pipeline.orchestrator import PipelineOrchestrator
from invoice_ocr.utils.config import load_config
from invoice_ocr.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

USAGE_ERROR = (
    "No statement set. Use --filename <filename> to ocr one file "
    "or --all to ocr all files."
)


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the ``invoice-ocr`` command."""
    parser = argparse.ArgumentParser(
        prog="invoice-ocr",
        description=(
            "Use --filename <filename> to ocr one file or --all to ocr all files."
        ),
    )
    parser.add_argument(
        "--filename",
        help="Process one document from the input directory (name without .pdf)",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Process every PDF in the input directory",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML configuration file (default: configs/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level (DEBUG, INFO, ...)",
    )
    parser.add_argument(
        "--init-analytics",
        action="store_true",
        help="Create an empty analytics history file if none exists",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and run the pipeline.

    Exits with status 0 after the analytics history has been flushed and
    with status 1 on usage errors.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    args = build_parser().parse_args(argv)

    if args.filename and args.all:
        print("Use either --filename or --all, not both.", file=sys.stderr)
        sys.exit(1)
    if not args.filename and not args.all and not args.init_analytics:
        print(USAGE_ERROR, file=sys.stderr)
        sys.exit(1)

    config = load_config(args.config)
    setup_logging(args.log_level or config.log_level)

    if args.init_analytics:
        initialize(config.paths.analytics_file)
        if not args.filename and not args.all:
            sys.exit(0)

    orchestrator = PipelineOrchestrator(config)
    if args.all:
        batch = orchestrator.run_all()
    else:
        logger.info("OCR %s.pdf...", args.filename)
        batch = orchestrator.run_single(args.filename)

    AnalyticsStore(config.paths.analytics_file).finish(batch)


if __name__ == "__main__":
    main()
