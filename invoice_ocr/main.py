"""Application entry point for the invoice OCR pipeline."""

from invoice_ocr.cli import main

if __name__ == "__main__":
    main()
