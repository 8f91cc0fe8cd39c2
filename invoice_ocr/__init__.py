"""Invoice OCR pipeline.

Rasterizes scanned invoice PDFs, recognizes their text with Tesseract,
extracts invoice fields through a language-model completion endpoint and
keeps a JSON history of every run.
"""
