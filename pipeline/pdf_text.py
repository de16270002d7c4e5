"""
PDF text extraction backends.

The default backend runs poppler's `pdftotext -layout` as a subprocess and
captures its standard output. A PyMuPDF backend reads the native text layer
in-process for hosts without poppler.
"""

import logging
import subprocess
from typing import Optional, Protocol

import fitz  # PyMuPDF

from pipeline import config

logger = logging.getLogger(__name__)


class ExtractionError(RuntimeError):
    """Text could not be extracted from one PDF."""


class TextExtractor(Protocol):
    """Protocol for text extraction backends."""

    def extract_text(self, pdf_path: str) -> str:
        """Return the document's plain text or raise ExtractionError."""
        ...


class PdftotextExtractor:
    """Layout-preserving extraction through the external pdftotext tool."""

    def __init__(self, binary: Optional[str] = None, timeout: Optional[float] = None):
        self.binary = binary or config.PDFTOTEXT_BIN
        self.timeout = timeout

    def extract_text(self, pdf_path: str) -> str:
        cmd = [self.binary, "-layout", pdf_path, "-"]
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ExtractionError(f"pdftotext not found: {self.binary}") from e
        except subprocess.TimeoutExpired as e:
            raise ExtractionError(f"pdftotext timed out after {self.timeout}s") from e

        if result.returncode != 0:
            diagnostic = (result.stderr or "").strip() or "unknown error"
            raise ExtractionError(f"pdftotext failed: {diagnostic}")
        return result.stdout or ""


class PyMuPdfExtractor:
    """Native text layer via PyMuPDF. Pages are joined with form feeds like pdftotext."""

    def extract_text(self, pdf_path: str) -> str:
        try:
            doc = fitz.open(pdf_path)
        except (RuntimeError, OSError, ValueError) as e:
            raise ExtractionError(f"PyMuPDF could not open {pdf_path}: {e}") from e
        try:
            return "\f".join(page.get_text("text") for page in doc)
        finally:
            doc.close()


def get_text_extractor(name: Optional[str] = None, timeout: Optional[float] = None) -> TextExtractor:
    """
    Factory function to get a text extractor by name.

    Args:
        name: "pdftotext" or "pymupdf" (default from PDF_TEXT_PROVIDER)
        timeout: Per-file timeout for subprocess backends (default from config)

    Returns:
        TextExtractor instance
    """
    name = (name or config.PDF_TEXT_PROVIDER).lower()
    if name == "pdftotext":
        return PdftotextExtractor(timeout=timeout if timeout is not None else config.PDF_TEXT_TIMEOUT_SECONDS)
    elif name == "pymupdf":
        return PyMuPdfExtractor()
    else:
        raise ValueError(f"Unknown text extractor: {name}")
