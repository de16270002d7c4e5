"""
Pipeline runner: processes one PDF.
Runs text extraction → field parsing and returns the parsed record.
"""

import logging

from pipeline.extract import parse_report_fields
from pipeline.pdf_text import TextExtractor
from pipeline.schema import ReportRecord

logger = logging.getLogger(__name__)


def process_report(pdf_path: str, extractor: TextExtractor) -> ReportRecord:
    """
    Runs the processing pipeline for a single report PDF.

    Pipeline stages:
        1. Extraction: external/native text extraction
        2. Parsing: heuristic field extraction, totals and risk flag

    Raises:
        ExtractionError: the extractor failed for this file
        ParseError: the text has no core fields
    """
    raw_text = extractor.extract_text(pdf_path)
    logger.debug(f"Extracted {len(raw_text)} chars from {pdf_path}")
    return parse_report_fields(raw_text, pdf_path)
