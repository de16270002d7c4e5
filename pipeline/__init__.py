"""
Pipeline package exports.
"""

from pipeline.extract import ParseError, parse_report_fields
from pipeline.ingest import resolve_import_payload

__all__ = ["ParseError", "parse_report_fields", "resolve_import_payload"]
