"""
Environment-driven settings for the report import pipeline.
Entry points call load_dotenv() before importing this module.
"""

import os
from typing import Optional


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


REPORTS_DB_PATH = os.environ.get("REPORTS_DB_PATH", "./data/dashboard.sqlite")
UPLOADED_PDF_DIR = os.environ.get("UPLOADED_PDF_DIR", "./data/uploaded_pdfs")

# Scratch directories for multipart uploads are created with this prefix
IMPORT_TEMP_PREFIX = os.environ.get("IMPORT_TEMP_PREFIX", "kp-import-")

PDF_TEXT_PROVIDER = os.environ.get("PDF_TEXT_PROVIDER", "pdftotext")
PDFTOTEXT_BIN = os.environ.get("PDFTOTEXT_BIN", "pdftotext")

# 0 disables the timeout
PDF_TEXT_TIMEOUT_SECONDS = _env_int("PDF_TEXT_TIMEOUT_SECONDS", 120) or None

MAX_IMPORT_BYTES = _env_int("MAX_IMPORT_BYTES", 80_000_000)

# An open batch younger than this may still be importing and is not reconciled
RECONCILE_AFTER_SECONDS = _env_int("RECONCILE_AFTER_SECONDS", 3600)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

UNGROUPED_FOLDER = "未分组"
