#!/usr/bin/env python3
"""
Import a folder of PDF assessment reports into the local report database.

This script:
1) Scans the input folder (recursively) for PDF files
2) Runs one import batch over them
3) Prints the batch summary as JSON

Exit codes: 0 all files imported, 1 some files failed, 2 no PDFs found.

Usage:
    python scripts/batch_import.py --folder ./reports --user-id 1
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))
load_dotenv(PROJECT_ROOT / ".env")

from pipeline import config
from pipeline.ingest import collect_pdf_paths, merge_pdf_paths
from jobs.import_batch import run_import_batch


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Import PDF assessment reports into the report database.")
    parser.add_argument("--folder", required=True, help="Folder to scan for PDF reports.")
    parser.add_argument("--user-id", default=os.environ.get("OWNER_USER_ID"), help="Owner user id for the batch.")
    parser.add_argument("--student-folder", default=None, help="Grouping label applied to every record.")
    parser.add_argument("--provider", default=None, help="Text extractor (pdftotext or pymupdf).")
    parser.add_argument("--db", default=None, help="SQLite database path.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s'
    )

    folder = Path(args.folder).resolve()
    if not folder.is_dir():
        print(f"ERROR: input folder does not exist: {folder}", file=sys.stderr)
        return 2

    pdf_paths = merge_pdf_paths(collect_pdf_paths(str(folder)))
    if not pdf_paths:
        print(f"ERROR: no PDF files found in {folder}", file=sys.stderr)
        return 2

    print(f"Importing {len(pdf_paths)} file(s) from {folder}")
    summary = run_import_batch(
        args.user_id,
        pdf_paths,
        student_folder=args.student_folder,
        folder_path=str(folder),
        db_path=args.db,
        provider=args.provider,
    )

    print(json.dumps(summary.model_dump(), indent=2, ensure_ascii=False))
    if summary.failures:
        print("\n--- Failed documents (for review) ---")
        for failure in summary.failures:
            print(f"  {failure.source_file}: {failure.reason}")

    return 0 if summary.failed_count == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
