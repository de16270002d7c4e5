"""
Ingestion module: turns an import request into a list of PDF paths.

Two request shapes are accepted:
  - multipart/form-data with PDF file parts plus optional text fields
    `folderPath` and `studentFolder`
  - a JSON body with optional `folderPath`, `pdfPaths` and `studentFolder`

Uploaded files are written to a scratch directory so that every later stage
deals only with filesystem paths.
"""

import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from pipeline import config
from pipeline.multipart import UploadedFile, parse_multipart
from pipeline.schema import ImportPayload
from pipeline.storage import unique_path


def is_pdf_name(name: str) -> bool:
    return name.lower().endswith(".pdf")


def collect_pdf_paths(folder_path: str) -> List[str]:
    """
    Depth-first scan of folder_path for regular files ending in .pdf (any case).

    Entries are visited in sorted name order so repeated scans of the same tree
    return the same list. Symlinked directories are not entered.
    """
    found = []

    def walk(directory: str) -> None:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                walk(entry.path)
            elif entry.is_file() and is_pdf_name(entry.name):
                found.append(entry.path)

    walk(folder_path)
    return found


def persist_uploaded_files(
    files: Iterable[UploadedFile],
    temp_root: Optional[str] = None,
) -> Tuple[Optional[str], List[str]]:
    """
    Write uploaded PDF parts into a fresh scratch directory.

    Non-PDF parts are skipped. Returns (scratch_dir, paths); scratch_dir is
    None when nothing was written.
    """
    pdf_files = [f for f in files if is_pdf_name(f.filename)]
    if not pdf_files:
        return None, []

    upload_dir = Path(tempfile.mkdtemp(prefix=config.IMPORT_TEMP_PREFIX, dir=temp_root))
    paths = []
    for uploaded in pdf_files:
        target = unique_path(upload_dir, uploaded.filename)
        with open(target, "wb") as f:
            f.write(uploaded.data)
        paths.append(str(target))
    return str(upload_dir), paths


def merge_pdf_paths(*groups: Iterable[str]) -> List[str]:
    """Absolute, order-preserving, de-duplicated union of PDF paths."""
    merged = []
    seen = set()
    for group in groups:
        for path in group:
            absolute = os.path.abspath(path)
            if absolute in seen or not is_pdf_name(absolute):
                continue
            seen.add(absolute)
            merged.append(absolute)
    return merged


def resolve_import_payload(
    content_type: str,
    raw_body: bytes = b"",
    json_body: Optional[dict] = None,
    temp_root: Optional[str] = None,
) -> ImportPayload:
    """
    Normalize an import request into an ImportPayload.

    An empty pdf_paths list is a valid result; the caller rejects it with
    "no files found" before any batch is created.

    Args:
        content_type: Request Content-Type header
        raw_body: Raw request bytes (used for multipart requests)
        json_body: Decoded JSON body (used otherwise)
        temp_root: Parent directory for the upload scratch dir (default: system temp)

    Returns:
        ImportPayload
    """
    form = None
    if "multipart/form-data" in (content_type or "").lower():
        form = parse_multipart(raw_body, content_type)
        fields = form.fields
        explicit_paths = []
    else:
        fields = json_body or {}
        explicit = fields.get("pdfPaths")
        explicit_paths = [str(p) for p in explicit if p] if isinstance(explicit, list) else []

    folder_path = str(fields.get("folderPath") or "").strip()
    student_folder = str(fields.get("studentFolder") or "").strip()

    # Scan before writing uploads so a bad folder leaves no scratch dir behind
    from_folder = []
    if folder_path:
        folder_path = os.path.abspath(folder_path)
        from_folder = collect_pdf_paths(folder_path)

    upload_dir = None
    if form is not None:
        upload_dir, explicit_paths = persist_uploaded_files(form.files, temp_root=temp_root)

    return ImportPayload(
        student_folder=student_folder,
        folder_path=folder_path,
        pdf_paths=merge_pdf_paths(from_folder, explicit_paths),
        upload_dir=upload_dir,
    )
