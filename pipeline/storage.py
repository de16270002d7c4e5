"""
Durable storage for uploaded PDFs.

Multipart uploads land in a per-request scratch directory first. Before a
record may reference one of them, the file is copied to
<root>/user_<principal>/<batch_id>/<filename>.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from pipeline import config

logger = logging.getLogger(__name__)


def unique_path(directory: Path, filename: str) -> Path:
    """directory/filename, or directory/<stem>-<n><suffix> if that name is taken."""
    candidate = directory / filename
    stem, suffix = os.path.splitext(filename)
    n = 1
    while candidate.exists():
        candidate = directory / f"{stem}-{n}{suffix}"
        n += 1
    return candidate


def is_temporary_upload(path: str, upload_dir: Optional[str]) -> bool:
    """True if path lies inside this request's upload scratch directory."""
    if not upload_dir:
        return False
    return Path(path).resolve().is_relative_to(Path(upload_dir).resolve())


def durable_batch_dir(root: str, user_id: Optional[str], batch_id: str) -> Path:
    return Path(root).resolve() / f"user_{user_id or 'anonymous'}" / batch_id


def persist_if_temporary(
    source_path: str,
    user_id: Optional[str],
    batch_id: str,
    upload_dir: Optional[str] = None,
    storage_root: Optional[str] = None,
) -> str:
    """
    Copy a scratch upload into durable per-user, per-batch storage.

    Paths outside upload_dir are returned unchanged. A name already used in
    the batch directory gets a numeric suffix.

    Raises:
        OSError: if the target directory or the copy cannot be written
    """
    if not is_temporary_upload(source_path, upload_dir):
        return source_path

    target_dir = durable_batch_dir(storage_root or config.UPLOADED_PDF_DIR, user_id, batch_id)
    target_dir.mkdir(parents=True, exist_ok=True)
    target_path = unique_path(target_dir, Path(source_path).name)
    shutil.copyfile(source_path, target_path)
    logger.debug(f"Stored upload {Path(source_path).name} → {target_path}")
    return str(target_path)
