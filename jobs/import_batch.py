"""
Batch import job: runs the per-file pipeline over a resolved path list.

Files are processed one at a time, in order. A failure in one file is recorded
as an import failure and never stops the files after it. The batch counters
are written once, after the last file.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pipeline import config
from pipeline.database import ReportDatabase, ReportStore
from pipeline.extract import ParseError
from pipeline.pdf_text import ExtractionError, TextExtractor, get_text_extractor
from pipeline.runner import process_report
from pipeline.schema import BatchSummary, FailureEntry
from pipeline.storage import persist_if_temporary

logger = logging.getLogger(__name__)


class BatchStateError(RuntimeError):
    """A batch is not in the state the operation requires."""


class BatchInProgressError(BatchStateError):
    """An open batch is too recent to be treated as interrupted."""


UNKNOWN_SOURCE = "<unknown>"
INTERRUPTED_REASON = "import interrupted before this file was processed"


def _failure_reason(exc: Exception) -> str:
    return str(exc).strip() or type(exc).__name__


class BatchCoordinator:
    """Drives resolve → store → extract → parse → persist for one batch."""

    def __init__(
        self,
        store: ReportStore,
        extractor: Optional[TextExtractor] = None,
        storage_root: Optional[str] = None,
    ):
        self.store = store
        self.extractor = extractor or get_text_extractor()
        self.storage_root = storage_root or config.UPLOADED_PDF_DIR

    def run(
        self,
        user_id: Optional[str],
        pdf_paths: List[str],
        student_folder: Optional[str] = None,
        folder_path: Optional[str] = None,
        upload_dir: Optional[str] = None,
    ) -> BatchSummary:
        """
        Import every path as part of one new batch.

        Args:
            user_id: Principal that owns the batch and its records
            pdf_paths: Resolved PDF paths, processed in this order
            student_folder: Explicit grouping label for all records
            folder_path: Source folder the paths were scanned from, if any
            upload_dir: Request scratch directory; files inside it are copied to durable storage

        Returns:
            BatchSummary with counts and the ordered failure list

        Raises:
            BatchStateError: the batch was finalized by someone else while running
        """
        batch_id = str(uuid.uuid4())
        paths = list(pdf_paths or [])

        self.store.create_batch(batch_id, user_id, student_folder, folder_path, len(paths))
        logger.info(f"📦 Batch {batch_id[:8]} started: {len(paths)} file(s) for user {user_id}")

        success_count = 0
        failures: List[FailureEntry] = []

        for index, path in enumerate(paths, start=1):
            source_file = path
            try:
                source_file = persist_if_temporary(
                    path, user_id, batch_id,
                    upload_dir=upload_dir,
                    storage_root=self.storage_root,
                )
                record = process_report(source_file, self.extractor)
                folder = student_folder or record.student_name or config.UNGROUPED_FOLDER
                self.store.insert_record(
                    record.model_copy(update={
                        "import_batch_id": batch_id,
                        "user_id": user_id,
                        "student_folder": folder,
                    })
                )
                success_count += 1
                logger.info(f"[{index}/{len(paths)}] ✅ {source_file}: student={record.student_name}")
            except (ExtractionError, ParseError, OSError) as e:
                reason = _failure_reason(e)
                logger.warning(f"[{index}/{len(paths)}] ❌ {source_file}: {reason}")
                self._record_failure(user_id, batch_id, source_file, reason, failures)
            except Exception as e:
                reason = _failure_reason(e)
                logger.exception(f"[{index}/{len(paths)}] ❌ Unexpected error for {source_file}")
                self._record_failure(user_id, batch_id, source_file, reason, failures)

        failed_count = len(failures)
        if not self.store.finalize_batch(batch_id, user_id, success_count, failed_count):
            logger.error(
                f"Batch {batch_id[:8]} was finalized elsewhere; stored counts may not match "
                f"{success_count} ok, {failed_count} failed"
            )
            raise BatchStateError(f"Batch {batch_id} was already finalized")
        logger.info(
            f"🏁 Batch {batch_id[:8]} finalized: {success_count} ok, {failed_count} failed of {len(paths)}"
        )

        return BatchSummary(
            batch_id=batch_id,
            file_count=len(paths),
            success_count=success_count,
            failed_count=failed_count,
            failures=failures,
        )

    def _record_failure(self, user_id, batch_id, source_file, reason, failures: List[FailureEntry]) -> None:
        self.store.insert_failure(user_id, batch_id, source_file, reason)
        failures.append(FailureEntry(source_file=source_file, reason=reason))


def run_import_batch(
    user_id: Optional[str],
    pdf_paths: List[str],
    student_folder: Optional[str] = None,
    folder_path: Optional[str] = None,
    db_path: Optional[str] = None,
    provider: Optional[str] = None,
) -> BatchSummary:
    """Run one batch with a store and extractor built from configuration."""
    store = ReportDatabase(db_path or config.REPORTS_DB_PATH)
    coordinator = BatchCoordinator(store, extractor=get_text_extractor(provider))
    return coordinator.run(user_id, pdf_paths, student_folder=student_folder, folder_path=folder_path)


def _batch_age_seconds(created_at: Optional[datetime]) -> Optional[float]:
    if created_at is None:
        return None
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (datetime.now(timezone.utc) - created_at).total_seconds()


def reconcile_batch(
    store: ReportDatabase,
    batch_id: str,
    user_id: Optional[str],
    min_age_seconds: Optional[int] = None,
) -> Optional[BatchSummary]:
    """
    Finalize a batch left open by an interrupted import, using its stored child rows.

    Args:
        store: Report database
        batch_id: Batch to reconcile
        user_id: Owner of the batch
        min_age_seconds: Open batches younger than this are treated as still
            running (default RECONCILE_AFTER_SECONDS)

    Returns:
        Summary of the reconciled batch, or None if the batch does not exist.
        Already-finalized batches are returned as stored.

    Raises:
        BatchInProgressError: the batch is open and younger than min_age_seconds
        BatchStateError: the batch was finalized while reconciling
    """
    batch = store.get_batch(batch_id, user_id)
    if batch is None:
        return None

    failures = [
        FailureEntry(source_file=f.source_file, reason=f.reason)
        for f in store.get_failures(batch_id, user_id)
    ]
    if batch.finalized_at is not None:
        return BatchSummary(
            batch_id=batch_id,
            file_count=batch.file_count,
            success_count=batch.success_count,
            failed_count=batch.failed_count,
            failures=failures,
        )

    if min_age_seconds is None:
        min_age_seconds = config.RECONCILE_AFTER_SECONDS or 0
    age = _batch_age_seconds(batch.created_at)
    if age is not None and age < min_age_seconds:
        raise BatchInProgressError(
            f"Batch {batch_id} started {int(age)}s ago and may still be importing; "
            f"retry after {min_age_seconds}s"
        )

    record_count, failure_count = store.count_batch_rows(batch_id, user_id)
    # Files never reached before the interruption get a failure row each,
    # so failure rows keep matching failed_count
    unprocessed = max(batch.file_count - record_count - failure_count, 0)
    for _ in range(unprocessed):
        store.insert_failure(user_id, batch_id, UNKNOWN_SOURCE, INTERRUPTED_REASON)
        failures.append(FailureEntry(source_file=UNKNOWN_SOURCE, reason=INTERRUPTED_REASON))
    failed_count = failure_count + unprocessed
    if not store.finalize_batch(batch_id, user_id, record_count, failed_count):
        raise BatchStateError(f"Batch {batch_id} was finalized while reconciling")
    logger.info(
        f"🔁 Batch {batch_id[:8]} reconciled: {record_count} ok, {failure_count} failed, "
        f"{unprocessed} never processed"
    )
    return BatchSummary(
        batch_id=batch_id,
        file_count=batch.file_count,
        success_count=record_count,
        failed_count=failed_count,
        failures=failures,
    )
