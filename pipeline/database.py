"""
Local SQLite database for imported report records, batches and failures.

ReportDatabase is constructed with an explicit path and passed to the batch
coordinator; every write opens its own connection and commits on its own.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

from pipeline.schema import ImportBatch, ImportFailure, ReportRecord

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS report_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT,
    student_folder TEXT,
    source_file TEXT NOT NULL,
    import_batch_id TEXT NOT NULL,
    student_name TEXT,
    exam_level TEXT,
    genre TEXT,
    topic_title TEXT,
    word_count_est INTEGER,
    report_date_text TEXT,
    content_score INTEGER,
    ca_score INTEGER,
    org_score INTEGER,
    lang_score INTEGER,
    total_score_20 INTEGER,
    ces_score INTEGER,
    cefr_level TEXT,
    overall_comment TEXT,
    risk_flag INTEGER DEFAULT 0,
    raw_text TEXT,
    created_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS import_batches (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    student_folder TEXT,
    folder_path TEXT,
    file_count INTEGER,
    success_count INTEGER,
    failed_count INTEGER,
    created_at TIMESTAMP,
    finalized_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS import_failures (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT,
    batch_id TEXT,
    source_file TEXT,
    reason TEXT,
    created_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_student_name ON report_records(student_name);
CREATE INDEX IF NOT EXISTS idx_batch_id ON report_records(import_batch_id);
CREATE INDEX IF NOT EXISTS idx_report_user_id ON report_records(user_id);
CREATE INDEX IF NOT EXISTS idx_risk_flag ON report_records(risk_flag);
CREATE INDEX IF NOT EXISTS idx_report_student_folder ON report_records(student_folder);
CREATE INDEX IF NOT EXISTS idx_import_batch_user_id ON import_batches(user_id);
CREATE INDEX IF NOT EXISTS idx_import_failures_batch ON import_failures(batch_id);
"""

RECORD_COLUMNS = [
    "user_id", "student_folder", "source_file", "import_batch_id",
    "student_name", "exam_level", "genre", "topic_title",
    "word_count_est", "report_date_text",
    "content_score", "ca_score", "org_score", "lang_score",
    "total_score_20", "ces_score", "cefr_level", "overall_comment",
    "risk_flag", "raw_text",
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReportStore(Protocol):
    """Persistence operations the batch coordinator needs."""

    def create_batch(self, batch_id: str, user_id: Optional[str], student_folder: Optional[str],
                     folder_path: Optional[str], file_count: int) -> None: ...

    def finalize_batch(self, batch_id: str, user_id: Optional[str],
                       success_count: int, failed_count: int) -> bool: ...

    def insert_failure(self, user_id: Optional[str], batch_id: str,
                       source_file: str, reason: str) -> None: ...

    def insert_record(self, record: ReportRecord) -> int: ...


class ReportDatabase:
    """SQLite implementation of ReportStore plus the owner's read/delete operations."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.init_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def init_database(self) -> None:
        """Create tables and indexes if they do not exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()

    def _write(self, query: str, params: tuple) -> sqlite3.Cursor:
        conn = self._connect()
        try:
            cursor = conn.execute(query, params)
            conn.commit()
            return cursor
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Batch accounting
    # ------------------------------------------------------------------

    def create_batch(self, batch_id, user_id, student_folder, folder_path, file_count) -> None:
        self._write(
            """
            INSERT INTO import_batches (
                id, user_id, student_folder, folder_path,
                file_count, success_count, failed_count, created_at
            ) VALUES (?, ?, ?, ?, ?, 0, 0, ?)
            """,
            (batch_id, user_id, student_folder or None, folder_path or None, file_count or 0, _now()),
        )

    def finalize_batch(self, batch_id, user_id, success_count, failed_count) -> bool:
        """
        Write the final counters. A batch is finalized at most once.

        Returns:
            True if the batch row was updated
        """
        cursor = self._write(
            """
            UPDATE import_batches
            SET success_count = ?, failed_count = ?, finalized_at = ?
            WHERE id = ? AND user_id IS ? AND finalized_at IS NULL
            """,
            (success_count, failed_count, _now(), batch_id, user_id),
        )
        if cursor.rowcount == 0:
            logger.warning(f"Batch {batch_id} not finalized (missing or already finalized)")
        return cursor.rowcount > 0

    def insert_failure(self, user_id, batch_id, source_file, reason) -> None:
        self._write(
            """
            INSERT INTO import_failures (user_id, batch_id, source_file, reason, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, batch_id, source_file, reason, _now()),
        )

    def insert_record(self, record: ReportRecord) -> int:
        """Insert a stamped record and return its row id."""
        if not record.import_batch_id:
            raise ValueError("import_batch_id is required to save a record")

        values = record.model_dump()
        values["risk_flag"] = 1 if record.risk_flag else 0
        placeholders = ", ".join("?" for _ in RECORD_COLUMNS)
        cursor = self._write(
            f"INSERT INTO report_records ({', '.join(RECORD_COLUMNS)}, created_at) "
            f"VALUES ({placeholders}, ?)",
            tuple(values[c] for c in RECORD_COLUMNS) + (_now(),),
        )
        return cursor.lastrowid

    # ------------------------------------------------------------------
    # Owner queries
    # ------------------------------------------------------------------

    def get_batch(self, batch_id: str, user_id: Optional[str]) -> Optional[ImportBatch]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM import_batches WHERE id = ? AND user_id IS ?",
                (batch_id, user_id),
            ).fetchone()
        finally:
            conn.close()
        return ImportBatch(**dict(row)) if row else None

    def get_unfinalized_batches(self, user_id: Optional[str]) -> List[ImportBatch]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM import_batches WHERE user_id IS ? AND finalized_at IS NULL ORDER BY created_at",
                (user_id,),
            ).fetchall()
        finally:
            conn.close()
        return [ImportBatch(**dict(r)) for r in rows]

    def get_failures(self, batch_id: str, user_id: Optional[str]) -> List[ImportFailure]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT batch_id, user_id, source_file, reason, created_at
                FROM import_failures
                WHERE batch_id = ? AND user_id IS ?
                ORDER BY id
                """,
                (batch_id, user_id),
            ).fetchall()
        finally:
            conn.close()
        return [ImportFailure(**dict(r)) for r in rows]

    def get_records(
        self,
        user_id: Optional[str],
        batch_id: Optional[str] = None,
        limit: int = 1000,
    ) -> List[Dict]:
        """
        Get report records owned by user_id, newest first.

        Args:
            user_id: Owner (principal) id
            batch_id: Only records from this batch (None = all)
            limit: Maximum number of records to return
        """
        query = "SELECT * FROM report_records WHERE user_id IS ?"
        params: list = [user_id]
        if batch_id is not None:
            query += " AND import_batch_id = ?"
            params.append(batch_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        conn = self._connect()
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()

        records = []
        for row in rows:
            record = dict(row)
            record["risk_flag"] = bool(record["risk_flag"])
            records.append(record)
        return records

    def get_record(self, record_id: int, user_id: Optional[str]) -> Optional[Dict]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM report_records WHERE id = ? AND user_id IS ?",
                (record_id, user_id),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        record = dict(row)
        record["risk_flag"] = bool(record["risk_flag"])
        return record

    def count_batch_rows(self, batch_id: str, user_id: Optional[str]) -> Tuple[int, int]:
        """Return (record_count, failure_count) actually stored for a batch."""
        conn = self._connect()
        try:
            records = conn.execute(
                "SELECT COUNT(*) FROM report_records WHERE import_batch_id = ? AND user_id IS ?",
                (batch_id, user_id),
            ).fetchone()[0]
            failures = conn.execute(
                "SELECT COUNT(*) FROM import_failures WHERE batch_id = ? AND user_id IS ?",
                (batch_id, user_id),
            ).fetchone()[0]
        finally:
            conn.close()
        return records, failures

    def delete_record(self, record_id: int, user_id: Optional[str]) -> bool:
        cursor = self._write(
            "DELETE FROM report_records WHERE id = ? AND user_id IS ?",
            (record_id, user_id),
        )
        return cursor.rowcount > 0

    def delete_all_user_data(self, user_id: Optional[str]) -> None:
        """Delete every record, failure and batch owned by user_id in one transaction."""
        conn = self._connect()
        try:
            conn.execute("DELETE FROM report_records WHERE user_id IS ?", (user_id,))
            conn.execute("DELETE FROM import_failures WHERE user_id IS ?", (user_id,))
            conn.execute("DELETE FROM import_batches WHERE user_id IS ?", (user_id,))
            conn.commit()
        except sqlite3.Error:
            conn.rollback()
            raise
        finally:
            conn.close()
