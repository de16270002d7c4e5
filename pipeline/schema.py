"""
Data models for imported assessment reports.
Uses Pydantic for validation and type safety.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class ReportRecord(BaseModel):
    """
    One parsed PDF report. Built once by the field parser, never mutated.
    Batch/principal/folder stamps are added by the batch coordinator.
    """
    source_file: str

    # Header fields (any may be missing from a given report)
    student_name: Optional[str] = None
    exam_level: Optional[str] = None  # "KET" / "PET"
    genre: Optional[str] = None
    topic_title: Optional[str] = None
    word_count_est: Optional[int] = None
    report_date_text: Optional[str] = None

    # Sub-scores, each 0-5
    content_score: Optional[int] = Field(default=None, ge=0, le=5)
    ca_score: Optional[int] = Field(default=None, ge=0, le=5)
    org_score: Optional[int] = Field(default=None, ge=0, le=5)
    lang_score: Optional[int] = Field(default=None, ge=0, le=5)

    # Explicit total when printed, otherwise sum of all four sub-scores
    total_score_20: Optional[int] = Field(default=None, ge=0, le=20)
    ces_score: Optional[int] = None
    cefr_level: Optional[str] = None
    overall_comment: Optional[str] = None

    risk_flag: bool = False
    raw_text: str = ""

    # Stamped at persistence time
    import_batch_id: Optional[str] = None
    user_id: Optional[str] = None
    student_folder: Optional[str] = None


class ImportBatch(BaseModel):
    """Accounting row for one ingestion request."""
    id: str
    user_id: Optional[str] = None
    student_folder: Optional[str] = None
    folder_path: Optional[str] = None
    file_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    created_at: Optional[datetime] = None
    # None until the counters have been written
    finalized_at: Optional[datetime] = None


class ImportFailure(BaseModel):
    """One file that could not be extracted, parsed or stored."""
    batch_id: str
    user_id: Optional[str] = None
    source_file: str
    reason: str
    created_at: Optional[datetime] = None


class FailureEntry(BaseModel):
    source_file: str
    reason: str


class BatchSummary(BaseModel):
    """Returned to the caller once a batch has been finalized."""
    batch_id: str
    file_count: int
    success_count: int
    failed_count: int
    failures: List[FailureEntry] = []


class ImportPayload(BaseModel):
    """Normalized import request: resolved PDF paths plus grouping metadata."""
    student_folder: str = ""
    folder_path: str = ""
    pdf_paths: List[str] = []
    # Scratch directory holding multipart uploads, if any
    upload_dir: Optional[str] = None
