"""
Extraction module: parses report fields from extracted PDF text using rule-based logic.
Handles bilingual (Chinese + English) report layouts and partial documents:
every field degrades to None on its own, only a report with neither a
student name nor any score is rejected.
"""

import re
from typing import Optional

from pipeline.schema import ReportRecord
from pipeline.validate import compute_total_score, compute_risk_flag, has_core_fields


class ParseError(ValueError):
    """Extracted text does not look like an assessment report."""


# "KET Writing 报告 — 李雷 · My Weekend"
TITLE_RE = re.compile(
    r"(KET|PET)\s+Writing\s+(?:报告|Report)\s*[—–-]\s*([^·\n]+?)\s*·\s*([^\n]+)",
    re.IGNORECASE,
)
EXAM_LEVEL_RE = re.compile(r"(?<![A-Za-z])(KET|PET)(?![A-Za-z])", re.IGNORECASE)

# Value on the label line, or on the next line when the label line ends at the colon
_LABEL_VALUE = r"[ \t]*[：:][ \t]*(?:\n[ \t]*)?([^\n]+)"
# A value that is itself "label:" means the labeled field was left empty
_LABEL_LINE_RE = re.compile(r"^[A-Za-z\u4e00-\u9fff][A-Za-z\u4e00-\u9fff ]{0,20}[：:]")

STUDENT_RE = re.compile(r"(?:学生|(?<![A-Za-z])Student)" + _LABEL_VALUE, re.IGNORECASE)
TOPIC_RE = re.compile(r"(?:主题|(?<![A-Za-z])Topic)" + _LABEL_VALUE, re.IGNORECASE)
GENRE_RE = re.compile(r"(?:任务类型|体裁|Genre|Task\s+type)[ \t]*[：:][ \t]*([A-Za-z]+)", re.IGNORECASE)
WORD_COUNT_RE = re.compile(
    r"(?:字数[：:]\s*约?\s*(\d+)\s*词|Word\s+count[：:]\s*(?:about|approx\.?|~)?\s*(\d+))",
    re.IGNORECASE,
)
DATE_RE = re.compile(r"(?:日期|(?<![A-Za-z])Date)" + _LABEL_VALUE, re.IGNORECASE)

TOTAL_RE = re.compile(r"(?:原始总分|总分|Total\s+score)[^\n]{0,40}?(\d{1,2})\s*/\s*20", re.IGNORECASE)
CES_RE = re.compile(r"(?:Cambridge\s+English\s+Scale|剑桥英语量表分数)[^\n]{0,40}?(\d{3})", re.IGNORECASE)
CEFR_RE = re.compile(r"(?:对应\s*CEFR\s*等级|CEFR)[^\n]{0,30}?(A2|B1\+?|B2)", re.IGNORECASE)
COMMENT_RE = re.compile(
    r"(?:一句整体评价|One-line\s+overall\s+(?:evaluation|comment))[：:]?\s*([^\n]+)",
    re.IGNORECASE,
)

# Sub-score labels, searched in this order
CONTENT_LABEL = r"Content"
CA_LABEL = r"Communicative\s+Achievement"
ORG_LABEL = r"Organisation"
LANG_LABEL = r"Language"

SCORE_WINDOW = 80

# pdftotext -layout separates columns with runs of spaces
_COLUMN_GAP_RE = re.compile(r"\s{2,}")


def safe_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_report_text(raw_text: str) -> str:
    """Form feeds (page breaks) become newlines."""
    return (raw_text or "").replace("\f", "\n")


def _first_column(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = _COLUMN_GAP_RE.split(value.strip())[0].strip()
    return value or None


def _search_group(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1) if match else None


def _labeled_value(pattern: re.Pattern, text: str) -> Optional[str]:
    value = _first_column(_search_group(pattern, text))
    if value and _LABEL_LINE_RE.match(value):
        return None
    return value


def find_score(text: str, label: str, window: int = SCORE_WINDOW) -> Optional[int]:
    """
    Find "<label> ... <d> / 5" with the digit at most `window` characters after the label.

    Returns:
        Score 0-5, or None when absent or out of range
    """
    pattern = re.compile(rf"{label}[\s\S]{{0,{window}}}?(\d)\s*/\s*5(?!\d)", re.IGNORECASE)
    score = safe_int(_search_group(pattern, text))
    if score is None or score > 5:
        return None
    return score


def _bounded(value: Optional[int], upper: int) -> Optional[int]:
    if value is None or value < 0 or value > upper:
        return None
    return value


def parse_report_fields(raw_text: str, source_file: str) -> ReportRecord:
    """
    Parse one report's extracted text into a ReportRecord.

    Pure function of (raw_text, source_file). Title-line values are fallbacks
    for the labeled lines.

    Args:
        raw_text: Text from the extractor (may contain form feeds)
        source_file: Path of the PDF the text came from

    Returns:
        ReportRecord (batch/user stamps left empty)

    Raises:
        ParseError: no student name and none of the six score fields found
    """
    text = normalize_report_text(raw_text)

    title = TITLE_RE.search(text)
    student_from_title = _first_column(title.group(2)) if title else None
    topic_from_title = _first_column(title.group(3)) if title else None
    if title:
        exam_level = title.group(1).upper()
    else:
        level = _search_group(EXAM_LEVEL_RE, text)
        exam_level = level.upper() if level else None

    student_name = _labeled_value(STUDENT_RE, text) or student_from_title
    topic_title = _labeled_value(TOPIC_RE, text) or topic_from_title

    genre = _search_group(GENRE_RE, text)
    genre = genre.lower() if genre else None

    word_match = WORD_COUNT_RE.search(text)
    word_count = safe_int(word_match.group(1) or word_match.group(2)) if word_match else None

    report_date = _labeled_value(DATE_RE, text)

    content = find_score(text, CONTENT_LABEL)
    ca = find_score(text, CA_LABEL)
    org = find_score(text, ORG_LABEL)
    lang = find_score(text, LANG_LABEL)

    explicit_total = _bounded(safe_int(_search_group(TOTAL_RE, text)), 20)
    ces = safe_int(_search_group(CES_RE, text))

    cefr = _search_group(CEFR_RE, text)
    cefr = cefr.upper() if cefr else None

    comment = _search_group(COMMENT_RE, text)
    comment = comment.strip() if comment and comment.strip() else None

    if not has_core_fields(student_name, content, ca, org, lang, explicit_total, ces):
        raise ParseError("Missing core fields: no student name and no score fields found")

    total = compute_total_score(explicit_total, content, ca, org, lang)

    return ReportRecord(
        source_file=source_file,
        student_name=student_name,
        exam_level=exam_level,
        genre=genre,
        topic_title=topic_title,
        word_count_est=word_count,
        report_date_text=report_date,
        content_score=content,
        ca_score=ca,
        org_score=org,
        lang_score=lang,
        total_score_20=total,
        ces_score=ces,
        cefr_level=cefr,
        overall_comment=comment,
        risk_flag=compute_risk_flag(total, lang),
        raw_text=text,
    )
