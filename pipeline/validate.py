"""
Validation module: derived scores, risk flag and the core-field gate.
"""

from typing import Optional

RISK_TOTAL_THRESHOLD = 12
RISK_LANG_THRESHOLD = 2


def compute_total_score(
    explicit_total: Optional[int],
    content: Optional[int],
    ca: Optional[int],
    org: Optional[int],
    lang: Optional[int],
) -> Optional[int]:
    """
    Explicit total wins, even when it disagrees with the sub-scores.
    Otherwise the sum is used only when all four sub-scores are known.
    """
    if explicit_total is not None:
        return explicit_total
    subs = [content, ca, org, lang]
    if all(s is not None for s in subs):
        return sum(subs)
    return None


def compute_risk_flag(total_score: Optional[int], lang_score: Optional[int]) -> bool:
    """
    True iff total < 12 or language <= 2. Unknown values never trigger.
    """
    if total_score is not None and total_score < RISK_TOTAL_THRESHOLD:
        return True
    if lang_score is not None and lang_score <= RISK_LANG_THRESHOLD:
        return True
    return False


def has_core_fields(student_name: Optional[str], *scores: Optional[int]) -> bool:
    """A report is usable if it names a student or carries at least one score."""
    return bool(student_name) or any(s is not None for s in scores)
