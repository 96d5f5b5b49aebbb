"""
Confidence scoring for aligned extractions.
Per-record heuristic score used by the optional merge quality floor, and
the pass-level quality score that drives the early-stop decision.
"""

from textanchor.models.enums import AlignmentStatus
from textanchor.schemas.contracts import ExtractionRecord


# ── Record score adjustments ─────────────────────────────────
BASE_SCORE = 0.5

STATUS_ADJUSTMENTS = {
    AlignmentStatus.EXACT: 0.3,
    AlignmentStatus.FUZZY: 0.1,
    AlignmentStatus.LESSER: 0.05,
    AlignmentStatus.GREATER: -0.05,
    AlignmentStatus.UNALIGNED: -0.2,
}

LENGTH_BONUS = 0.2           # 2..100 chars
LONG_TEXT_PENALTY = -0.1     # > 100 chars
TINY_TEXT_PENALTY = -0.3     # 0..1 chars
ALPHA_BONUS = 0.1
NUMERIC_BONUS = 0.05


def score_extraction(record: ExtractionRecord) -> float:
    """
    Heuristic quality in [0, 1] for a single record.
    Rewards exact alignment and ordinary-length text with letters/digits.
    """
    text = record.extraction_text
    score = BASE_SCORE

    if 2 <= len(text) <= 100:
        score += LENGTH_BONUS
    elif len(text) > 100:
        score += LONG_TEXT_PENALTY

    status = record.alignment_status or AlignmentStatus.UNALIGNED
    score += STATUS_ADJUSTMENTS[status]

    if any(c.isalpha() for c in text):
        score += ALPHA_BONUS
    if any(c.isnumeric() for c in text):
        score += NUMERIC_BONUS
    if len(text) <= 1:
        score += TINY_TEXT_PENALTY

    return max(0.0, min(1.0, score))


def pass_quality_score(records: list[ExtractionRecord]) -> float:
    """Fraction of EXACT/FUZZY among aligned records; 0.0 when none aligned."""
    aligned = [
        r for r in records
        if r.alignment_status is not None and r.alignment_status != AlignmentStatus.UNALIGNED
    ]
    if not aligned:
        return 0.0
    good = sum(
        1 for r in aligned
        if r.alignment_status in (AlignmentStatus.EXACT, AlignmentStatus.FUZZY)
    )
    return good / len(aligned)
