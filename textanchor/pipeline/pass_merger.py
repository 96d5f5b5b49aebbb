"""
Multi-pass / multi-chunk merge.

Combines records from independent passes (or from the chunks of one
pass) into one deduplicated list ordered by source position. Input order
never affects the result beyond the explicit (pass, position) tags, so
chunk completion order under parallel execution does not matter.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, Field, model_validator

from textanchor.config import settings
from textanchor.exceptions import ConfigurationError
from textanchor.observability.metrics import duplicates_dropped_total
from textanchor.pipeline.confidence_scorer import pass_quality_score, score_extraction
from textanchor.pipeline.text_index import normalize_text
from textanchor.schemas.contracts import ExtractionRecord

logger = structlog.get_logger(__name__)


class MergeConfig(BaseModel):
    overlap_fraction: float = Field(default_factory=lambda: settings.MERGE_OVERLAP_FRACTION)
    # 0.0 keeps every record
    min_record_quality: float = Field(default_factory=lambda: settings.MERGE_MIN_RECORD_QUALITY)
    max_passes: int = Field(default_factory=lambda: settings.PASS_MAX)
    min_extractions: int = Field(default_factory=lambda: settings.PASS_MIN_EXTRACTIONS)
    quality_threshold: float = Field(default_factory=lambda: settings.PASS_QUALITY_THRESHOLD)
    targeted_reprocessing: bool = Field(default_factory=lambda: settings.PASS_TARGETED_REPROCESSING)
    min_extractions_per_chunk: int = Field(
        default_factory=lambda: settings.PASS_MIN_EXTRACTIONS_PER_CHUNK
    )
    max_reprocess_chunks: int = Field(default_factory=lambda: settings.PASS_MAX_REPROCESS_CHUNKS)

    @model_validator(mode="after")
    def _check_values(self) -> "MergeConfig":
        for name in ("overlap_fraction", "min_record_quality", "quality_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
        if self.max_passes < 1:
            raise ConfigurationError(f"max_passes must be >= 1, got {self.max_passes}")
        for name in ("min_extractions", "min_extractions_per_chunk"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(f"{name} must be >= 0, got {value}")
        if self.max_reprocess_chunks < 1:
            raise ConfigurationError(
                f"max_reprocess_chunks must be >= 1, got {self.max_reprocess_chunks}"
            )
        return self


class PassDecision(BaseModel):
    """Whether the caller should run another extraction pass, and why."""
    request_more: bool
    distinct_count: int
    quality_score: float
    reason: str


def merge_passes(
    pass_results: list[list[ExtractionRecord]],
    config: Optional[MergeConfig] = None,
) -> list[ExtractionRecord]:
    """
    Deduplicate and order records from several passes.

    Duplicates share a class and either overlap by more than
    overlap_fraction of the shorter interval, or (when either side is
    unaligned) have the same normalized text. The kept record is the one
    with the better alignment status; ties keep the earliest pass.

    Returns new records; the inputs are not modified.
    """
    config = config or MergeConfig()

    tagged = [
        (pass_no, position, record)
        for pass_no, records in enumerate(pass_results)
        for position, record in enumerate(records)
    ]
    total_in = len(tagged)

    below_floor = 0
    if config.min_record_quality > 0:
        kept_tagged = [t for t in tagged if score_extraction(t[2]) >= config.min_record_quality]
        below_floor = len(tagged) - len(kept_tagged)
        tagged = kept_tagged

    tagged.sort(key=lambda t: (-_rank(t[2]), t[0], t[1]))

    kept_by_class: dict[str, list[ExtractionRecord]] = {}
    kept: list[tuple[int, int, ExtractionRecord]] = []
    duplicates = 0
    for pass_no, position, record in tagged:
        same_class = kept_by_class.setdefault(record.extraction_class, [])
        if any(_is_duplicate(record, other, config.overlap_fraction) for other in same_class):
            duplicates += 1
            continue
        same_class.append(record)
        kept.append((pass_no, position, record))

    aligned = sorted(
        (t for t in kept if t[2].is_aligned),
        key=lambda t: (t[2].char_interval.start, t[2].char_interval.end, t[0], t[1]),
    )
    unaligned = sorted((t for t in kept if not t[2].is_aligned), key=lambda t: (t[0], t[1]))

    merged = [
        record.model_copy(update={"extraction_index": i}, deep=True)
        for i, (_, _, record) in enumerate(aligned + unaligned)
    ]

    if duplicates:
        duplicates_dropped_total.inc(duplicates)
    logger.info(
        "passes_merged",
        pass_count=len(pass_results),
        records_in=total_in,
        records_out=len(merged),
        duplicates_dropped=duplicates,
        below_quality_floor=below_floor,
    )
    return merged


def should_request_pass(
    records: list[ExtractionRecord],
    passes_completed: int,
    config: Optional[MergeConfig] = None,
) -> PassDecision:
    """
    Early-stop policy for the pass loop.
    More passes only while under max_passes AND the distinct count is below
    min_extractions AND the quality score is below quality_threshold.
    """
    config = config or MergeConfig()
    distinct = len(records)
    quality = pass_quality_score(records)

    if passes_completed >= config.max_passes:
        request_more, reason = False, "max_passes_reached"
    elif distinct >= config.min_extractions:
        request_more, reason = False, "enough_extractions"
    elif quality >= config.quality_threshold:
        request_more, reason = False, "quality_threshold_met"
    else:
        request_more, reason = True, "below_targets"

    return PassDecision(
        request_more=request_more,
        distinct_count=distinct,
        quality_score=quality,
        reason=reason,
    )


def _rank(record: ExtractionRecord) -> int:
    if record.alignment_status is None:
        return 0
    return record.alignment_status.rank


def _is_duplicate(a: ExtractionRecord, b: ExtractionRecord, overlap_fraction: float) -> bool:
    if a.extraction_class != b.extraction_class:
        return False
    if a.is_aligned and b.is_aligned:
        shorter = min(a.char_interval.length, b.char_interval.length)
        return a.char_interval.overlap(b.char_interval) > overlap_fraction * shorter
    return normalize_text(a.extraction_text) == normalize_text(b.extraction_text)
