"""
Aligns extraction records onto the original source text.

Each record's text is located with an ordered chain of matchers
(exact -> normalized -> token similarity), first near the cursor and
then, if enabled, over the whole document. The cursor only moves
forward, so repeated literal texts bind to successive occurrences.
Model-reported positions are never trusted.
"""

from typing import Optional

import structlog
from pydantic import BaseModel, Field, model_validator

from textanchor.config import settings
from textanchor.exceptions import AlignmentFailure, ConfigurationError
from textanchor.matchers.base import Matcher, MatchResult
from textanchor.matchers.exact_matcher import ExactMatcher
from textanchor.matchers.normalized_matcher import NormalizedMatcher
from textanchor.matchers.token_matcher import TokenSimilarityMatcher
from textanchor.models.enums import AlignmentStatus, MatchScope
from textanchor.observability.metrics import records_aligned_total
from textanchor.pipeline.text_index import SourceIndex
from textanchor.schemas.contracts import AlignmentStats, CharInterval, ExtractionRecord

logger = structlog.get_logger(__name__)


class AlignmentConfig(BaseModel):
    enable_fuzzy: bool = Field(default_factory=lambda: settings.ALIGN_ENABLE_FUZZY)
    fuzzy_threshold: float = Field(default_factory=lambda: settings.ALIGN_FUZZY_THRESHOLD)
    accept_match_lesser: bool = Field(default_factory=lambda: settings.ALIGN_ACCEPT_LESSER)
    search_window_chars: int = Field(default_factory=lambda: settings.ALIGN_SEARCH_WINDOW_CHARS)
    token_search_radius: int = Field(default_factory=lambda: settings.ALIGN_TOKEN_SEARCH_RADIUS)
    max_window_tokens: int = Field(default_factory=lambda: settings.ALIGN_MAX_WINDOW_TOKENS)
    enable_fallback: bool = Field(default_factory=lambda: settings.ALIGN_ENABLE_FALLBACK)

    @model_validator(mode="after")
    def _check_values(self) -> "AlignmentConfig":
        if not 0.0 < self.fuzzy_threshold <= 1.0:
            raise ConfigurationError(
                f"fuzzy_threshold must be in (0, 1], got {self.fuzzy_threshold}"
            )
        for name in ("search_window_chars", "token_search_radius", "max_window_tokens"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)}")
        return self


def build_matchers(config: AlignmentConfig) -> list[Matcher]:
    """Matcher chain in the order tiers are tried."""
    matchers: list[Matcher] = [ExactMatcher()]
    if config.enable_fuzzy:
        matchers.append(NormalizedMatcher(config.search_window_chars))
        matchers.append(TokenSimilarityMatcher(
            threshold=config.fuzzy_threshold,
            accept_match_lesser=config.accept_match_lesser,
            token_search_radius=config.token_search_radius,
            max_window_tokens=config.max_window_tokens,
        ))
    return matchers


def align_extractions(
    records: list[ExtractionRecord],
    source_text: str,
    start_cursor: int = 0,
    config: Optional[AlignmentConfig] = None,
) -> int:
    """
    Attach char_interval and alignment_status to each record in place.
    Returns the number of records aligned (anything but UNALIGNED).
    """
    config = config or AlignmentConfig()
    index = SourceIndex(source_text)
    matchers = build_matchers(config)
    scopes = [MatchScope.NEAR]
    if config.enable_fallback:
        scopes.append(MatchScope.DOCUMENT)

    cursor = min(max(start_cursor, 0), len(source_text))
    aligned = 0
    for record in records:
        try:
            match = _locate(record.extraction_text, index, cursor, matchers, scopes)
        except AlignmentFailure as e:
            record.char_interval = None
            record.token_interval = None
            record.alignment_status = AlignmentStatus.UNALIGNED
            logger.debug(
                "extraction_unaligned",
                extraction_class=record.extraction_class,
                reason=e.message,
            )
        else:
            record.char_interval = CharInterval(start=match.start, end=match.end)
            record.token_interval = index.token_interval(match.start, match.end)
            record.alignment_status = match.status
            cursor = max(cursor, match.end)
            aligned += 1
        records_aligned_total.labels(status=record.alignment_status.value).inc()

    logger.info(
        "extractions_aligned",
        total=len(records),
        aligned=aligned,
        start_cursor=start_cursor,
        final_cursor=cursor,
    )
    return aligned


def _locate(
    text: str,
    index: SourceIndex,
    cursor: int,
    matchers: list[Matcher],
    scopes: list[MatchScope],
) -> MatchResult:
    if not text.strip():
        raise AlignmentFailure("extraction text is empty")
    for scope in scopes:
        for matcher in matchers:
            match = matcher.find(text, index, cursor, scope)
            if match is not None:
                logger.debug(
                    "extraction_matched",
                    matcher=matcher.name,
                    scope=scope.value,
                    start=match.start,
                    end=match.end,
                    status=match.status.value,
                    score=round(match.score, 4),
                )
                return match
    raise AlignmentFailure(f"no matcher located {text[:60]!r}")


def get_alignment_stats(records: list[ExtractionRecord]) -> AlignmentStats:
    """Pure aggregation; records never aligned count as unaligned."""
    stats = AlignmentStats(total=len(records))
    for record in records:
        status = record.alignment_status or AlignmentStatus.UNALIGNED
        if status == AlignmentStatus.EXACT:
            stats.exact += 1
        elif status == AlignmentStatus.FUZZY:
            stats.fuzzy += 1
        elif status == AlignmentStatus.LESSER:
            stats.lesser += 1
        elif status == AlignmentStatus.GREATER:
            stats.greater += 1
        else:
            stats.unaligned += 1
    return stats
