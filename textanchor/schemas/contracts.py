"""
Core extraction contracts.
ExtractionRecord is THE central schema: every chunk, pass and merge step
produces or consumes it. All offsets are Python str indices into the
original, unchunked source text.
"""

from typing import Optional

from pydantic import BaseModel, Field, model_validator

from textanchor.models.enums import AlignmentStatus, FormatType


class Chunk(BaseModel):
    """A bounded, offset-tagged substring of the source text."""
    text: str
    char_offset: int = Field(ge=0)
    char_length: int = Field(ge=0)
    chunk_index: int = 0
    exceeds_bound: bool = False

    @property
    def char_end(self) -> int:
        return self.char_offset + self.char_length


class CharInterval(BaseModel):
    """
    Half-open [start, end) interval in the source text.
    Both fields None means "not aligned".
    """
    start: Optional[int] = None
    end: Optional[int] = None

    @model_validator(mode="after")
    def _check_bounds(self) -> "CharInterval":
        if self.start is not None and self.end is not None:
            if self.start < 0 or self.start >= self.end:
                raise ValueError(
                    f"invalid interval [{self.start}, {self.end}): start must be >= 0 and < end"
                )
        return self

    @property
    def is_aligned(self) -> bool:
        return self.start is not None and self.end is not None

    @property
    def length(self) -> Optional[int]:
        if not self.is_aligned:
            return None
        return self.end - self.start

    def overlap(self, other: "CharInterval") -> int:
        """Number of characters shared with another interval."""
        if not (self.is_aligned and other.is_aligned):
            return 0
        return max(0, min(self.end, other.end) - max(self.start, other.start))


class TokenInterval(BaseModel):
    """Word-token positions derived from a CharInterval."""
    start_index: int = Field(ge=0)
    end_index: int = Field(ge=0)


class CandidateRecord(BaseModel):
    """An extracted class/text/attributes triple, not yet positioned."""
    extraction_class: str
    extraction_text: str
    description: Optional[str] = None
    attributes: dict[str, str] = {}
    group_index: Optional[int] = None


class ExtractionRecord(CandidateRecord):
    """
    A candidate plus its alignment against the source.

    Invariants:
    - alignment_status EXACT => source[start:end] == extraction_text
    - alignment_status UNALIGNED => char_interval is None
    - alignment_status None => alignment has not run yet
    """
    char_interval: Optional[CharInterval] = None
    alignment_status: Optional[AlignmentStatus] = None
    extraction_index: int = 0
    token_interval: Optional[TokenInterval] = None
    pass_index: int = 0

    @classmethod
    def from_candidate(
        cls,
        candidate: CandidateRecord,
        extraction_index: int = 0,
        pass_index: int = 0,
    ) -> "ExtractionRecord":
        return cls(
            **candidate.model_dump(),
            extraction_index=extraction_index,
            pass_index=pass_index,
        )

    @property
    def is_aligned(self) -> bool:
        return self.char_interval is not None and self.char_interval.is_aligned


class ValidationReport(BaseModel):
    """Outcome of parsing one raw model response. Always produced."""
    is_valid: bool = True
    errors: list[str] = []
    warnings: list[str] = []
    raw_output_reference: Optional[str] = None
    raw_text: str = ""
    format_detected: Optional[FormatType] = None
    record_count: int = 0


class AlignmentStats(BaseModel):
    """Read-only summary over a finished record collection."""
    total: int = 0
    exact: int = 0
    fuzzy: int = 0
    lesser: int = 0
    greater: int = 0
    unaligned: int = 0

    @property
    def aligned(self) -> int:
        return self.total - self.unaligned

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 1.0
        return self.aligned / self.total

    @property
    def exact_match_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.exact / self.total

    @property
    def quality_rate(self) -> float:
        """Fraction of EXACT/FUZZY among aligned records."""
        if self.aligned == 0:
            return 0.0
        return (self.exact + self.fuzzy) / self.aligned


class PassStats(BaseModel):
    """What one extraction pass did."""
    pass_number: int
    chunks_processed: int
    extraction_count: int       # records produced by this pass, before merging
    distinct_count: int         # merged total after this pass
    reprocess_count: int = 0    # low-yield chunks queued for the next pass
    duration_seconds: float = 0.0


class AnnotatedDocument(BaseModel):
    """Final result of running the pipeline over one document."""
    document_id: str
    text: str
    extractions: list[ExtractionRecord] = []
    alignment_stats: AlignmentStats = AlignmentStats()
    reports: list[ValidationReport] = []
    passes_run: int = 0
    pass_stats: list[PassStats] = []
