"""
Python enums shared across the extraction core.
Values are the serialized form used in reports and metrics labels.
"""

from enum import Enum


class AlignmentStatus(str, Enum):
    EXACT = "EXACT"
    FUZZY = "FUZZY"
    LESSER = "LESSER"
    GREATER = "GREATER"
    UNALIGNED = "UNALIGNED"

    @property
    def rank(self) -> int:
        """Confidence rank used when choosing between duplicates."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    AlignmentStatus.EXACT: 3,
    AlignmentStatus.FUZZY: 2,
    AlignmentStatus.GREATER: 1,
    AlignmentStatus.LESSER: 1,
    AlignmentStatus.UNALIGNED: 0,
}


class ChunkingStrategy(str, Enum):
    SEMANTIC = "semantic"
    # Legacy sentence-only packing, kept for compatibility
    SENTENCE = "sentence"


class FormatType(str, Enum):
    """Serialized encodings accepted from the model."""
    JSON = "json"
    YAML = "yaml"


class MatchScope(str, Enum):
    """Where a matcher may look relative to the alignment cursor."""
    NEAR = "near"
    DOCUMENT = "document"
