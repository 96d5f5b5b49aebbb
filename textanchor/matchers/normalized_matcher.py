"""
Normalized tier: literal search after casefolding and collapsing whitespace
on both sides, mapped back to source offsets.
"""

from typing import Optional

from textanchor.matchers.base import Matcher, MatchResult
from textanchor.models.enums import AlignmentStatus, MatchScope
from textanchor.pipeline.text_index import SourceIndex, is_valid_span, normalize_text


class NormalizedMatcher(Matcher):

    def __init__(self, search_window_chars: int):
        self.search_window_chars = search_window_chars

    @property
    def name(self) -> str:
        return "normalized"

    def find(
        self,
        candidate: str,
        index: SourceIndex,
        cursor: int,
        scope: MatchScope,
    ) -> Optional[MatchResult]:
        needle = normalize_text(candidate)
        if not needle:
            return None

        normalized = index.normalized
        if scope == MatchScope.NEAR:
            window = max(self.search_window_chars, 4 * len(candidate))
            lo = normalized.position_of(cursor)
            hi = normalized.position_of(cursor + window)
        else:
            lo, hi = 0, len(normalized.text)

        pos = normalized.text.find(needle, lo, hi)
        while pos != -1:
            start, end = normalized.source_span(pos, pos + len(needle))
            if is_valid_span(index.text, start, end):
                return MatchResult(start=start, end=end, status=AlignmentStatus.FUZZY)
            pos = normalized.text.find(needle, pos + 1, hi)
        return None
