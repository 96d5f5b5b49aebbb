"""
Exact tier: the candidate text appears verbatim in the source.
"""

from typing import Optional

from textanchor.matchers.base import Matcher, MatchResult
from textanchor.models.enums import AlignmentStatus, MatchScope
from textanchor.pipeline.text_index import SourceIndex, is_valid_span


class ExactMatcher(Matcher):

    @property
    def name(self) -> str:
        return "exact"

    def find(
        self,
        candidate: str,
        index: SourceIndex,
        cursor: int,
        scope: MatchScope,
    ) -> Optional[MatchResult]:
        if not candidate:
            return None
        source = index.text
        pos = source.find(candidate, cursor if scope == MatchScope.NEAR else 0)
        while pos != -1:
            end = pos + len(candidate)
            if is_valid_span(source, pos, end):
                return MatchResult(start=pos, end=end, status=AlignmentStatus.EXACT)
            # Occurrence splits a grapheme; keep looking
            pos = source.find(candidate, pos + 1)
        return None
