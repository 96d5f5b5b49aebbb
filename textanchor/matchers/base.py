"""
Abstract base class for alignment matchers.
The aligner tries matchers in order; the first definite match wins.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel

from textanchor.models.enums import AlignmentStatus, MatchScope
from textanchor.pipeline.text_index import SourceIndex


class MatchResult(BaseModel):
    """A located span in the source text."""
    start: int
    end: int
    status: AlignmentStatus
    score: float = 1.0


class Matcher(ABC):
    """
    One tier of the alignment chain.

    Every matcher must:
    1. Return a MatchResult whose span sits on character boundaries
    2. Return None when it has no definite match (never raise)
    3. Search forward from the cursor in NEAR scope, anywhere in DOCUMENT scope
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in logs: 'exact', 'normalized', 'token'."""
        ...

    @abstractmethod
    def find(
        self,
        candidate: str,
        index: SourceIndex,
        cursor: int,
        scope: MatchScope,
    ) -> Optional[MatchResult]:
        ...
