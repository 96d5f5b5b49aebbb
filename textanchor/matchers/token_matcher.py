"""
Token-similarity tier.

Slides windows of source word tokens over a bounded region and scores
each window against the candidate with the Dice overlap of casefolded
word multisets: 2 * |C & W| / (|C| + |W|).

Only window sizes that can reach the threshold are tried:
    ceil(t * n / (2 - t)) <= w <= floor(n * (2 - t) / t)
and the upper bound is capped, so per-candidate cost stays linear in the
size of the search region.
"""

import math
from collections import Counter
from typing import Optional

from textanchor.matchers.base import Matcher, MatchResult
from textanchor.models.enums import AlignmentStatus, MatchScope
from textanchor.pipeline.text_index import SourceIndex, is_valid_span, token_norms


class TokenSimilarityMatcher(Matcher):

    def __init__(
        self,
        threshold: float,
        accept_match_lesser: bool = True,
        token_search_radius: int = 512,
        max_window_tokens: int = 128,
    ):
        self.threshold = threshold
        self.accept_match_lesser = accept_match_lesser
        self.token_search_radius = token_search_radius
        self.max_window_tokens = max_window_tokens

    @property
    def name(self) -> str:
        return "token"

    def window_sizes(self, n: int) -> range:
        """Window token counts that can still clear the threshold."""
        t = self.threshold
        smallest = max(1, math.ceil(t * n / (2 - t) - 1e-9))
        largest = math.floor(n * (2 - t) / t + 1e-9)
        largest = min(largest, max(self.max_window_tokens, n))
        if not self.accept_match_lesser:
            smallest = max(smallest, n)
        return range(smallest, largest + 1)

    def find(
        self,
        candidate: str,
        index: SourceIndex,
        cursor: int,
        scope: MatchScope,
    ) -> Optional[MatchResult]:
        wanted = Counter(token_norms(candidate))
        n = sum(wanted.values())
        if n == 0 or not index.tokens:
            return None

        sizes = self.window_sizes(n)
        if not sizes:
            return None

        if scope == MatchScope.NEAR:
            first = index.token_at(cursor)
            last = min(len(index.tokens), first + self.token_search_radius + sizes[-1])
        else:
            first, last = 0, len(index.tokens)

        best_key = None
        best_span = None
        for size in sizes:
            found = self._best_window(index, wanted, n, size, first, last)
            if found is None:
                continue
            key, span = found
            if best_key is None or key > best_key:
                best_key, best_span = key, span

        if best_key is None or best_key[0] < self.threshold:
            return None

        score = best_key[0]
        start_tok, size = best_span
        start = index.tokens[start_tok].start
        end = index.tokens[start_tok + size - 1].end
        return MatchResult(
            start=start,
            end=end,
            status=self._status(size, n),
            score=score,
        )

    def _best_window(
        self,
        index: SourceIndex,
        wanted: Counter,
        n: int,
        size: int,
        first: int,
        last: int,
    ) -> Optional[tuple[tuple, tuple[int, int]]]:
        """
        Best window of exactly `size` tokens in [first, last).
        Ranking key: higher score, then earlier start, then size closer to n.
        """
        if last - first < size:
            return None

        norms = index.norms
        window: Counter = Counter(norms[first:first + size])
        common = sum(min(count, wanted[tok]) for tok, count in window.items() if tok in wanted)

        best = None
        start = first
        while True:
            edges_match = norms[start] in wanted and norms[start + size - 1] in wanted
            if edges_match:
                score = 2 * common / (n + size)
                key = (score, -start, -abs(size - n))
                if best is None or key > best[0]:
                    span_start = index.tokens[start].start
                    span_end = index.tokens[start + size - 1].end
                    if is_valid_span(index.text, span_start, span_end):
                        best = (key, (start, size))

            if start + size >= last:
                break
            # Slide one token: drop norms[start], add norms[start + size]
            out_tok, in_tok = norms[start], norms[start + size]
            if window[out_tok] <= wanted.get(out_tok, 0):
                common -= 1
            window[out_tok] -= 1
            if window[in_tok] < wanted.get(in_tok, 0):
                common += 1
            window[in_tok] += 1
            start += 1

        return best

    def _status(self, size: int, n: int) -> AlignmentStatus:
        if size < n:
            return AlignmentStatus.LESSER
        if size > n:
            return AlignmentStatus.GREATER
        # Identical text is the exact tier's to report
        return AlignmentStatus.FUZZY
