"""
Text indexing helpers shared by the matcher tiers.

Python str indices address Unicode scalar values, so a slice can never cut
a code point in half. A span can still split a user-perceived character
(base letter + combining mark, or a ZWJ emoji sequence); is_char_boundary
treats those positions as invalid.
"""

import bisect
import re
import unicodedata
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from textanchor.schemas.contracts import TokenInterval

_WORD_RE = re.compile(r"\w+")
_MARK_CATEGORIES = ("Mn", "Mc", "Me")
_JOINERS = ("\u200d", "\ufe0e", "\ufe0f")


# ── Boundaries ──────────────────────────────────────────────

def _is_mark(ch: str) -> bool:
    return unicodedata.category(ch) in _MARK_CATEGORIES or ch in _JOINERS


def is_char_boundary(text: str, pos: int) -> bool:
    """True if pos does not fall inside a grapheme of text."""
    if pos <= 0 or pos >= len(text):
        return True
    if _is_mark(text[pos]):
        return False
    return text[pos - 1] != "\u200d"


def is_valid_span(text: str, start: int, end: int) -> bool:
    return (
        0 <= start < end <= len(text)
        and is_char_boundary(text, start)
        and is_char_boundary(text, end)
    )


def previous_boundary(text: str, pos: int, floor: int = 0) -> int:
    """Closest boundary at or before pos, never below floor."""
    while pos > floor and not is_char_boundary(text, pos):
        pos -= 1
    return pos


def next_boundary(text: str, pos: int) -> int:
    """Closest boundary at or after pos."""
    while pos < len(text) and not is_char_boundary(text, pos):
        pos += 1
    return pos


# ── Normalization ───────────────────────────────────────────

def normalize_text(text: str) -> str:
    """Casefold and collapse whitespace runs to single spaces."""
    return " ".join(text.casefold().split())


@dataclass
class NormalizedText:
    """
    Normalized form of a source with a map back to original offsets.
    starts[i] / ends[i] give the source span that produced character i.
    """
    text: str
    starts: list[int]
    ends: list[int]

    def source_span(self, start: int, end: int) -> tuple[int, int]:
        """Map a normalized [start, end) back to the source."""
        return self.starts[start], self.ends[end - 1]

    def position_of(self, source_pos: int) -> int:
        """First normalized index whose source span starts at or after source_pos."""
        return bisect.bisect_left(self.starts, source_pos)


def normalize_with_offsets(text: str) -> NormalizedText:
    out: list[str] = []
    starts: list[int] = []
    ends: list[int] = []
    in_space = False

    for i, ch in enumerate(text):
        if ch.isspace():
            if in_space:
                ends[-1] = i + 1
            elif out:
                out.append(" ")
                starts.append(i)
                ends.append(i + 1)
                in_space = True
            continue
        in_space = False
        for folded in ch.casefold():
            out.append(folded)
            starts.append(i)
            ends.append(i + 1)

    if out and out[-1] == " ":
        out.pop()
        starts.pop()
        ends.pop()

    return NormalizedText(text="".join(out), starts=starts, ends=ends)


# ── Tokens ──────────────────────────────────────────────────

@dataclass
class Token:
    text: str
    start: int
    end: int

    @property
    def norm(self) -> str:
        return self.text.casefold()


def tokenize(text: str) -> list[Token]:
    """
    Word tokens with source offsets.
    Combining marks are folded into the word they decorate, so a token
    never ends inside a grapheme.
    """
    tokens: list[Token] = []
    for match in _WORD_RE.finditer(text):
        start, end = match.start(), match.end()
        while end < len(text) and _is_mark(text[end]):
            end += 1
        if tokens and tokens[-1].end == start:
            prev = tokens.pop()
            start = prev.start
        tokens.append(Token(text=text[start:end], start=start, end=end))
    return tokens


def token_norms(text: str) -> list[str]:
    return [t.norm for t in tokenize(text)]


# ── Source Index ────────────────────────────────────────────

@dataclass
class SourceIndex:
    """
    Precomputed views of one source text.
    Built once per alignment run and never shared across runs.
    """
    text: str
    normalized: NormalizedText = field(init=False)
    tokens: list[Token] = field(init=False)
    norms: list[str] = field(init=False, repr=False)
    _token_ends: list[int] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.normalized = normalize_with_offsets(self.text)
        self.tokens = tokenize(self.text)
        self.norms = [t.norm for t in self.tokens]
        self._token_ends = [t.end for t in self.tokens]

    def token_at(self, pos: int) -> int:
        """Index of the first token ending after pos."""
        return bisect.bisect_right(self._token_ends, pos)

    def token_interval(self, start: int, end: int) -> Optional[TokenInterval]:
        """Tokens overlapping [start, end), or None if the span has no words."""
        first = self.token_at(start)
        last = first
        while last < len(self.tokens) and self.tokens[last].start < end:
            last += 1
        if last == first:
            return None
        return TokenInterval(start_index=first, end_index=last)


def token_overlap(candidate: str, span: str) -> float:
    """Dice overlap of the casefolded word multisets of two strings."""
    a, b = Counter(token_norms(candidate)), Counter(token_norms(span))
    total = sum(a.values()) + sum(b.values())
    if total == 0:
        return 0.0
    return 2 * sum((a & b).values()) / total
