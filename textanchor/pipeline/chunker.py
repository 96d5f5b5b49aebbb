"""
Source text chunking.
Splits a document into bounded, offset-tagged chunks without breaking
paragraphs, sentences or clauses unless a single unit is over the bound.
"""

import re
from typing import Optional

import structlog
from pydantic import BaseModel, Field, field_validator, model_validator

from textanchor.config import settings
from textanchor.exceptions import ChunkingError, ConfigurationError
from textanchor.models.enums import ChunkingStrategy
from textanchor.observability.metrics import chunks_produced_total, oversized_chunks_total
from textanchor.pipeline.text_index import is_char_boundary, next_boundary, previous_boundary
from textanchor.schemas.contracts import Chunk

logger = structlog.get_logger(__name__)


# ── Unit Boundaries ──────────────────────────────────────────
# Separators stay attached to the unit they close.

PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
SENTENCE_BREAK = re.compile(r"[.!?]+[\"')\]]*\s+")
CLAUSE_BREAK = re.compile(r"[,;:]\s+")

SEMANTIC_LEVELS = [PARAGRAPH_BREAK, SENTENCE_BREAK, CLAUSE_BREAK]
SENTENCE_LEVELS = [SENTENCE_BREAK]


class ChunkingConfig(BaseModel):
    max_chunk_size: int = Field(default_factory=lambda: settings.CHUNK_MAX_CHARS)
    overlap: int = Field(default_factory=lambda: settings.CHUNK_OVERLAP_CHARS)
    strategy: ChunkingStrategy = Field(
        default_factory=lambda: _parse_strategy(settings.CHUNK_STRATEGY)
    )
    # Raise instead of emitting an oversized chunk
    strict_bound: bool = False

    @field_validator("strategy", mode="before")
    @classmethod
    def _coerce_strategy(cls, value):
        return _parse_strategy(value)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChunkingConfig":
        if self.max_chunk_size < 1:
            raise ConfigurationError(
                f"max_chunk_size must be >= 1, got {self.max_chunk_size}"
            )
        if self.overlap < 0:
            raise ConfigurationError(f"overlap must be >= 0, got {self.overlap}")
        if self.overlap >= self.max_chunk_size:
            raise ConfigurationError(
                f"overlap ({self.overlap}) must be smaller than "
                f"max_chunk_size ({self.max_chunk_size})"
            )
        return self


def _parse_strategy(value) -> ChunkingStrategy:
    if isinstance(value, ChunkingStrategy):
        return value
    try:
        return ChunkingStrategy(str(value).lower())
    except ValueError:
        raise ConfigurationError(f"unknown chunking strategy: {value!r}") from None


def chunk_text(source_text: str, config: Optional[ChunkingConfig] = None) -> list[Chunk]:
    """
    Split source_text into ordered chunks.

    Chunks are contiguous and cover the whole text. With overlap > 0,
    every chunk after the first also repeats up to `overlap` characters
    of its predecessor. Offsets are absolute into source_text.
    """
    config = config or ChunkingConfig()
    if not source_text:
        return []

    if config.strategy == ChunkingStrategy.SENTENCE:
        logger.warning(
            "deprecated_chunking_strategy",
            strategy=config.strategy.value,
            replacement=ChunkingStrategy.SEMANTIC.value,
        )
        levels = SENTENCE_LEVELS
    else:
        levels = SEMANTIC_LEVELS

    if len(source_text) <= config.max_chunk_size:
        spans = [(0, len(source_text))]
    else:
        budget = config.max_chunk_size - config.overlap
        atoms = _atomize(source_text, 0, len(source_text), levels, 0, budget)
        spans = _pack(atoms, budget)
        if config.overlap:
            spans = _apply_overlap(source_text, spans, config.overlap)

    chunks = []
    for index, (start, end) in enumerate(spans):
        length = end - start
        oversized = length > config.max_chunk_size
        if oversized:
            if config.strict_bound:
                raise ChunkingError(
                    f"chunk at offset {start} needs {length} chars, "
                    f"bound is {config.max_chunk_size}"
                )
            oversized_chunks_total.inc()
            logger.warning(
                "chunk_exceeds_bound",
                chunk_index=index,
                char_offset=start,
                char_length=length,
                max_chunk_size=config.max_chunk_size,
            )
        chunks.append(Chunk(
            text=source_text[start:end],
            char_offset=start,
            char_length=length,
            chunk_index=index,
            exceeds_bound=oversized,
        ))

    chunks_produced_total.labels(strategy=config.strategy.value).inc(len(chunks))
    logger.info(
        "text_chunked",
        strategy=config.strategy.value,
        text_length=len(source_text),
        chunk_count=len(chunks),
    )
    return chunks


# ── Internals ────────────────────────────────────────────────

def _atomize(
    text: str,
    start: int,
    end: int,
    levels: list[re.Pattern],
    level: int,
    budget: int,
) -> list[tuple[int, int]]:
    """
    Break [start, end) into units no longer than budget, descending
    paragraph -> sentence -> clause -> character only where needed.
    """
    if end - start <= budget:
        return [(start, end)]
    if level >= len(levels):
        return _hard_split(text, start, end, budget)

    cuts = [
        m.end() for m in levels[level].finditer(text, start, end)
        if start < m.end() < end and is_char_boundary(text, m.end())
    ]
    if not cuts:
        return _atomize(text, start, end, levels, level + 1, budget)

    atoms = []
    bounds = [start] + cuts + [end]
    for piece_start, piece_end in zip(bounds, bounds[1:]):
        atoms.extend(_atomize(text, piece_start, piece_end, levels, level + 1, budget))
    return atoms


def _hard_split(text: str, start: int, end: int, budget: int) -> list[tuple[int, int]]:
    pieces = []
    pos = start
    while pos < end:
        cut = min(pos + budget, end)
        cut = previous_boundary(text, cut, floor=pos)
        if cut == pos:
            # A single grapheme longer than the budget
            cut = min(next_boundary(text, pos + 1), end)
        pieces.append((pos, cut))
        pos = cut
    return pieces


def _pack(atoms: list[tuple[int, int]], budget: int) -> list[tuple[int, int]]:
    spans = []
    current_start, current_end = atoms[0]
    for atom_start, atom_end in atoms[1:]:
        if atom_end - current_start <= budget:
            current_end = atom_end
        else:
            spans.append((current_start, current_end))
            current_start, current_end = atom_start, atom_end
    spans.append((current_start, current_end))
    return spans


def _apply_overlap(text: str, spans: list[tuple[int, int]], overlap: int) -> list[tuple[int, int]]:
    extended = [spans[0]]
    for start, end in spans[1:]:
        extended.append((next_boundary(text, max(0, start - overlap)), end))
    return extended
