"""
Pipeline orchestrator: runs extraction passes over a chunked document.

Stages per pass: GENERATE -> PARSE -> ALIGN (per chunk, bounded
concurrency) -> MERGE (all chunks and passes so far). Passes repeat
until the early-stop policy says the result is good enough; the first
pass covers every chunk, later passes only the low-yield ones.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Optional

import structlog

from textanchor.config import settings
from textanchor.engines.base import EngineError, ModelEngine
from textanchor.exceptions import ConfigurationError
from textanchor.observability.metrics import chunk_processing_duration_seconds, extraction_passes_total
from textanchor.pipeline.aligner import AlignmentConfig, align_extractions, get_alignment_stats
from textanchor.pipeline.chunker import ChunkingConfig, chunk_text
from textanchor.pipeline.pass_merger import MergeConfig, merge_passes, should_request_pass
from textanchor.pipeline.resolver import validate_and_parse
from textanchor.schemas.contracts import (
    AnnotatedDocument,
    Chunk,
    ExtractionRecord,
    PassStats,
    ValidationReport,
)
from textanchor.storage.artifact_store import ArtifactStore

logger = structlog.get_logger(__name__)


@dataclass
class ChunkOutcome:
    """Everything one chunk produced in one pass."""
    chunk: Chunk
    records: list[ExtractionRecord]
    report: ValidationReport


class ExtractionPipeline:
    """
    Main extraction pipeline.
    Chunks the source, asks the engine about each chunk, and reconciles the
    answers with the source text.
    """

    def __init__(
        self,
        engine: ModelEngine,
        chunking: Optional[ChunkingConfig] = None,
        alignment: Optional[AlignmentConfig] = None,
        merge: Optional[MergeConfig] = None,
        store: Optional[ArtifactStore] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.engine = engine
        self.chunking = chunking or ChunkingConfig()
        self.alignment = alignment or AlignmentConfig()
        self.merge = merge or MergeConfig()
        self.store = store or ArtifactStore(root=settings.ARTIFACT_ROOT)
        self.max_concurrency = max_concurrency or settings.MAX_CONCURRENCY
        if self.max_concurrency < 1:
            raise ConfigurationError(
                f"max_concurrency must be >= 1, got {self.max_concurrency}"
            )

    async def run(
        self,
        source_text: str,
        expected_fields: Optional[list[str]] = None,
        document_id: Optional[str] = None,
    ) -> AnnotatedDocument:
        """
        Main entry point: extract and align records for one document.
        Failures stay local to a chunk or record and show up in the
        reports and alignment statuses.
        """
        document_id = document_id or str(uuid.uuid4())
        started_at = time.time()
        expected = list(expected_fields or [])

        logger.info(
            "pipeline_started",
            document_id=document_id,
            engine=self.engine.engine_name,
            text_length=len(source_text),
        )

        chunks = chunk_text(source_text, self.chunking)
        if not chunks:
            logger.info("pipeline_complete", document_id=document_id, passes_run=0, extractions=0)
            return AnnotatedDocument(document_id=document_id, text=source_text)

        pass_results: list[list[ExtractionRecord]] = []
        reports: list[ValidationReport] = []
        pass_stats: list[PassStats] = []
        merged: list[ExtractionRecord] = []
        passes_run = 0
        pending = chunks

        while True:
            pass_started = time.perf_counter()
            outcomes = await self._run_pass(pending, source_text, expected, passes_run)
            # Explicit sort: completion order of the workers must not matter
            outcomes.sort(key=lambda o: (o.chunk.char_offset, o.chunk.chunk_index))

            pass_records = [r for o in outcomes for r in o.records]
            pass_results.append(pass_records)
            reports.extend(o.report for o in outcomes)
            passes_run += 1
            extraction_passes_total.inc()

            merged = merge_passes(pass_results, self.merge)
            decision = should_request_pass(merged, passes_run, self.merge)
            pending = self._chunks_to_reprocess(outcomes, chunks) if decision.request_more else []
            request_more = decision.request_more and bool(pending)
            reason = decision.reason
            if decision.request_more and not pending:
                reason = "no_low_yield_chunks"

            pass_stats.append(PassStats(
                pass_number=passes_run - 1,
                chunks_processed=len(outcomes),
                extraction_count=len(pass_records),
                distinct_count=decision.distinct_count,
                reprocess_count=len(pending),
                duration_seconds=time.perf_counter() - pass_started,
            ))
            logger.info(
                "extraction_pass_complete",
                document_id=document_id,
                pass_number=passes_run - 1,
                chunks_processed=len(outcomes),
                distinct_count=decision.distinct_count,
                quality_score=round(decision.quality_score, 4),
                request_more=request_more,
                next_chunks=len(pending),
                reason=reason,
            )
            if not request_more:
                break

        stats = get_alignment_stats(merged)
        logger.info(
            "pipeline_complete",
            document_id=document_id,
            passes_run=passes_run,
            chunk_count=len(chunks),
            extractions=len(merged),
            success_rate=round(stats.success_rate, 4),
            duration_ms=int((time.time() - started_at) * 1000),
        )
        return AnnotatedDocument(
            document_id=document_id,
            text=source_text,
            extractions=merged,
            alignment_stats=stats,
            reports=reports,
            passes_run=passes_run,
            pass_stats=pass_stats,
        )

    def _chunks_to_reprocess(
        self,
        outcomes: list[ChunkOutcome],
        all_chunks: list[Chunk],
    ) -> list[Chunk]:
        """
        Chunks for the next pass. With targeted reprocessing only the
        low-yield chunks of this pass go again, in document order and at
        most max_reprocess_chunks of them.
        """
        if not self.merge.targeted_reprocessing:
            return all_chunks
        low_yield = [
            o.chunk for o in outcomes
            if len(o.records) < self.merge.min_extractions_per_chunk
        ]
        return low_yield[:self.merge.max_reprocess_chunks]

    async def _run_pass(
        self,
        chunks: list[Chunk],
        source_text: str,
        expected: list[str],
        pass_number: int,
    ) -> list[ChunkOutcome]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def worker(chunk: Chunk) -> ChunkOutcome:
            async with semaphore:
                return await self._process_chunk(chunk, source_text, expected, pass_number)

        return list(await asyncio.gather(*(worker(c) for c in chunks)))

    async def _process_chunk(
        self,
        chunk: Chunk,
        source_text: str,
        expected: list[str],
        pass_number: int,
    ) -> ChunkOutcome:
        started = time.perf_counter()
        try:
            raw = await self.engine.generate(chunk, pass_number)
        except EngineError as e:
            logger.warning(
                "engine_failed",
                engine=e.engine_name,
                error_code=e.error_code,
                error=e.message,
                chunk_index=chunk.chunk_index,
                pass_number=pass_number,
            )
            report = ValidationReport(
                is_valid=False,
                errors=[f"{e.error_code}: {e.message}"],
            )
            return ChunkOutcome(chunk=chunk, records=[], report=report)

        candidates, report = validate_and_parse(raw, expected, store=self.store)
        records = [
            ExtractionRecord.from_candidate(c, extraction_index=i, pass_index=pass_number)
            for i, c in enumerate(candidates)
        ]
        # Align against the full source; the chunk offset only seeds the cursor
        align_extractions(records, source_text, start_cursor=chunk.char_offset, config=self.alignment)

        chunk_processing_duration_seconds.observe(time.perf_counter() - started)
        logger.debug(
            "chunk_processed",
            chunk_index=chunk.chunk_index,
            pass_number=pass_number,
            records=len(records),
            is_valid=report.is_valid,
        )
        return ChunkOutcome(chunk=chunk, records=records, report=report)
