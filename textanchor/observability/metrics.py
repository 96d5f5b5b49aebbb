"""
Prometheus metrics for the grounded extraction core.
"""

from prometheus_client import Counter, Histogram


# ── Chunking ─────────────────────────────────────────────────
chunks_produced_total = Counter(
    "textanchor_chunks_produced_total",
    "Total chunks produced from source documents",
    ["strategy"],
)

oversized_chunks_total = Counter(
    "textanchor_oversized_chunks_total",
    "Chunks emitted above the size bound because a unit was indivisible",
)

# ── Response Parsing ─────────────────────────────────────────
responses_parsed_total = Counter(
    "textanchor_responses_parsed_total",
    "Raw model responses parsed, by outcome",
    ["outcome"],  # valid, recovered, failed
)

raw_outputs_persisted_total = Counter(
    "textanchor_raw_outputs_persisted_total",
    "Raw model responses written to storage, by outcome",
    ["outcome"],  # saved, failed
)

# ── Alignment ────────────────────────────────────────────────
records_aligned_total = Counter(
    "textanchor_records_aligned_total",
    "Records processed by the aligner, by alignment status",
    ["status"],
)

# ── Multi-pass Merge ─────────────────────────────────────────
duplicates_dropped_total = Counter(
    "textanchor_duplicates_dropped_total",
    "Records dropped as duplicates while merging passes",
)

extraction_passes_total = Counter(
    "textanchor_extraction_passes_total",
    "Extraction passes executed by the pipeline",
)

chunk_processing_duration_seconds = Histogram(
    "textanchor_chunk_processing_duration_seconds",
    "Time to invoke, parse and align a single chunk",
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30, 60],
)
