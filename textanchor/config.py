"""
Application configuration using pydantic-settings.
All settings read from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration for the grounded extraction core."""

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "textanchor"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    # String values longer than this are clipped in log events; 0 disables
    LOG_MAX_VALUE_CHARS: int = 500

    # ── Raw Output Storage ───────────────────────────────────
    ARTIFACT_ROOT: str = "./raw_outputs"
    # Persist every raw model response, not only the ones that fail to parse
    SAVE_RAW_OUTPUTS: bool = False

    # ── Chunking ─────────────────────────────────────────────
    CHUNK_MAX_CHARS: int = 2000
    CHUNK_OVERLAP_CHARS: int = 0
    CHUNK_STRATEGY: str = "semantic"

    # ── Alignment ────────────────────────────────────────────
    ALIGN_ENABLE_FUZZY: bool = True
    ALIGN_FUZZY_THRESHOLD: float = 0.70
    ALIGN_ACCEPT_LESSER: bool = True
    ALIGN_ENABLE_FALLBACK: bool = True
    ALIGN_SEARCH_WINDOW_CHARS: int = 4000
    ALIGN_TOKEN_SEARCH_RADIUS: int = 512
    ALIGN_MAX_WINDOW_TOKENS: int = 128

    # ── Validation ───────────────────────────────────────────
    VALIDATION_MAX_TEXT_CHARS: int = 1000

    # ── Multi-pass Merge ─────────────────────────────────────
    MERGE_OVERLAP_FRACTION: float = 0.5
    MERGE_MIN_RECORD_QUALITY: float = 0.0
    PASS_MAX: int = 3
    PASS_MIN_EXTRACTIONS: int = 1
    PASS_QUALITY_THRESHOLD: float = 0.80
    # Later passes revisit only chunks with fewer records than the per-chunk minimum
    PASS_TARGETED_REPROCESSING: bool = True
    PASS_MIN_EXTRACTIONS_PER_CHUNK: int = 1
    PASS_MAX_REPROCESS_CHUNKS: int = 10

    # ── Concurrency ──────────────────────────────────────────
    MAX_CONCURRENCY: int = 4

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


# Singleton instance
settings = Settings()
