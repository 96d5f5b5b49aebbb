"""
Tests for settings and logging setup.
"""

import logging

import structlog

from textanchor.config import Settings
from textanchor.observability.logging import setup_logging, truncate_long_values
from textanchor.pipeline.aligner import AlignmentConfig
from textanchor.pipeline.chunker import ChunkingConfig


class TestSettings:

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CHUNK_MAX_CHARS", "500")
        monkeypatch.setenv("ALIGN_FUZZY_THRESHOLD", "0.9")
        fresh = Settings()
        assert fresh.CHUNK_MAX_CHARS == 500
        assert fresh.ALIGN_FUZZY_THRESHOLD == 0.9

    def test_component_defaults_follow_settings(self, monkeypatch):
        from textanchor.config import settings
        monkeypatch.setattr(settings, "CHUNK_MAX_CHARS", 123)
        monkeypatch.setattr(settings, "ALIGN_ENABLE_FALLBACK", False)
        assert ChunkingConfig().max_chunk_size == 123
        assert AlignmentConfig().enable_fallback is False


class TestSetupLogging:

    def test_level_and_handler(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging("warning", json_logs=True)
            assert root.level == logging.WARNING
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)
            assert structlog.contextvars.get_contextvars()["service"] == "textanchor"
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
            structlog.contextvars.clear_contextvars()
            structlog.reset_defaults()


class TestTruncateLongValues:

    def test_long_strings_clipped(self, monkeypatch):
        from textanchor.config import settings
        monkeypatch.setattr(settings, "LOG_MAX_VALUE_CHARS", 10)
        event = truncate_long_values(None, "info", {
            "event": "response_parsed_with_a_long_name",
            "raw": "x" * 25,
            "count": 3,
        })
        assert event["event"] == "response_parsed_with_a_long_name"
        assert event["raw"] == "xxxxxxxxxx... [15 more chars]"
        assert event["count"] == 3

    def test_disabled(self, monkeypatch):
        from textanchor.config import settings
        monkeypatch.setattr(settings, "LOG_MAX_VALUE_CHARS", 0)
        event = truncate_long_values(None, "info", {"event": "e", "raw": "x" * 2000})
        assert len(event["raw"]) == 2000
