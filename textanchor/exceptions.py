"""
Error taxonomy for the extraction core.

Only ConfigurationError escapes to callers. Every other error is raised
and caught inside the core, then surfaced through a ValidationReport,
an AlignmentStatus or a log event.
"""

from typing import Optional


class CoreError(Exception):
    """Base error for the extraction core."""

    error_code = "ERR_CORE"

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)


class ConfigurationError(CoreError):
    """Malformed configuration detected before any text is processed."""

    error_code = "ERR_CONFIG"


class ChunkingError(CoreError):
    """Size bound is smaller than an indivisible unit of text."""

    error_code = "ERR_CHUNK_BOUND"


class ParseError(CoreError):
    """Raw model output could not be parsed as a structured document."""

    error_code = "ERR_PARSE"


class AlignmentFailure(CoreError):
    """No matcher tier located a candidate in the source text."""

    error_code = "ERR_UNALIGNED"


class PersistenceError(CoreError):
    """Raw model output could not be written to storage."""

    error_code = "ERR_PERSIST"
