"""
Abstract base class for language-model engines.
An engine turns one chunk into one raw response string; everything after
that (parsing, alignment, merging) happens in the pipeline.
"""

from abc import ABC, abstractmethod

from textanchor.schemas.contracts import Chunk


class ModelEngine(ABC):
    """
    Abstract base class for all model engines.

    Every engine must:
    1. Accept a chunk and the pass number
    2. Return the model's raw response text, unparsed
    3. Report its name and version
    4. Handle errors gracefully (raise EngineError, never crash)

    Transport, prompting, auth and retries live inside the engine.
    """

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Unique identifier: 'openai', 'ollama', 'stub'"""
        ...

    @property
    @abstractmethod
    def engine_version(self) -> str:
        """Model or API version string."""
        ...

    @abstractmethod
    async def generate(self, chunk: Chunk, pass_number: int = 0) -> str:
        """
        Produce the raw response for one chunk.
        Must raise EngineError on failure (never return partial data).
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify engine is available and responding."""
        ...


class EngineError(Exception):
    """Raised when a model engine fails."""

    def __init__(self, engine_name: str, error_code: str, message: str):
        self.engine_name = engine_name
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{engine_name}] {error_code}: {message}")
