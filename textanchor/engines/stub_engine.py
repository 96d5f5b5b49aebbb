"""
Stub model engine for testing pipeline plumbing.
Serves canned responses, so the full chunk -> parse -> align -> merge flow
runs without a real model.
"""

from typing import Callable, Union

from textanchor.engines.base import EngineError, ModelEngine
from textanchor.schemas.contracts import Chunk

ResponseFn = Callable[[Chunk, int], str]


class StubEngine(ModelEngine):
    """
    Fake adapter returning predetermined responses.

    `responses` is either a callable (chunk, pass_number) -> str, or a list
    indexed by chunk_index (a str entry is reused for every pass, a list
    entry is indexed by pass number). Missing entries return `default`.
    An Exception entry is raised as an EngineError.
    """

    def __init__(
        self,
        responses: Union[ResponseFn, list, None] = None,
        default: str = '{"extractions": []}',
    ):
        self.responses = responses if responses is not None else []
        self.default = default
        self.calls: list[tuple[int, int]] = []

    @property
    def engine_name(self) -> str:
        return "stub"

    @property
    def engine_version(self) -> str:
        return "0.1.0"

    async def generate(self, chunk: Chunk, pass_number: int = 0) -> str:
        self.calls.append((chunk.chunk_index, pass_number))
        if callable(self.responses):
            response = self.responses(chunk, pass_number)
        else:
            response = self._lookup(chunk.chunk_index, pass_number)
        if isinstance(response, Exception):
            raise EngineError(self.engine_name, "ERR_STUB", str(response))
        return response

    def _lookup(self, chunk_index: int, pass_number: int) -> Union[str, Exception]:
        if chunk_index >= len(self.responses):
            return self.default
        entry = self.responses[chunk_index]
        if isinstance(entry, list):
            return entry[pass_number] if pass_number < len(entry) else self.default
        return entry

    async def health_check(self) -> bool:
        """Stub is always healthy."""
        return True
