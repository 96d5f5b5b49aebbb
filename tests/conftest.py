"""
Shared test fixtures.
"""

from typing import Optional

import pytest

from textanchor.config import settings
from textanchor.models.enums import AlignmentStatus
from textanchor.schemas.contracts import CharInterval, ExtractionRecord
from textanchor.storage.artifact_store import ArtifactStore


PRODUCT_SOURCE = "Apple MacBook Pro costs $3,999.00 with model MBP-001"


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep raw outputs inside the test's tmp dir and persistence opt-in."""
    monkeypatch.setattr(settings, "ARTIFACT_ROOT", str(tmp_path / "raw_outputs"))
    monkeypatch.setattr(settings, "DEBUG", False)
    monkeypatch.setattr(settings, "SAVE_RAW_OUTPUTS", False)


@pytest.fixture
def artifact_store(tmp_path):
    return ArtifactStore(root=str(tmp_path / "store"))


@pytest.fixture
def product_source():
    return PRODUCT_SOURCE


@pytest.fixture
def product_records():
    """Candidates for the product scenario, in source order."""
    return [
        ExtractionRecord(extraction_class="product", extraction_text="Apple MacBook Pro"),
        ExtractionRecord(extraction_class="price", extraction_text="$3,999.00"),
        ExtractionRecord(extraction_class="model", extraction_text="MBP-001"),
    ]


@pytest.fixture
def product_response():
    """A well-formed model response for the product scenario."""
    return (
        '```json\n'
        '{"extractions": [\n'
        '  {"product": "Apple MacBook Pro", "product_attributes": {"brand": "Apple"}},\n'
        '  {"price": "$3,999.00"},\n'
        '  {"model": "MBP-001"}\n'
        ']}\n'
        '```'
    )


@pytest.fixture
def make_record():
    """Factory for already-aligned records."""

    def _make(
        extraction_class: str,
        text: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
        status: Optional[AlignmentStatus] = AlignmentStatus.EXACT,
        pass_index: int = 0,
        **kwargs,
    ) -> ExtractionRecord:
        interval = CharInterval(start=start, end=end) if start is not None else None
        if interval is None and status == AlignmentStatus.EXACT:
            status = AlignmentStatus.UNALIGNED
        return ExtractionRecord(
            extraction_class=extraction_class,
            extraction_text=text,
            char_interval=interval,
            alignment_status=status,
            pass_index=pass_index,
            **kwargs,
        )

    return _make
