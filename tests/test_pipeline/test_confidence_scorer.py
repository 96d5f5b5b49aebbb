"""
Tests for record and pass quality scoring.
"""

import pytest

from textanchor.models.enums import AlignmentStatus
from textanchor.pipeline.confidence_scorer import pass_quality_score, score_extraction


class TestScoreExtraction:

    def test_exact_clamped_to_one(self, make_record):
        assert score_extraction(make_record("p", "Apple MacBook Pro", 0, 17)) == 1.0

    def test_single_char_unaligned(self, make_record):
        record = make_record("p", "x", status=AlignmentStatus.UNALIGNED)
        # 0.5 - 0.2 + 0.1 - 0.3
        assert score_extraction(record) == pytest.approx(0.1)

    def test_greater_numeric(self, make_record):
        record = make_record("p", "12", 0, 2, AlignmentStatus.GREATER)
        # 0.5 + 0.2 - 0.05 + 0.05
        assert score_extraction(record) == pytest.approx(0.7)

    def test_long_text_penalised(self, make_record):
        record = make_record("p", "a" * 150, 0, 150, AlignmentStatus.FUZZY)
        # 0.5 - 0.1 + 0.1 + 0.1
        assert score_extraction(record) == pytest.approx(0.6)

    def test_never_aligned_treated_as_unaligned(self, make_record):
        aligned_none = make_record("p", "ab", status=None)
        unaligned = make_record("p", "ab", status=AlignmentStatus.UNALIGNED)
        assert score_extraction(aligned_none) == score_extraction(unaligned)

    def test_bounded(self, make_record):
        record = make_record("p", "", status=AlignmentStatus.UNALIGNED)
        assert score_extraction(record) == pytest.approx(0.0)


class TestPassQualityScore:

    def test_fraction_of_exact_and_fuzzy(self, make_record):
        records = [
            make_record("a", "x", 0, 1, AlignmentStatus.EXACT),
            make_record("a", "y", 1, 2, AlignmentStatus.LESSER),
            make_record("a", "z", status=AlignmentStatus.UNALIGNED),
        ]
        assert pass_quality_score(records) == 0.5

    def test_nothing_aligned(self, make_record):
        assert pass_quality_score([make_record("a", "z", status=AlignmentStatus.UNALIGNED)]) == 0.0
        assert pass_quality_score([]) == 0.0
