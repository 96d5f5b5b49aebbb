"""
Tests for the tiered aligner.
"""

import pytest

from textanchor.exceptions import ConfigurationError
from textanchor.matchers.token_matcher import TokenSimilarityMatcher
from textanchor.models.enums import AlignmentStatus, MatchScope
from textanchor.pipeline.aligner import AlignmentConfig, align_extractions, get_alignment_stats
from textanchor.pipeline.text_index import SourceIndex, token_overlap
from textanchor.schemas.contracts import ExtractionRecord


def _record(text, extraction_class="item"):
    return ExtractionRecord(extraction_class=extraction_class, extraction_text=text)


def _span(record):
    if record.char_interval is None:
        return None
    return (record.char_interval.start, record.char_interval.end)


class TestExactTier:

    def test_product_scenario(self, product_source, product_records):
        aligned = align_extractions(product_records, product_source)
        assert aligned == 3
        assert [_span(r) for r in product_records] == [(0, 17), (24, 33), (45, 52)]
        assert all(r.alignment_status == AlignmentStatus.EXACT for r in product_records)
        for record in product_records:
            start, end = _span(record)
            assert product_source[start:end] == record.extraction_text

    def test_token_interval_derived(self, product_source, product_records):
        align_extractions(product_records, product_source)
        interval = product_records[0].token_interval
        assert (interval.start_index, interval.end_index) == (0, 3)

    def test_duplicate_texts_bind_to_distinct_occurrences(self):
        source = "Apple pie and Apple cider"
        records = [_record("Apple"), _record("Apple")]
        align_extractions(records, source)
        assert [_span(r) for r in records] == [(0, 5), (14, 19)]

    def test_start_cursor(self):
        source = "Apple pie and Apple cider"
        records = [_record("Apple")]
        align_extractions(records, source, start_cursor=6)
        assert _span(records[0]) == (14, 19)

    def test_idempotent_with_cursor_reset(self, product_source, product_records):
        align_extractions(product_records, product_source)
        first = [(_span(r), r.alignment_status) for r in product_records]
        align_extractions(product_records, product_source, start_cursor=0)
        assert [(_span(r), r.alignment_status) for r in product_records] == first

    def test_multibyte_source(self):
        source = "Le café «naïve» coûte 3€ — vraiment"
        records = [_record("naïve"), _record("3€")]
        align_extractions(records, source)
        for record in records:
            start, end = _span(record)
            assert source[start:end] == record.extraction_text
            assert record.alignment_status == AlignmentStatus.EXACT


class TestFuzzyTiers:

    def test_case_difference_is_fuzzy(self):
        source = "She studied at Stanford University in 1999."
        records = [_record("stanford")]
        align_extractions(records, source)
        assert records[0].alignment_status == AlignmentStatus.FUZZY
        start, end = _span(records[0])
        assert source[start:end] == "Stanford"

    def test_whitespace_difference_is_fuzzy(self, product_source):
        records = [_record("apple   macbook\npro")]
        align_extractions(records, product_source)
        assert records[0].alignment_status == AlignmentStatus.FUZZY
        assert _span(records[0]) == (0, 17)

    def test_reordered_tokens_are_fuzzy(self, product_source):
        records = [_record("MacBook Apple Pro")]
        align_extractions(records, product_source)
        assert records[0].alignment_status == AlignmentStatus.FUZZY
        assert _span(records[0]) == (0, 17)

    def test_greater_when_span_needs_extra_tokens(self, product_source):
        records = [_record("Apple Pro")]
        align_extractions(records, product_source)
        assert records[0].alignment_status == AlignmentStatus.GREATER
        assert _span(records[0]) == (0, 17)

    def test_lesser_when_source_has_fewer_tokens(self, product_source):
        records = [_record("Apple MacBook Pro Max")]
        align_extractions(records, product_source)
        assert records[0].alignment_status == AlignmentStatus.LESSER
        assert _span(records[0]) == (0, 17)

    def test_token_tier_never_reports_exact(self):
        matcher = TokenSimilarityMatcher(threshold=0.7)
        result = matcher.find("met Bob", SourceIndex("Alice met Bob"), 0, MatchScope.DOCUMENT)
        assert (result.start, result.end) == (6, 13)
        assert result.status == AlignmentStatus.FUZZY

    def test_lesser_rejected_when_disabled(self, product_source):
        records = [_record("Apple MacBook Pro Max")]
        config = AlignmentConfig(accept_match_lesser=False)
        align_extractions(records, product_source, config=config)
        assert records[0].alignment_status == AlignmentStatus.UNALIGNED

    def test_fuzzy_disabled(self):
        records = [_record("stanford")]
        align_extractions(records, "Stanford University", config=AlignmentConfig(enable_fuzzy=False))
        assert records[0].alignment_status == AlignmentStatus.UNALIGNED

    def test_fuzzy_matches_clear_threshold(self, product_source):
        texts = ["apple macbook pro", "MacBook Apple Pro", "Apple Pro", "Apple MacBook Pro Max", "model mbp 001"]
        records = [_record(t) for t in texts]
        config = AlignmentConfig()
        for record in records:
            align_extractions([record], product_source, config=config)
            assert record.alignment_status != AlignmentStatus.UNALIGNED
            if record.alignment_status != AlignmentStatus.EXACT:
                start, end = _span(record)
                matched = product_source[start:end]
                assert token_overlap(record.extraction_text, matched) >= config.fuzzy_threshold


class TestFallbackAndFailure:

    def test_absent_text_unaligned(self):
        records = [_record("Bob Wilson")]
        aligned = align_extractions(records, "Alice met Carol at the station.")
        assert aligned == 0
        assert records[0].alignment_status == AlignmentStatus.UNALIGNED
        assert records[0].char_interval is None
        assert records[0].token_interval is None

    def test_out_of_order_found_by_fallback(self, product_source):
        records = [_record("MBP-001"), _record("Apple MacBook Pro")]
        aligned = align_extractions(records, product_source)
        assert aligned == 2
        assert [_span(r) for r in records] == [(45, 52), (0, 17)]

    def test_out_of_order_without_fallback(self, product_source):
        records = [_record("MBP-001"), _record("Apple MacBook Pro")]
        align_extractions(records, product_source, config=AlignmentConfig(enable_fallback=False))
        assert records[1].alignment_status == AlignmentStatus.UNALIGNED

    def test_fallback_does_not_pull_cursor_back(self):
        source = "alpha beta gamma alpha"
        records = [_record("gamma"), _record("beta"), _record("alpha")]
        align_extractions(records, source)
        # "alpha" after the fallback still binds after "gamma"
        assert [_span(r) for r in records] == [(11, 16), (6, 10), (17, 22)]

    def test_empty_text_unaligned(self):
        records = [_record("   ")]
        align_extractions(records, "some source")
        assert records[0].alignment_status == AlignmentStatus.UNALIGNED

    def test_never_splits_a_grapheme(self):
        source = "Cafe\u0301 ok"
        records = [_record("Cafe")]
        align_extractions(records, source)
        assert records[0].alignment_status == AlignmentStatus.UNALIGNED

    def test_skips_occurrence_that_splits_a_grapheme(self):
        source = "Cafe\u0301 then Cafe ok"
        records = [_record("Cafe")]
        align_extractions(records, source)
        assert _span(records[0]) == (11, 15)


class TestAlignmentConfig:

    @pytest.mark.parametrize("threshold", [0.0, -0.1, 1.5])
    def test_threshold_bounds(self, threshold):
        with pytest.raises(ConfigurationError):
            AlignmentConfig(fuzzy_threshold=threshold)

    def test_window_bounds(self):
        with pytest.raises(ConfigurationError):
            AlignmentConfig(max_window_tokens=0)


class TestAlignmentStats:

    def test_counts_and_rates(self, make_record):
        records = [
            make_record("a", "x", 0, 1, AlignmentStatus.EXACT),
            make_record("a", "y", 1, 2, AlignmentStatus.FUZZY),
            make_record("a", "z", 2, 3, AlignmentStatus.GREATER),
            make_record("a", "w", status=AlignmentStatus.UNALIGNED),
        ]
        stats = get_alignment_stats(records)
        assert (stats.total, stats.exact, stats.fuzzy, stats.greater, stats.unaligned) == (4, 1, 1, 1, 1)
        assert stats.success_rate == pytest.approx(0.75)
        assert stats.exact_match_rate == pytest.approx(0.25)
        assert stats.quality_rate == pytest.approx(2 / 3)

    def test_never_aligned_counts_as_unaligned(self):
        stats = get_alignment_stats([_record("x")])
        assert stats.unaligned == 1

    def test_empty(self):
        stats = get_alignment_stats([])
        assert stats.total == 0
        assert stats.success_rate == 1.0
        assert stats.quality_rate == 0.0

    def test_pure(self, product_source, product_records):
        align_extractions(product_records, product_source)
        before = [r.model_dump() for r in product_records]
        get_alignment_stats(product_records)
        assert [r.model_dump() for r in product_records] == before
