"""Tests for the fusion engine scoring pipeline."""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta

import pytest

from fusion_retrieval.core.exceptions import FusionInconsistencyError
from fusion_retrieval.retrieval.fusion import FusionEngine, parse_timestamp
from fusion_retrieval.schemas.search import FusionStrategy, ResultKind, SourceDescriptor, coerce_unit
from tests.fakes.fake_adapters import make_raw


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def strategy(**overrides: float) -> FusionStrategy:
    values = {
        "memory_weight": 1.0,
        "rag_weight": 1.0,
        "time_decay": 0.0,
        "relevance_boost": 0.0,
        "max_results": 10,
        "threshold": 0.0,
    }
    values.update(overrides)
    return FusionStrategy(**values)


def memory_hit(content: str, score: float, result_id: str, **kwargs):
    return make_raw("memory", content, score, result_id=result_id, kind=ResultKind.MEMORY, **kwargs)


@pytest.fixture
def engine() -> FusionEngine:
    return FusionEngine()


# =============================================================================
# Input coercion
# =============================================================================


class TestParseTimestamp:
    def test_iso_string_with_z_suffix(self) -> None:
        assert parse_timestamp("2026-03-01T12:00:00Z") == NOW

    def test_naive_datetime_is_utc(self) -> None:
        assert parse_timestamp(datetime(2026, 3, 1, 12, 0)) == NOW

    def test_epoch_seconds_and_milliseconds(self) -> None:
        seconds = NOW.timestamp()
        assert parse_timestamp(seconds) == NOW
        assert parse_timestamp(seconds * 1000) == NOW

    @pytest.mark.parametrize("value", [None, "", "yesterday", float("nan"), True, object()])
    def test_unparsable_values_return_none(self, value: object) -> None:
        assert parse_timestamp(value) is None


class TestCoerceUnit:
    def test_clamps_to_unit_interval(self) -> None:
        assert coerce_unit(1.7) == 1.0
        assert coerce_unit(-0.2) == 0.0
        assert coerce_unit("0.25") == 0.25

    @pytest.mark.parametrize("value", [None, "high", float("nan"), float("inf")])
    def test_non_numbers_return_none(self, value: object) -> None:
        assert coerce_unit(value) is None


# =============================================================================
# Scoring formula
# =============================================================================


class TestScoring:
    def test_memory_and_knowledge_use_their_own_weight(self, engine: FusionEngine) -> None:
        results = [
            memory_hit("memory note about pricing", 0.8, "m1"),
            make_raw("docs", "docs page about pricing", 0.8, result_id="d1"),
        ]

        fused = engine.fuse(results, strategy(memory_weight=0.7, rag_weight=0.3), now=NOW)

        by_id = {result.id: result for result in fused}
        assert by_id["memory:m1"].score == pytest.approx(0.56)
        assert by_id["memory:m1"].metadata.fusion_weight == 0.7
        assert by_id["docs:d1"].score == pytest.approx(0.24)
        assert by_id["docs:d1"].metadata.fusion_weight == 0.3

    def test_relevance_boost_trades_confidence_for_relevance(self, engine: FusionEngine) -> None:
        results = [make_raw("docs", "text", 0.8, result_id="d1", relevance=0.4)]

        fused = engine.fuse(results, strategy(rag_weight=0.5, relevance_boost=0.25), now=NOW)

        # base = 0.5 * 0.8 = 0.4; score = 0.4 * 0.75 + 0.25 * 0.4
        assert fused[0].score == pytest.approx(0.4)
        assert fused[0].metadata.relevance == pytest.approx(0.4)
        assert fused[0].metadata.confidence == pytest.approx(0.8)

    def test_relevance_defaults_to_confidence(self, engine: FusionEngine) -> None:
        fused = engine.fuse([make_raw("docs", "text", 0.6, result_id="d1")], strategy(), now=NOW)

        assert fused[0].metadata.relevance == pytest.approx(0.6)

    def test_malformed_relevance_falls_back_to_confidence(self, engine: FusionEngine) -> None:
        results = [make_raw("docs", "text", 0.6, result_id="d1", relevance="high")]

        fused = engine.fuse(results, strategy(relevance_boost=0.5), now=NOW)

        assert fused[0].metadata.relevance == pytest.approx(0.6)
        assert fused[0].score == pytest.approx(0.6)

    def test_two_day_old_result_with_half_decay(self, engine: FusionEngine) -> None:
        results = [memory_hit("old note", 1.0, "m1", timestamp=NOW - timedelta(days=2))]

        fused = engine.fuse(results, strategy(time_decay=0.5), now=NOW)

        assert fused[0].metadata.freshness == pytest.approx(math.exp(-1))
        assert fused[0].score == pytest.approx(0.368, abs=1e-3)
        assert fused[0].score == pytest.approx(math.exp(-1) * 1.0)

    def test_zero_decay_gives_full_freshness_for_any_age(self, engine: FusionEngine) -> None:
        results = [
            memory_hit("ancient", 0.5, "m1", timestamp=NOW - timedelta(days=4000)),
            memory_hit("unknown age", 0.5, "m2", timestamp="not a date"),
        ]

        fused = engine.fuse(results, strategy(time_decay=0.0), now=NOW)

        assert [result.metadata.freshness for result in fused] == [1.0, 1.0]

    def test_freshness_never_raises_a_score(self, engine: FusionEngine) -> None:
        future = NOW + timedelta(days=3)
        fused = engine.fuse([memory_hit("future", 0.6, "m1", timestamp=future)], strategy(time_decay=1.0), now=NOW)

        assert fused[0].metadata.freshness == 1.0
        assert fused[0].score == pytest.approx(0.6)

    def test_original_score_and_timestamp_are_reported(self, engine: FusionEngine) -> None:
        fused = engine.fuse(
            [memory_hit("note", 0.42, "m1", timestamp="2026-02-28T12:00:00Z")],
            strategy(),
            now=NOW,
        )

        assert fused[0].metadata.original_score == pytest.approx(0.42)
        assert fused[0].metadata.timestamp == "2026-02-28T12:00:00+00:00"


# =============================================================================
# Weight extremes
# =============================================================================


class TestMemoryOnlyWeights:
    """memoryWeight=1, ragWeight=0 leaves knowledge results with base 0."""

    def test_knowledge_result_filtered_without_relevance_boost(self, engine: FusionEngine) -> None:
        results = [
            memory_hit("memory", 0.9, "m1"),
            make_raw("docs", "docs", 0.9, result_id="d1", relevance=0.8),
        ]

        fused = engine.fuse(results, strategy(rag_weight=0.0, threshold=0.3), now=NOW)

        assert [result.id for result in fused] == ["memory:m1"]

    def test_knowledge_result_survives_on_relevance_alone(self, engine: FusionEngine) -> None:
        results = [make_raw("docs", "docs", 0.9, result_id="d1", relevance=0.8)]

        fused = engine.fuse(results, strategy(rag_weight=0.0, relevance_boost=0.5, threshold=0.3), now=NOW)

        assert len(fused) == 1
        assert fused[0].score == pytest.approx(0.4)

    def test_knowledge_result_filtered_when_relevance_term_is_too_small(self, engine: FusionEngine) -> None:
        results = [make_raw("docs", "docs", 0.9, result_id="d1", relevance=0.8)]

        fused = engine.fuse(results, strategy(rag_weight=0.0, relevance_boost=0.2, threshold=0.3), now=NOW)

        assert fused == []


# =============================================================================
# Malformed input
# =============================================================================


class TestMalformedResults:
    def test_non_numeric_score_gets_lowest_confidence(self, engine: FusionEngine) -> None:
        results = [make_raw("docs", "text", "very relevant", result_id="d1")]

        fused = engine.fuse(results, strategy(), now=NOW)

        assert len(fused) == 1
        assert fused[0].metadata.confidence == 0.0
        assert fused[0].score == 0.0

    def test_nan_score_gets_lowest_confidence(self, engine: FusionEngine) -> None:
        fused = engine.fuse([make_raw("docs", "text", float("nan"), result_id="d1")], strategy(), now=NOW)

        assert fused[0].metadata.confidence == 0.0
        assert fused[0].metadata.original_score == 0.0

    def test_unparsable_timestamp_gets_lowest_freshness(self, engine: FusionEngine) -> None:
        results = [memory_hit("note", 0.9, "m1", timestamp="soon")]

        fused = engine.fuse(results, strategy(time_decay=0.1), now=NOW)

        assert fused[0].metadata.freshness == 0.0
        assert fused[0].metadata.timestamp is None

    def test_malformed_result_still_subject_to_threshold(self, engine: FusionEngine) -> None:
        fused = engine.fuse([make_raw("docs", "text", None, result_id="d1")], strategy(threshold=0.1), now=NOW)

        assert fused == []

    def test_scores_above_one_are_clamped(self, engine: FusionEngine) -> None:
        fused = engine.fuse([make_raw("docs", "text", 3.5, result_id="d1")], strategy(), now=NOW)

        assert fused[0].metadata.confidence == 1.0
        assert fused[0].metadata.original_score == 3.5

    def test_negative_computed_score_is_an_inconsistency(self, engine: FusionEngine) -> None:
        broken = FusionStrategy.model_construct(
            memory_weight=-1.0,
            rag_weight=0.3,
            time_decay=0.0,
            relevance_boost=0.0,
            max_results=10,
            threshold=0.0,
        )

        with pytest.raises(FusionInconsistencyError):
            engine.fuse([memory_hit("note", 0.5, "m1")], broken, now=NOW)


# =============================================================================
# Threshold, dedup, ranking, truncation
# =============================================================================


class TestPipeline:
    def test_pricing_near_duplicates_collapse_to_one_result(self, engine: FusionEngine) -> None:
        results = [
            memory_hit("Pricing: the Pro plan costs $49 per month and includes priority support.", 0.9, "m1"),
            memory_hit("Pricing: the Pro plan costs $49 per month and includes priority support!", 0.88, "m2"),
        ]

        fused = engine.fuse(results, strategy(threshold=0.5, max_results=2), query="pricing", now=NOW)

        assert len(fused) == 1
        assert fused[0].score == pytest.approx(0.9)
        assert len(fused[0].related_results) == 1
        assert fused[0].related_results[0].score == pytest.approx(0.88)
        assert fused[0].related_results[0].original_score == pytest.approx(0.88)

    def test_results_respect_max_results_and_threshold(self, engine: FusionEngine) -> None:
        results = [
            make_raw("docs", f"distinct document number {i} " + "x" * i * 7, i / 10, result_id=f"d{i}")
            for i in range(10)
        ]

        fused = engine.fuse(results, strategy(threshold=0.35, max_results=4), now=NOW)

        assert len(fused) <= 4
        assert all(result.score >= 0.35 for result in fused)
        scores = [result.score for result in fused]
        assert scores == sorted(scores, reverse=True)

    def test_ties_break_on_priority_then_id(self, engine: FusionEngine) -> None:
        sources = {
            "a": SourceDescriptor("a", "A", priority=1),
            "b": SourceDescriptor("b", "B", priority=9),
        }
        results = [
            make_raw("a", "alpha one", 0.5, result_id="2", timestamp=NOW),
            make_raw("a", "bravo two", 0.5, result_id="1", timestamp=NOW),
            make_raw("b", "charlie three", 0.5, result_id="1", timestamp=NOW),
            make_raw("b", "delta four", 0.5, result_id="9", timestamp=NOW - timedelta(days=1)),
        ]

        fused = engine.fuse(results, strategy(time_decay=0.01), sources, now=NOW)

        assert [result.id for result in fused] == ["b:1", "a:1", "a:2", "b:9"]

    def test_equal_scores_break_on_freshness(self, engine: FusionEngine) -> None:
        results = [
            make_raw("docs", "stale entry", 0.0, result_id="a", timestamp=NOW - timedelta(days=2)),
            make_raw("docs", "fresh words", 0.0, result_id="z", timestamp=NOW),
        ]

        fused = engine.fuse(results, strategy(time_decay=0.5), now=NOW)

        assert [result.id for result in fused] == ["docs:z", "docs:a"]

    def test_order_does_not_depend_on_input_order(self, engine: FusionEngine) -> None:
        results = [
            make_raw("docs", "first text", 0.5, result_id="x"),
            make_raw("wiki", "second text entirely", 0.5, result_id="y"),
            memory_hit("third thing remembered", 0.7, "z"),
        ]

        forward = engine.fuse(results, strategy(), now=NOW)
        backward = engine.fuse(list(reversed(results)), strategy(), now=NOW)

        assert [r.id for r in forward] == [r.id for r in backward]

    def test_source_name_and_priority_come_from_descriptors(self, engine: FusionEngine) -> None:
        sources = {"docs": SourceDescriptor("docs", "Product Docs", priority=7)}

        fused = engine.fuse([make_raw("docs", "text", 0.5, result_id="d1")], strategy(), sources, now=NOW)

        assert fused[0].source == "Product Docs"
        assert fused[0].priority == 7
        assert fused[0].kind == ResultKind.KNOWLEDGE

    def test_results_without_native_id_get_positional_ids(self, engine: FusionEngine) -> None:
        results = [make_raw("docs", "one thing", 0.5), make_raw("docs", "other stuff", 0.4)]

        fused = engine.fuse(results, strategy(), now=NOW)

        assert [result.id for result in fused] == ["docs:0", "docs:1"]

    def test_highlights_contain_query_terms(self, engine: FusionEngine) -> None:
        content = "Intro text. The pricing page lists plans. Unrelated line."

        fused = engine.fuse([make_raw("docs", content, 0.5, result_id="d1")], strategy(), query="pricing", now=NOW)

        assert fused[0].highlights == ["The pricing page lists plans."]

    def test_empty_input_returns_empty_list(self, engine: FusionEngine) -> None:
        assert engine.fuse([], strategy()) == []
