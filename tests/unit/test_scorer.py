"""Tests for metric similarity scoring, tiers and ranking."""

import pytest
from conftest import (
    ARIAL_METRICS,
    LIBERATION_SANS_METRICS,
    MONO_METRICS,
    TIMES_METRICS,
    make_descriptor,
    make_metrics,
)

from fontresolver.core.models import MatchTier, ScoredCandidate
from fontresolver.fonts.normalizer import normalize
from fontresolver.fonts.scorer import (
    classify_tier,
    metric_distance,
    partition,
    score,
    similarity_from_distance,
    weight_similarity,
)


def candidate(family, score_value, **kwargs):
    return ScoredCandidate(descriptor=make_descriptor(family), score=score_value, **kwargs)


class TestMetricScore:
    """Test the pure metric similarity function."""

    @pytest.mark.parametrize("metrics", [ARIAL_METRICS, TIMES_METRICS, MONO_METRICS])
    def test_identity(self, metrics):
        """Test a font is perfectly similar to itself."""
        assert score(metrics, metrics) == 1.0

    @pytest.mark.parametrize(
        ("a", "b"),
        [
            (ARIAL_METRICS, TIMES_METRICS),
            (ARIAL_METRICS, MONO_METRICS),
            (LIBERATION_SANS_METRICS, TIMES_METRICS),
        ],
    )
    def test_symmetric(self, a, b):
        """Test score(a, b) == score(b, a)."""
        assert score(a, b) == score(b, a)
        assert 0.0 <= score(a, b) <= 1.0

    def test_units_per_em_normalized(self):
        """Test metrics in different em sizes compare as em-relative values."""
        doubled = make_metrics(
            ascender=1810,
            descender=-424,
            x_height=1038,
            cap_height=1432,
            average_width=882,
            max_advance_width=2000,
            units_per_em=2000,
        )
        assert score(ARIAL_METRICS, doubled) == pytest.approx(1.0)

    def test_closer_metrics_score_higher(self):
        """Test a near twin outscores a distant font."""
        assert score(ARIAL_METRICS, LIBERATION_SANS_METRICS) > score(ARIAL_METRICS, MONO_METRICS)

    def test_height_dimensions_weighted_highest(self):
        """Test an x-height change costs more than an equal ascender change."""
        taller_x = make_metrics(x_height=519 + 40)
        taller_asc = make_metrics(ascender=905 + 40)
        assert metric_distance(ARIAL_METRICS, taller_x) > metric_distance(ARIAL_METRICS, taller_asc)

    def test_similarity_from_distance(self):
        """Test the distance-to-similarity mapping."""
        assert similarity_from_distance(0.0, 0.2) == 1.0
        assert similarity_from_distance(0.1, 0.2) == pytest.approx(0.5)
        assert similarity_from_distance(0.5, 0.2) == 0.0
        assert similarity_from_distance(0.0, 0.0) == 1.0
        assert similarity_from_distance(0.01, 0.0) == 0.0


class TestTiers:
    """Test tier boundaries."""

    def test_boundaries(self):
        """Test 0.90 is exact, just below is similar, below 0.80 is excluded."""
        assert classify_tier(0.90) == MatchTier.EXACT
        assert classify_tier(0.8999) == MatchTier.SIMILAR
        assert classify_tier(0.80) == MatchTier.SIMILAR
        assert classify_tier(0.7999) is None

    def test_partition(self):
        """Test synthetic candidates land in the right tier, in order."""
        matches = partition(
            [
                candidate("A", 0.95),
                candidate("B", 0.90),
                candidate("C", 0.8999),
                candidate("D", 0.80),
                candidate("E", 0.7999),
            ]
        )
        assert [c.descriptor.family for c in matches.exact_tier] == ["A", "B"]
        assert [c.descriptor.family for c in matches.similar_tier] == ["C", "D"]
        assert matches.best.descriptor.family == "A"

    def test_empty_partition(self):
        """Test no candidates means no best match."""
        assert partition([]).best is None


class TestMetricScorer:
    """Test request-level scoring."""

    def test_exact_match_short_circuits(self, scorer):
        """Test an exact name, weight and style match scores 1.0 regardless of metrics."""
        request = normalize("ArialMT")
        scored = scorer.score_candidate(
            request, make_descriptor("Arial", metrics=MONO_METRICS), target_metrics=ARIAL_METRICS
        )
        assert scored.score == 1.0

    def test_non_exact_below_one(self, scorer):
        """Test only exact matches reach 1.0."""
        request = normalize("Arial Bold")
        scored = scorer.score_candidate(request, make_descriptor("Arial"))
        assert scored is not None
        assert scored.score < 1.0

    def test_name_gate(self, scorer):
        """Test dissimilar families are not candidates at all."""
        request = normalize("Arial")
        assert scorer.score_candidate(request, make_descriptor("Zapfino")) is None

    def test_name_similarity(self, scorer):
        """Test key equality, containment and symmetry."""
        assert scorer.name_similarity("Open Sans", "OpenSans") == 1.0
        assert scorer.name_similarity("Arial", "Arial Narrow") == pytest.approx(0.85)
        assert scorer.name_similarity("Arial", "Arial Narrow") == scorer.name_similarity(
            "Arial Narrow", "Arial"
        )
        assert scorer.name_similarity("Arial", "") == 0.0

    def test_metrics_rank_within_name_similar_set(self, scorer):
        """Test closer metrics win between equally named candidates."""
        request = normalize("Arial Black")
        close = make_descriptor("Arial Narrow", metrics=LIBERATION_SANS_METRICS)
        far = make_descriptor("Arial Rounded", metrics=MONO_METRICS)
        scored_close = scorer.score_candidate(request, close, target_metrics=ARIAL_METRICS)
        scored_far = scorer.score_candidate(request, far, target_metrics=ARIAL_METRICS)
        assert scored_close.score > scored_far.score

    def test_missing_metrics_score_zero(self, scorer):
        """Test absent metrics contribute zero metric similarity."""
        request = normalize("Arial Bold")
        scored = scorer.score_candidate(request, make_descriptor("Arial"), target_metrics=ARIAL_METRICS)
        assert scored.metric_similarity is None

    def test_monospace_request_penalizes_proportional(self, scorer):
        """Test a monospace request prefers fixed-pitch candidates."""
        request = normalize("Courier New Bold")
        proportional = make_descriptor("Courier New")
        fixed = make_descriptor("Courier New", monospaced=True)
        assert scorer.style_fit(request, fixed) > scorer.style_fit(request, proportional)

    def test_weight_similarity_buckets(self):
        """Test weight distance buckets."""
        assert weight_similarity(400, 400) == 1.0
        assert weight_similarity(400, 500) == 0.8
        assert weight_similarity(400, 600) == 0.6
        assert weight_similarity(400, 700) == 0.4
        assert weight_similarity(100, 900) == 0.2


class TestTieBreak:
    """Test deterministic ordering of equal scores."""

    def test_cached_first(self, scorer):
        """Test a cached candidate wins a tie."""
        request = normalize("Sans")
        ranked = scorer.rank(
            request, [candidate("Beta Sans", 0.85), candidate("Gamma Sans", 0.85, in_cache=True)]
        )
        assert ranked[0].descriptor.family == "Gamma Sans"

    def test_preferred_family_next(self, scorer):
        """Test a preferred family wins a tie between uncached candidates."""
        request = normalize("Sans")
        ranked = scorer.rank(
            request,
            [
                candidate("Alpha Sans", 0.85),
                candidate("Noto Sans", 0.85, preferred_rank=0),
            ],
        )
        assert ranked[0].descriptor.family == "Noto Sans"

    def test_edit_distance_then_lexical(self, scorer):
        """Test shorter edit distance, then lexical order, decide remaining ties."""
        request = normalize("Robota")
        ranked = scorer.rank(
            request,
            [candidate("Robotic", 0.85), candidate("Roboto", 0.85), candidate("Robotb", 0.85)],
        )
        assert [c.descriptor.family for c in ranked] == ["Robotb", "Roboto", "Robotic"]

    def test_higher_score_beats_everything(self, scorer):
        """Test score dominates the tie-break keys."""
        request = normalize("Sans")
        ranked = scorer.rank(
            request,
            [
                candidate("Noto Sans", 0.85, in_cache=True, preferred_rank=0),
                candidate("Zed Sans", 0.86),
            ],
        )
        assert ranked[0].descriptor.family == "Zed Sans"
