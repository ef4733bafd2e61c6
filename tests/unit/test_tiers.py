"""Tests for the tiered resolution state machine, one transition at a time."""

import threading

import pytest
from conftest import ARIAL_METRICS, FakeProvider, make_descriptor

from fontresolver.core.exceptions import FontNotFoundError
from fontresolver.core.models import (
    FontSource,
    MatchTier,
    ResolutionResult,
    ResolverState,
    SubstitutionReason,
)
from fontresolver.fonts.normalizer import normalize
from fontresolver.fonts.providers import ProviderCandidate
from fontresolver.fonts.signatures import SignatureDatabase
from fontresolver.resolution.aggregator import LocalFontIndex
from fontresolver.resolution.tiers import ResolutionContext, Transition


def context_for(resolver, name, use_internet=False):
    return resolver.tiers.new_context(normalize(name), use_internet=use_internet)


def step(resolver, state, name, use_internet=False):
    return resolver.tiers.step(state, context_for(resolver, name, use_internet))


class TestTransition:
    """Test transition helpers."""

    def test_advance_is_not_terminal(self):
        """Test advancing names the next state only."""
        transition = Transition.advance(ResolverState.LOCAL_EXACT)
        assert transition.next_state == ResolverState.LOCAL_EXACT
        assert not transition.is_terminal

    def test_context_cancellation(self):
        """Test any registered cancel check cancels the context."""
        event = threading.Event()
        context = ResolutionContext(request=normalize("Arial"), cancel_checks=[event.is_set])
        assert not context.is_cancelled()
        event.set()
        assert context.is_cancelled()


class TestCachedState:
    """Test the CACHED state."""

    def test_miss_advances(self, resolver):
        """Test a cache miss moves on to the local exact tier."""
        assert step(resolver, ResolverState.CACHED, "Arial").next_state == ResolverState.LOCAL_EXACT

    def test_hit_replays_entry(self, resolver):
        """Test a hit replays the recorded score, reason and substitution tier."""
        resolver.cache.put(
            normalize("Zxqv").signature,
            make_descriptor("Liberation Sans"),
            name="Zxqv",
            source=FontSource.SUBSTITUTED,
            compatibility_score=0.95,
            substitution_reason=SubstitutionReason.FONT_NOT_FOUND,
            warnings=["substituted"],
        )
        transition = step(resolver, ResolverState.CACHED, "Zxqv")
        assert transition.from_cache
        result = transition.result
        assert result.resolved_by == ResolverState.CACHED
        assert result.tier == MatchTier.SUBSTITUTED
        assert result.compatibility_score == 0.95
        assert result.substituted
        assert result.substitution_reason == SubstitutionReason.FONT_NOT_FOUND


class TestLocalStates:
    """Test LOCAL_EXACT and LOCAL_SIMILAR."""

    def test_exact_hit(self, resolver):
        """Test an installed exact match finishes with score 1.0."""
        result = step(resolver, ResolverState.LOCAL_EXACT, "ArialMT").result
        assert result.resolved.family == "Arial"
        assert result.compatibility_score == 1.0
        assert result.tier == MatchTier.EXACT
        assert not result.substituted
        assert result.warnings == []

    def test_exact_miss_advances(self, resolver):
        """Test a missing weight moves on to the similar tier."""
        transition = step(resolver, ResolverState.LOCAL_EXACT, "Arial-Light")
        assert transition.next_state == ResolverState.LOCAL_SIMILAR

    def test_similar_same_family(self, resolver):
        """Test a close style of the same family is accepted with a warning."""
        result = step(resolver, ResolverState.LOCAL_SIMILAR, "Arial-Light").result
        assert result.resolved.family == "Arial"
        assert result.resolved.weight == 400
        assert result.tier == MatchTier.SIMILAR
        assert result.compatibility_score < 0.9
        assert not result.substituted
        assert "not found" in result.warnings[0]

    def test_similar_other_family(self, resolver):
        """Test a similar font of another family is a substitution."""
        result = step(resolver, ResolverState.LOCAL_SIMILAR, "LiberationSans2").result
        assert result.resolved.family == "Liberation Sans"
        assert result.substituted
        assert result.substitution_reason == SubstitutionReason.FONT_NOT_FOUND

    def test_similar_other_family_needs_substitution(self, make_resolver, config):
        """Test cross-family similar matches are refused when substitution is off."""
        strict = make_resolver(resolver_config=config.model_copy(update={"allow_substitution": False}))
        transition = step(strict, ResolverState.LOCAL_SIMILAR, "LiberationSans2")
        assert transition.next_state == ResolverState.WEB_CACHED


class TestWebStates:
    """Test WEB_CACHED and WEB_LIVE."""

    def test_web_cached_hit(self, make_resolver):
        """Test a signature database entry resolves as an open-repository font."""
        database = SignatureDatabase.from_descriptors([make_descriptor("Roboto Slab")])
        resolver = make_resolver(signature_db=database)
        result = step(resolver, ResolverState.WEB_CACHED, "Roboto Slab").result
        assert result.source == FontSource.OPEN_REPOSITORY
        assert result.resolved_by == ResolverState.WEB_CACHED
        assert result.compatibility_score == 1.0

    def test_web_cached_miss(self, resolver):
        """Test unknown families move on to the live tier."""
        assert step(resolver, ResolverState.WEB_CACHED, "Roboto Slab").next_state == ResolverState.WEB_LIVE

    def test_live_skipped_offline(self, make_resolver):
        """Test providers are never contacted without internet permission."""
        provider = FakeProvider(results=[ProviderCandidate(make_descriptor("Roboto Slab"))])
        resolver = make_resolver(providers=[provider])
        transition = step(resolver, ResolverState.WEB_LIVE, "Roboto Slab")
        assert transition.next_state == ResolverState.METRIC_TWIN
        assert provider.calls == 0

    def test_live_skipped_when_open_fonts_disabled(self, make_resolver, config):
        """Test open repositories can be switched off entirely."""
        provider = FakeProvider(results=[ProviderCandidate(make_descriptor("Roboto Slab"))])
        resolver = make_resolver(
            providers=[provider], resolver_config=config.model_copy(update={"use_open_fonts": False})
        )
        transition = step(resolver, ResolverState.WEB_LIVE, "Roboto Slab", use_internet=True)
        assert transition.next_state == ResolverState.METRIC_TWIN
        assert provider.calls == 0

    def test_live_hit_remembered(self, make_resolver):
        """Test a live winner finishes and complete responses are remembered."""
        provider = FakeProvider(
            results=[
                ProviderCandidate(make_descriptor("Roboto Slab")),
                ProviderCandidate(make_descriptor("Roboto Slab", weight=700)),
            ]
        )
        resolver = make_resolver(providers=[provider])
        result = step(resolver, ResolverState.WEB_LIVE, "Roboto Slab", use_internet=True).result
        assert result.resolved_by == ResolverState.WEB_LIVE
        assert result.source == FontSource.OPEN_REPOSITORY
        assert len(resolver.cache.web_results("Roboto Slab")) == 2

    def test_live_failure_warns_and_advances(self, make_resolver):
        """Test a failed provider leaves a warning on the context."""
        provider = FakeProvider(error=RuntimeError("boom"))
        resolver = make_resolver(providers=[provider])
        context = context_for(resolver, "Roboto Slab", use_internet=True)
        transition = resolver.tiers.step(ResolverState.WEB_LIVE, context)
        assert transition.next_state == ResolverState.METRIC_TWIN
        assert any("boom" in w for w in context.warnings)


class TestMetricTwin:
    """Test METRIC_TWIN and EXHAUSTED."""

    def test_twin_from_assumed_metrics(self, resolver):
        """Test unknown fonts get the closest local font by assumed metrics."""
        result = step(resolver, ResolverState.METRIC_TWIN, "UnknownFont9000").result
        assert result.resolved.family == "Liberation Sans"
        assert result.source == FontSource.SUBSTITUTED
        assert result.tier == MatchTier.SUBSTITUTED
        assert result.compatibility_score == 0.99
        assert result.substitution_reason == SubstitutionReason.FONT_NOT_FOUND
        assert "assumed (Liberation Sans)" in result.warnings[0]

    def test_twin_from_known_metrics(self, make_resolver):
        """Test database metrics steer the twin choice."""
        database = SignatureDatabase.from_descriptors(
            [make_descriptor("Roboto Slab", metrics=ARIAL_METRICS)]
        )
        resolver = make_resolver(signature_db=database)
        result = step(resolver, ResolverState.METRIC_TWIN, "Roboto Slab").result
        assert result.resolved.family == "Arial"
        assert "known metrics" in result.warnings[0]

    def test_reason_metrics_mismatch(self, resolver):
        """Test a twin for an installed family reports a metrics mismatch."""
        result = step(resolver, ResolverState.METRIC_TWIN, "Arial-Light").result
        assert result.resolved.family == "Liberation Sans"
        assert result.substitution_reason == SubstitutionReason.METRICS_MISMATCH

    def test_without_metrics_uses_preference(self, make_resolver):
        """Test preferred families stand in when no local font has metrics."""
        index = LocalFontIndex.from_descriptors(
            [make_descriptor("Zapfino"), make_descriptor("Noto Sans")]
        )
        result = step(make_resolver(index=index), ResolverState.METRIC_TWIN, "Zxqv").result
        assert result.resolved.family == "Noto Sans"
        assert result.compatibility_score == 0.0
        assert result.substitution_reason == SubstitutionReason.USER_PREFERENCE

    def test_substitution_disallowed(self, make_resolver, config):
        """Test the twin tier is skipped when substitution is off."""
        strict = make_resolver(resolver_config=config.model_copy(update={"allow_substitution": False}))
        assert step(strict, ResolverState.METRIC_TWIN, "Zxqv").next_state == ResolverState.EXHAUSTED

    def test_empty_index(self, make_resolver):
        """Test an empty local index exhausts."""
        resolver = make_resolver(index=LocalFontIndex.from_descriptors([]))
        assert step(resolver, ResolverState.METRIC_TWIN, "Zxqv").next_state == ResolverState.EXHAUSTED

    def test_exhausted_raises(self, resolver):
        """Test the terminal failure state raises."""
        with pytest.raises(FontNotFoundError):
            step(resolver, ResolverState.EXHAUSTED, "Zxqv")


class TestRun:
    """Test whole walks through the machine."""

    def test_visits_every_tier_before_twin(self, resolver):
        """Test an unknown font walks every tier in order."""
        context = context_for(resolver, "UnknownFont9000")
        result = resolver.tiers.run(context)
        assert isinstance(result, ResolutionResult)
        assert context.visited == [
            ResolverState.CACHED,
            ResolverState.LOCAL_EXACT,
            ResolverState.LOCAL_SIMILAR,
            ResolverState.WEB_CACHED,
            ResolverState.WEB_LIVE,
            ResolverState.METRIC_TWIN,
        ]

    def test_result_cached(self, resolver):
        """Test a finished walk is recorded under the request signature."""
        resolver.tiers.run(context_for(resolver, "ArialMT"))
        entry = resolver.cache.peek(normalize("ArialMT").signature)
        assert entry.descriptor.family == "Arial"
        assert entry.compatibility_score == 1.0
