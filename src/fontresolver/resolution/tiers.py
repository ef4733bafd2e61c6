"""
Tiered Resolution State Machine
===============================

Resolution walks an explicit state machine::

    CACHED -> LOCAL_EXACT -> LOCAL_SIMILAR -> WEB_CACHED -> WEB_LIVE -> METRIC_TWIN -> EXHAUSTED

Each state has one handler returning a ``Transition``: either the next state
or a terminal result. ``TieredResolver.step`` runs a single handler so every
transition and its guard can be exercised on its own.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from ..core.config import LicensePolicy, ResolverConfig
from ..core.exceptions import FontNotFoundError, LicenseRequiredError
from ..core.models import (
    FontDescriptor,
    FontMetrics,
    FontRequest,
    FontSource,
    MatchTier,
    ResolutionResult,
    ResolverState,
    ScoredCandidate,
    SubstitutionReason,
)
from ..fonts.license import LicenseAnalyzer
from ..fonts.normalizer import normalize
from ..fonts.scorer import NON_EXACT_CEILING, MetricScorer, classify_tier
from ..fonts.system import ScannedFont
from ..fonts.utils import well_known_substitutes
from .aggregator import LiveSearchOutcome, SourceAggregator
from .cache import FontCache

logger = logging.getLogger(__name__)

# Em-relative metrics of a typical Latin sans (Arial-like), in 1000 units per em
GENERIC_SANS_METRICS = FontMetrics(
    units_per_em=1000,
    ascender=905,
    descender=-212,
    x_height=519,
    cap_height=716,
    average_width=441,
    max_advance_width=1000,
)
GENERIC_MONO_METRICS = FontMetrics(
    units_per_em=1000,
    ascender=833,
    descender=-300,
    x_height=423,
    cap_height=571,
    average_width=600,
    max_advance_width=600,
)


@dataclass
class ResolutionContext:
    """Mutable per-call state carried across states."""

    request: FontRequest
    use_internet: bool = False
    cancel_checks: list[Callable[[], bool]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    target_metrics: FontMetrics | None = None
    license_skipped: bool = False
    visited: list[ResolverState] = field(default_factory=list)

    def is_cancelled(self) -> bool:
        return any(check() for check in self.cancel_checks)


@dataclass(frozen=True)
class Transition:
    """Outcome of one state handler."""

    next_state: ResolverState | None = None
    result: ResolutionResult | None = None
    from_cache: bool = False

    @classmethod
    def advance(cls, state: ResolverState) -> "Transition":
        return cls(next_state=state)

    @classmethod
    def finish(cls, result: ResolutionResult, from_cache: bool = False) -> "Transition":
        return cls(result=result, from_cache=from_cache)

    @property
    def is_terminal(self) -> bool:
        return self.result is not None


class TieredResolver:
    """Runs the tiered fallback state machine for one request at a time."""

    def __init__(
        self,
        config: ResolverConfig,
        aggregator: SourceAggregator,
        scorer: MetricScorer,
        cache: FontCache | None = None,
        license_analyzer: LicenseAnalyzer | None = None,
    ):
        self.config = config
        self.aggregator = aggregator
        self.scorer = scorer
        self.cache = cache
        self.license_analyzer = license_analyzer or LicenseAnalyzer()
        self._handlers = {
            ResolverState.CACHED: self._cached,
            ResolverState.LOCAL_EXACT: self._local_exact,
            ResolverState.LOCAL_SIMILAR: self._local_similar,
            ResolverState.WEB_CACHED: self._web_cached,
            ResolverState.WEB_LIVE: self._web_live,
            ResolverState.METRIC_TWIN: self._metric_twin,
            ResolverState.EXHAUSTED: self._exhausted,
        }

    def new_context(
        self,
        request: FontRequest,
        use_internet: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> ResolutionContext:
        context = ResolutionContext(request=request, use_internet=use_internet)
        if cancel_event is not None:
            context.cancel_checks.append(cancel_event.is_set)
        context.target_metrics = self.aggregator.web_index.metrics_for(request)
        return context

    def run(self, context: ResolutionContext) -> ResolutionResult:
        """Drive the state machine from CACHED to a terminal state."""
        state = ResolverState.CACHED
        while True:
            context.visited.append(state)
            transition = self.step(state, context)
            if transition.is_terminal:
                logger.info(
                    f"Resolved {context.request.original_name!r} in state {state.value}: "
                    f"{transition.result.resolved} ({transition.result.compatibility_score:.2f})"
                )
                return self._finalize(transition, context)
            logger.debug(
                f"{context.request.normalized_name}: {state.value} -> {transition.next_state.value}"
            )
            state = transition.next_state

    def step(self, state: ResolverState, context: ResolutionContext) -> Transition:
        return self._handlers[state](context)

    # ---------------------------------------------------------------- states

    def _cached(self, context: ResolutionContext) -> Transition:
        if self.cache is None:
            return Transition.advance(ResolverState.LOCAL_EXACT)
        entry = self.cache.get(context.request.signature)
        if entry is None:
            return Transition.advance(ResolverState.LOCAL_EXACT)

        result = self._build_result(
            context,
            entry.descriptor,
            source=entry.source,
            score=entry.compatibility_score,
            tier=self._cached_tier(entry.source, entry.compatibility_score),
            state=ResolverState.CACHED,
            reason=entry.substitution_reason,
            warnings=entry.warnings,
        )
        return Transition.finish(result, from_cache=True)

    def _local_exact(self, context: ResolutionContext) -> Transition:
        candidate = self.aggregator.local_exact(context.request, exclude=self._exclusion(context))
        if candidate is None:
            return Transition.advance(ResolverState.LOCAL_SIMILAR)
        return Transition.finish(
            self._result_from_candidate(context, candidate, ResolverState.LOCAL_EXACT)
        )

    def _local_similar(self, context: ResolutionContext) -> Transition:
        ranked = self.aggregator.local_candidates(
            context.request, context.target_metrics, exclude=self._exclusion(context)
        )
        accepted = self._accept(context, ranked)
        if accepted is None:
            return Transition.advance(ResolverState.WEB_CACHED)
        return Transition.finish(
            self._result_from_candidate(context, accepted, ResolverState.LOCAL_SIMILAR)
        )

    def _web_cached(self, context: ResolutionContext) -> Transition:
        ranked = self.aggregator.web_cached_candidates(
            context.request, context.target_metrics, exclude=self._exclusion(context)
        )
        accepted = self._accept(context, ranked)
        if accepted is None:
            return Transition.advance(ResolverState.WEB_LIVE)
        return Transition.finish(
            self._result_from_candidate(context, accepted, ResolverState.WEB_CACHED)
        )

    def _web_live(self, context: ResolutionContext) -> Transition:
        if not context.use_internet or not self.config.use_open_fonts or not self.aggregator.providers:
            return Transition.advance(ResolverState.METRIC_TWIN)

        outcome = self.aggregator.live_search(
            context.request,
            context.target_metrics,
            exclude=self._exclusion(context),
            is_cancelled=context.is_cancelled,
        )
        context.warnings.extend(outcome.warnings)

        self.remember_live_results(outcome)

        winner = outcome.winner
        if winner is None or not self._tier_allowed(context, winner):
            return Transition.advance(ResolverState.METRIC_TWIN)
        return Transition.finish(self._result_from_candidate(context, winner, ResolverState.WEB_LIVE))

    def remember_live_results(self, outcome: LiveSearchOutcome) -> None:
        """Store complete provider responses in the cache, grouped by family."""
        if self.cache is None:
            return
        with self.cache.batch():
            for descriptors in outcome.completed.values():
                by_family: dict[str, list[FontDescriptor]] = {}
                for descriptor in descriptors:
                    by_family.setdefault(descriptor.family, []).append(descriptor)
                for family, group in by_family.items():
                    self.cache.put_web_results(family, group)

    def _metric_twin(self, context: ResolutionContext) -> Transition:
        if not self.config.allow_substitution:
            return Transition.advance(ResolverState.EXHAUSTED)

        exclude = self._exclusion(context)
        local_fonts = [
            font
            for font in self.aggregator.local_index.all()
            if self.aggregator.eligible(font.descriptor, exclude)
        ]
        if not local_fonts:
            return Transition.advance(ResolverState.EXHAUSTED)

        request = context.request
        target = context.target_metrics
        assumed_from = None
        if target is None:
            target, assumed_from = self.assumed_metrics(request)

        with_metrics = [font for font in local_fonts if font.descriptor.metrics is not None]
        if with_metrics:
            twin, distance = self._closest_by_metrics(request, target, with_metrics)
            similarity = self.scorer.score(target, twin.descriptor.metrics)
            basis = "known" if assumed_from is None else f"assumed ({assumed_from})"
            warning = (
                f"requested font not found locally; substituted via metric-twin matching, "
                f"deviation {distance:.2f} from {basis} metrics of {request.family}"
            )
            reason = self._twin_reason(context)
        else:
            twin = self._fallback_without_metrics(request, local_fonts)
            similarity = 0.0
            warning = (
                f"requested font not found locally and no local metrics are available; "
                f"substituted with {twin.descriptor.family}"
            )
            reason = (
                SubstitutionReason.USER_PREFERENCE
                if self.scorer.preferred_rank(twin.descriptor.family) is not None
                else self._twin_reason(context)
            )

        score = 1.0 if request.matches(twin.descriptor) else min(similarity, NON_EXACT_CEILING)
        result = self._build_result(
            context,
            twin.descriptor,
            source=FontSource.SUBSTITUTED,
            score=score,
            tier=MatchTier.SUBSTITUTED,
            state=ResolverState.METRIC_TWIN,
            reason=reason,
            warnings=[warning],
        )
        return Transition.finish(result)

    def _exhausted(self, context: ResolutionContext) -> Transition:
        if not self.config.allow_substitution:
            reason = "no matching font and substitution is disallowed"
        else:
            reason = "local font index is empty"
        raise FontNotFoundError(context.request.original_name, reason)

    # -------------------------------------------------------- metric twins

    def assumed_metrics(self, request: FontRequest) -> tuple[FontMetrics, str]:
        """Metrics to aim for when the requested font's own metrics are unknown."""
        web_index = self.aggregator.web_index
        names = well_known_substitutes(request.family) + list(self.config.preferred_families)
        for name in names:
            local = [
                f.descriptor
                for f in self.aggregator.local_index.by_family(name)
                if f.descriptor.metrics is not None
            ]
            if local:
                closest = min(
                    local,
                    key=lambda d: (d.italic != request.italic, abs(d.weight - request.weight)),
                )
                return closest.metrics, name
            probe = normalize(name).model_copy(
                update={"weight": request.weight, "italic": request.italic}
            )
            metrics = web_index.metrics_for(probe)
            if metrics is not None:
                return metrics, name
        if request.monospaced:
            return GENERIC_MONO_METRICS, "generic monospace"
        return GENERIC_SANS_METRICS, "generic sans"

    def _closest_by_metrics(
        self, request: FontRequest, target: FontMetrics, fonts: list[ScannedFont]
    ) -> tuple[ScannedFont, float]:
        def key(font: ScannedFont):
            descriptor = font.descriptor
            rank = self.scorer.preferred_rank(descriptor.family)
            return (
                round(self.scorer.distance(target, descriptor.metrics), 6),
                descriptor.italic != request.italic,
                abs(descriptor.weight - request.weight),
                rank if rank is not None else len(self.config.preferred_families),
                descriptor.family_key,
                descriptor.path or "",
            )

        twin = min(fonts, key=key)
        return twin, self.scorer.distance(target, twin.descriptor.metrics)

    def _fallback_without_metrics(self, request: FontRequest, fonts: list[ScannedFont]) -> ScannedFont:
        order = well_known_substitutes(request.family) + list(self.config.preferred_families)
        ranks = {normalize(name).family_key: i for i, name in enumerate(order)}

        def key(font: ScannedFont):
            descriptor = font.descriptor
            return (
                ranks.get(descriptor.family_key, len(ranks)),
                descriptor.italic != request.italic,
                abs(descriptor.weight - request.weight),
                descriptor.family_key,
                descriptor.path or "",
            )

        return min(fonts, key=key)

    def _twin_reason(self, context: ResolutionContext) -> SubstitutionReason:
        if context.license_skipped:
            return SubstitutionReason.LICENSE_RESTRICTION
        if self.aggregator.local_index.by_family(context.request.family):
            return SubstitutionReason.METRICS_MISMATCH
        return SubstitutionReason.FONT_NOT_FOUND

    # --------------------------------------------------------------- helpers

    @staticmethod
    def _cached_tier(source: FontSource, score: float) -> MatchTier:
        if source == FontSource.SUBSTITUTED:
            return MatchTier.SUBSTITUTED
        return classify_tier(score) or MatchTier.SUBSTITUTED

    def _tier_allowed(self, context: ResolutionContext, candidate: ScoredCandidate) -> bool:
        tier = classify_tier(candidate.score)
        if tier == MatchTier.EXACT:
            return True
        if tier == MatchTier.SIMILAR:
            same_family = candidate.descriptor.family_key == context.request.family_key
            return same_family or self.config.allow_substitution
        return False

    def _accept(
        self, context: ResolutionContext, ranked: list[ScoredCandidate]
    ) -> ScoredCandidate | None:
        for candidate in ranked:
            if classify_tier(candidate.score) is None:
                break
            if self._tier_allowed(context, candidate):
                return candidate
        return None

    def _exclusion(self, context: ResolutionContext):
        if self.config.license_policy != LicensePolicy.SUBSTITUTE:
            return None

        def exclude(descriptor: FontDescriptor) -> bool:
            flagged = self.license_analyzer.assess(descriptor).flagged
            if flagged and descriptor.family_key == context.request.family_key:
                context.license_skipped = True
            return flagged

        return exclude

    def _result_from_candidate(
        self, context: ResolutionContext, candidate: ScoredCandidate, state: ResolverState
    ) -> ResolutionResult:
        tier = MatchTier.EXACT if candidate.score >= 1.0 else classify_tier(candidate.score)
        warnings = []
        if candidate.score < 1.0:
            local = state in (ResolverState.LOCAL_EXACT, ResolverState.LOCAL_SIMILAR)
            where = "locally" if local else "in web sources"
            warnings.append(
                f"exact font {context.request.normalized_name} not found; using "
                f"{candidate.descriptor.family} {candidate.descriptor.weight}"
                f"{' italic' if candidate.descriptor.italic else ''} found {where} "
                f"({tier.value} tier, score {candidate.score:.2f})"
            )
        reason = None
        if candidate.descriptor.family_key != context.request.family_key:
            reason = (
                SubstitutionReason.LICENSE_RESTRICTION
                if context.license_skipped
                else SubstitutionReason.FONT_NOT_FOUND
            )
        return self._build_result(
            context,
            candidate.descriptor,
            source=candidate.source,
            score=candidate.score,
            tier=tier,
            state=state,
            reason=reason,
            warnings=warnings,
        )

    def _build_result(
        self,
        context: ResolutionContext,
        descriptor: FontDescriptor,
        *,
        source: FontSource,
        score: float,
        tier: MatchTier,
        state: ResolverState,
        reason: SubstitutionReason | None,
        warnings: list[str],
    ) -> ResolutionResult:
        substituted = descriptor.family_key != context.request.family_key
        return ResolutionResult(
            original_name=context.request.original_name,
            resolved=descriptor,
            source=source,
            substituted=substituted,
            substitution_reason=reason if substituted else None,
            compatibility_score=score,
            warnings=list(warnings),
            tier=tier,
            resolved_by=state,
        )

    def _finalize(self, transition: Transition, context: ResolutionContext) -> ResolutionResult:
        result = transition.result
        descriptor, assessment = self.license_analyzer.annotate(result.resolved)

        if assessment.flagged and self.config.license_policy == LicensePolicy.REQUIRE:
            raise LicenseRequiredError(descriptor.family, assessment.info.name)

        if transition.from_cache:
            return result.model_copy(update={"resolved": descriptor})

        warnings = list(context.warnings) + list(result.warnings)
        licensing_requested = result.substitution_reason == SubstitutionReason.LICENSE_RESTRICTION
        if assessment.flagged and not licensing_requested:
            warnings.extend(f"license restriction: {w}" for w in assessment.warnings)
        if result.compatibility_score < 1.0 and not warnings:
            warnings.append(
                f"resolved {context.request.normalized_name} with score {result.compatibility_score:.2f}"
            )

        final = result.model_copy(update={"resolved": descriptor, "warnings": warnings})
        if self.cache is not None:
            self.cache.put(
                context.request.signature,
                final.resolved,
                name=context.request.normalized_name,
                source=final.source,
                compatibility_score=final.compatibility_score,
                substitution_reason=final.substitution_reason,
                warnings=final.warnings,
            )
        return final
