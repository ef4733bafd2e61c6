"""
Source Aggregator
=================

Collects candidate fonts from the three sources the resolver consults:
- the local index (system and user fonts, scanned once per session)
- the cached-web index (signature database plus remembered provider results)
- live web providers, queried in parallel with a shared deadline
"""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field

from ..core.exceptions import CancelledResolutionError, ProviderError, ProviderTimeoutError
from ..core.models import (
    FontDescriptor,
    FontMetrics,
    FontRequest,
    FontSource,
    ScoredCandidate,
    comparison_key,
)
from ..fonts.providers import BaseFontProvider, ProviderCandidate
from ..fonts.scorer import NON_EXACT_CEILING, SIMILAR_THRESHOLD, MetricScorer
from ..fonts.signatures import SignatureDatabase
from ..fonts.system import ScannedFont, SystemFontScanner
from .cache import FontCache, descriptor_identity

logger = logging.getLogger(__name__)

CANCEL_POLL_SECONDS = 0.05

CandidateFilter = Callable[[FontDescriptor], bool]


class LocalFontIndex:
    """Index of locally installed fonts. The scan runs once, on first use."""

    def __init__(self, scanner: SystemFontScanner | None = None, fonts: list[ScannedFont] | None = None):
        self.scanner = scanner
        self._lock = threading.Lock()
        self._fonts: list[ScannedFont] | None = None
        self._by_family: dict[str, list[ScannedFont]] = {}
        if fonts is not None:
            self._build(fonts)

    @classmethod
    def from_descriptors(
        cls, descriptors: list[FontDescriptor], source: FontSource = FontSource.SYSTEM
    ) -> "LocalFontIndex":
        return cls(fonts=[ScannedFont(descriptor=d, source=source) for d in descriptors])

    def _build(self, fonts: list[ScannedFont]) -> None:
        by_family: dict[str, list[ScannedFont]] = {}
        for font in fonts:
            by_family.setdefault(font.descriptor.family_key, []).append(font)
        self._by_family = by_family
        self._fonts = list(fonts)

    def _ensure_built(self) -> None:
        with self._lock:
            if self._fonts is not None:
                return
            if self.scanner is None:
                self._build([])
                return
            started = time.monotonic()
            self._build(self.scanner.scan())
            logger.info(
                f"Local font index built: {len(self._fonts)} faces, {len(self._by_family)} families "
                f"in {time.monotonic() - started:.2f}s"
            )

    def refresh(self) -> None:
        with self._lock:
            self._fonts = None
        self._ensure_built()

    def all(self) -> list[ScannedFont]:
        self._ensure_built()
        return list(self._fonts)

    def by_family(self, family: str) -> list[ScannedFont]:
        self._ensure_built()
        return list(self._by_family.get(comparison_key(family), []))

    def families(self) -> list[str]:
        self._ensure_built()
        return sorted({fonts[0].descriptor.family for fonts in self._by_family.values()})

    def is_empty(self) -> bool:
        self._ensure_built()
        return not self._fonts

    def __len__(self) -> int:
        self._ensure_built()
        return len(self._fonts)


class CachedWebIndex:
    """Previously known web fonts: the signature database plus remembered provider results."""

    def __init__(self, cache: FontCache | None = None, database: SignatureDatabase | None = None):
        self.cache = cache
        self.database = database

    def candidates(self, family: str) -> list[FontDescriptor]:
        found: dict[tuple, FontDescriptor] = {}
        if self.database is not None:
            for descriptor in self.database.descriptors_for(family):
                found[descriptor_identity(descriptor)] = descriptor
        if self.cache is not None:
            for descriptor in self.cache.web_results(family):
                found[descriptor_identity(descriptor)] = descriptor
        return list(found.values())

    def all(self) -> list[FontDescriptor]:
        found: dict[tuple, FontDescriptor] = {}
        if self.database is not None:
            for descriptor in self.database.descriptors():
                found[descriptor_identity(descriptor)] = descriptor
        if self.cache is not None:
            for descriptor in self.cache.all_web_results():
                found[descriptor_identity(descriptor)] = descriptor
        return list(found.values())

    def metrics_for(self, request: FontRequest) -> FontMetrics | None:
        """Known metrics of the requested family, closest style first."""
        if self.database is not None:
            metrics = self.database.metrics_for(request)
            if metrics is not None:
                return metrics
        if self.cache is not None:
            variants = [d for d in self.cache.web_results(request.family) if d.metrics is not None]
            if variants:
                best = min(
                    variants,
                    key=lambda d: (d.italic != request.italic, abs(d.weight - request.weight)),
                )
                return best.metrics
        return None


@dataclass
class LiveSearchOutcome:
    """Result of one live fan-out across providers."""

    winner: ScoredCandidate | None = None
    candidates: list[ScoredCandidate] = field(default_factory=list)
    completed: dict[str, list[FontDescriptor]] = field(default_factory=dict)
    timed_out: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class SourceAggregator:
    """Queries and scores candidates from every font source."""

    def __init__(
        self,
        local_index: LocalFontIndex,
        web_index: CachedWebIndex,
        scorer: MetricScorer,
        providers: list[BaseFontProvider] | None = None,
        cache: FontCache | None = None,
        provider_timeout: float = 2.0,
        require_metrics: bool = False,
    ):
        self.local_index = local_index
        self.web_index = web_index
        self.scorer = scorer
        self.providers = list(providers or [])
        self.cache = cache
        self.provider_timeout = provider_timeout
        self.require_metrics = require_metrics

    # ---------------------------------------------------------------- local

    def local_exact(
        self, request: FontRequest, exclude: CandidateFilter | None = None
    ) -> ScoredCandidate | None:
        """Local font with the same normalized family, weight and style, if any."""
        matches = [
            font
            for font in self.local_index.by_family(request.family)
            if request.matches(font.descriptor) and self.eligible(font.descriptor, exclude)
        ]
        if not matches:
            return None
        cached = self._cached_identities()
        scored = [
            self.scorer.score_candidate(
                request,
                font.descriptor,
                source=font.source,
                in_cache=descriptor_identity(font.descriptor) in cached,
            )
            for font in matches
        ]
        return self.scorer.rank(request, scored)[0]

    def local_candidates(
        self,
        request: FontRequest,
        target_metrics: FontMetrics | None = None,
        exclude: CandidateFilter | None = None,
    ) -> list[ScoredCandidate]:
        cached = self._cached_identities()
        scored = []
        for font in self.local_index.all():
            if not self.eligible(font.descriptor, exclude):
                continue
            candidate = self.scorer.score_candidate(
                request,
                font.descriptor,
                target_metrics=target_metrics,
                source=font.source,
                in_cache=descriptor_identity(font.descriptor) in cached,
            )
            if candidate is not None:
                scored.append(candidate)
        return self.scorer.rank(request, scored)

    # ------------------------------------------------------------ cached web

    def web_cached_candidates(
        self,
        request: FontRequest,
        target_metrics: FontMetrics | None = None,
        exclude: CandidateFilter | None = None,
        family_only: bool = True,
    ) -> list[ScoredCandidate]:
        descriptors = (
            self.web_index.candidates(request.family) if family_only else self.web_index.all()
        )
        cached = self._cached_identities()
        scored = []
        for descriptor in descriptors:
            if not self.eligible(descriptor, exclude):
                continue
            candidate = self.scorer.score_candidate(
                request,
                descriptor,
                target_metrics=target_metrics,
                source=FontSource.OPEN_REPOSITORY,
                in_cache=descriptor_identity(descriptor) in cached,
            )
            if candidate is not None:
                scored.append(candidate)
        return self.scorer.rank(request, scored)

    # -------------------------------------------------------------- live web

    def live_search(
        self,
        request: FontRequest,
        target_metrics: FontMetrics | None = None,
        exclude: CandidateFilter | None = None,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> LiveSearchOutcome:
        """
        Query all providers in parallel; the first qualifying candidate wins.

        Every provider gets the same deadline. Once a winner is chosen, or the
        deadline passes, stragglers are signalled to stop and their results are
        never read.

        Args:
            request: Normalized request
            target_metrics: Known or assumed metrics for scoring
            exclude: Predicate rejecting candidates
            is_cancelled: Caller cancellation check, polled while waiting

        Returns:
            LiveSearchOutcome with the winner and every complete provider response

        Raises:
            ResolutionCancelledError: If ``is_cancelled`` reports true while waiting
        """
        outcome = LiveSearchOutcome()
        if not self.providers:
            return outcome

        stop = threading.Event()
        executor = ThreadPoolExecutor(
            max_workers=len(self.providers), thread_name_prefix="font-provider"
        )
        futures: dict[Future, BaseFontProvider] = {
            executor.submit(provider.search, request, self.provider_timeout, stop): provider
            for provider in self.providers
        }
        pending = set(futures)
        deadline = time.monotonic() + self.provider_timeout

        try:
            while pending and outcome.winner is None:
                if is_cancelled is not None and is_cancelled():
                    raise CancelledResolutionError(request.original_name)
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                done, pending = wait(
                    pending, timeout=min(remaining, CANCEL_POLL_SECONDS), return_when=FIRST_COMPLETED
                )
                # Resolve same-batch completions in provider order for determinism
                for future in sorted(done, key=lambda f: self.providers.index(futures[f])):
                    self._collect(futures[future], future, request, target_metrics, exclude, outcome)

            for future in pending:
                provider = futures[future]
                future.cancel()
                if outcome.winner is None:
                    outcome.timed_out.append(provider.name)
                    outcome.warnings.append(
                        f"provider {provider.name} timed out after {self.provider_timeout}s"
                    )
                    logger.warning(f"Provider {provider.name} timed out for {request.family}")
        finally:
            stop.set()
            executor.shutdown(wait=False, cancel_futures=True)

        return outcome

    def _collect(
        self,
        provider: BaseFontProvider,
        future: Future,
        request: FontRequest,
        target_metrics: FontMetrics | None,
        exclude: CandidateFilter | None,
        outcome: LiveSearchOutcome,
    ) -> None:
        try:
            results = future.result()
        except ProviderTimeoutError as e:
            outcome.timed_out.append(provider.name)
            outcome.warnings.append(str(e))
            logger.warning(f"{e}")
            return
        except ProviderError as e:
            outcome.failed.append(provider.name)
            outcome.warnings.append(str(e))
            logger.warning(f"{e}")
            return
        except Exception as e:
            outcome.failed.append(provider.name)
            outcome.warnings.append(f"provider {provider.name} failed: {e}")
            logger.warning(f"Provider {provider.name} raised unexpectedly: {e}")
            return

        outcome.completed[provider.name] = [r.descriptor for r in results]
        scored = [
            s
            for s in (self.score_provider_candidate(request, r, target_metrics) for r in results)
            if s is not None and s.score >= SIMILAR_THRESHOLD and self.eligible(s.descriptor, exclude)
        ]
        outcome.candidates.extend(scored)
        if scored and outcome.winner is None:
            outcome.winner = self.scorer.rank(request, scored)[0]
            logger.info(
                f"Provider {provider.name} answered {request.family} with "
                f"{outcome.winner.descriptor} ({outcome.winner.score:.2f})"
            )

    def score_provider_candidate(
        self,
        request: FontRequest,
        result: ProviderCandidate,
        target_metrics: FontMetrics | None = None,
    ) -> ScoredCandidate | None:
        """Score a provider hit, trusting a declared similarity when present."""
        computed = self.scorer.score_candidate(
            request, result.descriptor, target_metrics=target_metrics, source=FontSource.OPEN_REPOSITORY
        )
        if result.declared_similarity is None or request.matches(result.descriptor):
            return computed
        declared = max(0.0, min(result.declared_similarity, NON_EXACT_CEILING))
        return ScoredCandidate(
            descriptor=result.descriptor,
            score=declared,
            name_similarity=computed.name_similarity if computed else 0.0,
            metric_similarity=computed.metric_similarity if computed else None,
            source=FontSource.OPEN_REPOSITORY,
            preferred_rank=self.scorer.preferred_rank(result.descriptor.family),
        )

    # --------------------------------------------------------------- helpers

    def eligible(self, descriptor: FontDescriptor, exclude: CandidateFilter | None) -> bool:
        if self.require_metrics and descriptor.metrics is None:
            return False
        return not (exclude is not None and exclude(descriptor))

    def _cached_identities(self) -> set[tuple]:
        return self.cache.cached_identities() if self.cache is not None else set()
