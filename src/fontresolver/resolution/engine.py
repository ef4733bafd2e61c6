"""Font Resolution Engine
======================

Entry point wiring the normalizer, the source aggregator, the tiered resolver,
the dual-layer cache and the license analyzer together.

Key behaviors:
- At most one in-flight resolution per normalized signature; concurrent
  callers for the same signature share the single outcome
- Batch resolution is best-effort and reports failures per item
- Shutdown cancels in-progress live searches and flushes the cache
"""

import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..core.config import ResolverConfig
from ..core.exceptions import CancelledResolutionError, MetricsNotFoundError
from ..core.models import (
    FontDescriptor,
    FontRequest,
    ResolutionResult,
    ScoredCandidate,
    TieredMatches,
)
from ..fonts.license import LicenseAnalyzer, LicenseAssessment
from ..fonts.normalizer import normalize
from ..fonts.providers import BaseFontProvider, build_providers
from ..fonts.scorer import MetricScorer, partition
from ..fonts.signatures import SignatureDatabase
from ..fonts.system import FontToolsMetricsExtractor, SystemFontScanner
from .aggregator import CachedWebIndex, LocalFontIndex, SourceAggregator
from .cache import CacheStats, FontCache, descriptor_identity
from .tiers import TieredResolver

logger = logging.getLogger(__name__)


@dataclass
class LicenseReport:
    """License assessment of the font a name resolves to."""

    font_name: str
    resolved: FontDescriptor
    assessment: LicenseAssessment
    alternatives: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        info = self.assessment.info
        return {
            "font_name": self.font_name,
            "resolved_family": self.resolved.family,
            "license": info.name,
            "url": info.url,
            "allows_embedding": info.allows_embedding,
            "allows_modification": info.allows_modification,
            "requires_attribution": info.requires_attribution,
            "risk": self.assessment.risk.value,
            "flagged": self.assessment.flagged,
            "warnings": list(self.assessment.warnings),
            "alternatives": list(self.alternatives),
        }


class FontResolver:
    """
    Resolves raw font names to the best available physical font.

    All collaborators are injectable; by default the local index scans the
    system and user font directories once, on first use.
    """

    def __init__(
        self,
        config: ResolverConfig | None = None,
        *,
        scanner: SystemFontScanner | None = None,
        providers: list[BaseFontProvider] | None = None,
        cache: FontCache | None = None,
        signature_db: SignatureDatabase | None = None,
        local_index: LocalFontIndex | None = None,
        license_analyzer: LicenseAnalyzer | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ResolverConfig()
        self.cache = cache or FontCache(self.config, clock=clock)
        self.signature_db = signature_db if signature_db is not None else self._load_signature_db()

        if local_index is None:
            scanner = scanner or SystemFontScanner(
                FontToolsMetricsExtractor(),
                search_system=self.config.search_system,
                search_user=self.config.search_user,
                user_font_dirs=self.config.user_font_dirs,
            )
            local_index = LocalFontIndex(scanner)
        self.local_index = local_index

        self.providers = build_providers(self.config) if providers is None else list(providers)
        self.license_analyzer = license_analyzer or LicenseAnalyzer()
        self.scorer = MetricScorer(
            max_metrics_deviation=self.config.max_metrics_deviation,
            preferred_families=self.config.preferred_families,
        )
        self.web_index = CachedWebIndex(self.cache, self.signature_db)
        self.aggregator = SourceAggregator(
            self.local_index,
            self.web_index,
            self.scorer,
            providers=self.providers,
            cache=self.cache,
            provider_timeout=self.config.provider_timeout_seconds,
            require_metrics=self.config.require_metrics,
        )
        self.tiers = TieredResolver(
            self.config, self.aggregator, self.scorer, self.cache, self.license_analyzer
        )

        self._inflight: dict[str, Future] = {}
        self._inflight_lock = threading.Lock()
        self._shutdown = threading.Event()

        logger.info(
            f"FontResolver initialized: providers={[p.name for p in self.providers]}, "
            f"signature_db={len(self.signature_db) if self.signature_db else 0} entries"
        )

    def _load_signature_db(self) -> SignatureDatabase | None:
        path = self.config.signature_db_path
        if path is None:
            return None
        if not Path(path).exists():
            logger.warning(f"Signature database not found: {path}")
            return None
        return SignatureDatabase.load(path)

    # ------------------------------------------------------------ resolution

    def resolve(
        self,
        name: str,
        use_internet: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> ResolutionResult:
        """
        Resolve a raw font name.

        Args:
            name: Font name as embedded in a document or stylesheet
            use_internet: Whether the live web tier may be queried
            cancel_event: Optional event that cancels a live search when set

        Returns:
            ResolutionResult for the best available font

        Raises:
            InvalidFontNameError: If the name is empty after trimming
            NotFoundError: If no font can be produced
            LicenseRestrictionError: If the license policy requires a safe font
            ResolutionCancelledError: If cancelled while searching
        """
        request = normalize(name)
        if self._shutdown.is_set():
            raise CancelledResolutionError(name)

        key = request.signature
        with self._inflight_lock:
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            logger.debug(f"Joining in-flight resolution of {key}")
            shared: ResolutionResult = future.result()
            return shared.model_copy(update={"original_name": name}, deep=True)

        try:
            result = self._resolve_request(request, use_internet, cancel_event)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._inflight_lock:
                self._inflight.pop(key, None)

    def _resolve_request(
        self,
        request: FontRequest,
        use_internet: bool,
        cancel_event: threading.Event | None,
    ) -> ResolutionResult:
        context = self.tiers.new_context(request, use_internet, cancel_event)
        context.cancel_checks.append(self._shutdown.is_set)
        return self.tiers.run(context)

    def resolve_batch(self, names: list[str], use_internet: bool = False, progress_callback=None):
        """Resolve many names; failures are reported per item, never raised."""
        from ..batch.processor import BatchResolver

        batch = BatchResolver(self, max_workers=self.config.max_workers)
        with self.cache.batch():
            return batch.resolve_all(
                names, use_internet=use_internet, progress_callback=progress_callback
            )

    def tiered(self, name: str, use_internet: bool = False) -> TieredMatches:
        """Every candidate at or above the similar threshold, split into exact and similar tiers."""
        request = normalize(name)
        target = self.web_index.metrics_for(request)

        candidates = self.aggregator.local_candidates(request, target)
        candidates += self.aggregator.web_cached_candidates(request, target)
        if use_internet and self.config.use_open_fonts and self.providers:
            outcome = self.aggregator.live_search(
                request, target, is_cancelled=self._shutdown.is_set
            )
            self.tiers.remember_live_results(outcome)
            candidates += outcome.candidates

        return partition(self.scorer.rank(request, self._dedupe(candidates)))

    def find_similar(self, name: str, limit: int = 10) -> list[ScoredCandidate]:
        """Ranked local and cached-web candidates for a name, best first."""
        request = normalize(name)
        target = self.web_index.metrics_for(request)
        candidates = self.aggregator.local_candidates(request, target)
        candidates += self.aggregator.web_cached_candidates(request, target, family_only=False)
        return self.scorer.rank(request, self._dedupe(candidates))[:limit]

    def export_metrics(self, name: str, use_internet: bool = False) -> dict[str, float]:
        """Metrics of the font a name resolves to, as a flat key/value mapping."""
        result = self.resolve(name, use_internet=use_internet)
        metrics = result.resolved.metrics
        if metrics is None and not result.substituted:
            metrics = self.web_index.metrics_for(normalize(name))
        if metrics is None:
            raise MetricsNotFoundError(name)
        return metrics.to_flat_dict()

    def check_license(self, name: str, use_internet: bool = False) -> LicenseReport:
        result = self.resolve(name, use_internet=use_internet)
        assessment = self.license_analyzer.assess(result.resolved)
        alternatives = (
            self.license_analyzer.free_alternatives(result.resolved) if assessment.flagged else []
        )
        return LicenseReport(
            font_name=name,
            resolved=result.resolved,
            assessment=assessment,
            alternatives=alternatives,
        )

    @staticmethod
    def _dedupe(candidates: list[ScoredCandidate]) -> list[ScoredCandidate]:
        best: dict[tuple, ScoredCandidate] = {}
        for candidate in candidates:
            identity = descriptor_identity(candidate.descriptor)
            if identity not in best or candidate.score > best[identity].score:
                best[identity] = candidate
        return list(best.values())

    # ----------------------------------------------------------------- cache

    def pin(self, name: str) -> None:
        self.cache.pin(normalize(name).signature)

    def unpin(self, name: str) -> None:
        self.cache.unpin(normalize(name).signature)

    def remove_from_cache(self, names: list[str]) -> int:
        return self.cache.remove([normalize(name).signature for name in names])

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def cleanup_cache(self, aggressive: bool = False) -> int:
        return self.cache.cleanup(aggressive=aggressive)

    def list_pinned(self) -> list[str]:
        return self.cache.list_pinned()

    def suggest_cache_removal(self, limit: int | None = None) -> list[str]:
        return self.cache.suggest_for_removal(limit)

    # -------------------------------------------------------------- database

    def build_signature_database(self, output: str | Path) -> SignatureDatabase:
        """Write the locally installed fonts to a signature database."""
        database = SignatureDatabase.from_descriptors(
            [font.descriptor for font in self.local_index.all()]
        )
        database.save(output)
        logger.info(f"Wrote signature database with {len(database)} entries to {output}")
        return database

    # ------------------------------------------------------------- lifecycle

    def shutdown(self) -> None:
        """Cancel in-progress live searches, flush the cache and close provider sessions."""
        if self._shutdown.is_set():
            return
        self._shutdown.set()
        self.cache.close()
        for provider in self.providers:
            provider.close()
        logger.info("FontResolver shut down")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
