"""
Metric Scorer
=============

Similarity scoring between fonts.

Two layers:
- ``score``: pure metric similarity between two ``FontMetrics``
- ``MetricScorer.score_candidate``: blends family-name similarity, style
  fit and metric similarity into a compatibility score for a request

Name similarity gates candidacy (below ``NAME_GATE`` a candidate is not
scored at all); style fit and metrics rank within the name-similar set.
"""

import logging
import math

import numpy as np

from ..core.models import (
    FontDescriptor,
    FontMetrics,
    FontRequest,
    FontSource,
    MatchTier,
    ScoredCandidate,
    TieredMatches,
    comparison_key,
)
from .utils import edit_similarity, levenshtein, name_tokens

logger = logging.getLogger(__name__)

# ascender, descender, xHeight, capHeight, averageWidth, widthFactor
METRIC_WEIGHTS = np.array([1.0, 1.0, 2.0, 2.0, 1.5, 1.0], dtype=np.float64)

# Compatibility blend; the three weights sum to 1.0
NAME_WEIGHT = 0.70
STYLE_WEIGHT = 0.20
METRIC_WEIGHT = 0.10

NAME_GATE = 0.5
CONTAINMENT_SIMILARITY = 0.85
MIN_CONTAINMENT_LENGTH = 4
NON_EXACT_CEILING = 0.99

EXACT_THRESHOLD = 0.90
SIMILAR_THRESHOLD = 0.80

DEFAULT_MAX_DEVIATION = 0.2


def metric_distance(a: FontMetrics, b: FontMetrics) -> float:
    """Weighted root-mean-square distance between em-normalized metric vectors."""
    diff = a.normalized_vector() - b.normalized_vector()
    return float(math.sqrt(float(np.sum(METRIC_WEIGHTS * diff * diff)) / float(METRIC_WEIGHTS.sum())))


def similarity_from_distance(distance: float, max_deviation: float) -> float:
    if max_deviation <= 0:
        return 1.0 if distance == 0 else 0.0
    return 1.0 - min(1.0, distance / max_deviation)


def score(a: FontMetrics, b: FontMetrics, max_deviation: float = DEFAULT_MAX_DEVIATION) -> float:
    """Metric similarity in [0, 1]; symmetric, and 1.0 for identical metrics."""
    return similarity_from_distance(metric_distance(a, b), max_deviation)


def classify_tier(value: float) -> MatchTier | None:
    """Map a compatibility score onto the exact (>=0.90) or similar (>=0.80) tier."""
    if value >= EXACT_THRESHOLD:
        return MatchTier.EXACT
    if value >= SIMILAR_THRESHOLD:
        return MatchTier.SIMILAR
    return None


def partition(candidates: list[ScoredCandidate]) -> TieredMatches:
    """Split ranked candidates into tiers, preserving order; sub-threshold ones are dropped."""
    matches = TieredMatches()
    for candidate in candidates:
        tier = classify_tier(candidate.score)
        if tier == MatchTier.EXACT:
            matches.exact_tier.append(candidate)
        elif tier == MatchTier.SIMILAR:
            matches.similar_tier.append(candidate)
    return matches


def weight_similarity(a: int, b: int) -> float:
    diff = abs(a - b)
    if diff == 0:
        return 1.0
    if diff <= 100:
        return 0.8
    if diff <= 200:
        return 0.6
    if diff <= 300:
        return 0.4
    return 0.2


class MetricScorer:
    """Scores and ranks candidate fonts against a request."""

    def __init__(
        self,
        max_metrics_deviation: float = DEFAULT_MAX_DEVIATION,
        preferred_families: list[str] | None = None,
        name_weight: float = NAME_WEIGHT,
        style_weight: float = STYLE_WEIGHT,
        metric_weight: float = METRIC_WEIGHT,
        name_gate: float = NAME_GATE,
    ):
        self.max_metrics_deviation = max_metrics_deviation
        self.name_weight = name_weight
        self.style_weight = style_weight
        self.metric_weight = metric_weight
        self.name_gate = name_gate
        self._preferred = {
            comparison_key(name): rank for rank, name in enumerate(preferred_families or [])
        }

    def score(self, a: FontMetrics, b: FontMetrics) -> float:
        return score(a, b, self.max_metrics_deviation)

    def distance(self, a: FontMetrics, b: FontMetrics) -> float:
        return metric_distance(a, b)

    def preferred_rank(self, family: str) -> int | None:
        return self._preferred.get(comparison_key(family))

    def name_similarity(self, a: str, b: str) -> float:
        """Symmetric family-name similarity: key equality, containment, token overlap, edit ratio."""
        key_a, key_b = comparison_key(a), comparison_key(b)
        if not key_a or not key_b:
            return 0.0
        if key_a == key_b:
            return 1.0

        best = edit_similarity(a, b)

        shorter, longer = sorted((key_a, key_b), key=len)
        if len(shorter) >= MIN_CONTAINMENT_LENGTH and shorter in longer:
            best = max(best, CONTAINMENT_SIMILARITY)

        tokens_a, tokens_b = name_tokens(a), name_tokens(b)
        union = tokens_a | tokens_b
        if union:
            best = max(best, len(tokens_a & tokens_b) / len(union))

        return min(best, NON_EXACT_CEILING)

    def style_fit(self, request: FontRequest, descriptor: FontDescriptor) -> float:
        fit = 0.6 * weight_similarity(request.weight, descriptor.weight)
        fit += 0.4 * (1.0 if request.italic == descriptor.italic else 0.4)
        if request.monospaced and not descriptor.monospaced:
            fit *= 0.5
        return fit

    def score_candidate(
        self,
        request: FontRequest,
        descriptor: FontDescriptor,
        target_metrics: FontMetrics | None = None,
        source: FontSource = FontSource.SYSTEM,
        in_cache: bool = False,
    ) -> ScoredCandidate | None:
        """
        Score one candidate for a request.

        Args:
            request: Normalized request
            descriptor: Candidate font
            target_metrics: Known or assumed metrics of the requested font
            source: Tier source the candidate came from
            in_cache: Whether the candidate is already a cached resolution

        Returns:
            ScoredCandidate, or None when the family name is too dissimilar
        """
        preferred_rank = self.preferred_rank(descriptor.family)

        if request.matches(descriptor):
            return ScoredCandidate(
                descriptor=descriptor,
                score=1.0,
                name_similarity=1.0,
                metric_similarity=None,
                source=source,
                in_cache=in_cache,
                preferred_rank=preferred_rank,
            )

        name_sim = self.name_similarity(request.family, descriptor.family)
        if name_sim < self.name_gate:
            return None

        metric_sim = None
        if target_metrics is not None and descriptor.metrics is not None:
            metric_sim = self.score(target_metrics, descriptor.metrics)

        # Absent metrics contribute zero similarity
        blended = (
            self.name_weight * name_sim
            + self.style_weight * self.style_fit(request, descriptor)
            + self.metric_weight * (metric_sim or 0.0)
        )
        return ScoredCandidate(
            descriptor=descriptor,
            score=max(0.0, min(blended, NON_EXACT_CEILING)),
            name_similarity=name_sim,
            metric_similarity=metric_sim,
            source=source,
            in_cache=in_cache,
            preferred_rank=preferred_rank,
        )

    def tie_break_key(self, request: FontRequest, candidate: ScoredCandidate) -> tuple:
        """Higher score, then cached, then preferred, then closest name, then lexical."""
        descriptor = candidate.descriptor
        return (
            -round(candidate.score, 6),
            not candidate.in_cache,
            candidate.preferred_rank if candidate.preferred_rank is not None else math.inf,
            levenshtein(request.family_key, descriptor.family_key),
            descriptor.family_key,
            descriptor.weight,
            descriptor.italic,
            descriptor.postscript_name or "",
            descriptor.path or "",
        )

    def rank(self, request: FontRequest, candidates: list[ScoredCandidate]) -> list[ScoredCandidate]:
        ranked = sorted(candidates, key=lambda c: self.tie_break_key(request, c))
        if ranked:
            logger.debug(
                f"Ranked {len(ranked)} candidates for {request.normalized_name}: "
                f"best {ranked[0].descriptor} ({ranked[0].score:.3f})"
            )
        return ranked
