"""Resolution Module
=================

Source aggregation, the dual-layer cache, the tiered resolver state machine
and the resolution entry point.
"""

from .aggregator import CachedWebIndex, LocalFontIndex, SourceAggregator
from .cache import CacheEntry, CacheStats, FontCache
from .engine import FontResolver, LicenseReport
from .tiers import ResolutionContext, TieredResolver, Transition

__all__ = [
    "CacheEntry",
    "CacheStats",
    "CachedWebIndex",
    "FontCache",
    "FontResolver",
    "LicenseReport",
    "LocalFontIndex",
    "ResolutionContext",
    "SourceAggregator",
    "TieredResolver",
    "Transition",
]
