"""Core components for font resolution."""

from .config import LicensePolicy, ResolverConfig
from .exceptions import (
    CacheError,
    DatabaseError,
    FontResolverError,
    InvalidFontNameError,
    LicenseRestrictionError,
    NotFoundError,
    ParseError,
    PlatformNotSupportedError,
    ProviderTimeoutError,
    UnsupportedFormatError,
)
from .models import (
    BatchItemResult,
    BatchResolutionResult,
    FontCategory,
    FontDescriptor,
    FontFormat,
    FontMetrics,
    FontRequest,
    FontSource,
    FontStyle,
    LicenseInfo,
    MatchTier,
    ResolutionResult,
    ResolverState,
    ScoredCandidate,
    SubstitutionReason,
    TieredMatches,
)

__all__ = [
    "BatchItemResult",
    "BatchResolutionResult",
    "CacheError",
    "DatabaseError",
    "FontCategory",
    "FontDescriptor",
    "FontFormat",
    "FontMetrics",
    "FontRequest",
    "FontResolverError",
    "FontSource",
    "FontStyle",
    "InvalidFontNameError",
    "LicenseInfo",
    "LicensePolicy",
    "LicenseRestrictionError",
    "MatchTier",
    "NotFoundError",
    "ParseError",
    "PlatformNotSupportedError",
    "ProviderTimeoutError",
    "ResolutionResult",
    "ResolverConfig",
    "ResolverState",
    "ScoredCandidate",
    "SubstitutionReason",
    "TieredMatches",
    "UnsupportedFormatError",
]
