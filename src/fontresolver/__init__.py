"""Font Resolution Engine
======================

Resolves arbitrary, possibly malformed font names (as embedded in PDFs and
stylesheets) to the best available physical font, without silently shifting
glyph metrics when a substitution is needed.

Resolution walks a tiered fallback: cache, local fonts, previously fetched
web results, live web providers and finally metric-twin substitution.
"""

__version__ = "1.0.0"
__author__ = "Font Resolver Team"

from .core.config import LicensePolicy, ResolverConfig
from .core.exceptions import FontResolverError, InvalidFontNameError, NotFoundError
from .core.models import (
    FontDescriptor,
    FontMetrics,
    FontRequest,
    ResolutionResult,
    TieredMatches,
)
from .fonts.normalizer import normalize
from .resolution.engine import FontResolver

__all__ = [
    "FontDescriptor",
    "FontMetrics",
    "FontRequest",
    "FontResolver",
    "FontResolverError",
    "InvalidFontNameError",
    "LicensePolicy",
    "NotFoundError",
    "ResolutionResult",
    "ResolverConfig",
    "TieredMatches",
    "normalize",
]
