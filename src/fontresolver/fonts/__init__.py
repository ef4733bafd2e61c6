"""Font Analysis Module
====================

Name normalization, metric scoring, license classification, local font
scanning, the signature database and live web providers.
"""

from .license import LicenseAnalyzer, LicenseAssessment, LicenseRisk
from .normalizer import normalize
from .providers import BaseFontProvider, FontsourceProvider, GoogleFontsProvider, ProviderCandidate
from .scorer import MetricScorer, classify_tier, partition, score
from .signatures import SignatureDatabase, SignatureEntry
from .system import FontToolsMetricsExtractor, ScannedFont, SystemFontScanner
from .utils import validate_font_file

__all__ = [
    "BaseFontProvider",
    "FontToolsMetricsExtractor",
    "FontsourceProvider",
    "GoogleFontsProvider",
    "LicenseAnalyzer",
    "LicenseAssessment",
    "LicenseRisk",
    "MetricScorer",
    "ProviderCandidate",
    "ScannedFont",
    "SignatureDatabase",
    "SignatureEntry",
    "SystemFontScanner",
    "classify_tier",
    "normalize",
    "partition",
    "score",
    "validate_font_file",
]
