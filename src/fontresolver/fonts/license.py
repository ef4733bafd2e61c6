"""
License Analyzer
================

Classifies a font's license from declared metadata, known open-source
family names and commercial foundry patterns. The analyzer only annotates;
it never blocks resolution.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from ..core.models import FontCategory, FontDescriptor, LicenseInfo
from .utils import guess_category

logger = logging.getLogger(__name__)


class LicenseRisk(str, Enum):
    OPEN = "open"
    SYSTEM = "system"
    COMMERCIAL = "commercial"
    UNKNOWN = "unknown"


OFL = LicenseInfo(
    name="OFL-1.1",
    url="https://openfontlicense.org",
    allows_embedding=True,
    allows_modification=True,
    requires_attribution=False,
)
APACHE_2 = LicenseInfo(
    name="Apache-2.0",
    url="https://www.apache.org/licenses/LICENSE-2.0",
    allows_embedding=True,
    allows_modification=True,
    requires_attribution=True,
)
UFL = LicenseInfo(
    name="UFL-1.0",
    url="https://ubuntu.com/legal/font-licence",
    allows_embedding=True,
    allows_modification=True,
    requires_attribution=True,
)
BITSTREAM_VERA = LicenseInfo(
    name="Bitstream-Vera",
    url="https://dejavu-fonts.github.io/License.html",
    allows_embedding=True,
    allows_modification=True,
    requires_attribution=False,
)
OS_BUNDLED = LicenseInfo(
    name="Proprietary (bundled with operating system)",
    allows_embedding=True,
    allows_modification=False,
    requires_attribution=False,
)
COMMERCIAL = LicenseInfo(
    name="Commercial",
    allows_embedding=False,
    allows_modification=False,
    requires_attribution=True,
)
UNKNOWN = LicenseInfo(name="Unknown", requires_attribution=False)

OPEN_LICENSE_PATTERN = re.compile(
    r"\b(ofl|sil|apache|mit|bsd|l?gpl|ufl|cc0|public domain)\b", re.IGNORECASE
)

# Leading words of well-known open font project family names
OPEN_FAMILY_HINTS: list[tuple[str, LicenseInfo]] = [
    ("noto", OFL),
    ("roboto", APACHE_2),
    ("open sans", APACHE_2),
    ("droid", APACHE_2),
    ("arimo", APACHE_2),
    ("tinos", APACHE_2),
    ("cousine", APACHE_2),
    ("source", OFL),
    ("ubuntu", UFL),
    ("dejavu", BITSTREAM_VERA),
    ("bitstream vera", BITSTREAM_VERA),
    ("liberation", OFL),
    ("fira", OFL),
    ("lato", OFL),
    ("montserrat", OFL),
    ("raleway", OFL),
    ("inter", OFL),
    ("pt", OFL),
    ("carlito", OFL),
    ("caladea", OFL),
    ("gelasio", OFL),
    ("ibm plex", OFL),
]

COMMERCIAL_FAMILIES = {
    "helvetica",
    "helvetica neue",
    "futura",
    "gill sans",
    "optima",
    "palatino",
    "didot",
    "bembo",
    "minion pro",
    "myriad pro",
    "univers",
    "frutiger",
    "avenir",
    "avenir next",
    "franklin gothic",
    "akzidenz grotesk",
    "gotham",
    "proxima nova",
    "din",
    "itc avant garde gothic",
    "interstate",
}

SYSTEM_FONT_PATH_MARKERS = (
    "/usr/share/fonts",
    "/system/library/fonts",
    "/windows/fonts",
    "/library/fonts",
)

COMMERCIAL_FOUNDRY_PATTERNS = ("linotype", "monotype", "adobe", "itc ", "hoefler", "berthold")

OS_BUNDLED_FAMILIES = {
    "arial",
    "times new roman",
    "courier new",
    "calibri",
    "cambria",
    "candara",
    "consolas",
    "georgia",
    "verdana",
    "tahoma",
    "trebuchet ms",
    "segoe ui",
    "symbol",
    "wingdings",
    "san francisco",
    "menlo",
}

FREE_ALTERNATIVES: dict[FontCategory, list[str]] = {
    FontCategory.SANS_SERIF: [
        "Roboto",
        "Open Sans",
        "Lato",
        "Source Sans Pro",
        "Noto Sans",
        "Liberation Sans",
    ],
    FontCategory.SERIF: ["Noto Serif", "Liberation Serif", "Source Serif Pro", "PT Serif", "Gelasio"],
    FontCategory.MONOSPACE: ["Liberation Mono", "DejaVu Sans Mono", "Source Code Pro", "Fira Mono"],
    FontCategory.OTHER: ["Noto Sans", "Liberation Sans", "DejaVu Sans"],
}

_SPECIFIC_ALTERNATIVES = {
    "helvetica": ["Liberation Sans", "Arimo", "Nimbus Sans"],
    "helvetica neue": ["Inter", "Liberation Sans"],
    "futura": ["Jost", "League Spartan"],
    "gill sans": ["Cabin", "Lato"],
    "optima": ["Linux Biolinum", "Marcellus"],
    "palatino": ["TeX Gyre Pagella", "Domitian"],
    "frutiger": ["Istok Web", "Hind"],
    "avenir": ["Nunito Sans", "Montserrat"],
    "minion pro": ["Crimson Pro", "Source Serif Pro"],
    "myriad pro": ["PT Sans", "Source Sans Pro"],
    "univers": ["Roboto", "Liberation Sans"],
}


@dataclass
class LicenseAssessment:
    """License classification plus the risk bucket and any user-facing warnings."""

    info: LicenseInfo
    risk: LicenseRisk
    warnings: list[str] = field(default_factory=list)

    @property
    def flagged(self) -> bool:
        """Whether the font carries commercial licensing risk."""
        return self.risk == LicenseRisk.COMMERCIAL


class LicenseAnalyzer:
    """Heuristic license classifier for font descriptors."""

    def classify(self, descriptor: FontDescriptor) -> LicenseInfo:
        return self.assess(descriptor).info

    def assess(self, descriptor: FontDescriptor) -> LicenseAssessment:
        """
        Classify a descriptor's license.

        Args:
            descriptor: Font to classify

        Returns:
            LicenseAssessment; unknown fonts get ``allows_embedding=None`` and a warning
        """
        if descriptor.license is not None:
            return self._assess_declared(descriptor)

        family = " ".join(descriptor.family.lower().split())

        for hint, info in OPEN_FAMILY_HINTS:
            if family == hint or family.startswith(hint + " "):
                return LicenseAssessment(info=info, risk=LicenseRisk.OPEN)

        if self._is_commercial_family(family) or self._matches_foundry(descriptor):
            return LicenseAssessment(
                info=COMMERCIAL,
                risk=LicenseRisk.COMMERCIAL,
                warnings=[
                    f"{descriptor.family} is a commercially licensed font; "
                    "embedding or redistribution may require a license"
                ],
            )

        if family in OS_BUNDLED_FAMILIES or self._is_system_path(descriptor.path):
            return LicenseAssessment(info=OS_BUNDLED, risk=LicenseRisk.SYSTEM)

        logger.debug(f"Unknown license for {descriptor.family}")
        return LicenseAssessment(
            info=UNKNOWN,
            risk=LicenseRisk.UNKNOWN,
            warnings=[f"License of {descriptor.family} is unknown; verify before embedding"],
        )

    def annotate(self, descriptor: FontDescriptor) -> tuple[FontDescriptor, LicenseAssessment]:
        """Attach the classified license to a copy of the descriptor."""
        assessment = self.assess(descriptor)
        if descriptor.license is not None:
            return descriptor, assessment
        return descriptor.with_license(assessment.info), assessment

    def free_alternatives(self, descriptor: FontDescriptor) -> list[str]:
        """Open-licensed families that can stand in for a restricted font."""
        family = " ".join(descriptor.family.lower().split())
        alternatives = list(_SPECIFIC_ALTERNATIVES.get(family, []))
        category = descriptor.category or guess_category(descriptor.family, descriptor.monospaced)
        for name in FREE_ALTERNATIVES.get(category, FREE_ALTERNATIVES[FontCategory.OTHER]):
            if name not in alternatives:
                alternatives.append(name)
        return alternatives

    def _assess_declared(self, descriptor: FontDescriptor) -> LicenseAssessment:
        info = descriptor.license
        if info.allows_embedding is False:
            return LicenseAssessment(
                info=info,
                risk=LicenseRisk.COMMERCIAL,
                warnings=[f"{descriptor.family} license ({info.name}) does not allow embedding"],
            )
        if OPEN_LICENSE_PATTERN.search(info.name):
            return LicenseAssessment(info=info, risk=LicenseRisk.OPEN)
        if info.allows_embedding is None:
            return LicenseAssessment(
                info=info,
                risk=LicenseRisk.UNKNOWN,
                warnings=[f"License of {descriptor.family} is unknown; verify before embedding"],
            )
        return LicenseAssessment(info=info, risk=LicenseRisk.SYSTEM)

    @staticmethod
    def _is_commercial_family(family: str) -> bool:
        return any(family == name or family.startswith(name + " ") for name in COMMERCIAL_FAMILIES)

    @staticmethod
    def _matches_foundry(descriptor: FontDescriptor) -> bool:
        haystack = " ".join(
            part.lower()
            for part in (
                descriptor.family,
                descriptor.full_name,
                descriptor.postscript_name,
                descriptor.origin,
            )
            if part
        )
        return any(pattern in haystack for pattern in COMMERCIAL_FOUNDRY_PATTERNS)

    @staticmethod
    def _is_system_path(path: str | None) -> bool:
        if not path:
            return False
        lowered = path.lower().replace("\\", "/")
        return any(marker in lowered for marker in SYSTEM_FONT_PATH_MARKERS)
