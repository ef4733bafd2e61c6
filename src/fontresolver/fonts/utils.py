"""
Font Utilities
==============

Name comparison helpers, the well-known substitution table and font file
validation shared by the scorer, the aggregator and the scanner.
"""

import logging
import re
from pathlib import Path

from ..core.exceptions import FontFileNotFoundError, UnsupportedFontExtensionError
from ..core.models import FontCategory, comparison_key

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".ttf", ".otf", ".woff", ".woff2", ".ttc", ".otc"}

_NAME_TOKEN = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+|[^\W\d_A-Za-z]+")

# Well-known names mapped to commonly installed, metric-compatible families
SUBSTITUTION_MAP: dict[str, list[str]] = {
    "helvetica": ["Arial", "Liberation Sans", "Nimbus Sans"],
    "helveticaneue": ["Arial", "Liberation Sans"],
    "arial": ["Liberation Sans", "Arimo", "Nimbus Sans"],
    "times": ["Times New Roman", "Liberation Serif", "Tinos"],
    "timesroman": ["Times New Roman", "Liberation Serif", "Tinos"],
    "timesnewroman": ["Liberation Serif", "Tinos", "Nimbus Roman"],
    "courier": ["Courier New", "Liberation Mono", "Cousine"],
    "couriernew": ["Liberation Mono", "Cousine", "Nimbus Mono PS"],
    "calibri": ["Carlito"],
    "cambria": ["Caladea"],
    "georgia": ["Gelasio"],
    "verdana": ["DejaVu Sans"],
    "tahoma": ["DejaVu Sans"],
    "segoeui": ["Noto Sans", "Open Sans"],
    "serif": ["Times New Roman", "Liberation Serif", "Noto Serif", "DejaVu Serif"],
    "sansserif": ["Arial", "Liberation Sans", "Noto Sans", "DejaVu Sans"],
    "monospace": ["Courier New", "Liberation Mono", "DejaVu Sans Mono"],
}

_CATEGORY_HINTS: list[tuple[FontCategory, tuple[str, ...]]] = [
    (FontCategory.MONOSPACE, ("mono", "courier", "console", "typewriter", "code")),
    (FontCategory.SYMBOL, ("symbol", "dingbat", "wingding", "webding", "emoji")),
    (FontCategory.HANDWRITING, ("script", "hand", "brush", "comic")),
    (FontCategory.SANS_SERIF, ("sans", "grotesk", "gothic", "arial", "helvetica", "verdana")),
    (FontCategory.SERIF, ("serif", "times", "roman", "georgia", "garamond", "cambria")),
]


def levenshtein(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]


def name_tokens(name: str) -> set[str]:
    """Lowercase word tokens of a family name, split on separators and case changes."""
    return {token.lower() for token in _NAME_TOKEN.findall(name)}


def edit_similarity(a: str, b: str) -> float:
    """Symmetric similarity in [0, 1] from the edit distance of comparison keys."""
    key_a, key_b = comparison_key(a), comparison_key(b)
    longest = max(len(key_a), len(key_b))
    if longest == 0:
        return 0.0
    return 1.0 - levenshtein(key_a, key_b) / longest


def well_known_substitutes(family: str) -> list[str]:
    """Metric-compatible replacements for a well-known family, best first."""
    return list(SUBSTITUTION_MAP.get(comparison_key(family), []))


def guess_category(family: str, monospaced: bool = False) -> FontCategory:
    if monospaced:
        return FontCategory.MONOSPACE
    lowered = family.lower()
    for category, hints in _CATEGORY_HINTS:
        if any(hint in lowered for hint in hints):
            return category
    return FontCategory.OTHER


def validate_font_file(font_path: str | Path) -> Path:
    """
    Validate that a path points at a font file in a supported container.

    Args:
        font_path: Path to font file

    Returns:
        The validated path

    Raises:
        NotFoundError: If the file does not exist
        UnsupportedFormatError: If the extension is not a known font container
    """
    path = Path(font_path)
    if not path.is_file():
        raise FontFileNotFoundError(str(path))

    extension = path.suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFontExtensionError(str(path), extension)

    return path
