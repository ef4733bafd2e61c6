"""
Font Name Normalizer
====================

Turns raw font names, as embedded in PDFs and stylesheets, into canonical
``FontRequest`` objects.

Handled forms include subset-tagged PDF names (``ABCDEE+OpenSans-Bold``),
encoding-suffixed CID names (``Calibri-Light-Identity-H``), PostScript
vendor suffixes (``ArialMT``, ``TimesNewRomanPS-BoldItalic``) and plain
family names with space, hyphen, underscore or comma separators.
"""

import logging
import re

from ..core.exceptions import EmptyFontNameError
from ..core.models import FontRequest, FontStyle, comparison_key

logger = logging.getLogger(__name__)

SUBSET_PREFIX = re.compile(r"^[A-Z]{6}\+")
ENCODING_SUFFIX = re.compile(
    r"[-_,](?:Identity|WinAnsi|MacRoman|Uni[A-Za-z0-9]*|W[1-6]|Expert|Subset)(?:-[HV])?$"
)
WORD_SPLIT = re.compile(r"[\s\-_,]+")
CAMEL_TOKEN = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+|[^\W\d_A-Za-z]+")

VENDOR_SUFFIXES = {"MT", "PS", "PSMT"}

WEIGHT_KEYWORDS = {
    "thin": 100,
    "hairline": 100,
    "extralight": 200,
    "ultralight": 200,
    "light": 300,
    "regular": 400,
    "normal": 400,
    "book": 400,
    "medium": 500,
    "semibold": 600,
    "demibold": 600,
    "bold": 700,
    "extrabold": 800,
    "ultrabold": 800,
    "heavy": 900,
    "black": 900,
}
WEIGHT_MODIFIERS = {"extra", "ultra", "semi", "demi"}
SLANT_KEYWORDS = {"italic": FontStyle.ITALIC, "oblique": FontStyle.OBLIQUE}

WEIGHT_NAMES = {
    100: "Thin",
    200: "ExtraLight",
    300: "Light",
    400: "",
    500: "Medium",
    600: "SemiBold",
    700: "Bold",
    800: "ExtraBold",
    900: "Black",
}

MONOSPACE_HINTS = ("mono", "console", "typewriter", "courier", "fixedsys", "terminal")


def normalize(raw_name: str) -> FontRequest:
    """
    Normalize a raw font name into a FontRequest.

    Args:
        raw_name: Font name as found in a document

    Returns:
        Canonical FontRequest; normalizing its ``normalized_name`` again
        yields the same fields

    Raises:
        InvalidFontNameError: If nothing nameable remains after trimming
    """
    text = (raw_name or "").replace("#20", " ").strip()
    if not text:
        raise EmptyFontNameError(raw_name)

    text = strip_pdf_decorations(text)
    words, tokens = _tokenize(text)
    if not tokens:
        raise EmptyFontNameError(raw_name)

    family_end = _find_style_start(tokens)
    family_tokens = tokens[:family_end]
    while len(family_tokens) > 1 and family_tokens[-1][0] in VENDOR_SUFFIXES:
        family_tokens.pop()

    family = _join_family(words, family_tokens)
    weight, style = _parse_style_tokens([t[0] for t in tokens[family_end:]])

    request = FontRequest(
        original_name=raw_name,
        normalized_name=build_normalized_name(family, weight, style),
        family=family,
        weight=weight,
        style=style,
        italic=style != FontStyle.NORMAL,
        monospaced=is_monospace_name(family),
    )
    logger.debug(f"Normalized {raw_name!r} -> {request.normalized_name!r}")
    return request


def strip_pdf_decorations(name: str) -> str:
    """Remove subset prefixes and trailing encoding markers."""
    stripped = SUBSET_PREFIX.sub("", name)
    while True:
        shorter = ENCODING_SUFFIX.sub("", stripped)
        if shorter == stripped or not shorter.strip():
            break
        stripped = shorter
    return stripped.strip()


def build_normalized_name(family: str, weight: int, style: FontStyle) -> str:
    suffix = WEIGHT_NAMES.get(weight, "")
    if style == FontStyle.ITALIC:
        suffix += "Italic"
    elif style == FontStyle.OBLIQUE:
        suffix += "Oblique"
    return f"{family}-{suffix}" if suffix else family


def is_monospace_name(name: str) -> bool:
    lowered = name.lower()
    return any(hint in lowered for hint in MONOSPACE_HINTS)


def weight_from_style_name(style_name: str) -> int:
    """Weight class implied by a subfamily string such as ``Semibold Italic``."""
    weight, _ = _parse_style_tokens([m.group(0) for m in CAMEL_TOKEN.finditer(style_name)])
    return weight


def _tokenize(text: str) -> tuple[list[str], list[tuple[str, int, int]]]:
    """Split into words and (token, word_index, end_offset_in_word) triples."""
    words = [word for word in WORD_SPLIT.split(text) if word]
    tokens = []
    for index, word in enumerate(words):
        matches = list(CAMEL_TOKEN.finditer(word))
        if not matches:
            tokens.append((word, index, len(word)))
            continue
        tokens.extend((match.group(0), index, match.end()) for match in matches)
    return words, tokens


def _is_style_token(tokens: list[tuple[str, int, int]], i: int) -> bool:
    lowered = tokens[i][0].lower()
    if lowered in WEIGHT_KEYWORDS or lowered in SLANT_KEYWORDS:
        return True
    if lowered in WEIGHT_MODIFIERS and i + 1 < len(tokens):
        return lowered + tokens[i + 1][0].lower() in WEIGHT_KEYWORDS
    return False


def _find_style_start(tokens: list[tuple[str, int, int]]) -> int:
    # The first token always belongs to the family
    for i in range(1, len(tokens)):
        if _is_style_token(tokens, i):
            return i
    return len(tokens)


def _join_family(words: list[str], family_tokens: list[tuple[str, int, int]]) -> str:
    """Rebuild the display family from the original words, preserving case."""
    ends: dict[int, int] = {}
    for _, index, end in family_tokens:
        ends[index] = end
    return " ".join(words[index][:end] for index, end in sorted(ends.items()))


def _parse_style_tokens(style_tokens: list[str]) -> tuple[int, FontStyle]:
    weight = None
    style = FontStyle.NORMAL
    lowered = [token.lower() for token in style_tokens]
    i = 0
    while i < len(lowered):
        token = lowered[i]
        if token in WEIGHT_MODIFIERS and i + 1 < len(lowered):
            combined = token + lowered[i + 1]
            if combined in WEIGHT_KEYWORDS:
                if weight is None:
                    weight = WEIGHT_KEYWORDS[combined]
                i += 2
                continue
        if token in WEIGHT_KEYWORDS and weight is None:
            weight = WEIGHT_KEYWORDS[token]
        elif token in SLANT_KEYWORDS and style == FontStyle.NORMAL:
            style = SLANT_KEYWORDS[token]
        i += 1
    return (weight or 400), style
