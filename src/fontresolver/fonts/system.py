"""
System Font Scanning
====================

Enumerates font files in the standard per-OS font directories plus any
user-configured directories, and extracts descriptors and metrics from
them. A scan is run once per session and cached by the local index.
"""

import logging
import os
import platform
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from fontTools.pens.boundsPen import BoundsPen
from fontTools.ttLib import TTCollection, TTFont, TTLibError

from ..core.exceptions import FontParseFailedError, UnsupportedPlatformError
from ..core.models import FontDescriptor, FontFormat, FontMetrics, FontSource
from .normalizer import is_monospace_name, weight_from_style_name
from .utils import SUPPORTED_EXTENSIONS, guess_category, validate_font_file

logger = logging.getLogger(__name__)

UNIX_PLATFORMS = {"linux", "freebsd", "openbsd", "netbsd"}
COLLECTION_EXTENSIONS = {".ttc", ".otc"}
DEFAULT_MAX_DEPTH = 6

# OS/2 fsSelection bits
FS_ITALIC = 1 << 0
FS_OBLIQUE = 1 << 9


@dataclass(frozen=True)
class ScannedFont:
    """A font found on disk together with the source tier it belongs to."""

    descriptor: FontDescriptor
    source: FontSource


class BaseMetricsExtractor(ABC):
    """Turns a font file into descriptors (one per face for collections)."""

    @abstractmethod
    def extract(self, font_path: Path) -> list[FontDescriptor]:
        """Extract descriptors; raises ParseError or UnsupportedFormatError."""


class FontToolsMetricsExtractor(BaseMetricsExtractor):
    """Metrics extractor backed by fontTools."""

    def extract(self, font_path: Path) -> list[FontDescriptor]:
        path = validate_font_file(font_path)
        try:
            if path.suffix.lower() in COLLECTION_EXTENSIONS:
                collection = TTCollection(str(path), lazy=True)
                try:
                    return [self._describe(font, path) for font in collection.fonts]
                finally:
                    collection.close()

            font = TTFont(str(path), lazy=True)
            try:
                return [self._describe(font, path)]
            finally:
                font.close()
        except (TTLibError, KeyError, AttributeError, struct.error, OSError, ValueError) as e:
            raise FontParseFailedError(str(path), str(e)) from e

    def _describe(self, font: TTFont, path: Path) -> FontDescriptor:
        name_table = font["name"]
        family = name_table.getDebugName(16) or name_table.getDebugName(1)
        if not family:
            raise FontParseFailedError(str(path), "missing family name")
        subfamily = name_table.getDebugName(17) or name_table.getDebugName(2) or "Regular"

        os2 = font["OS/2"] if "OS/2" in font else None
        weight = self._weight(os2, subfamily)
        italic = self._italic(font, os2, subfamily)
        monospaced = bool("post" in font and font["post"].isFixedPitch) or is_monospace_name(family)

        return FontDescriptor(
            family=family,
            subfamily=subfamily,
            postscript_name=name_table.getDebugName(6),
            full_name=name_table.getDebugName(4),
            path=str(path),
            origin=str(path.parent),
            format=FontFormat.from_path(path),
            weight=weight,
            italic=italic,
            monospaced=monospaced,
            variable="fvar" in font,
            category=guess_category(family, monospaced),
            metrics=self._metrics(font, os2),
        )

    @staticmethod
    def _weight(os2, subfamily: str) -> int:
        if os2 is not None and 100 <= os2.usWeightClass <= 900:
            return int(round(os2.usWeightClass / 100.0) * 100)
        return weight_from_style_name(subfamily)

    @staticmethod
    def _italic(font: TTFont, os2, subfamily: str) -> bool:
        if os2 is not None and os2.fsSelection & (FS_ITALIC | FS_OBLIQUE):
            return True
        if "head" in font and font["head"].macStyle & 0x02:
            return True
        lowered = subfamily.lower()
        return "italic" in lowered or "oblique" in lowered

    def _metrics(self, font: TTFont, os2) -> FontMetrics | None:
        if "head" not in font or "hhea" not in font:
            return None
        units_per_em = font["head"].unitsPerEm
        hhea = font["hhea"]

        if os2 is not None:
            ascender, descender = os2.sTypoAscender, os2.sTypoDescender
            average_width = os2.xAvgCharWidth
            x_height = getattr(os2, "sxHeight", 0) or 0
            cap_height = getattr(os2, "sCapHeight", 0) or 0
        else:
            ascender, descender = hhea.ascent, hhea.descent
            average_width = 0
            x_height = cap_height = 0

        if not x_height:
            x_height = self._glyph_height(font, "x")
        if not cap_height:
            cap_height = self._glyph_height(font, "H")

        return FontMetrics(
            units_per_em=units_per_em,
            ascender=ascender,
            descender=descender,
            x_height=max(0, x_height),
            cap_height=max(0, cap_height),
            average_width=max(0, average_width),
            max_advance_width=max(0, hhea.advanceWidthMax),
        )

    @staticmethod
    def _glyph_height(font: TTFont, char: str) -> int:
        cmap = font.getBestCmap() or {}
        glyph_name = cmap.get(ord(char))
        if glyph_name is None:
            return 0
        glyph_set = font.getGlyphSet()
        pen = BoundsPen(glyph_set)
        glyph_set[glyph_name].draw(pen)
        if pen.bounds is None:
            return 0
        return int(pen.bounds[3])


class SystemFontScanner:
    """
    Scanner for fonts installed on the local machine.

    Walks the standard system font directories for the current OS and the
    user font directories with a bounded depth, extracting one descriptor
    per face. Unparseable files are logged and skipped.
    """

    def __init__(
        self,
        extractor: BaseMetricsExtractor | None = None,
        search_system: bool = True,
        search_user: bool = True,
        user_font_dirs: list[Path] | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.system = platform.system().lower()
        self.extractor = extractor or FontToolsMetricsExtractor()
        self.search_system = search_system
        self.search_user = search_user
        self.extra_user_dirs = [Path(d).expanduser() for d in user_font_dirs or []]
        self.max_depth = max_depth

        logger.debug(f"SystemFontScanner initialized for {self.system}")

    def system_font_directories(self) -> list[Path]:
        """Get system font directories based on operating system."""
        if self.system == "windows":
            directories = [Path(os.environ.get("WINDIR", "C:\\Windows")) / "Fonts"]
        elif self.system == "darwin":
            directories = [
                Path("/System/Library/Fonts"),
                Path("/Library/Fonts"),
                Path("/System/Library/Assets/com_apple_MobileAsset_Font6"),
            ]
        elif self.system in UNIX_PLATFORMS:
            directories = [Path("/usr/share/fonts"), Path("/usr/local/share/fonts")]
        else:
            raise UnsupportedPlatformError(self.system)
        return [d for d in directories if d.is_dir()]

    def user_font_directories(self) -> list[Path]:
        if self.system == "windows":
            local_app_data = os.environ.get("LOCALAPPDATA")
            directories = (
                [Path(local_app_data) / "Microsoft" / "Windows" / "Fonts"] if local_app_data else []
            )
        elif self.system == "darwin":
            directories = [Path.home() / "Library" / "Fonts"]
        else:
            directories = [Path.home() / ".fonts", Path.home() / ".local" / "share" / "fonts"]
        directories.extend(self.extra_user_dirs)
        return [d for d in directories if d.is_dir()]

    def scan(self) -> list[ScannedFont]:
        """Scan all enabled directories. User directories shadow duplicate system paths."""
        fonts: list[ScannedFont] = []
        seen: set[Path] = set()

        plan: list[tuple[Path, FontSource]] = []
        if self.search_user:
            plan.extend((d, FontSource.USER) for d in self.user_font_directories())
        if self.search_system:
            plan.extend((d, FontSource.SYSTEM) for d in self.system_font_directories())

        for font_dir, source in plan:
            for font_file in self._iter_font_files(font_dir):
                resolved = font_file.resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                try:
                    for descriptor in self.extractor.extract(font_file):
                        fonts.append(ScannedFont(descriptor=descriptor, source=source))
                except Exception as e:
                    logger.warning(f"Failed to process font {font_file}: {e}")

        logger.info(f"Scanned {len(seen)} font files, {len(fonts)} faces")
        return fonts

    def _iter_font_files(self, font_dir: Path):
        base_depth = len(font_dir.parts)
        for root, dirs, files in os.walk(font_dir, followlinks=False):
            if len(Path(root).parts) - base_depth >= self.max_depth:
                dirs[:] = []
            dirs.sort()
            for filename in sorted(files):
                if Path(filename).suffix.lower() in SUPPORTED_EXTENSIONS:
                    yield Path(root) / filename
