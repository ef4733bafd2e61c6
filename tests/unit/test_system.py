"""Tests for system font scanning and metrics extraction."""

import logging
from unittest.mock import Mock, patch

import pytest
from conftest import build_test_font, make_descriptor

from fontresolver.core.exceptions import (
    FontFileNotFoundError,
    FontParseFailedError,
    UnsupportedFontExtensionError,
    UnsupportedPlatformError,
)
from fontresolver.core.models import FontFormat, FontSource
from fontresolver.fonts.system import FontToolsMetricsExtractor, SystemFontScanner
from fontresolver.fonts.utils import validate_font_file


class TestValidateFontFile:
    """Test font file validation."""

    def test_missing(self, temp_dir):
        """Test a missing path raises a not-found error."""
        with pytest.raises(FontFileNotFoundError):
            validate_font_file(temp_dir / "missing.ttf")

    def test_unsupported_extension(self, temp_dir):
        """Test non-font extensions are rejected."""
        path = temp_dir / "notes.txt"
        path.write_text("hello")
        with pytest.raises(UnsupportedFontExtensionError):
            validate_font_file(path)


class TestFontToolsMetricsExtractor:
    """Test descriptor and metrics extraction with fontTools."""

    def test_extracts_real_font(self, temp_dir):
        """Test family, weight and metrics are read from the font tables."""
        path = build_test_font(temp_dir / "TestSans-Bold.ttf")
        [descriptor] = FontToolsMetricsExtractor().extract(path)
        assert descriptor.family == "Test Sans"
        assert descriptor.subfamily == "Bold"
        assert descriptor.weight == 700
        assert not descriptor.italic
        assert descriptor.format == FontFormat.TTF
        assert descriptor.path == str(path)
        metrics = descriptor.metrics
        assert metrics.units_per_em == 1000
        assert metrics.ascender == 800
        assert metrics.descender == -200
        assert metrics.x_height == 500
        assert metrics.cap_height == 700

    def test_corrupt_font(self, temp_dir):
        """Test unparseable data raises a parse error."""
        path = temp_dir / "broken.ttf"
        path.write_bytes(b"\x00garbage" * 16)
        with pytest.raises(FontParseFailedError):
            FontToolsMetricsExtractor().extract(path)


class TestSystemFontScanner:
    """Test directory scanning."""

    def _scanner(self, font_dirs, **kwargs):
        extractor = Mock()
        extractor.extract.side_effect = lambda path: [make_descriptor(path.stem, path=str(path))]
        scanner = SystemFontScanner(extractor, search_system=False, **kwargs)
        return scanner, patch.object(scanner, "user_font_directories", return_value=font_dirs)

    def test_scans_supported_files(self, temp_dir):
        """Test only font extensions are extracted, as user fonts."""
        (temp_dir / "sub").mkdir()
        (temp_dir / "One.ttf").write_bytes(b"")
        (temp_dir / "sub" / "Two.otf").write_bytes(b"")
        (temp_dir / "readme.txt").write_text("not a font")

        scanner, user_dirs = self._scanner([temp_dir])
        with user_dirs:
            fonts = scanner.scan()

        assert sorted(f.descriptor.family for f in fonts) == ["One", "Two"]
        assert all(f.source == FontSource.USER for f in fonts)
        assert scanner.extractor.extract.call_count == 2

    def test_unparseable_files_skipped(self, temp_dir, caplog):
        """Test a failing file is skipped with a warning without aborting the scan."""
        (temp_dir / "Good.ttf").write_bytes(b"")
        (temp_dir / "Bad.ttf").write_bytes(b"")

        def extract(path):
            if path.stem == "Bad":
                raise FontParseFailedError(str(path), "bad sfnt")
            return [make_descriptor(path.stem, path=str(path))]

        scanner, user_dirs = self._scanner([temp_dir])
        scanner.extractor.extract.side_effect = extract
        with user_dirs, caplog.at_level(logging.WARNING, logger="fontresolver.fonts.system"):
            fonts = scanner.scan()
        assert [f.descriptor.family for f in fonts] == ["Good"]
        assert any("Bad.ttf" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)

    def test_depth_bounded(self, temp_dir):
        """Test directories deeper than the bound are not walked."""
        deep = temp_dir / "a" / "b"
        deep.mkdir(parents=True)
        (temp_dir / "a" / "Shallow.ttf").write_bytes(b"")
        (deep / "Deep.ttf").write_bytes(b"")

        scanner, user_dirs = self._scanner([temp_dir], max_depth=1)
        with user_dirs:
            fonts = scanner.scan()
        assert [f.descriptor.family for f in fonts] == ["Shallow"]

    def test_duplicate_directories_scanned_once(self, temp_dir):
        """Test the same file reached twice is extracted once."""
        (temp_dir / "One.ttf").write_bytes(b"")
        scanner, user_dirs = self._scanner([temp_dir, temp_dir])
        with user_dirs:
            assert len(scanner.scan()) == 1

    def test_extra_user_dirs(self, temp_dir):
        """Test configured directories are searched when they exist."""
        scanner = SystemFontScanner(Mock(), user_font_dirs=[temp_dir, temp_dir / "missing"])
        directories = scanner.user_font_directories()
        assert temp_dir in directories
        assert temp_dir / "missing" not in directories

    def test_unsupported_platform(self):
        """Test scanning system directories on an unknown OS raises."""
        scanner = SystemFontScanner(Mock())
        scanner.system = "plan9"
        with pytest.raises(UnsupportedPlatformError):
            scanner.system_font_directories()
