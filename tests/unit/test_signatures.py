"""Tests for the signature database format."""

import zlib

import pytest
from conftest import ARIAL_METRICS, TIMES_METRICS, make_descriptor

from fontresolver.core.exceptions import (
    CorruptDatabaseError,
    DatabaseError,
    InvalidDatabaseHeaderError,
    UnsupportedDatabaseVersionError,
)
from fontresolver.fonts.normalizer import normalize
from fontresolver.fonts.signatures import (
    _HEADER,
    DATABASE_ORIGIN,
    MAGIC,
    SignatureDatabase,
)


@pytest.fixture
def database():
    return SignatureDatabase.from_descriptors(
        [
            make_descriptor("Arial", metrics=ARIAL_METRICS),
            make_descriptor("Arial", weight=700, italic=True, metrics=TIMES_METRICS),
            make_descriptor("Times New Roman", metrics=TIMES_METRICS),
        ]
    )


class TestBuild:
    """Test building and querying a database."""

    def test_deduplicates_styles(self):
        """Test duplicates on family, weight and italic collapse, keeping metrics."""
        database = SignatureDatabase.from_descriptors(
            [
                make_descriptor("Arial", path="/a/arial.ttf"),
                make_descriptor("Arial", path="/b/arial.ttf", metrics=ARIAL_METRICS),
                make_descriptor("Arial", weight=700),
            ]
        )
        assert len(database) == 2
        regular = [e for e in database.lookup("arial") if e.weight == 400]
        assert regular[0].metrics == ARIAL_METRICS

    def test_lookup_is_key_insensitive(self, database):
        """Test family lookups ignore case and separators."""
        assert len(database.lookup("TimesNewRoman")) == 1
        assert "times-new-roman" in database
        assert "Helvetica" not in database

    def test_to_descriptor(self, database):
        """Test entries become path-less descriptors tagged with the database origin."""
        descriptor = database.descriptors_for("Times New Roman")[0]
        assert descriptor.origin == DATABASE_ORIGIN
        assert descriptor.path is None
        assert descriptor.metrics == TIMES_METRICS

    def test_metrics_for_closest_style(self, database):
        """Test metric lookup prefers the matching slant, then the closest weight."""
        assert database.metrics_for(normalize("Arial-BoldItalic")) == TIMES_METRICS
        assert database.metrics_for(normalize("Arial")) == ARIAL_METRICS
        assert database.metrics_for(normalize("Helvetica")) is None


class TestFormat:
    """Test the binary file format."""

    def test_save_and_load(self, database, temp_dir):
        """Test a saved database loads back identically."""
        path = database.save(temp_dir / "db" / "signatures.bin")
        loaded = SignatureDatabase.load(path)
        assert len(loaded) == 3
        assert loaded.entries() == database.entries()
        assert path.read_bytes()[:8] == MAGIC

    def test_bad_magic(self):
        """Test a wrong magic number is rejected."""
        with pytest.raises(InvalidDatabaseHeaderError):
            SignatureDatabase.loads(b"NOTADB\x00\x00" + b"\x00" * 20)

    def test_truncated_header(self):
        """Test data shorter than the header is rejected."""
        with pytest.raises(InvalidDatabaseHeaderError):
            SignatureDatabase.loads(MAGIC[:4])

    def test_unknown_version(self):
        """Test unknown format versions are refused."""
        with pytest.raises(UnsupportedDatabaseVersionError):
            SignatureDatabase.loads(_HEADER.pack(MAGIC, 99, 0))

    def test_corrupt_payload(self):
        """Test an undecompressable payload is reported as corrupt."""
        with pytest.raises(CorruptDatabaseError):
            SignatureDatabase.loads(_HEADER.pack(MAGIC, 1, 0) + b"garbage")

    def test_count_mismatch(self):
        """Test the header count must match the payload."""
        data = _HEADER.pack(MAGIC, 1, 5) + zlib.compress(b"[]")
        with pytest.raises(CorruptDatabaseError):
            SignatureDatabase.loads(data)

    def test_missing_file(self, temp_dir):
        """Test loading a missing file raises a database error."""
        with pytest.raises(DatabaseError):
            SignatureDatabase.load(temp_dir / "missing.bin")
