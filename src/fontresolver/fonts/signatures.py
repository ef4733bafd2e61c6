"""
Signature Database
==================

Compressed, versioned database of known font signatures: family, style,
metrics and license per entry. Used as the cached-web index and as the
source of assumed metrics for fonts that are not installed locally.

On-disk layout::

    8 bytes   magic  b"FRSIGDB\\x00"
    2 bytes   format version (big-endian uint16)
    4 bytes   entry count (big-endian uint32)
    rest      zlib-compressed UTF-8 JSON array of entries

Readers refuse any version they do not know.
"""

import json
import logging
import struct
import zlib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.exceptions import (
    CorruptDatabaseError,
    DatabaseError,
    InvalidDatabaseHeaderError,
    UnsupportedDatabaseVersionError,
)
from ..core.models import (
    FontCategory,
    FontDescriptor,
    FontMetrics,
    FontRequest,
    LicenseInfo,
    comparison_key,
)
from .utils import guess_category

logger = logging.getLogger(__name__)

MAGIC = b"FRSIGDB\x00"
FORMAT_VERSION = 1
SUPPORTED_VERSIONS = {1}
_HEADER = struct.Struct(">8sHI")

DATABASE_ORIGIN = "signature-db"


class SignatureEntry(BaseModel):
    """One known font signature."""

    model_config = ConfigDict(frozen=True)

    family: str = Field(..., min_length=1)
    postscript_name: str | None = None
    weight: int = Field(400, ge=100, le=900)
    italic: bool = False
    monospaced: bool = False
    category: FontCategory = FontCategory.OTHER
    metrics: FontMetrics | None = None
    license: LicenseInfo | None = None

    @property
    def family_key(self) -> str:
        return comparison_key(self.family)

    @classmethod
    def from_descriptor(cls, descriptor: FontDescriptor) -> "SignatureEntry":
        return cls(
            family=descriptor.family,
            postscript_name=descriptor.postscript_name,
            weight=descriptor.weight,
            italic=descriptor.italic,
            monospaced=descriptor.monospaced,
            category=descriptor.category or guess_category(descriptor.family, descriptor.monospaced),
            metrics=descriptor.metrics,
            license=descriptor.license,
        )

    def to_descriptor(self) -> FontDescriptor:
        subfamily = "Italic" if self.italic else "Regular"
        return FontDescriptor(
            family=self.family,
            subfamily=subfamily,
            postscript_name=self.postscript_name,
            origin=DATABASE_ORIGIN,
            weight=self.weight,
            italic=self.italic,
            monospaced=self.monospaced,
            category=self.category,
            metrics=self.metrics,
            license=self.license,
        )


class SignatureDatabase:
    """In-memory view of a signature database, indexed by family."""

    def __init__(self, entries: list[SignatureEntry] | None = None, source: str = "<memory>"):
        self.source = source
        self._by_family: dict[str, list[SignatureEntry]] = {}
        self._count = 0
        for entry in entries or []:
            self._add(entry)

    def _add(self, entry: SignatureEntry) -> bool:
        variants = self._by_family.setdefault(entry.family_key, [])
        for i, existing in enumerate(variants):
            if existing.weight == entry.weight and existing.italic == entry.italic:
                # Keep the richer duplicate
                if existing.metrics is None and entry.metrics is not None:
                    variants[i] = entry
                return False
        variants.append(entry)
        self._count += 1
        return True

    @classmethod
    def from_descriptors(cls, descriptors: list[FontDescriptor]) -> "SignatureDatabase":
        """Build a database, deduplicating on family + weight + italic."""
        return cls([SignatureEntry.from_descriptor(d) for d in descriptors])

    @classmethod
    def load(cls, path: str | Path) -> "SignatureDatabase":
        """
        Load a database file.

        Raises:
            DatabaseError: On a bad header, an unknown version or a corrupt payload
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise DatabaseError(f"Cannot read signature database {path}: {e}") from e
        database = cls.loads(data, source=str(path))
        logger.info(f"Loaded signature database {path} with {len(database)} entries")
        return database

    @classmethod
    def loads(cls, data: bytes, source: str = "<bytes>") -> "SignatureDatabase":
        if len(data) < _HEADER.size:
            raise InvalidDatabaseHeaderError(source)
        magic, version, count = _HEADER.unpack_from(data)
        if magic != MAGIC:
            raise InvalidDatabaseHeaderError(source)
        if version not in SUPPORTED_VERSIONS:
            raise UnsupportedDatabaseVersionError(source, version)

        try:
            payload = json.loads(zlib.decompress(data[_HEADER.size :]).decode("utf-8"))
            entries = [SignatureEntry.model_validate(item) for item in payload]
        except (zlib.error, UnicodeDecodeError, json.JSONDecodeError, ValidationError, TypeError) as e:
            raise CorruptDatabaseError(source, str(e)) from e

        if len(entries) != count:
            raise CorruptDatabaseError(source, f"header declares {count} entries, found {len(entries)}")
        return cls(entries, source=source)

    def dumps(self) -> bytes:
        entries = self.entries()
        payload = json.dumps([entry.model_dump(mode="json") for entry in entries]).encode("utf-8")
        return _HEADER.pack(MAGIC, FORMAT_VERSION, len(entries)) + zlib.compress(payload, 9)

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.dumps())
        logger.info(f"Wrote signature database {path} with {len(self)} entries")
        return path

    def entries(self) -> list[SignatureEntry]:
        return [entry for key in sorted(self._by_family) for entry in self._by_family[key]]

    def lookup(self, family: str) -> list[SignatureEntry]:
        return list(self._by_family.get(comparison_key(family), []))

    def descriptors_for(self, family: str) -> list[FontDescriptor]:
        return [entry.to_descriptor() for entry in self.lookup(family)]

    def descriptors(self) -> list[FontDescriptor]:
        return [entry.to_descriptor() for entry in self.entries()]

    def metrics_for(self, request: FontRequest) -> FontMetrics | None:
        """Metrics of the closest known style of the requested family."""
        variants = [entry for entry in self.lookup(request.family) if entry.metrics is not None]
        if not variants:
            return None
        best = min(
            variants,
            key=lambda e: (e.italic != request.italic, abs(e.weight - request.weight), e.weight),
        )
        return best.metrics

    def __len__(self) -> int:
        return self._count

    def __contains__(self, family: str) -> bool:
        return comparison_key(family) in self._by_family
