"""Pydantic models for type-safe font resolution data structures."""

import re
from enum import Enum
from pathlib import Path

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

_KEY_STRIP = re.compile(r"[\s\-_]+")


def comparison_key(name: str) -> str:
    """Case- and separator-insensitive key used to compare family names."""
    return _KEY_STRIP.sub("", name).casefold()


class FontFormat(str, Enum):
    """Font container formats."""

    TTF = "ttf"
    OTF = "otf"
    WOFF = "woff"
    WOFF2 = "woff2"
    OTHER = "other"

    @classmethod
    def from_path(cls, path: str | Path) -> "FontFormat":
        suffix = Path(path).suffix.lower().lstrip(".")
        if suffix in ("ttc", "ttf"):
            return cls.TTF
        if suffix in ("otc", "otf"):
            return cls.OTF
        try:
            return cls(suffix)
        except ValueError:
            return cls.OTHER


class FontStyle(str, Enum):
    NORMAL = "normal"
    ITALIC = "italic"
    OBLIQUE = "oblique"


class FontSource(str, Enum):
    """Where a resolved font came from."""

    SYSTEM = "system"
    USER = "user"
    OPEN_REPOSITORY = "open_repository"
    EMBEDDED = "embedded"
    SUBSTITUTED = "substituted"


class SubstitutionReason(str, Enum):
    FONT_NOT_FOUND = "font_not_found"
    LICENSE_RESTRICTION = "license_restriction"
    METRICS_MISMATCH = "metrics_mismatch"
    USER_PREFERENCE = "user_preference"


class FontCategory(str, Enum):
    SERIF = "serif"
    SANS_SERIF = "sans_serif"
    MONOSPACE = "monospace"
    DISPLAY = "display"
    HANDWRITING = "handwriting"
    SYMBOL = "symbol"
    OTHER = "other"


class MatchTier(str, Enum):
    """Resolution quality bucket."""

    EXACT = "exact"
    SIMILAR = "similar"
    SUBSTITUTED = "substituted"


class ResolverState(str, Enum):
    """States of the tiered resolution state machine."""

    CACHED = "cached"
    LOCAL_EXACT = "local_exact"
    LOCAL_SIMILAR = "local_similar"
    WEB_CACHED = "web_cached"
    WEB_LIVE = "web_live"
    METRIC_TWIN = "metric_twin"
    EXHAUSTED = "exhausted"


class FontMetrics(BaseModel):
    """Raw font metrics in font units, normalized by units-per-em before comparison."""

    model_config = ConfigDict(frozen=True)

    units_per_em: int = Field(..., gt=0, description="Design units per em")
    ascender: float = Field(..., description="Typographic ascender")
    descender: float = Field(..., description="Typographic descender (usually negative)")
    x_height: float = Field(..., ge=0, description="Height of lowercase x")
    cap_height: float = Field(..., ge=0, description="Height of capital letters")
    average_width: float = Field(..., ge=0, description="Average advance width")
    max_advance_width: float = Field(..., ge=0, description="Maximum advance width")

    @property
    def width_factor(self) -> float:
        if self.max_advance_width <= 0:
            return 0.0
        return self.average_width / self.max_advance_width

    def normalized_vector(self) -> np.ndarray:
        """Em-relative vector: ascender, descender, xHeight, capHeight, averageWidth, widthFactor."""
        upm = float(self.units_per_em)
        return np.array(
            [
                self.ascender / upm,
                abs(self.descender) / upm,
                self.x_height / upm,
                self.cap_height / upm,
                self.average_width / upm,
                self.width_factor,
            ],
            dtype=np.float64,
        )

    def to_flat_dict(self) -> dict[str, float]:
        """Flat key/value form consumed by layout engines."""
        vector = self.normalized_vector()
        return {
            "units_per_em": self.units_per_em,
            "ascender": self.ascender,
            "descender": self.descender,
            "x_height": self.x_height,
            "cap_height": self.cap_height,
            "average_width": self.average_width,
            "max_advance_width": self.max_advance_width,
            "ascender_em": float(vector[0]),
            "descender_em": float(vector[1]),
            "x_height_em": float(vector[2]),
            "cap_height_em": float(vector[3]),
            "average_width_em": float(vector[4]),
            "width_factor": float(vector[5]),
        }


class LicenseInfo(BaseModel):
    """License classification attached to a font descriptor."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="License name, e.g. OFL-1.1")
    url: str | None = Field(None, description="License text URL")
    allows_embedding: bool | None = Field(None, description="None when unknown")
    allows_modification: bool | None = Field(None, description="None when unknown")
    requires_attribution: bool = Field(False, description="Attribution required")


class FontDescriptor(BaseModel):
    """A physical (or web-hosted) font candidate. Treated as a value type."""

    model_config = ConfigDict(frozen=True)

    family: str = Field(..., min_length=1, description="Family name")
    subfamily: str = Field("Regular", description="Subfamily / style name")
    postscript_name: str | None = Field(None, description="PostScript name")
    full_name: str | None = Field(None, description="Full font name")
    path: str | None = Field(None, description="File path or remote URL")
    origin: str | None = Field(None, description="Provider or directory that produced it")
    format: FontFormat = Field(FontFormat.OTHER, description="Container format")
    weight: int = Field(400, ge=100, le=900, description="Weight class")
    italic: bool = Field(False, description="Italic or oblique")
    monospaced: bool = Field(False, description="Fixed pitch")
    variable: bool = Field(False, description="Variable font")
    category: FontCategory | None = Field(None, description="Font category")
    metrics: FontMetrics | None = Field(None, description="Font metrics")
    license: LicenseInfo | None = Field(None, description="License classification")

    @field_validator("family")
    @classmethod
    def family_not_blank(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("family must not be blank")
        return v

    @property
    def family_key(self) -> str:
        return comparison_key(self.family)

    def with_license(self, license_info: LicenseInfo) -> "FontDescriptor":
        return self.model_copy(update={"license": license_info})

    def __str__(self) -> str:
        return f"{self.family} ({self.weight}{' italic' if self.italic else ''})"


class FontRequest(BaseModel):
    """Canonical form of a raw font name."""

    model_config = ConfigDict(frozen=True)

    original_name: str
    normalized_name: str
    family: str
    weight: int = Field(400, ge=100, le=900)
    style: FontStyle = FontStyle.NORMAL
    italic: bool = False
    monospaced: bool = False

    @property
    def family_key(self) -> str:
        return comparison_key(self.family)

    @property
    def signature(self) -> str:
        """Normalized signature used as the cache key."""
        return f"{self.family_key}:{self.weight}:{self.style.value}"

    def matches(self, descriptor: FontDescriptor) -> bool:
        """Exact normalized-name, weight and style match."""
        return (
            descriptor.family_key == self.family_key
            and descriptor.weight == self.weight
            and descriptor.italic == self.italic
        )


class ScoredCandidate(BaseModel):
    """A candidate font with its compatibility score for a request."""

    model_config = ConfigDict(frozen=True)

    descriptor: FontDescriptor
    score: float = Field(..., ge=0.0, le=1.0)
    name_similarity: float = Field(0.0, ge=0.0, le=1.0)
    metric_similarity: float | None = Field(None, ge=0.0, le=1.0)
    source: FontSource = FontSource.SYSTEM
    in_cache: bool = False
    preferred_rank: int | None = Field(None, description="Index in preferred families")


class TieredMatches(BaseModel):
    """Candidates partitioned into the exact (>=0.90) and similar (0.80-0.90) tiers."""

    exact_tier: list[ScoredCandidate] = Field(default_factory=list)
    similar_tier: list[ScoredCandidate] = Field(default_factory=list)

    @property
    def best(self) -> ScoredCandidate | None:
        if self.exact_tier:
            return self.exact_tier[0]
        if self.similar_tier:
            return self.similar_tier[0]
        return None


class ResolutionResult(BaseModel):
    """Outcome of resolving one font name."""

    original_name: str
    resolved: FontDescriptor
    source: FontSource
    substituted: bool = False
    substitution_reason: SubstitutionReason | None = None
    compatibility_score: float = Field(..., ge=0.0, le=1.0)
    warnings: list[str] = Field(default_factory=list)
    tier: MatchTier | None = None
    resolved_by: ResolverState | None = None


class BatchItemResult(BaseModel):
    """Outcome of one name in a batch; exactly one of ``result`` and ``error`` is set."""

    index: int = Field(..., ge=0, description="Position in the input list")
    name: str
    success: bool
    result: ResolutionResult | None = None
    error: str | None = None
    error_type: str | None = None
    processing_time_ms: float = Field(0.0, ge=0.0)


class BatchResolutionResult(BaseModel):
    """Aggregate outcome of a batch, items in input order."""

    results: list[BatchItemResult] = Field(default_factory=list)
    total_items: int = 0
    successful_items: int = 0
    failed_items: int = 0
    total_processing_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_items == 0:
            return 100.0
        return (self.successful_items / self.total_items) * 100.0

    @property
    def failures(self) -> list[BatchItemResult]:
        return [item for item in self.results if not item.success]
