"""
Pytest configuration and fixtures for font resolution tests.
"""

import tempfile
import threading
from pathlib import Path

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen

from fontresolver.core.config import ResolverConfig
from fontresolver.core.models import FontCategory, FontDescriptor, FontMetrics, FontRequest
from fontresolver.fonts.providers import BaseFontProvider, ProviderCandidate
from fontresolver.fonts.scorer import MetricScorer
from fontresolver.resolution.aggregator import LocalFontIndex
from fontresolver.resolution.cache import FontCache
from fontresolver.resolution.engine import FontResolver


def make_metrics(
    ascender=905,
    descender=-212,
    x_height=519,
    cap_height=716,
    average_width=441,
    max_advance_width=1000,
    units_per_em=1000,
) -> FontMetrics:
    return FontMetrics(
        units_per_em=units_per_em,
        ascender=ascender,
        descender=descender,
        x_height=x_height,
        cap_height=cap_height,
        average_width=average_width,
        max_advance_width=max_advance_width,
    )


ARIAL_METRICS = make_metrics()
LIBERATION_SANS_METRICS = make_metrics(ascender=905, descender=-212, x_height=528, cap_height=729)
TIMES_METRICS = make_metrics(
    ascender=891, descender=-216, x_height=448, cap_height=662, average_width=401
)
MONO_METRICS = make_metrics(
    ascender=760, descender=-240, x_height=545, cap_height=729, average_width=602, max_advance_width=602
)


def make_descriptor(
    family: str,
    weight: int = 400,
    italic: bool = False,
    metrics: FontMetrics | None = None,
    path: str | None = None,
    monospaced: bool = False,
    **kwargs,
) -> FontDescriptor:
    slug = family.replace(" ", "")
    return FontDescriptor(
        family=family,
        subfamily=kwargs.pop("subfamily", "Italic" if italic else "Regular"),
        path=path or f"/fonts/{slug}-{weight}{'i' if italic else ''}.ttf",
        weight=weight,
        italic=italic,
        monospaced=monospaced,
        metrics=metrics,
        **kwargs,
    )


def _rect(width, height):
    pen = TTGlyphPen(None)
    pen.moveTo((50, 0))
    pen.lineTo((50, height))
    pen.lineTo((width, height))
    pen.lineTo((width, 0))
    pen.closePath()
    return pen.glyph()


def build_test_font(path: Path, family="Test Sans", style="Bold", weight=700) -> Path:
    """Write a minimal TrueType font with x and H glyphs."""
    builder = FontBuilder(1000, isTTF=True)
    builder.setupGlyphOrder([".notdef", "x", "H"])
    builder.setupCharacterMap({ord("x"): "x", ord("H"): "H"})
    builder.setupGlyf(
        {".notdef": TTGlyphPen(None).glyph(), "x": _rect(450, 500), "H": _rect(550, 700)}
    )
    builder.setupHorizontalMetrics({".notdef": (500, 0), "x": (500, 50), "H": (600, 50)})
    builder.setupHorizontalHeader(ascent=800, descent=-200)
    builder.setupNameTable({"familyName": family, "styleName": style})
    builder.setupOS2(
        sTypoAscender=800,
        sTypoDescender=-200,
        usWinAscent=800,
        usWinDescent=200,
        usWeightClass=weight,
        xAvgCharWidth=533,
        sxHeight=500,
        sCapHeight=700,
    )
    builder.setupPost()
    builder.save(str(path))
    return path


class FakeProvider(BaseFontProvider):
    """In-process provider returning canned candidates."""

    def __init__(self, name="fake", results=None, delay=0.0, error=None, gate=None):
        self.name = name
        self.results = list(results or [])
        self.delay = delay
        self.error = error
        self.gate = gate
        self.calls = 0
        self.started = threading.Event()
        self.closed = False
        self._lock = threading.Lock()

    def search(self, request: FontRequest, timeout: float, cancel_event=None):
        with self._lock:
            self.calls += 1
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5.0)
        if self.delay:
            # Returns early once the resolver signals stragglers to stop
            if cancel_event is not None:
                cancel_event.wait(self.delay)
            else:
                threading.Event().wait(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.results)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def temp_dir():
    """Create temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def config(temp_dir):
    """Resolver configuration isolated from the host's fonts and cache."""
    return ResolverConfig(
        _env_file=None,
        cache_dir=temp_dir / "cache",
        search_system=False,
        search_user=False,
        google_fonts_enabled=False,
        fontsource_enabled=False,
        provider_timeout_seconds=1.0,
    )


@pytest.fixture
def clock():
    """Controllable clock; advance by assigning ``clock.now``."""

    class Clock:
        now = 1_000_000.0

        def __call__(self):
            return self.now

        def advance_days(self, days: float) -> None:
            self.now += days * 86400.0

    return Clock()


@pytest.fixture
def cache(config, clock):
    font_cache = FontCache(config, clock=clock)
    yield font_cache
    font_cache.close()


@pytest.fixture
def local_fonts():
    """A small, deterministic set of installed fonts."""
    return [
        make_descriptor("Arial", metrics=ARIAL_METRICS),
        make_descriptor("Arial", weight=700, metrics=ARIAL_METRICS),
        make_descriptor("Arial", italic=True, metrics=ARIAL_METRICS),
        make_descriptor("Liberation Sans", metrics=LIBERATION_SANS_METRICS),
        make_descriptor("Times New Roman", metrics=TIMES_METRICS, category=FontCategory.SERIF),
        make_descriptor("DejaVu Sans Mono", metrics=MONO_METRICS, monospaced=True),
    ]


@pytest.fixture
def local_index(local_fonts):
    return LocalFontIndex.from_descriptors(local_fonts)


@pytest.fixture
def scorer(config):
    return MetricScorer(
        max_metrics_deviation=config.max_metrics_deviation,
        preferred_families=config.preferred_families,
    )


@pytest.fixture
def make_resolver(config, local_index, clock):
    """Factory building resolvers over the fixture fonts; shut down after the test."""
    created = []

    def factory(providers=None, resolver_config=None, index=None, **kwargs):
        resolver = FontResolver(
            resolver_config or config,
            local_index=index if index is not None else local_index,
            providers=providers or [],
            clock=clock,
            **kwargs,
        )
        created.append(resolver)
        return resolver

    yield factory
    for resolver in created:
        resolver.shutdown()


@pytest.fixture
def resolver(make_resolver):
    return make_resolver()
