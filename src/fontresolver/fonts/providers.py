"""
Web Font Providers
==================

Metadata clients for open font repositories. Providers only look fonts up;
nothing is downloaded or installed. Every request is bounded by an explicit
timeout and surfaces failures as typed provider errors, which the resolver
absorbs.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import requests

from .. import __version__
from ..core.config import ResolverConfig
from ..core.exceptions import ProviderRequestFailedError, ProviderRequestTimeoutError
from ..core.models import (
    FontCategory,
    FontDescriptor,
    FontFormat,
    FontRequest,
    LicenseInfo,
    comparison_key,
)
from .license import OPEN_LICENSE_PATTERN

logger = logging.getLogger(__name__)

GOOGLE_FONTS_URL = "https://www.googleapis.com/webfonts/v1/webfonts"
FONTSOURCE_URL = "https://api.fontsource.org/v1/fonts"
FONTSOURCE_CDN = "https://cdn.jsdelivr.net/fontsource/fonts"

_CATEGORY_MAP = {
    "serif": FontCategory.SERIF,
    "sans-serif": FontCategory.SANS_SERIF,
    "monospace": FontCategory.MONOSPACE,
    "display": FontCategory.DISPLAY,
    "handwriting": FontCategory.HANDWRITING,
    "icons": FontCategory.SYMBOL,
    "other": FontCategory.OTHER,
}


@dataclass(frozen=True)
class ProviderCandidate:
    """A provider hit, optionally with the provider's own similarity estimate."""

    descriptor: FontDescriptor
    declared_similarity: float | None = None


class BaseFontProvider(ABC):
    """Base class for live web font providers."""

    name = "provider"

    @abstractmethod
    def search(
        self,
        request: FontRequest,
        timeout: float,
        cancel_event: threading.Event | None = None,
    ) -> list[ProviderCandidate]:
        """Look up candidates for a request; raises ProviderTimeoutError or ProviderError."""

    def close(self) -> None:
        """Release any held resources."""


class HttpFontProvider(BaseFontProvider):
    """Shared HTTP plumbing for JSON metadata APIs."""

    def __init__(self, session: requests.Session | None = None):
        self.session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create HTTP session with appropriate configuration."""
        session = requests.Session()
        session.headers.update(
            {"User-Agent": f"font-resolver/{__version__}", "Accept": "application/json"}
        )
        return session

    def _get_json(self, url: str, params: dict[str, Any], timeout: float) -> Any:
        try:
            response = self.session.get(url, params=params, timeout=timeout)
            response.raise_for_status()
            return response.json()
        except requests.Timeout as e:
            raise ProviderRequestTimeoutError(self.name, timeout) from e
        except (requests.RequestException, ValueError) as e:
            raise ProviderRequestFailedError(self.name, str(e)) from e

    def close(self) -> None:
        self.session.close()


def _license_from_name(name: str | None) -> LicenseInfo | None:
    if not name:
        return None
    is_open = OPEN_LICENSE_PATTERN.search(name) is not None
    return LicenseInfo(
        name=name,
        allows_embedding=True if is_open else None,
        allows_modification=True if is_open else None,
        requires_attribution=False,
    )


def _closest_variant(variants: list[tuple[int, bool]], request: FontRequest) -> tuple[int, bool]:
    return min(variants, key=lambda v: (v[1] != request.italic, abs(v[0] - request.weight), v[0]))


class GoogleFontsProvider(HttpFontProvider):
    """Google Fonts developer API (requires an API key)."""

    name = "google-fonts"

    def __init__(self, api_key: str, session: requests.Session | None = None):
        super().__init__(session)
        self.api_key = api_key

    def search(self, request, timeout, cancel_event=None):
        if cancel_event is not None and cancel_event.is_set():
            return []
        data = self._get_json(
            GOOGLE_FONTS_URL,
            {"key": self.api_key, "family": request.family, "sort": "popularity"},
            timeout,
        )
        candidates = []
        for item in (data or {}).get("items", []):
            descriptor = self._to_descriptor(item, request)
            if descriptor is not None:
                candidates.append(ProviderCandidate(descriptor=descriptor))
        logger.debug(f"{self.name} returned {len(candidates)} candidates for {request.family}")
        return candidates

    def _to_descriptor(self, item: dict[str, Any], request: FontRequest) -> FontDescriptor | None:
        family = item.get("family")
        if not family:
            return None
        variants = [self._parse_variant(v) for v in item.get("variants", ["regular"])]
        variants = [v for v in variants if v is not None] or [(400, False)]
        weight, italic = _closest_variant(variants, request)
        files = item.get("files", {})
        variant_key = self._variant_key(weight, italic)
        url = files.get(variant_key) or files.get("regular")
        return FontDescriptor(
            family=family,
            subfamily=variant_key,
            path=url,
            origin=self.name,
            format=FontFormat.from_path(url) if url else FontFormat.OTHER,
            weight=weight,
            italic=italic,
            monospaced=item.get("category") == "monospace",
            category=_CATEGORY_MAP.get(item.get("category", "other"), FontCategory.OTHER),
            license=_license_from_name("OFL-1.1"),
        )

    @staticmethod
    def _parse_variant(variant: str) -> tuple[int, bool] | None:
        if variant == "regular":
            return 400, False
        if variant == "italic":
            return 400, True
        italic = variant.endswith("italic")
        number = variant.removesuffix("italic")
        if number.isdigit() and 100 <= int(number) <= 900:
            return int(number), italic
        return None

    @staticmethod
    def _variant_key(weight: int, italic: bool) -> str:
        if weight == 400:
            return "italic" if italic else "regular"
        return f"{weight}italic" if italic else str(weight)


class FontsourceProvider(HttpFontProvider):
    """Fontsource metadata API."""

    name = "fontsource"

    def search(self, request, timeout, cancel_event=None):
        if cancel_event is not None and cancel_event.is_set():
            return []
        data = self._get_json(FONTSOURCE_URL, {"family": request.family}, timeout)
        if isinstance(data, dict):
            data = [data]
        candidates = []
        for item in data or []:
            descriptor = self._to_descriptor(item, request)
            if descriptor is not None:
                candidates.append(ProviderCandidate(descriptor=descriptor))
        logger.debug(f"{self.name} returned {len(candidates)} candidates for {request.family}")
        return candidates

    def _to_descriptor(self, item: dict[str, Any], request: FontRequest) -> FontDescriptor | None:
        family = item.get("family")
        font_id = item.get("id") or comparison_key(family or "")
        if not family:
            return None
        weights = [int(w) for w in item.get("weights", [400]) if str(w).isdigit()] or [400]
        styles = item.get("styles", ["normal"])
        variants = [(w, style == "italic") for w in weights for style in styles]
        weight, italic = _closest_variant(variants, request)
        style = "italic" if italic else "normal"
        subset = item.get("defSubset", "latin")
        return FontDescriptor(
            family=family,
            subfamily=f"{weight} {style}",
            path=f"{FONTSOURCE_CDN}/{font_id}@latest/{subset}-{weight}-{style}.woff2",
            origin=self.name,
            format=FontFormat.WOFF2,
            weight=weight,
            italic=italic,
            monospaced=item.get("category") == "monospace",
            variable=bool(item.get("variable")),
            category=_CATEGORY_MAP.get(item.get("category", "other"), FontCategory.OTHER),
            license=_license_from_name(item.get("license")),
        )


def build_providers(config: ResolverConfig) -> list[BaseFontProvider]:
    """Instantiate the providers enabled in the configuration."""
    providers: list[BaseFontProvider] = []
    if not config.use_open_fonts:
        return providers
    if config.google_fonts_enabled:
        if config.google_fonts_api_key:
            providers.append(GoogleFontsProvider(config.google_fonts_api_key))
        else:
            logger.debug("Google Fonts enabled but no API key configured; skipping")
    if config.fontsource_enabled:
        providers.append(FontsourceProvider())
    return providers
