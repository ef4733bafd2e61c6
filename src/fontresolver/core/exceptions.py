"""Custom exceptions for the font resolution engine."""

from typing import Any


class FontResolverError(Exception):
    """Base exception for all font resolver errors."""

    def __init__(self, message: str, details: Any | None = None):
        super().__init__(message)
        self.details = details


class NotFoundError(FontResolverError):
    """Exception raised when no font can satisfy a request."""


class ParseError(FontResolverError):
    """Exception raised when a font file cannot be parsed."""


class UnsupportedFormatError(FontResolverError):
    """Exception raised for font files in an unsupported container format."""


class LicenseRestrictionError(FontResolverError):
    """Exception raised when a license-safe result was required but not available."""


class InvalidFontNameError(FontResolverError):
    """Exception raised for empty or unnormalizable font names."""


class PlatformNotSupportedError(FontResolverError):
    """Exception raised when font scanning is unavailable on this OS."""


class ProviderTimeoutError(FontResolverError):
    """Exception raised when a web provider query exceeds its time bound."""


class ProviderError(FontResolverError):
    """Exception raised when a web provider query fails."""


class CacheError(FontResolverError):
    """Exception raised for cache storage errors."""


class DatabaseError(FontResolverError):
    """Exception raised for signature database errors."""


class ConfigurationError(FontResolverError):
    """Exception raised for configuration errors."""


class ResolutionCancelledError(FontResolverError):
    """Exception raised when a caller cancels an in-progress resolution."""


# Specific exception classes for TRY003 compliance
class EmptyFontNameError(InvalidFontNameError):
    """Exception raised when a font name is empty after trimming."""

    def __init__(self, raw_name: str):
        super().__init__(f"Font name is empty after trimming: {raw_name!r}")


class FontNotFoundError(NotFoundError):
    """Exception raised when resolution exhausts every tier."""

    def __init__(self, font_name: str, reason: str):
        super().__init__(f"Font not found: {font_name} ({reason})")
        self.font_name = font_name


class MetricsNotFoundError(NotFoundError):
    """Exception raised when no metrics are known for a font."""

    def __init__(self, font_name: str):
        super().__init__(f"No metrics available for font: {font_name}")
        self.font_name = font_name


class CacheEntryNotFoundError(NotFoundError):
    """Exception raised when a cache operation targets a missing entry."""

    def __init__(self, key: str):
        super().__init__(f"No cache entry for: {key}")
        self.key = key


class FontFileNotFoundError(NotFoundError):
    """Exception raised when a font file path does not exist."""

    def __init__(self, file_path: str):
        super().__init__(f"Font file not found: {file_path}")


class UnsupportedFontExtensionError(UnsupportedFormatError):
    """Exception raised for font files with an unknown extension."""

    def __init__(self, file_path: str, extension: str):
        super().__init__(f"Unsupported font format '{extension}' for file: {file_path}")


class FontParseFailedError(ParseError):
    """Exception raised when the metrics extractor rejects a font file."""

    def __init__(self, file_path: str, error: str):
        super().__init__(f"Failed to parse font file {file_path}: {error}")


class UnsupportedPlatformError(PlatformNotSupportedError):
    """Exception raised when no font directories are known for the platform."""

    def __init__(self, platform_name: str):
        super().__init__(f"Font scanning is not supported on platform: {platform_name}")


class ProviderRequestTimeoutError(ProviderTimeoutError):
    """Exception raised when a single provider request times out."""

    def __init__(self, provider: str, timeout_seconds: float):
        super().__init__(f"Provider {provider} timed out after {timeout_seconds}s")
        self.provider = provider
        self.timeout_seconds = timeout_seconds


class ProviderRequestFailedError(ProviderError):
    """Exception raised when a provider request fails."""

    def __init__(self, provider: str, error: str):
        super().__init__(f"Provider {provider} request failed: {error}")
        self.provider = provider


class LicenseRequiredError(LicenseRestrictionError):
    """Exception raised when the resolved font is flagged and license-safe results were required."""

    def __init__(self, font_name: str, license_name: str):
        super().__init__(
            f"Resolved font {font_name} carries license restriction ({license_name}) "
            "and license-safe results are required"
        )
        self.font_name = font_name


class CancelledResolutionError(ResolutionCancelledError):
    """Exception raised when a resolution is cancelled by its caller."""

    def __init__(self, font_name: str):
        super().__init__(f"Resolution cancelled: {font_name}")


class UnsupportedCacheVersionError(CacheError):
    """Exception raised when the persisted cache store has an unknown version."""

    def __init__(self, path: str, version: Any):
        super().__init__(
            f"Cache store {path} has unsupported version {version!r}; refusing to read or overwrite it"
        )
        self.version = version


class CorruptCacheStoreError(CacheError):
    """Exception raised when the persisted cache store cannot be decoded."""

    def __init__(self, path: str, error: str):
        super().__init__(f"Cache store {path} is corrupt: {error}")


class CacheIOTimeoutError(CacheError):
    """Exception raised when a cache store read or write exceeds its time bound."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(f"Cache {operation} timed out after {timeout_seconds}s")


class InvalidDatabaseHeaderError(DatabaseError):
    """Exception raised when a signature database has the wrong magic bytes."""

    def __init__(self, path: str):
        super().__init__(f"Not a font signature database: {path}")


class UnsupportedDatabaseVersionError(DatabaseError):
    """Exception raised when a signature database has an unknown format version."""

    def __init__(self, path: str, version: int):
        super().__init__(
            f"Signature database {path} has unsupported format version {version}; "
            "upgrade font-resolver to read it"
        )
        self.version = version


class CorruptDatabaseError(DatabaseError):
    """Exception raised when a signature database payload cannot be decoded."""

    def __init__(self, path: str, error: str):
        super().__init__(f"Signature database {path} is corrupt: {error}")


class ConfigFileNotFoundError(ConfigurationError):
    """Exception raised when configuration file is not found."""

    def __init__(self, config_path: str):
        super().__init__(f"Configuration file not found: {config_path}")


class EmptyConfigFileError(ConfigurationError):
    """Exception raised when configuration file is empty."""

    def __init__(self, config_path: str):
        super().__init__(f"Empty configuration file: {config_path}")


class InvalidYamlError(ConfigurationError):
    """Exception raised when YAML configuration is invalid."""

    def __init__(self, config_path: str, error: str):
        super().__init__(f"Invalid YAML in {config_path}: {error}")


class ConfigLoadError(ConfigurationError):
    """Exception raised when configuration loading fails."""

    def __init__(self, error: str):
        super().__init__(f"Failed to load configuration: {error}")
