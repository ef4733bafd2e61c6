"""Configuration management for the font resolution engine."""

from enum import Enum
from pathlib import Path

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import (
    ConfigFileNotFoundError,
    ConfigLoadError,
    ConfigurationError,
    EmptyConfigFileError,
    InvalidYamlError,
)

DEFAULT_PREFERRED_FAMILIES = ["Noto Sans", "Noto Serif", "Liberation Sans", "DejaVu Sans"]


def default_cache_dir() -> Path:
    return Path.home() / ".cache" / "fontresolver"


class LicensePolicy(str, Enum):
    """How license-flagged results are treated."""

    WARN = "warn"  # annotate the result
    SUBSTITUTE = "substitute"  # skip flagged candidates
    REQUIRE = "require"  # fail if the result is flagged


class ResolverConfig(BaseSettings):
    """Resolver configuration, loaded once per session."""

    model_config = SettingsConfigDict(
        env_prefix="FONTRESOLVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Source toggles
    search_system: bool = Field(True, description="Search system font directories")
    search_user: bool = Field(True, description="Search user font directories")
    use_open_fonts: bool = Field(True, description="Consult open font repositories")
    allow_substitution: bool = Field(True, description="Allow substituting another family")
    require_metrics: bool = Field(False, description="Only accept candidates with metrics")
    max_metrics_deviation: float = Field(
        0.2, ge=0.0, le=1.0, description="Metric distance mapped to zero similarity"
    )
    user_font_dirs: list[Path] = Field(default_factory=list, description="Extra font dirs")
    preferred_families: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PREFERRED_FAMILIES),
        description="Ordered fallback families",
    )

    # Cache
    cache_results: bool = Field(True, description="Persist resolutions to disk")
    cache_dir: Path = Field(default_factory=default_cache_dir, description="Cache directory")
    memory_limit_mb: float = Field(2.0, gt=0, description="In-memory cache budget")
    disk_limit_mb: float = Field(10.0, gt=0, description="Persistent cache budget")
    auto_pin_threshold: int = Field(5, ge=1, description="Access count that auto-pins an entry")
    stale_after_days: float = Field(30.0, ge=0, description="Idle age removed by cleanup")
    aggressive_stale_after_days: float = Field(
        7.0, ge=0, description="Idle age removed by aggressive cleanup"
    )
    io_timeout_seconds: float = Field(5.0, gt=0, description="Cache store read/write bound")

    # Signature database
    signature_db_path: Path | None = Field(None, description="Compressed signature database")

    # Web providers
    google_fonts_enabled: bool = Field(True, description="Query Google Fonts metadata API")
    google_fonts_api_key: str | None = Field(None, description="Google Fonts API key")
    fontsource_enabled: bool = Field(True, description="Query Fontsource metadata API")
    provider_timeout_seconds: float = Field(2.0, gt=0, le=30.0, description="Per-provider bound")

    # Policies
    license_policy: LicensePolicy = Field(LicensePolicy.WARN, description="License handling")
    max_workers: int = Field(4, ge=1, le=64, description="Batch resolution workers")

    @field_validator("preferred_families")
    @classmethod
    def strip_preferred_families(cls, v: list[str]) -> list[str]:
        return [name.strip() for name in v if name.strip()]

    @field_validator("aggressive_stale_after_days")
    @classmethod
    def aggressive_not_longer(cls, v: float, info) -> float:
        stale = info.data.get("stale_after_days") if info.data else None
        if stale is not None and v > stale:
            raise ConfigurationError(
                "aggressive_stale_after_days must not exceed stale_after_days"
            )
        return v

    @property
    def memory_limit_bytes(self) -> int:
        return int(self.memory_limit_mb * 1024 * 1024)

    @property
    def disk_limit_bytes(self) -> int:
        return int(self.disk_limit_mb * 1024 * 1024)

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / "cache.json"

    @classmethod
    def from_yaml(cls, config_path: str | Path) -> "ResolverConfig":
        """Load configuration from YAML file."""
        return load_config_from_yaml(config_path, cls)

    @classmethod
    def from_env_and_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str = ".env"
    ) -> "ResolverConfig":
        """Load configuration from environment variables and optionally override with YAML."""
        if yaml_path and Path(yaml_path).exists():
            return cls.from_yaml(yaml_path)
        return cls(_env_file=env_file if Path(env_file).exists() else None)


def load_config_from_yaml(config_path: str | Path, config_class: type) -> BaseSettings:
    """Load configuration from YAML file."""
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigFileNotFoundError(str(config_path))

    try:
        with open(config_path) as f:
            config_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise InvalidYamlError(str(config_path), str(e)) from e

    if config_data is None:
        raise EmptyConfigFileError(str(config_path))

    try:
        # YAML values take precedence; skip the .env file for this instance
        return config_class(_env_file=None, **config_data)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigLoadError(str(e)) from e

