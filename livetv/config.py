"""
Configuration management for the Live TV catalog backend.
Uses pydantic-settings for environment variable loading.
"""
import logging
from functools import lru_cache
from typing import Optional

from apscheduler.triggers.cron import CronTrigger
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from livetv.errors import ConfigurationError
from livetv.utils.timezone import DEFAULT_DISPLAY_OFFSET, parse_display_offset

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "Live TV"
    app_version: str = "0.3.0"
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 10000

    # CORS Configuration
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    stream_rate_limit_per_minute: int = 60

    # Content sources (single URL, comma-list or list-file)
    playlist_url: str = "https://raw.githubusercontent.com/kadeschs/FluxusTV/refs/heads/main/link.playlist"
    epg_url: Optional[str] = None
    enable_epg: bool = True

    # Display offset for program times, e.g. "+1:00" or "-05:30"
    timezone_offset: str = DEFAULT_DISPLAY_OFFSET

    # Cache Configuration
    cache_update_interval_seconds: int = 12 * 60 * 60  # 12 hours
    catalog_page_size: int = 100

    # EPG Configuration
    epg_refresh_cron: str = "0 3 * * *"  # Daily at 3 AM
    epg_chunk_size: int = 10000

    # Network timeouts
    fetch_timeout_seconds: float = 10.0

    # Proxy Configuration
    proxy_url: Optional[str] = None
    proxy_password: Optional[str] = None
    force_proxy: bool = False
    proxy_check_timeout_seconds: float = 5.0
    proxy_cache_ttl_seconds: int = 300

    # Manifest
    manifest_id: str = "org.livetv.catalog"
    manifest_name: str = "Live TV"
    manifest_description: str = "Live TV channels with program guide."
    manifest_logo: Optional[str] = None
    catalog_id: str = "livetv"

    model_config = SettingsConfigDict(env_prefix="LIVETV_", env_file=".env", extra="ignore")

    @field_validator("timezone_offset", mode="before")
    @classmethod
    def validate_timezone_offset(cls, value):
        """Fall back to the default display offset on invalid input."""
        try:
            parse_display_offset(value)
        except ConfigurationError as e:
            logger.warning(f"{e}, using {DEFAULT_DISPLAY_OFFSET}")
            return DEFAULT_DISPLAY_OFFSET
        return value.strip()

    @field_validator("epg_refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            CronTrigger.from_crontab(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc
        return value

    @field_validator("epg_url", "proxy_url", "proxy_password", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("cache_update_interval_seconds", "epg_chunk_size", "catalog_page_size")
    @classmethod
    def validate_positive(cls, value: int, info) -> int:
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @property
    def proxy_configured(self) -> bool:
        return bool(self.proxy_url and self.proxy_password)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
