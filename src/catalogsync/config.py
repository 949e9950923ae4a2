"""
Configuration for the catalog engine.

Uses Pydantic for validation and environment loading.
"""

import os
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


class ImportSettings(BaseModel):
    """Configuration for single-store catalog imports."""

    batch_size: int = Field(default=10, ge=1, description="Items per import batch")
    batch_delay_sec: float = Field(
        default=180.0, ge=0, description="Pause between batches (3 min)"
    )
    page_delay_sec: float = Field(
        default=1.0, ge=0, description="Pause between remote page fetches"
    )
    page_size: int = Field(default=30, ge=1, description="Items per remote page")
    image_delay_ms: int = Field(
        default=500, ge=0, description="Pause between image downloads"
    )
    request_timeout: float = Field(
        default=30.0, description="Remote request timeout in seconds"
    )


class SyncSettings(BaseModel):
    """Configuration for multi-store synchronization."""

    platform: str = Field(default="WOO", description="Platform targeted by sync-all")
    page_size: int = Field(default=100, ge=1, description="Products per remote page")
    max_pages: Optional[int] = Field(
        default=None, description="Page cap per store, None=unlimited"
    )
    concurrency: int = Field(default=1, ge=1, description="Stores synced at once")
    interval_sec: int = Field(
        default=3600, description="Seconds between scheduled syncs (1 hour)"
    )
    modified_only: bool = Field(
        default=True, description="Scheduled syncs only pull modified products"
    )
    retry_max: int = Field(default=3, description="Retries for a failed page fetch")
    retry_backoff: float = Field(
        default=2.0, description="Backoff multiplier between retries"
    )
    variation_batch_size: int = Field(
        default=5, ge=1, description="Variations fetched concurrently"
    )
    currency: str = Field(default="USD", description="Fallback store currency")
    request_timeout: float = Field(
        default=30.0, description="Remote request timeout in seconds"
    )


class EngineConfig(BaseSettings):
    """Master configuration for catalogsync.

    Loads from environment variables (exact names, no prefix).
    """

    model_config = ConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    # Service identity
    service_name: str = Field(default="catalogsync")
    log_level: str = Field(default="INFO")

    # Storage
    database_url: str = Field(default="", description="PostgreSQL URL for the catalog")
    assets_dir: str = Field(
        default="public/assets/products", description="Local image archive root"
    )
    assets_url_prefix: str = Field(
        default="/assets/products", description="Public path of archived images"
    )

    # HTTP surface
    http_host: str = Field(default="0.0.0.0")
    http_port: int = Field(default=8000)

    importing: ImportSettings = Field(default_factory=ImportSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        max_pages = os.getenv("SYNC_MAX_PAGES")
        return cls(
            service_name=os.getenv("SERVICE_NAME", "catalogsync"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            database_url=os.getenv("DATABASE_URL", ""),
            assets_dir=os.getenv("ASSETS_DIR", "public/assets/products"),
            assets_url_prefix=os.getenv("ASSETS_URL_PREFIX", "/assets/products"),
            http_host=os.getenv("HTTP_HOST", "0.0.0.0"),
            http_port=int(os.getenv("HTTP_PORT", "8000")),
            importing=ImportSettings(
                batch_size=int(os.getenv("IMPORT_BATCH_SIZE", "10")),
                batch_delay_sec=float(os.getenv("IMPORT_BATCH_DELAY_SEC", "180")),
                page_delay_sec=float(os.getenv("IMPORT_PAGE_DELAY_SEC", "1.0")),
                page_size=int(os.getenv("IMPORT_PAGE_SIZE", "30")),
                image_delay_ms=int(os.getenv("IMPORT_IMAGE_DELAY_MS", "500")),
                request_timeout=float(os.getenv("IMPORT_REQUEST_TIMEOUT", "30.0")),
            ),
            sync=SyncSettings(
                platform=os.getenv("SYNC_PLATFORM", "WOO"),
                page_size=int(os.getenv("SYNC_PAGE_SIZE", "100")),
                max_pages=int(max_pages) if max_pages else None,
                concurrency=int(os.getenv("SYNC_CONCURRENCY", "1")),
                interval_sec=int(os.getenv("SYNC_INTERVAL_SEC", "3600")),
                modified_only=os.getenv("SYNC_MODIFIED_ONLY", "true").lower() == "true",
                retry_max=int(os.getenv("SYNC_RETRY_MAX", "3")),
                retry_backoff=float(os.getenv("SYNC_RETRY_BACKOFF", "2.0")),
                variation_batch_size=int(os.getenv("SYNC_VARIATION_BATCH_SIZE", "5")),
                currency=os.getenv("SYNC_CURRENCY", "USD"),
                request_timeout=float(os.getenv("SYNC_REQUEST_TIMEOUT", "30.0")),
            ),
        )


_config: Optional[EngineConfig] = None


def get_config() -> EngineConfig:
    """Get or create the process-wide configuration."""
    global _config
    if _config is None:
        _config = EngineConfig.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (next get_config() reloads it)."""
    global _config
    _config = None
