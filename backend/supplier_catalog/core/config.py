"""Application configuration using pydantic-settings.

All environment variables should be accessed through the settings object
rather than using os.getenv() directly.
"""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra env vars
    )

    # Database - defaults to relative path for Docker, override via env for local dev
    database_url: str = "sqlite:///./data/supplier_catalog.db"

    # CORS - comma-separated origins or "*" for development only
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # ==========================================================================
    # Certificate attachments
    # ==========================================================================
    max_certificate_size_mb: int = 10
    certificate_namespace: str = "supplier-product-certificates"

    # MinIO (S3-compatible) blob storage. Without credentials the local
    # directory below is used instead.
    minio_endpoint: str = "localhost:9000"
    minio_access_key: Optional[str] = None
    minio_secret_key: Optional[str] = None
    minio_secure: bool = False
    minio_bucket: str = "certificates"
    local_storage_dir: str = "./data/certificates"

    # ==========================================================================
    # Catalog aggregation
    # ==========================================================================
    rebuild_delete_batch_size: int = 500
    catalog_cache_ttl_seconds: int = 300
    catalog_cache_max_entries: int = 10000
    default_currency: str = "PLN"
    default_unit: str = "szt"

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True

    @field_validator("rebuild_delete_batch_size")
    @classmethod
    def validate_batch_size(cls, v: int) -> int:
        # Hosted document stores cap a single batched write at 500 operations
        if v < 1 or v > 500:
            raise ValueError("rebuild_delete_batch_size must be between 1 and 500")
        return v

    @field_validator("default_currency")
    @classmethod
    def validate_default_currency(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list, filtering localhost in production."""
        if self.cors_origins == "*":
            return ["*"]

        origins = [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

        if not self.debug:
            localhost_patterns = ["localhost", "127.0.0.1", "0.0.0.0"]
            origins = [o for o in origins if not any(p in o for p in localhost_patterns)]

        return origins

    @property
    def max_certificate_size_bytes(self) -> int:
        return self.max_certificate_size_mb * 1024 * 1024

    @property
    def minio_configured(self) -> bool:
        return bool(self.minio_access_key and self.minio_secret_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
