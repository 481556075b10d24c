"""Application settings using Pydantic Settings for environment-based configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SENTINEL_PORT = 26379


class Settings(BaseSettings):
    """
    Central configuration for reclaim-queue.

    All settings can be overridden via environment variables.
    Prefix is not used to allow standard env var names (e.g., REDIS_HOST).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False

    # Redis primary (used directly when no sentinels are configured)
    redis_host: str = "127.0.0.1"
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_db: int = Field(default=0, ge=0)
    redis_password: str | None = None

    # Redis Sentinel discovery (comma-separated "host[:port]" entries)
    sentinel_hosts: str | None = None
    sentinel_master_name: str = "mymaster"
    sentinel_socket_timeout: float = Field(default=1.0, gt=0.0, le=60.0)

    # Queue defaults
    processing_ttl_ms: int = Field(default=10_000, ge=1)
    blocking_timeout_ms: int = Field(default=1_000, ge=0)

    # Worker supervision
    worker_backoff_base_delay: float = Field(default=1.0, gt=0.0)
    worker_backoff_max_delay: float = Field(default=60.0, gt=0.0)
    worker_max_consecutive_failures: int = Field(default=10, ge=1)

    # Observability
    metrics_port: int = 8000

    @field_validator("sentinel_hosts")
    @classmethod
    def _blank_sentinels_to_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def sentinel_configured(self) -> bool:
        """Check if Sentinel discovery is configured."""
        return self.sentinel_hosts is not None

    @property
    def sentinel_endpoints(self) -> list[tuple[str, int]]:
        """
        Parse sentinel_hosts into (host, port) tuples.

        Entries without an explicit port use the Sentinel default (26379).
        """
        if not self.sentinel_hosts:
            return []

        endpoints = []
        for entry in self.sentinel_hosts.split(","):
            entry = entry.strip()
            if not entry:
                continue
            host, sep, port = entry.rpartition(":")
            if sep and port.isdigit():
                endpoints.append((host, int(port)))
            else:
                endpoints.append((entry, DEFAULT_SENTINEL_PORT))
        return endpoints


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are loaded only once.
    Clear cache with get_settings.cache_clear() if needed.
    """
    return Settings()
