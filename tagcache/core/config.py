"""Configuration settings for the tag-addressable cache."""

from pydantic_settings import BaseSettings
from typing import Optional, Dict
import os


class Settings(BaseSettings):
    """Cache settings."""

    # Backend Selection
    cache_backend: str = "memory"  # memory, redis, or tiered
    redis_url: Optional[str] = "redis://localhost:6379"
    redis_key_prefix: Optional[str] = None  # Scopes clear() to one tenant
    near_cache_ttl: int = 5  # Upper bound for near-tier entries (tiered backend)

    # Keys
    cache_namespace: str = "app"
    max_key_length: int = 200

    # Expiry
    default_ttl: Optional[int] = None  # None = no TTL expiry
    ttl_profiles: Dict[str, Dict[str, int]] = {}  # name -> {stale, revalidate, expire}

    # Write-Behind Configuration
    write_behind_flush_interval: float = 5.0  # seconds
    write_behind_max_retries: int = 3
    write_behind_max_queue_size: int = 1000
    write_behind_retry_base_delay: float = 0.5  # seconds, doubled per retry
    write_behind_retry_max_delay: float = 30.0

    # Lifecycle
    install_signal_handlers: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # text or json

    class Config:
        env_file = ".env"
        env_prefix = "TAGCACHE_"
        case_sensitive = False
        extra = "ignore"


settings = Settings()

# Override with environment variables
if os.getenv("REDIS_URL"):
    settings.redis_url = os.getenv("REDIS_URL")
