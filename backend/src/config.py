"""
Configuration management for the FPL sync service.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class Config:
    """Application configuration."""

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")
    supabase_service_key: Optional[str] = os.getenv("SUPABASE_SERVICE_KEY", None)

    # FPL API Configuration
    fpl_api_base_url: str = os.getenv("FPL_API_BASE_URL", "https://fantasy.premierleague.com/api")
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "30.0"))

    # Rate Limiting
    max_requests_per_minute: int = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "30"))
    min_request_interval: float = float(os.getenv("MIN_REQUEST_INTERVAL", "1.0"))

    # Retry Configuration
    max_retries: int = int(os.getenv("MAX_RETRIES", "3"))
    retry_backoff_base: float = float(os.getenv("RETRY_BACKOFF_BASE", "1.0"))
    max_retry_delay: int = int(os.getenv("MAX_RETRY_DELAY", "60"))

    # Schedule cache (gameweeks + per-gameweek fixtures), in seconds: 12 hours
    schedule_cache_ttl: int = int(os.getenv("SCHEDULE_CACHE_TTL", "43200"))
    # Catalog bulk sync (clubs + players) cadence for the long-running service
    catalog_sync_interval: int = int(os.getenv("CATALOG_SYNC_INTERVAL", "21600"))  # 6 hours

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")  # json or text

    def validate(self):
        """Validate configuration."""
        errors = []

        if not self.supabase_url:
            errors.append("SUPABASE_URL is required")
        if not self.supabase_key:
            errors.append("SUPABASE_KEY is required")
        if self.schedule_cache_ttl <= 0:
            errors.append("SCHEDULE_CACHE_TTL must be positive")
        if self.catalog_sync_interval <= 0:
            errors.append("CATALOG_SYNC_INTERVAL must be positive")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return True

    def __post_init__(self):
        """Validate after initialization."""
        self.validate()
