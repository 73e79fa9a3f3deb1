"""
Configuration management for Marketing Hub
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Marketing Hub Analytics"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_to_file: bool = True

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./marketing_hub.db"

    # Cron trigger / scheduler
    cron_secret: str = ""
    enable_scheduler: bool = True
    scheduler_timezone: str = "UTC"
    refresh_cache_schedule: str = "33 8 * * *"  # 12:33am PST
    sync_analytics_schedule: str = "0 7,19 * * *"  # twice daily
    portfolio_cache_schedule: str = "3 8 * * *"
    cache_sweep_schedule: str = "15 9 * * *"

    # Point cache freshness
    cache_fresh_hours: float = 12.0  # Older than this triggers a background refresh
    cache_hard_expiry_hours: float = 48.0  # Older than this is never served from get()
    cache_stale_grace_days: int = 7  # Legacy tier: served up to this long past expiry
    cache_retention_days: int = 7
    portfolio_cache_max_age_hours: float = 24.0
    default_range_days: int = 30

    # Batch sync
    sync_batch_size: int = 3
    sync_batch_delay_seconds: float = 1.0
    fetch_timeout_seconds: float = 15.0
    company_timeout_margin_seconds: float = 5.0  # Portfolio per-company limit is fetch timeout + this
    sync_max_execution_seconds: float = 270.0  # Leave headroom under a 5 minute job limit
    sync_backfill_days: int = 90  # First sync goes this far back
    sync_resync_days: int = 3  # Re-fetch window when already up to date
    daily_retention_days: int = 365
    snapshot_retention_days: int = 90
    status_ok_window_hours: float = 48.0

    # Admin actions
    admin_actions_per_hour: int = 3

    # Provider API versions
    linkedin_api_version: str = "202401"

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
