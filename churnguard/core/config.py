"""
Settings and environment management module for the ChurnGuard FastAPI backend.

This module provides centralized configuration management using pydantic-settings,
which automatically loads settings from environment variables and .env files.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for development (in-memory metrics provider)
- Singleton pattern via @lru_cache for efficient access
- Optional BigQuery/CSV metrics source configuration
- Optional per-threshold overrides for the risk threshold policy

Environment Variables:
- METRICS_SOURCE: 'memory', 'csv' or 'bigquery' (default: memory)
- METRICS_CSV_PATH / ACCOUNTS_CSV_PATH: CSV files for the csv metrics source
- BIGQUERY_PROJECT: BigQuery project ID (For BigQuery metrics source)
- BIGQUERY_PERIOD_TABLE / BIGQUERY_ACCOUNT_TABLE: Fully-qualified table ids
- DASHBOARD_PASSWORD: Initial dashboard password
- SESSION_TTL_HOURS: Session lifetime (default: 24)

Risk Threshold Overrides (all optional, default to the built-in policy):
- MONTHLY_REDEMPTIONS_THRESHOLD
- LOW_ACTIVITY_SUBSCRIBERS_THRESHOLD
- LOW_ACTIVITY_REDEMPTIONS_THRESHOLD
- SPEND_DROP_THRESHOLD
- REDEMPTIONS_DROP_THRESHOLD
- MIN_ELAPSED_PERIODS_FOR_DROP_FLAGS

Usage:
    from churnguard.core.config import get_settings

    settings = get_settings()
    source = settings.metrics_source
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        app_name: Service name reported by the health and root endpoints.
        metrics_source: Which metrics provider backs the dashboard.
        metrics_csv_path: Per-period metrics CSV for the csv provider.
        accounts_csv_path: Account snapshot CSV for the csv provider.
        bigquery_project: BigQuery project ID for the bigquery provider.
        bigquery_period_table: Fully-qualified table holding per-period rows.
        bigquery_account_table: Fully-qualified table holding account snapshots.
        history_periods: Number of trailing periods returned per account.
        dashboard_password: Password accepted by the login endpoint at startup.
        session_ttl_hours: Hours before a session token expires.
        min_password_length: Minimum length accepted by change-password.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        case_sensitive=False,
    )

    # =========================================================================
    # Service
    # =========================================================================

    app_name: str = 'ChurnGuard'

    # =========================================================================
    # Metrics Provider
    # =========================================================================

    # One of: memory, csv, bigquery
    metrics_source: str = 'memory'

    metrics_csv_path: Optional[str] = None
    accounts_csv_path: Optional[str] = None

    # Only required when metrics_source == 'bigquery'
    bigquery_project: Optional[str] = None
    bigquery_period_table: Optional[str] = None
    bigquery_account_table: Optional[str] = None

    # Trailing window of periods served per account (12 weeks / 12 months)
    history_periods: int = 12

    # =========================================================================
    # Sessions
    # =========================================================================

    dashboard_password: str = 'change-me'
    session_ttl_hours: int = 24
    min_password_length: int = 8

    # =========================================================================
    # Risk Threshold Overrides
    # None means "use the built-in policy value".
    # =========================================================================

    monthly_redemptions_threshold: Optional[int] = None
    low_activity_subscribers_threshold: Optional[int] = None
    low_activity_redemptions_threshold: Optional[int] = None
    spend_drop_threshold: Optional[float] = None
    redemptions_drop_threshold: Optional[float] = None
    min_elapsed_periods_for_drop_flags: Optional[int] = None


@lru_cache()
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Returns:
        Settings: The application settings instance with all configuration values.

    Raises:
        pydantic.ValidationError: If environment variables have invalid values.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
