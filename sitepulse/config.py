"""
Configuration for the analytics service
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalyticsConfig(BaseSettings):
    """Tunables for session resolution, aggregation and the tracking client"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SITEPULSE_",
        case_sensitive=False,
        extra="ignore"
    )

    session_timeout_minutes: int = Field(
        default=30,
        ge=1,
        description="Inactivity window after which a presented token is no longer reused"
    )
    returning_window_days: int = Field(
        default=30,
        ge=1,
        description="Look-back window for the returning visitor heuristic"
    )

    rate_precision: int = Field(
        default=2,
        ge=0,
        description="Decimal places for bounce, CTR, conversion and other rates"
    )
    display_precision: int = Field(
        default=1,
        ge=0,
        description="Decimal places for averaged durations and scroll depths"
    )
    top_pages_limit: int = Field(default=10, ge=1)
    top_locations_limit: int = Field(default=20, ge=1)
    top_clicks_limit: int = Field(default=20, ge=1)
    top_transitions_limit: int = Field(default=10, ge=1)
    top_sources_limit: int = Field(default=10, ge=1)
    default_period: str = Field(
        default="24h",
        description="Window used when the metrics request names none"
    )

    cookie_name: str = Field(default="session_id")
    cookie_max_age_seconds: int = Field(default=30 * 24 * 60 * 60)
    cookie_secure: bool = Field(default=True)

    metrics_cache_ttl_seconds: int = Field(
        default=60,
        ge=0,
        description="Redis TTL for metrics responses, 0 disables caching"
    )

    tracker_engagement_seconds: float = Field(default=10.0)
    tracker_engagement_scroll: int = Field(default=25)
    tracker_bounce_seconds: float = Field(default=30.0)
    tracker_performance_debounce_seconds: float = Field(default=1.5)
    tracker_visibility_threshold: float = Field(default=0.5, gt=0, le=1)
    tracker_max_attempts: int = Field(default=3, ge=1)
    tracker_backoff_seconds: float = Field(default=0.5, ge=0)

    @property
    def session_timeout_ms(self) -> int:
        return self.session_timeout_minutes * 60 * 1000

    @property
    def returning_window_ms(self) -> int:
        return self.returning_window_days * 24 * 60 * 60 * 1000


def load_config() -> AnalyticsConfig:
    """Load configuration from environment variables and .env file"""
    return AnalyticsConfig()
