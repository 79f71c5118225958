"""
Configuration management for the Marketing Co-Pilot recommendation core
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Marketing Co-Pilot"
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_file: bool = False

    # Database
    database_url: str = "sqlite:///./marketing_copilot.db"

    # Recommendation tracker
    recommendation_expiry_days: int = 7  # Pending logs older than this are expired
    stats_default_days: int = 90
    top_rules_min_sample: int = 3
    top_rules_limit: int = 5

    # Learning store
    learning_match_threshold: float = 0.5  # Keyword-overlap ratio needed to apply a learning
    learning_min_pattern_count: int = 3  # Successful outcomes needed to derive a learning
    learning_sample_size: int = 5

    # Analyzer windows (days)
    campaign_lookback_days: int = 30  # Snapshot window for knowledge-base rules
    funnel_lookback_days: int = 30
    audience_lookback_days: int = 90
    cross_channel_lookback_days: int = 90
    ltv_lookback_days: int = 365
    opportunity_lookback_days: int = 30
    multi_period_window_days: int = 7
    search_lookback_days: int = 28
    analyzer_timeout_seconds: float = 30.0

    # Analyzer feature flags
    enable_cross_channel: bool = True
    enable_ltv: bool = True
    enable_funnel: bool = True
    enable_audience: bool = True
    enable_keyword_opportunity: bool = True
    enable_product_opportunity: bool = True
    enable_cannibalization: bool = True
    enable_multi_period: bool = True
    enable_negative_keyword: bool = True

    # Scheduler
    scheduler_timezone: str = "UTC"
    derive_learnings_hour: int = 4
    derive_learnings_minute: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
