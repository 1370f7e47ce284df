"""
Application configuration using Pydantic Settings v2
Environment variables loaded from .env file
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with validation and environment variable loading"""

    # Core
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Database
    supabase_url: str
    supabase_service_key: str

    # Observability
    sentry_dsn: str | None = None

    # API Configuration
    api_title: str = "Växtlistan Plant Search API"
    api_version: str = "0.1.0"
    api_description: str = "Plant-name resolution and availability search for Swedish nurseries"

    # Rate Limiting
    rate_limit_enabled: bool = True
    rate_limit_per_minute: int = 60
    rate_limit_per_hour: int = 1000

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "https://vaxtlistan.se"]

    # Exact matching
    prefix_min_length: int = 6
    prefix_max_excess: int = 15

    # Fuzzy matching (threshold passed to the similarity index)
    fuzzy_min_length: int = 4
    fuzzy_short_input_length: int = 8
    fuzzy_threshold_short: float = 0.2
    fuzzy_threshold_long: float = 0.3
    fuzzy_candidate_limit: int = 20
    redirect_fuzzy_synonyms: bool = False

    # Ranking (did-you-mean truncation)
    rank_min_score_short: float = 0.4
    rank_min_score_long: float = 0.3
    rank_excellent_score: float = 0.85
    rank_gap: float = 0.15
    rank_gap_min_top: float = 0.7
    rank_strong_leader_score: float = 0.8
    rank_max_results: int = 4
    rank_strong_leader_results: int = 2

    # Bulk import
    import_batch_size: int = 10
    import_batch_pause_seconds: float = 0.05
    import_lookup_timeout_seconds: float = 8.0
    import_session_ttl_seconds: int = 7200

    # Availability search
    available_catalog_ttl_seconds: int = 300
    search_default_limit: int = 60

    # Whole-catalog search
    catalog_search_limit: int = 50
    catalog_search_min_score: float = 0.25

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings instance - created once per application lifecycle

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
