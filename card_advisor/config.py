"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./card_advisor.db"
    catalog_seed_path: str | None = None

    # Text classifier
    openai_api_key: str | None = None
    classifier_model: str = "gpt-4o-mini"
    classifier_timeout_seconds: float = 60.0
    classifier_max_text_chars: int = 60_000

    # Service
    service_name: str = "card-advisor"
    log_level: str = "INFO"

    # Session lifecycle
    session_ttl_hours: int = 24
    max_retries: int = 2
    max_concurrent_jobs: int = 3

    # Extraction policy
    needs_review_threshold: float = 0.8  # Below this a transaction is flagged for review
    min_extraction_confidence: float = 0.3  # Below this a candidate is dropped
    min_document_words: int = 50
    batch_delay_seconds: float = 2.0
    progress_sink_timeout_seconds: float = 1.0

    # Recommendation policy
    recommendation_limit: int = 3
    recommendation_cache_hours: int = 24
    min_total_spending: float = 100.0
    min_category_count: int = 1
    currency_symbol: str = "₹"


settings = Settings()
