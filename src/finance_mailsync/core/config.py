"""Application configuration using pydantic-settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite:///./finance_mailsync.db"

    # API
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"

    # Google OAuth (Gmail)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/api/v1/email-sync/gmail/callback"

    # Microsoft OAuth (Outlook)
    microsoft_client_id: str = ""
    microsoft_client_secret: str = ""
    microsoft_redirect_uri: str = (
        "http://localhost:8000/api/v1/email-sync/outlook/callback"
    )

    # Classifier
    anthropic_api_key: str | None = None
    classifier_model: str = "claude-sonnet-4-5-20250514"
    classifier_body_max_chars: int = 3000

    # Sync pipeline
    http_timeout_seconds: float = 30.0
    token_refresh_window_seconds: int = 300
    initial_sync_days: int = 30
    search_max_results: int = 100
    raw_body_max_chars: int = 5000
    sync_stale_after_minutes: int = 30
    sync_min_interval_minutes: int = 60
    default_country: str = "DO"
    default_return_url: str = "finzenai://email-sync/callback"

    # Currency
    base_currency: str = "RD$"
    exchange_rate_url: str = "https://open.er-api.com/v6/latest/USD"
    exchange_rate_fallback: float = 63.59
    exchange_rate_cache_seconds: int = 3600


settings = Settings()
