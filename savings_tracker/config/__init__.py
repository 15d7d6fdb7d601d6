"""
Application Settings
Load from environment variables
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Database
    # ======================
    DATABASE_URL: str = "sqlite+aiosqlite:///./savings_tracker.db"
    AUTO_CREATE_TABLES: bool = False

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # ======================
    # Exchange Rates
    # ======================
    EXCHANGE_RATE_PROVIDER: str = "coingecko"  # coingecko / static
    COINGECKO_API_URL: str = "https://api.coingecko.com/api/v3"
    COINGECKO_API_KEY: Optional[str] = None
    EXCHANGE_RATE_TIMEOUT_SECONDS: float = 10.0
    EXCHANGE_RATE_CACHE_TTL_SECONDS: int = 300
    # Format: "BTC:USD=50000,EUR:USD=1.08"
    STATIC_EXCHANGE_RATES: str = ""

    # ======================
    # Monthly Planning
    # ======================
    PLAN_ATTENTION_THRESHOLD: float = 5000.0
    PLAN_CRITICAL_THRESHOLD: float = 10000.0
    EXECUTION_UNDO_GRACE_HOURS: int = 24

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )


settings = Settings()
