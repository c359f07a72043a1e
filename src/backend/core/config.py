"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
Detector thresholds default to the production values and can be tuned per
deployment without code changes.
"""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Luminex Guard"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # Shared secret for the admin endpoints (IP reset, actor reset)
    # Empty disables the admin endpoints entirely
    ADMIN_API_SECRET: str = ""

    # CORS - stored as comma-separated string to avoid pydantic-settings JSON parsing issues
    CORS_ORIGINS: str = "http://localhost:3000"

    # Ledger persistence
    # Azure Table Storage is used when either value is set, otherwise JSON files
    # under STORAGE_DATA_DIR, otherwise process memory only.
    AZURE_STORAGE_CONNECTION_STRING: str | None = None  # For local dev only
    AZURE_STORAGE_TABLE_ENDPOINT: str | None = None
    AZURE_STORAGE_LEDGER_TABLE: str = "antiabuseledgers"
    STORAGE_DATA_DIR: str = "tmp_data"
    STORAGE_DISABLE_FILE: bool = False  # Serverless hosts without a writable disk

    # Action stream analyzer
    ACTION_HISTORY_SIZE: int = 200
    MIN_ACTION_INTERVAL_MS: int = 50
    SUSPICIOUS_SPEED_THRESHOLD: int = 15  # Actions within one second
    PATTERN_REPETITION_THRESHOLD: int = 5
    PATTERN_VARIANCE_THRESHOLD_MS2: float = 100.0
    MAX_SUSPICIOUS_ACTIONS: int = 3
    SUSPICIOUS_COOLDOWN_MS: int = 60_000

    # Referral fraud guard
    MIN_TIME_BETWEEN_REFERRALS_MS: int = 60_000
    MAX_REFERRALS_PER_IP_PER_HOUR: int = 3
    MAX_REFERRALS_PER_IP_PER_DAY: int = 10
    SUSPICIOUS_PATTERN_THRESHOLD: int = 3
    IP_BLOCK_DURATION_MS: int = 3_600_000
    MIN_TIME_BETWEEN_SAME_IP_REFERRALS_MS: int = 300_000
    MAX_ADDRESSES_PER_NEW_IP: int = 5

    # Game cooldown (global across all games)
    GAME_COOLDOWN_HOURS: int = 24

    # Reward payout control: probability that a reward is denied regardless of outcome
    FORCED_LOSS_PROBABILITY: float = 0.80

    # IP risk lookup (informational only, never used for blocking)
    IP_RISK_LOOKUP_ENABLED: bool = True
    IP_RISK_LOOKUP_URL: str = "https://ipapi.co/{ip}/json/"
    IP_RISK_LOOKUP_TIMEOUT_SECONDS: float = 3.0

    @field_validator("FORCED_LOSS_PROBABILITY")
    @classmethod
    def validate_probability(cls, v: float, info: Any) -> float:
        """Validate that probabilities stay within [0, 1]."""
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"{info.field_name} must be between 0 and 1")
        return v

    @field_validator("MAX_SUSPICIOUS_ACTIONS", "SUSPICIOUS_PATTERN_THRESHOLD", "ACTION_HISTORY_SIZE")
    @classmethod
    def validate_positive(cls, v: int, info: Any) -> int:
        """Validate that counters and caps are positive."""
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        import json

        try:
            return json.loads(self.CORS_ORIGINS)
        except json.JSONDecodeError:
            return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def azure_tables_configured(self) -> bool:
        """Whether a durable Azure Table Storage backend is configured."""
        return bool(self.AZURE_STORAGE_CONNECTION_STRING or self.AZURE_STORAGE_TABLE_ENDPOINT)

    @property
    def game_cooldown_ms(self) -> int:
        """Cooldown window in milliseconds."""
        return self.GAME_COOLDOWN_HOURS * 60 * 60 * 1000


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    # Settings are loaded from environment variables via pydantic-settings
    return Settings()


settings = get_settings()
