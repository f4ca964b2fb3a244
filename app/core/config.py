from datetime import timedelta
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.errors import ConfigurationError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://marathon:marathon@db:5432/marathon"
    APP_ENV: str = "development"

    # Consumed only by the chat front-end; kept here so one .env serves both.
    TELEGRAM_TOKEN: Optional[str] = None

    # Minimum spacing between stall reminders for the same activity.
    FREEZE_HOURS: int = 15
    # UTC hour assigned to newly registered users.
    DEFAULT_ROTATION_HOUR: int = 12

    # Empty string leaves the driver default in place.
    DB_ISOLATION_LEVEL: str = "SERIALIZABLE"

    RETRY_MAX_ATTEMPTS: int = 5
    RETRY_BASE_DELAY: float = 0.05
    RETRY_MAX_DELAY: float = 2.0

    ROTATION_WORKERS: int = 8

    # When set, /triggers/* require a matching X-Trigger-Token header.
    TRIGGER_TOKEN: Optional[str] = None

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # Comma-separated allowed origins, or "*" to allow all.
    CORS_ORIGINS: str = "*"

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def freeze_window(self) -> timedelta:
        return timedelta(hours=self.FREEZE_HOURS)


def validate_settings(s: Settings) -> Optional[ConfigurationError]:
    """
    Startup check. Returns a ConfigurationError listing every problem,
    or None when the settings are usable.
    """
    problems: list[str] = []
    if not s.DATABASE_URL.strip():
        problems.append("DATABASE_URL must not be empty")
    if not 0 <= s.DEFAULT_ROTATION_HOUR <= 23:
        problems.append("DEFAULT_ROTATION_HOUR must be within 0..23")
    if s.FREEZE_HOURS < 1:
        problems.append("FREEZE_HOURS must be at least 1")
    if s.RETRY_MAX_ATTEMPTS < 1:
        problems.append("RETRY_MAX_ATTEMPTS must be at least 1")
    if s.RETRY_BASE_DELAY < 0 or s.RETRY_MAX_DELAY < s.RETRY_BASE_DELAY:
        problems.append("RETRY_BASE_DELAY must be >= 0 and <= RETRY_MAX_DELAY")
    if s.ROTATION_WORKERS < 1:
        problems.append("ROTATION_WORKERS must be at least 1")
    if s.LOG_FORMAT not in ("json", "console"):
        problems.append('LOG_FORMAT must be "json" or "console"')
    if problems:
        return ConfigurationError(problems)
    return None


settings = Settings()
