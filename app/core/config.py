from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    env: str = Field(default="development", alias="APP_ENV")
    host: str = Field(default="0.0.0.0", alias="APP_HOST")
    port: int = Field(default=8000, alias="APP_PORT")
    timezone: str = Field(default="Europe/Berlin", alias="PRIMARY_TIMEZONE")

    database_url: str = Field(default="sqlite:///./data/booking.db", alias="DATABASE_URL")

    hold_ttl_minutes: int = Field(default=10, alias="HOLD_TTL_MINUTES")
    hold_min_duration_minutes: int = Field(default=15, alias="HOLD_MIN_DURATION_MINUTES")
    hold_max_duration_minutes: int = Field(default=480, alias="HOLD_MAX_DURATION_MINUTES")
    default_service_duration_minutes: int = Field(default=30, alias="DEFAULT_SERVICE_DURATION_MINUTES")

    business_open_hour: int = Field(default=9, alias="BUSINESS_OPEN_HOUR")
    business_close_hour: int = Field(default=19, alias="BUSINESS_CLOSE_HOUR")
    slot_interval_minutes: int = Field(default=15, alias="SLOT_INTERVAL_MINUTES")
    alternative_slots_limit: int = Field(default=3, alias="ALTERNATIVE_SLOTS_LIMIT")

    session_cookie_name: str = Field(default="booking_session", alias="BOOKING_SESSION_COOKIE")
    session_max_age_seconds: int = Field(default=60 * 60 * 24, alias="BOOKING_SESSION_MAX_AGE")

    cors_origins: list[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def hold_ttl_seconds(self) -> int:
        return self.hold_ttl_minutes * 60


@lru_cache
def get_settings() -> AppConfig:
    return AppConfig()
