import os
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Cache Configuration
    cache_ttl_seconds: int = Field(default=300, alias="CACHE_TTL")
    race_grace_seconds: int = Field(default=10, alias="RACE_GRACE")
    cache_wait_timeout: float = Field(default=6.0, alias="CACHE_WAIT_TIMEOUT")
    cache_poll_interval: float = Field(default=0.05, alias="CACHE_POLL_INTERVAL")

    # Circuit Breaker Configuration
    breaker_cool_down_seconds: int = Field(default=30, alias="BREAKER_COOL_DOWN")

    # Rate API Configuration
    rate_api_url: str = Field(default="http://localhost:8080", alias="RATE_API_URL")
    rate_api_token: str = Field(default="", alias="RATE_API_TOKEN")
    rate_api_timeout: float = Field(default=5.0, alias="RATE_API_TIMEOUT")

    # Store Configuration
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # Logging Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_ttl_seconds)

    @property
    def race_grace(self) -> timedelta:
        return timedelta(seconds=self.race_grace_seconds)

    @property
    def breaker_cool_down(self) -> timedelta:
        return timedelta(seconds=self.breaker_cool_down_seconds)


def load_settings() -> Settings:
    """Build settings from the process environment (and .env)."""
    return Settings.model_validate(dict(os.environ))


global_settings = load_settings()
