from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False  # True for production (structured JSON), False for dev (colored)

    # Retry defaults
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_BASE_DELAY: float = 0.5
    RETRY_MAX_DELAY: float = 10.0
    RETRY_BACKOFF_FACTOR: float = 2.0
    RETRY_JITTER: bool = True

    # Circuit breaker defaults
    BREAKER_FAILURE_THRESHOLD: int = 5
    BREAKER_OPEN_TIMEOUT: float = 30.0
    BREAKER_MONITOR_WINDOW: float | None = 60.0

    # Remote submit endpoint
    SUBMIT_URL: str = "http://localhost:8000/api/products"
    SUBMIT_TIMEOUT: float = 10.0


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
