from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "busbook"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    DATABASE_URL: str = "sqlite+aiosqlite:///./busbook.db"
    REDIS_URL: str = "redis://localhost:6379/0"
    SENTRY_DSN: str = ""
    # Seat holds: fixed TTL for every lock entry
    SEAT_LOCK_TTL_SECONDS: int = 300
    # Optimistic concurrency on the bus row (version check on UPDATE)
    SEAT_WRITE_MAX_RETRIES: int = 3
    # Expired bus sweeper
    BUS_CLEANUP_SCHEDULER_ENABLED: bool = True
    BUS_CLEANUP_INTERVAL_SECONDS: int = 3600
    # When true, confirm must name the passenger email that holds the locks
    CONFIRM_REQUIRES_HOLDER: bool = False


settings = Settings()
