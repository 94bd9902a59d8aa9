from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Database
    db_path: str = "./data/radiofit.db"

    # Timezone handling
    timezone_override: str | None = None
    timezone_check_interval_seconds: int = 30
    error_log_size: int = 50

    # Daily reminder
    reminder_title: str = "Time for radio calisthenics!"
    reminder_body: str = "Record today's exercise"

    debug: bool = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
