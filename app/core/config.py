"""
Application configuration using Pydantic Settings.

Loads configuration from environment variables (.env file).
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Project Info
    PROJECT_NAME: str = "Sleep & Recovery Scores"
    VERSION: str = "0.1.0"
    AUTHORS: List[str] = ["Roberto Martelloni"]
    AUTHORS_EMAILS: List[str] = ["rmartelloni@gmail.com"]
    PROJECT_URL: str = "https://github.com/boos/sleep-recovery-scores"

    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # console | json

    # Database
    # DATABASE_URL wins when set; otherwise the postgres parts are used when a
    # password is configured, and a local SQLite file as last resort.
    DATABASE_URL: Optional[str] = None
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = ""
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: int = 5432
    DATABASE_DBNAME: str = "postgres"
    SQLITE_PATH: str = "./scores.db"

    # Recalculation
    RECALC_DEBOUNCE_SECONDS: float = 2.0
    RECALC_QUEUE_MAXSIZE: int = 1000

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.DATABASE_PASSWORD:
            return (f"postgresql://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}@{self.DATABASE_HOST}"
                    f":{self.DATABASE_PORT}"
                    f"/{self.DATABASE_DBNAME}")
        return f"sqlite:///{self.SQLITE_PATH}"


@lru_cache
def get_settings() -> Settings:
    return Settings()


# Global settings instance
settings = get_settings()
