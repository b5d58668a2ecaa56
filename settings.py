"""Settings configuration for the Care Task Scheduler."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict, model_validator
from dotenv import load_dotenv

# Load environment variables from .env file in the same directory as this file
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Storage Configuration
    storage_backend: str = Field(
        default="postgres",
        description="Document store backend: 'postgres' or 'memory'"
    )

    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection URL (required for the postgres backend)"
    )

    # Connection Pool Configuration
    db_pool_min_size: int = Field(
        default=5,
        description="Minimum database connection pool size"
    )

    db_pool_max_size: int = Field(
        default=20,
        description="Maximum database connection pool size"
    )

    # Scheduling Configuration
    timezone: str = Field(
        default="Europe/London",
        description="Timezone whose wall clock drives task due times"
    )

    @model_validator(mode="after")
    def check_backend(self) -> "Settings":
        if self.storage_backend not in ("postgres", "memory"):
            raise ValueError(f"Unknown storage_backend: {self.storage_backend}")
        if self.storage_backend == "postgres" and not self.database_url:
            raise ValueError("database_url is required for the postgres backend")
        return self


def load_settings() -> Settings:
    """Load settings with proper error handling."""
    try:
        return Settings()
    except Exception as e:
        error_msg = f"Failed to load settings: {e}"
        if "database_url" in str(e).lower():
            error_msg += "\nMake sure to set DATABASE_URL in your .env file"
        if "storage_backend" in str(e).lower():
            error_msg += "\nSTORAGE_BACKEND must be 'postgres' or 'memory'"
        raise ValueError(error_msg) from e
