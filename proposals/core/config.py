from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    # App
    app_name: str = "Proposal Approval Service"
    debug: bool = False

    # Persistence
    store_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///./proposals.db"
    database_echo: bool = False

    # Identity: YAML file with the directory users (id, name, role)
    users_file: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_console: bool = True
    file_logging: bool = False
    log_dir: str = "./logs"
    log_max_bytes: int = 10485760  # 10MB
    log_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="PROPOSALS_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Allow extra env vars without raising validation errors
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {', '.join(LOG_LEVELS)}")
        return level


@lru_cache
def get_settings() -> Settings:
    return Settings()
