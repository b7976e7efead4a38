"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Which storage gateway backs the lifecycle engine
    storage_backend: Literal["memory", "mongo", "sql"] = "memory"

    # Every storage call gives up after this long (raised as TransientIO)
    storage_timeout_seconds: float = 10.0

    # PostgreSQL (used when storage_backend == "sql")
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "portal_user"
    postgres_password: str = "password"
    postgres_db: str = "ic_portal"
    sql_url_override: Optional[str] = None

    # MongoDB (used when storage_backend == "mongo")
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "ic_portal"

    # Tokens are issued by the identity provider, we only verify them
    jwt_secret_key: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440

    # Resume uploads
    max_resume_size_kb: int = 900

    # App
    debug: bool = False
    log_level: str = "INFO"

    @property
    def sql_url(self) -> str:
        """Construct SQL connection URL (override wins, e.g. sqlite for local runs)"""
        if self.sql_url_override:
            return self.sql_url_override
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
