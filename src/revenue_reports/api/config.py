"""Configuration for the report FastAPI service."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Service settings loaded from environment variables."""

    # Postgres
    DATABASE_URL: str

    # Auth
    WORKER_API_KEY: str

    # Write the enrichment cache and report table after each run
    PERSIST_REPORTS: bool = True


@lru_cache
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
