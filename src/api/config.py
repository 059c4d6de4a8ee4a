"""API configuration."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """API settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API
    api_title: str = "A/B Experiment Assignment API"
    api_version: str = "0.1.0"
    api_description: str = "Deterministic experiment assignment and exposure tracking"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = True

    # Paths the assignment middleware leaves alone
    ab_excluded_paths: tuple[str, ...] = ("/health", "/docs", "/redoc", "/openapi.json")


@lru_cache
def get_api_settings() -> APISettings:
    """Get cached API settings."""
    return APISettings()
