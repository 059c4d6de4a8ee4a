"""Project configuration."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    project_root: Path = Path(__file__).parent.parent

    environment: str = "development"

    # Experiment configuration store
    experiments_config_key: str = "ab-experiments"
    experiments_cache_ttl_seconds: float = 60.0
    experiments_poll_interval_seconds: float = 60.0
    experiments_poll_enabled: bool = True
    config_source: str = "memory"  # memory | redis | http
    experiments_file: Path | None = None  # Seed payload for the memory source

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None

    # HTTP config store (Edge Config style item endpoint)
    config_http_url: str = "https://edge-config.vercel.com"
    config_http_token: str | None = None
    config_http_timeout_seconds: float = 2.0

    # Cookies
    user_id_cookie: str = "ab_user_id"
    assignment_cookie_prefix: str = "ab_exp_"
    cookie_max_age_seconds: int = 365 * 24 * 60 * 60  # 1 year
    cookie_secure: bool | None = None  # None: secure only in production

    # Cross-boundary propagation
    assignments_header: str = "X-AB-Assignments"

    # Analytics
    posthog_api_key: str | None = None
    posthog_host: str = "https://app.posthog.com"
    analytics_timeout_seconds: float = 2.0

    @property
    def is_production(self) -> bool:
        """Whether the service runs in production."""
        return self.environment.lower() == "production"

    @property
    def secure_cookies(self) -> bool:
        """Whether cookies must be marked Secure."""
        if self.cookie_secure is not None:
            return self.cookie_secure
        return self.is_production

    @property
    def redis_url(self) -> str:
        """Redis connection URL."""
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"


settings = Settings()
