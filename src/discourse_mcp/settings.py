from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class Settings(BaseSettings):
    """Application configuration."""

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    discourse_api_url: str | None = None
    discourse_api_key: str | None = None
    discourse_api_username: str | None = None
    request_timeout_seconds: float = 30.0
    cache_ttl_seconds: int = 300  # 5 minutes

    cors_origins: str = "*"

    redis_url: str | None = None
    context_ttl_seconds: int = 86400  # 24 hours
    max_sessions: int = 10000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
    )

    def env_check(self) -> dict[str, bool]:
        """Report which Discourse credentials are present (never their values)."""
        return {
            "discourse_url": bool(self.discourse_api_url),
            "api_key": bool(self.discourse_api_key),
            "username": bool(self.discourse_api_username),
        }

    def require_discourse_config(self) -> None:
        """Raise ConfigurationError if any Discourse credential is missing."""
        missing = [
            env_name
            for env_name, value in (
                ("DISCOURSE_API_URL", self.discourse_api_url),
                ("DISCOURSE_API_KEY", self.discourse_api_key),
                ("DISCOURSE_API_USERNAME", self.discourse_api_username),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}"
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the application settings singleton (loaded from env / .env)."""
    return Settings()
