"""Application settings loaded from environment variables and .env file."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the repository harvester."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    github_token: str | None = None
    # Comma-separated list, rotated when a token runs out of quota
    github_tokens: str | None = None
    github_api_url: str = "https://api.github.com"

    minimum_stars: int = 10

    # Pause after every completed call, keeps bursts under the secondary limits
    request_delay: float = 0.25
    # Fixed wait after an HTTP 429
    rate_limit_sleep: float = 300.0
    request_timeout: float = 60.0
    max_transport_retries: int = 5
    max_workers: int = 4

    cache_dir: Path | None = None

    @property
    def tokens(self) -> list[str]:
        """All configured tokens, de-duplicated, in configuration order."""
        raw = [self.github_token or ""]
        raw.extend((self.github_tokens or "").split(","))
        return list(dict.fromkeys(t.strip() for t in raw if t.strip()))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
