"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Settings loaded from PGPCORE_* environment variables."""

    # GnuPG
    gnupg_home: str | None = None  # None uses gpg's default home
    gpg_binary: str = "gpg"
    always_trust: bool = True

    # Logging
    log_level: str = "WARNING"
    log_file: str | None = None

    class Config:
        env_file = ".env"
        env_prefix = "PGPCORE_"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
