"""Application settings powered by Pydantic BaseSettings."""

from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.fetch.config import FetchConfig
from src.fetch.constants import (
    DEFAULT_MAX_BYTES,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    MAX_MAX_BYTES,
    MAX_TIMEOUT_MS,
    MIN_TIMEOUT_MS,
)


DEFAULT_DB_PATH = Path("./safefetch-cache.sqlite")


def _split_domains(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class AppSettings(BaseSettings):
    """Centralized environment configuration.

    Every field is read from a SAFEFETCH_-prefixed environment variable or
    from a .env file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="SAFEFETCH_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    db_path: Path = DEFAULT_DB_PATH
    default_ttl_seconds: Annotated[int | None, Field(gt=0)] = None

    # Fetching
    user_agent: Annotated[str, Field(min_length=1)] = DEFAULT_USER_AGENT
    max_bytes: Annotated[int, Field(ge=1, le=MAX_MAX_BYTES)] = DEFAULT_MAX_BYTES
    timeout_ms: Annotated[int, Field(ge=MIN_TIMEOUT_MS, le=MAX_TIMEOUT_MS)] = (
        DEFAULT_TIMEOUT_MS
    )
    max_redirects: Annotated[int, Field(ge=0, le=20)] = DEFAULT_MAX_REDIRECTS
    respect_robots: bool = True

    # Comma-separated domain lists
    allowlist_domains: str = ""
    denylist_domains: str = ""

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("user_agent")
    @classmethod
    def validate_user_agent(cls, v: str) -> str:
        """Reject blank user agents."""
        if not v.strip():
            msg = "user_agent must not be blank"
            raise ValueError(msg)
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept standard level names in any case."""
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"unknown log level: {v}"
            raise ValueError(msg)
        return level

    @property
    def allowlist(self) -> list[str]:
        """Parsed allowlist."""
        return _split_domains(self.allowlist_domains)

    @property
    def denylist(self) -> list[str]:
        """Parsed denylist."""
        return _split_domains(self.denylist_domains)

    def to_fetch_config(self) -> FetchConfig:
        """Build the fetch pipeline configuration.

        Returns:
            Frozen fetch configuration.
        """
        return FetchConfig(
            user_agent=self.user_agent,
            max_bytes=self.max_bytes,
            timeout_ms=self.timeout_ms,
            max_redirects=self.max_redirects,
            respect_robots=self.respect_robots,
            allowlist_domains=self.allowlist,
            denylist_domains=self.denylist,
        )


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
