"""Configuration model for the safe fetch layer."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.fetch.constants import (
    DEFAULT_MAX_BYTES,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    MAX_MAX_BYTES,
    MAX_TIMEOUT_MS,
    MIN_TIMEOUT_MS,
)


class FetchConfig(BaseModel):
    """Configuration for the fetch pipeline.

    Governs resource limits (bytes, time, redirects), the identity sent on
    every request including robots.txt fetches, and crawl policy.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )
    max_bytes: Annotated[int, Field(gt=0, le=MAX_MAX_BYTES)] = DEFAULT_MAX_BYTES
    timeout_ms: Annotated[int, Field(ge=MIN_TIMEOUT_MS, le=MAX_TIMEOUT_MS)] = (
        DEFAULT_TIMEOUT_MS
    )
    max_redirects: Annotated[int, Field(ge=0, le=20)] = DEFAULT_MAX_REDIRECTS
    respect_robots: bool = Field(
        default=True, description="Consult robots.txt before every fetch"
    )
    allowlist_domains: list[str] = Field(
        default_factory=list, description="If set, only these domains are fetched"
    )
    denylist_domains: list[str] = Field(
        default_factory=list, description="Domains that are never fetched"
    )

    @field_validator("user_agent")
    @classmethod
    def validate_user_agent(cls, v: str) -> str:
        """Reject blank user agents."""
        if not v.strip():
            msg = "user_agent must not be blank"
            raise ValueError(msg)
        return v.strip()

    @property
    def timeout_seconds(self) -> float:
        """Wall-clock budget per fetch in seconds."""
        return self.timeout_ms / 1000.0
