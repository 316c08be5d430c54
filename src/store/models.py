"""Data models for the SQLite cache store."""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_db_timestamp(value: datetime) -> str:
    """Format a timestamp for storage.

    All stored timestamps share one fixed-width UTC format so that SQL
    string comparison orders them chronologically.

    Args:
        value: Aware or naive (assumed UTC) datetime.

    Returns:
        ISO-8601 string with microseconds and +00:00 offset.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _ensure_utc(value: Any) -> Any:
    """Coerce stored strings and naive datetimes to aware UTC datetimes."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


class SnapshotMode(str, Enum):
    """How a snapshot's payload was produced.

    - RAW: Body kept as fetched
    - READABLE: Main content extracted to markdown
    """

    RAW = "raw"
    READABLE = "readable"


class Snapshot(BaseModel):
    """One cached fetch and extraction result.

    Identified solely by its content-addressed hash. Extraction provenance
    fields make a cached artifact attributable to the exact extractor and
    configuration that produced it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Identity
    hash: Annotated[
        str, Field(pattern=r"^[0-9a-f]{64}$", description="Cache key (primary key)")
    ]

    # Provenance
    url: Annotated[str, Field(min_length=1, description="URL as requested")]
    final_url: Annotated[str, Field(min_length=1, description="URL after redirects")]
    mode: SnapshotMode = Field(description="Payload mode")
    content_type: str | None = Field(default=None, description="Content-Type")
    status_code: int | None = Field(default=None, description="HTTP status code")

    # Temporal
    fetched_at: datetime = Field(
        default_factory=utc_now, description="When the resource was fetched"
    )
    expires_at: datetime | None = Field(
        default=None, description="Expiry time (None = no TTL)"
    )
    etag: str | None = Field(default=None, description="ETag revalidation hint")
    last_modified: str | None = Field(
        default=None, description="Last-Modified revalidation hint"
    )

    # Payload
    raw_bytes: bytes | None = Field(default=None, description="Raw response body")
    raw_truncated: bool = Field(
        default=False, description="Body was cut at the byte ceiling"
    )
    title: str | None = Field(default=None, description="Document title")
    markdown: str | None = Field(default=None, description="Extracted markdown")
    text: str | None = Field(default=None, description="Extracted plain text")
    links_json: str | None = Field(default=None, description="Serialized links")

    # Extraction provenance
    extractor_name: str | None = Field(default=None)
    extractor_version: str | None = Field(default=None)
    siteconfig_id: str | None = Field(default=None)
    extract_cfg_json: str | None = Field(default=None)

    # Diagnostics
    headers_json: str | None = Field(
        default=None, description="Response headers (redacted)"
    )
    fetch_ms: int | None = Field(default=None, ge=0)
    extract_ms: int | None = Field(default=None, ge=0)

    @field_validator("fetched_at", "expires_at", mode="before")
    @classmethod
    def coerce_utc(cls, v: Any) -> Any:
        """Parse stored timestamps and assume UTC for naive values."""
        return _ensure_utc(v)

    def is_fresh(self, now: datetime | None = None) -> bool:
        """Check freshness: no expiry, or expiry still in the future.

        Args:
            now: Reference time (defaults to the current time).

        Returns:
            True if the snapshot has not expired.
        """
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utc_now())


class SearchCacheMeta(BaseModel):
    """Metadata for a cached search response."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    key_hash: Annotated[str, Field(min_length=1)]
    query_json: str
    fetched_at: datetime
    expires_at: datetime

    @field_validator("fetched_at", "expires_at", mode="before")
    @classmethod
    def coerce_utc(cls, v: Any) -> Any:
        """Parse stored timestamps and assume UTC for naive values."""
        return _ensure_utc(v)

    def is_fresh(self, now: datetime | None = None) -> bool:
        """Check whether the entry has not yet expired."""
        return self.expires_at > (now or utc_now())
