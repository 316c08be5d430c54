"""Request and result models for the open and batch services."""

from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from src.extract.models import ExtractConfig, Link


class ErrorCode(str, Enum):
    """Machine-readable failure codes returned to callers.

    Codes are stable identifiers; the accompanying message is for humans.
    """

    INVALID_INPUT = "INVALID_INPUT"
    INVALID_URL = "INVALID_URL"
    SSRF_BLOCKED = "SSRF_BLOCKED"
    DNS_ERROR = "DNS_ERROR"
    ROBOTS_DISALLOWED = "ROBOTS_DISALLOWED"
    FETCH_TIMEOUT = "FETCH_TIMEOUT"
    FETCH_TOO_LARGE = "FETCH_TOO_LARGE"
    HTTP_ERROR = "HTTP_ERROR"
    EXTRACT_FAILED = "EXTRACT_FAILED"
    RENDER_DISABLED = "RENDER_DISABLED"
    CACHE_MISS = "CACHE_MISS"
    CACHE_ERROR = "CACHE_ERROR"
    INTERNAL = "INTERNAL"


class ErrorInfo(BaseModel):
    """A failure as reported to callers."""

    model_config = ConfigDict(frozen=True)

    code: ErrorCode
    message: str
    status_code: int | None = Field(
        default=None, description="Upstream HTTP status, for HTTP_ERROR"
    )


# ===== Open =====


class OpenRequest(BaseModel):
    """Parameters for opening a single URL.

    The mode is kept as a plain string so that unsupported values surface
    as typed service errors rather than validation failures.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    mode: str = "readable"
    accept: str | None = None
    force_refresh: bool = False
    ttl_seconds: Annotated[int | None, Field(default=None, gt=0)] = None
    extract: ExtractConfig = Field(default_factory=ExtractConfig)
    include_debug: bool = False


class OpenDebug(BaseModel):
    """Diagnostics attached when requested."""

    model_config = ConfigDict(frozen=True)

    char_count: int
    links_count: int
    fetch_ms: int | None = None
    extraction_time_ms: int | None = None


class OpenResult(BaseModel):
    """The served view of one snapshot."""

    model_config = ConfigDict(frozen=True)

    url: str
    final_url: str
    hash: str
    mode: str
    content_type: str | None = None
    status_code: int | None = None
    fetched_at: datetime
    title: str | None = None
    markdown: str | None = None
    raw: str | None = None
    links: list[Link] = Field(default_factory=list)
    from_cache: bool = False
    debug: OpenDebug | None = None


# ===== Batch =====


class BatchRequest(BaseModel):
    """Parameters for a bounded-concurrency batch of opens."""

    model_config = ConfigDict(frozen=True)

    urls: list[str]
    mode: str = "readable"
    max_concurrency: int = 4
    fail_fast: bool = False
    force_refresh: bool = False
    accept: str | None = None
    ttl_seconds: Annotated[int | None, Field(default=None, gt=0)] = None
    extract: ExtractConfig = Field(default_factory=ExtractConfig)


class BatchStatus(str, Enum):
    """Outcome of one batch unit."""

    SUCCESS = "success"
    CACHED = "cached"
    FAILED = "failed"


class BatchItem(BaseModel):
    """One URL's outcome."""

    model_config = ConfigDict(frozen=True)

    url: str
    status: BatchStatus
    result: OpenResult | None = None
    error: ErrorInfo | None = None


class BatchSummary(BaseModel):
    """Counts over the returned items."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    succeeded: int = 0
    cached: int = 0
    failed: int = 0
    cancelled: int = Field(default=0, description="URLs with no outcome")


class BatchResult(BaseModel):
    """Items in input order plus the summary."""

    model_config = ConfigDict(frozen=True)

    items: list[BatchItem] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)


# ===== Extract =====


class ExtractRequest(BaseModel):
    """Parameters for extracting content from caller-supplied HTML.

    Like the open mode, the strategy stays a plain string so that unknown
    values surface as INVALID_INPUT.
    """

    model_config = ConfigDict(frozen=True)

    html: str
    base_url: str | None = Field(
        default=None, description="Resolves relative links; kept as-is if unset"
    )
    strategy: str = "readability"
    to_markdown: bool = True
    extract: ExtractConfig = Field(default_factory=ExtractConfig)


class ExtractResult(BaseModel):
    """Content extracted from caller-supplied HTML.

    Exactly one of markdown and text is set, following to_markdown.
    """

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    markdown: str | None = None
    text: str | None = None
    links: list[Link] = Field(default_factory=list)
    strategy_used: str
    word_count: int = 0
