"""Data models for the safe fetch layer."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


def charset_from_content_type(content_type: str | None) -> str:
    """Return the charset declared in a Content-Type header, or UTF-8."""
    if content_type and "charset=" in content_type.lower():
        declared = content_type.lower().split("charset=", 1)[1]
        return declared.split(";", 1)[0].strip().strip('"') or "utf-8"
    return "utf-8"


def decode_body(body: bytes, content_type: str | None) -> str:
    """Decode bytes with the declared charset; unknown charsets fall back to UTF-8."""
    try:
        return body.decode(charset_from_content_type(content_type), errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


class FetchResponse(BaseModel):
    """A validated, size-bounded 2xx response.

    Only successful responses are represented; every failure is raised as
    a FetchError subclass instead.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: Annotated[str, Field(min_length=1, description="Canonical requested URL")]
    final_url: Annotated[
        str, Field(min_length=1, description="Final URL after redirects")
    ]
    status_code: int = Field(ge=200, le=299, description="HTTP status code")
    content_type: str | None = Field(default=None, description="Content-Type header")
    body: bytes = Field(default=b"", description="Response body")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Response headers"
    )
    fetch_ms: int = Field(ge=0, description="Elapsed fetch time in milliseconds")

    @property
    def body_size(self) -> int:
        """Size of the body in bytes."""
        return len(self.body)

    @property
    def etag(self) -> str | None:
        """ETag revalidation hint, if present."""
        return self.headers.get("etag")

    @property
    def last_modified(self) -> str | None:
        """Last-Modified revalidation hint, if present."""
        return self.headers.get("last-modified")

    def text(self) -> str:
        """Decode the body using the declared charset, falling back to UTF-8."""
        return decode_body(self.body, self.content_type)
