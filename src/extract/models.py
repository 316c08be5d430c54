"""Data models for content extraction."""

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field


class ExtractConfig(BaseModel):
    """Tuning parameters passed to an extractor.

    Stored verbatim with every snapshot so a cached artifact can be
    reproduced with the same settings. max_top_candidates applies to
    candidate-scoring extractors only; trafilatura has no equivalent knob
    and ignores it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    char_threshold: Annotated[int, Field(ge=0, description="Minimum content size")] = (
        200
    )
    max_top_candidates: Annotated[
        int,
        Field(ge=1, description="Candidate blocks considered; ignored by trafilatura"),
    ] = 5


class Link(BaseModel):
    """A hyperlink harvested from a document."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    text: str
    href: Annotated[str, Field(min_length=1, description="Absolute URL")]


class ExtractionResult(BaseModel):
    """Output of one extraction."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    title: str | None = None
    markdown: str = ""
    text: str = ""
    links: list[Link] = Field(default_factory=list)
    extractor_name: Annotated[str, Field(min_length=1)]
    extractor_version: Annotated[str, Field(min_length=1)]

    @property
    def extractor_id(self) -> str:
        """name@version identifier recorded in front matter."""
        return f"{self.extractor_name}@{self.extractor_version}"
