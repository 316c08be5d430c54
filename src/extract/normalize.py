"""Markdown normalization with YAML front matter."""

from datetime import UTC, datetime

from src.extract.models import ExtractionResult


UNTITLED = "Untitled"
NO_SITECONFIG = "none"


def escape_yaml(value: str) -> str:
    """Quote a scalar when it would not survive as a plain YAML value.

    Args:
        value: Raw scalar.

    Returns:
        The value, double-quoted if it contains a newline or colon.
    """
    if not value:
        return '""'
    if "\n" in value or (":" in value and len(value) > 1):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
        return f'"{escaped}"'
    return value


def normalize_markdown(
    result: ExtractionResult,
    source_url: str,
    fetched_at: datetime,
    siteconfig_id: str | None = None,
) -> str:
    """Prefix extracted markdown with provenance front matter.

    Args:
        result: Extraction output.
        source_url: URL the document came from.
        fetched_at: Fetch time.
        siteconfig_id: Site-specific configuration used, if any.

    Returns:
        Markdown document with a YAML header block.
    """
    timestamp = fetched_at.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
    header = "\n".join(
        [
            "---",
            f"title: {escape_yaml(result.title or UNTITLED)}",
            f"source: {source_url}",
            f"fetched_at: {timestamp}",
            f"extractor: {result.extractor_id}",
            f"siteconfig: {siteconfig_id or NO_SITECONFIG}",
            "---",
        ]
    )
    return f"{header}\n{result.markdown.strip()}"
