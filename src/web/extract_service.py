"""Extraction from caller-supplied HTML.

No network I/O is performed and nothing is cached. The readability
strategy runs an Extractor over the document; plain_text drops markup
and keeps every visible string.
"""

import asyncio

import structlog
from bs4 import BeautifulSoup

from src.extract.links import extract_links
from src.extract.models import Link
from src.extract.protocols import Extractor
from src.extract.trafilatura_extractor import TrafilaturaExtractor, extract_title
from src.web.errors import InvalidInputError
from src.web.models import ExtractRequest, ExtractResult


logger = structlog.get_logger()

STRATEGIES = ("readability", "plain_text")

# Never visible content
_HIDDEN_TAGS = ["head", "script", "style", "noscript", "template"]


def _plain_text(html: str, base_url: str) -> tuple[str | None, str, list[Link]]:
    """Title, visible text, and links of a document."""
    soup = BeautifulSoup(html, "lxml")
    title = extract_title(soup)
    links = extract_links(html, base_url)
    for tag in soup(_HIDDEN_TAGS):
        tag.decompose()
    return title, soup.get_text("\n", strip=True), links


async def extract_html(
    request: ExtractRequest,
    extractor: Extractor | None = None,
) -> ExtractResult:
    """Extract content from HTML the caller already holds.

    Relative links resolve against base_url when given and are kept as
    written otherwise.

    Args:
        request: HTML and extraction options.
        extractor: Extractor for the readability strategy. Defaults to
            TrafilaturaExtractor.

    Returns:
        Markdown or plain text (per to_markdown), title, links, and word count.

    Raises:
        InvalidInputError: If the HTML is blank or the strategy unknown.
        ExtractionError: If the readability strategy finds no main content.
    """
    if not request.html.strip():
        msg = "html cannot be empty"
        raise InvalidInputError(msg)

    strategy = request.strategy.strip().lower()
    if strategy not in STRATEGIES:
        msg = f"unknown strategy {request.strategy!r}, expected one of {STRATEGIES}"
        raise InvalidInputError(msg)

    base_url = request.base_url or ""
    if strategy == "readability":
        extractor = extractor or TrafilaturaExtractor()
        result = await asyncio.to_thread(
            extractor.extract, request.html, base_url, request.extract
        )
        title, links = result.title, result.links
        markdown = result.markdown
        text = result.text or result.markdown
    else:
        title, text, links = await asyncio.to_thread(
            _plain_text, request.html, base_url
        )
        markdown = text

    word_count = len(text.split())
    logger.info(
        "extract_complete",
        component="extract_service",
        strategy=strategy,
        word_count=word_count,
        links=len(links),
    )
    return ExtractResult(
        title=title,
        markdown=markdown if request.to_markdown else None,
        text=None if request.to_markdown else text,
        links=links,
        strategy_used=strategy,
        word_count=word_count,
    )
