"""Extractor backed by trafilatura."""

import trafilatura
from bs4 import BeautifulSoup
from trafilatura.settings import use_config

from src.extract.errors import ExtractionError
from src.extract.links import extract_links
from src.extract.models import ExtractConfig, ExtractionResult


EXTRACTOR_NAME = "trafilatura"


def extract_title(soup: BeautifulSoup) -> str | None:
    """Pick a document title from og:title, <title>, or the first <h1>."""
    og_title = soup.find("meta", attrs={"property": "og:title"})
    if og_title and og_title.get("content"):
        return str(og_title["content"]).strip() or None

    if soup.title and soup.title.string:
        title = soup.title.string.strip()
        if title:
            return title

    heading = soup.find("h1")
    if heading:
        return heading.get_text(" ", strip=True) or None

    return None


class TrafilaturaExtractor:
    """Main-content extraction with trafilatura, links and title via BeautifulSoup."""

    @property
    def name(self) -> str:
        """Stable extractor name stored with snapshots."""
        return EXTRACTOR_NAME

    @property
    def version(self) -> str:
        """Installed trafilatura version."""
        return str(getattr(trafilatura, "__version__", "unknown"))

    def extract(
        self,
        html: str,
        base_url: str,
        config: ExtractConfig,
    ) -> ExtractionResult:
        """Extract title, markdown, text, and links.

        Args:
            html: Document source.
            base_url: URL the document was fetched from.
            config: Tuning parameters; char_threshold maps to trafilatura's
                minimum extracted size. max_top_candidates has no
                trafilatura counterpart and is only recorded.

        Returns:
            Extraction result.

        Raises:
            ExtractionError: If the document is empty or has no main content.
        """
        if not html.strip():
            raise ExtractionError(self.name, "document is empty")

        settings = use_config()
        settings.set("DEFAULT", "MIN_EXTRACTED_SIZE", str(config.char_threshold))
        # Signal-based timeouts only work on the main thread
        settings.set("DEFAULT", "EXTRACTION_TIMEOUT", "0")

        markdown = trafilatura.extract(
            html,
            url=base_url,
            output_format="markdown",
            include_links=True,
            include_tables=True,
            include_formatting=True,
            config=settings,
        )
        if not markdown:
            raise ExtractionError(self.name, "no main content found")

        text = trafilatura.extract(
            html,
            url=base_url,
            output_format="txt",
            include_tables=True,
            config=settings,
        )

        soup = BeautifulSoup(html, "lxml")

        return ExtractionResult(
            title=extract_title(soup),
            markdown=markdown.strip(),
            text=(text or "").strip(),
            links=extract_links(html, base_url),
            extractor_name=self.name,
            extractor_version=self.version,
        )
