"""Unit tests for extraction from caller-supplied HTML."""

import pytest

from src.extract.errors import ExtractionError
from src.extract.models import ExtractConfig, ExtractionResult, Link
from src.web.error_mapper import map_error_to_code
from src.web.errors import InvalidInputError
from src.web.extract_service import extract_html
from src.web.models import ErrorCode, ExtractRequest


SENTENCE = (
    "Connection pools reuse sockets across requests, which saves a TCP and "
    "TLS handshake on every call and keeps latency predictable under load. "
)

ARTICLE = f"""
<html>
<head><title>Connection Pooling</title><style>p {{ color: red; }}</style></head>
<body>
  <article>
    <h1>Connection Pooling</h1>
    <p>{SENTENCE * 4}</p>
    <p>{SENTENCE * 3} Read <a href="/about">About Page</a> or
       <a href="guide.html">the guide</a>.</p>
  </article>
  <script>var tracking = true;</script>
</body>
</html>
"""


class FakeExtractor:
    """Extractor returning a fixed result and recording its calls."""

    name = "fake"
    version = "1.0"

    def __init__(self, fail: bool = False) -> None:
        self.calls: list[tuple[str, str, ExtractConfig]] = []
        self._fail = fail

    def extract(
        self, html: str, base_url: str, config: ExtractConfig
    ) -> ExtractionResult:
        self.calls.append((html, base_url, config))
        if self._fail:
            raise ExtractionError(self.name, "no main content found")
        return ExtractionResult(
            title="Pooling",
            markdown="# Pooling\n\nReuse **sockets** wisely",
            text="Pooling\n\nReuse sockets wisely",
            links=[Link(text="About", href="https://docs.example.com/about")],
            extractor_name=self.name,
            extractor_version=self.version,
        )


class TestExtractValidation:
    """Tests for input checks made before extraction."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("html", ["", "  \n\t "])
    async def test_blank_html(self, html: str) -> None:
        """Test blank HTML is invalid input."""
        extractor = FakeExtractor()

        with pytest.raises(InvalidInputError) as exc_info:
            await extract_html(ExtractRequest(html=html), extractor)

        assert map_error_to_code(exc_info.value) == ErrorCode.INVALID_INPUT
        assert extractor.calls == []

    @pytest.mark.asyncio
    async def test_unknown_strategy(self) -> None:
        """Test strategies other than readability and plain_text are refused."""
        with pytest.raises(InvalidInputError):
            await extract_html(ExtractRequest(html=ARTICLE, strategy="dom_distiller"))


class TestReadabilityStrategy:
    """Tests for the readability strategy."""

    @pytest.mark.asyncio
    async def test_delegates_to_extractor(self) -> None:
        """Test the extractor receives the HTML, base URL, and tuning."""
        extractor = FakeExtractor()
        config = ExtractConfig(char_threshold=50, max_top_candidates=3)

        result = await extract_html(
            ExtractRequest(
                html=ARTICLE,
                base_url="https://docs.example.com/pool",
                extract=config,
            ),
            extractor,
        )

        assert extractor.calls == [(ARTICLE, "https://docs.example.com/pool", config)]
        assert result.strategy_used == "readability"
        assert result.title == "Pooling"
        assert result.markdown == "# Pooling\n\nReuse **sockets** wisely"
        assert result.text is None
        assert result.word_count == 4
        assert result.links == [
            Link(text="About", href="https://docs.example.com/about")
        ]

    @pytest.mark.asyncio
    async def test_text_output(self) -> None:
        """Test to_markdown=False returns text and no markdown."""
        result = await extract_html(
            ExtractRequest(html=ARTICLE, to_markdown=False), FakeExtractor()
        )

        assert result.markdown is None
        assert result.text == "Pooling\n\nReuse sockets wisely"

    @pytest.mark.asyncio
    async def test_missing_base_url_passes_empty(self) -> None:
        """Test no base URL reaches the extractor as an empty string."""
        extractor = FakeExtractor()

        await extract_html(ExtractRequest(html=ARTICLE), extractor)

        assert extractor.calls[0][1] == ""

    @pytest.mark.asyncio
    async def test_extraction_failure(self) -> None:
        """Test extractor failures surface as EXTRACT_FAILED."""
        with pytest.raises(ExtractionError) as exc_info:
            await extract_html(ExtractRequest(html=ARTICLE), FakeExtractor(fail=True))

        assert map_error_to_code(exc_info.value) == ErrorCode.EXTRACT_FAILED

    @pytest.mark.asyncio
    async def test_default_extractor(self) -> None:
        """Test trafilatura is used when no extractor is given."""
        result = await extract_html(
            ExtractRequest(
                html=ARTICLE,
                base_url="https://docs.example.com/pool/intro",
                extract=ExtractConfig(char_threshold=100),
            )
        )

        assert result.title == "Connection Pooling"
        assert result.markdown is not None
        assert "keeps latency predictable" in result.markdown
        assert result.word_count > 50
        hrefs = [link.href for link in result.links]
        assert "https://docs.example.com/about" in hrefs
        assert "https://docs.example.com/pool/guide.html" in hrefs


class TestPlainTextStrategy:
    """Tests for the plain_text strategy."""

    @pytest.mark.asyncio
    async def test_visible_text_only(self) -> None:
        """Test markup, scripts, and styles are dropped."""
        extractor = FakeExtractor()

        result = await extract_html(
            ExtractRequest(html=ARTICLE, strategy="plain_text", to_markdown=False),
            extractor,
        )

        assert extractor.calls == []
        assert result.strategy_used == "plain_text"
        assert result.title == "Connection Pooling"
        assert result.text is not None
        assert result.text.startswith("Connection Pooling\n")
        assert "saves a TCP and TLS handshake" in result.text
        assert "tracking" not in result.text
        assert "color" not in result.text
        assert "<p>" not in result.text
        assert result.word_count == len(result.text.split())

    @pytest.mark.asyncio
    async def test_relative_links_kept_without_base(self) -> None:
        """Test links stay as written when no base URL is given."""
        result = await extract_html(
            ExtractRequest(html=ARTICLE, strategy="plain_text")
        )

        assert result.links == [
            Link(text="About Page", href="/about"),
            Link(text="the guide", href="guide.html"),
        ]

    @pytest.mark.asyncio
    async def test_links_resolved_against_base(self) -> None:
        """Test relative links resolve against the base URL."""
        result = await extract_html(
            ExtractRequest(
                html=ARTICLE,
                base_url="https://example.com/dir/file.html",
                strategy="PLAIN_TEXT",
            )
        )

        assert result.strategy_used == "plain_text"
        assert [link.href for link in result.links] == [
            "https://example.com/about",
            "https://example.com/dir/guide.html",
        ]
        assert result.markdown is not None
        assert result.text is None
