"""Integration tests for open and batch over a file-backed cache."""

from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest

from src.extract.models import ExtractConfig
from src.fetch.client import FetchClient
from src.fetch.config import FetchConfig
from src.store.store import CacheStore
from src.web.batch import BatchOrchestrator
from src.web.cache_ops import get_cached, purge_cache
from src.web.models import BatchRequest, BatchStatus, ErrorCode, OpenRequest
from src.web.opener import WebOpener


SENTENCE = (
    "Structured concurrency keeps every task scoped to the block that "
    "started it, so no work outlives its owner and errors always surface. "
)

ARTICLE = f"""
<html><head><title>Structured Concurrency</title></head>
<body><article>
<h1>Structured Concurrency</h1>
<p>{SENTENCE * 4}</p>
<p>{SENTENCE * 3} Read <a href="/more">more</a>.</p>
</article></body></html>
""".encode()

ROBOTS = b"User-agent: *\nDisallow: /private/\n"


def handler(request: httpx.Request) -> httpx.Response:
    """Serve robots.txt, articles, and failures by path."""
    path = request.url.path
    if path == "/robots.txt":
        return httpx.Response(200, content=ROBOTS)
    if path.startswith("/missing"):
        return httpx.Response(404, content=b"not found")
    if path == "/moved":
        return httpx.Response(301, headers={"Location": "/article"})
    return httpx.Response(
        200, content=ARTICLE, headers={"Content-Type": "text/html; charset=utf-8"}
    )


@pytest.fixture
async def opener(tmp_path: Path) -> AsyncGenerator[WebOpener]:
    """Opener wired to a file-backed store, real extractor, and mock upstream."""
    async with (
        CacheStore(tmp_path / "cache.sqlite") as store,
        FetchClient(FetchConfig(), transport=httpx.MockTransport(handler)) as fetcher,
    ):
        yield WebOpener(fetcher, store, default_ttl_seconds=3600)


class TestOpenPipeline:
    """End-to-end open through robots, fetch, extraction, and cache."""

    @pytest.mark.asyncio
    async def test_readable_open_and_reuse(self, opener: WebOpener) -> None:
        """Test extraction output is cached and served on the second call."""
        request = OpenRequest(
            url="https://blog.example.com/moved",
            extract=ExtractConfig(char_threshold=100),
        )

        first = await opener.open(request)
        second = await opener.open(request)

        assert first.final_url == "https://blog.example.com/article"
        assert first.title == "Structured Concurrency"
        assert first.markdown is not None
        assert "source: https://blog.example.com/article" in first.markdown
        assert "no work outlives its owner" in first.markdown
        assert any(
            link.href == "https://blog.example.com/more" for link in first.links
        )
        assert second.from_cache is True
        assert second.markdown == first.markdown

    @pytest.mark.asyncio
    async def test_batch_mixed_outcomes(self, opener: WebOpener) -> None:
        """Test a batch reports success, cache hits, and typed failures."""
        await opener.open(OpenRequest(url="https://a.example/article", mode="raw"))

        result = await BatchOrchestrator(opener).run(
            BatchRequest(
                urls=[
                    "https://a.example/article",
                    "https://b.example/article",
                    "https://c.example/missing",
                    "https://d.example/private/page",
                    "file:///etc/passwd",
                ],
                mode="raw",
                max_concurrency=2,
            )
        )

        statuses = [item.status for item in result.items]
        assert statuses == [
            BatchStatus.CACHED,
            BatchStatus.SUCCESS,
            BatchStatus.FAILED,
            BatchStatus.FAILED,
            BatchStatus.FAILED,
        ]
        codes = [item.error.code for item in result.items if item.error is not None]
        assert codes == [
            ErrorCode.HTTP_ERROR,
            ErrorCode.ROBOTS_DISALLOWED,
            ErrorCode.INVALID_URL,
        ]
        assert result.summary.cached == 1
        assert result.summary.succeeded == 1
        assert result.summary.failed == 3

    @pytest.mark.asyncio
    async def test_lookup_and_purge(self, opener: WebOpener) -> None:
        """Test a stored snapshot can be read back by hash and purged."""
        opened = await opener.open(
            OpenRequest(url="https://example.com/article", mode="raw")
        )
        store = opener._store  # noqa: SLF001

        snapshot = await get_cached(store, opened.hash)
        assert snapshot.raw_bytes == ARTICLE

        purged = await purge_cache(store, domain="example.com")
        assert purged.domain == 1
        assert purged.remaining == 0
