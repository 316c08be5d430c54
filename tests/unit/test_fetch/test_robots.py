"""Unit tests for the robots.txt compliance cache."""

from collections.abc import Callable

import httpx
import pytest

from src.fetch.errors import (
    RobotsDisallowedError,
    RobotsFetchError,
    RobotsTooLargeError,
)
from src.fetch.metrics import FetchMetrics
from src.fetch.robots import RobotsCache


ROBOTS_BODY = """
User-agent: *
Disallow: /private
Allow: /
"""


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _counting_transport(
    respond: Callable[[httpx.Request], httpx.Response],
) -> tuple[httpx.MockTransport, list[str]]:
    requests: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        return respond(request)

    return httpx.MockTransport(handler), requests


@pytest.fixture(autouse=True)
def reset_metrics() -> None:
    """Reset fetch metrics before each test."""
    FetchMetrics.reset()


class TestRobotsCache:
    """Tests for RobotsCache."""

    @pytest.mark.asyncio
    async def test_allows_and_disallows(self) -> None:
        """Test rules are applied to the path."""
        transport, _ = _counting_transport(
            lambda _: httpx.Response(200, text=ROBOTS_BODY)
        )

        async with RobotsCache("testbot", transport=transport) as cache:
            assert await cache.is_allowed("https://example.com/public") is True
            with pytest.raises(RobotsDisallowedError) as exc_info:
                await cache.is_allowed("https://example.com/private/page?q=1")

        assert exc_info.value.path == "/private/page?q=1"
        assert exc_info.value.robots_url == "https://example.com/robots.txt"

    @pytest.mark.asyncio
    async def test_fresh_entry_served_without_network(self) -> None:
        """Test one fetch serves every check within the TTL."""
        transport, requests = _counting_transport(
            lambda _: httpx.Response(200, text=ROBOTS_BODY)
        )

        async with RobotsCache("testbot", transport=transport) as cache:
            for _ in range(5):
                await cache.is_allowed("https://example.com/a")

        assert requests == ["https://example.com/robots.txt"]
        metrics = FetchMetrics.get_instance()
        assert metrics.robots_cache_misses_total == 1
        assert metrics.robots_cache_hits_total == 4

    @pytest.mark.asyncio
    async def test_entries_are_per_origin(self) -> None:
        """Test different origins are cached separately."""
        transport, requests = _counting_transport(
            lambda _: httpx.Response(200, text=ROBOTS_BODY)
        )

        async with RobotsCache("testbot", transport=transport) as cache:
            await cache.is_allowed("https://a.example/")
            await cache.is_allowed("https://b.example/")
            await cache.is_allowed("http://a.example/")

        assert len(requests) == 3
        assert cache.size == 3

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self) -> None:
        """Test the TTL forces a refetch."""
        clock = FakeClock()
        transport, requests = _counting_transport(
            lambda _: httpx.Response(200, text=ROBOTS_BODY)
        )

        async with RobotsCache(
            "testbot", transport=transport, ttl_seconds=60, clock=clock
        ) as cache:
            await cache.is_allowed("https://example.com/")
            clock.now += 59
            await cache.is_allowed("https://example.com/")
            clock.now += 1
            await cache.is_allowed("https://example.com/")

        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_missing_robots_allows_all_and_is_cached(self) -> None:
        """Test a 4xx answer is cached as allow-all."""
        transport, requests = _counting_transport(lambda _: httpx.Response(404))

        async with RobotsCache("testbot", transport=transport) as cache:
            assert await cache.is_allowed("https://example.com/private") is True
            assert await cache.is_allowed("https://example.com/anything") is True

        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_is_not_cached(self) -> None:
        """Test a 5xx answer raises and the next call retries."""
        transport, requests = _counting_transport(lambda _: httpx.Response(503))

        async with RobotsCache("testbot", transport=transport) as cache:
            with pytest.raises(RobotsFetchError) as exc_info:
                await cache.is_allowed("https://example.com/")
            with pytest.raises(RobotsFetchError):
                await cache.is_allowed("https://example.com/")

        assert exc_info.value.status_code == 503
        assert len(requests) == 2
        assert cache.size == 0

    @pytest.mark.asyncio
    async def test_network_error_is_not_cached(self) -> None:
        """Test transport failures raise RobotsFetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with RobotsCache(
            "testbot", transport=httpx.MockTransport(handler)
        ) as cache:
            with pytest.raises(RobotsFetchError):
                await cache.is_allowed("https://example.com/")

        assert cache.size == 0

    @pytest.mark.asyncio
    async def test_oversized_robots_rejected(self) -> None:
        """Test bodies above the ceiling are refused."""
        transport, _ = _counting_transport(
            lambda _: httpx.Response(200, content=b"User-agent: *\n" * 100)
        )

        async with RobotsCache("testbot", transport=transport, max_bytes=64) as cache:
            with pytest.raises(RobotsTooLargeError):
                await cache.is_allowed("https://example.com/")

    @pytest.mark.asyncio
    async def test_agent_specific_rules(self) -> None:
        """Test rules for the configured agent are honored."""
        body = "User-agent: testbot\nDisallow: /\n\nUser-agent: *\nAllow: /\n"
        transport, _ = _counting_transport(lambda _: httpx.Response(200, text=body))

        async with RobotsCache("testbot", transport=transport) as cache:
            with pytest.raises(RobotsDisallowedError):
                await cache.is_allowed("https://example.com/")

        async with RobotsCache("otherbot", transport=transport) as cache:
            assert await cache.is_allowed("https://example.com/") is True

    @pytest.mark.asyncio
    async def test_cleanup_expired(self) -> None:
        """Test expired entries are dropped on cleanup."""
        clock = FakeClock()
        transport, _ = _counting_transport(
            lambda _: httpx.Response(200, text=ROBOTS_BODY)
        )

        async with RobotsCache(
            "testbot", transport=transport, ttl_seconds=10, clock=clock
        ) as cache:
            await cache.is_allowed("https://a.example/")
            clock.now += 5
            await cache.is_allowed("https://b.example/")
            clock.now += 6

            assert cache.cleanup_expired() == 1
            assert cache.size == 1


class TestRobotsRuleMatching:
    """Tests for RFC 9309 rule evaluation."""

    @staticmethod
    def _cache(body: str) -> RobotsCache:
        transport, _ = _counting_transport(lambda _: httpx.Response(200, text=body))
        return RobotsCache("testbot", transport=transport)

    @pytest.mark.asyncio
    async def test_end_anchor_wildcard(self) -> None:
        """Test `*` and `$` restrict matching to the file suffix."""
        async with self._cache("User-agent: *\nDisallow: /*.pdf$\n") as cache:
            with pytest.raises(RobotsDisallowedError):
                await cache.is_allowed("https://example.com/docs/report.pdf")
            assert await cache.is_allowed("https://example.com/docs/report.html")

    @pytest.mark.asyncio
    async def test_wildcard_matches_query(self) -> None:
        """Test a wildcard rule can match inside the query string."""
        async with self._cache("User-agent: *\nDisallow: /*?sessionid=\n") as cache:
            with pytest.raises(RobotsDisallowedError):
                await cache.is_allowed("https://example.com/page?sessionid=abc")
            assert await cache.is_allowed("https://example.com/page?lang=en")

    @pytest.mark.asyncio
    async def test_longest_match_wins(self) -> None:
        """Test a longer Allow overrides a shorter Disallow regardless of order."""
        body = "User-agent: *\nDisallow: /search\nAllow: /search/about\n"

        async with self._cache(body) as cache:
            assert await cache.is_allowed("https://example.com/search/about") is True
            with pytest.raises(RobotsDisallowedError):
                await cache.is_allowed("https://example.com/search?q=python")
