"""robots.txt compliance cache.

Rulesets are fetched once per origin and reused until they expire. A
fresh entry is evaluated locally without network access. Missing or
expired entries are refetched; a 4xx answer is cached as allow-all, while
network errors and 5xx answers propagate without caching so the next
call retries.

Rules follow RFC 9309: `*` and `$` wildcards are honored and the longest
matching rule wins, with Allow winning ties.
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx
import structlog
from protego import Protego

from src.fetch.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_REDIRECTS,
    HTTP_STATUS_CLIENT_ERROR_MAX,
    HTTP_STATUS_CLIENT_ERROR_MIN,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
    ROBOTS_MAX_BYTES,
    ROBOTS_PATH,
    ROBOTS_TIMEOUT_SECONDS,
    ROBOTS_TTL_SECONDS,
)
from src.fetch.errors import (
    RobotsDisallowedError,
    RobotsFetchError,
    RobotsTooLargeError,
)
from src.fetch.metrics import FetchMetrics
from src.fetch.ssrf import SsrfGuard, build_guarded_transport
from src.fetch.url import CanonicalUrl, canonicalize


logger = structlog.get_logger()

_CLIENT_ERROR_RANGE = range(HTTP_STATUS_CLIENT_ERROR_MIN, HTTP_STATUS_CLIENT_ERROR_MAX)


@dataclass(frozen=True)
class RobotsEntry:
    """A cached ruleset for one origin.

    Attributes:
        robots_url: Where the ruleset was fetched from.
        parser: Parsed RFC 9309 rules (allow-all when the origin has none).
        fetched_at: Monotonic clock reading at fetch time.
    """

    robots_url: str
    parser: Protego
    fetched_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        """Check whether the entry is older than the TTL."""
        return now - self.fetched_at >= ttl_seconds


class RobotsCache:
    """Per-origin robots.txt cache with lock-free reads.

    Writers replace whole entries under an asyncio lock; readers never
    wait on it. Concurrent misses for one origin may each refetch, which
    is harmless because every writer stores an equivalent ruleset.
    """

    def __init__(
        self,
        user_agent: str,
        *,
        guard: SsrfGuard | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        ttl_seconds: float = ROBOTS_TTL_SECONDS,
        max_bytes: int = ROBOTS_MAX_BYTES,
        timeout_seconds: float = ROBOTS_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the robots cache.

        Args:
            user_agent: Agent name used for the request and rule matching.
            guard: SSRF guard for robots.txt connections.
            transport: Override transport (tests); bypasses the guard.
            ttl_seconds: Entry lifetime.
            max_bytes: Largest accepted robots.txt body.
            timeout_seconds: Timeout for each robots.txt fetch.
            clock: Monotonic time source.
        """
        self._user_agent = user_agent
        self._ttl_seconds = ttl_seconds
        self._max_bytes = max_bytes
        self._clock = clock
        self._entries: dict[str, RobotsEntry] = {}
        self._lock = asyncio.Lock()
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="robots")

        if transport is None:
            transport = build_guarded_transport(guard or SsrfGuard())
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=timeout_seconds,
            follow_redirects=True,
            max_redirects=DEFAULT_MAX_REDIRECTS,
            headers={"User-Agent": user_agent},
            trust_env=False,
        )

    async def __aenter__(self) -> "RobotsCache":
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    @property
    def size(self) -> int:
        """Number of cached origins, expired or not."""
        return len(self._entries)

    async def is_allowed(self, url: CanonicalUrl | str) -> bool:
        """Check a URL against its origin's robots.txt.

        Args:
            url: Canonical URL or raw string.

        Returns:
            True when the request is allowed.

        Raises:
            RobotsDisallowedError: If robots.txt forbids the path.
            RobotsTooLargeError: If robots.txt exceeds the size ceiling.
            RobotsFetchError: If robots.txt could not be retrieved.
            InvalidUrlError: If a raw string fails canonicalization.
        """
        canonical = url if isinstance(url, CanonicalUrl) else canonicalize(url)
        origin = canonical.origin

        entry = self._entries.get(origin)
        if entry is not None and not entry.is_expired(
            self._clock(), self._ttl_seconds
        ):
            self._metrics.record_robots_hit()
            self._log.debug("robots_cache_hit", origin=origin)
        else:
            self._metrics.record_robots_miss()
            entry = await self._refresh(origin)

        if not entry.parser.can_fetch(str(canonical), self._user_agent):
            self._metrics.record_robots_disallowed()
            self._log.info(
                "robots_disallowed",
                origin=origin,
                path=canonical.path_with_query,
            )
            raise RobotsDisallowedError(canonical.path_with_query, entry.robots_url)

        return True

    def cleanup_expired(self) -> int:
        """Drop expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [
            origin
            for origin, entry in self._entries.items()
            if entry.is_expired(now, self._ttl_seconds)
        ]
        for origin in expired:
            del self._entries[origin]

        if expired:
            self._log.info("robots_cache_cleaned", removed=len(expired))
        return len(expired)

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    async def _refresh(self, origin: str) -> RobotsEntry:
        """Fetch and install a fresh ruleset for an origin.

        Args:
            origin: scheme://host[:port].

        Returns:
            The installed entry.
        """
        robots_url = f"{origin}{ROBOTS_PATH}"
        parser = await self._download(robots_url)
        entry = RobotsEntry(
            robots_url=robots_url, parser=parser, fetched_at=self._clock()
        )

        async with self._lock:
            self._entries[origin] = entry

        return entry

    async def _download(self, robots_url: str) -> Protego:
        """Download and parse one robots.txt.

        Args:
            robots_url: Absolute robots.txt URL.

        Returns:
            Parsed rules; allow-all for 4xx answers.

        Raises:
            RobotsTooLargeError: If the body exceeds the size ceiling.
            RobotsFetchError: On network failure or a non-2xx/4xx status.
        """
        try:
            async with self._client.stream("GET", robots_url) as response:
                status = response.status_code

                if HTTP_STATUS_OK_MIN <= status < HTTP_STATUS_OK_MAX:
                    body = await self._read_body_with_limit(response, robots_url)
                    parser = Protego.parse(body.decode("utf-8", errors="replace"))
                    self._log.info(
                        "robots_fetched", robots_url=robots_url, bytes=len(body)
                    )
                    return parser

                if status in _CLIENT_ERROR_RANGE:
                    parser = Protego.parse("")
                    self._log.info(
                        "robots_missing", robots_url=robots_url, status_code=status
                    )
                    return parser

                raise RobotsFetchError(robots_url, f"status {status}", status)

        except httpx.HTTPError as e:
            self._log.warning(
                "robots_fetch_failed", robots_url=robots_url, error=str(e)
            )
            raise RobotsFetchError(robots_url, str(e) or type(e).__name__) from e

    async def _read_body_with_limit(
        self, response: httpx.Response, robots_url: str
    ) -> bytes:
        """Read a robots.txt body, refusing oversized documents.

        Args:
            response: Streaming response.
            robots_url: URL for error context.

        Returns:
            Body bytes.

        Raises:
            RobotsTooLargeError: If declared or actual size exceeds the limit.
        """
        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > self._max_bytes:
            raise RobotsTooLargeError(robots_url, self._max_bytes)

        buffer = bytearray()
        async for chunk in response.aiter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            buffer.extend(chunk)
            if len(buffer) > self._max_bytes:
                raise RobotsTooLargeError(robots_url, self._max_bytes)
        return bytes(buffer)
