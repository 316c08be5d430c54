"""Safe HTTP fetch pipeline with hard resource limits."""

import asyncio
import time

import httpx
import structlog

from src.fetch.config import FetchConfig
from src.fetch.constants import (
    DEFAULT_ACCEPT,
    DEFAULT_CHUNK_SIZE,
    HTTP_STATUS_OK_MAX,
    HTTP_STATUS_OK_MIN,
)
from src.fetch.errors import (
    BlockedSchemeError,
    FetchError,
    FetchTimeoutError,
    FetchTooLargeError,
    HttpStatusError,
    NetworkError,
    TooManyRedirectsError,
)
from src.fetch.metrics import FetchMetrics
from src.fetch.models import FetchResponse
from src.fetch.policy import DomainPolicy
from src.fetch.redact import redact_headers, redact_url_credentials
from src.fetch.robots import RobotsCache
from src.fetch.ssrf import SsrfGuard, build_guarded_transport
from src.fetch.url import CanonicalUrl, canonicalize


logger = structlog.get_logger()


class FetchClient:
    """HTTP client that turns a raw URL into a bounded, policy-compliant response.

    Every fetch goes through:
    - URL canonicalization
    - Scheme denylist and domain policy (also re-checked on each redirect hop)
    - robots.txt compliance (when enabled)
    - SSRF validation of every address actually connected to
    - Redirect, size, and wall-clock limits

    Failures are raised as FetchError subclasses; non-2xx responses are
    failures, never partial successes. No request is retried.
    """

    def __init__(
        self,
        config: FetchConfig,
        *,
        guard: SsrfGuard | None = None,
        robots: RobotsCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the fetch client.

        Args:
            config: Fetch configuration.
            guard: SSRF guard; a default guard is created when omitted.
            robots: Shared robots cache; one is created when omitted.
            transport: Override transport (tests); bypasses the SSRF guard.
        """
        self._config = config
        self._guard = guard or SsrfGuard()
        self._policy = DomainPolicy(config.allowlist_domains, config.denylist_domains)
        self._metrics = FetchMetrics.get_instance()
        self._log = logger.bind(component="fetch")

        self._owns_robots = robots is None
        self._robots = robots or RobotsCache(
            config.user_agent, guard=self._guard, transport=transport
        )

        self._client = httpx.AsyncClient(
            transport=transport or build_guarded_transport(self._guard),
            timeout=httpx.Timeout(config.timeout_seconds),
            follow_redirects=True,
            max_redirects=config.max_redirects,
            trust_env=False,
            event_hooks={"request": [self._check_request]},
        )

    @property
    def config(self) -> FetchConfig:
        """Get the fetch configuration."""
        return self._config

    @property
    def robots(self) -> RobotsCache:
        """Get the robots cache."""
        return self._robots

    async def __aenter__(self) -> "FetchClient":
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
        """Close the HTTP client and any robots cache this client created."""
        await self._client.aclose()
        if self._owns_robots:
            await self._robots.aclose()

    async def fetch(self, url: str, accept: str | None = None) -> FetchResponse:
        """Fetch a URL through every safety and resource gate.

        Args:
            url: Raw URL string from the caller.
            accept: Accept header override.

        Returns:
            FetchResponse for a 2xx answer.

        Raises:
            InvalidUrlError: If the URL cannot be canonicalized.
            SsrfError: If the scheme, domain, or any resolved address is blocked.
            RobotsError: If robots.txt refuses or cannot be evaluated.
            FetchTimeoutError: If the wall-clock budget expires.
            FetchTooLargeError: If the body exceeds max_bytes.
            HttpStatusError: If the final status is not 2xx.
            TooManyRedirectsError: If the redirect ceiling is exceeded.
            NetworkError: For other transport failures.
        """
        start_time_ns = time.perf_counter_ns()
        canonical = canonicalize(url)
        log = self._log.bind(
            url=redact_url_credentials(str(canonical)), host=canonical.host
        )

        try:
            self._guard.check_scheme(canonical.scheme)
            self._policy.check(canonical.host)

            if self._config.respect_robots:
                await self._robots.is_allowed(canonical)

            response = await self._execute(canonical, accept, start_time_ns, log)

        except FetchError as e:
            duration_ms = (time.perf_counter_ns() - start_time_ns) / 1_000_000
            self._metrics.record_failure(type(e).__name__)
            self._metrics.record_duration(duration_ms)
            log.warning(
                "fetch_failed",
                error_type=type(e).__name__,
                error=str(e),
                duration_ms=round(duration_ms, 2),
            )
            raise

        self._metrics.record_duration(response.fetch_ms)
        log.info(
            "fetch_complete",
            status_code=response.status_code,
            final_url=redact_url_credentials(response.final_url),
            bytes=response.body_size,
            duration_ms=response.fetch_ms,
        )
        return response

    async def _check_request(self, request: httpx.Request) -> None:
        """Re-apply scheme and domain policy to every outgoing request.

        Runs for the initial request and for each redirect hop.

        Args:
            request: Outgoing request.
        """
        self._guard.check_scheme(request.url.scheme)
        self._policy.check(request.url.host)

    async def _execute(
        self,
        canonical: CanonicalUrl,
        accept: str | None,
        start_time_ns: int,
        log: structlog.stdlib.BoundLogger,
    ) -> FetchResponse:
        """Run the GET under the wall-clock budget and map transport errors.

        Args:
            canonical: Target URL.
            accept: Accept header override.
            start_time_ns: Fetch start time for fetch_ms.
            log: Bound logger.

        Returns:
            FetchResponse for a 2xx answer.
        """
        target = str(canonical)
        headers = {
            "User-Agent": self._config.user_agent,
            "Accept": accept or DEFAULT_ACCEPT,
        }
        log.debug("fetch_started", headers=redact_headers(headers))

        try:
            async with asyncio.timeout(self._config.timeout_seconds):
                return await self._send(target, headers, start_time_ns)

        except (TimeoutError, httpx.TimeoutException) as e:
            raise FetchTimeoutError(target, self._config.timeout_ms) from e

        except httpx.TooManyRedirects as e:
            raise TooManyRedirectsError(target, self._config.max_redirects) from e

        except httpx.UnsupportedProtocol as e:
            raise BlockedSchemeError(str(e)) from e

        except httpx.HTTPError as e:
            raise NetworkError(target, str(e) or type(e).__name__) from e

    async def _send(
        self,
        target: str,
        headers: dict[str, str],
        start_time_ns: int,
    ) -> FetchResponse:
        """Issue the streamed GET and enforce status and size limits.

        Args:
            target: Canonical URL string.
            headers: Request headers.
            start_time_ns: Fetch start time for fetch_ms.

        Returns:
            FetchResponse for a 2xx answer.
        """
        async with self._client.stream("GET", target, headers=headers) as response:
            status = response.status_code

            if not HTTP_STATUS_OK_MIN <= status < HTTP_STATUS_OK_MAX:
                self._metrics.record_request(status, 0)
                raise HttpStatusError(target, status)

            # Optimistic check on the declared size
            declared = response.headers.get("content-length")
            if declared and declared.isdigit():
                size = int(declared)
                if size > self._config.max_bytes:
                    self._metrics.record_request(status, 0)
                    raise FetchTooLargeError(target, self._config.max_bytes, size)

            body = await self._read_body_with_limit(response, target)
            self._metrics.record_request(status, len(body))

            fetch_ms = (time.perf_counter_ns() - start_time_ns) // 1_000_000
            return FetchResponse(
                url=target,
                final_url=str(response.url),
                status_code=status,
                content_type=response.headers.get("content-type"),
                body=body,
                headers={k.lower(): v for k, v in response.headers.items()},
                fetch_ms=fetch_ms,
            )

    async def _read_body_with_limit(
        self, response: httpx.Response, target: str
    ) -> bytes:
        """Read the (decoded) response body, enforcing max_bytes.

        Args:
            response: Streaming response.
            target: URL for error context.

        Returns:
            Response body bytes.

        Raises:
            FetchTooLargeError: If the body grows past max_bytes.
        """
        buffer = bytearray()
        max_size = self._config.max_bytes

        async for chunk in response.aiter_bytes(chunk_size=DEFAULT_CHUNK_SIZE):
            buffer.extend(chunk)
            if len(buffer) > max_size:
                raise FetchTooLargeError(target, max_size)

        return bytes(buffer)
