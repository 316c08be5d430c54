"""Domain exceptions for the safe fetch layer.

Exceptions are grouped by the stage of the pipeline that raises them:
input validation, network safety, crawl policy, and the HTTP exchange
itself. Safety and policy errors are never retried.
"""

from enum import Enum


class FetchError(Exception):
    """Base exception for all fetch pipeline errors."""


# ===== Input =====


class InvalidUrlKind(str, Enum):
    """Reason a URL failed canonicalization.

    - EMPTY: Input was empty or whitespace only
    - INVALID: Input could not be parsed as a URL
    - UNSUPPORTED_SCHEME: Scheme other than http/https
    """

    EMPTY = "EMPTY"
    INVALID = "INVALID"
    UNSUPPORTED_SCHEME = "UNSUPPORTED_SCHEME"


class InvalidUrlError(FetchError):
    """Raised when an input string cannot be canonicalized."""

    def __init__(self, kind: InvalidUrlKind, value: str, detail: str = "") -> None:
        """Initialize the error.

        Args:
            kind: Why canonicalization failed.
            value: The offending input.
            detail: Optional extra context.
        """
        self.kind = kind
        self.value = value
        message = {
            InvalidUrlKind.EMPTY: "URL is empty",
            InvalidUrlKind.INVALID: f"Invalid URL: {value!r}",
            InvalidUrlKind.UNSUPPORTED_SCHEME: f"Unsupported URL scheme: {value!r}",
        }[kind]
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


# ===== Network safety =====


class SsrfError(FetchError):
    """Base exception for requests refused by the SSRF guard."""


class BlockedSchemeError(SsrfError):
    """Raised when a URL scheme is on the denylist."""

    def __init__(self, scheme: str) -> None:
        """Initialize the error.

        Args:
            scheme: The refused scheme.
        """
        self.scheme = scheme
        super().__init__(f"Blocked scheme: {scheme}")


class BlockedIpError(SsrfError):
    """Raised when a host resolves to a non-public address."""

    def __init__(self, ip: str, host: str | None = None) -> None:
        """Initialize the error.

        Args:
            ip: The refused address.
            host: Hostname that resolved to the address, if any.
        """
        self.ip = ip
        self.host = host
        if host and host != ip:
            super().__init__(f"Blocked IP address {ip} (resolved from {host})")
        else:
            super().__init__(f"Blocked IP address {ip}")


class BlockedDomainError(SsrfError):
    """Raised when a host is refused by the domain allow/deny policy."""

    def __init__(self, host: str, reason: str) -> None:
        """Initialize the error.

        Args:
            host: The refused host.
            reason: Which policy rejected it.
        """
        self.host = host
        self.reason = reason
        super().__init__(f"Blocked domain {host}: {reason}")


class DnsResolutionError(SsrfError):
    """Raised when a hostname cannot be resolved."""

    def __init__(self, host: str, message: str) -> None:
        """Initialize the error.

        Args:
            host: Hostname that failed to resolve.
            message: Resolver error text.
        """
        self.host = host
        super().__init__(f"DNS resolution failed for {host}: {message}")


# ===== Crawl policy =====


class RobotsError(FetchError):
    """Base exception for robots.txt compliance failures."""


class RobotsDisallowedError(RobotsError):
    """Raised when robots.txt forbids the requested path."""

    def __init__(self, path: str, robots_url: str) -> None:
        """Initialize the error.

        Args:
            path: Requested path (with query) that was refused.
            robots_url: The robots.txt that refused it.
        """
        self.path = path
        self.robots_url = robots_url
        super().__init__(f"Disallowed by robots.txt: {path} (see {robots_url})")


class RobotsTooLargeError(RobotsError):
    """Raised when a robots.txt document exceeds the size ceiling."""

    def __init__(self, robots_url: str, limit: int) -> None:
        """Initialize the error.

        Args:
            robots_url: The oversized document.
            limit: Byte ceiling that was exceeded.
        """
        self.robots_url = robots_url
        self.limit = limit
        super().__init__(f"robots.txt exceeds {limit} bytes: {robots_url}")


class RobotsFetchError(RobotsError):
    """Raised when robots.txt cannot be retrieved (network error or 5xx)."""

    def __init__(
        self, robots_url: str, message: str, status_code: int | None = None
    ) -> None:
        """Initialize the error.

        Args:
            robots_url: The document that failed.
            message: Failure description.
            status_code: HTTP status when the server answered.
        """
        self.robots_url = robots_url
        self.status_code = status_code
        super().__init__(f"Failed to fetch {robots_url}: {message}")


# ===== HTTP exchange =====


class FetchTimeoutError(FetchError):
    """Raised when a fetch exceeds its wall-clock budget."""

    def __init__(self, url: str, timeout_ms: int) -> None:
        """Initialize the error.

        Args:
            url: URL being fetched.
            timeout_ms: Budget that expired.
        """
        self.url = url
        self.timeout_ms = timeout_ms
        super().__init__(f"Fetch timed out after {timeout_ms}ms: {url}")


class FetchTooLargeError(FetchError):
    """Raised when a response body exceeds the byte ceiling."""

    def __init__(self, url: str, limit: int, size: int | None = None) -> None:
        """Initialize the error.

        Args:
            url: URL being fetched.
            limit: Byte ceiling.
            size: Declared or observed size, when known.
        """
        self.url = url
        self.limit = limit
        self.size = size
        if size is None:
            super().__init__(f"Response exceeds {limit} bytes: {url}")
        else:
            super().__init__(f"Response size {size} exceeds limit {limit}: {url}")


class HttpStatusError(FetchError):
    """Raised for any non-2xx final response."""

    def __init__(self, url: str, status_code: int) -> None:
        """Initialize the error.

        Args:
            url: URL being fetched.
            status_code: Final HTTP status.
        """
        self.url = url
        self.status_code = status_code
        super().__init__(f"HTTP status {status_code}: {url}")


class TooManyRedirectsError(FetchError):
    """Raised when the redirect chain exceeds the configured ceiling."""

    def __init__(self, url: str, max_redirects: int) -> None:
        """Initialize the error.

        Args:
            url: URL being fetched.
            max_redirects: Ceiling that was exceeded.
        """
        self.url = url
        self.max_redirects = max_redirects
        super().__init__(f"Exceeded {max_redirects} redirects: {url}")


class NetworkError(FetchError):
    """Raised for transport failures (connect, TLS, protocol)."""

    def __init__(self, url: str, message: str) -> None:
        """Initialize the error.

        Args:
            url: URL being fetched.
            message: Transport error text.
        """
        self.url = url
        super().__init__(f"Network error for {url}: {message}")
