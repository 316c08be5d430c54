"""Safe HTTP fetch layer.

This module turns arbitrary URL strings into bounded, policy-compliant
HTTP responses:
- URL canonicalization
- SSRF defense at connection time (every resolved address is checked)
- robots.txt compliance with a per-origin TTL cache
- Redirect, response size, and wall-clock limits
- Header and credential redaction for logs and storage
"""

from src.fetch.client import FetchClient
from src.fetch.config import FetchConfig
from src.fetch.errors import (
    BlockedDomainError,
    BlockedIpError,
    BlockedSchemeError,
    DnsResolutionError,
    FetchError,
    FetchTimeoutError,
    FetchTooLargeError,
    HttpStatusError,
    InvalidUrlError,
    InvalidUrlKind,
    NetworkError,
    RobotsDisallowedError,
    RobotsError,
    RobotsFetchError,
    RobotsTooLargeError,
    SsrfError,
    TooManyRedirectsError,
)
from src.fetch.metrics import FetchMetrics
from src.fetch.models import FetchResponse, decode_body
from src.fetch.policy import DomainPolicy
from src.fetch.redact import redact_headers, redact_url_credentials
from src.fetch.robots import RobotsCache
from src.fetch.ssrf import SsrfGuard, build_guarded_transport, is_blocked_ip
from src.fetch.url import CanonicalUrl, canonicalize


__all__ = [
    # Client
    "FetchClient",
    "FetchConfig",
    "FetchResponse",
    "decode_body",
    # URL
    "CanonicalUrl",
    "canonicalize",
    # Safety
    "SsrfGuard",
    "build_guarded_transport",
    "is_blocked_ip",
    "DomainPolicy",
    "RobotsCache",
    # Errors
    "FetchError",
    "InvalidUrlError",
    "InvalidUrlKind",
    "SsrfError",
    "BlockedSchemeError",
    "BlockedIpError",
    "BlockedDomainError",
    "DnsResolutionError",
    "RobotsError",
    "RobotsDisallowedError",
    "RobotsTooLargeError",
    "RobotsFetchError",
    "FetchTimeoutError",
    "FetchTooLargeError",
    "HttpStatusError",
    "TooManyRedirectsError",
    "NetworkError",
    # Metrics
    "FetchMetrics",
    # Redaction
    "redact_headers",
    "redact_url_credentials",
]
