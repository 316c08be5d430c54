"""URL canonicalization for fetch requests and cache keys.

Turns arbitrary user input into a comparable absolute URL: whitespace is
trimmed, a missing scheme defaults to https, the host is lowercased (and
IDNA-encoded), default ports and fragments are dropped, and the query
string is kept exactly as given.
"""

import ipaddress
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from src.fetch.constants import ALLOWED_SCHEMES, DEFAULT_PORTS, DEFAULT_SCHEME
from src.fetch.errors import InvalidUrlError, InvalidUrlKind


# "mailto:x", "javascript:x" etc. A digit after the colon is a port instead.
_BARE_SCHEME_PATTERN = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.\-]*):(?!\d)")

_HOST_PATTERN = re.compile(r"^[a-z0-9._\-]+$")


@dataclass(frozen=True)
class CanonicalUrl:
    """A canonicalized http(s) URL.

    Attributes:
        scheme: Lowercase scheme, http or https.
        host: Lowercase ASCII host (IPv6 literals without brackets).
        port: Explicit port, or None when it is the scheme default.
        path: Path component, never empty.
        query: Raw query string without the leading "?".
        userinfo: Raw "user[:password]" component, empty if absent.
    """

    scheme: str
    host: str
    port: int | None
    path: str
    query: str = ""
    userinfo: str = ""

    @property
    def netloc(self) -> str:
        """Host and optional port, without userinfo."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is not None:
            return f"{host}:{self.port}"
        return host

    @property
    def origin(self) -> str:
        """The scheme://host[:port] origin of this URL."""
        return f"{self.scheme}://{self.netloc}"

    @property
    def path_with_query(self) -> str:
        """Path plus query string, as sent on the request line."""
        if self.query:
            return f"{self.path}?{self.query}"
        return self.path

    @property
    def effective_port(self) -> int:
        """Port that a connection to this URL uses."""
        return self.port if self.port is not None else DEFAULT_PORTS[self.scheme]

    def __str__(self) -> str:
        credentials = f"{self.userinfo}@" if self.userinfo else ""
        return f"{self.scheme}://{credentials}{self.netloc}{self.path_with_query}"


def canonicalize(raw: str) -> CanonicalUrl:
    """Canonicalize a user-supplied URL string.

    Args:
        raw: Arbitrary input, e.g. "  EXAMPLE.com/path#top ".

    Returns:
        The canonical URL.

    Raises:
        InvalidUrlError: If the input is empty, unparseable, or uses a
            scheme other than http/https.

    Examples:
        >>> str(canonicalize("EXAMPLE.com"))
        'https://example.com/'

        >>> str(canonicalize("https://example.com/a?b=2&a=1#frag"))
        'https://example.com/a?b=2&a=1'
    """
    value = raw.strip()
    if not value:
        raise InvalidUrlError(InvalidUrlKind.EMPTY, raw)

    if "://" not in value:
        bare_scheme = _BARE_SCHEME_PATTERN.match(value)
        if bare_scheme and "." not in bare_scheme.group(1):
            raise InvalidUrlError(
                InvalidUrlKind.UNSUPPORTED_SCHEME, bare_scheme.group(1).lower()
            )
        value = f"{DEFAULT_SCHEME}://{value}"

    try:
        parts = urlsplit(value)
        port = parts.port
    except ValueError as e:
        raise InvalidUrlError(InvalidUrlKind.INVALID, raw, str(e)) from e

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise InvalidUrlError(InvalidUrlKind.UNSUPPORTED_SCHEME, scheme or raw)

    host = _normalize_host(parts.hostname or "", raw)

    if port == DEFAULT_PORTS[scheme]:
        port = None

    userinfo = ""
    if "@" in parts.netloc:
        userinfo = parts.netloc.rsplit("@", 1)[0]

    return CanonicalUrl(
        scheme=scheme,
        host=host,
        port=port,
        path=parts.path or "/",
        query=parts.query,
        userinfo=userinfo,
    )


def _normalize_host(hostname: str, raw: str) -> str:
    """Lowercase and validate a host, IDNA-encoding non-ASCII labels.

    Args:
        hostname: Host as parsed by urlsplit (already lowercased).
        raw: Original input, for error reporting.

    Returns:
        ASCII host suitable for DNS lookup.

    Raises:
        InvalidUrlError: If the host is missing or malformed.
    """
    if not hostname:
        raise InvalidUrlError(InvalidUrlKind.INVALID, raw, "missing host")

    if ":" in hostname:
        try:
            return ipaddress.IPv6Address(hostname).compressed
        except ValueError as e:
            raise InvalidUrlError(InvalidUrlKind.INVALID, raw, str(e)) from e

    host = hostname.lower()
    if not host.isascii():
        try:
            host = host.encode("idna").decode("ascii")
        except UnicodeError as e:
            raise InvalidUrlError(InvalidUrlKind.INVALID, raw, "bad IDNA host") from e

    if not _HOST_PATTERN.match(host):
        raise InvalidUrlError(InvalidUrlKind.INVALID, raw, "bad host characters")

    return host
