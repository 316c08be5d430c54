"""Unit tests for URL canonicalization."""

import pytest

from src.fetch.errors import InvalidUrlError, InvalidUrlKind
from src.fetch.url import CanonicalUrl, canonicalize


class TestCanonicalize:
    """Tests for canonicalize."""

    def test_defaults_scheme_to_https(self) -> None:
        """Test a bare host gets https and a root path."""
        assert str(canonicalize("example.com")) == "https://example.com/"

    def test_lowercases_scheme_and_host(self) -> None:
        """Test scheme and host are lowercased but the path is not."""
        result = canonicalize("HTTP://Example.COM/Path/To")

        assert result.scheme == "http"
        assert result.host == "example.com"
        assert result.path == "/Path/To"

    def test_strips_whitespace(self) -> None:
        """Test surrounding whitespace is ignored."""
        assert str(canonicalize("  https://example.com/a \n")) == "https://example.com/a"

    def test_drops_fragment_keeps_query(self) -> None:
        """Test the fragment is dropped and the query kept verbatim."""
        result = canonicalize("https://example.com/a?b=2&a=1#frag")

        assert str(result) == "https://example.com/a?b=2&a=1"
        assert result.query == "b=2&a=1"

    def test_drops_default_port(self) -> None:
        """Test default ports are removed."""
        assert canonicalize("https://example.com:443/").port is None
        assert canonicalize("http://example.com:80/").port is None
        assert canonicalize("http://example.com:80/").effective_port == 80

    def test_keeps_explicit_port(self) -> None:
        """Test non-default ports are kept."""
        result = canonicalize("https://example.com:8443/x")

        assert result.port == 8443
        assert result.origin == "https://example.com:8443"
        assert result.effective_port == 8443

    def test_host_with_port_without_scheme(self) -> None:
        """Test host:port input is not mistaken for a scheme."""
        result = canonicalize("localhost:8080/path")

        assert result.scheme == "https"
        assert result.host == "localhost"
        assert result.port == 8080

    def test_idna_encodes_unicode_host(self) -> None:
        """Test non-ASCII hosts are IDNA-encoded."""
        result = canonicalize("https://bücher.example/")

        assert result.host == "xn--bcher-kva.example"

    def test_ipv6_literal(self) -> None:
        """Test IPv6 hosts are compressed and re-bracketed."""
        result = canonicalize("http://[2001:DB8:0:0::1]:8080/")

        assert result.host == "2001:db8::1"
        assert result.netloc == "[2001:db8::1]:8080"

    def test_keeps_userinfo(self) -> None:
        """Test credentials survive canonicalization."""
        result = canonicalize("https://user:pw@example.com/")

        assert result.userinfo == "user:pw"
        assert str(result) == "https://user:pw@example.com/"
        assert result.origin == "https://example.com"

    def test_idempotent(self) -> None:
        """Test canonicalizing a canonical URL is a no-op."""
        first = str(canonicalize("Example.com:443/a?x=1#y"))

        assert str(canonicalize(first)) == first

    def test_returns_canonical_url(self) -> None:
        """Test the return type."""
        assert isinstance(canonicalize("example.com"), CanonicalUrl)


class TestCanonicalizeErrors:
    """Tests for rejected inputs."""

    @pytest.mark.parametrize("value", ["", "   ", "\t\n"])
    def test_empty(self, value: str) -> None:
        """Test empty input is rejected."""
        with pytest.raises(InvalidUrlError) as exc_info:
            canonicalize(value)

        assert exc_info.value.kind == InvalidUrlKind.EMPTY

    @pytest.mark.parametrize(
        "value",
        [
            "ftp://example.com/file",
            "file:///etc/passwd",
            "javascript:alert(1)",
            "data:text/html,hi",
            "mailto:someone@example.com",
        ],
    )
    def test_unsupported_scheme(self, value: str) -> None:
        """Test non-http(s) schemes are rejected."""
        with pytest.raises(InvalidUrlError) as exc_info:
            canonicalize(value)

        assert exc_info.value.kind == InvalidUrlKind.UNSUPPORTED_SCHEME

    def test_bad_port(self) -> None:
        """Test an out-of-range port is invalid."""
        with pytest.raises(InvalidUrlError) as exc_info:
            canonicalize("https://example.com:99999/")

        assert exc_info.value.kind == InvalidUrlKind.INVALID

    def test_missing_host(self) -> None:
        """Test a URL without a host is invalid."""
        with pytest.raises(InvalidUrlError) as exc_info:
            canonicalize("https:///path")

        assert exc_info.value.kind == InvalidUrlKind.INVALID

    def test_bad_host_characters(self) -> None:
        """Test hosts with illegal characters are invalid."""
        with pytest.raises(InvalidUrlError):
            canonicalize("https://exa mple.com/")
