"""SSRF defense applied at connection time.

The guard classifies resolved addresses and refuses anything outside
public address space. It is wired into httpx through a custom httpcore
network backend, so the address that is checked is the address that is
dialed: every TCP connect (first request, each redirect hop, robots.txt
fetches) resolves the hostname through the guard and connects to the
validated IP literal. TLS still uses the original hostname for SNI and
certificate verification.
"""

import asyncio
import ipaddress
import socket
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import httpcore
import httpx
import structlog

from src.fetch.constants import DENIED_SCHEMES
from src.fetch.errors import BlockedIpError, BlockedSchemeError, DnsResolutionError


logger = structlog.get_logger()

IpAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
Resolver = Callable[[str, int], Awaitable[list[str]]]

# Ranges not covered by the ipaddress is_* predicates
_EXTRA_BLOCKED_NETWORKS = (
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("100.64.0.0/10"),
    ipaddress.ip_network("255.255.255.255/32"),
    ipaddress.ip_network("fc00::/7"),
    ipaddress.ip_network("fe80::/10"),
)


def is_blocked_ip(ip: IpAddress | str) -> bool:
    """Check whether an address lies outside public address space.

    Blocks loopback, RFC1918 private, link-local, multicast, broadcast,
    unspecified, 0.0.0.0/8, reserved, IPv6 unique-local and link-local.
    IPv4-mapped IPv6 addresses are judged by their embedded IPv4 address.

    Args:
        ip: Address object or string (IPv6 scope suffixes are accepted).

    Returns:
        True if the address must not be contacted. Unparseable input is
        treated as blocked.
    """
    if isinstance(ip, str):
        try:
            addr: IpAddress = ipaddress.ip_address(ip)
        except ValueError:
            return True
    else:
        addr = ip

    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped

    if (
        addr.is_loopback
        or addr.is_private
        or addr.is_link_local
        or addr.is_multicast
        or addr.is_unspecified
        or addr.is_reserved
    ):
        return True

    return any(
        addr in network
        for network in _EXTRA_BLOCKED_NETWORKS
        if network.version == addr.version
    )


async def _system_resolver(host: str, port: int) -> list[str]:
    """Resolve a hostname with the event loop's getaddrinfo.

    Args:
        host: Hostname to resolve.
        port: Destination port.

    Returns:
        Unique addresses in resolver order.
    """
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    addresses: list[str] = []
    for *_, sockaddr in infos:
        address = str(sockaddr[0])
        if address not in addresses:
            addresses.append(address)
    return addresses


class SsrfGuard:
    """Decides whether a scheme or resolved address is safe to contact."""

    def __init__(self, resolver: Resolver | None = None) -> None:
        """Initialize the guard.

        Args:
            resolver: Async hostname resolver, defaults to getaddrinfo.
                Injected in tests to simulate hostile DNS answers.
        """
        self._resolver = resolver or _system_resolver
        self._log = logger.bind(component="ssrf")

    def check_scheme(self, scheme: str) -> None:
        """Reject schemes on the denylist.

        Args:
            scheme: URL scheme.

        Raises:
            BlockedSchemeError: If the scheme is denied.
        """
        if scheme.lower() in DENIED_SCHEMES:
            self._log.warning("ssrf_blocked_scheme", scheme=scheme)
            raise BlockedSchemeError(scheme)

    def validate_ip(self, ip: str, host: str | None = None) -> None:
        """Reject a non-public address.

        Args:
            ip: Resolved address.
            host: Hostname it was resolved from, for error context.

        Raises:
            BlockedIpError: If the address is blocked.
        """
        if is_blocked_ip(ip):
            self._log.warning("ssrf_blocked_ip", ip=ip, host=host)
            raise BlockedIpError(ip, host)

    async def resolve(self, host: str, port: int) -> list[str]:
        """Resolve a host and validate every answer.

        A single non-public answer rejects the host, so a record that
        mixes public and private addresses cannot be used to reach the
        private one.

        Args:
            host: Hostname or IP literal.
            port: Destination port.

        Returns:
            Validated addresses, in the order they should be tried.

        Raises:
            DnsResolutionError: If resolution fails or yields nothing.
            BlockedIpError: If any answer is non-public.
        """
        try:
            literal = ipaddress.ip_address(host)
        except ValueError:
            literal = None

        if literal is not None:
            self.validate_ip(str(literal), host)
            return [str(literal)]

        try:
            addresses = await self._resolver(host, port)
        except OSError as e:
            self._log.warning("dns_resolution_failed", host=host, error=str(e))
            raise DnsResolutionError(host, str(e)) from e

        if not addresses:
            raise DnsResolutionError(host, "no addresses returned")

        for address in addresses:
            self.validate_ip(address, host)

        self._log.debug("dns_resolved", host=host, addresses=addresses)
        return addresses


class GuardedNetworkBackend(httpcore.AsyncNetworkBackend):
    """httpcore network backend that dials only guard-approved addresses."""

    def __init__(
        self,
        guard: SsrfGuard,
        backend: httpcore.AsyncNetworkBackend,
    ) -> None:
        """Initialize the backend.

        Args:
            guard: Guard used to resolve and validate hosts.
            backend: Underlying backend that performs the actual I/O.
        """
        self._guard = guard
        self._backend = backend

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        """Resolve, validate, then connect to the first reachable address."""
        addresses = await self._guard.resolve(host, port)

        last_error: httpcore.ConnectError | None = None
        for address in addresses:
            try:
                return await self._backend.connect_tcp(
                    address,
                    port,
                    timeout=timeout,
                    local_address=local_address,
                    socket_options=socket_options,
                )
            except httpcore.ConnectError as e:
                last_error = e

        if last_error is None:
            raise DnsResolutionError(host, "no addresses to connect to")
        raise last_error

    async def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        """Unix sockets are local resources and never allowed."""
        raise BlockedSchemeError("unix")

    async def sleep(self, seconds: float) -> None:
        """Delegate to the wrapped backend."""
        await self._backend.sleep(seconds)


def build_guarded_transport(
    guard: SsrfGuard, **kwargs: Any
) -> httpx.AsyncHTTPTransport:
    """Create an httpx transport whose connections pass through the guard.

    Args:
        guard: Guard applied on every TCP connect.
        **kwargs: Passed to httpx.AsyncHTTPTransport.

    Returns:
        Transport for use with httpx.AsyncClient.
    """
    transport = httpx.AsyncHTTPTransport(**kwargs)
    # httpx builds its httpcore pool privately and exposes no backend hook.
    # Layout checked against httpx 0.27-0.28 and httpcore 1.x (pinned in
    # pyproject); any other layout fails closed instead of going unguarded.
    pool = getattr(transport, "_pool", None)
    backend = getattr(pool, "_network_backend", None)
    if not isinstance(pool, httpcore.AsyncConnectionPool) or not isinstance(
        backend, httpcore.AsyncNetworkBackend
    ):
        msg = "cannot install SSRF guard: unsupported httpx transport layout"
        raise TypeError(msg)
    pool._network_backend = GuardedNetworkBackend(guard, backend)  # noqa: SLF001
    return transport
