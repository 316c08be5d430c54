"""Operator domain allow/deny policy."""

import structlog

from src.fetch.errors import BlockedDomainError


logger = structlog.get_logger()


def _matches(host: str, domain: str) -> bool:
    """Check whether host equals domain or is a subdomain of it."""
    return host == domain or host.endswith(f".{domain}")


def _normalize_domains(domains: list[str] | None) -> list[str]:
    """Lowercase domains and drop blanks and surrounding dots."""
    return [d.strip().lower().strip(".") for d in domains or [] if d.strip()]


class DomainPolicy:
    """Allow/deny lists of domains, matched on the host and its parents.

    When an allowlist is configured only listed domains may be fetched and
    the denylist is ignored.
    """

    def __init__(
        self,
        allowlist: list[str] | None = None,
        denylist: list[str] | None = None,
    ) -> None:
        """Initialize the policy.

        Args:
            allowlist: Domains that may be fetched (empty = all).
            denylist: Domains that may never be fetched.
        """
        self._allowlist = _normalize_domains(allowlist)
        self._denylist = _normalize_domains(denylist)
        self._log = logger.bind(component="domain_policy")

        if self._allowlist and self._denylist:
            self._log.warning(
                "domain_lists_conflict",
                message="Both allowlist and denylist set; allowlist takes precedence",
            )

    @property
    def is_open(self) -> bool:
        """True when no list restricts fetching."""
        return not self._allowlist and not self._denylist

    def check(self, host: str) -> None:
        """Reject a host that the policy does not permit.

        Args:
            host: Lowercase host.

        Raises:
            BlockedDomainError: If the host is not permitted.
        """
        host = host.lower().rstrip(".")

        if self._allowlist:
            if not any(_matches(host, d) for d in self._allowlist):
                raise BlockedDomainError(host, "not in allowlist")
            return

        for domain in self._denylist:
            if _matches(host, domain):
                raise BlockedDomainError(host, f"denylisted ({domain})")
