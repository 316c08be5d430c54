"""Cache key derivation.

Keys are content-addressed: a deterministic SHA-256 over the inputs that
define a cached artifact. The snapshot key format is fixed so that any
other implementation sharing the database derives identical keys.
"""

import hashlib
import json
import re
from collections.abc import Mapping
from typing import Any


_HEX_DIGEST_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def compute_cache_key(url: str, vary: str, mode: str) -> str:
    """Compute the snapshot cache key.

    The key is hex(SHA256(url || "\\n" || vary || "\\n" || mode)). No
    normalization happens here; callers pass an already canonical URL.

    Args:
        url: Canonical URL.
        vary: Request headers that change the representation (the Accept
            override), or an empty string.
        mode: Fetch mode, "raw" or "readable".

    Returns:
        64-character lowercase hex digest.

    Examples:
        >>> len(compute_cache_key("https://example.com/", "", "readable"))
        64
    """
    content = f"{url}\n{vary}\n{mode}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def compute_search_key(query: Mapping[str, Any]) -> str:
    """Compute the search cache key for a query.

    Parameters are serialized as compact JSON with sorted keys, so the
    order in which a caller builds the query does not matter.

    Args:
        query: Search parameters.

    Returns:
        64-character lowercase hex digest.
    """
    content = json.dumps(query, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def is_valid_cache_key(value: str) -> bool:
    """Check that a value looks like a cache key.

    Args:
        value: Candidate key.

    Returns:
        True for a 64-character lowercase hex string.
    """
    return bool(_HEX_DIGEST_PATTERN.match(value))
