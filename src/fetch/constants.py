"""Constants for the safe fetch layer.

Centralizes limits, defaults, and status boundaries shared by the
canonicalizer, the SSRF guard, the robots cache, and the fetch client.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_CLIENT_ERROR_MIN = 400
HTTP_STATUS_CLIENT_ERROR_MAX = 500

# Fetch defaults
DEFAULT_USER_AGENT = "safefetch/0.1"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5 MiB
MAX_MAX_BYTES = 50 * 1024 * 1024  # 50 MiB
DEFAULT_TIMEOUT_MS = 20_000
MIN_TIMEOUT_MS = 100
MAX_TIMEOUT_MS = 300_000
DEFAULT_MAX_REDIRECTS = 5
DEFAULT_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# Chunk size for streaming reads
DEFAULT_CHUNK_SIZE = 8192

# URL canonicalization
DEFAULT_SCHEME = "https"
ALLOWED_SCHEMES = frozenset({"http", "https"})
DEFAULT_PORTS = {"http": 80, "https": 443}

# Second-line scheme denylist applied by the SSRF guard
DENIED_SCHEMES = frozenset(
    {
        "file",
        "ftp",
        "data",
        "javascript",
        "chrome",
        "about",
        "blob",
        "ws",
        "wss",
    }
)

# robots.txt handling
ROBOTS_TTL_SECONDS = 24 * 60 * 60
ROBOTS_MAX_BYTES = 1024 * 1024  # 1 MiB
ROBOTS_TIMEOUT_SECONDS = 10.0
ROBOTS_PATH = "/robots.txt"
