"""Error mapping for open and batch results.

Maps exceptions from the fetch, extract, and store layers to
machine-readable error codes. Extend by adding new mappings; the first
matching entry wins, so subclasses are listed before their bases.
"""

from src.extract.errors import ExtractionError
from src.fetch.errors import (
    DnsResolutionError,
    FetchTimeoutError,
    FetchTooLargeError,
    HttpStatusError,
    InvalidUrlError,
    NetworkError,
    RobotsError,
    SsrfError,
    TooManyRedirectsError,
)
from src.store.errors import CacheError, CacheMissError
from src.web.errors import InvalidInputError, RenderDisabledError
from src.web.models import ErrorCode, ErrorInfo


_ERROR_CODES: tuple[tuple[type[BaseException], ErrorCode], ...] = (
    (InvalidInputError, ErrorCode.INVALID_INPUT),
    (RenderDisabledError, ErrorCode.RENDER_DISABLED),
    (InvalidUrlError, ErrorCode.INVALID_URL),
    (DnsResolutionError, ErrorCode.DNS_ERROR),
    (SsrfError, ErrorCode.SSRF_BLOCKED),
    (RobotsError, ErrorCode.ROBOTS_DISALLOWED),
    (FetchTimeoutError, ErrorCode.FETCH_TIMEOUT),
    (FetchTooLargeError, ErrorCode.FETCH_TOO_LARGE),
    (HttpStatusError, ErrorCode.HTTP_ERROR),
    (TooManyRedirectsError, ErrorCode.HTTP_ERROR),
    (NetworkError, ErrorCode.HTTP_ERROR),
    (ExtractionError, ErrorCode.EXTRACT_FAILED),
    (CacheMissError, ErrorCode.CACHE_MISS),
    (CacheError, ErrorCode.CACHE_ERROR),
)


def map_error_to_code(error: BaseException) -> ErrorCode:
    """Map an exception to its error code.

    Args:
        error: Exception raised by a service call.

    Returns:
        Matching error code, or INTERNAL for anything unrecognized.
    """
    for error_type, code in _ERROR_CODES:
        if isinstance(error, error_type):
            return code
    return ErrorCode.INTERNAL


def to_error_info(error: BaseException) -> ErrorInfo:
    """Build the caller-facing description of an exception.

    Args:
        error: Exception raised by a service call.

    Returns:
        Error code, message, and upstream status where one applies.
    """
    status_code = error.status_code if isinstance(error, HttpStatusError) else None
    return ErrorInfo(
        code=map_error_to_code(error),
        message=str(error) or type(error).__name__,
        status_code=status_code,
    )
