"""Open and batch services over the safe fetch layer and the cache store.

This module provides:
- WebOpener: single-URL read-through/write-through open
- BatchOrchestrator: bounded-concurrency batches with fail-fast
- Cache maintenance: lookup by hash, purge, and stats
- extract_html: extraction from caller-supplied HTML, no network
- ErrorCode mapping for every failure surfaced to callers
"""

from src.web.batch import MAX_CONCURRENCY, BatchOrchestrator
from src.web.cache_ops import PurgeResult, cache_stats, get_cached, purge_cache
from src.web.error_mapper import map_error_to_code, to_error_info
from src.web.errors import InvalidInputError, RenderDisabledError
from src.web.extract_service import STRATEGIES, extract_html
from src.web.models import (
    BatchItem,
    BatchRequest,
    BatchResult,
    BatchStatus,
    BatchSummary,
    ErrorCode,
    ErrorInfo,
    ExtractRequest,
    ExtractResult,
    OpenDebug,
    OpenRequest,
    OpenResult,
)
from src.web.opener import WebOpener, resolve_mode


__all__ = [
    # Services
    "WebOpener",
    "BatchOrchestrator",
    "MAX_CONCURRENCY",
    "resolve_mode",
    "extract_html",
    "STRATEGIES",
    # Cache operations
    "PurgeResult",
    "cache_stats",
    "get_cached",
    "purge_cache",
    # Models
    "OpenRequest",
    "OpenResult",
    "OpenDebug",
    "BatchRequest",
    "BatchResult",
    "BatchItem",
    "BatchStatus",
    "BatchSummary",
    "ErrorCode",
    "ErrorInfo",
    "ExtractRequest",
    "ExtractResult",
    # Errors
    "InvalidInputError",
    "RenderDisabledError",
    "map_error_to_code",
    "to_error_info",
]
