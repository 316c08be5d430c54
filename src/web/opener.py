"""Single-URL open service with read-through and write-through caching.

Opening a URL canonicalizes it, derives the content-addressed key, and
serves a fresh snapshot when one exists. Otherwise the page is fetched
through the safe pipeline, extracted (readable mode) or kept as bytes (raw
mode), and written back before being returned.
"""

import asyncio
import json
import time
from datetime import datetime, timedelta

import structlog

from src.extract.models import ExtractConfig, Link
from src.extract.normalize import normalize_markdown
from src.extract.protocols import Extractor
from src.extract.trafilatura_extractor import TrafilaturaExtractor
from src.fetch.client import FetchClient
from src.fetch.models import FetchResponse, decode_body
from src.fetch.redact import redact_url_credentials, redacted_headers_json
from src.fetch.url import canonicalize
from src.store.hash import compute_cache_key
from src.store.models import Snapshot, SnapshotMode, utc_now
from src.store.store import CacheStore
from src.web.errors import InvalidInputError, RenderDisabledError
from src.web.models import OpenDebug, OpenRequest, OpenResult


logger = structlog.get_logger()

RENDERED_MODE = "rendered"


def resolve_mode(mode: str) -> SnapshotMode:
    """Validate a requested mode.

    Args:
        mode: Requested mode name.

    Returns:
        The snapshot mode to produce.

    Raises:
        RenderDisabledError: For rendered mode.
        InvalidInputError: For any unknown mode.
    """
    normalized = mode.strip().lower()
    if normalized == RENDERED_MODE:
        raise RenderDisabledError
    try:
        return SnapshotMode(normalized)
    except ValueError:
        msg = f"unsupported mode: {mode!r}"
        raise InvalidInputError(msg) from None


def _links_from_json(links_json: str | None) -> list[Link]:
    if not links_json:
        return []
    return [Link.model_validate(item) for item in json.loads(links_json)]


class WebOpener:
    """Opens URLs through the cache and the safe fetch pipeline."""

    def __init__(
        self,
        fetcher: FetchClient,
        store: CacheStore,
        extractor: Extractor | None = None,
        *,
        default_ttl_seconds: int | None = None,
        raw_storage_limit: int | None = None,
    ) -> None:
        """Initialize the opener.

        Args:
            fetcher: Safe fetch client.
            store: Connected cache store.
            extractor: Readable-mode extractor (trafilatura by default).
            default_ttl_seconds: Snapshot lifetime when a request sets none;
                None stores snapshots without expiry.
            raw_storage_limit: Largest raw body kept in a snapshot; longer
                bodies are stored cut and flagged raw_truncated.
        """
        self._fetcher = fetcher
        self._store = store
        self._extractor = extractor or TrafilaturaExtractor()
        self._default_ttl_seconds = default_ttl_seconds
        self._raw_storage_limit = raw_storage_limit
        self._log = logger.bind(component="opener")

    async def open(self, request: OpenRequest) -> OpenResult:
        """Open one URL.

        Args:
            request: Open parameters.

        Returns:
            The served snapshot, flagged from_cache when no fetch happened.

        Raises:
            InvalidInputError: If the URL is blank or the mode unknown.
            RenderDisabledError: If rendered mode is requested.
            FetchError: If the URL is invalid, unsafe, or the fetch fails.
            ExtractionError: If readable extraction fails.
            CacheError: If the store fails.
        """
        if not request.url.strip():
            msg = "url cannot be empty"
            raise InvalidInputError(msg)

        mode = resolve_mode(request.mode)
        canonical = str(canonicalize(request.url))
        key = compute_cache_key(canonical, request.accept or "", mode.value)
        log = self._log.bind(url=redact_url_credentials(canonical), mode=mode.value)

        if not request.force_refresh:
            cached = await self._store.get_fresh(key)
            if cached is not None:
                log.debug("open_cache_hit", hash=key)
                return self._to_result(cached, from_cache=True, request=request)

        response = await self._fetcher.fetch(canonical, accept=request.accept)
        snapshot = await self._build_snapshot(key, canonical, mode, response, request)
        await self._store.upsert(snapshot)

        log.info(
            "open_complete",
            hash=key,
            final_url=redact_url_credentials(response.final_url),
            fetch_ms=snapshot.fetch_ms,
            extract_ms=snapshot.extract_ms,
        )
        return self._to_result(snapshot, from_cache=False, request=request)

    async def _build_snapshot(
        self,
        key: str,
        url: str,
        mode: SnapshotMode,
        response: FetchResponse,
        request: OpenRequest,
    ) -> Snapshot:
        """Turn a fetched response into a snapshot ready to store."""
        fetched_at = utc_now()
        ttl_seconds = request.ttl_seconds or self._default_ttl_seconds
        expires_at = (
            fetched_at + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        )

        raw_bytes = response.body
        raw_truncated = False
        if (
            self._raw_storage_limit is not None
            and len(raw_bytes) > self._raw_storage_limit
        ):
            raw_bytes = raw_bytes[: self._raw_storage_limit]
            raw_truncated = True

        fields: dict[str, object] = {}
        if mode == SnapshotMode.READABLE:
            fields = await self._extract(response, request.extract, fetched_at)

        return Snapshot(
            hash=key,
            url=redact_url_credentials(url),
            final_url=redact_url_credentials(response.final_url),
            mode=mode,
            content_type=response.content_type,
            status_code=response.status_code,
            fetched_at=fetched_at,
            expires_at=expires_at,
            etag=response.etag,
            last_modified=response.last_modified,
            raw_bytes=raw_bytes,
            raw_truncated=raw_truncated,
            headers_json=redacted_headers_json(response.headers),
            fetch_ms=response.fetch_ms,
            **fields,
        )

    async def _extract(
        self,
        response: FetchResponse,
        config: ExtractConfig,
        fetched_at: datetime,
    ) -> dict[str, object]:
        """Run the extractor off the event loop and collect snapshot fields."""
        start = time.perf_counter()
        result = await asyncio.to_thread(
            self._extractor.extract,
            response.text(),
            redact_url_credentials(response.final_url),
            config,
        )
        extract_ms = int((time.perf_counter() - start) * 1000)

        return {
            "title": result.title,
            "markdown": normalize_markdown(
                result, redact_url_credentials(response.final_url), fetched_at
            ),
            "text": result.text,
            "links_json": json.dumps([link.model_dump() for link in result.links]),
            "extractor_name": result.extractor_name,
            "extractor_version": result.extractor_version,
            "extract_cfg_json": config.model_dump_json(),
            "extract_ms": extract_ms,
        }

    def _to_result(
        self, snapshot: Snapshot, *, from_cache: bool, request: OpenRequest
    ) -> OpenResult:
        """Build the served view of a snapshot."""
        links = _links_from_json(snapshot.links_json)
        raw = None
        if snapshot.mode == SnapshotMode.RAW and snapshot.raw_bytes is not None:
            raw = decode_body(snapshot.raw_bytes, snapshot.content_type)

        debug = None
        if request.include_debug:
            debug = OpenDebug(
                char_count=len(snapshot.markdown or raw or ""),
                links_count=len(links),
                fetch_ms=snapshot.fetch_ms,
                extraction_time_ms=snapshot.extract_ms,
            )

        return OpenResult(
            url=snapshot.url,
            final_url=snapshot.final_url,
            hash=snapshot.hash,
            mode=snapshot.mode.value,
            content_type=snapshot.content_type,
            status_code=snapshot.status_code,
            fetched_at=snapshot.fetched_at,
            title=snapshot.title,
            markdown=snapshot.markdown,
            raw=raw,
            links=links,
            from_cache=from_cache,
            debug=debug,
        )
