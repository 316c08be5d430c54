"""Bounded-concurrency batch orchestration.

One task is spawned per URL; a semaphore caps how many hold a slot at
once. Each unit's failure is recorded in that unit's item and never
aborts its siblings, unless fail_fast is set, in which case the first
failure stops the batch and units that never started have no item.
"""

import asyncio
import time
from typing import Protocol

import structlog

from src.fetch.redact import redact_url_credentials
from src.web.error_mapper import to_error_info
from src.web.errors import InvalidInputError
from src.web.models import (
    BatchItem,
    BatchRequest,
    BatchResult,
    BatchStatus,
    BatchSummary,
    ErrorCode,
    OpenRequest,
    OpenResult,
)
from src.web.opener import resolve_mode


logger = structlog.get_logger()

# Hard ceiling on concurrent units regardless of the requested value
MAX_CONCURRENCY = 16


class Opener(Protocol):
    """Anything that can open a single URL."""

    async def open(self, request: OpenRequest) -> OpenResult:
        """Open one URL."""
        ...


def _summarize(items: list[BatchItem], requested: int) -> BatchSummary:
    """Count outcomes over the returned items."""
    by_status = {status: 0 for status in BatchStatus}
    for item in items:
        by_status[item.status] += 1
    return BatchSummary(
        total=len(items),
        succeeded=by_status[BatchStatus.SUCCESS],
        cached=by_status[BatchStatus.CACHED],
        failed=by_status[BatchStatus.FAILED],
        cancelled=requested - len(items),
    )


class BatchOrchestrator:
    """Runs many opens concurrently under a slot limit."""

    def __init__(self, opener: Opener) -> None:
        """Initialize the orchestrator.

        Args:
            opener: Single-URL open service.
        """
        self._opener = opener
        self._log = logger.bind(component="batch")

    async def run(self, request: BatchRequest) -> BatchResult:
        """Run a batch.

        Args:
            request: Batch parameters.

        Returns:
            Completed items in input order and their summary.

        Raises:
            InvalidInputError: If urls is empty, max_concurrency is below 1,
                or the mode is unknown. Raised before any I/O.
            RenderDisabledError: If rendered mode is requested.
        """
        if not request.urls:
            msg = "urls cannot be empty"
            raise InvalidInputError(msg)
        if request.max_concurrency < 1:
            msg = f"max_concurrency must be at least 1, got {request.max_concurrency}"
            raise InvalidInputError(msg)
        resolve_mode(request.mode)

        slots = min(request.max_concurrency, MAX_CONCURRENCY)
        semaphore = asyncio.Semaphore(slots)
        stop = asyncio.Event()
        outcomes: list[BatchItem | None] = [None] * len(request.urls)
        start = time.perf_counter()

        self._log.info(
            "batch_started",
            urls=len(request.urls),
            slots=slots,
            fail_fast=request.fail_fast,
        )

        async def run_unit(index: int, url: str) -> None:
            async with semaphore:
                if stop.is_set():
                    return
                item = await self._open_one(url, request)
                outcomes[index] = item
                if item.status == BatchStatus.FAILED and request.fail_fast:
                    stop.set()

        pending = {
            asyncio.create_task(run_unit(index, url))
            for index, url in enumerate(request.urls)
        }

        try:
            while pending:
                _, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                if stop.is_set():
                    break
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        items = [item for item in outcomes if item is not None]
        summary = _summarize(items, len(request.urls))

        self._log.info(
            "batch_complete",
            total=summary.total,
            succeeded=summary.succeeded,
            cached=summary.cached,
            failed=summary.failed,
            cancelled=summary.cancelled,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return BatchResult(items=items, summary=summary)

    async def _open_one(self, url: str, request: BatchRequest) -> BatchItem:
        """Open one URL and capture its outcome as an item."""
        open_request = OpenRequest(
            url=url,
            mode=request.mode,
            accept=request.accept,
            force_refresh=request.force_refresh,
            ttl_seconds=request.ttl_seconds,
            extract=request.extract,
        )

        try:
            result = await self._opener.open(open_request)
        except Exception as e:  # noqa: BLE001
            error = to_error_info(e)
            log_method = (
                self._log.error if error.code == ErrorCode.INTERNAL else self._log.info
            )
            log_method(
                "batch_item_failed",
                url=redact_url_credentials(url),
                code=error.code.value,
                error=error.message,
                exc_info=error.code == ErrorCode.INTERNAL,
            )
            return BatchItem(url=url, status=BatchStatus.FAILED, error=error)

        status = BatchStatus.CACHED if result.from_cache else BatchStatus.SUCCESS
        return BatchItem(url=url, status=status, result=result)
