"""CLI commands for the safe fetch and cache service."""

import asyncio
import json
import logging
import sys
import uuid
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

import click
import structlog
from pydantic import ValidationError

from src.extract.errors import ExtractionError
from src.extract.models import ExtractConfig
from src.fetch.client import FetchClient
from src.fetch.errors import FetchError
from src.observability.logging import bind_run_context, configure_logging
from src.settings.app import AppSettings, get_settings
from src.store.errors import CacheError
from src.store.store import CacheStore
from src.web.batch import BatchOrchestrator
from src.web.cache_ops import cache_stats, get_cached, purge_cache
from src.web.error_mapper import to_error_info
from src.web.errors import InvalidInputError, RenderDisabledError
from src.web.extract_service import STRATEGIES, extract_html
from src.web.models import BatchRequest, ExtractRequest, OpenRequest
from src.web.opener import WebOpener


logger = structlog.get_logger()

T = TypeVar("T")

# Failures reported as a JSON error object with exit code 1
SERVICE_ERRORS = (
    FetchError,
    CacheError,
    ExtractionError,
    InvalidInputError,
    RenderDisabledError,
)

MODE_CHOICES = ["readable", "raw", "rendered"]


@dataclass
class Services:
    """Connected services for one command invocation."""

    store: CacheStore
    fetcher: FetchClient
    opener: WebOpener


def _load_settings(db_path: Path | None, verbose: bool) -> AppSettings:
    """Load settings and configure logging, exiting on invalid configuration."""
    try:
        settings = get_settings()
    except ValidationError as e:
        click.echo("Configuration validation failed:", err=True)
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"])
            click.echo(f"  - {location}: {error['msg']}", err=True)
        sys.exit(2)

    if db_path is not None:
        settings = settings.model_copy(update={"db_path": db_path})

    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)
    configure_logging(level=level, json_format=settings.log_json)
    bind_run_context(uuid.uuid4().hex[:12])
    return settings


@asynccontextmanager
async def _open_store(settings: AppSettings) -> AsyncIterator[CacheStore]:
    async with CacheStore(db_path=settings.db_path) as store:
        yield store


@asynccontextmanager
async def _open_services(settings: AppSettings) -> AsyncIterator[Services]:
    async with (
        _open_store(settings) as store,
        FetchClient(settings.to_fetch_config()) as fetcher,
    ):
        opener = WebOpener(
            fetcher, store, default_ttl_seconds=settings.default_ttl_seconds
        )
        yield Services(store=store, fetcher=fetcher, opener=opener)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, reporting service errors as JSON on stderr."""
    try:
        return asyncio.run(coro)
    except SERVICE_ERRORS as e:
        info = to_error_info(e)
        logger.info("command_failed", component="cli", code=info.code.value)
        click.echo(json.dumps({"error": info.model_dump(mode="json")}), err=True)
        sys.exit(1)


def _echo_json(payload: object) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _extract_config(char_threshold: int | None) -> ExtractConfig:
    if char_threshold is None:
        return ExtractConfig()
    return ExtractConfig(char_threshold=char_threshold)


# ===== Commands =====


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Safe URL fetcher with a content-addressed cache."""


db_option = click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to SQLite cache database (overrides SAFEFETCH_DB_PATH).",
)
verbose_option = click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose logging."
)


@cli.command("open")
@click.argument("url")
@click.option(
    "--mode", type=click.Choice(MODE_CHOICES), default="readable", show_default=True
)
@click.option("--accept", default=None, help="Accept header to send.")
@click.option("--force-refresh", is_flag=True, help="Bypass a fresh cached copy.")
@click.option("--ttl", "ttl_seconds", type=click.IntRange(min=1), default=None)
@click.option("--char-threshold", type=click.IntRange(min=0), default=None)
@click.option("--debug", "include_debug", is_flag=True, help="Include diagnostics.")
@db_option
@verbose_option
def open_command(
    url: str,
    mode: str,
    accept: str | None,
    force_refresh: bool,
    ttl_seconds: int | None,
    char_threshold: int | None,
    include_debug: bool,
    db_path: Path | None,
    verbose: bool,
) -> None:
    """Open a single URL through the cache."""
    settings = _load_settings(db_path, verbose)
    request = OpenRequest(
        url=url,
        mode=mode,
        accept=accept,
        force_refresh=force_refresh,
        ttl_seconds=ttl_seconds,
        extract=_extract_config(char_threshold),
        include_debug=include_debug,
    )

    async def run() -> dict[str, Any]:
        async with _open_services(settings) as services:
            result = await services.opener.open(request)
            return result.model_dump(mode="json")

    _echo_json(_run(run()))


@cli.command("batch")
@click.argument("urls", nargs=-1)
@click.option(
    "--file",
    "url_file",
    type=click.File("r"),
    default=None,
    help="Read URLs from a file, one per line.",
)
@click.option(
    "--mode", type=click.Choice(MODE_CHOICES), default="readable", show_default=True
)
@click.option("--concurrency", "max_concurrency", type=int, default=4, show_default=True)
@click.option("--fail-fast", is_flag=True, help="Stop at the first failure.")
@click.option("--force-refresh", is_flag=True, help="Bypass fresh cached copies.")
@click.option("--accept", default=None, help="Accept header to send.")
@click.option("--ttl", "ttl_seconds", type=click.IntRange(min=1), default=None)
@db_option
@verbose_option
def batch_command(
    urls: tuple[str, ...],
    url_file: Any,
    mode: str,
    max_concurrency: int,
    fail_fast: bool,
    force_refresh: bool,
    accept: str | None,
    ttl_seconds: int | None,
    db_path: Path | None,
    verbose: bool,
) -> None:
    """Open many URLs concurrently.

    Exits with status 1 when any URL failed.
    """
    settings = _load_settings(db_path, verbose)
    all_urls = list(urls)
    if url_file is not None:
        all_urls.extend(
            line.strip()
            for line in url_file
            if line.strip() and not line.startswith("#")
        )

    request = BatchRequest(
        urls=all_urls,
        mode=mode,
        max_concurrency=max_concurrency,
        fail_fast=fail_fast,
        force_refresh=force_refresh,
        accept=accept,
        ttl_seconds=ttl_seconds,
    )

    async def run() -> dict[str, Any]:
        async with _open_services(settings) as services:
            result = await BatchOrchestrator(services.opener).run(request)
            return result.model_dump(mode="json")

    output = _run(run())
    _echo_json(output)
    if output["summary"]["failed"]:
        sys.exit(1)


@cli.command("extract")
@click.argument("html_file", type=click.File("r"), default="-")
@click.option("--base-url", default=None, help="URL for resolving relative links.")
@click.option(
    "--strategy",
    type=click.Choice(list(STRATEGIES)),
    default="readability",
    show_default=True,
)
@click.option(
    "--markdown/--text",
    "to_markdown",
    default=True,
    show_default=True,
    help="Output Markdown or plain text.",
)
@click.option("--char-threshold", type=click.IntRange(min=0), default=None)
@verbose_option
def extract_command(
    html_file: Any,
    base_url: str | None,
    strategy: str,
    to_markdown: bool,
    char_threshold: int | None,
    verbose: bool,
) -> None:
    """Extract content from an HTML file, or stdin, without fetching."""
    _load_settings(None, verbose)
    request = ExtractRequest(
        html=html_file.read(),
        base_url=base_url,
        strategy=strategy,
        to_markdown=to_markdown,
        extract=_extract_config(char_threshold),
    )

    async def run() -> dict[str, Any]:
        result = await extract_html(request)
        return result.model_dump(mode="json")

    _echo_json(_run(run()))


@cli.command("get")
@click.argument("key")
@click.option("--raw", "include_raw", is_flag=True, help="Include the raw body.")
@db_option
@verbose_option
def get_command(
    key: str, include_raw: bool, db_path: Path | None, verbose: bool
) -> None:
    """Show a cached snapshot by hash."""
    settings = _load_settings(db_path, verbose)

    async def run() -> dict[str, Any]:
        async with _open_store(settings) as store:
            snapshot = await get_cached(store, key)
        payload = snapshot.model_dump(mode="json", exclude={"raw_bytes"})
        payload["raw_size"] = len(snapshot.raw_bytes or b"")
        payload["is_fresh"] = snapshot.is_fresh()
        if include_raw and snapshot.raw_bytes is not None:
            payload["raw"] = snapshot.raw_bytes.decode("utf-8", errors="replace")
        return payload

    _echo_json(_run(run()))


@cli.command("purge")
@click.option("--older-than-days", type=int, default=None)
@click.option("--domain", default=None, help="Literal URL substring to purge.")
@click.option("--max-entries", type=int, default=None)
@db_option
@verbose_option
def purge_command(
    older_than_days: int | None,
    domain: str | None,
    max_entries: int | None,
    db_path: Path | None,
    verbose: bool,
) -> None:
    """Remove snapshots by age, URL substring, or count."""
    settings = _load_settings(db_path, verbose)

    async def run() -> dict[str, Any]:
        async with _open_store(settings) as store:
            result = await purge_cache(store, older_than_days, domain, max_entries)
        payload = result.model_dump()
        payload["total"] = result.total
        return payload

    _echo_json(_run(run()))


@cli.command("stats")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
@db_option
@verbose_option
def stats_command(json_output: bool, db_path: Path | None, verbose: bool) -> None:
    """Display cache database statistics."""
    settings = _load_settings(db_path, verbose)

    async def run() -> dict[str, Any]:
        async with _open_store(settings) as store:
            return await cache_stats(store)

    stats = _run(run())

    if json_output:
        _echo_json(stats)
        return

    click.echo("Cache Database Statistics")
    click.echo("=" * 40)
    click.echo(f"  Database: {settings.db_path}")
    click.echo(f"  Schema Version: {stats['schema_version']}")
    click.echo("")
    click.echo("Table Row Counts:")
    for table, count in sorted(stats["tables"].items()):
        click.echo(f"  {table}: {count}")


if __name__ == "__main__":
    cli()
