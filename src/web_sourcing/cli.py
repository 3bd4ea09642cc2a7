"""CLI entry point for web-sourcing."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated

import typer

from web_sourcing.classifier import ContentTypeClassifier
from web_sourcing.config import get_config, load_config
from web_sourcing.fetcher import WebContentFetcher
from web_sourcing.models import BatchProcessingJob, ContentTypeInfo, FetchOptions, WebContent
from web_sourcing.notifications import LoggingSink
from web_sourcing.pipeline import WebContentPipeline
from web_sourcing.rendering import PlaywrightRenderer
from web_sourcing.utils import is_valid_url, truncate_text

app = typer.Typer(
    name="web-sourcing",
    help="Fetch, classify and normalize web content into structured blocks.",
    no_args_is_help=True,
)


def _setup(config_file: Path | None, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config_file:
        load_config(config_file)


def format_content(content: WebContent, verbose: bool = False) -> str:
    """Format fetched content for display.

    Args:
        content: Content to format.
        verbose: Include a text preview.

    Returns:
        Formatted string.
    """
    meta = content.metadata
    lines = [f"📄 {meta.title or content.url}"]
    lines.append(f"   URL: {content.final_url or content.url}")
    if content.content_type:
        lines.append(f"   Type: {content.content_type.mime_type} (extractor: {content.extractor})")
    details = []
    if meta.author:
        details.append(meta.author)
    if meta.published_date:
        details.append(meta.published_date)
    if meta.site_name:
        details.append(meta.site_name)
    if details:
        lines.append(f"   {' | '.join(details)}")
    lines.append(f"   Blocks: {len(content.blocks)} | Words: {meta.word_count} | Reading time: {meta.reading_time} min")
    if content.from_cache:
        lines.append("   (from cache)")
    if verbose and content.text:
        lines.append(f"   Preview: {truncate_text(content.text, 300)}")
    return "\n".join(lines)


def format_type(info: ContentTypeInfo) -> str:
    facets = [
        name
        for name in ("text", "binary", "archive", "document", "image", "audio", "video", "font")
        if getattr(info, f"is_{name}")
    ]
    return f"{info.mime_type} (.{info.extension}) {info.description} [{', '.join(facets)}]"


def format_job(job: BatchProcessingJob) -> str:
    lines = [
        f"Batch {job.id}: {job.status}",
        f"   {job.progress.completed} imported, {job.progress.failed} failed of {job.progress.total}",
    ]
    for result in job.results:
        if result.success:
            marker = "=" if result.is_duplicate else "+"
            lines.append(f"   {marker} {result.url} -> {result.source_id} ({result.block_count} blocks)")
        else:
            lines.append(f"   ! {result.url}: {result.error}")
    return "\n".join(lines)


@app.command()
def fetch(
    url: Annotated[str, typer.Argument(help="URL to fetch")],
    render: Annotated[bool, typer.Option("--render", help="Render with a headless browser")] = False,
    no_cache: Annotated[bool, typer.Option("--no-cache", help="Bypass the content cache")] = False,
    timeout: Annotated[float | None, typer.Option("--timeout", "-t", help="Per-attempt timeout in seconds")] = None,
    retries: Annotated[int | None, typer.Option("--retries", "-r", help="Retries after the first attempt")] = None,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Write extracted text to a file")] = None,
    config_file: Annotated[Path | None, typer.Option("--config", "-c", help="Path to config file")] = None,
    output_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show more details")] = False,
) -> None:
    """Fetch a URL and extract its content."""
    _setup(config_file, verbose)
    options = FetchOptions(timeout=timeout, retries=retries, use_cache=not no_cache, use_headless_browser=render)

    async def _fetch() -> WebContent:
        renderer = PlaywrightRenderer() if render else None
        async with WebContentFetcher(renderer=renderer) as fetcher:
            return await fetcher.fetch(url, options)

    content = asyncio.run(_fetch())

    if output_json:
        typer.echo(json.dumps(content.model_dump(mode="json"), indent=2, default=str))
    elif content.error is not None:
        typer.echo(f"Error [{content.error.code.value}]: {content.error.message}", err=True)
    elif output:
        output.write_text(content.text)
        typer.echo(f"Content saved to: {output}")
        typer.echo(format_content(content))
    else:
        typer.echo(format_content(content, verbose))

    if content.error is not None:
        raise typer.Exit(1)


@app.command()
def batch(
    urls: Annotated[list[str] | None, typer.Argument(help="URLs to import")] = None,
    url_file: Annotated[Path | None, typer.Option("--file", "-f", help="File with one URL per line")] = None,
    concurrency: Annotated[int | None, typer.Option("--concurrency", "-n", help="URLs fetched per window")] = None,
    category: Annotated[str, typer.Option("--category", help="Category for new sources")] = "web-content",
    config_file: Annotated[Path | None, typer.Option("--config", "-c", help="Path to config file")] = None,
    output_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show more details")] = False,
) -> None:
    """Import many URLs as one batch job."""
    _setup(config_file, verbose)
    url_list = list(urls or [])
    if url_file:
        url_list.extend(
            line.strip() for line in url_file.read_text().splitlines() if line.strip() and not line.startswith("#")
        )
    if not url_list:
        typer.echo("Error: no URLs given", err=True)
        raise typer.Exit(1)

    async def _batch():
        notifier = LoggingSink() if verbose else None
        async with WebContentPipeline(notifier=notifier) as pipeline:
            return await pipeline.batch_import_urls(url_list, {"concurrency": concurrency, "category": category})

    response = asyncio.run(_batch())
    if not response.success:
        typer.echo(f"Error: {response.error}", err=True)
        raise typer.Exit(1)

    if output_json:
        typer.echo(json.dumps(response.data, indent=2, default=str))
    else:
        typer.echo(format_job(BatchProcessingJob.model_validate(response.data)))


@app.command()
def classify(
    target: Annotated[str, typer.Argument(help="File path or URL to classify")],
    output_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
) -> None:
    """Detect the content type of a local file, or of a URL by its extension."""
    path = Path(target)
    if not is_valid_url(target) and path.is_file():
        with open(path, "rb") as f:
            head = f.read(4096)
        info = ContentTypeClassifier.from_buffer(head)
        if info.mime_type == "application/octet-stream":
            info = ContentTypeClassifier.from_path(target)
    else:
        info = ContentTypeClassifier.from_path(target)

    if output_json:
        typer.echo(json.dumps(info.model_dump(), indent=2))
    else:
        typer.echo(format_type(info))


@app.command()
def quality(
    url: Annotated[str, typer.Argument(help="URL to fetch and assess")],
    checks: Annotated[
        str,
        typer.Option("--checks", help="Comma-separated checks: readability, accessibility, interactivity, accuracy"),
    ] = "readability,accessibility",
    config_file: Annotated[Path | None, typer.Option("--config", "-c", help="Path to config file")] = None,
    output_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show more details")] = False,
) -> None:
    """Fetch a URL and score its content quality."""
    _setup(config_file, verbose)
    check_list = [c.strip() for c in checks.split(",") if c.strip()]

    async def _quality():
        async with WebContentPipeline() as pipeline:
            fetched = await pipeline.fetch_web_content(url)
            if not fetched.success:
                return fetched
            return await pipeline.validate_content_quality(fetched.data["content"]["id"], check_list)

    response = asyncio.run(_quality())
    if not response.success:
        typer.echo(f"Error [{response.code}]: {response.error}", err=True)
        raise typer.Exit(1)

    if output_json:
        typer.echo(json.dumps(response.data, indent=2, default=str))
        return

    scores = response.data["scores"]
    typer.echo(f"Quality of {url}:")
    for name in (*check_list, "overall"):
        if scores.get(name) is not None:
            typer.echo(f"   {name}: {scores[name]:.2f}")
    for issue, suggestion in zip(response.data["issues"], response.data["suggestions"]):
        typer.echo(f"   - {issue} {suggestion}")


@app.command(name="config")
def config_show(
    config_file: Annotated[Path | None, typer.Option("--config", "-c", help="Path to config file")] = None,
) -> None:
    """Show current configuration."""
    if config_file:
        load_config(config_file)

    cfg = get_config()
    typer.echo("Current configuration:")
    typer.echo(f"  Request timeout: {cfg.fetch.timeout}s")
    typer.echo(f"  Max retries: {cfg.fetch.retries} (base delay {cfg.fetch.retry_base_delay}s)")
    typer.echo(f"  User agent: {cfg.fetch.user_agent}")
    typer.echo(f"  Cache: {cfg.cache.directory if cfg.cache.enabled else 'disabled'} (TTL {cfg.cache.ttl:.0f}s)")
    typer.echo(f"  Batch concurrency: {cfg.batch.concurrency} (max {cfg.batch.max_urls} URLs)")
    typer.echo(f"  Duplicate threshold: {cfg.dedup.threshold}")

    if cfg.proxy:
        typer.echo(f"  Proxy HTTP: {cfg.proxy.http or 'not set'}")
        typer.echo(f"  Proxy HTTPS: {cfg.proxy.https or 'not set'}")


if __name__ == "__main__":
    app()
