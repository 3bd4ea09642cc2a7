"""Shared test fixtures for web-sourcing tests."""

from __future__ import annotations

import pytest

from web_sourcing.cache import MemoryContentCache
from web_sourcing.config import CacheSettings, Config, FetchSettings
from web_sourcing.models import (
    ContentBlock,
    ContentTypeInfo,
    WebContent,
    WebContentMetadata,
)
from web_sourcing.notifications import MemorySink
from web_sourcing.sources import SourceRegistry
from web_sourcing.storage import MemoryContentStore
from web_sourcing.utils import count_words, extract_domain, generate_content_id


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def config() -> Config:
    """Config with the disk cache disabled and no backoff delay."""
    return Config(
        fetch=FetchSettings(timeout=5.0, retries=2, retry_base_delay=0.0),
        cache=CacheSettings(enabled=False),
    )


@pytest.fixture
def memory_cache() -> MemoryContentCache:
    """An empty in-memory content cache."""
    return MemoryContentCache()


@pytest.fixture
def store() -> MemoryContentStore:
    return MemoryContentStore()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def registry(config: Config, store: MemoryContentStore, sink: MemorySink) -> SourceRegistry:
    """A source registry wired to in-memory sinks."""
    return SourceRegistry(config, store=store, notifier=sink)


# ============================================================================
# Sample HTML Fixtures
# ============================================================================


@pytest.fixture
def sample_html() -> str:
    """An article page with metadata, boilerplate and mixed content."""
    return """
    <!DOCTYPE html>
    <html lang="en-US">
    <head>
        <title>Plain Title</title>
        <meta property="og:title" content="Understanding Async IO">
        <meta name="description" content="A guide to asyncio.">
        <meta name="author" content="Jane Smith">
        <meta name="keywords" content="python, asyncio, concurrency">
        <meta property="article:published_time" content="2024-03-01T10:00:00Z">
        <meta property="og:site_name" content="Example Blog">
        <meta name="twitter:card" content="summary">
        <link rel="canonical" href="/posts/async-io">
        <script type="application/ld+json">{"@type": "Article", "headline": "Understanding Async IO"}</script>
        <script>var tracking = true;</script>
    </head>
    <body>
        <nav><a href="/">Home</a> <a href="/about">About</a></nav>
        <article>
            <h1>Understanding Async IO</h1>
            <p>Asyncio is a library to write concurrent code.</p>
            <p>It uses the async and await syntax.</p>
            <h2>Event Loop</h2>
            <p>The event loop runs tasks.</p>
            <pre><code class="language-python">import asyncio
asyncio.run(main())</code></pre>
            <figure>
                <img src="/img/loop.png" alt="Event loop diagram">
                <figcaption>The loop</figcaption>
            </figure>
            <table>
                <tr><th>Call</th><th>Purpose</th></tr>
                <tr><td>gather</td><td>Run concurrently</td></tr>
            </table>
            <p>See <a href="https://docs.python.org/3/library/asyncio.html">the docs</a>.</p>
        </article>
        <footer>Copyright 2024</footer>
    </body>
    </html>
    """


@pytest.fixture
def minimal_html() -> str:
    return "<html><head><title>T</title></head><body><p>Hello</p></body></html>"


# ============================================================================
# Sample Content Fixtures
# ============================================================================


def make_content(
    url: str = "https://example.com/article",
    text: str = "Some article text.",
    title: str = "Example Article",
    blocks: list[ContentBlock] | None = None,
    **metadata: object,
) -> WebContent:
    """Build a successful WebContent without going through the fetcher."""
    return WebContent(
        id=generate_content_id(url),
        url=url,
        final_url=url,
        metadata=WebContentMetadata(
            url=url,
            title=title,
            domain=extract_domain(url),
            word_count=count_words(text),
            **metadata,
        ),
        text=text,
        blocks=blocks if blocks is not None else [ContentBlock(type="text", content={"text": text})],
        status_code=200,
        content_type=ContentTypeInfo(mime_type="text/html", extension="html", is_binary=False, is_text=True),
        extractor="html",
    )


@pytest.fixture
def content_factory():
    """Factory for WebContent records, see make_content."""
    return make_content


@pytest.fixture
def sample_content() -> WebContent:
    """A successfully fetched article."""
    return make_content()
