"""Retrying, cached web content fetcher."""

from __future__ import annotations

import codecs
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from web_sourcing.cache import ContentCache, FileContentCache
from web_sourcing.classifier import ContentTypeClassifier
from web_sourcing.config import Config, get_config
from web_sourcing.extractors import ExtractorRegistry, create_default_registry
from web_sourcing.models import (
    ErrorCode,
    FetchOptions,
    WebContent,
    WebContentError,
    WebContentMetadata,
)
from web_sourcing.rendering import Renderer
from web_sourcing.retry import RetryPolicy, retry_async
from web_sourcing.utils import extract_domain, generate_content_id, is_valid_url, utc_now

logger = logging.getLogger(__name__)

# A byte order mark outranks any declared charset
_BOMS = (
    (codecs.BOM_UTF8, "utf-8-sig"),
    (codecs.BOM_UTF16_LE, "utf-16"),
    (codecs.BOM_UTF16_BE, "utf-16"),
)


def _text_codec(body: bytes, declared: str | None) -> str:
    for bom, codec in _BOMS:
        if body.startswith(bom):
            return codec
    return declared or "utf-8"


@dataclass
class _Download:
    """Raw outcome of one successful network round trip."""

    body: bytes
    status_code: int | None
    final_url: str
    headers: dict[str, str] = field(default_factory=dict)
    encoding: str | None = None


class WebContentFetcher:
    """Fetches URLs into normalized WebContent.

    ``fetch`` never raises. Failures come back as a WebContent with
    ``error`` set and no blocks. Successful results are written through to
    the cache, keyed by the URL's content identifier.
    """

    def __init__(
        self,
        config: Config | None = None,
        cache: ContentCache | None = None,
        registry: ExtractorRegistry | None = None,
        renderer: Renderer | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the fetcher.

        Args:
            config: Configuration object. If None, loads from default location.
            cache: Content cache. Defaults to a file cache when caching is enabled.
            registry: Extractor registry. Defaults to the built-in extractors.
            renderer: Optional browser renderer for ``use_headless_browser``.
            client: Preconfigured HTTP client; the fetcher will not close it.
        """
        self.config = config or get_config()
        if cache is None and self.config.cache.enabled:
            cache = FileContentCache(self.config.cache.directory, self.config.cache.ttl)
        self.cache = cache
        self.registry = registry or create_default_registry(self.config)
        self.renderer = renderer
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            fetch = self.config.fetch
            kwargs: dict[str, Any] = {
                "timeout": fetch.timeout,
                "follow_redirects": fetch.follow_redirects,
                "max_redirects": fetch.max_redirects,
                "headers": {"User-Agent": fetch.user_agent},
            }
            proxy = self.config.get_proxy_url()
            if proxy:
                kwargs["proxy"] = proxy
            self._client = httpx.AsyncClient(**kwargs)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if the fetcher created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> WebContentFetcher:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    def _resolve_options(self, options: FetchOptions | dict[str, Any] | None, overrides: dict[str, Any]) -> FetchOptions:
        if isinstance(options, FetchOptions):
            data = options.model_dump(exclude_unset=True)
        else:
            data = dict(options or {})
        data.update(overrides)
        resolved = FetchOptions.model_validate(data)
        fetch = self.config.fetch
        return resolved.model_copy(
            update={
                "timeout": resolved.timeout or fetch.timeout,
                "retries": fetch.retries if resolved.retries is None else resolved.retries,
                "retry_base_delay": (
                    fetch.retry_base_delay if resolved.retry_base_delay is None else resolved.retry_base_delay
                ),
                "user_agent": resolved.user_agent or fetch.user_agent,
                "cache_ttl": resolved.cache_ttl or self.config.cache.ttl,
            }
        )

    async def fetch(
        self,
        url: str,
        options: FetchOptions | dict[str, Any] | None = None,
        **overrides: Any,
    ) -> WebContent:
        """Fetch, classify and extract one URL.

        Args:
            url: http(s) URL to fetch.
            options: Fetch options; unset values fall back to configuration.
            **overrides: Individual FetchOptions fields, e.g. ``timeout=5``.

        Returns:
            WebContent. Check ``success`` / ``error`` for the outcome.
        """
        started = time.perf_counter()

        if not is_valid_url(url):
            return self._failure(url, ErrorCode.VALIDATION_ERROR, f"Invalid URL: {url!r}", started)
        try:
            opts = self._resolve_options(options, overrides)
        except ValidationError as e:
            return self._failure(url, ErrorCode.VALIDATION_ERROR, "Invalid fetch options", started, details=str(e))

        if opts.use_headless_browser and self.renderer is None:
            return self._failure(
                url, ErrorCode.VALIDATION_ERROR, "Headless rendering requested but no renderer is configured", started
            )

        url = url.strip()
        content_id = generate_content_id(url)

        if opts.use_cache and self.cache is not None:
            cached = await self._cache_get(content_id)
            if cached is not None:
                logger.debug(f"Cache hit for {url} ({content_id})")
                return cached.model_copy(update={"from_cache": True})

        policy = RetryPolicy(
            retries=opts.retries,
            base_delay=opts.retry_base_delay,
            max_delay=self.config.fetch.retry_max_delay,
        )
        fetched_at = utc_now()
        try:
            download = await retry_async(self._download, policy, url, opts)
        except (httpx.TimeoutException, TimeoutError) as e:
            return self._failure(url, ErrorCode.TIMEOUT, f"Timed out fetching {url}", started, details=str(e))
        except (httpx.HTTPError, OSError) as e:
            return self._failure(
                url, ErrorCode.NETWORK_ERROR, f"Network error fetching {url}", started, details=f"{type(e).__name__}: {e}"
            )
        except ImportError as e:
            return self._failure(url, ErrorCode.VALIDATION_ERROR, str(e), started)
        except Exception as e:
            logger.exception(f"Unexpected error fetching {url}")
            return self._failure(
                url, ErrorCode.NETWORK_ERROR, f"Unexpected error fetching {url}", started, details=f"{type(e).__name__}: {e}"
            )

        status = download.status_code
        if status is not None and not 200 <= status < 300:
            return self._failure(
                url,
                ErrorCode.HTTP_ERROR,
                f"HTTP {status} fetching {url}",
                started,
                status_code=status,
                headers=download.headers,
            )

        content = self._build_content(content_id, url, download, opts, fetched_at, started)
        if content.success and opts.use_cache and self.cache is not None:
            await self._cache_set(content, opts.cache_ttl)
        return content

    async def _download(self, url: str, opts: FetchOptions) -> _Download:
        """One network attempt. Raises on connection and timeout errors."""
        if opts.use_headless_browser and self.renderer is not None:
            page = await self.renderer.render(url, timeout=opts.timeout, user_agent=opts.user_agent)
            return _Download(
                body=page.html.encode("utf-8"),
                status_code=page.status_code,
                final_url=page.final_url or url,
                headers={"content-type": "text/html; charset=utf-8", **page.headers},
                encoding="utf-8",
            )

        logger.debug(f"GET {url}")
        response = await self.client.get(url, timeout=opts.timeout, headers={"User-Agent": opts.user_agent})
        return _Download(
            body=response.content,
            status_code=response.status_code,
            final_url=str(response.url),
            headers={key.lower(): value for key, value in response.headers.items()},
            encoding=response.encoding,
        )

    def _build_content(
        self,
        content_id: str,
        url: str,
        download: _Download,
        opts: FetchOptions,
        fetched_at: datetime,
        started: float,
    ) -> WebContent:
        info = ContentTypeClassifier.from_response(download.final_url, download.headers, download.body)
        raw: str | bytes = download.body
        if info.is_text:
            raw = download.body.decode(_text_codec(download.body, download.encoding), errors="replace")

        result = self.registry.extract(raw, download.final_url, opts.extraction, info.mime_type, fetched_at)
        elapsed = (time.perf_counter() - started) * 1000

        if not result.success:
            logger.warning(f"Extraction failed for {url}: {result.error}")
            return WebContent(
                id=content_id,
                url=url,
                final_url=download.final_url,
                metadata=result.metadata,
                status_code=download.status_code,
                headers=download.headers,
                content_type=info,
                error=WebContentError(
                    message=f"Could not extract content from {url}",
                    code=ErrorCode.EXTRACTION_ERROR,
                    status_code=download.status_code,
                    details=result.error,
                ),
                fetched_at=fetched_at,
                processing_time=elapsed,
                extractor=result.extractor,
            )

        logger.info(
            f"Fetched {url} [{info.mime_type}] via {result.extractor}: "
            f"{len(result.blocks)} blocks in {elapsed:.0f}ms"
        )
        return WebContent(
            id=content_id,
            url=url,
            final_url=download.final_url,
            metadata=result.metadata,
            text=result.text,
            html=result.html,
            blocks=result.blocks,
            status_code=download.status_code,
            headers=download.headers,
            content_type=info,
            fetched_at=fetched_at,
            processing_time=elapsed,
            extractor=result.extractor,
        )

    def _failure(
        self,
        url: str,
        code: ErrorCode,
        message: str,
        started: float,
        details: str | None = None,
        status_code: int | None = None,
        headers: dict[str, str] | None = None,
    ) -> WebContent:
        logger.warning(f"{code.value}: {message}" + (f" ({details})" if details else ""))
        return WebContent(
            id=generate_content_id(url) if isinstance(url, str) and url else "",
            url=url if isinstance(url, str) else "",
            metadata=WebContentMetadata(url=url if isinstance(url, str) else "", domain=extract_domain(url)),
            status_code=status_code,
            headers=headers or {},
            error=WebContentError(message=message, code=code, status_code=status_code, details=details),
            processing_time=(time.perf_counter() - started) * 1000,
        )

    async def _cache_get(self, content_id: str) -> WebContent | None:
        try:
            return await self.cache.get(content_id)
        except Exception as e:
            logger.warning(f"Cache read failed for {content_id}, treating as a miss: {type(e).__name__}: {e}")
            return None

    async def _cache_set(self, content: WebContent, ttl: float) -> None:
        try:
            await self.cache.set(content, ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {content.id}: {type(e).__name__}: {e}")
