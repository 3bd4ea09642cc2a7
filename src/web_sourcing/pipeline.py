"""Tool surface wiring the fetcher, source registry and batch orchestrator together."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from web_sourcing.batch import BatchOrchestrator
from web_sourcing.config import Config, get_config
from web_sourcing.fetcher import WebContentFetcher
from web_sourcing.models import (
    BatchOptions,
    ErrorCode,
    FetchOptions,
    HealthCheckFilters,
    SourceFilters,
    SourceUpdate,
    ToolResponse,
    WebContent,
)
from web_sourcing.notifications import Notification, NotificationSink, NullSink, notify_safely
from web_sourcing.quality import assess_content_quality
from web_sourcing.sources import HealthProbe, SourceRegistry
from web_sourcing.storage import ContentStore, MemoryContentStore
from web_sourcing.utils import extract_domain

logger = logging.getLogger(__name__)

SOURCE_ACTIONS = ("list", "add", "update", "remove", "validate", "health-check", "duplicates", "stats")


class SourceNotFoundError(LookupError):
    """Raised inside source actions that target an unknown id."""


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _ok(data: Any) -> ToolResponse:
    return ToolResponse(success=True, data=_dump(data))


def _fail(message: str, code: ErrorCode, data: Any = None) -> ToolResponse:
    return ToolResponse(success=False, error=message, code=code.value, data=_dump(data))


class WebContentPipeline:
    """Entry point for the four content tools.

    Every method returns a ToolResponse and never raises. Components are
    created from configuration unless passed in, and share one content
    store and one notification sink.

    Example:
        >>> async with WebContentPipeline() as pipeline:
        ...     response = await pipeline.fetch_web_content("https://example.com")
        ...     print(response.data["content"]["metadata"]["title"])
    """

    def __init__(
        self,
        config: Config | None = None,
        fetcher: WebContentFetcher | None = None,
        sources: SourceRegistry | None = None,
        orchestrator: BatchOrchestrator | None = None,
        store: ContentStore | None = None,
        notifier: NotificationSink | None = None,
        probe: HealthProbe | None = None,
    ):
        self.config = config or get_config()
        self.store = store or MemoryContentStore()
        self.notifier = notifier or NullSink()
        self.fetcher = fetcher or WebContentFetcher(self.config)
        self.sources = sources or SourceRegistry(self.config, probe=probe, store=self.store, notifier=self.notifier)
        self.orchestrator = orchestrator or BatchOrchestrator(
            self.fetcher, self.sources, self.config, store=self.store, notifier=self.notifier
        )

    async def close(self) -> None:
        await self.fetcher.close()

    async def __aenter__(self) -> WebContentPipeline:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def fetch_web_content(
        self, url: str, options: FetchOptions | dict[str, Any] | None = None
    ) -> ToolResponse:
        """Fetch one URL, store the content and register it as a source.

        Returns:
            ToolResponse whose data holds ``content``, ``source`` and
            ``is_duplicate``. A failed fetch carries the fetch error code and
            the failed content record.
        """
        logger.info(f"Fetching web content from: {url}")
        try:
            content = await self.fetcher.fetch(url, options)
            if content.error is not None:
                await notify_safely(
                    self.notifier,
                    Notification("content.failed", f"Failed to fetch {url}: {content.error.message}", "error"),
                )
                return _fail(content.error.message, content.error.code, content)

            await self.store.save_content(content)
            added = await self.sources.add_source(url, content=content)
            if added.is_duplicate:
                await self.sources.refresh_from_content(added.source_id, content)
            await notify_safely(
                self.notifier,
                Notification(
                    "content.fetched",
                    f"Successfully fetched content from {extract_domain(url)}",
                    "success",
                    {"content_id": content.id, "source_id": added.source_id},
                ),
            )
            return _ok(
                {
                    "content": _dump(content),
                    "source": _dump(added.source),
                    "is_duplicate": added.is_duplicate,
                }
            )
        except Exception as e:
            logger.exception(f"fetch_web_content failed for {url}")
            return _fail(f"Failed to fetch web content: {e}", ErrorCode.NETWORK_ERROR)

    # ------------------------------------------------------------------
    # Batch import
    # ------------------------------------------------------------------

    async def batch_import_urls(
        self, urls: list[str], options: BatchOptions | dict[str, Any] | None = None
    ) -> ToolResponse:
        """Import a list of URLs as one batch job and wait for it to finish.

        Individual URL failures are reported inside the job; the envelope
        only fails when the job itself could not be created or run.
        """
        if not isinstance(urls, (list, tuple)):
            return _fail(f"urls must be a list of URLs, got {type(urls).__name__}", ErrorCode.VALIDATION_ERROR)

        logger.info(f"Batch importing {len(urls)} URLs")
        try:
            job = await self.orchestrator.submit(list(urls), options)
        except (ValueError, ValidationError) as e:
            return _fail(str(e), ErrorCode.VALIDATION_ERROR)
        except Exception as e:
            logger.exception("batch_import_urls failed")
            return _fail(f"Batch import failed: {e}", ErrorCode.NETWORK_ERROR)

        data = _dump(job)
        data["summary"] = {
            "total": job.progress.total,
            "successful": job.progress.completed,
            "failed": job.progress.failed,
            "duplicates": sum(1 for r in job.results if r.is_duplicate),
        }
        return _ok(data)

    def get_batch_job(self, job_id: str) -> ToolResponse:
        job = self.orchestrator.get_job(job_id)
        if job is None:
            return _fail(f"Batch job not found: {job_id}", ErrorCode.NOT_FOUND)
        return _ok(job)

    async def cancel_batch_job(self, job_id: str) -> ToolResponse:
        job = await self.orchestrator.cancel_job(job_id)
        if job is None:
            return _fail(f"Batch job not found: {job_id}", ErrorCode.NOT_FOUND)
        return _ok(job)

    # ------------------------------------------------------------------
    # Source management
    # ------------------------------------------------------------------

    async def manage_content_sources(
        self,
        action: str,
        source_id: str | None = None,
        filters: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> ToolResponse:
        """Dispatch a source management action.

        Args:
            action: One of ``list``, ``add``, ``update``, ``remove``,
                ``validate``, ``health-check``, ``duplicates``, ``stats``.
            source_id: Target source for ``update``, ``remove`` and ``validate``.
            filters: Filters for ``list`` and ``health-check``.
            payload: Fields for ``add`` (``url``, ``title``, ``category``,
                ``tags``) and ``update`` (any SourceUpdate field).

        Returns:
            ToolResponse with the action's result as data.
        """
        logger.info(f"Managing content sources: {action}")
        try:
            data = await self._dispatch(action, source_id, filters or {}, payload or {})
        except SourceNotFoundError as e:
            return _fail(str(e), ErrorCode.NOT_FOUND)
        except (ValueError, ValidationError) as e:
            return _fail(f"Source management failed: {e}", ErrorCode.VALIDATION_ERROR)
        except Exception as e:
            logger.exception(f"Source action {action} failed")
            return _fail(f"Source management failed: {e}", ErrorCode.NETWORK_ERROR)
        return _ok(data)

    async def _dispatch(
        self, action: str, source_id: str | None, filters: dict[str, Any], payload: dict[str, Any]
    ) -> Any:
        if action not in SOURCE_ACTIONS:
            raise ValueError(f"Unknown action: {action}. Available: {', '.join(SOURCE_ACTIONS)}")

        if action == "list":
            return await self.sources.list_sources(SourceFilters.model_validate(filters))

        if action == "add":
            url = payload.get("url")
            if not url:
                raise ValueError("url required for add action")
            return await self.sources.add_source(
                url,
                title=payload.get("title"),
                category=payload.get("category"),
                tags=payload.get("tags"),
            )

        if action == "update":
            if not source_id:
                raise ValueError("source_id required for update action")
            result = await self.sources.update_source(source_id, SourceUpdate.model_validate(payload))
            if result.error == "Source not found":
                raise SourceNotFoundError(f"Source not found: {source_id}")
            if not result.success:
                raise ValueError(result.error)
            return result

        if action == "remove":
            if not source_id:
                raise ValueError("source_id required for remove action")
            if await self.sources.get_source(source_id) is None:
                raise SourceNotFoundError(f"Source not found: {source_id}")
            return await self.sources.remove_source(source_id)

        if action == "validate":
            results = await self.sources.validate_sources([source_id] if source_id else None)
            valid = sum(1 for r in results if r.valid)
            return {
                "validation_results": _dump(results),
                "summary": {"total": len(results), "valid": valid, "invalid": len(results) - valid},
            }

        if action == "health-check":
            return await self.sources.perform_health_check(HealthCheckFilters.model_validate(filters))

        if action == "duplicates":
            return await self.sources.detect_duplicates()

        return await self.sources.get_statistics()

    # ------------------------------------------------------------------
    # Quality validation
    # ------------------------------------------------------------------

    async def validate_content_quality(self, content_id: str, checks: list[str] | None = None) -> ToolResponse:
        """Score previously fetched content on readability and related checks."""
        logger.info(f"Validating content quality for {content_id}")
        try:
            content = await self._find_content(content_id)
            if content is None:
                return _fail(f"Content not found: {content_id}", ErrorCode.NOT_FOUND)
            result = assess_content_quality(content, checks)
        except ValueError as e:
            return _fail(str(e), ErrorCode.VALIDATION_ERROR)
        except Exception as e:
            logger.exception(f"Quality validation failed for {content_id}")
            return _fail(f"Quality validation failed: {e}", ErrorCode.EXTRACTION_ERROR)
        return _ok(result)

    async def _find_content(self, content_id: str) -> WebContent | None:
        content = await self.store.get_content(content_id)
        if content is None and self.fetcher.cache is not None:
            content = await self.fetcher.cache.get(content_id)
        return content
