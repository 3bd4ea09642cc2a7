"""Batch orchestration of fetch and source registration jobs."""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import timedelta
from typing import Any

from web_sourcing.config import Config, get_config
from web_sourcing.fetcher import WebContentFetcher
from web_sourcing.models import (
    BatchItemResult,
    BatchJobFilters,
    BatchOptions,
    BatchProcessingJob,
    ErrorCode,
    FetchOptions,
    ProcessingStats,
)
from web_sourcing.notifications import Notification, NotificationSink, NullSink, notify_safely
from web_sourcing.sources import SourceRegistry
from web_sourcing.storage import ContentStore, NullContentStore
from web_sourcing.utils import is_valid_url, utc_now

logger = logging.getLogger(__name__)


class BatchOrchestrator:
    """Runs fetch jobs over URL lists in fixed-size concurrency windows.

    Each window is awaited in full before the next one starts. A failing
    URL is recorded as a failed item and never aborts its siblings. Jobs
    can be cancelled between windows; the window in flight completes.
    """

    def __init__(
        self,
        fetcher: WebContentFetcher,
        sources: SourceRegistry,
        config: Config | None = None,
        store: ContentStore | None = None,
        notifier: NotificationSink | None = None,
    ):
        self.fetcher = fetcher
        self.sources = sources
        self.config = config or get_config()
        self.store = store or NullContentStore()
        self.notifier = notifier or NullSink()
        self._jobs: dict[str, BatchProcessingJob] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._finished: dict[str, asyncio.Event] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    def create_job(self, urls: list[str], options: BatchOptions | dict[str, Any] | None = None) -> BatchProcessingJob:
        """Register a pending job without running it.

        Raises:
            ValueError: If the URL list is empty or exceeds the configured maximum.
        """
        if not isinstance(options, BatchOptions):
            options = BatchOptions.model_validate(options or {})
        if not urls:
            raise ValueError("At least one URL is required")
        if len(urls) > self.config.batch.max_urls:
            raise ValueError(f"Too many URLs: {len(urls)} (maximum {self.config.batch.max_urls})")
        if options.concurrency is None:
            options = options.model_copy(update={"concurrency": self.config.batch.concurrency})

        job = BatchProcessingJob(urls=list(urls), options=options)
        job.progress.total = len(urls)
        self._jobs[job.id] = job
        self._locks[job.id] = asyncio.Lock()
        self._cancel_events[job.id] = asyncio.Event()
        self._finished[job.id] = asyncio.Event()
        logger.info(f"Created batch job {job.id} with {len(urls)} URLs")
        return job

    async def submit(
        self, urls: list[str], options: BatchOptions | dict[str, Any] | None = None
    ) -> BatchProcessingJob:
        """Run a job to completion and return its final state."""
        job = self.create_job(urls, options)
        await self._run(job)
        return job.model_copy(deep=True)

    async def start(
        self, urls: list[str], options: BatchOptions | dict[str, Any] | None = None
    ) -> BatchProcessingJob:
        """Start a job in the background. Poll with get_job or await wait()."""
        job = self.create_job(urls, options)
        self._tasks[job.id] = asyncio.create_task(self._run(job), name=f"batch-{job.id}")
        return job.model_copy(deep=True)

    async def wait(self, job_id: str) -> BatchProcessingJob | None:
        finished = self._finished.get(job_id)
        if finished is None:
            return None
        await finished.wait()
        return self.get_job(job_id)

    def get_job(self, job_id: str) -> BatchProcessingJob | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    def list_jobs(self, filters: BatchJobFilters | dict[str, Any] | None = None) -> list[BatchProcessingJob]:
        """Jobs matching the filters, newest first."""
        if not isinstance(filters, BatchJobFilters):
            filters = BatchJobFilters.model_validate(filters or {})
        jobs = [
            job
            for job in self._jobs.values()
            if (filters.status is None or job.status == filters.status)
            and (filters.created_after is None or job.created_at >= filters.created_after)
        ]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return [job.model_copy(deep=True) for job in jobs[: filters.limit]]

    async def cancel_job(self, job_id: str) -> BatchProcessingJob | None:
        """Stop a job before its next window and return its partial results.

        Returns None for unknown jobs. Finished jobs are returned unchanged.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return None
        if job.is_finished:
            return job.model_copy(deep=True)

        logger.info(f"Cancelling batch job {job_id}")
        self._cancel_events[job_id].set()
        if job.status == "pending":
            self._mark_cancelled(job)
            self._finished[job_id].set()
        else:
            await self._finished[job_id].wait()
        return job.model_copy(deep=True)

    def cleanup_completed_jobs(self, older_than_hours: float = 24) -> int:
        """Forget finished jobs older than the given age. Returns how many were removed."""
        cutoff = utc_now() - timedelta(hours=older_than_hours)
        stale = [
            job_id
            for job_id, job in self._jobs.items()
            if job.is_finished and (job.completed_at or job.created_at) < cutoff
        ]
        for job_id in stale:
            for registry in (self._jobs, self._locks, self._cancel_events, self._finished, self._tasks):
                registry.pop(job_id, None)
        if stale:
            logger.info(f"Cleaned up {len(stale)} finished batch jobs")
        return len(stale)

    def get_processing_stats(self) -> ProcessingStats:
        jobs = list(self._jobs.values())
        successful = sum(job.progress.completed for job in jobs)
        failed = sum(job.progress.failed for job in jobs)
        processed = successful + failed
        return ProcessingStats(
            total_jobs=len(jobs),
            active_jobs=sum(1 for job in jobs if job.status in ("pending", "processing")),
            completed_jobs=sum(1 for job in jobs if job.status == "completed"),
            failed_jobs=sum(1 for job in jobs if job.status == "failed"),
            cancelled_jobs=sum(1 for job in jobs if job.status == "cancelled"),
            total_urls=sum(job.progress.total for job in jobs),
            successful_urls=successful,
            failed_urls=failed,
            success_rate=round(successful / processed, 4) if processed else 0.0,
        )

    def estimate_duration(self, url_count: int, concurrency: int | None = None) -> float:
        """Rough wall-clock estimate in seconds for a job of the given size."""
        concurrency = concurrency or self.config.batch.concurrency
        windows = math.ceil(url_count / concurrency)
        return windows * self.config.batch.estimated_seconds_per_url

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run(self, job: BatchProcessingJob) -> None:
        cancel = self._cancel_events[job.id]
        lock = self._locks[job.id]
        window_size = job.options.concurrency or self.config.batch.concurrency

        if job.status == "cancelled":
            self._finished[job.id].set()
            return

        job.status = "processing"
        try:
            await notify_safely(
                self.notifier,
                Notification("batch.started", f"Processing {len(job.urls)} URLs", "info", {"job_id": job.id}),
            )
            for start in range(0, len(job.urls), window_size):
                if cancel.is_set():
                    self._mark_cancelled(job)
                    break
                window = job.urls[start : start + window_size]
                await asyncio.gather(*(self._process(job, url, lock) for url in window))
                await notify_safely(
                    self.notifier,
                    Notification(
                        "batch.progress",
                        f"{job.progress.processed}/{job.progress.total} URLs processed",
                        "info",
                        {
                            "job_id": job.id,
                            "completed": job.progress.completed,
                            "failed": job.progress.failed,
                            "total": job.progress.total,
                        },
                    ),
                )
            else:
                job.status = "completed"
        except Exception as e:
            logger.exception(f"Batch job {job.id} failed")
            job.status = "failed"
            job.error = f"{type(e).__name__}: {e}"
        finally:
            job.completed_at = job.completed_at or utc_now()
            self._finished[job.id].set()

        logger.info(
            f"Batch job {job.id} {job.status}: {job.progress.completed} succeeded, "
            f"{job.progress.failed} failed of {job.progress.total}"
        )
        level = "success" if job.status == "completed" and not job.progress.failed else "warning"
        if job.status == "failed":
            level = "error"
        await notify_safely(
            self.notifier,
            Notification(
                f"batch.{job.status}",
                f"Batch {job.status}: {job.progress.completed} imported, {job.progress.failed} failed",
                level,
                {"job_id": job.id},
            ),
        )

    @staticmethod
    def _mark_cancelled(job: BatchProcessingJob) -> None:
        job.status = "cancelled"
        job.completed_at = utc_now()

    async def _process(self, job: BatchProcessingJob, url: str, lock: asyncio.Lock) -> None:
        """Process one URL and record the outcome under the job lock."""
        try:
            result = await self._process_url(url, job.options)
        except Exception as e:
            logger.warning(f"Unexpected error processing {url}: {e}")
            result = BatchItemResult(url=url, success=False, error=f"{type(e).__name__}: {e}")

        async with lock:
            job.results.append(result)
            if result.success:
                job.progress.completed += 1
            else:
                job.progress.failed += 1

    async def _process_url(self, url: str, options: BatchOptions) -> BatchItemResult:
        if not is_valid_url(url):
            return BatchItemResult(
                url=url,
                success=False,
                error=f"Invalid URL: {url!r}",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        content = await self.fetcher.fetch(
            url,
            FetchOptions(timeout=options.timeout, retries=options.retries, use_cache=options.use_cache),
        )
        if content.error is not None:
            return BatchItemResult(
                url=url,
                success=False,
                content_id=content.id,
                error=content.error.message,
                error_code=content.error.code,
            )

        await self.store.save_content(content)
        added = await self.sources.add_source(url, content=content, category=options.category, tags=options.tags)
        if added.is_duplicate:
            await self.sources.refresh_from_content(added.source_id, content)

        return BatchItemResult(
            url=url,
            success=True,
            content_id=content.id,
            source_id=added.source_id,
            is_duplicate=added.is_duplicate,
            title=added.source.title,
            block_count=len(content.blocks),
        )
