"""Tests for the batch orchestrator."""

import asyncio
from datetime import timedelta

import httpx
import pytest
import respx

from web_sourcing.batch import BatchOrchestrator
from web_sourcing.fetcher import WebContentFetcher
from web_sourcing.models import ErrorCode
from web_sourcing.utils import utc_now


class StubFetcher:
    """Fetcher double that records call order and can hold requests at a gate."""

    def __init__(self, make_content, gate: asyncio.Event | None = None):
        self.make_content = make_content
        self.gate = gate
        self.events: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, url, options=None, **overrides):
        self.events.append(("start", url))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        self.active -= 1
        self.events.append(("end", url))
        return self.make_content(url=url)


class BrokenSink:
    """Notification sink that fails on every event."""

    def __init__(self):
        self.attempts = 0

    async def notify(self, notification):
        self.attempts += 1
        raise RuntimeError("ui bridge down")


@pytest.fixture
def stub_fetcher(content_factory):
    return StubFetcher(content_factory)


@pytest.fixture
def orchestrator(config, stub_fetcher, registry, store, sink):
    return BatchOrchestrator(stub_fetcher, registry, config, store=store, notifier=sink)


class TestSubmit:
    """Tests for running jobs to completion."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_mixed_results(self, config, registry, store, minimal_html):
        respx.get("https://example.com/a").mock(return_value=httpx.Response(200, html=minimal_html))
        respx.get("https://example.com/b").mock(return_value=httpx.Response(200, html=minimal_html))
        fetcher = WebContentFetcher(config)
        orchestrator = BatchOrchestrator(fetcher, registry, config, store=store)

        job = await orchestrator.submit(["https://example.com/a", "not-a-url", "https://example.com/b"])
        await fetcher.close()

        assert job.status == "completed"
        assert job.progress.total == 3
        assert job.progress.completed == 2
        assert job.progress.failed == 1
        assert job.progress.percentage == 100.0
        assert job.completed_at is not None
        failed = [r for r in job.results if not r.success]
        assert failed[0].url == "not-a-url"
        assert failed[0].error_code == ErrorCode.VALIDATION_ERROR
        assert len(registry) == 2
        assert len(store.contents) == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_failure_recorded(self, config, registry):
        respx.get("https://example.com/gone").mock(return_value=httpx.Response(404))
        fetcher = WebContentFetcher(config)
        orchestrator = BatchOrchestrator(fetcher, registry, config)

        job = await orchestrator.submit(["https://example.com/gone"])
        await fetcher.close()

        assert job.status == "completed"
        assert job.progress.failed == 1
        assert job.results[0].error_code == ErrorCode.HTTP_ERROR
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_items_carry_source(self, orchestrator):
        job = await orchestrator.submit(["https://example.com/1"], {"category": "docs", "tags": ["t"]})

        [item] = job.results
        assert item.success
        assert item.source_id is not None
        assert item.title == "Example Article"
        assert item.block_count == 1
        source = await orchestrator.sources.get_source(item.source_id)
        assert source.metadata.category == "docs"
        assert "t" in source.metadata.tags

    @pytest.mark.asyncio
    async def test_duplicate_url_in_second_job(self, orchestrator):
        await orchestrator.submit(["https://example.com/1"])
        job = await orchestrator.submit(["https://example.com/1"])

        assert job.results[0].is_duplicate is True
        assert len(orchestrator.sources) == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_abort_siblings(self, orchestrator, stub_fetcher, monkeypatch):
        original = stub_fetcher.fetch

        async def flaky(url, options=None, **overrides):
            if url.endswith("/boom"):
                raise RuntimeError("boom")
            return await original(url, options)

        monkeypatch.setattr(stub_fetcher, "fetch", flaky)

        job = await orchestrator.submit(["https://example.com/1", "https://example.com/boom"])

        assert job.status == "completed"
        assert job.progress.completed == 1
        assert job.progress.failed == 1
        assert "RuntimeError" in next(r.error for r in job.results if not r.success)

    @pytest.mark.asyncio
    async def test_notifications(self, orchestrator, sink):
        await orchestrator.submit(["https://example.com/1", "https://example.com/2"], {"concurrency": 1})

        batch_events = [e for e in sink.events() if e.startswith("batch.")]
        assert batch_events == ["batch.started", "batch.progress", "batch.progress", "batch.completed"]
        assert sink.notifications[-1].level == "success"

    def test_invalid_jobs(self, orchestrator, config):
        with pytest.raises(ValueError):
            orchestrator.create_job([])
        with pytest.raises(ValueError):
            orchestrator.create_job([f"https://example.com/{i}" for i in range(config.batch.max_urls + 1)])


class TestSinkFailures:
    """Tests for jobs whose notification sink raises."""

    @pytest.mark.asyncio
    async def test_started_job_still_finishes(self, config, stub_fetcher, registry, store):
        sink = BrokenSink()
        orchestrator = BatchOrchestrator(stub_fetcher, registry, config, store=store, notifier=sink)

        started = await orchestrator.start(["https://example.com/1", "https://example.com/2"])
        finished = await asyncio.wait_for(orchestrator.wait(started.id), timeout=2)

        assert finished.status == "completed"
        assert finished.progress.completed == 2
        assert finished.completed_at is not None
        assert sink.attempts >= 3

    @pytest.mark.asyncio
    async def test_submit_returns_final_state(self, config, stub_fetcher, registry, store):
        orchestrator = BatchOrchestrator(stub_fetcher, registry, config, store=store, notifier=BrokenSink())

        job = await asyncio.wait_for(orchestrator.submit(["https://example.com/1"]), timeout=2)

        assert job.status == "completed"
        assert job.results[0].success


class TestWindows:
    """Tests for windowed concurrency."""

    @pytest.mark.asyncio
    async def test_window_size_bounds_concurrency(self, orchestrator, stub_fetcher):
        urls = [f"https://example.com/{i}" for i in range(5)]

        await orchestrator.submit(urls, {"concurrency": 2})

        assert stub_fetcher.max_active == 2

    @pytest.mark.asyncio
    async def test_window_completes_before_next_starts(self, orchestrator, stub_fetcher):
        urls = [f"https://example.com/{i}" for i in range(4)]

        await orchestrator.submit(urls, {"concurrency": 2})

        events = stub_fetcher.events
        last_end_first_window = max(events.index(("end", u)) for u in urls[:2])
        first_start_second_window = min(events.index(("start", u)) for u in urls[2:])
        assert last_end_first_window < first_start_second_window

    @pytest.mark.asyncio
    async def test_default_concurrency_from_config(self, orchestrator, config):
        job = orchestrator.create_job(["https://example.com/1"])
        assert job.options.concurrency == config.batch.concurrency


class TestCancel:
    """Tests for job cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_running_job(self, config, registry, content_factory):
        gate = asyncio.Event()
        orchestrator = BatchOrchestrator(StubFetcher(content_factory, gate), registry, config)
        urls = [f"https://example.com/{i}" for i in range(3)]

        started = await orchestrator.start(urls, {"concurrency": 1})
        await asyncio.sleep(0)
        cancelling = asyncio.create_task(orchestrator.cancel_job(started.id))
        await asyncio.sleep(0)
        gate.set()
        job = await cancelling

        assert job.status == "cancelled"
        assert job.progress.completed == 1
        assert len(job.results) == 1
        assert job.completed_at is not None

    @pytest.mark.asyncio
    async def test_cancel_pending_job(self, orchestrator):
        job = orchestrator.create_job(["https://example.com/1"])

        cancelled = await orchestrator.cancel_job(job.id)

        assert cancelled.status == "cancelled"
        assert (await orchestrator.wait(job.id)).status == "cancelled"

    @pytest.mark.asyncio
    async def test_cancel_finished_job_is_noop(self, orchestrator):
        job = await orchestrator.submit(["https://example.com/1"])

        again = await orchestrator.cancel_job(job.id)

        assert again.status == "completed"

    @pytest.mark.asyncio
    async def test_cancel_unknown(self, orchestrator):
        assert await orchestrator.cancel_job("job_missing") is None


class TestJobs:
    """Tests for job bookkeeping."""

    @pytest.mark.asyncio
    async def test_start_and_wait(self, orchestrator):
        started = await orchestrator.start(["https://example.com/1"])
        assert started.status == "pending"

        finished = await orchestrator.wait(started.id)

        assert finished.status == "completed"
        assert orchestrator.get_job(started.id).progress.completed == 1
        assert await orchestrator.wait("job_missing") is None

    @pytest.mark.asyncio
    async def test_list_jobs(self, orchestrator):
        first = await orchestrator.submit(["https://example.com/1"])
        pending = orchestrator.create_job(["https://example.com/2"])

        assert [j.id for j in orchestrator.list_jobs()] == [pending.id, first.id]
        assert [j.id for j in orchestrator.list_jobs({"status": "completed"})] == [first.id]

    @pytest.mark.asyncio
    async def test_processing_stats(self, orchestrator):
        await orchestrator.submit(["https://example.com/1", "bad"])
        orchestrator.create_job(["https://example.com/2"])

        stats = orchestrator.get_processing_stats()

        assert stats.total_jobs == 2
        assert stats.active_jobs == 1
        assert stats.completed_jobs == 1
        assert stats.total_urls == 3
        assert stats.successful_urls == 1
        assert stats.failed_urls == 1
        assert stats.success_rate == 0.5

    @pytest.mark.asyncio
    async def test_cleanup(self, orchestrator):
        old = await orchestrator.submit(["https://example.com/1"])
        recent = await orchestrator.submit(["https://example.com/2"])
        running = orchestrator.create_job(["https://example.com/3"])
        orchestrator._jobs[old.id].completed_at = utc_now() - timedelta(hours=48)

        assert orchestrator.cleanup_completed_jobs(24) == 1
        assert orchestrator.get_job(old.id) is None
        assert orchestrator.get_job(recent.id) is not None
        assert orchestrator.get_job(running.id) is not None

    def test_estimate_duration(self, orchestrator, config):
        per_url = config.batch.estimated_seconds_per_url
        assert orchestrator.estimate_duration(7, concurrency=3) == 3 * per_url
        assert orchestrator.estimate_duration(0) == 0
