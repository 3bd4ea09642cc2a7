"""Source registry: durable records of imported URLs, deduplication and health."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter, defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

import httpx

from web_sourcing.config import Config, DedupSettings, get_config
from web_sourcing.models import (
    AddSourceResult,
    DuplicateDetectionResult,
    DuplicateGroup,
    DuplicateMatch,
    DuplicateSummary,
    FieldChange,
    HealthCheckFilters,
    HealthCheckReport,
    HealthCheckSummary,
    MergeSuggestion,
    RemoveSourceResult,
    SourceFilters,
    SourceHealthCheck,
    SourceListResult,
    SourceMetadata,
    SourceStatistics,
    SourceUpdate,
    SourceUpdateResult,
    SourceValidationResult,
    WebContent,
    WebContentSource,
)
from web_sourcing.notifications import Notification, NotificationSink, NullSink, notify_safely
from web_sourcing.storage import ContentStore, NullContentStore
from web_sourcing.utils import (
    canonical_url,
    content_hash,
    extract_domain,
    is_valid_url,
    normalize_domain,
    normalize_title,
    utc_now,
)

logger = logging.getLogger(__name__)

# Fields of SourceUpdate stored on the source itself rather than its metadata
_TOP_LEVEL_FIELDS = {"title", "final_url", "status"}


# ============================================================================
# Health Probes
# ============================================================================


@dataclass
class ProbeResult:
    """Outcome of one reachability probe."""

    reachable: bool
    response_time: float = 0.0  # milliseconds
    status_code: int | None = None
    error: str | None = None


class HealthProbe(Protocol):
    async def probe(self, url: str, timeout: float) -> ProbeResult: ...


class SimulatedHealthProbe:
    """Probe used when no network probe is wired: well-formed URLs are reachable."""

    async def probe(self, url: str, timeout: float) -> ProbeResult:
        if is_valid_url(url):
            return ProbeResult(reachable=True, response_time=0.0)
        return ProbeResult(reachable=False, error="Invalid URL")


class HttpHealthProbe:
    """Probes a URL with HEAD, falling back to GET when HEAD is not allowed."""

    def __init__(self, client: httpx.AsyncClient | None = None, user_agent: str | None = None):
        self._client = client
        self._owns_client = client is None
        self.user_agent = user_agent

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._client = httpx.AsyncClient(follow_redirects=True, headers=headers)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def probe(self, url: str, timeout: float) -> ProbeResult:
        started = time.perf_counter()
        try:
            response = await self.client.head(url, timeout=timeout)
            if response.status_code in (405, 501):
                response = await self.client.get(url, timeout=timeout)
        except httpx.HTTPError as e:
            return ProbeResult(
                reachable=False,
                response_time=(time.perf_counter() - started) * 1000,
                error=f"{type(e).__name__}: {e}",
            )
        return ProbeResult(
            reachable=response.status_code < 400,
            response_time=(time.perf_counter() - started) * 1000,
            status_code=response.status_code,
        )


# ============================================================================
# Registry
# ============================================================================


class SourceRegistry:
    """Owns every source record and the indexes over them.

    All mutations go through one ``asyncio.Lock`` so concurrent batch tasks
    cannot lose index entries or create two live records for one URL.
    Store writes happen under the same lock, so the store always ends up
    with the latest snapshot of each record.
    Records handed to callers are copies.
    """

    def __init__(
        self,
        config: Config | None = None,
        probe: HealthProbe | None = None,
        store: ContentStore | None = None,
        notifier: NotificationSink | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or get_config()
        self.probe = probe or SimulatedHealthProbe()
        self.store = store or NullContentStore()
        self.notifier = notifier or NullSink()
        self._clock = clock
        self._sources: dict[str, WebContentSource] = {}
        # canonical URL -> id, live sources only
        self._url_index: dict[str, str] = {}
        self._domain_index: dict[str, set[str]] = defaultdict(set)
        self._category_index: dict[str, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()

    @property
    def dedup(self) -> DedupSettings:
        return self.config.dedup

    def __len__(self) -> int:
        return sum(1 for source in self._sources.values() if source.is_live)

    # ------------------------------------------------------------------
    # Index maintenance, callers hold the lock
    # ------------------------------------------------------------------

    def _index(self, source: WebContentSource) -> None:
        self._url_index[canonical_url(source.url)] = source.id
        self._domain_index[source.domain].add(source.id)
        self._category_index[source.metadata.category].add(source.id)

    def _unindex(self, source: WebContentSource) -> None:
        key = canonical_url(source.url)
        if self._url_index.get(key) == source.id:
            del self._url_index[key]
        self._domain_index[source.domain].discard(source.id)
        self._category_index[source.metadata.category].discard(source.id)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def add_source(
        self,
        url: str,
        title: str | None = None,
        content: WebContent | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
    ) -> AddSourceResult:
        """Record a URL as a source, or return the live source it duplicates.

        Args:
            url: Origin URL.
            title: Title override. Defaults to the fetched title.
            content: Fetched content to derive metadata from.
            category: Category, ``web-content`` by default.
            tags: Extra tags merged with the content's tags.

        Returns:
            AddSourceResult. ``is_duplicate`` is True when a live source
            with the same canonical URL already exists.

        Raises:
            ValueError: If the URL is not a valid http(s) URL.
        """
        if not is_valid_url(url):
            raise ValueError(f"Invalid source URL: {url!r}")
        url = url.strip()
        key = canonical_url(url)

        async with self._lock:
            existing_id = self._url_index.get(key)
            if existing_id is not None:
                logger.debug(f"Source for {url} already exists: {existing_id}")
                existing = self._sources[existing_id]
                return AddSourceResult(
                    source_id=existing_id,
                    source=existing.model_copy(deep=True),
                    is_duplicate=True,
                    duplicate_of=existing_id,
                )

            source = self._build_source(url, title, content, category, tags)
            self._sources[source.id] = source
            self._index(source)
            snapshot = source.model_copy(deep=True)
            await self.store.save_source(snapshot)

        logger.info(f"Added source {snapshot.id} for {url}")
        await notify_safely(
            self.notifier,
            Notification("source.added", f"Added source: {snapshot.title}", "success", {"source_id": snapshot.id}),
        )
        return AddSourceResult(source_id=snapshot.id, source=snapshot)

    def _build_source(
        self,
        url: str,
        title: str | None,
        content: WebContent | None,
        category: str | None,
        tags: list[str] | None,
    ) -> WebContentSource:
        domain = extract_domain(url)
        now = self._clock()
        page = content.metadata if content is not None else None
        merged_tags = list(dict.fromkeys([*(page.tags if page else []), *(tags or [])]))

        metadata = SourceMetadata(
            domain=domain,
            author=page.author if page else None,
            publish_date=page.published_date if page else None,
            last_modified=page.modified_date if page else None,
            content_type=(page.page_type if page and page.page_type else "article"),
            language=(page.language if page and page.language else "en"),
            reading_time=page.reading_time if page else 0,
            word_count=page.word_count if page else 0,
            keywords=list(page.tags) if page else [],
            description=page.description if page else None,
            attribution=url,
            tags=merged_tags,
            category=category or "web-content",
            content_hash=content_hash(content.text) if content is not None else None,
        )
        return WebContentSource(
            url=url,
            final_url=content.final_url if content is not None else None,
            domain=domain,
            title=title or (page.title if page and page.title else f"Content from {domain}"),
            import_date=now,
            last_checked=now,
            metadata=metadata,
        )

    async def get_source(self, source_id: str) -> WebContentSource | None:
        async with self._lock:
            source = self._sources.get(source_id)
            return source.model_copy(deep=True) if source else None

    async def find_by_url(self, url: str) -> WebContentSource | None:
        """Live source for a URL, matched on its canonical form."""
        async with self._lock:
            source_id = self._url_index.get(canonical_url(url))
            return self._sources[source_id].model_copy(deep=True) if source_id else None

    async def list_sources(self, filters: SourceFilters | dict[str, Any] | None = None) -> SourceListResult:
        """List sources, most recently checked first.

        ``total`` counts all live sources; ``filtered`` counts matches
        before ``offset``/``limit`` are applied.
        """
        if not isinstance(filters, SourceFilters):
            filters = SourceFilters.model_validate(filters or {})

        async with self._lock:
            # Removed sources are not indexed
            wants_removed = filters.include_removed or filters.status == "removed"
            if filters.domain is not None and not wants_removed:
                ids = self._domain_index.get(normalize_domain(filters.domain), set())
                candidates = [self._sources[i] for i in ids]
            elif filters.category is not None and not wants_removed:
                candidates = [self._sources[i] for i in self._category_index.get(filters.category, set())]
            else:
                candidates = list(self._sources.values())

            matches = [s for s in candidates if self._matches(s, filters)]
            matches.sort(key=lambda s: s.last_checked, reverse=True)
            page = matches[filters.offset : filters.offset + filters.limit]
            total = sum(1 for s in self._sources.values() if s.is_live)
            return SourceListResult(
                sources=[s.model_copy(deep=True) for s in page],
                total=total,
                filtered=len(matches),
            )

    @staticmethod
    def _matches(source: WebContentSource, filters: SourceFilters) -> bool:
        if not source.is_live and not (filters.include_removed or filters.status == "removed"):
            return False
        if filters.domain is not None and source.domain != normalize_domain(filters.domain):
            return False
        if filters.category is not None and source.metadata.category != filters.category:
            return False
        if filters.status is not None and source.status != filters.status:
            return False
        if filters.tags and not set(filters.tags) & set(source.metadata.tags):
            return False
        return True

    async def update_source(self, source_id: str, updates: SourceUpdate | dict[str, Any]) -> SourceUpdateResult:
        """Apply updates and report every changed field as a before/after pair.

        ``last_checked`` is refreshed even when nothing changed. A changed
        content hash moves the source to ``updated`` unless a status is given.
        """
        if not isinstance(updates, SourceUpdate):
            updates = SourceUpdate.model_validate(updates)
        now = self._clock()

        async with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                return SourceUpdateResult(source_id=source_id, success=False, error="Source not found", updated_at=now)

            requested = updates.model_dump(exclude_none=True)
            if requested.get("status") not in (None, "removed") and not source.is_live:
                holder = self._url_index.get(canonical_url(source.url))
                if holder is not None and holder != source_id:
                    return SourceUpdateResult(
                        source_id=source_id,
                        success=False,
                        error=f"A live source already exists for this URL: {holder}",
                        updated_at=now,
                    )

            was_live = source.is_live
            if was_live:
                self._unindex(source)

            changes: list[FieldChange] = []
            for name, value in requested.items():
                if name == "status":
                    continue
                target = source if name in _TOP_LEVEL_FIELDS else source.metadata
                attr = name
                before = getattr(target, attr)
                if before != value:
                    changes.append(FieldChange(field=name, before=before, after=value))
                    setattr(target, attr, value)

            new_status = requested.get("status")
            hash_changed = any(c.field == "content_hash" and c.before is not None for c in changes)
            if new_status is None and hash_changed and source.status in ("active", "error"):
                new_status = "updated"
            if new_status is not None and new_status != source.status:
                changes.append(FieldChange(field="status", before=source.status, after=new_status))
                source.status = new_status

            source.last_checked = now
            if source.is_live:
                self._index(source)
            await self.store.save_source(source.model_copy(deep=True))

        if changes:
            logger.info(f"Updated source {source_id}: {', '.join(c.field for c in changes)}")
        return SourceUpdateResult(
            source_id=source_id,
            success=True,
            has_changes=bool(changes),
            changes=changes,
            updated_at=now,
        )

    async def refresh_from_content(self, source_id: str, content: WebContent) -> SourceUpdateResult:
        """Update a source from a fresh fetch of its URL."""
        page = content.metadata
        return await self.update_source(
            source_id,
            SourceUpdate(
                final_url=content.final_url,
                description=page.description,
                content_hash=content_hash(content.text),
                word_count=page.word_count,
                reading_time=page.reading_time,
            ),
        )

    async def remove_source(self, source_id: str) -> RemoveSourceResult:
        """Mark a source ``removed``. The record is kept, only its indexes go."""
        async with self._lock:
            source = self._sources.get(source_id)
            if source is None or not source.is_live:
                return RemoveSourceResult(source_id=source_id, removed=False)
            self._unindex(source)
            source.status = "removed"
            source.last_checked = self._clock()
            snapshot = source.model_copy(deep=True)
            await self.store.save_source(snapshot)

        logger.info(f"Removed source {source_id}")
        await notify_safely(
            self.notifier,
            Notification("source.removed", f"Removed source: {snapshot.title}", "info", {"source_id": source_id}),
        )
        return RemoveSourceResult(source_id=source_id, removed=True, source=snapshot)

    async def record_usage(self, source_id: str, module_id: str | None = None) -> WebContentSource | None:
        """Count a reference to a source, optionally from a generated module."""
        async with self._lock:
            source = self._sources.get(source_id)
            if source is None:
                return None
            source.usage.times_referenced += 1
            source.usage.last_accessed = self._clock()
            if module_id and module_id not in source.usage.generated_modules:
                source.usage.generated_modules.append(module_id)
            snapshot = source.model_copy(deep=True)
            await self.store.save_source(snapshot)
            return snapshot

    # ------------------------------------------------------------------
    # Validation and health
    # ------------------------------------------------------------------

    async def validate_sources(self, source_ids: list[str] | None = None) -> list[SourceValidationResult]:
        """Check records for problems: bad URL, stale checks, missing description or keywords."""
        now = self._clock()
        stale_after = timedelta(days=self.config.health.stale_after_days)

        async with self._lock:
            if source_ids is None:
                sources = [s for s in self._sources.values() if s.is_live]
            else:
                sources = [self._sources[i] for i in source_ids if i in self._sources]
            missing = [i for i in (source_ids or []) if i not in self._sources]

            results = []
            for source in sources:
                issues: list[str] = []
                suggestions: list[str] = []
                if not is_valid_url(source.url):
                    issues.append("Invalid URL format")
                    suggestions.append("Update URL to valid format")
                if now - source.last_checked > stale_after:
                    issues.append(f"Source not checked in over {stale_after.days} days")
                    suggestions.append("Update source to refresh content")
                if not source.metadata.description:
                    issues.append("Missing description")
                    suggestions.append("Add description for better categorization")
                if not source.metadata.keywords:
                    issues.append("No keywords defined")
                    suggestions.append("Add keywords for better searchability")
                results.append(
                    SourceValidationResult(source_id=source.id, valid=not issues, issues=issues, suggestions=suggestions)
                )

        for source_id in missing:
            results.append(SourceValidationResult(source_id=source_id, valid=False, issues=["Source not found"]))
        return results

    async def perform_health_check(
        self, filters: HealthCheckFilters | dict[str, Any] | None = None
    ) -> HealthCheckReport:
        """Probe the selected live sources and record their health.

        Only ``error`` results change a source's status; ``warning`` is
        advisory. A healthy result restores an errored source to ``active``.
        """
        if not isinstance(filters, HealthCheckFilters):
            filters = HealthCheckFilters.model_validate(filters or {})

        async with self._lock:
            targets = [
                (source.id, source.url)
                for source in self._sources.values()
                if source.is_live and self._health_selected(source, filters)
            ]

        health = self.config.health
        semaphore = asyncio.Semaphore(self.config.batch.concurrency)

        async def check(source_id: str, url: str) -> SourceHealthCheck:
            async with semaphore:
                result = await self.probe.probe(url, health.timeout)
            return self._classify_health(source_id, url, result)

        checks = list(await asyncio.gather(*(check(i, u) for i, u in targets)))

        async with self._lock:
            for check_result in checks:
                source = self._sources.get(check_result.source_id)
                if source is None or not source.is_live:
                    continue
                source.last_checked = check_result.last_checked
                if check_result.status == "error":
                    source.status = "error"
                elif source.status == "error" and check_result.status == "healthy":
                    source.status = "active"
                await self.store.save_source(source.model_copy(deep=True))

        summary = HealthCheckSummary(
            total=len(checks),
            healthy=sum(1 for c in checks if c.status == "healthy"),
            warning=sum(1 for c in checks if c.status == "warning"),
            error=sum(1 for c in checks if c.status == "error"),
        )
        logger.info(
            f"Health check: {summary.healthy} healthy, {summary.warning} warning, {summary.error} error"
        )
        if summary.error:
            await notify_safely(
                self.notifier,
                Notification(
                    "source.health",
                    f"{summary.error} of {summary.total} sources failed their health check",
                    "warning",
                    {"error": summary.error, "total": summary.total},
                ),
            )
        return HealthCheckReport(results=checks, summary=summary)

    @staticmethod
    def _health_selected(source: WebContentSource, filters: HealthCheckFilters) -> bool:
        if filters.source_ids and source.id not in filters.source_ids:
            return False
        if filters.domain is not None and source.domain != normalize_domain(filters.domain):
            return False
        if filters.category is not None and source.metadata.category != filters.category:
            return False
        if filters.last_checked_before is not None and source.last_checked >= filters.last_checked_before:
            return False
        return True

    def _classify_health(self, source_id: str, url: str, result: ProbeResult) -> SourceHealthCheck:
        issues: list[str] = []
        suggestions: list[str] = []
        if not result.reachable:
            status = "error"
            if result.status_code is not None:
                issues.append(f"HTTP {result.status_code}")
            else:
                issues.append("Connection failed")
            suggestions.extend(["Check URL validity", "Verify network connectivity"])
        elif result.response_time > self.config.health.slow_threshold:
            status = "warning"
            issues.append("Slow response time")
            suggestions.extend(["Monitor performance", "Consider caching"])
        else:
            status = "healthy"

        return SourceHealthCheck(
            source_id=source_id,
            url=url,
            status=status,
            last_checked=self._clock(),
            response_time=result.response_time,
            status_code=result.status_code,
            issues=issues,
            suggestions=suggestions,
        )

    # ------------------------------------------------------------------
    # Deduplication
    # ------------------------------------------------------------------

    def similarity(self, a: WebContentSource, b: WebContentSource) -> float:
        """Weighted similarity of two sources, in [0, 1] and symmetric.

        An identical canonical URL always scores at least the duplicate
        threshold.
        """
        weights = self.dedup.weights
        score = 0.0

        same_url = canonical_url(a.url) == canonical_url(b.url)
        if same_url or canonical_url(a.url, keep_query=False) == canonical_url(b.url, keep_query=False):
            score += weights.url
        if a.domain and a.domain == b.domain:
            score += weights.domain

        title_a, title_b = normalize_title(a.title), normalize_title(b.title)
        if title_a and title_b:
            if title_a == title_b:
                score += weights.title_exact
            elif title_a in title_b or title_b in title_a:
                score += weights.title_partial

        hash_a, hash_b = a.metadata.content_hash, b.metadata.content_hash
        if hash_a and hash_a == hash_b:
            score += weights.content_hash

        score = min(score, 1.0)
        if same_url:
            score = max(score, self.dedup.threshold)
        return round(score, 6)

    @staticmethod
    def duplicate_reason(a: WebContentSource, b: WebContentSource) -> str:
        if canonical_url(a.url) == canonical_url(b.url):
            return "Identical URL"
        if normalize_title(a.title) and normalize_title(a.title) == normalize_title(b.title):
            return "Identical title"
        if a.metadata.content_hash and a.metadata.content_hash == b.metadata.content_hash:
            return "Identical content"
        if a.domain and a.domain == b.domain:
            return "Same domain with similar content"
        return "Similar content detected"

    async def detect_duplicates(self) -> DuplicateDetectionResult:
        """Group live sources whose pairwise similarity reaches the threshold.

        Each unordered pair is scored once. A source that joined a group is
        not considered again.
        """
        async with self._lock:
            sources = sorted((s for s in self._sources.values() if s.is_live), key=lambda s: s.import_date)
            sources = [s.model_copy(deep=True) for s in sources]

        threshold = self.dedup.threshold
        grouped: set[str] = set()
        groups: list[DuplicateGroup] = []

        for i, source in enumerate(sources):
            if source.id in grouped:
                continue
            matches: list[DuplicateMatch] = []
            for other in sources[i + 1 :]:
                if other.id in grouped:
                    continue
                score = self.similarity(source, other)
                if score >= threshold:
                    matches.append(
                        DuplicateMatch(id=other.id, similarity=score, reason=self.duplicate_reason(source, other))
                    )
            if not matches:
                continue

            grouped.add(source.id)
            grouped.update(match.id for match in matches)
            best = max(match.similarity for match in matches)
            groups.append(
                DuplicateGroup(
                    source_id=source.id,
                    duplicates=matches,
                    suggestions=[
                        MergeSuggestion(
                            action="merge",
                            confidence=best,
                            reasoning="High similarity detected, consider merging sources",
                        )
                    ],
                )
            )

        return DuplicateDetectionResult(
            duplicates=groups,
            summary=DuplicateSummary(
                total_sources=len(sources),
                duplicate_groups=len(groups),
                duplicate_sources=sum(len(group.duplicates) for group in groups),
            ),
        )

    async def get_statistics(self) -> SourceStatistics:
        now = self._clock()
        async with self._lock:
            sources = list(self._sources.values())
            live = [s for s in sources if s.is_live]
            return SourceStatistics(
                total=len(live),
                by_domain=dict(Counter(s.domain for s in live)),
                by_category=dict(Counter(s.metadata.category for s in live)),
                by_status=dict(Counter(s.status for s in sources)),
                recently_added=sum(1 for s in live if now - s.import_date <= timedelta(days=7)),
                recently_updated=sum(1 for s in live if now - s.last_checked <= timedelta(days=1)),
            )
