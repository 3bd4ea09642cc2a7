"""Unified data models for web-sourcing."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from web_sourcing.utils import utc_now


def new_id(prefix: str = "") -> str:
    """Generate a random identifier, optionally prefixed (e.g. ``src_``)."""
    return f"{prefix}{uuid.uuid4().hex}"


class ErrorCode(str, Enum):
    """Error taxonomy shared by fetches, extraction and the tool surface."""

    NETWORK_ERROR = "NETWORK_ERROR"  # DNS/connect failures, retryable
    TIMEOUT = "TIMEOUT"  # per-attempt timeout, retryable
    HTTP_ERROR = "HTTP_ERROR"  # non-2xx status, terminal
    EXTRACTION_ERROR = "EXTRACTION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"  # rejected before any I/O
    NOT_FOUND = "NOT_FOUND"

    @property
    def retryable(self) -> bool:
        return self in (ErrorCode.NETWORK_ERROR, ErrorCode.TIMEOUT)


BlockType = Literal[
    "text",
    "image",
    "video",
    "code",
    "quiz",
    "flashcard",
    "diagram",
    "interactive-visualization",
    "interactive-chart",
    "simulation",
]
SourceStatus = Literal["active", "updated", "error", "removed"]
HealthStatus = Literal["healthy", "warning", "error"]
JobStatus = Literal["pending", "processing", "completed", "failed", "cancelled"]


# ============================================================================
# Content Types
# ============================================================================


class ContentTypeInfo(BaseModel):
    """Immutable media type descriptor produced by the classifier."""

    model_config = ConfigDict(frozen=True)

    mime_type: str
    extension: str
    is_binary: bool = True
    is_text: bool = False
    is_archive: bool = False
    is_document: bool = False
    is_image: bool = False
    is_audio: bool = False
    is_video: bool = False
    is_font: bool = False
    description: str = ""


# ============================================================================
# Content Blocks
# ============================================================================


class BlockMetadata(BaseModel):
    """Timestamps and version of a content block."""

    created: datetime = Field(default_factory=utc_now)
    modified: datetime = Field(default_factory=utc_now)
    version: int = Field(default=1, ge=1)
    heading: str | None = None  # section heading the block was found under
    extra: dict[str, Any] = Field(default_factory=dict)


class ContentBlock(BaseModel):
    """A single normalized unit of extracted content.

    The payload in ``content`` depends on ``type``: text blocks carry
    ``{"text": ...}``, code blocks ``{"language": ..., "code": ...}`` and
    image blocks ``{"src": ..., "alt": ..., "caption": ...}``.
    """

    id: str = Field(default_factory=lambda: new_id("blk_"))
    type: BlockType
    content: dict[str, Any] = Field(default_factory=dict)
    metadata: BlockMetadata = Field(default_factory=BlockMetadata)

    def edit(self, content: dict[str, Any]) -> ContentBlock:
        """Return a copy with new content, a fresh modification time and a bumped version."""
        now = max(utc_now(), self.metadata.modified)
        metadata = self.metadata.model_copy(
            update={"modified": now, "version": self.metadata.version + 1}
        )
        return self.model_copy(update={"content": dict(content), "metadata": metadata})

    @property
    def text(self) -> str:
        """Plain text of the block, if it has any."""
        if self.type == "text":
            return self.content.get("text", "")
        if self.type == "code":
            return self.content.get("code", "")
        if self.type == "image":
            return self.content.get("alt") or self.content.get("caption") or ""
        return ""


# ============================================================================
# Fetched Content
# ============================================================================


class StructuredData(BaseModel):
    """Machine readable payloads embedded in a page."""

    json_ld: list[Any] = Field(default_factory=list)
    opengraph: dict[str, str] = Field(default_factory=dict)
    twitter: dict[str, str] = Field(default_factory=dict)
    microdata: list[dict[str, Any]] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.json_ld or self.opengraph or self.twitter or self.microdata)


class WebContentMetadata(BaseModel):
    """Descriptive metadata of a fetched document."""

    url: str = ""
    title: str = ""
    description: str | None = None
    author: str | None = None
    published_date: str | None = None
    modified_date: str | None = None
    language: str | None = None
    canonical_url: str | None = None
    site_name: str | None = None
    tags: list[str] = Field(default_factory=list)
    image: str | None = None
    content_type: str | None = None
    page_type: str | None = None  # e.g. "repository", "issue" for known sites
    domain: str = ""
    category: str = "general"
    links: list[str] = Field(default_factory=list)
    word_count: int = 0
    reading_time: int = 0
    structured_data: StructuredData | None = None


class WebContentError(BaseModel):
    """Error descriptor attached to a failed fetch."""

    message: str
    code: ErrorCode
    status_code: int | None = None
    details: str | None = None


class WebContent(BaseModel):
    """Result of fetching one URL. Immutable once returned by the fetcher."""

    model_config = ConfigDict(frozen=True)

    id: str
    url: str
    final_url: str | None = None
    metadata: WebContentMetadata = Field(default_factory=WebContentMetadata)
    text: str = ""
    html: str | None = None
    blocks: list[ContentBlock] = Field(default_factory=list)
    status_code: int | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    content_type: ContentTypeInfo | None = None
    error: WebContentError | None = None
    fetched_at: datetime = Field(default_factory=utc_now)
    processing_time: float = 0.0  # milliseconds
    from_cache: bool = False
    extractor: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


# ============================================================================
# Extraction
# ============================================================================


class ExtractionOptions(BaseModel):
    """Switches controlling what extractors emit."""

    main_content_only: bool = True
    include_images: bool = True
    include_links: bool = False
    include_metadata: bool = True
    include_structured_data: bool = True


class ExtractionResult(BaseModel):
    """Outcome of running one extractor on a raw payload."""

    success: bool
    extractor: str
    url: str
    text: str = ""
    html: str | None = None
    metadata: WebContentMetadata = Field(default_factory=WebContentMetadata)
    blocks: list[ContentBlock] = Field(default_factory=list)
    error: str | None = None


class FetchOptions(BaseModel):
    """Per-call fetch overrides. Unset fields fall back to configuration."""

    timeout: float | None = Field(default=None, gt=0)  # seconds per attempt
    retries: int | None = Field(default=None, ge=0)
    retry_base_delay: float | None = Field(default=None, ge=0)
    user_agent: str | None = None
    use_cache: bool = True
    cache_ttl: float | None = Field(default=None, gt=0)  # seconds
    use_headless_browser: bool = False
    extraction: ExtractionOptions = Field(default_factory=ExtractionOptions)


# ============================================================================
# Sources
# ============================================================================


class SourceMetadata(BaseModel):
    """Descriptive metadata of an imported source."""

    author: str | None = None
    publish_date: str | None = None
    last_modified: str | None = None
    domain: str = ""
    content_type: str = "article"
    language: str = "en"
    reading_time: int = 0
    word_count: int = 0
    keywords: list[str] = Field(default_factory=list)
    description: str | None = None
    license: str | None = None
    attribution: str | None = None
    tags: list[str] = Field(default_factory=list)
    category: str = "web-content"
    content_hash: str | None = None


class SourceUsage(BaseModel):
    """How often a source is referenced by generated learning modules."""

    times_referenced: int = 0
    last_accessed: datetime | None = None
    generated_modules: list[str] = Field(default_factory=list)


class WebContentSource(BaseModel):
    """Durable record of one imported origin URL."""

    id: str = Field(default_factory=lambda: new_id("src_"))
    url: str
    final_url: str | None = None
    domain: str
    title: str
    import_date: datetime = Field(default_factory=utc_now)
    last_checked: datetime = Field(default_factory=utc_now)
    status: SourceStatus = "active"
    metadata: SourceMetadata = Field(default_factory=SourceMetadata)
    usage: SourceUsage = Field(default_factory=SourceUsage)

    @property
    def is_live(self) -> bool:
        return self.status != "removed"


class SourceFilters(BaseModel):
    """Filters for listing sources."""

    domain: str | None = None
    category: str | None = None
    status: SourceStatus | None = None
    tags: list[str] = Field(default_factory=list)
    include_removed: bool = False
    limit: int = Field(default=50, ge=1)
    offset: int = Field(default=0, ge=0)


class SourceListResult(BaseModel):
    sources: list[WebContentSource] = Field(default_factory=list)
    total: int = 0
    filtered: int = 0


class SourceUpdate(BaseModel):
    """Fields that may be changed on an existing source."""

    title: str | None = None
    final_url: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    keywords: list[str] | None = None
    description: str | None = None
    status: SourceStatus | None = None
    content_hash: str | None = None
    word_count: int | None = None
    reading_time: int | None = None


class FieldChange(BaseModel):
    """Before/after value of one changed field."""

    field: str
    before: Any = None
    after: Any = None


class SourceUpdateResult(BaseModel):
    source_id: str
    success: bool
    has_changes: bool = False
    changes: list[FieldChange] = Field(default_factory=list)
    error: str | None = None
    updated_at: datetime = Field(default_factory=utc_now)


class AddSourceResult(BaseModel):
    source_id: str
    source: WebContentSource
    is_duplicate: bool = False
    duplicate_of: str | None = None


class RemoveSourceResult(BaseModel):
    source_id: str
    removed: bool
    source: WebContentSource | None = None


class SourceValidationResult(BaseModel):
    source_id: str
    valid: bool
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class HealthCheckFilters(BaseModel):
    """Selects which sources a health check pass probes."""

    source_ids: list[str] = Field(default_factory=list)
    domain: str | None = None
    category: str | None = None
    last_checked_before: datetime | None = None


class SourceHealthCheck(BaseModel):
    source_id: str
    url: str
    status: HealthStatus
    last_checked: datetime = Field(default_factory=utc_now)
    response_time: float | None = None  # milliseconds
    status_code: int | None = None
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


class HealthCheckSummary(BaseModel):
    total: int = 0
    healthy: int = 0
    warning: int = 0
    error: int = 0


class HealthCheckReport(BaseModel):
    results: list[SourceHealthCheck] = Field(default_factory=list)
    summary: HealthCheckSummary = Field(default_factory=HealthCheckSummary)


class DuplicateMatch(BaseModel):
    id: str
    similarity: float
    reason: str


class MergeSuggestion(BaseModel):
    action: Literal["merge", "keep"] = "merge"
    confidence: float
    reasoning: str


class DuplicateGroup(BaseModel):
    source_id: str
    duplicates: list[DuplicateMatch] = Field(default_factory=list)
    suggestions: list[MergeSuggestion] = Field(default_factory=list)


class DuplicateSummary(BaseModel):
    total_sources: int = 0
    duplicate_groups: int = 0
    duplicate_sources: int = 0


class DuplicateDetectionResult(BaseModel):
    duplicates: list[DuplicateGroup] = Field(default_factory=list)
    summary: DuplicateSummary = Field(default_factory=DuplicateSummary)


class SourceStatistics(BaseModel):
    total: int = 0
    by_domain: dict[str, int] = Field(default_factory=dict)
    by_category: dict[str, int] = Field(default_factory=dict)
    by_status: dict[str, int] = Field(default_factory=dict)
    recently_added: int = 0  # last 7 days
    recently_updated: int = 0  # last 24 hours


# ============================================================================
# Batch Jobs
# ============================================================================


class BatchOptions(BaseModel):
    """Options for one batch import."""

    concurrency: int | None = Field(default=None, ge=1)
    timeout: float | None = Field(default=None, gt=0)
    retries: int | None = Field(default=None, ge=0)
    use_cache: bool = True
    category: str = "web-content"
    tags: list[str] = Field(default_factory=list)


class BatchProgress(BaseModel):
    total: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 100.0
        return round(100.0 * self.processed / self.total, 1)


class BatchItemResult(BaseModel):
    """Outcome of one URL within a batch."""

    url: str
    success: bool
    content_id: str | None = None
    source_id: str | None = None
    is_duplicate: bool = False
    title: str | None = None
    block_count: int = 0
    error: str | None = None
    error_code: ErrorCode | None = None
    processed_at: datetime = Field(default_factory=utc_now)


class BatchProcessingJob(BaseModel):
    """One orchestrated run over a list of URLs. Mutated only by its orchestrator."""

    id: str = Field(default_factory=lambda: new_id("job_"))
    urls: list[str]
    options: BatchOptions = Field(default_factory=BatchOptions)
    status: JobStatus = "pending"
    progress: BatchProgress = Field(default_factory=BatchProgress)
    results: list[BatchItemResult] = Field(default_factory=list)
    error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in ("completed", "failed", "cancelled")


class BatchJobFilters(BaseModel):
    status: JobStatus | None = None
    created_after: datetime | None = None
    limit: int = Field(default=50, ge=1)


class ProcessingStats(BaseModel):
    total_jobs: int = 0
    active_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    cancelled_jobs: int = 0
    total_urls: int = 0
    successful_urls: int = 0
    failed_urls: int = 0
    success_rate: float = 0.0


# ============================================================================
# Quality Validation & Tool Envelope
# ============================================================================


QualityCheck = Literal["readability", "accessibility", "interactivity", "accuracy"]


class QualityScores(BaseModel):
    readability: float | None = None
    accessibility: float | None = None
    interactivity: float | None = None
    accuracy: float | None = None
    overall: float = 0.0


class ContentValidationResult(BaseModel):
    id: str
    validated_at: datetime = Field(default_factory=utc_now)
    success: bool = True
    checks: list[QualityCheck] = Field(default_factory=list)
    scores: QualityScores = Field(default_factory=QualityScores)
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    validation_steps: list[str] = Field(default_factory=list)


class ToolResponse(BaseModel):
    """Envelope returned by every tool call. Failures never raise."""

    success: bool
    data: Any = None
    error: str | None = None
    code: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)
