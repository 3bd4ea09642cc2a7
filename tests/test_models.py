"""Tests for data models."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from web_sourcing.models import (
    BatchOptions,
    BatchProcessingJob,
    BatchProgress,
    ContentBlock,
    ErrorCode,
    FetchOptions,
    StructuredData,
    ToolResponse,
    WebContent,
    WebContentError,
    WebContentSource,
)


class TestErrorCode:
    """Tests for ErrorCode."""

    def test_retryable(self):
        assert ErrorCode.NETWORK_ERROR.retryable
        assert ErrorCode.TIMEOUT.retryable
        assert not ErrorCode.HTTP_ERROR.retryable
        assert not ErrorCode.VALIDATION_ERROR.retryable
        assert not ErrorCode.EXTRACTION_ERROR.retryable

    def test_string_value(self):
        assert ErrorCode("HTTP_ERROR") is ErrorCode.HTTP_ERROR
        assert ErrorCode.NOT_FOUND == "NOT_FOUND"


class TestContentBlock:
    """Tests for ContentBlock."""

    def test_defaults(self):
        block = ContentBlock(type="text", content={"text": "Hello"})

        assert block.id.startswith("blk_")
        assert block.metadata.version == 1
        assert block.metadata.modified >= block.metadata.created
        assert block.text == "Hello"

    def test_ids_are_unique(self):
        assert ContentBlock(type="text").id != ContentBlock(type="text").id

    def test_invalid_type(self):
        with pytest.raises(ValidationError):
            ContentBlock(type="paragraph")

    def test_version_must_be_positive(self):
        with pytest.raises(ValidationError):
            ContentBlock(type="text", metadata={"version": 0})

    def test_edit_bumps_version(self):
        block = ContentBlock(type="text", content={"text": "v1"})
        edited = block.edit({"text": "v2"})

        assert edited.id == block.id
        assert edited.metadata.version == 2
        assert edited.metadata.modified >= block.metadata.modified
        assert edited.metadata.created == block.metadata.created
        assert edited.content == {"text": "v2"}
        assert block.content == {"text": "v1"}

    def test_edit_never_moves_modified_backwards(self):
        block = ContentBlock(type="text", content={"text": "v1"})
        future = block.metadata.modified + timedelta(days=1)
        block = block.model_copy(update={"metadata": block.metadata.model_copy(update={"modified": future})})

        assert block.edit({"text": "v2"}).metadata.modified == future

    def test_text_by_type(self):
        assert ContentBlock(type="code", content={"code": "x = 1"}).text == "x = 1"
        assert ContentBlock(type="image", content={"src": "a.png", "alt": "A chart"}).text == "A chart"
        assert ContentBlock(type="quiz", content={"question": "?"}).text == ""


class TestWebContent:
    """Tests for WebContent."""

    def test_success(self):
        assert WebContent(id="abc", url="https://example.com").success

    def test_failure(self):
        content = WebContent(
            id="abc",
            url="https://example.com",
            error=WebContentError(message="HTTP 404", code=ErrorCode.HTTP_ERROR, status_code=404),
        )
        assert not content.success

    def test_frozen(self):
        content = WebContent(id="abc", url="https://example.com")
        with pytest.raises(ValidationError):
            content.text = "changed"

    def test_json_round_trip(self):
        content = WebContent(
            id="abc",
            url="https://example.com",
            blocks=[ContentBlock(type="text", content={"text": "Hi"})],
        )
        restored = WebContent.model_validate(content.model_dump(mode="json"))

        assert restored == content


class TestStructuredData:
    def test_is_empty(self):
        assert StructuredData().is_empty()
        assert not StructuredData(opengraph={"title": "T"}).is_empty()


class TestOptions:
    """Tests for option models."""

    def test_fetch_options_defaults(self):
        options = FetchOptions()

        assert options.timeout is None
        assert options.use_cache is True
        assert options.use_headless_browser is False
        assert options.extraction.main_content_only is True

    def test_fetch_options_validation(self):
        with pytest.raises(ValidationError):
            FetchOptions(timeout=0)
        with pytest.raises(ValidationError):
            FetchOptions(retries=-1)

    def test_batch_concurrency_must_be_positive(self):
        with pytest.raises(ValidationError):
            BatchOptions(concurrency=0)


class TestSourceAndJobs:
    """Tests for source and batch job models."""

    def test_source_defaults(self):
        source = WebContentSource(url="https://example.com", domain="example.com", title="Example")

        assert source.id.startswith("src_")
        assert source.status == "active"
        assert source.is_live
        assert source.metadata.category == "web-content"
        assert source.usage.times_referenced == 0

    def test_removed_source_is_not_live(self):
        source = WebContentSource(url="https://example.com", domain="example.com", title="E", status="removed")
        assert not source.is_live

    def test_progress(self):
        progress = BatchProgress(total=4, completed=2, failed=1)

        assert progress.processed == 3
        assert progress.percentage == 75.0
        assert BatchProgress().percentage == 100.0

    def test_job_defaults(self):
        job = BatchProcessingJob(urls=["https://a.com"])

        assert job.id.startswith("job_")
        assert job.status == "pending"
        assert not job.is_finished

    def test_tool_response(self):
        response = ToolResponse(success=False, error="Content not found: x", code="NOT_FOUND")

        assert response.data is None
        assert response.timestamp is not None
