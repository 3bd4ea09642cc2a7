"""Tests for the extractor registry."""

from datetime import datetime

import pytest

from web_sourcing.extractors import (
    BaseExtractor,
    ExtractorRegistry,
    GitHubExtractor,
    HTMLExtractor,
    JSONExtractor,
    TextExtractor,
    create_default_registry,
)
from web_sourcing.models import ExtractionOptions, ExtractionResult


class ExplodingExtractor(BaseExtractor):
    """Claims HTML and always fails."""

    name = "exploding"
    content_types = ("text/html",)

    def extract(
        self,
        raw,
        url,
        options: ExtractionOptions | None = None,
        content_type: str | None = None,
        fetched_at: datetime | None = None,
    ) -> ExtractionResult:
        raise RuntimeError("boom")


class DocsExtractor(BaseExtractor):
    """Handles any content on a wildcard domain."""

    name = "docs"
    content_types = ("text/*",)
    domains = ("*.readthedocs.io",)

    def extract(self, raw, url, options=None, content_type=None, fetched_at=None) -> ExtractionResult:
        return self._result(url, "docs", [], self._base_metadata(url, content_type))


@pytest.fixture
def default_registry(config):
    return create_default_registry(config)


class TestRegistration:
    """Tests for registering and looking up extractors."""

    def test_default_order(self, default_registry):
        names = [e.name for e in default_registry.all()]
        assert names == ["github", "html", "json", "text"]

    def test_duplicate_name_rejected(self, default_registry, config):
        assert default_registry.register(HTMLExtractor(config)) is False
        assert len(default_registry.all()) == 4

    def test_unregister(self, default_registry):
        assert default_registry.unregister("json") is True
        assert default_registry.unregister("json") is False
        assert default_registry.get("json") is None

    def test_get_fallback(self, default_registry):
        assert isinstance(default_registry.get("text"), TextExtractor)

    def test_custom_fallback(self, config):
        fallback = JSONExtractor(config)
        registry = ExtractorRegistry(fallback=fallback)
        assert registry.find("https://example.com", "text/plain") is fallback


class TestFind:
    """Tests for first-match dispatch."""

    def test_html(self, default_registry):
        assert isinstance(default_registry.find("https://example.com/a", "text/html"), HTMLExtractor)
        assert not isinstance(default_registry.find("https://example.com/a", "text/html"), GitHubExtractor)

    def test_github_before_html(self, default_registry):
        extractor = default_registry.find("https://github.com/owner/repo", "text/html")
        assert isinstance(extractor, GitHubExtractor)

    def test_github_subdomain(self, default_registry):
        extractor = default_registry.find("https://gist.github.com/owner/abc", "text/html")
        assert isinstance(extractor, GitHubExtractor)

    def test_json(self, default_registry):
        assert isinstance(default_registry.find("https://api.example.com", "application/json"), JSONExtractor)
        assert isinstance(default_registry.find("https://api.example.com", "application/vnd.api+json"), JSONExtractor)

    def test_fallback_for_unknown(self, default_registry):
        assert isinstance(default_registry.find("https://example.com/a.pdf", "application/pdf"), TextExtractor)
        assert isinstance(default_registry.find("https://example.com/a", None), TextExtractor)

    def test_wildcard_domain_and_type(self, config):
        registry = ExtractorRegistry(config=config)
        registry.register(DocsExtractor(config))

        assert registry.find("https://project.readthedocs.io/en/latest", "text/markdown").name == "docs"
        assert registry.find("https://readthedocs.io", "text/markdown").name == "text"
        assert registry.find("https://project.readthedocs.io", "application/json").name == "text"

    def test_first_registered_wins(self, config):
        registry = ExtractorRegistry(config=config)
        registry.register(ExplodingExtractor(config))
        registry.register(HTMLExtractor(config))
        assert registry.find("https://example.com", "text/html").name == "exploding"


class TestExtract:
    """Tests for ExtractorRegistry.extract."""

    def test_dispatches_html(self, default_registry, minimal_html):
        result = default_registry.extract(minimal_html, "https://example.com/", content_type="text/html")

        assert result.success
        assert result.extractor == "html"
        assert result.metadata.title == "T"

    def test_classifies_when_type_missing(self, default_registry, minimal_html):
        result = default_registry.extract(minimal_html, "https://example.com/")
        assert result.extractor == "html"

    def test_classifies_json_payload(self, default_registry):
        result = default_registry.extract(b'{"title": "Data"}', "https://example.com/api")

        assert result.extractor == "json"
        assert result.metadata.title == "Data"

    def test_extractor_failure_is_contained(self, config, minimal_html):
        registry = ExtractorRegistry(config=config)
        registry.register(ExplodingExtractor(config))

        result = registry.extract(minimal_html, "https://www.example.com/page", content_type="text/html")

        assert result.success is False
        assert result.extractor == "exploding"
        assert result.error == "RuntimeError: boom"
        assert result.blocks == []
        assert result.metadata.domain == "example.com"
        assert result.metadata.content_type == "unknown"
        assert result.metadata.language == "en"
        assert result.metadata.category == "general"

    def test_invalid_json_fails_softly(self, default_registry):
        result = default_registry.extract("{broken", "https://example.com/api", content_type="application/json")

        assert result.success is False
        assert result.extractor == "json"
