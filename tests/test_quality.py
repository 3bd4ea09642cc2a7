"""Tests for content quality assessment."""

import pytest

from web_sourcing.models import BlockMetadata, ContentBlock, StructuredData
from web_sourcing.quality import assess_content_quality


def image(alt: str = "") -> ContentBlock:
    return ContentBlock(type="image", content={"src": "https://example.com/a.png", "alt": alt})


def table() -> ContentBlock:
    return ContentBlock(
        type="text",
        content={"text": "| a | b |"},
        metadata=BlockMetadata(extra={"format": "table"}),
    )


class TestDefaultChecks:
    """Tests for the default readability and accessibility checks."""

    def test_short_content(self, sample_content):
        result = assess_content_quality(sample_content)

        assert result.id == sample_content.id
        assert result.checks == ["readability", "accessibility"]
        assert result.validation_steps == ["readability", "accessibility"]
        assert result.scores.readability == 0.3
        assert result.scores.accessibility == 0.6
        assert result.scores.interactivity is None
        assert result.scores.accuracy is None
        assert result.scores.overall == pytest.approx(0.3)
        assert result.issues == ["Content is short; may lack depth."]

    def test_long_content_with_headings(self, content_factory):
        text = " ".join(["word"] * 900)
        content = content_factory(
            text=text,
            blocks=[ContentBlock(type="text", content={"text": text}, metadata=BlockMetadata(heading="Intro"))],
        )

        result = assess_content_quality(content, ["readability"])

        assert result.scores.readability == 1.0
        assert result.issues == []

    def test_headings_from_html(self, content_factory):
        content = content_factory().model_copy(update={"html": "<h2 id='x'>Part</h2><p>Some article text.</p>"})

        result = assess_content_quality(content, ["readability"])

        assert result.scores.readability == 0.5

    def test_missing_alt_text(self, content_factory):
        content = content_factory(blocks=[image("A chart"), image()])

        result = assess_content_quality(content, ["accessibility"])

        assert result.scores.accessibility == 0.5
        assert result.issues == ["Some images are missing alt text."]
        assert result.suggestions == ["Add descriptive alt text to all images."]


class TestOptionalChecks:
    """Tests for interactivity and accuracy."""

    def test_interactivity(self, content_factory):
        code = ContentBlock(type="code", content={"language": "python", "code": "pass"})
        content = content_factory(blocks=[image("x"), code, table()])

        result = assess_content_quality(content, ["interactivity"])

        assert result.scores.interactivity == pytest.approx(0.8)
        assert result.issues == []

    def test_chart_blocks(self, content_factory):
        content = content_factory(blocks=[ContentBlock(type="interactive-chart", content={})])

        result = assess_content_quality(content, ["interactivity"])

        assert result.scores.interactivity == pytest.approx(0.3)

    def test_plain_text_not_interactive(self, sample_content):
        result = assess_content_quality(sample_content, ["interactivity"])

        assert result.scores.interactivity == pytest.approx(0.1)
        assert result.issues == ["No obvious interactive elements detected."]

    def test_accuracy_attributed(self, content_factory):
        content = content_factory(
            author="Jane",
            published_date="2024-03-01",
            structured_data=StructuredData(json_ld=[{"@type": "Article"}]),
        )

        result = assess_content_quality(content, ["accuracy"])

        assert result.scores.accuracy == 1.0
        assert result.scores.overall == 1.0
        assert result.issues == []

    def test_accuracy_unattributed(self, sample_content):
        result = assess_content_quality(sample_content, ["accuracy"])

        assert result.scores.accuracy == 0.4
        assert result.issues == ["Author or publication date not found."]

    def test_empty_structured_data_ignored(self, content_factory):
        content = content_factory(structured_data=StructuredData())
        assert assess_content_quality(content, ["accuracy"]).scores.accuracy == 0.4

    def test_all_checks_overall(self, sample_content):
        result = assess_content_quality(
            sample_content, ["readability", "accessibility", "interactivity", "accuracy"]
        )

        # 0.3 * 0.4 + 0.6 * 0.3 + 0.1 * 0.3
        assert result.scores.overall == pytest.approx(0.33)

    def test_duplicate_checks_collapsed(self, sample_content):
        result = assess_content_quality(sample_content, ["readability", "readability"])
        assert result.checks == ["readability"]

    def test_unknown_check(self, sample_content):
        with pytest.raises(ValueError, match="Unknown quality checks: grammar"):
            assess_content_quality(sample_content, ["readability", "grammar"])
