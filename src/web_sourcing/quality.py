"""Heuristic content quality assessment."""

from __future__ import annotations

import re
from collections.abc import Sequence

from web_sourcing.models import ContentValidationResult, QualityCheck, QualityScores, WebContent
from web_sourcing.utils import count_words

DEFAULT_CHECKS: tuple[QualityCheck, ...] = ("readability", "accessibility")
VALID_CHECKS: frozenset[str] = frozenset({"readability", "accessibility", "interactivity", "accuracy"})

_HEADING_RE = re.compile(r"<h[1-6][^>]*>", re.IGNORECASE)
_CHART_TYPES = {"interactive-chart", "interactive-visualization", "diagram", "simulation"}


def _clamp(value: float, low: float = 0.1, high: float = 1.0) -> float:
    return round(max(low, min(high, value)), 4)


def assess_content_quality(
    content: WebContent, checks: Sequence[str] | None = None
) -> ContentValidationResult:
    """Score fetched content on the requested checks.

    Readability rewards length and headings, accessibility is the share of
    images with alt text, interactivity rewards images, code, tables and
    charts, and accuracy rewards attribution (author, date, canonical URL).
    ``overall`` weights readability 0.4, accessibility 0.3 and
    interactivity 0.3 over the checks that were run.

    Args:
        content: Content to assess.
        checks: Check names, defaults to readability and accessibility.

    Returns:
        ContentValidationResult with scores, issues and suggestions.

    Raises:
        ValueError: If an unknown check is requested.
    """
    selected = list(dict.fromkeys(checks or DEFAULT_CHECKS))
    unknown = [check for check in selected if check not in VALID_CHECKS]
    if unknown:
        raise ValueError(f"Unknown quality checks: {', '.join(unknown)}")

    text = content.text or ""
    word_count = content.metadata.word_count or count_words(text)
    blocks = content.blocks
    images = [b for b in blocks if b.type == "image"]
    images_with_alt = [b for b in images if (b.content.get("alt") or "").strip()]
    has_headings = bool(_HEADING_RE.search(content.html or "")) or any(b.metadata.heading for b in blocks)
    has_code = any(b.type == "code" for b in blocks)
    has_tables = any(b.metadata.extra.get("format") == "table" for b in blocks)
    has_charts = any(b.type in _CHART_TYPES for b in blocks)

    readability = _clamp(
        (0.3 if word_count > 200 else 0.15)
        + (0.3 if word_count > 800 else 0.1)
        + (0.2 if has_headings else 0)
        + (0.2 if len(text) > 2000 else 0.05)
    )
    interactivity = _clamp(
        (0.2 if images else 0) + (0.3 if has_code else 0) + (0.2 if has_tables else 0) + (0.3 if has_charts else 0.1)
    )
    accessibility = _clamp(len(images_with_alt) / len(images)) if images else 0.6

    metadata = content.metadata
    has_structured = metadata.structured_data is not None and not metadata.structured_data.is_empty()
    accuracy = _clamp(
        0.4
        + (0.2 if metadata.author else 0)
        + (0.2 if metadata.published_date or metadata.modified_date else 0)
        + (0.2 if metadata.canonical_url or has_structured else 0)
    )

    included = set(selected)
    overall = (
        (readability * 0.4 if "readability" in included else 0)
        + (accessibility * 0.3 if "accessibility" in included else 0)
        + (interactivity * 0.3 if "interactivity" in included else 0)
    )
    if not overall:
        overall = accuracy if included == {"accuracy"} else readability

    issues: list[str] = []
    suggestions: list[str] = []
    if "readability" in included and word_count < 300:
        issues.append("Content is short; may lack depth.")
        suggestions.append("Add more explanatory text and examples.")
    if "accessibility" in included and images and len(images_with_alt) < len(images):
        issues.append("Some images are missing alt text.")
        suggestions.append("Add descriptive alt text to all images.")
    if "interactivity" in included and not (has_tables or has_code or has_charts):
        issues.append("No obvious interactive elements detected.")
        suggestions.append("Consider adding charts, code playgrounds, or interactive widgets.")
    if "accuracy" in included and not (metadata.author and (metadata.published_date or metadata.modified_date)):
        issues.append("Author or publication date not found.")
        suggestions.append("Verify the content against an attributed, dated source.")

    return ContentValidationResult(
        id=content.id,
        checks=selected,
        scores=QualityScores(
            readability=readability if "readability" in included else None,
            accessibility=accessibility if "accessibility" in included else None,
            interactivity=interactivity if "interactivity" in included else None,
            accuracy=accuracy if "accuracy" in included else None,
            overall=round(overall, 4),
        ),
        issues=issues,
        suggestions=suggestions,
        validation_steps=selected,
    )
