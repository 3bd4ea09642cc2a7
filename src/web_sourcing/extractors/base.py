"""Abstract base class for content extractors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from web_sourcing.classifier import normalize_mime_type
from web_sourcing.config import Config, get_config
from web_sourcing.domains import category_for_url
from web_sourcing.models import (
    BlockMetadata,
    BlockType,
    ContentBlock,
    ExtractionOptions,
    ExtractionResult,
    WebContentMetadata,
)
from web_sourcing.utils import count_words, estimate_reading_time, extract_domain, utc_now

WILDCARD = "*"


class BaseExtractor(ABC):
    """Abstract base class for content extractors.

    An extractor declares the content types and domains it handles. Empty
    ``domains`` means any domain; ``"*"`` in ``content_types`` means any type,
    and ``"text/*"`` style entries match a whole top-level type.
    """

    name: str = "base"
    content_types: tuple[str, ...] = ()
    domains: tuple[str, ...] = ()

    def __init__(self, config: Config | None = None):
        """Initialize the extractor.

        Args:
            config: Configuration object. If None, loads from default location.
        """
        self.config = config or get_config()

    def can_handle(self, url: str, content_type: str | None = None) -> bool:
        """Check if this extractor can handle the given URL and content type.

        Args:
            url: Source URL of the payload.
            content_type: MIME type of the payload, parameters allowed.

        Returns:
            True if both the domain and the content type are supported.
        """
        return self._matches_domain(url) and self._matches_content_type(content_type)

    @abstractmethod
    def extract(
        self,
        raw: str | bytes,
        url: str,
        options: ExtractionOptions | None = None,
        content_type: str | None = None,
        fetched_at: datetime | None = None,
    ) -> ExtractionResult:
        """Extract content blocks and metadata from a raw payload.

        Args:
            raw: Response body.
            url: URL the payload was fetched from.
            options: Extraction switches.
            content_type: Detected MIME type of the payload.
            fetched_at: Fetch timestamp copied into every block.

        Returns:
            ExtractionResult with ordered blocks.
        """
        ...

    def _matches_domain(self, url: str) -> bool:
        if not self.domains:
            return True
        host = extract_domain(url)
        if not host:
            return False
        for domain in self.domains:
            if domain.startswith("*."):
                if host.endswith(domain[1:]):
                    return True
            elif host == domain or host.endswith("." + domain):
                return True
        return False

    def _matches_content_type(self, content_type: str | None) -> bool:
        if WILDCARD in self.content_types:
            return True
        mime_type = normalize_mime_type(content_type)
        if not mime_type:
            return False
        for supported in self.content_types:
            if supported.endswith("/*"):
                if mime_type.startswith(supported[:-1]):
                    return True
            elif mime_type == supported:
                return True
        return False

    @staticmethod
    def _decode(raw: str | bytes) -> str:
        if isinstance(raw, bytes):
            return raw.decode("utf-8", errors="replace")
        return raw

    @staticmethod
    def _block(
        block_type: BlockType,
        content: dict[str, Any],
        timestamp: datetime,
        heading: str | None = None,
        **extra: Any,
    ) -> ContentBlock:
        """Create a block stamped with the fetch time."""
        return ContentBlock(
            type=block_type,
            content=content,
            metadata=BlockMetadata(created=timestamp, modified=timestamp, heading=heading, extra=extra),
        )

    def _base_metadata(self, url: str, content_type: str | None) -> WebContentMetadata:
        return WebContentMetadata(
            url=url,
            domain=extract_domain(url),
            content_type=normalize_mime_type(content_type) or None,
            category=category_for_url(url),
        )

    def _result(
        self,
        url: str,
        text: str,
        blocks: list[ContentBlock],
        metadata: WebContentMetadata,
        html: str | None = None,
    ) -> ExtractionResult:
        """Assemble a successful result, filling in word count and reading time."""
        words = count_words(text)
        metadata = metadata.model_copy(
            update={"word_count": words, "reading_time": estimate_reading_time(words)}
        )
        return ExtractionResult(
            success=True,
            extractor=self.name,
            url=url,
            text=text,
            html=html,
            metadata=metadata,
            blocks=blocks,
        )

    @staticmethod
    def _timestamp(fetched_at: datetime | None) -> datetime:
        return fetched_at or utc_now()
