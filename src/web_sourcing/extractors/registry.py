"""First-match extractor registry."""

from __future__ import annotations

import logging
from datetime import datetime

from web_sourcing.classifier import ContentTypeClassifier
from web_sourcing.config import Config
from web_sourcing.extractors.base import BaseExtractor
from web_sourcing.extractors.github_extractor import GitHubExtractor
from web_sourcing.extractors.html_extractor import HTMLExtractor
from web_sourcing.extractors.json_extractor import JSONExtractor
from web_sourcing.extractors.text_extractor import TextExtractor
from web_sourcing.models import ExtractionOptions, ExtractionResult, WebContentMetadata
from web_sourcing.utils import extract_domain

logger = logging.getLogger(__name__)


class ExtractorRegistry:
    """Ordered collection of extractors.

    ``find`` returns the first registered extractor whose ``can_handle``
    accepts the URL and content type. The fallback extractor is consulted
    last and always matches.
    """

    def __init__(self, fallback: BaseExtractor | None = None, config: Config | None = None):
        self._extractors: list[BaseExtractor] = []
        self.fallback = fallback or TextExtractor(config)

    def register(self, extractor: BaseExtractor) -> bool:
        """Append an extractor. Returns False if the name is already taken."""
        if self.get(extractor.name) is not None:
            logger.warning(f"Extractor {extractor.name!r} is already registered, ignoring")
            return False
        self._extractors.append(extractor)
        logger.debug(f"Registered extractor {extractor.name!r}")
        return True

    def unregister(self, name: str) -> bool:
        for index, extractor in enumerate(self._extractors):
            if extractor.name == name:
                del self._extractors[index]
                return True
        return False

    def get(self, name: str) -> BaseExtractor | None:
        for extractor in self._extractors:
            if extractor.name == name:
                return extractor
        if self.fallback.name == name:
            return self.fallback
        return None

    def all(self) -> list[BaseExtractor]:
        """Registered extractors in dispatch order, fallback last."""
        return [*self._extractors, self.fallback]

    def find(self, url: str, content_type: str | None = None) -> BaseExtractor:
        for extractor in self._extractors:
            if extractor.can_handle(url, content_type):
                return extractor
        return self.fallback

    def extract(
        self,
        raw: str | bytes,
        url: str,
        options: ExtractionOptions | None = None,
        content_type: str | None = None,
        fetched_at: datetime | None = None,
    ) -> ExtractionResult:
        """Dispatch a payload to the matching extractor.

        Never raises: an extractor error yields ``success=False`` with
        default metadata derived from the URL.

        Args:
            raw: Payload to extract.
            url: URL the payload came from.
            options: Extraction switches.
            content_type: MIME type; classified from the payload when omitted.
            fetched_at: Fetch timestamp copied into every block.

        Returns:
            ExtractionResult from the selected extractor.
        """
        if content_type is None:
            data = raw if isinstance(raw, bytes) else raw.encode("utf-8")
            content_type = ContentTypeClassifier.from_response(url, None, data).mime_type

        extractor = self.find(url, content_type)
        try:
            return extractor.extract(raw, url, options, content_type, fetched_at)
        except Exception as e:
            logger.warning(f"Extractor {extractor.name!r} failed for {url}: {e}")
            return ExtractionResult(
                success=False,
                extractor=extractor.name,
                url=url,
                metadata=WebContentMetadata(
                    url=url,
                    domain=extract_domain(url),
                    content_type="unknown",
                    language="en",
                    category="general",
                ),
                error=f"{type(e).__name__}: {e}",
            )


def create_default_registry(config: Config | None = None) -> ExtractorRegistry:
    """Registry with the built-in extractors, most specific first."""
    registry = ExtractorRegistry(config=config)
    registry.register(GitHubExtractor(config))
    registry.register(HTMLExtractor(config))
    registry.register(JSONExtractor(config))
    return registry
