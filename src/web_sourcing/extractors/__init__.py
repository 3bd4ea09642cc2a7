"""Content extractors for web-sourcing."""

from web_sourcing.extractors.base import BaseExtractor
from web_sourcing.extractors.github_extractor import GitHubExtractor
from web_sourcing.extractors.html_extractor import HTMLExtractor
from web_sourcing.extractors.json_extractor import JSONExtractor
from web_sourcing.extractors.registry import ExtractorRegistry, create_default_registry
from web_sourcing.extractors.text_extractor import TextExtractor

__all__ = [
    "BaseExtractor",
    "ExtractorRegistry",
    "GitHubExtractor",
    "HTMLExtractor",
    "JSONExtractor",
    "TextExtractor",
    "create_default_registry",
]
