"""web-sourcing: Web content acquisition and normalization library."""

from web_sourcing.batch import BatchOrchestrator
from web_sourcing.cache import FileContentCache, MemoryContentCache
from web_sourcing.classifier import ContentTypeClassifier
from web_sourcing.config import Config, get_config, load_config
from web_sourcing.extractors import ExtractorRegistry, create_default_registry
from web_sourcing.fetcher import WebContentFetcher
from web_sourcing.models import (
    BatchProcessingJob,
    ContentBlock,
    ErrorCode,
    FetchOptions,
    ToolResponse,
    WebContent,
    WebContentSource,
)
from web_sourcing.pipeline import WebContentPipeline
from web_sourcing.sources import SourceRegistry

__version__ = "0.1.0"

__all__ = [
    # Entry points
    "WebContentPipeline",
    "WebContentFetcher",
    "SourceRegistry",
    "BatchOrchestrator",
    # Classification and extraction
    "ContentTypeClassifier",
    "ExtractorRegistry",
    "create_default_registry",
    # Caches
    "FileContentCache",
    "MemoryContentCache",
    # Models
    "WebContent",
    "ContentBlock",
    "WebContentSource",
    "BatchProcessingJob",
    "FetchOptions",
    "ToolResponse",
    "ErrorCode",
    # Config
    "Config",
    "get_config",
    "load_config",
    # Version
    "__version__",
]
