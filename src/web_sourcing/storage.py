"""Persistence sinks for fetched content and source records."""

from __future__ import annotations

from typing import Protocol

from web_sourcing.models import WebContent, WebContentSource


class ContentStore(Protocol):
    """Where the pipeline hands off finished records."""

    async def save_content(self, content: WebContent) -> None: ...

    async def get_content(self, content_id: str) -> WebContent | None: ...

    async def save_source(self, source: WebContentSource) -> None: ...


class NullContentStore:
    """Stores nothing. For headless runs that only need return values."""

    async def save_content(self, content: WebContent) -> None:
        return None

    async def get_content(self, content_id: str) -> WebContent | None:
        return None

    async def save_source(self, source: WebContentSource) -> None:
        return None


class MemoryContentStore:
    """Keeps the latest version of each record in memory."""

    def __init__(self) -> None:
        self.contents: dict[str, WebContent] = {}
        self.sources: dict[str, WebContentSource] = {}

    async def save_content(self, content: WebContent) -> None:
        self.contents[content.id] = content

    async def get_content(self, content_id: str) -> WebContent | None:
        return self.contents.get(content_id)

    async def save_source(self, source: WebContentSource) -> None:
        self.sources[source.id] = source.model_copy(deep=True)
