"""Time-to-live caches for fetched web content."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
import weakref
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from web_sourcing.models import WebContent

logger = logging.getLogger(__name__)

DEFAULT_TTL = 7 * 24 * 3600.0


class ContentCache(Protocol):
    """Cache of WebContent keyed by content identifier."""

    async def get(self, content_id: str) -> WebContent | None: ...

    async def set(self, content: WebContent, ttl: float | None = None) -> None: ...

    async def delete(self, content_id: str) -> None: ...

    async def clear(self) -> None: ...


class MemoryContentCache:
    """In-process cache, mostly useful for tests and short-lived runs."""

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[WebContent, float]] = {}

    async def get(self, content_id: str) -> WebContent | None:
        entry = self._entries.get(content_id)
        if entry is None:
            return None
        content, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[content_id]
            return None
        return content

    async def set(self, content: WebContent, ttl: float | None = None) -> None:
        self._entries[content.id] = (content, self._clock() + (ttl or self.ttl))

    async def delete(self, content_id: str) -> None:
        self._entries.pop(content_id, None)

    async def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class FileContentCache:
    """One JSON file per content identifier.

    Each file holds ``{"data": <WebContent>, "expiresAt": <epoch millis>}``.
    Files are written to a temporary name and renamed into place so readers
    never see a partial entry. Writers to the same key are serialized.
    """

    def __init__(
        self,
        directory: str | Path = "./.cache/web-content",
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.directory = Path(directory).expanduser()
        self.ttl = ttl
        self._clock = clock
        # Entries vanish once no reader or writer holds the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def path_for(self, content_id: str) -> Path:
        return self.directory / f"{content_id}.json"

    def _lock(self, content_id: str) -> asyncio.Lock:
        lock = self._locks.get(content_id)
        if lock is None:
            lock = self._locks[content_id] = asyncio.Lock()
        return lock

    async def get(self, content_id: str) -> WebContent | None:
        """Return the cached content, or None when missing, expired or unreadable."""
        path = self.path_for(content_id)
        async with self._lock(content_id):
            entry = await asyncio.to_thread(self._read, path)
            if entry is None:
                return None

            expires_at = _expiry(entry)
            if expires_at is None:
                logger.warning(f"Discarding cache entry {path} without a numeric expiresAt")
                await asyncio.to_thread(self._unlink, path)
                return None
            if expires_at <= self._clock() * 1000:
                logger.debug(f"Cache entry {content_id} expired")
                await asyncio.to_thread(self._unlink, path)
                return None

            try:
                return WebContent.model_validate(entry["data"])
            except (KeyError, ValidationError) as e:
                logger.warning(f"Discarding invalid cache entry {path}: {e}")
                await asyncio.to_thread(self._unlink, path)
                return None

    async def set(self, content: WebContent, ttl: float | None = None) -> None:
        """Write an entry, last writer wins."""
        expires_at = int((self._clock() + (ttl or self.ttl)) * 1000)
        payload = {"data": content.model_dump(mode="json"), "expiresAt": expires_at}
        async with self._lock(content.id):
            await asyncio.to_thread(self._write, self.path_for(content.id), payload)
        logger.debug(f"Cached {content.url} as {content.id}")

    async def delete(self, content_id: str) -> None:
        async with self._lock(content_id):
            await asyncio.to_thread(self._unlink, self.path_for(content_id))

    async def clear(self) -> None:
        if not self.directory.exists():
            return
        for path in self.directory.glob("*.json"):
            await asyncio.to_thread(self._unlink, path)

    async def purge_expired(self) -> int:
        """Delete expired entries. Returns how many were removed."""
        if not self.directory.exists():
            return 0
        now_ms = self._clock() * 1000
        removed = 0
        for path in list(self.directory.glob("*.json")):
            entry = await asyncio.to_thread(self._read, path)
            expires_at = _expiry(entry) if entry is not None else None
            if expires_at is None or expires_at <= now_ms:
                await asyncio.to_thread(self._unlink, path)
                removed += 1
        return removed

    @staticmethod
    def _read(path: Path) -> dict[str, Any] | None:
        try:
            with open(path, encoding="utf-8") as f:
                entry = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read cache file {path}: {e}")
            return None
        return entry if isinstance(entry, dict) else None

    @staticmethod
    def _write(path: Path, payload: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f"{path.name}.{os.getpid()}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f)
        os.replace(tmp_path, path)

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


def _expiry(entry: dict[str, Any]) -> float | None:
    """The entry's expiry in epoch millis, or None when missing or not a number."""
    expires_at = entry.get("expiresAt")
    if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
        return None
    return float(expires_at)
