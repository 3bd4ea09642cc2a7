"""Tests for the content caches."""

import asyncio
import gc
import json

import pytest

from web_sourcing.cache import FileContentCache, MemoryContentCache


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def file_cache(tmp_path, clock):
    return FileContentCache(tmp_path / "cache", ttl=60, clock=clock)


class TestMemoryContentCache:
    """Tests for MemoryContentCache."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, sample_content):
        cache = MemoryContentCache()
        await cache.set(sample_content)

        assert await cache.get(sample_content.id) == sample_content
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_expiry(self, sample_content, clock):
        cache = MemoryContentCache(ttl=10, clock=clock)
        await cache.set(sample_content)

        clock.now += 9
        assert await cache.get(sample_content.id) is not None
        clock.now += 1
        assert await cache.get(sample_content.id) is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, content_factory):
        cache = MemoryContentCache()
        first = content_factory(url="https://example.com/1")
        second = content_factory(url="https://example.com/2")
        await cache.set(first)
        await cache.set(second)

        await cache.delete(first.id)
        assert await cache.get(first.id) is None
        await cache.clear()
        assert await cache.get(second.id) is None


class TestFileContentCache:
    """Tests for FileContentCache."""

    @pytest.mark.asyncio
    async def test_miss(self, file_cache):
        assert await file_cache.get("missing") is None

    @pytest.mark.asyncio
    async def test_round_trip(self, file_cache, sample_content):
        await file_cache.set(sample_content)
        cached = await file_cache.get(sample_content.id)

        assert cached == sample_content

    @pytest.mark.asyncio
    async def test_file_format(self, file_cache, sample_content, clock):
        await file_cache.set(sample_content)
        path = file_cache.path_for(sample_content.id)

        assert path.name == f"{sample_content.id}.json"
        entry = json.loads(path.read_text())
        assert entry["expiresAt"] == int((clock.now + 60) * 1000)
        assert entry["data"]["url"] == sample_content.url
        assert not list(path.parent.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_per_call_ttl(self, file_cache, sample_content, clock):
        await file_cache.set(sample_content, ttl=5)

        clock.now += 6
        assert await file_cache.get(sample_content.id) is None

    @pytest.mark.asyncio
    async def test_expired_entry_deleted(self, file_cache, sample_content, clock):
        await file_cache.set(sample_content)
        clock.now += 61

        assert await file_cache.get(sample_content.id) is None
        assert not file_cache.path_for(sample_content.id).exists()

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, file_cache, sample_content):
        path = file_cache.path_for(sample_content.id)
        path.parent.mkdir(parents=True)
        path.write_text("{not json")

        assert await file_cache.get(sample_content.id) is None

    @pytest.mark.asyncio
    async def test_invalid_entry_deleted(self, file_cache, sample_content, clock):
        path = file_cache.path_for(sample_content.id)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"data": {"url": 1}, "expiresAt": (clock.now + 100) * 1000}))

        assert await file_cache.get(sample_content.id) is None
        assert not path.exists()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expires_at", [None, "tomorrow", True, {"ms": 1}])
    async def test_non_numeric_expiry_is_discarded(self, file_cache, sample_content, expires_at):
        path = file_cache.path_for(sample_content.id)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"data": sample_content.model_dump(mode="json"), "expiresAt": expires_at}))

        assert await file_cache.get(sample_content.id) is None
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_missing_expiry_is_discarded(self, file_cache, sample_content):
        path = file_cache.path_for(sample_content.id)
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"data": {}}))

        assert await file_cache.get(sample_content.id) is None
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_concurrent_writes_leave_one_valid_entry(self, file_cache, content_factory):
        versions = [content_factory(text=f"version {i}") for i in range(5)]

        await asyncio.gather(*(file_cache.set(content) for content in versions))
        cached = await file_cache.get(versions[0].id)

        assert cached is not None
        assert cached.text in {c.text for c in versions}

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, file_cache, content_factory):
        first = content_factory(url="https://example.com/1")
        second = content_factory(url="https://example.com/2")
        await file_cache.set(first)
        await file_cache.set(second)

        await file_cache.delete(first.id)
        assert not file_cache.path_for(first.id).exists()
        await file_cache.clear()
        assert not file_cache.path_for(second.id).exists()

    @pytest.mark.asyncio
    async def test_purge_expired(self, file_cache, content_factory, clock):
        await file_cache.set(content_factory(url="https://example.com/old"), ttl=10)
        await file_cache.set(content_factory(url="https://example.com/new"), ttl=100)
        clock.now += 50

        assert await file_cache.purge_expired() == 1
        assert len(list(file_cache.directory.glob("*.json"))) == 1

    @pytest.mark.asyncio
    async def test_purge_removes_entries_without_numeric_expiry(self, file_cache, sample_content):
        await file_cache.set(sample_content)
        broken = file_cache.path_for("broken")
        broken.write_text(json.dumps({"data": {}, "expiresAt": "never"}))

        assert await file_cache.purge_expired() == 1
        assert not broken.exists()
        assert file_cache.path_for(sample_content.id).exists()

    @pytest.mark.asyncio
    async def test_key_locks_released(self, file_cache, content_factory):
        for i in range(5):
            content = content_factory(url=f"https://example.com/{i}")
            await file_cache.set(content)
            await file_cache.get(content.id)
        gc.collect()

        assert len(file_cache._locks) == 0

    @pytest.mark.asyncio
    async def test_clear_missing_directory(self, tmp_path):
        cache = FileContentCache(tmp_path / "never-created")
        await cache.clear()
        assert await cache.purge_expired() == 0
