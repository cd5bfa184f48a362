import json
import pytest

from product_research.storage.cache import FileCacheBackend, MemoryCacheBackend, ResponseCache


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_make_key_is_deterministic():
    a = ResponseCache.make_key("42", "search", "query")
    assert a == ResponseCache.make_key("42", "search", "query")
    assert a != ResponseCache.make_key("42", "extract", "query")
    assert a != ResponseCache.make_key("43", "search", "query")
    assert len(a) == 64


@pytest.mark.asyncio
async def test_set_get_and_expiry():
    clock = FakeClock()
    cache = ResponseCache(MemoryCacheBackend(clock=clock), default_ttl=60)

    await cache.set("k", {"a": 1})
    assert await cache.get("k") == {"a": 1}

    clock.now += 61
    assert await cache.get("k") is None
    assert cache.get_stats() == {"hits": 1, "misses": 1, "hit_rate": 0.5}


@pytest.mark.asyncio
async def test_merge_mapping_unions_entries():
    cache = ResponseCache(MemoryCacheBackend())

    await cache.merge_mapping("rates", {"EUR": 0.92})
    merged = await cache.merge_mapping("rates", {"GBP": 0.79})

    assert merged == {"EUR": 0.92, "GBP": 0.79}
    assert await cache.get("rates") == {"EUR": 0.92, "GBP": 0.79}


@pytest.mark.asyncio
async def test_merge_ignores_expired_mapping():
    clock = FakeClock()
    cache = ResponseCache(MemoryCacheBackend(clock=clock), default_ttl=10)

    await cache.merge_mapping("rates", {"EUR": 0.92})
    clock.now += 11
    assert await cache.merge_mapping("rates", {"GBP": 0.79}) == {"GBP": 0.79}


@pytest.mark.asyncio
async def test_increment_and_delete():
    backend = MemoryCacheBackend()

    assert await backend.increment("credits", 2, ttl=60) == 2
    assert await backend.increment("credits", 3, ttl=60) == 5
    assert await backend.delete("credits") is True
    assert await backend.delete("credits") is False


@pytest.mark.asyncio
async def test_file_backend_persists_between_instances(tmp_path):
    path = tmp_path / "cache.json"
    await ResponseCache(FileCacheBackend(path)).set("k", {"results": [1, 2]})

    reopened = ResponseCache(FileCacheBackend(path))
    assert await reopened.get("k") == {"results": [1, 2]}
    assert "pr_cache_k" in json.loads(path.read_text())


@pytest.mark.asyncio
async def test_file_backend_drops_expired_on_write(tmp_path):
    clock = FakeClock()
    path = tmp_path / "cache.json"
    backend = FileCacheBackend(path, clock=clock)

    await backend.set("old", 1, ttl=5)
    clock.now += 10
    await backend.set("new", 2, ttl=5)

    assert set(json.loads(path.read_text())) == {"new"}


@pytest.mark.asyncio
async def test_file_backend_recovers_from_corrupt_file(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json")

    backend = FileCacheBackend(path)
    assert await backend.get("k") is None
    await backend.set("k", "v", ttl=60)
    assert await backend.get("k") == "v"
