"""HTTP 缓存测试"""

import asyncio
import json
import time

import pytest

from modresolve.api.base import TransportResponse
from modresolve.exceptions import CacheError
from modresolve.models import CachedResponse
from modresolve.services.http_cache import CACHE_FILENAME, AsyncRWLock, HttpCache

URL = "https://api.modrinth.com/v2/project/sodium"


class FakeSender:
    """按顺序返回预置响应并记录 If-None-Match"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.etags = []

    async def __call__(self, etag):
        self.etags.append(etag)
        return self.responses.pop(0)


class TestHttpCacheFetch:
    """条件请求流程"""

    def test_fresh_entry_skips_network(self):
        cache = HttpCache()
        sender = FakeSender(TransportResponse(200, b"body", {"ETag": '"v1"'}))

        async def run():
            first = await cache.fetch(URL, sender)
            second = await cache.fetch(URL, sender)
            return first, second

        first, second = asyncio.run(run())
        assert sender.etags == [None]
        assert second.data == first.data == b"body"

    def test_not_modified_extends_ttl_and_keeps_body(self):
        cache = HttpCache(ttl=300)
        stale = CachedResponse(b"original", '"v1"', time.time() - 10, 200)
        sender = FakeSender(TransportResponse(304, b""))

        async def run():
            await cache.put(URL, stale)
            result = await cache.fetch(URL, sender)
            return result, await cache.get(URL)

        result, stored = asyncio.run(run())
        assert sender.etags == ['"v1"']
        assert result.data == b"original"
        assert stored.data == b"original"
        assert not stored.is_expired()
        assert stored.expires > time.time() + 200

    def test_modified_response_replaces_entry(self):
        cache = HttpCache()
        stale = CachedResponse(b"old", '"v1"', time.time() - 10, 200)
        sender = FakeSender(TransportResponse(200, b"new", {"etag": '"v2"'}))

        async def run():
            await cache.put(URL, stale)
            await cache.fetch(URL, sender)
            return await cache.get(URL)

        stored = asyncio.run(run())
        assert stored.data == b"new"
        assert stored.etag == '"v2"'

    def test_expired_without_etag_sends_plain_request(self):
        cache = HttpCache()
        stale = CachedResponse(b"old", None, time.time() - 10, 200)
        sender = FakeSender(TransportResponse(200, b"new"))

        async def run():
            await cache.put(URL, stale)
            return await cache.fetch(URL, sender)

        assert asyncio.run(run()).data == b"new"
        assert sender.etags == [None]

    def test_errors_not_cached(self):
        cache = HttpCache()
        sender = FakeSender(TransportResponse(500, b"oops"), TransportResponse(200, b"ok"))

        async def run():
            first = await cache.fetch(URL, sender)
            empty = await cache.is_empty()
            second = await cache.fetch(URL, sender)
            return first, empty, second

        first, empty, second = asyncio.run(run())
        assert first.status == 500
        assert empty is True
        assert second.data == b"ok"
        assert len(sender.etags) == 2


class TestHttpCacheStore:
    """基本操作"""

    def test_put_get_remove_clear(self):
        cache = HttpCache()
        entry = CachedResponse(b"x", None, time.time() + 60, 200)

        async def run():
            await cache.put("a", entry)
            await cache.put("b", entry)
            assert await cache.len() == 2
            await cache.remove("a")
            assert await cache.get("a") is None
            await cache.clear()
            return await cache.is_empty()

        assert asyncio.run(run()) is True

    def test_concurrent_readers(self):
        cache = HttpCache()
        entry = CachedResponse(b"x", None, time.time() + 60, 200)

        async def run():
            await cache.put(URL, entry)
            results = await asyncio.gather(*(cache.get(URL) for _ in range(20)))
            return results

        assert all(r is entry for r in asyncio.run(run()))

    def test_lock_created_outside_event_loop(self):
        lock = AsyncRWLock()
        order = []

        async def writer():
            async with lock.write():
                await asyncio.sleep(0.01)
                order.append("write")

        async def reader():
            await asyncio.sleep(0)
            async with lock.read():
                order.append("read")

        async def run():
            await asyncio.gather(writer(), reader())

        asyncio.run(run())
        assert order == ["write", "read"]


class TestHttpCachePersistence:
    """磁盘持久化"""

    def test_save_and_load(self, tmp_path):
        fresh = CachedResponse(b"fresh", '"e"', time.time() + 600, 200)
        expired = CachedResponse(b"old", None, time.time() - 1, 200)

        async def save():
            cache = HttpCache(str(tmp_path))
            await cache.put("fresh", fresh)
            await cache.put("expired", expired)
            return await cache.save_to_disk()

        assert asyncio.run(save()) is True
        raw = json.loads((tmp_path / CACHE_FILENAME).read_text())
        assert set(raw) == {"fresh", "expired"}

        async def load():
            cache = HttpCache(str(tmp_path))
            count = await cache.load_from_disk()
            return count, await cache.get("fresh"), await cache.get("expired")

        count, loaded, dropped = asyncio.run(load())
        assert count == 1
        assert loaded.data == b"fresh"
        assert loaded.etag == '"e"'
        assert dropped is None

    def test_corrupt_file_resets(self, tmp_path):
        (tmp_path / CACHE_FILENAME).write_text("{not json")

        async def load():
            cache = HttpCache(str(tmp_path))
            count = await cache.load_from_disk()
            return count, await cache.is_empty()

        assert asyncio.run(load()) == (0, True)

    def test_missing_file_is_empty(self, tmp_path):
        cache = HttpCache(str(tmp_path / "nowhere"))
        assert asyncio.run(cache.load_from_disk()) == 0

    def test_save_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        cache = HttpCache(str(blocker / "sub"))
        assert asyncio.run(cache.save_to_disk()) is False

    def test_no_cache_dir(self):
        assert asyncio.run(HttpCache().save_to_disk()) is False

    def test_unreadable_file_raises_cache_error(self, tmp_path):
        path = tmp_path / CACHE_FILENAME
        path.write_text("[1, 2]")

        with pytest.raises(CacheError) as exc_info:
            asyncio.run(HttpCache._read_file(str(path)))
        assert exc_info.value.code == "E300"
        assert exc_info.value.context["path"] == str(path)
