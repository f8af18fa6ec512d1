"""
HTTP 响应缓存

支持 ETag 条件请求、TTL 过期以及 JSON 磁盘持久化。
"""

import asyncio
import json
import os
import time
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Dict, Optional

import aiofiles
from loguru import logger

from modresolve.api.base import TransportResponse
from modresolve.exceptions import CacheError
from modresolve.models import CachedResponse

DEFAULT_CACHE_TTL = 300.0
CACHE_FILENAME = "http_cache.json"

SendFn = Callable[[Optional[str]], Awaitable[TransportResponse]]


class AsyncRWLock:
    """读写锁：读操作可并发，写操作独占"""

    def __init__(self):
        self._cond: Optional[asyncio.Condition] = None
        self._readers = 0
        self._writer = False

    @property
    def cond(self) -> asyncio.Condition:
        """首次使用时在当前事件循环中创建"""
        if self._cond is None:
            self._cond = asyncio.Condition()
        return self._cond

    @asynccontextmanager
    async def read(self):
        cond = self.cond
        async with cond:
            await cond.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with cond:
                self._readers -= 1
                if self._readers == 0:
                    cond.notify_all()

    @asynccontextmanager
    async def write(self):
        cond = self.cond
        async with cond:
            await cond.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            async with cond:
                self._writer = False
                cond.notify_all()


class HttpCache:
    """带 ETag 重新验证和磁盘持久化的 HTTP 缓存"""

    def __init__(self, cache_dir: Optional[str] = None, ttl: float = DEFAULT_CACHE_TTL):
        self.cache_dir = cache_dir
        self.ttl = ttl
        self._entries: Dict[str, CachedResponse] = {}
        self._lock = AsyncRWLock()

    @property
    def cache_file(self) -> Optional[str]:
        if not self.cache_dir:
            return None
        return os.path.join(self.cache_dir, CACHE_FILENAME)

    async def get(self, url: str) -> Optional[CachedResponse]:
        async with self._lock.read():
            return self._entries.get(url)

    async def put(self, url: str, response: CachedResponse):
        async with self._lock.write():
            self._entries[url] = response

    async def remove(self, url: str):
        async with self._lock.write():
            self._entries.pop(url, None)

    async def clear(self):
        async with self._lock.write():
            self._entries.clear()

    async def len(self) -> int:
        async with self._lock.read():
            return len(self._entries)

    async def is_empty(self) -> bool:
        return await self.len() == 0

    async def load_from_disk(self) -> int:
        """
        从磁盘加载缓存，丢弃已过期条目

        读取或解析失败时记录警告并以空缓存继续。

        Returns:
            加载的有效条目数
        """
        cache_file = self.cache_file
        if not cache_file or not os.path.exists(cache_file):
            logger.debug("[缓存] 未找到缓存文件，使用空缓存")
            return 0

        try:
            loaded = await self._read_file(cache_file)
        except CacheError as e:
            logger.warning(f"[缓存] {e.message}，已重置")
            await self.clear()
            return 0

        now = time.time()
        valid = {url: entry for url, entry in loaded.items() if not entry.is_expired(now)}
        async with self._lock.write():
            self._entries = valid

        logger.debug(
            f"[缓存] 从磁盘加载 {len(valid)} 个有效条目，丢弃 {len(loaded) - len(valid)} 个过期条目"
        )
        return len(valid)

    async def save_to_disk(self) -> bool:
        """保存缓存到磁盘，失败时记录警告并返回 False"""
        cache_file = self.cache_file
        if not cache_file:
            return False

        async with self._lock.read():
            payload = {url: entry.to_dict() for url, entry in self._entries.items()}

        try:
            await self._write_file(cache_file, payload)
        except CacheError as e:
            logger.warning(f"[缓存] {e.message}")
            return False

        logger.debug(f"[缓存] 已保存 {len(payload)} 个条目到 {cache_file}")
        return True

    @staticmethod
    async def _read_file(cache_file: str) -> Dict[str, CachedResponse]:
        """
        Raises:
            CacheError: 文件无法读取或内容不是合法的缓存结构
        """
        try:
            async with aiofiles.open(cache_file, "r", encoding="utf-8") as f:
                raw = json.loads(await f.read())
            if not isinstance(raw, dict):
                raise ValueError("缓存文件根节点不是对象")
            return {url: CachedResponse.from_dict(entry) for url, entry in raw.items()}
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise CacheError(
                f"缓存文件损坏或无法读取: {e}", context={"path": cache_file}
            ) from e

    async def _write_file(self, cache_file: str, payload: Dict[str, dict]):
        try:
            os.makedirs(self.cache_dir, exist_ok=True)
            async with aiofiles.open(cache_file, "w", encoding="utf-8") as f:
                await f.write(json.dumps(payload, indent=2))
        except OSError as e:
            raise CacheError(
                f"保存缓存失败: {e}", context={"path": cache_file}
            ) from e

    async def fetch(self, url: str, send: SendFn) -> CachedResponse:
        """
        带缓存的请求

        Args:
            url: 缓存键（请求 URL）
            send: 发送请求的回调，参数为 If-None-Match 的 ETag（可为 None）

        Returns:
            缓存响应（可能来自缓存，也可能是新的网络响应）
        """
        cached = await self.get(url)
        if cached is not None:
            if not cached.is_expired():
                logger.debug(f"[缓存] 命中: {url}")
                return cached

            if cached.etag:
                logger.debug(f"[缓存] 已过期，使用 ETag 重新验证: {url}")
                response = await send(cached.etag)
                if response.status == 304:
                    async with self._lock.write():
                        cached.extend_ttl(self.ttl)
                        self._entries[url] = cached
                    logger.debug(f"[缓存] 304 未修改，延长有效期: {url}")
                    return cached
                return await self._store(url, response)

        logger.debug(f"[缓存] 未命中: {url}")
        response = await send(None)
        return await self._store(url, response)

    async def _store(self, url: str, response: TransportResponse) -> CachedResponse:
        entry = CachedResponse(
            data=response.body,
            etag=response.header("ETag"),
            expires=time.time() + self.ttl,
            status=response.status,
        )
        if entry.ok:
            await self.put(url, entry)
        else:
            logger.debug(f"[缓存] 不缓存非成功响应 (状态码 {response.status}): {url}")
        return entry
