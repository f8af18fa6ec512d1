"""
平台 API 客户端

所有平台请求依次经过：平台节流 -> 缓存查找 -> 网络（含 429 退避）。
"""

import json
import os
from typing import Any, Dict, Mapping, Optional

from loguru import logger

from modresolve.api.base import HttpTransport
from modresolve.api.http import AiohttpTransport
from modresolve.exceptions import APIError, APINotFoundError
from modresolve.models import CachedResponse, ProjectPlatform
from modresolve.services.http_cache import HttpCache
from modresolve.services.rate_limit import RateLimiterManager

USER_AGENT = "modresolve/0.1.0"


class PlatformClient:
    """带缓存和速率限制的平台客户端"""

    def __init__(
        self,
        transport: Optional[HttpTransport] = None,
        cache: Optional[HttpCache] = None,
        limiter: Optional[RateLimiterManager] = None,
        environ: Optional[Mapping[str, str]] = None,
        user_agent: str = USER_AGENT,
    ):
        self.transport = transport or AiohttpTransport()
        self.cache = cache or HttpCache()
        self.limiter = limiter or RateLimiterManager(self.transport)
        self.environ = environ
        self.user_agent = user_agent

    def _headers(self, platform: ProjectPlatform) -> Dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        api_key = platform.api_key(self.environ)
        if api_key:
            headers["x-api-key"] = api_key
        return headers

    def has_credentials(self, platform: ProjectPlatform) -> bool:
        """平台是否可用（不需要密钥或密钥已设置）"""
        if not platform.requires_api_key:
            return True
        return bool(
            (self.environ if self.environ is not None else os.environ).get(
                platform.api_key_env_var
            )
        )

    async def get_bytes(
        self, platform: ProjectPlatform, url: str, authenticated: bool = True
    ) -> CachedResponse:
        """
        获取原始响应

        authenticated 为 False 时不附带 API 密钥，用于第三方元数据地址。

        Raises:
            MissingApiKeyError: 平台需要密钥但未设置
            RateLimitExhaustedError: 限流重试耗尽
            NetworkError: 网络错误
        """
        if authenticated:
            headers = self._headers(platform)
        else:
            headers = {"User-Agent": self.user_agent}
        rate_limited = self.limiter.client_for_platform(platform)

        await rate_limited.pace()

        async def send(etag: Optional[str]):
            request_headers = dict(headers)
            if etag:
                request_headers["If-None-Match"] = etag
            logger.debug(f"[请求] {platform.display_name} GET {url}")
            return await rate_limited.execute(url, request_headers)

        return await self.cache.fetch(url, send)

    async def get_json(
        self, platform: ProjectPlatform, url: str, authenticated: bool = True
    ) -> Any:
        """
        获取并解析 JSON 响应

        Raises:
            APINotFoundError: 资源不存在 (404)
            APIError: 其他非成功状态码或响应不是合法 JSON
        """
        response = await self.get_bytes(platform, url, authenticated)
        self._check_status(platform, url, response)
        try:
            return response.json()
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise APIError(
                f"{platform.display_name} 返回了无效的 JSON: {url}",
                url=url,
                context={"platform": platform.value, "error": str(e)},
            )

    async def get_text(
        self, platform: ProjectPlatform, url: str, authenticated: bool = True
    ) -> str:
        response = await self.get_bytes(platform, url, authenticated)
        self._check_status(platform, url, response)
        return response.text()

    @staticmethod
    def _check_status(platform: ProjectPlatform, url: str, response: CachedResponse):
        if response.status == 404:
            raise APINotFoundError(
                f"{platform.display_name} 资源不存在: {url}",
                status=404,
                url=url,
                context={"platform": platform.value},
            )
        if not response.ok:
            raise APIError(
                f"{platform.display_name} API 请求失败 (状态码: {response.status}): {url}",
                status=response.status,
                url=url,
                context={"platform": platform.value},
            )

    async def open(self) -> "PlatformClient":
        """加载磁盘缓存"""
        await self.cache.load_from_disk()
        return self

    async def close(self):
        """保存缓存并关闭传输"""
        await self.cache.save_to_disk()
        await self.transport.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
