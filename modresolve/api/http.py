"""
基于 aiohttp 的真实网络传输
"""

import asyncio
from typing import Dict, Optional

import aiohttp
from loguru import logger

from modresolve.api.base import HttpTransport, TransportResponse
from modresolve.exceptions import NetworkError
from modresolve.models import ProjectPlatform

DEFAULT_TIMEOUT = 30.0


class AiohttpTransport(HttpTransport):
    """aiohttp 传输实现"""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        default_timeout: float = DEFAULT_TIMEOUT,
    ):
        self._session = session
        self._owned_session = session is None
        self.default_timeout = default_timeout

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owned_session = True
        return self._session

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        platform: Optional[ProjectPlatform] = None,
    ) -> TransportResponse:
        client_timeout = aiohttp.ClientTimeout(total=timeout or self.default_timeout)
        where = f"{platform.display_name} " if platform else ""
        try:
            async with self.session.get(
                url, headers=headers, timeout=client_timeout
            ) as response:
                body = await response.read()
                return TransportResponse(
                    status=response.status,
                    body=body,
                    headers={k: v for k, v in response.headers.items()},
                )
        except asyncio.TimeoutError:
            logger.warning(f"[超时] {where}请求超时: {url}")
            raise NetworkError(
                f"{where}请求超时 ({client_timeout.total:.0f}s): {url}",
                url=url,
                context={"platform": str(platform) if platform else None},
            )
        except aiohttp.ClientError as e:
            logger.warning(f"[网络] {where}请求失败: {url}: {e}")
            raise NetworkError(
                f"{where}网络请求失败: {url}: {e}",
                url=url,
                context={"platform": str(platform) if platform else None},
            )

    async def close(self):
        """关闭传输"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()
