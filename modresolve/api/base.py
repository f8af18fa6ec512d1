from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Optional

from modresolve.exceptions import APIError
from modresolve.models import ProjectPlatform


@dataclass
class TransportResponse:
    """
    传输层返回的原始响应。
    """

    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> Optional[str]:
        """大小写不敏感地读取响应头"""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class HttpTransport(ABC):
    """
    HTTP 传输接口，真实网络与测试替身均实现此接口。
    """

    @abstractmethod
    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        platform: Optional[ProjectPlatform] = None,
    ) -> TransportResponse:
        """
        发送 GET 请求。

        Raises:
            NetworkError: 连接失败或超时
        """
        pass

    async def close(self):
        pass


@contextmanager
def payload_guard(platform: ProjectPlatform, url: str):
    """把响应结构缺字段或类型不符转换为带平台与地址的 APIError"""
    try:
        yield
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise APIError(
            f"{platform.display_name} 响应格式错误 ({type(e).__name__}: {e}): {url}",
            url=url,
            context={"platform": platform.value},
        ) from e
