"""
测试用传输替身

按 URL 预置响应并记录所有请求，不访问网络。
"""

import json
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from modresolve.api.base import HttpTransport, TransportResponse
from modresolve.exceptions import NetworkError
from modresolve.models import ProjectPlatform

Responder = Callable[[str, Dict[str, str]], TransportResponse]
Scripted = Union[TransportResponse, Responder, Exception]


def json_response(
    payload: Any, status: int = 200, etag: Optional[str] = None
) -> TransportResponse:
    """构造 JSON 响应"""
    headers = {"Content-Type": "application/json"}
    if etag:
        headers["ETag"] = etag
    return TransportResponse(
        status=status, body=json.dumps(payload).encode("utf-8"), headers=headers
    )


@dataclass
class RecordedRequest:
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    platform: Optional[ProjectPlatform] = None


class MockTransport(HttpTransport):
    """
    预置响应的传输实现

    每个 URL 可以设置固定响应（``set``）或按顺序消费的响应队列（``queue``）。
    队列耗尽后回落到固定响应；都不存在时抛出 NetworkError。
    """

    def __init__(self):
        self._fixed: Dict[str, Scripted] = {}
        self._queued: Dict[str, Deque[Scripted]] = {}
        self._prefix: List[tuple] = []
        self.calls: List[RecordedRequest] = []
        self.closed = False

    def set(self, url: str, response: Scripted) -> "MockTransport":
        self._fixed[url] = response
        return self

    def set_prefix(self, prefix: str, response: Scripted) -> "MockTransport":
        """为以 prefix 开头的 URL 设置响应"""
        self._prefix.append((prefix, response))
        return self

    def queue(self, url: str, *responses: Scripted) -> "MockTransport":
        self._queued.setdefault(url, deque()).extend(responses)
        return self

    def calls_to(self, url: str) -> List[RecordedRequest]:
        return [call for call in self.calls if call.url == url]

    def _lookup(self, url: str) -> Optional[Scripted]:
        queued = self._queued.get(url)
        if queued:
            return queued.popleft()
        if url in self._fixed:
            return self._fixed[url]
        for prefix, response in self._prefix:
            if url.startswith(prefix):
                return response
        return None

    async def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        platform: Optional[ProjectPlatform] = None,
    ) -> TransportResponse:
        headers = dict(headers or {})
        self.calls.append(RecordedRequest(url=url, headers=headers, platform=platform))

        scripted = self._lookup(url)
        if scripted is None:
            raise NetworkError(f"未预置响应的 URL: {url}", url=url)
        if isinstance(scripted, Exception):
            raise scripted
        if callable(scripted):
            return scripted(url, headers)
        return scripted

    async def close(self):
        self.closed = True
