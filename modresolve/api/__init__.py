"""
平台 API 层

传输接口及其实现，以及 Modrinth / CurseForge 的地址构造与响应解析。
"""

from modresolve.api.base import HttpTransport, TransportResponse, payload_guard

__all__ = ["HttpTransport", "TransportResponse", "payload_guard"]
