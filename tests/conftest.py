"""测试公共夹具"""

from typing import List

import pytest

from modresolve.api.mock import MockTransport
from modresolve.services.api_client import PlatformClient
from modresolve.services.http_cache import HttpCache
from modresolve.services.rate_limit import BackoffConfig, RateLimiterManager

TEST_ENV = {"MODRESOLVE_KEY_CURSEFORGE": "test-key"}


class SleepRecorder:
    """记录等待时长而不真正等待"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)

    @property
    def total(self) -> float:
        return sum(self.delays)


def make_client(transport, sleep=None, environ=None, cache=None) -> PlatformClient:
    """构造使用模拟传输的客户端，不访问网络也不写磁盘"""
    sleep = sleep or SleepRecorder()
    return PlatformClient(
        transport=transport,
        cache=cache or HttpCache(),
        limiter=RateLimiterManager(transport, BackoffConfig(), sleep),
        environ=TEST_ENV if environ is None else environ,
    )


@pytest.fixture()
def transport():
    return MockTransport()


@pytest.fixture()
def sleeper():
    return SleepRecorder()
