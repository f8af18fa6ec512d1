"""
速率限制与指数退避

每个平台独立节流；收到 429 时按指数退避重试。
退避状态只属于单次逻辑请求，不在客户端实例间共享。
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

from loguru import logger

from modresolve.api.base import HttpTransport, TransportResponse
from modresolve.exceptions import RateLimitExhaustedError
from modresolve.models import ProjectPlatform

MAX_RETRIES = 5

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffConfig:
    """指数退避配置（秒）"""

    initial: float = 1.0
    max: float = 60.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.multiplier <= 1.0:
            raise ValueError(f"multiplier 必须大于 1.0，当前为 {self.multiplier}")
        if self.initial < 0 or self.max < self.initial:
            raise ValueError("退避时长必须满足 0 <= initial <= max")


def backoff_delay(config: BackoffConfig, attempt: int) -> float:
    """第 attempt 次 (从 1 开始) 限流后的等待时长"""
    if attempt < 1:
        raise ValueError("attempt 从 1 开始计数")
    return min(config.initial * config.multiplier ** (attempt - 1), config.max)


class BackoffState:
    """单次逻辑请求的退避状态"""

    def __init__(self, config: BackoffConfig):
        self.config = config
        self.attempts = 0
        self.total_wait = 0.0

    def next_delay(self) -> float:
        self.attempts += 1
        delay = backoff_delay(self.config, self.attempts)
        self.total_wait += delay
        return delay

    def reset(self):
        self.attempts = 0
        self.total_wait = 0.0


class TokenBucket:
    """令牌桶：容量为突发额度，按每分钟请求上限匀速补充"""

    def __init__(
        self,
        rate_per_minute: float,
        burst: int,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rate = rate_per_minute / 60.0
        self.capacity = float(burst)
        self._tokens = float(burst)
        self._sleep = sleep
        self._clock = clock
        self._updated = clock()
        self._lock: Optional[asyncio.Lock] = None

    def _refill(self):
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    async def acquire(self):
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            self._refill()
            while self._tokens < 1.0:
                wait = (1.0 - self._tokens) / self.rate
                logger.debug(f"[节流] 令牌不足，等待 {wait:.2f}s")
                await self._sleep(wait)
                self._refill()
            self._tokens -= 1.0


class RateLimitedClient:
    """带速率限制和指数退避的平台客户端"""

    def __init__(
        self,
        transport: HttpTransport,
        platform: ProjectPlatform,
        backoff: Optional[BackoffConfig] = None,
        sleep: SleepFn = asyncio.sleep,
        bucket: Optional[TokenBucket] = None,
    ):
        self.transport = transport
        self.platform = platform
        self.backoff = backoff or BackoffConfig()
        self._sleep = sleep
        self.bucket = bucket or TokenBucket(platform.rate_limit, platform.burst)

    async def pace(self):
        """等待平台节流令牌"""
        await self.bucket.acquire()

    async def execute(
        self, url: str, headers: Optional[Dict[str, str]] = None
    ) -> TransportResponse:
        """
        发送请求，遇到 429 时按指数退避重试

        Raises:
            RateLimitExhaustedError: 超过最大重试次数
            NetworkError: 网络错误或超时
        """
        state = BackoffState(self.backoff)

        while True:
            response = await self.transport.get(
                url,
                headers=headers,
                timeout=self.platform.timeout,
                platform=self.platform,
            )

            if response.status == 429:
                if state.attempts >= MAX_RETRIES:
                    logger.error(
                        f"[限流] {self.platform.display_name} 重试 {MAX_RETRIES} 次后仍被限流: {url}"
                    )
                    raise RateLimitExhaustedError(
                        self.platform.display_name, state.attempts, url=url
                    )
                delay = state.next_delay()
                logger.warning(
                    f"[限流] {self.platform.display_name} 返回 429，"
                    f"{delay:.2f}s 后重试 ({state.attempts}/{MAX_RETRIES})"
                )
                await self._sleep(delay)
                continue

            if response.ok and state.attempts:
                logger.debug(
                    f"[限流] {self.platform.display_name} 请求成功，退避已重置"
                )
                state.reset()

            return response

    async def get(
        self, url: str, headers: Optional[Dict[str, str]] = None
    ) -> TransportResponse:
        """节流后发送请求"""
        await self.pace()
        return await self.execute(url, headers)


class RateLimiterManager:
    """多平台速率限制管理器"""

    def __init__(
        self,
        transport: HttpTransport,
        backoff: Optional[BackoffConfig] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._clients: Dict[ProjectPlatform, RateLimitedClient] = {
            platform: RateLimitedClient(transport, platform, backoff, sleep)
            for platform in ProjectPlatform
        }

    @property
    def modrinth(self) -> RateLimitedClient:
        return self._clients[ProjectPlatform.MODRINTH]

    @property
    def curseforge(self) -> RateLimitedClient:
        return self._clients[ProjectPlatform.CURSEFORGE]

    def client_for_platform(self, platform: ProjectPlatform) -> RateLimitedClient:
        return self._clients[platform]
