"""速率限制与退避测试"""

import asyncio

import pytest

from modresolve.api.base import TransportResponse
from modresolve.api.mock import MockTransport, json_response
from modresolve.exceptions import RateLimitExhaustedError
from modresolve.models import ProjectPlatform
from modresolve.services.rate_limit import (
    MAX_RETRIES,
    BackoffConfig,
    BackoffState,
    RateLimitedClient,
    RateLimiterManager,
    TokenBucket,
    backoff_delay,
)
from tests.conftest import SleepRecorder

URL = "https://api.modrinth.com/v2/project/sodium"
TOO_MANY = TransportResponse(status=429)


class TestBackoffConfig:
    """退避配置"""

    def test_defaults(self):
        config = BackoffConfig()
        assert (config.initial, config.max, config.multiplier) == (1.0, 60.0, 2.0)

    @pytest.mark.parametrize("multiplier", [1.0, 0.5])
    def test_multiplier_must_exceed_one(self, multiplier):
        with pytest.raises(ValueError):
            BackoffConfig(multiplier=multiplier)

    def test_delay_formula(self):
        config = BackoffConfig(initial=0.5, max=10.0, multiplier=3.0)
        for n in range(1, 8):
            assert backoff_delay(config, n) == min(0.5 * 3.0 ** (n - 1), 10.0)

    def test_delay_capped(self):
        assert backoff_delay(BackoffConfig(), 10) == 60.0


class TestBackoffState:
    """单次请求的退避状态"""

    def test_sequence_and_reset(self):
        state = BackoffState(BackoffConfig())
        assert [state.next_delay() for _ in range(4)] == [1.0, 2.0, 4.0, 8.0]
        assert state.attempts == 4
        assert state.total_wait == 15.0
        state.reset()
        assert state.attempts == 0
        assert state.next_delay() == 1.0


class TestRateLimitedClient:
    """429 重试"""

    def _client(self, transport, sleeper, config=None):
        return RateLimitedClient(
            transport, ProjectPlatform.MODRINTH, config or BackoffConfig(), sleeper
        )

    def test_two_rate_limits_then_success(self):
        transport = MockTransport().queue(URL, TOO_MANY, TOO_MANY, json_response({}))
        sleeper = SleepRecorder()
        config = BackoffConfig(initial=0.5, multiplier=3.0)
        client = self._client(transport, sleeper, config)

        response = asyncio.run(client.execute(URL))

        assert response.status == 200
        assert sleeper.delays == [0.5, 1.5]
        assert sleeper.total >= config.initial + config.initial * config.multiplier
        assert len(transport.calls_to(URL)) == 3

    def test_exhaustion_names_platform(self):
        transport = MockTransport().set(URL, TOO_MANY)
        sleeper = SleepRecorder()
        client = self._client(transport, sleeper)

        with pytest.raises(RateLimitExhaustedError) as exc_info:
            asyncio.run(client.execute(URL))

        error = exc_info.value
        assert "Modrinth" in str(error)
        assert "exhausted" in str(error)
        assert error.attempts == MAX_RETRIES
        assert error.code == "E429"
        assert len(sleeper.delays) == MAX_RETRIES
        assert len(transport.calls_to(URL)) == MAX_RETRIES + 1

    def test_backoff_not_carried_between_requests(self):
        transport = MockTransport().queue(
            URL, TOO_MANY, json_response({}), TOO_MANY, json_response({})
        )
        sleeper = SleepRecorder()
        client = self._client(transport, sleeper)

        async def run():
            await client.execute(URL)
            await client.execute(URL)

        asyncio.run(run())
        # 第二次请求从初始退避开始
        assert sleeper.delays == [1.0, 1.0]

    def test_success_needs_no_backoff(self):
        transport = MockTransport().queue(URL, TOO_MANY, json_response({}))
        transport.set("https://api.modrinth.com/v2/other", json_response({}))
        sleeper = SleepRecorder()
        client = self._client(transport, sleeper)

        async def run():
            await client.execute(URL)
            count = len(sleeper.delays)
            await client.execute("https://api.modrinth.com/v2/other")
            return count

        before = asyncio.run(run())
        assert len(sleeper.delays) == before == 1

    def test_non_429_errors_returned(self):
        transport = MockTransport().set(URL, TransportResponse(status=500))
        client = self._client(transport, SleepRecorder())
        assert asyncio.run(client.execute(URL)).status == 500

    def test_uses_platform_timeout(self):
        transport = MockTransport().set(URL, json_response({}))
        client = RateLimitedClient(transport, ProjectPlatform.CURSEFORGE)
        asyncio.run(client.execute(URL, {"x-api-key": "k"}))
        call = transport.calls[0]
        assert call.platform is ProjectPlatform.CURSEFORGE
        assert call.headers == {"x-api-key": "k"}


class TestTokenBucket:
    """令牌桶节流"""

    def test_burst_then_wait(self):
        now = [0.0]
        sleeper = SleepRecorder()

        async def sleep(delay):
            await sleeper(delay)
            now[0] += delay

        bucket = TokenBucket(60, burst=2, sleep=sleep, clock=lambda: now[0])

        async def run():
            for _ in range(3):
                await bucket.acquire()

        asyncio.run(run())
        # 每秒补充一个令牌，突发额度用完后第三次需等待一秒
        assert sleeper.delays == [pytest.approx(1.0)]

    def test_refill_capped_at_capacity(self):
        now = [0.0]
        bucket = TokenBucket(600, burst=5, clock=lambda: now[0])
        now[0] = 1000.0
        assert bucket.available == 5.0


class TestRateLimiterManager:
    """多平台管理"""

    def test_one_client_per_platform(self):
        manager = RateLimiterManager(MockTransport())
        assert manager.modrinth.platform is ProjectPlatform.MODRINTH
        assert manager.curseforge.platform is ProjectPlatform.CURSEFORGE
        assert manager.client_for_platform(ProjectPlatform.MODRINTH) is manager.modrinth
        assert manager.modrinth.bucket.capacity == 600
        assert manager.curseforge.bucket.capacity == 120
