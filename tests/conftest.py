"""
Shared fixtures.

Store = fakeredis dengan Lua support, jadi semua scripts benar-benar dijalankan.
"""

import fakeredis
from fakeredis import aioredis as fake_aioredis
import pytest
import pytest_asyncio

from redisync.timer.hashed_wheel import HashedWheelTimer


class FakeClock:
    """Clock dalam epoch milliseconds yang bisa dimajukan manual"""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float):
        self.now += int(seconds * 1000)


@pytest_asyncio.fixture
async def client():
    """Isolated fake Redis per test"""
    client = fake_aioredis.FakeRedis(server=fakeredis.FakeServer())
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def timer():
    """Timer dengan tick pendek supaya tests cepat"""
    timer = HashedWheelTimer(tick_duration=0.01, ticks_per_wheel=64, name="test-timer")
    yield timer
    await timer.shutdown()


@pytest.fixture
def clock():
    return FakeClock()
