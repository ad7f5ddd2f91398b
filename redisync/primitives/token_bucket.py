"""
Distributed Rate Limiter (token bucket).
Setiap detik refill_rate token masuk ke bucket, maksimal capacity.

Lazy refill: tidak ada background process yang menambah token.
Setiap acquire menghitung ulang token "sekarang" dari state terakhir:

    available = min(capacity, tokens + elapsed_seconds * refill_rate)
    granted   = min(requested, available)
    tokens    = available - granted

Semua dihitung di dalam satu Lua script, jadi cukup satu round trip.
"""

import time
from typing import Callable, Optional
import logging

import redis.asyncio as aioredis

from .base import BasePrimitive, require_positive
from ..store.scripts import TOKEN_BUCKET_SCRIPT
from ..utils.metrics import metrics

logger = logging.getLogger(__name__)


def current_millis() -> int:
    """Wall clock dalam milliseconds"""
    return int(time.time() * 1000)


class TokenBucket(BasePrimitive):
    """Token bucket di shared store"""

    def __init__(self,
                 client: aioredis.Redis,
                 name: str,
                 capacity: int,
                 refill_rate: float,
                 initial_permits: Optional[int] = None,
                 clock: Optional[Callable[[], int]] = None):
        """
        Args:
            client: redis.asyncio client
            name: Nama bucket (key di store)
            capacity: Maksimal token dalam bucket
            refill_rate: Token yang ditambahkan per detik
            initial_permits: Isi bucket saat record belum ada.
                Default capacity (bucket mulai penuh); 0 = mulai kosong.
            clock: Function yang return epoch milliseconds
        """
        super().__init__(client, name)

        self.capacity = int(require_positive(capacity, "capacity"))
        if self.capacity != capacity:
            raise ValueError(f"capacity must be an integer: {capacity}")
        self.refill_rate = require_positive(refill_rate, "refill_rate")

        if initial_permits is None:
            initial_permits = self.capacity
        if not 0 <= initial_permits <= self.capacity:
            raise ValueError(f"initial_permits must be between 0 and {self.capacity}: {initial_permits}")
        self.initial_permits = initial_permits

        self.clock = clock or current_millis

        self._script = self._register_script(TOKEN_BUCKET_SCRIPT)

    async def acquire(self, permits: int = 1) -> int:
        """
        Ambil sampai `permits` token.

        Request di atas capacity di-clamp ke capacity.

        Returns:
            Jumlah token yang diberikan, 0 <= granted <= min(permits, capacity)
        """
        require_positive(permits, "permits")
        if int(permits) != permits:
            raise ValueError(f"permits must be an integer: {permits}")
        requested = min(int(permits), self.capacity)
        now = int(self.clock())

        result = await self._round_trip(
            "token_bucket.acquire",
            lambda: self._script(
                keys=[self.name],
                args=[self.capacity, self.refill_rate, now, requested, self.initial_permits]
            )
        )

        granted = int(result or 0)
        metrics.record_token_bucket(requested, granted)
        logger.debug(f"token bucket {self.name}: requested {requested}, granted {granted}")

        return granted

    def __repr__(self):
        return f"TokenBucket({self.name!r}, capacity={self.capacity}, rate={self.refill_rate}/s)"
