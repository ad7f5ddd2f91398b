"""
Distributed Rate Limiter (fixed window).
Dalam x detik, maksimal n request di-admit.

Counter dan expiry di-update dalam satu Lua script:
INCR, set EXPIRE pada write pertama di window, admit jika count <= permits.

Catatan:
- Di sekitar batas window, client bisa melihat sampai 2x permits
  (sifat fixed window, bukan bug)
- Request yang ditolak tetap dihitung, slot tidak dikembalikan
"""

import logging

import redis.asyncio as aioredis

from .base import BasePrimitive, require_positive
from ..store.scripts import RATE_LIMITER_SCRIPT
from ..utils.metrics import metrics

logger = logging.getLogger(__name__)


class RateLimiter(BasePrimitive):
    """Fixed-window rate limiter di shared store"""

    def __init__(self, client: aioredis.Redis, name: str, seconds: int, permits: int):
        """
        Args:
            client: redis.asyncio client
            name: Nama limiter (key di store)
            seconds: Panjang window (seconds)
            permits: Jumlah request yang di-admit per window
        """
        super().__init__(client, name)

        self.seconds = int(require_positive(seconds, "seconds"))
        self.permits = int(require_positive(permits, "permits"))
        if self.seconds != seconds or self.permits != permits:
            raise ValueError(f"seconds and permits must be integers: {seconds}, {permits}")

        self._script = self._register_script(RATE_LIMITER_SCRIPT)

    async def acquire(self) -> bool:
        """
        Minta satu permit.

        Returns:
            True jika admitted, False jika window sudah penuh
        """
        result = await self._round_trip(
            "rate_limiter.acquire",
            lambda: self._script(keys=[self.name], args=[self.seconds, self.permits])
        )

        admitted = bool(result)
        metrics.record_rate_limit(admitted)
        if not admitted:
            logger.debug(f"Rate limit exceeded, name: {self.name}, "
                         f"permits: {self.permits}/{self.seconds}s")

        return admitted

    def __repr__(self):
        return f"RateLimiter({self.name!r}, {self.permits}/{self.seconds}s)"
