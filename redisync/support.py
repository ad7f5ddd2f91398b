"""
Factory untuk membuat primitives dengan key prefix yang konsisten.

Format key:
- Dengan prefix:  "<prefix>::<name>"
- Tanpa prefix:   "<name>"
"""

import re
from typing import Optional

import redis.asyncio as aioredis

from .primitives.base import require_text
from .primitives.lock import DistributedLock
from .primitives.rate_limiter import RateLimiter
from .primitives.token_bucket import TokenBucket
from .timer.hashed_wheel import HashedWheelTimer

# Pemisah prefix dan nama
PREFIX_SEPARATOR = "::"

_WHITESPACE = re.compile(r"\s+")


def key_prefix(prefix: Optional[str], use_prefix: bool = True) -> str:
    """
    Returns string yang ditambahkan di depan setiap nama.
    Kosong jika use_prefix False atau prefix blank.
    """
    if not use_prefix or prefix is None or not prefix.strip():
        return ""
    return prefix.strip() + PREFIX_SEPARATOR


class DistributedSupport:
    """
    Membuat DistributedLock, RateLimiter, dan TokenBucket yang
    share satu client, satu prefix, dan satu timer.
    """

    def __init__(self,
                 client: aioredis.Redis,
                 prefix: Optional[str] = None,
                 use_prefix: bool = True,
                 timer: Optional[HashedWheelTimer] = None):
        """
        Args:
            client: redis.asyncio client
            prefix: Prefix untuk semua key, contoh nama aplikasi
            use_prefix: False untuk memakai nama tanpa prefix
            timer: Timer yang di-inject ke semua locks
        """
        if client is None:
            raise ValueError("client can't be None")

        self.client = client
        self.prefix = key_prefix(prefix, use_prefix)
        self.timer = timer

    def key(self, name: str) -> str:
        """Nama yang sudah di-strip dan di-prefix"""
        return self.prefix + require_text(name, "name")

    @staticmethod
    def clean_token(token: str) -> str:
        """Hapus semua whitespace dari token"""
        return _WHITESPACE.sub("", token or "")

    def lock(self, name: str, token: str) -> DistributedLock:
        return DistributedLock(self.client, self.key(name), self.clean_token(token), timer=self.timer)

    def rate_limiter(self, name: str, seconds: int, permits: int) -> RateLimiter:
        return RateLimiter(self.client, self.key(name), seconds, permits)

    def token_bucket(self, name: str, capacity: int, refill_rate: float, **kwargs) -> TokenBucket:
        """kwargs diteruskan ke TokenBucket (initial_permits, clock)"""
        return TokenBucket(self.client, self.key(name), capacity, refill_rate, **kwargs)
