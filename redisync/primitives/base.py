"""
Base class untuk semua primitives (lock, rate limiter, token bucket).
Menyediakan common functionality:
- Validasi nama
- Registrasi Lua scripts
- Satu round trip per operasi dengan error translation dan latency metrics
"""

from typing import Any, Awaitable, Callable

import redis.asyncio as aioredis

from ..store.connection import store_errors
from ..utils.metrics import metrics, measure_time


def require_text(value: str, field: str) -> str:
    """
    Strip whitespace dan pastikan tidak kosong.

    Raises:
        ValueError: jika value None atau kosong setelah strip
    """
    if value is None or not str(value).strip():
        raise ValueError(f"{field} can't be empty")
    return str(value).strip()


def require_positive(value, field: str):
    """Raises ValueError jika value <= 0"""
    if value is None or value <= 0:
        raise ValueError(f"{field} must be greater than 0: {value}")
    return value


class BasePrimitive:
    """
    Base class untuk primitives yang terikat ke satu key di store.
    """

    def __init__(self, client: aioredis.Redis, name: str):
        """
        Args:
            client: redis.asyncio client (atau kompatibel)
            name: Key di store, sudah termasuk prefix
        """
        if client is None:
            raise ValueError("client can't be None")

        self.client = client
        self.name = require_text(name, "name")

    def _register_script(self, source: str):
        """Register Lua script. EVALSHA dengan fallback ke SCRIPT LOAD."""
        return self.client.register_script(source)

    async def _round_trip(self, operation: str, command: Callable[[], Awaitable[Any]]) -> Any:
        """
        Jalankan satu command ke store.

        Args:
            operation: Nama operasi untuk logging dan metrics
            command: Coroutine function tanpa argumen

        Raises:
            StoreUnavailableError: jika store tidak bisa dihubungi
            StoreError: jika store menolak command
        """
        with store_errors(operation), measure_time() as timer:
            result = await command()

        metrics.record_latency(operation, timer.elapsed)
        return result

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name!r})"
