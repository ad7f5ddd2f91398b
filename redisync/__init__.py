"""
Redisync - distributed coordination primitives di atas Redis.

Berisi:
- Distributed Lock dengan lease dan watchdog renewal
- Fixed-window Rate Limiter
- Token Bucket dengan lazy refill
- Hashed Wheel Timer untuk menjalankan renewal
"""

from .errors import RedisyncError, StoreError, StoreUnavailableError, TimerShutdownError
from .primitives import DistributedLock, RateLimiter, TokenBucket
from .support import DistributedSupport, key_prefix
from .timer import HashedWheelTimer, Timeout

__version__ = "1.0.0"

__all__ = [
    'DistributedLock',
    'RateLimiter',
    'TokenBucket',
    'HashedWheelTimer',
    'Timeout',
    'DistributedSupport',
    'key_prefix',
    'RedisyncError',
    'StoreError',
    'StoreUnavailableError',
    'TimerShutdownError',
]
