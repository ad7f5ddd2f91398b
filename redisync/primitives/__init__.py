"""Primitives package initialization"""

from .lock import DistributedLock, RenewalChain
from .rate_limiter import RateLimiter
from .token_bucket import TokenBucket

__all__ = ['DistributedLock', 'RenewalChain', 'RateLimiter', 'TokenBucket']
