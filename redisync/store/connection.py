"""
Store connection layer.
Membuat redis.asyncio client dari Config dan menerjemahkan
transport errors dari redis-py ke redisync exceptions.
"""

from contextlib import contextmanager
from typing import Optional
import logging

import redis.asyncio as aioredis
from redis import exceptions as redis_exceptions

from ..errors import StoreError, StoreUnavailableError
from ..utils.config import Config

logger = logging.getLogger(__name__)


def create_client(host: Optional[str] = None,
                  port: Optional[int] = None,
                  db: Optional[int] = None,
                  password: Optional[str] = None,
                  socket_timeout: Optional[float] = None) -> aioredis.Redis:
    """
    Buat Redis client. Argumen yang None diambil dari Config.

    Client tidak connect sampai command pertama; pakai connect()
    jika butuh fail-fast.
    """
    timeout = socket_timeout if socket_timeout is not None else Config.REDIS_SOCKET_TIMEOUT

    return aioredis.Redis(
        host=host or Config.REDIS_HOST,
        port=port or Config.REDIS_PORT,
        db=db if db is not None else Config.REDIS_DB,
        password=password or Config.REDIS_PASSWORD,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
        decode_responses=False
    )


async def connect(client: Optional[aioredis.Redis] = None) -> aioredis.Redis:
    """
    Ping store dan return client yang siap dipakai.

    Raises:
        StoreUnavailableError: jika store tidak bisa dihubungi
    """
    client = client if client is not None else create_client()

    with store_errors("ping"):
        await client.ping()

    logger.info("Connected to Redis successfully")
    return client


async def close(client: aioredis.Redis):
    """Close client dan connection pool-nya"""
    await client.aclose()
    logger.info("Redis connection closed")


@contextmanager
def store_errors(operation: str):
    """
    Terjemahkan redis-py exceptions.

    ConnectionError / TimeoutError -> StoreUnavailableError
    RedisError lainnya -> StoreError
    """
    try:
        yield
    except (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError) as e:
        logger.error(f"Store unavailable during {operation}: {e}")
        raise StoreUnavailableError(f"{operation} failed: {e}") from e
    except redis_exceptions.RedisError as e:
        logger.error(f"Store error during {operation}: {e}")
        raise StoreError(f"{operation} failed: {e}") from e
