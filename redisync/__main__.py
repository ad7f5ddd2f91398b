"""
Main entry point untuk mencoba primitives terhadap Redis.

Cara menjalankan:
  python -m redisync lock
  python -m redisync limit --permits 3 --seconds 1
  python -m redisync bucket --capacity 10 --rate 5
"""

import asyncio
import argparse
import logging
import os
import socket
import sys

from .errors import RedisyncError
from .store.connection import close, connect
from .support import DistributedSupport
from .timer.hashed_wheel import HashedWheelTimer
from .utils.config import Config


def setup_logging():
    """Setup logging configuration"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if Config.LOG_FILE:
        handlers.append(logging.FileHandler(Config.LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


async def run_lock(support: DistributedSupport, args):
    """Acquire lock, biarkan watchdog renew beberapa kali, lalu release"""
    ttl = Config.LOCK_TTL / 1000
    period = Config.LOCK_RENEWAL_PERIOD / 1000
    owner = f"{socket.gethostname()}:{os.getpid()}"

    lock = support.lock(args.name, owner)

    acquired = await lock.acquire(ttl)
    print(f"acquire({ttl}s) -> {acquired}")
    if not acquired:
        return

    lock.schedule_auto_renewal(period, ttl)
    print(f"Holding {lock.name} for {args.hold}s with renewal every {period}s...")
    await asyncio.sleep(args.hold)

    print(f"release() -> {await lock.release()}")


async def run_limit(support: DistributedSupport, args):
    """Kirim request beruntun ke fixed-window limiter"""
    limiter = support.rate_limiter(args.name, args.seconds, args.permits)

    for i in range(args.requests):
        admitted = await limiter.acquire()
        print(f"request {i + 1}: {'admitted' if admitted else 'rejected'}")


async def run_bucket(support: DistributedSupport, args):
    """Ambil token dari bucket setiap interval"""
    bucket = support.token_bucket(args.name, args.capacity, args.rate)

    for i in range(args.requests):
        granted = await bucket.acquire(args.take)
        print(f"acquire({args.take}) -> {granted}")
        await asyncio.sleep(args.interval)


RUNNERS = {
    'lock': run_lock,
    'limit': run_limit,
    'bucket': run_bucket,
}


async def run(args):
    """
    Run satu demo.

    Timer dibuat di sini dan di-shutdown di akhir, sesuai lifecycle
    process-wide timer.
    """
    client = await connect()
    timer = HashedWheelTimer(
        tick_duration=Config.TIMER_TICK_DURATION / 1000,
        ticks_per_wheel=Config.TIMER_TICKS_PER_WHEEL
    )
    support = DistributedSupport(client, prefix=Config.KEY_PREFIX, timer=timer)

    try:
        await RUNNERS[args.primitive](support, args)
    finally:
        await timer.shutdown()
        await close(client)


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Redis coordination primitives')
    parser.add_argument(
        'primitive',
        choices=sorted(RUNNERS),
        help='Primitive to exercise'
    )
    parser.add_argument('--name', default='redisync-demo', help='Key name')
    parser.add_argument('--hold', type=float, default=5.0, help='Seconds to hold the lock')
    parser.add_argument('--seconds', type=int, default=1, help='Fixed window length')
    parser.add_argument('--permits', type=int, default=3, help='Permits per window')
    parser.add_argument('--capacity', type=int, default=10, help='Token bucket capacity')
    parser.add_argument('--rate', type=float, default=5.0, help='Tokens per second')
    parser.add_argument('--take', type=int, default=3, help='Tokens per acquire')
    parser.add_argument('--interval', type=float, default=0.5, help='Seconds between bucket acquires')
    parser.add_argument('--requests', type=int, default=5, help='Number of requests')

    args = parser.parse_args()

    # Setup logging
    setup_logging()

    # Display configuration
    Config.display()

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nExiting...")
    except RedisyncError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
