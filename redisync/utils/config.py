"""
Configuration manager untuk redisync.
File ini membaca environment variables dan menyediakan
konfigurasi default untuk store client, timer, dan primitives.
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables dari .env file
load_dotenv()


class Config:
    """Class untuk manage semua konfigurasi"""

    # Redis Configuration
    REDIS_HOST: str = os.getenv('REDIS_HOST', 'localhost')
    REDIS_PORT: int = int(os.getenv('REDIS_PORT', 6379))
    REDIS_DB: int = int(os.getenv('REDIS_DB', 0))
    REDIS_PASSWORD: Optional[str] = os.getenv('REDIS_PASSWORD') or None
    REDIS_SOCKET_TIMEOUT: float = float(os.getenv('REDIS_SOCKET_TIMEOUT', 5))

    # Key prefix untuk semua primitives, contoh: "app::lock-name"
    KEY_PREFIX: str = os.getenv('KEY_PREFIX', '')

    # Timer Configuration (dalam milliseconds)
    TIMER_TICK_DURATION: int = int(os.getenv('TIMER_TICK_DURATION', 100))
    TIMER_TICKS_PER_WHEEL: int = int(os.getenv('TIMER_TICKS_PER_WHEEL', 512))

    # Lock Configuration (dalam milliseconds)
    LOCK_TTL: int = int(os.getenv('LOCK_TTL', 30000))
    LOCK_RENEWAL_PERIOD: int = int(os.getenv('LOCK_RENEWAL_PERIOD', 10000))

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE: str = os.getenv('LOG_FILE', '')

    @classmethod
    def display(cls):
        """Print semua konfigurasi untuk debugging"""
        print("=== Configuration ===")
        print(f"Redis: {cls.REDIS_HOST}:{cls.REDIS_PORT}/{cls.REDIS_DB}")
        print(f"Key prefix: {cls.KEY_PREFIX or '(none)'}")
        print(f"Timer: tick={cls.TIMER_TICK_DURATION}ms, wheel={cls.TIMER_TICKS_PER_WHEEL}")
        print(f"Lock: ttl={cls.LOCK_TTL}ms, renewal={cls.LOCK_RENEWAL_PERIOD}ms")
        print("=" * 30)


# Test configuration saat file dijalankan langsung
if __name__ == "__main__":
    Config.display()
