"""
Exception classes untuk redisync.

Tiga kategori error:
- Usage error: argumen tidak valid -> ValueError, sebelum round trip ke store
- Transport error: store tidak bisa dihubungi -> StoreUnavailableError
- Logical non-acquisition (lock sudah dipegang, window habis, bucket kosong)
  BUKAN error, dikembalikan sebagai False / 0
"""


class RedisyncError(Exception):
    """Base exception untuk semua redisync errors."""
    pass


class StoreError(RedisyncError):
    """Raised saat store menolak command (contoh: script error)."""
    pass


class StoreUnavailableError(StoreError):
    """Raised saat store tidak bisa dihubungi atau timeout."""
    pass


class TimerShutdownError(RedisyncError, RuntimeError):
    """Raised saat schedule task pada timer yang sudah di-shutdown."""
    pass
