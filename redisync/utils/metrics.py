"""
Metrics collector menggunakan Prometheus.
File ini mengumpulkan data operasi primitives seperti
hasil lock, keputusan rate limiter, dan latency ke store.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest
import time


class MetricsCollector:
    """
    Class untuk mengumpulkan metrics redisync.
    Menggunakan Prometheus format untuk monitoring.
    """

    def __init__(self):
        # Counter: hasil operasi lock (acquire/renew/release, success/failure)
        self.lock_operations = Counter(
            'redisync_lock_operations_total',
            'Total number of lock operations',
            ['operation', 'result']
        )

        self.rate_limiter_requests = Counter(
            'redisync_rate_limiter_requests_total',
            'Total number of fixed-window rate limiter decisions',
            ['result']
        )

        # kind: requested / granted
        self.token_bucket_permits = Counter(
            'redisync_token_bucket_permits_total',
            'Total number of token bucket permits',
            ['kind']
        )

        # Histogram: distribusi round trip ke store
        self.store_latency = Histogram(
            'redisync_store_latency_seconds',
            'Store round trip latency in seconds',
            ['operation']
        )

        # Gauge: nilai yang bisa naik/turun
        self.timer_pending = Gauge(
            'redisync_timer_pending_timeouts',
            'Number of pending timer timeouts',
            ['timer']
        )

    def record_lock(self, operation: str, success: bool):
        """Record hasil acquire/renew/release"""
        result = 'success' if success else 'failure'
        self.lock_operations.labels(operation=operation, result=result).inc()

    def record_rate_limit(self, admitted: bool):
        """Record keputusan fixed-window limiter"""
        result = 'admitted' if admitted else 'rejected'
        self.rate_limiter_requests.labels(result=result).inc()

    def record_token_bucket(self, requested: int, granted: int):
        """Record permits yang diminta dan yang diberikan"""
        self.token_bucket_permits.labels(kind='requested').inc(requested)
        self.token_bucket_permits.labels(kind='granted').inc(granted)

    def record_latency(self, operation: str, duration: float):
        """
        Record store latency.

        Args:
            operation: Nama operasi (contoh: lock.acquire)
            duration: Durasi round trip dalam seconds
        """
        self.store_latency.labels(operation=operation).observe(duration)

    def set_timer_pending(self, timer: str, count: int):
        """Update jumlah pending timeouts untuk satu timer"""
        self.timer_pending.labels(timer=timer).set(count)

    def get_metrics(self) -> bytes:
        """
        Export metrics dalam Prometheus format.
        Returns: Metrics data dalam bytes
        """
        return generate_latest()


# Context manager untuk measure round trip time
class measure_time:
    """
    Context manager untuk mengukur execution time.

    Contoh penggunaan:
        with measure_time() as timer:
            # your code here
            pass
        print(f"Execution time: {timer.elapsed}s")
    """

    def __init__(self):
        self.start_time = None
        self.elapsed = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self.start_time
        return False


# Singleton instance
metrics = MetricsCollector()
