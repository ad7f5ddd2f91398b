"""
Hashed Wheel Timer untuk delayed tasks.

Hashed wheel timer menyimpan pending tasks dalam ring buffer ("wheel"):
1. Wheel terdiri dari N slot (bucket), setiap bucket berisi set of timeouts
2. Satu cursor maju satu slot setiap tick_duration
3. Timeout dengan delay lebih dari satu putaran disimpan dengan
   remaining_rounds, dikurangi satu setiap kali cursor melewatinya
4. Schedule dan cancel O(1), presisi sebatas tick_duration

Satu worker (asyncio task) menjalankan semua timeouts. Callback harus cepat
atau return awaitable - awaitable akan di-dispatch sebagai task sendiri
supaya worker tidak pernah block.

Reference: Varghese & Lauck, "Hashed and Hierarchical Timing Wheels"
"""

import asyncio
import inspect
import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, Deque, List, Optional, Set
import logging

from ..errors import TimerShutdownError
from ..utils.metrics import metrics

logger = logging.getLogger(__name__)

NANOS_PER_SECOND = 1_000_000_000


class TimeoutState(Enum):
    """State dari satu Timeout"""
    INIT = "init"            # Pending, belum fire
    CANCELLED = "cancelled"  # Di-cancel sebelum fire
    EXPIRED = "expired"      # Sudah fire


class Timeout:
    """
    Handle untuk satu delayed task.

    Caller hanya pegang handle ini. Wheel dan bucket dimiliki timer.
    """

    def __init__(self, timer: 'HashedWheelTimer', callback: Callable[['Timeout'], Any], deadline: int):
        """
        Args:
            timer: Timer pemilik timeout ini
            callback: Dipanggil dengan timeout ini sebagai argumen
            deadline: Deadline dalam nanoseconds, relatif ke start time timer
        """
        self.timer = timer
        self.callback = callback
        self.deadline = deadline
        self.remaining_rounds = 0
        self.state = TimeoutState.INIT
        self.bucket: Optional[Set['Timeout']] = None

    def is_cancelled(self) -> bool:
        return self.state == TimeoutState.CANCELLED

    def is_expired(self) -> bool:
        return self.state == TimeoutState.EXPIRED

    def cancel(self) -> bool:
        """
        Cancel timeout ini.

        Returns:
            False jika sudah fire atau sudah di-cancel
        """
        if self.state != TimeoutState.INIT:
            return False

        self.state = TimeoutState.CANCELLED
        self.timer._on_cancel(self)
        return True

    def expire(self):
        """Jalankan callback. Dipanggil oleh worker saat deadline tercapai."""
        if self.state != TimeoutState.INIT:
            return

        self.state = TimeoutState.EXPIRED
        self.timer._on_expire(self)

        try:
            result = self.callback(self)
        except Exception as e:
            logger.error(f"Timer callback {self.callback!r} raised: {e}")
            return

        if inspect.isawaitable(result):
            self.timer._dispatch(result)

    def __repr__(self):
        return f"Timeout(deadline={self.deadline / NANOS_PER_SECOND:.3f}s, state={self.state.value})"


def _normalize_ticks_per_wheel(ticks_per_wheel: int) -> int:
    """Round up ke power of two supaya index bisa pakai bit mask"""
    normalized = 1
    while normalized < ticks_per_wheel:
        normalized <<= 1
    return normalized


class HashedWheelTimer:
    """
    Delayed-task scheduler berbasis hashed wheel.

    Lifecycle:
    - Dibuat sekali saat process start (atau per test)
    - Worker start otomatis pada schedule() pertama, atau via start()
    - shutdown() saat process teardown: semua pending timeouts tidak akan fire
    """

    def __init__(self,
                 tick_duration: float = 0.1,
                 ticks_per_wheel: int = 512,
                 name: str = "timeout-scheduler"):
        """
        Args:
            tick_duration: Durasi satu tick (seconds)
            ticks_per_wheel: Jumlah slot dalam wheel
            name: Nama worker task (untuk logging)
        """
        if tick_duration <= 0:
            raise ValueError(f"tick_duration must be greater than 0: {tick_duration}")
        if ticks_per_wheel <= 0:
            raise ValueError(f"ticks_per_wheel must be greater than 0: {ticks_per_wheel}")

        self.name = name
        self.tick_duration = tick_duration
        self._tick_nanos = max(1, int(tick_duration * NANOS_PER_SECOND))

        self.wheel: List[Set[Timeout]] = [set() for _ in range(_normalize_ticks_per_wheel(ticks_per_wheel))]
        self.mask = len(self.wheel) - 1

        # Timeouts baru masuk intake queue dulu, dipindah ke bucket oleh worker
        self._pending: Deque[Timeout] = deque()
        self._cancelled: Deque[Timeout] = deque()

        # Awaitables yang di-dispatch dari callbacks
        self._tasks: Set[asyncio.Future] = set()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[asyncio.Task] = None
        self._start_time = 0
        self._tick = 0
        self._shutdown = False

        # Statistics. Counter di-update juga dari thread caller.
        self._count_lock = threading.Lock()
        self._pending_count = 0
        self.timeouts_fired = 0
        self.timeouts_cancelled = 0

    @property
    def pending_timeouts(self) -> int:
        """Jumlah timeouts yang belum fire dan belum di-cancel"""
        return self._pending_count

    def _now(self) -> int:
        """Waktu sekarang dalam nanoseconds relatif ke start time"""
        return time.monotonic_ns() - self._start_time

    async def start(self):
        """Start worker secara eksplisit di event loop yang sedang berjalan"""
        self._start(asyncio.get_running_loop())

    def _start(self, loop: asyncio.AbstractEventLoop):
        if self._shutdown:
            raise TimerShutdownError(f"Timer {self.name} has been shut down")

        if self._worker is not None:
            return

        self._loop = loop
        self._start_time = time.monotonic_ns()
        self._worker = loop.create_task(self._run(), name=self.name)

        logger.info(f"Timer {self.name} started (tick={self.tick_duration}s, "
                    f"wheel={len(self.wheel)})")

    def _running_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def schedule(self, callback: Callable[[Timeout], Any], delay: float) -> Timeout:
        """
        Schedule callback untuk dijalankan setelah delay.

        Boleh dipanggil dari thread mana pun. Dari luar thread event loop,
        timer harus sudah di-start (start() atau schedule() pertama di loop).

        Args:
            callback: Function yang menerima Timeout. Boleh return awaitable.
            delay: Delay dalam seconds (>= 0)

        Returns:
            Timeout handle untuk cancel

        Raises:
            TimerShutdownError: jika timer sudah di-shutdown
            RuntimeError: jika dipanggil di luar event loop sebelum timer di-start
        """
        if delay < 0:
            raise ValueError(f"delay must not be negative: {delay}")

        if self._shutdown:
            raise TimerShutdownError(f"Timer {self.name} has been shut down")

        running = self._running_loop()

        if self._worker is None:
            if running is None:
                raise RuntimeError(f"Timer {self.name} is not started, "
                                   f"call start() from the event loop first")
            self._start(running)

        deadline = self._now() + int(delay * NANOS_PER_SECOND)
        timeout = Timeout(self, callback, deadline)

        with self._count_lock:
            self._pending_count += 1

        if running is self._loop:
            self._pending.append(timeout)
        else:
            # Thread lain: serahkan ke intake queue lewat thread worker
            try:
                self._loop.call_soon_threadsafe(self._enqueue, timeout)
            except RuntimeError as e:
                with self._count_lock:
                    self._pending_count -= 1
                raise TimerShutdownError(f"Timer {self.name} event loop is closed") from e

        return timeout

    def _enqueue(self, timeout: Timeout):
        if not self._shutdown:
            self._pending.append(timeout)
            return

        # Shutdown sudah drain intake queue sebelum timeout ini sampai
        if timeout.state == TimeoutState.INIT:
            timeout.state = TimeoutState.CANCELLED
            with self._count_lock:
                self._pending_count = max(0, self._pending_count - 1)

    def cancel(self, timeout: Timeout) -> bool:
        """Cancel timeout. Returns False jika sudah fire."""
        return timeout.cancel()

    def _on_cancel(self, timeout: Timeout):
        # Bucket cleanup dilakukan oleh worker pada tick berikutnya
        self._cancelled.append(timeout)
        with self._count_lock:
            self._pending_count -= 1
            self.timeouts_cancelled += 1

    def _on_expire(self, timeout: Timeout):
        with self._count_lock:
            self._pending_count -= 1
            self.timeouts_fired += 1

    def _dispatch(self, awaitable):
        """Jalankan awaitable dari callback sebagai task terpisah"""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Future):
        self._tasks.discard(task)

        if task.cancelled():
            return

        error = task.exception()
        if error is not None:
            logger.error(f"Timer task raised: {error!r}")

    async def _run(self):
        """Worker loop: tunggu tick, pindahkan pending timeouts, expire bucket"""
        while not self._shutdown:
            try:
                deadline = await self._wait_for_next_tick()

                self._process_cancelled()
                bucket = self.wheel[self._tick & self.mask]
                self._transfer_to_buckets()
                self._expire_bucket(bucket, deadline)
                self._tick += 1

                metrics.set_timer_pending(self.name, self._pending_count)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in timer loop: {e}")

    async def _wait_for_next_tick(self) -> int:
        """Sleep sampai akhir tick sekarang. Returns deadline tick (ns)."""
        deadline = self._tick_nanos * (self._tick + 1)

        while True:
            remaining = deadline - self._now()
            if remaining <= 0:
                return deadline
            await asyncio.sleep(remaining / NANOS_PER_SECOND)

    def _transfer_to_buckets(self):
        while self._pending:
            timeout = self._pending.popleft()
            if timeout.is_cancelled():
                continue

            calculated = timeout.deadline // self._tick_nanos
            timeout.remaining_rounds = (calculated - self._tick) // len(self.wheel)

            # Deadline yang sudah lewat masuk bucket sekarang
            ticks = max(calculated, self._tick)
            bucket = self.wheel[ticks & self.mask]
            bucket.add(timeout)
            timeout.bucket = bucket

    def _process_cancelled(self):
        while self._cancelled:
            timeout = self._cancelled.popleft()
            if timeout.bucket is not None:
                timeout.bucket.discard(timeout)
                timeout.bucket = None

    def _expire_bucket(self, bucket: Set[Timeout], deadline: int):
        for timeout in list(bucket):
            if timeout.is_cancelled():
                bucket.discard(timeout)
            elif timeout.remaining_rounds <= 0:
                bucket.discard(timeout)
                timeout.bucket = None
                if timeout.deadline <= deadline:
                    timeout.expire()
                else:
                    self._pending.append(timeout)
            else:
                timeout.remaining_rounds -= 1

    async def shutdown(self) -> Set[Timeout]:
        """
        Stop worker dan drain semua pending timeouts tanpa menjalankannya.

        Returns:
            Set of timeouts yang belum fire (sekarang berstatus CANCELLED)
        """
        if self._shutdown:
            return set()

        self._shutdown = True

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass

        # Awaitables yang sudah di-dispatch (contoh renewal yang sedang
        # round trip) dihentikan supaya tidak menyentuh store lagi
        current = asyncio.current_task()
        inflight = [task for task in self._tasks if task is not current]
        for task in inflight:
            task.cancel()
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)
        self._tasks.clear()

        unprocessed: Set[Timeout] = set()

        for bucket in self.wheel:
            unprocessed.update(t for t in bucket if t.state == TimeoutState.INIT)
            bucket.clear()

        unprocessed.update(t for t in self._pending if t.state == TimeoutState.INIT)
        self._pending.clear()
        self._cancelled.clear()

        for timeout in unprocessed:
            timeout.state = TimeoutState.CANCELLED
            timeout.bucket = None

        self._pending_count = 0
        metrics.set_timer_pending(self.name, 0)

        logger.info(f"Timer {self.name} stopped, {len(unprocessed)} pending timeouts cancelled")
        return unprocessed

    def get_stats(self) -> dict:
        """Get timer statistics"""
        return {
            'name': self.name,
            'running': self._worker is not None and not self._shutdown,
            'tick': self._tick,
            'pending_timeouts': self._pending_count,
            'timeouts_fired': self.timeouts_fired,
            'timeouts_cancelled': self.timeouts_cancelled,
            'inflight_tasks': len(self._tasks),
        }
