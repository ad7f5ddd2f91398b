"""
Distributed Lock dengan lease.

Protocol (setiap operasi = satu atomic round trip ke store):
- acquire: SET name token NX PX ttl
- renew:   Lua, jika GET == token maka PEXPIRE
- release: Lua, jika GET == token maka DEL

Token = "<owner-id>-<worker-id>", contoh "client-7-140234", supaya dua
worker yang share owner-id yang sama tidak bisa saling release/renew.

Watchdog renewal dijalankan oleh HashedWheelTimer: setiap tick memanggil
renew, jika sukses schedule tick berikutnya, jika gagal chain berhenti.
"""

import threading
from typing import Dict, Hashable, Optional
import logging

import redis.asyncio as aioredis

from .base import BasePrimitive, require_positive, require_text
from ..errors import RedisyncError, TimerShutdownError
from ..store.scripts import RENEWAL_SCRIPT, UNLOCK_SCRIPT
from ..timer.hashed_wheel import HashedWheelTimer, Timeout
from ..utils.metrics import metrics

logger = logging.getLogger(__name__)

# Pemisah owner-id dan worker-id dalam token
SEPARATOR = "-"


def ttl_millis(ttl: float, field: str = "ttl") -> int:
    """Convert seconds ke milliseconds (minimal 1ms)"""
    require_positive(ttl, field)
    return max(1, int(ttl * 1000))


class RenewalChain:
    """
    Satu watchdog renewal untuk satu token.

    Setiap tick adalah timeout baru di timer, bukan recursion,
    jadi lock yang hidup lama tidak menumpuk call stack.
    """

    def __init__(self, lock: 'DistributedLock', worker_id: Hashable, period: float, ttl: float):
        self.lock = lock
        self.worker_id = worker_id
        self.token = lock.token_for(worker_id)
        self.period = period
        self.ttl = ttl

        self.timeout: Optional[Timeout] = None
        self.active = True
        self.renewals = 0

    def schedule_next(self):
        self.timeout = self.lock.timer.schedule(self._tick, self.period)

    async def _tick(self, timeout: Timeout):
        if not self.active:
            return

        rescheduled = False
        try:
            rescheduled = await self._renew_and_reschedule()
        finally:
            # Termasuk exception tak terduga dan task cancellation
            if not rescheduled:
                self.stop()

    async def _renew_and_reschedule(self) -> bool:
        """Returns True jika tick berikutnya sudah di-schedule"""
        try:
            renewed = await self.lock.renew(self.ttl, self.worker_id)
        except RedisyncError as e:
            logger.warning(f"Renewal of {self.lock.name} failed, renewal stopped: {e}")
            return False

        # Released selama round trip
        if not self.active:
            return False

        if not renewed:
            logger.warning(f"Lease on {self.lock.name} lost, renewal stopped, token: {self.token}")
            return False

        self.renewals += 1

        try:
            self.schedule_next()
        except TimerShutdownError:
            logger.debug(f"Timer shut down, renewal of {self.lock.name} stopped")
            return False

        logger.debug(f"renewal scheduled, name: {self.lock.name}, token: {self.token}")
        return True

    def stop(self) -> bool:
        """Stop chain. Returns False jika sudah berhenti sebelumnya."""
        was_active = self.active
        self.active = False

        if self.timeout is not None:
            self.timeout.cancel()

        if self.lock._renewals.get(self.token) is self:
            del self.lock._renewals[self.token]

        return was_active

    def __repr__(self):
        return f"RenewalChain({self.token}, period={self.period}, renewals={self.renewals})"


class DistributedLock(BasePrimitive):
    """
    Mutual exclusion lock di shared store.

    "Not acquired" adalah hasil normal (False), bukan error.
    Transport failure di-raise sebagai StoreUnavailableError.
    """

    def __init__(self,
                 client: aioredis.Redis,
                 name: str,
                 token: str,
                 timer: Optional[HashedWheelTimer] = None):
        """
        Args:
            client: redis.asyncio client
            name: Nama lock (key di store)
            token: Owner identity, contoh client id
            timer: Timer untuk auto-renewal (optional)
        """
        super().__init__(client, name)

        self.token = require_text(token, "token")
        self.timer = timer

        self._unlock_script = self._register_script(UNLOCK_SCRIPT)
        self._renewal_script = self._register_script(RENEWAL_SCRIPT)

        # Active renewal chains: full token -> chain
        self._renewals: Dict[str, RenewalChain] = {}

    def token_for(self, worker_id: Optional[Hashable] = None) -> str:
        """
        Format token lengkap.

        Args:
            worker_id: Disambiguator dalam satu owner. Default: thread id.
                Coroutines dalam satu thread harus pass worker_id sendiri.

        Returns:
            Token, contoh "client-7-140234"
        """
        if worker_id is None:
            worker_id = threading.get_ident()
        return f"{self.token}{SEPARATOR}{worker_id}"

    async def acquire(self, ttl: float, worker_id: Optional[Hashable] = None) -> bool:
        """
        Acquire lock dengan lease selama ttl.

        Args:
            ttl: Lease duration (seconds), harus > 0

        Returns:
            True jika lock didapat, False jika sudah dipegang pihak lain
        """
        px = ttl_millis(ttl)
        token = self.token_for(worker_id)

        result = await self._round_trip(
            "lock.acquire",
            lambda: self.client.set(self.name, token, nx=True, px=px)
        )

        acquired = bool(result)
        metrics.record_lock("acquire", acquired)
        logger.debug(f"lock {'acquired' if acquired else 'busy'}, name: {self.name}, token: {token}")

        return acquired

    async def renew(self, ttl: float, worker_id: Optional[Hashable] = None) -> bool:
        """
        Perpanjang lease menjadi ttl dari sekarang, hanya jika token cocok.

        Returns:
            True jika expiry diperpanjang
        """
        px = ttl_millis(ttl)
        token = self.token_for(worker_id)

        result = await self._round_trip(
            "lock.renew",
            lambda: self._renewal_script(keys=[self.name], args=[token, px])
        )

        renewed = bool(result)
        metrics.record_lock("renew", renewed)
        logger.debug(f"lock {'renewed' if renewed else 'not held'}, name: {self.name}, token: {token}")

        return renewed

    async def release(self, worker_id: Optional[Hashable] = None) -> bool:
        """
        Release lock, hanya jika token cocok. Auto-renewal untuk token ini
        dihentikan sebelum round trip.

        Returns:
            True jika record terhapus
        """
        token = self.token_for(worker_id)

        chain = self._renewals.get(token)
        if chain is not None:
            chain.stop()

        result = await self._round_trip(
            "lock.release",
            lambda: self._unlock_script(keys=[self.name], args=[token])
        )

        released = bool(result)
        metrics.record_lock("release", released)
        logger.debug(f"lock {'released' if released else 'not held'}, name: {self.name}, token: {token}")

        return released

    def schedule_auto_renewal(self, period: float, ttl: float, worker_id: Optional[Hashable] = None):
        """
        Start watchdog renewal: setiap period, renew(ttl).

        Chain berhenti sendiri saat renewal gagal (ownership hilang),
        saat release(), atau saat timer di-shutdown. Chain lama untuk token
        yang sama diganti.

        Args:
            period: Interval renewal (seconds), harus < ttl
            ttl: Lease baru setiap renewal (seconds)
        """
        if self.timer is None:
            raise ValueError("timer is required for auto renewal")

        require_positive(period, "period")
        ttl_millis(ttl)
        if period >= ttl:
            raise ValueError(f"period must be less than ttl: {period} >= {ttl}")

        if worker_id is None:
            worker_id = threading.get_ident()

        chain = RenewalChain(self, worker_id, period, ttl)

        previous = self._renewals.get(chain.token)
        if previous is not None:
            previous.stop()

        chain.schedule_next()
        self._renewals[chain.token] = chain

        logger.debug(f"auto renewal started, name: {self.name}, token: {chain.token}")

    def cancel_auto_renewal(self, worker_id: Optional[Hashable] = None) -> bool:
        """Stop watchdog renewal. Returns False jika tidak ada yang aktif."""
        chain = self._renewals.get(self.token_for(worker_id))
        if chain is None:
            return False
        return chain.stop()

    def is_renewing(self, worker_id: Optional[Hashable] = None) -> bool:
        """Check apakah watchdog renewal untuk token ini masih aktif"""
        return self.token_for(worker_id) in self._renewals

    async def is_locked(self) -> bool:
        """Check apakah lock sedang dipegang siapa pun (diagnostic only)"""
        result = await self._round_trip("lock.exists", lambda: self.client.exists(self.name))
        return bool(result)

    def __repr__(self):
        return f"DistributedLock({self.name!r}, token={self.token!r})"
