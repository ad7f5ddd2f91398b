"""
Unit tests untuk DistributedLock.
"""

import asyncio
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis import exceptions as redis_exceptions

from redisync.errors import StoreUnavailableError
from redisync.primitives.lock import DistributedLock


@pytest.mark.asyncio
async def test_distributed_lock_basic(client):
    """Test acquire oleh dua owner berbeda sebelum expiry"""
    lock_a = DistributedLock(client, 'resource1', 'client-a')
    lock_b = DistributedLock(client, 'resource1', 'client-b')

    assert await lock_a.acquire(10) is True
    assert await lock_b.acquire(10) is False

    assert await client.get('resource1') == lock_a.token_for().encode()
    assert await lock_a.is_locked() is True


@pytest.mark.asyncio
async def test_same_owner_different_worker(client):
    """Test worker berbeda dengan owner id sama tidak bisa saling release"""
    lock = DistributedLock(client, 'resource1', 'client-a')

    assert await lock.acquire(10, worker_id=1) is True
    assert await lock.acquire(10, worker_id=2) is False
    assert await lock.release(worker_id=2) is False
    assert await lock.renew(10, worker_id=2) is False

    assert await lock.release(worker_id=1) is True


@pytest.mark.asyncio
async def test_release_by_non_holder(client):
    """Test release oleh token yang tidak pegang lock"""
    holder = DistributedLock(client, 'resource1', 'holder')
    other = DistributedLock(client, 'resource1', 'other')

    await holder.acquire(10)

    assert await other.release() is False
    assert await client.get('resource1') == holder.token_for().encode()
    assert await client.pttl('resource1') > 0


@pytest.mark.asyncio
async def test_release_by_holder(client):
    """Test release oleh holder menghapus record"""
    lock = DistributedLock(client, 'resource1', 'holder')

    await lock.acquire(10)

    assert await lock.release() is True
    assert await client.exists('resource1') == 0
    assert await lock.release() is False
    assert await lock.is_locked() is False


@pytest.mark.asyncio
async def test_renew_extends_deadline(client):
    """Test renew oleh holder memperpanjang expiry"""
    holder = DistributedLock(client, 'resource1', 'holder')
    other = DistributedLock(client, 'resource1', 'other')

    await holder.acquire(1)
    assert await client.pttl('resource1') <= 1000

    assert await holder.renew(30) is True
    assert await client.pttl('resource1') > 1000

    assert await other.renew(60) is False
    assert await client.pttl('resource1') <= 30000


@pytest.mark.asyncio
async def test_lease_expires(client):
    """Test lock bisa di-acquire lagi setelah lease habis"""
    holder = DistributedLock(client, 'resource1', 'holder')
    other = DistributedLock(client, 'resource1', 'other')

    assert await holder.acquire(0.1) is True
    await asyncio.sleep(0.2)

    assert await other.acquire(10) is True
    assert await holder.renew(10) is False


def test_token_format():
    """Test format token owner-worker"""
    lock = DistributedLock(MagicMock(), '  resource1 ', ' client-1 ')

    assert lock.name == 'resource1'
    assert lock.token_for(7) == 'client-1-7'
    assert lock.token_for() == f'client-1-{threading.get_ident()}'


@pytest.mark.asyncio
async def test_lock_usage_errors(client):
    """Test usage errors di-raise sebelum round trip"""
    with pytest.raises(ValueError):
        DistributedLock(client, '   ', 'token')

    with pytest.raises(ValueError):
        DistributedLock(client, 'resource1', '')

    with pytest.raises(ValueError):
        DistributedLock(None, 'resource1', 'token')

    lock = DistributedLock(client, 'resource1', 'token')

    with pytest.raises(ValueError):
        await lock.acquire(0)

    with pytest.raises(ValueError):
        await lock.renew(-1)

    assert await client.exists('resource1') == 0


@pytest.mark.asyncio
async def test_transport_error_is_not_lock_failure():
    """Test store down di-raise sebagai StoreUnavailableError, bukan False"""
    broken = MagicMock()
    broken.set = AsyncMock(side_effect=redis_exceptions.ConnectionError("connection refused"))
    broken.register_script.return_value = AsyncMock(side_effect=redis_exceptions.TimeoutError("timeout"))

    lock = DistributedLock(broken, 'resource1', 'token')

    with pytest.raises(StoreUnavailableError):
        await lock.acquire(10)

    with pytest.raises(StoreUnavailableError):
        await lock.release()

    with pytest.raises(StoreUnavailableError):
        await lock.renew(10)


@pytest.mark.asyncio
async def test_auto_renewal_keeps_lease(client, timer):
    """Test watchdog renewal memperpanjang lease sampai release"""
    lock = DistributedLock(client, 'resource1', 'holder', timer=timer)

    assert await lock.acquire(0.3) is True
    lock.schedule_auto_renewal(0.05, 0.3)

    await asyncio.sleep(0.6)

    assert await client.exists('resource1') == 1
    assert lock.is_renewing() is True
    assert lock._renewals[lock.token_for()].renewals > 0

    assert await lock.release() is True
    assert lock.is_renewing() is False

    # Renewal tidak menghidupkan lagi lock yang sudah di-release
    await asyncio.sleep(0.2)
    assert await client.exists('resource1') == 0


@pytest.mark.asyncio
async def test_auto_renewal_stops_when_lock_lost(client, timer):
    """Test chain berhenti saat token tidak cocok lagi"""
    lock = DistributedLock(client, 'resource1', 'holder', timer=timer)

    await lock.acquire(1)
    lock.schedule_auto_renewal(0.05, 1)

    # Lease hilang dan lock diambil owner lain
    await client.set('resource1', 'someone-else')
    await asyncio.sleep(0.3)

    assert lock.is_renewing() is False
    assert await client.get('resource1') == b'someone-else'


@pytest.mark.asyncio
async def test_auto_renewal_stops_on_store_error(timer):
    """Test chain berhenti (tanpa raise) saat store tidak bisa dihubungi"""
    broken = MagicMock()
    broken.register_script.return_value = AsyncMock(side_effect=redis_exceptions.ConnectionError("down"))

    lock = DistributedLock(broken, 'resource1', 'holder', timer=timer)
    lock.schedule_auto_renewal(0.02, 1)

    await asyncio.sleep(0.2)

    assert lock.is_renewing() is False


@pytest.mark.asyncio
async def test_cancel_auto_renewal(client, timer):
    """Test cancel_auto_renewal menghentikan chain tanpa release"""
    lock = DistributedLock(client, 'resource1', 'holder', timer=timer)

    await lock.acquire(10)
    lock.schedule_auto_renewal(0.05, 10)

    assert lock.cancel_auto_renewal() is True
    assert lock.cancel_auto_renewal() is False
    assert timer.pending_timeouts == 0
    assert await client.exists('resource1') == 1


@pytest.mark.asyncio
async def test_auto_renewal_replaces_previous_chain(client, timer):
    """Test schedule ulang untuk token yang sama mengganti chain lama"""
    lock = DistributedLock(client, 'resource1', 'holder', timer=timer)

    await lock.acquire(10)
    lock.schedule_auto_renewal(1, 10)
    lock.schedule_auto_renewal(2, 10)

    assert timer.pending_timeouts == 1
    assert lock._renewals[lock.token_for()].period == 2


@pytest.mark.asyncio
async def test_auto_renewal_validation(client, timer):
    """Test period harus < ttl dan timer wajib ada"""
    lock = DistributedLock(client, 'resource1', 'holder', timer=timer)

    with pytest.raises(ValueError):
        lock.schedule_auto_renewal(10, 10)

    with pytest.raises(ValueError):
        lock.schedule_auto_renewal(0, 10)

    without_timer = DistributedLock(client, 'resource1', 'holder')
    with pytest.raises(ValueError):
        without_timer.schedule_auto_renewal(1, 10)


@pytest.mark.asyncio
async def test_auto_renewal_stops_on_unexpected_error(timer):
    """Test chain berhenti juga saat renewal raise exception selain store error"""
    broken = MagicMock()
    broken.register_script.return_value = AsyncMock(side_effect=ValueError("unexpected reply"))

    lock = DistributedLock(broken, 'resource1', 'holder', timer=timer)
    lock.schedule_auto_renewal(0.02, 1)

    await asyncio.sleep(0.2)

    assert lock.is_renewing() is False
    assert timer.pending_timeouts == 0


@pytest.mark.asyncio
async def test_timer_shutdown_stops_inflight_renewal(timer):
    """Test renewal yang sedang round trip dihentikan oleh timer shutdown"""
    in_flight = asyncio.Event()

    async def slow_renewal(*args, **kwargs):
        in_flight.set()
        await asyncio.sleep(10)
        return 1

    slow = MagicMock()
    slow.register_script.return_value = AsyncMock(side_effect=slow_renewal)

    lock = DistributedLock(slow, 'resource1', 'holder', timer=timer)
    lock.schedule_auto_renewal(0.02, 1)

    await asyncio.wait_for(in_flight.wait(), timeout=2)
    await timer.shutdown()

    assert lock.is_renewing() is False
    assert slow.register_script.return_value.await_count == 1


@pytest.mark.asyncio
async def test_auto_renewal_scheduled_from_other_thread(client, timer):
    """Test schedule_auto_renewal dari thread tanpa event loop"""
    await timer.start()
    lock = DistributedLock(client, 'resource1', 'holder', timer=timer)

    assert await lock.acquire(0.3, worker_id='w1') is True

    thread = threading.Thread(target=lock.schedule_auto_renewal, args=(0.05, 0.3), kwargs={'worker_id': 'w1'})
    thread.start()
    thread.join()

    await asyncio.sleep(0.6)

    assert await client.exists('resource1') == 1
    assert lock.is_renewing(worker_id='w1') is True

    assert await lock.release(worker_id='w1') is True


if __name__ == "__main__":
    pytest.main([__file__, '-v'])
