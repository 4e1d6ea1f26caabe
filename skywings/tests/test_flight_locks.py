"""
Tests for per-flight locks.
"""
import asyncio

import pytest
from redis.exceptions import LockError

from skywings.api import deps
from skywings.errors import ContentionError
from skywings.redis_service import redis_service
from skywings.services import flight_locks
from skywings.services.flight_locks import LocalFlightLocks, RedisFlightLocks


class FakeRedisLock:

    def __init__(self, name, acquired=True, expired=False):
        self.name = name
        self.acquired = acquired
        self.expired = expired
        self.released = False

    async def acquire(self):
        return self.acquired

    async def release(self):
        if self.expired:
            raise LockError("Cannot release an unlocked lock")
        self.released = True


class FakeRedisService:

    def __init__(self, **lock_kwargs):
        self.lock_kwargs = lock_kwargs
        self.locks = []

    def lock(self, resource, timeout, blocking_timeout):
        lock = FakeRedisLock(f"lock:{resource}", **self.lock_kwargs)
        self.locks.append((lock, timeout, blocking_timeout))
        return lock


class TestLocalFlightLocks:

    @pytest.mark.asyncio
    async def test_same_flight_is_serialised(self):
        locks = LocalFlightLocks()
        events = []

        async def worker(name):
            async with locks.hold("fl_1"):
                events.append(f"{name}:in")
                await asyncio.sleep(0.01)
                events.append(f"{name}:out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a:in", "a:out", "b:in", "b:out"],
            ["b:in", "b:out", "a:in", "a:out"],
        )

    @pytest.mark.asyncio
    async def test_different_flights_do_not_wait(self):
        locks = LocalFlightLocks(blocking_timeout=0.05)

        async with locks.hold("fl_1"):
            async with locks.hold("fl_2"):
                pass

    @pytest.mark.asyncio
    async def test_timeout_raises_contention(self):
        locks = LocalFlightLocks(blocking_timeout=0.01)

        async with locks.hold("fl_1"):
            with pytest.raises(ContentionError):
                async with locks.hold("fl_1"):
                    pass

    @pytest.mark.asyncio
    async def test_timeout_after_late_acquire_gives_lock_back(self, monkeypatch):
        locks = LocalFlightLocks(blocking_timeout=0.01)

        async def timeout_after_acquire(aw, timeout):
            await aw
            raise asyncio.TimeoutError()

        with monkeypatch.context() as m:
            m.setattr(flight_locks.asyncio, "wait_for", timeout_after_acquire)
            with pytest.raises(ContentionError):
                async with locks.hold("fl_1"):
                    pass

        await asyncio.sleep(0)
        assert not locks._lock_for("fl_1").locked()

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_take_lock(self):
        locks = LocalFlightLocks(blocking_timeout=5.0)

        async def enter():
            async with locks.hold("fl_1"):
                pass

        async with locks.hold("fl_1"):
            waiter = asyncio.ensure_future(enter())
            await asyncio.sleep(0.01)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

        await asyncio.sleep(0)
        assert not locks._lock_for("fl_1").locked()

    @pytest.mark.asyncio
    async def test_released_after_error(self):
        locks = LocalFlightLocks(blocking_timeout=0.05)

        with pytest.raises(RuntimeError):
            async with locks.hold("fl_1"):
                raise RuntimeError("boom")

        async with locks.hold("fl_1"):
            pass


class TestRedisFlightLocks:

    @pytest.mark.asyncio
    async def test_acquires_and_releases_flight_lock(self):
        redis = FakeRedisService()
        locks = RedisFlightLocks(redis, timeout=7, blocking_timeout=2)

        async with locks.hold("fl_1"):
            pass

        lock, timeout, blocking_timeout = redis.locks[0]
        assert lock.name == "lock:flight:fl_1"
        assert (timeout, blocking_timeout) == (7, 2)
        assert lock.released

    @pytest.mark.asyncio
    async def test_busy_lock_raises_contention(self):
        locks = RedisFlightLocks(FakeRedisService(acquired=False))

        with pytest.raises(ContentionError):
            async with locks.hold("fl_1"):
                pass

    @pytest.mark.asyncio
    async def test_expired_lock_release_is_logged(self, caplog):
        locks = RedisFlightLocks(FakeRedisService(expired=True))

        async with locks.hold("fl_1"):
            pass

        assert "expired before release" in caplog.text


def test_redis_backend_wires_shared_redis_service(monkeypatch):
    monkeypatch.setattr(deps.settings, "flight_lock_backend", "redis")
    deps.get_flight_locks.cache_clear()
    try:
        locks = deps.get_flight_locks()
        assert isinstance(locks, RedisFlightLocks)
        assert locks.redis is redis_service
    finally:
        deps.get_flight_locks.cache_clear()
