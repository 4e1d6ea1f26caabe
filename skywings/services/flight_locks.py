"""
Per-flight mutual exclusion around seat allocation.

Only callers working on the same flight wait for each other. The local
variant serialises coroutines in one process; the Redis variant serialises
every API worker sharing the Redis instance.
"""
import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Dict

from redis.exceptions import LockError

from ..errors import ContentionError
from ..redis_service import RedisService

logger = logging.getLogger(__name__)


class FlightLocks(ABC):

    @abstractmethod
    def hold(self, flight_id: str) -> AsyncContextManager[None]:
        """Async context manager holding the seat lock of one flight."""


class LocalFlightLocks(FlightLocks):

    def __init__(self, blocking_timeout: float = 5.0):
        self.blocking_timeout = blocking_timeout
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, flight_id: str) -> asyncio.Lock:
        lock = self._locks.get(flight_id)
        if lock is None:
            lock = self._locks[flight_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, flight_id: str) -> AsyncIterator[None]:
        lock = self._lock_for(flight_id)
        acquire = asyncio.ensure_future(lock.acquire())
        try:
            await asyncio.wait_for(asyncio.shield(acquire), timeout=self.blocking_timeout)
        except asyncio.CancelledError:
            _abandon_acquire(lock, acquire)
            raise
        except asyncio.TimeoutError:
            _abandon_acquire(lock, acquire)
            raise ContentionError(
                f"Timed out waiting for seat lock on flight {flight_id}",
                details={"flight_id": flight_id},
            )
        try:
            yield
        finally:
            lock.release()


def _abandon_acquire(lock: asyncio.Lock, acquire: "asyncio.Future[bool]") -> None:
    """Cancel a pending acquire; if it already won the lock, give the lock back."""
    acquire.add_done_callback(functools.partial(_release_if_acquired, lock))
    acquire.cancel()


def _release_if_acquired(lock: asyncio.Lock, acquire: "asyncio.Future[bool]") -> None:
    if not acquire.cancelled() and acquire.exception() is None:
        lock.release()


class RedisFlightLocks(FlightLocks):

    def __init__(self, redis: RedisService, timeout: float = 10.0, blocking_timeout: float = 5.0):
        self.redis = redis
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, flight_id: str) -> AsyncIterator[None]:
        lock = self.redis.lock(f"flight:{flight_id}", self.timeout, self.blocking_timeout)
        acquired = await lock.acquire()
        if not acquired:
            logger.info(f"⏰ Seat lock busy for flight {flight_id}")
            raise ContentionError(
                f"Timed out waiting for seat lock on flight {flight_id}",
                details={"flight_id": flight_id},
            )

        logger.debug(f"🔒 Acquired seat lock for flight {flight_id}")
        try:
            yield
        finally:
            try:
                await lock.release()
                logger.debug(f"🔓 Released seat lock for flight {flight_id}")
            except LockError as e:
                # Lock expired while held; the conditional write still guards the seat state
                logger.warning(f"Seat lock for flight {flight_id} expired before release: {e}")
