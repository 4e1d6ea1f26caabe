"""
FastAPI dependencies wiring the booking core.
Tests override ``get_lifecycle`` / ``get_store`` through ``app.dependency_overrides``.
"""
from functools import lru_cache

from ..config import settings
from ..database import get_session_factory
from ..integrations.payment_gateway import PaymentGateway
from ..redis_service import redis_service
from ..repositories.base import BookingStore
from ..repositories.sql import SQLBookingStore
from ..services.booking_lifecycle import BookingLifecycle
from ..services.flight_locks import FlightLocks, LocalFlightLocks, RedisFlightLocks


@lru_cache()
def get_store() -> BookingStore:
    return SQLBookingStore(get_session_factory())


@lru_cache()
def get_flight_locks() -> FlightLocks:
    if settings.flight_lock_backend == "redis":
        return RedisFlightLocks(
            redis_service,
            timeout=settings.flight_lock_timeout_seconds,
            blocking_timeout=settings.flight_lock_blocking_timeout_seconds,
        )
    return LocalFlightLocks(settings.flight_lock_blocking_timeout_seconds)


@lru_cache()
def get_lifecycle() -> BookingLifecycle:
    """Process-wide lifecycle; the lock registry must be shared by every request."""
    return BookingLifecycle(
        store=get_store(),
        gateway=PaymentGateway(settings=settings),
        locks=get_flight_locks(),
        settings=settings,
    )
