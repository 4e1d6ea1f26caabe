import os
import random
from datetime import date, timedelta

import pytest

# Settings are read at import time; pin them before importing skywings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["FLIGHT_LOCK_BACKEND"] = "local"
os.environ["PAYMENTS_DRY_RUN"] = "false"
os.environ["PAYMENT_GATEWAY_SECRET"] = "test-gateway-secret"

from skywings.integrations.payment_gateway import PaymentGateway
from skywings.models import Flight, Insurance, PaymentOutcome, PaymentStatus, SeatMatrix
from skywings.repositories.memory import InMemoryBookingStore
from skywings.services.booking_lifecycle import BookingLifecycle
from skywings.services.flight_locks import LocalFlightLocks
from skywings.services.seat_allocator import LowestSeatSelector

GATEWAY_SECRET = "test-gateway-secret"


def make_flight(total_seats=2, rows=1, columns=2, **overrides) -> Flight:
    flight = Flight(
        id=overrides.pop("id", "fl_test"),
        airline="SkyWings",
        flight_number="SW001",
        source="PTY",
        destination="MDE",
        price=overrides.pop("price", 1000.0),
        total_seats=total_seats,
        seat_matrix=SeatMatrix(rows=rows, columns=columns, occupied_seats=overrides.pop("occupied", set())),
        **overrides
    )
    flight.available_seats = flight.total_seats - len(flight.seat_matrix.occupied_seats)
    return flight


def booking_request(flight_id="fl_test", **overrides):
    request = {
        "flight_id": flight_id,
        "passenger_details": {"first_name": "Ana", "last_name": "Rivera", "email": "ana@example.com"},
        "contact_email": "ana@example.com",
        "contact_phone": "+507-6123-4567",
        "travel_date": date.today() + timedelta(days=14),
    }
    request.update(overrides)
    return request


@pytest.fixture
def gateway():
    return PaymentGateway(secret=GATEWAY_SECRET, sandbox_enabled=False)


@pytest.fixture
def signed_outcome(gateway):
    """Build a correctly signed payment outcome."""
    def build(payment_id, status=PaymentStatus.COMPLETED, order_id="order_001"):
        return PaymentOutcome(
            payment_id=payment_id,
            payment_status=status,
            order_id=order_id,
            signature=gateway.sign(order_id, payment_id),
        )
    return build


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def lifecycle(store, gateway):
    return BookingLifecycle(
        store=store,
        gateway=gateway,
        locks=LocalFlightLocks(blocking_timeout=5.0),
        selector=LowestSeatSelector(),
        max_attempts=5,
    )


@pytest.fixture
def seeded_random():
    return random.Random(42)


@pytest.fixture
def insurance():
    return Insurance(id="ins_basic", name="Basic Travel Cover", price=25.0)
