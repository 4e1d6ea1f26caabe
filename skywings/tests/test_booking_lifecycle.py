"""
Booking lifecycle tests against the in-memory store.
"""
import pytest

from skywings.errors import (
    CapacityError, InvalidStateTransition, NotFoundError, PaymentVerificationFailed, ValidationError
)
from skywings.integrations.payment_gateway import PaymentGateway
from skywings.models import BookingStatus, Discount, PaymentOutcome, PaymentStatus
from skywings.services.booking_lifecycle import BookingLifecycle, BookingResult
from skywings.services.seat_allocator import LowestSeatSelector

from .conftest import booking_request, make_flight


async def create_pending(lifecycle, **overrides):
    result = await lifecycle.create_booking(**booking_request(**overrides))
    assert result.ok, result.error
    return result.booking


class TestCreateBooking:

    @pytest.mark.asyncio
    async def test_creates_pending_booking_without_seat(self, lifecycle, store):
        await store.save_flight(make_flight(total_seats=2))

        result = await lifecycle.create_booking(**booking_request())

        assert result.ok
        booking = result.booking
        assert booking.id.startswith("BK")
        assert len(booking.id) == 22
        assert booking.status == BookingStatus.PENDING
        assert booking.payment_status == PaymentStatus.PENDING
        assert booking.seat_number is None
        assert booking.passenger_id in store.passengers
        assert (await store.get_flight("fl_test")).available_seats == 2

    @pytest.mark.asyncio
    async def test_prices_discount_and_insurance(self, lifecycle, store, insurance):
        flight = make_flight(total_seats=2, price=1000.0)
        flight.discount = Discount(has_discount=True, discount_value=20)
        await store.save_flight(flight)
        await store.save_insurance(insurance)

        booking = await create_pending(lifecycle, insurance_id="ins_basic")

        assert booking.flight_amount == 800.0
        assert booking.insurance_amount == 25.0
        assert booking.total_amount == 825.0
        assert booking.insurance_id == "ins_basic"

    @pytest.mark.asyncio
    async def test_accepts_iso_travel_date(self, lifecycle, store):
        await store.save_flight(make_flight())

        booking = await create_pending(lifecycle, travel_date="2030-01-15")

        assert booking.travel_date.isoformat() == "2030-01-15"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"passenger_details": {"first_name": "", "last_name": "Rivera"}},
        {"passenger_details": {"first_name": "Ana"}},
        {"contact_email": ""},
        {"contact_email": "not-an-email"},
        {"contact_phone": ""},
        {"travel_date": None},
        {"travel_date": "next tuesday"},
        {"travel_date": 20300115},
    ])
    async def test_validation_errors(self, lifecycle, store, overrides):
        await store.save_flight(make_flight())

        result = await lifecycle.create_booking(**booking_request(**overrides))

        assert isinstance(result.error, ValidationError)
        assert store.bookings == {}

    @pytest.mark.asyncio
    async def test_unknown_flight(self, lifecycle):
        result = await lifecycle.create_booking(**booking_request(flight_id="fl_missing"))

        assert isinstance(result.error, NotFoundError)

    @pytest.mark.asyncio
    async def test_inactive_flight(self, lifecycle, store):
        await store.save_flight(make_flight(is_active=False))

        result = await lifecycle.create_booking(**booking_request())

        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_full_flight(self, lifecycle, store):
        await store.save_flight(make_flight(total_seats=2, occupied={"1A", "1B"}))

        result = await lifecycle.create_booking(**booking_request())

        assert isinstance(result.error, CapacityError)

    @pytest.mark.asyncio
    async def test_inactive_insurance(self, lifecycle, store, insurance):
        await store.save_flight(make_flight())
        insurance.is_active = False
        await store.save_insurance(insurance)

        result = await lifecycle.create_booking(**booking_request(insurance_id="ins_basic"))

        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_unknown_insurance(self, lifecycle, store):
        await store.save_flight(make_flight())

        result = await lifecycle.create_booking(**booking_request(insurance_id="ins_missing"))

        assert isinstance(result.error, NotFoundError)


class TestPaymentOutcome:

    @pytest.mark.asyncio
    async def test_happy_path_fills_flight_then_capacity_error(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight(total_seats=2, rows=1, columns=2))
        b1 = await create_pending(lifecycle)
        b2 = await create_pending(lifecycle)
        b3 = await create_pending(lifecycle)

        r1 = await lifecycle.apply_payment_outcome(b1.id, signed_outcome("txn_1"))
        r2 = await lifecycle.apply_payment_outcome(b2.id, signed_outcome("txn_2"))
        r3 = await lifecycle.apply_payment_outcome(b3.id, signed_outcome("txn_3"))

        assert r1.booking.seat_number == "1A"
        assert r2.booking.seat_number == "1B"
        assert r1.booking.status == BookingStatus.CONFIRMED
        assert r1.booking.payment_status == PaymentStatus.COMPLETED
        assert r1.booking.payment_id == "txn_1"

        assert isinstance(r3.error, CapacityError)
        assert r3.error.message == "NoSeatsAvailable"
        stored_b3 = await store.get_booking(b3.id)
        assert stored_b3.status == BookingStatus.PENDING
        assert stored_b3.seat_number is None

        flight = await store.get_flight("fl_test")
        assert flight.available_seats == 0
        assert flight.seat_matrix.occupied_seats == {"1A", "1B"}

    @pytest.mark.asyncio
    async def test_failed_payment_cancels_without_touching_seats(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight(total_seats=2))
        booking = await create_pending(lifecycle)

        result = await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_1", PaymentStatus.FAILED))

        assert result.ok
        assert result.booking.status == BookingStatus.CANCELLED
        assert result.booking.payment_status == PaymentStatus.FAILED
        assert result.booking.seat_number is None
        assert (await store.get_flight("fl_test")).available_seats == 2

    @pytest.mark.asyncio
    async def test_failed_payment_releases_held_seat_once(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight(total_seats=2, occupied={"1A"}))
        booking = await create_pending(lifecycle)
        await store.update_booking(booking.id, {"seat_number": "1A"})

        result = await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_1", PaymentStatus.FAILED))

        assert result.booking.status == BookingStatus.CANCELLED
        assert result.booking.seat_released is True
        flight = await store.get_flight("fl_test")
        assert flight.seat_matrix.occupied_seats == set()
        assert flight.available_seats == 2

    @pytest.mark.asyncio
    async def test_wrong_signature_rejected(self, lifecycle, store):
        await store.save_flight(make_flight(total_seats=2))
        booking = await create_pending(lifecycle)
        outcome = PaymentOutcome(
            payment_id="txn_1",
            payment_status=PaymentStatus.COMPLETED,
            order_id="order_001",
            signature="f" * 64,
        )

        result = await lifecycle.apply_payment_outcome(booking.id, outcome)

        assert isinstance(result.error, PaymentVerificationFailed)
        stored = await store.get_booking(booking.id)
        assert stored.status == BookingStatus.PENDING
        assert stored.payment_status == PaymentStatus.PENDING
        assert (await store.get_flight("fl_test")).available_seats == 2

    @pytest.mark.asyncio
    async def test_non_ascii_signature_rejected(self, lifecycle, store):
        await store.save_flight(make_flight(total_seats=2))
        booking = await create_pending(lifecycle)
        outcome = PaymentOutcome(
            payment_id="txn_x",
            payment_status=PaymentStatus.COMPLETED,
            order_id="order_1",
            signature="sigé",
        )

        result = await lifecycle.apply_payment_outcome(booking.id, outcome)

        assert isinstance(result.error, PaymentVerificationFailed)
        assert result.error.code == "PAYMENT_VERIFICATION_FAILED"
        assert (await store.get_booking(booking.id)).status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_sandbox_payment_rejected_in_production(self, lifecycle, store):
        await store.save_flight(make_flight())
        booking = await create_pending(lifecycle)

        result = await lifecycle.apply_payment_outcome(
            booking.id, {"payment_id": "pay_test", "payment_status": "completed", "signature": "null"}
        )

        assert isinstance(result.error, PaymentVerificationFailed)

    @pytest.mark.asyncio
    async def test_sandbox_payment_accepted_when_enabled(self, store):
        await store.save_flight(make_flight())
        lifecycle = BookingLifecycle(
            store,
            gateway=PaymentGateway(secret="s", sandbox_enabled=True),
            selector=LowestSeatSelector(),
        )
        booking = await create_pending(lifecycle)

        result = await lifecycle.apply_payment_outcome(
            booking.id, {"payment_id": "pay_test", "payment_status": "completed", "signature": "null"}
        )

        assert result.ok
        assert result.booking.seat_number == "1A"

    @pytest.mark.asyncio
    async def test_identical_replay_is_noop(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight(total_seats=2))
        booking = await create_pending(lifecycle)
        outcome = signed_outcome("txn_1")

        first = await lifecycle.apply_payment_outcome(booking.id, outcome)
        replay = await lifecycle.apply_payment_outcome(booking.id, outcome)

        assert first.ok and replay.ok
        assert replay.replayed
        assert replay.booking.seat_number == first.booking.seat_number
        flight = await store.get_flight("fl_test")
        assert flight.available_seats == 1
        assert flight.seat_matrix.occupied_seats == {first.booking.seat_number}

    @pytest.mark.asyncio
    async def test_different_outcome_on_confirmed_is_invalid(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight(total_seats=2))
        booking = await create_pending(lifecycle)
        await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_1"))

        other_payment = await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_2"))
        late_failure = await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_1", PaymentStatus.FAILED))

        assert isinstance(other_payment.error, InvalidStateTransition)
        assert isinstance(late_failure.error, InvalidStateTransition)
        assert (await store.get_flight("fl_test")).available_seats == 1

    @pytest.mark.asyncio
    async def test_outcome_on_cancelled_booking_is_invalid(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight(total_seats=2))
        booking = await create_pending(lifecycle)
        await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_1", PaymentStatus.FAILED))

        result = await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_1"))

        assert isinstance(result.error, InvalidStateTransition)
        assert (await store.get_flight("fl_test")).available_seats == 2

    @pytest.mark.asyncio
    async def test_unsupported_payment_status(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight())
        booking = await create_pending(lifecycle)

        result = await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_1", PaymentStatus.PENDING))

        assert isinstance(result.error, ValidationError)

    @pytest.mark.asyncio
    async def test_unknown_booking(self, lifecycle, signed_outcome):
        result = await lifecycle.apply_payment_outcome("BK_missing", signed_outcome("txn_1"))

        assert isinstance(result.error, NotFoundError)


class TestRefundAndCancel:

    @pytest.mark.asyncio
    async def test_refund_releases_seat_exactly_once(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight(total_seats=2))
        booking = await create_pending(lifecycle)
        confirmed = (await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_1"))).booking

        refund = await lifecycle.refund_booking(booking.id)
        second = await lifecycle.refund_booking(booking.id)

        assert refund.ok
        assert refund.booking.status == BookingStatus.REFUNDED
        assert refund.booking.payment_status == PaymentStatus.REFUNDED
        assert refund.booking.seat_released is True
        assert refund.booking.seat_number == confirmed.seat_number
        assert isinstance(second.error, InvalidStateTransition)

        flight = await store.get_flight("fl_test")
        assert flight.available_seats == 2
        assert flight.seat_matrix.occupied_seats == set()

    @pytest.mark.asyncio
    async def test_refund_pending_is_invalid(self, lifecycle, store):
        await store.save_flight(make_flight())
        booking = await create_pending(lifecycle)

        result = await lifecycle.refund_booking(booking.id)

        assert isinstance(result.error, InvalidStateTransition)

    @pytest.mark.asyncio
    async def test_released_seat_can_be_rebooked(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight(total_seats=1, rows=1, columns=1))
        first = await create_pending(lifecycle)
        second = await create_pending(lifecycle)
        await lifecycle.apply_payment_outcome(first.id, signed_outcome("txn_1"))
        await lifecycle.refund_booking(first.id)

        result = await lifecycle.apply_payment_outcome(second.id, signed_outcome("txn_2"))

        assert result.booking.seat_number == "1A"
        assert (await store.get_flight("fl_test")).available_seats == 0

    @pytest.mark.asyncio
    async def test_cancel_pending(self, lifecycle, store):
        await store.save_flight(make_flight())
        booking = await create_pending(lifecycle)

        result = await lifecycle.cancel_booking(booking.id)

        assert result.booking.status == BookingStatus.CANCELLED
        assert result.booking.payment_status == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_cancel_confirmed_is_invalid(self, lifecycle, store, signed_outcome):
        await store.save_flight(make_flight())
        booking = await create_pending(lifecycle)
        await lifecycle.apply_payment_outcome(booking.id, signed_outcome("txn_1"))

        result = await lifecycle.cancel_booking(booking.id)

        assert isinstance(result.error, InvalidStateTransition)


@pytest.mark.asyncio
async def test_get_booking(lifecycle, store):
    await store.save_flight(make_flight())
    booking = await create_pending(lifecycle)

    found = await lifecycle.get_booking(booking.id)
    missing = await lifecycle.get_booking("BK_missing")

    assert found.booking == booking
    assert isinstance(missing.error, NotFoundError)
    with pytest.raises(NotFoundError):
        missing.unwrap()


def test_result_helpers():
    error = CapacityError("NoSeatsAvailable")

    assert not BookingResult.fail(error).ok
    assert BookingResult.fail(error).error is error
