"""
Booking lifecycle: creation, payment outcomes, refunds and cancellations.

State machine::

    pending ──completed──> confirmed ──refund──> refunded
       │
       └──failed / cancel──> cancelled

Seats are assigned only when a payment completes. The seat pick and the
booking confirmation are committed together with a conditional write, inside
a per-flight lock, so concurrent confirmations on one flight can never share a
seat or miscount ``available_seats``.

Every public method returns a ``BookingResult``; expected business failures
(capacity, verification, invalid transitions, ...) come back as typed errors
instead of being raised. Storage faults still propagate.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional, Union
import functools
import logging

from pydantic import ValidationError as PydanticValidationError

from ..config import Settings, settings as default_settings
from ..errors import (
    BookingError, BookingStateConflict, CapacityError, ConflictError, ContentionError, InvalidStateTransition,
    PaymentVerificationFailed, ValidationError
)
from ..integrations.payment_gateway import PaymentGateway
from ..models import (
    Booking, BookingStatus, Passenger, PassengerDetails, PaymentOutcome, PaymentStatus
)
from ..repositories.base import BookingStore
from .flight_locks import FlightLocks, LocalFlightLocks
from .pricing import calculate_booking_amounts
from .seat_allocator import RandomSeatSelector, allocate_seat, release_seat
from .seat_matrix import validate_capacity

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (BookingStatus.CANCELLED, BookingStatus.REFUNDED)


@dataclass
class BookingResult:
    """Either a booking or the error that prevented the operation."""
    booking: Optional[Booking] = None
    error: Optional[BookingError] = None
    replayed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, booking: Booking, replayed: bool = False) -> "BookingResult":
        return cls(booking=booking, replayed=replayed)

    @classmethod
    def fail(cls, error: BookingError) -> "BookingResult":
        return cls(error=error)

    def unwrap(self) -> Booking:
        if self.error is not None:
            raise self.error
        return self.booking


def returns_result(func):
    """Wrap a lifecycle coroutine so business errors become failed results."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> BookingResult:
        try:
            outcome = await func(*args, **kwargs)
        except BookingError as e:
            logger.info(f"{func.__name__} rejected: {e.code} - {e.message}")
            return BookingResult.fail(e)
        if isinstance(outcome, BookingResult):
            return outcome
        return BookingResult.success(outcome)
    return wrapper


class BookingLifecycle:
    """Booking state machine over an injected store, payment gateway and flight locks."""

    def __init__(
        self,
        store: BookingStore,
        gateway: Optional[PaymentGateway] = None,
        locks: Optional[FlightLocks] = None,
        selector=None,
        max_attempts: Optional[int] = None,
        settings: Optional[Settings] = None
    ):
        settings = settings or default_settings
        self.store = store
        self.gateway = gateway or PaymentGateway(settings=settings)
        self.locks = locks or LocalFlightLocks(settings.flight_lock_blocking_timeout_seconds)
        self.selector = selector or RandomSeatSelector()
        self.max_attempts = max_attempts or settings.seat_allocation_max_attempts

    # Creation
    @returns_result
    async def create_booking(
        self,
        flight_id: str,
        passenger_details: Union[PassengerDetails, Dict[str, Any]],
        contact_email: str,
        contact_phone: str,
        travel_date: Union[date, str, None],
        insurance_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Booking:
        """
        Create a pending booking.

        Checks the flight is active and still has seats, prices the booking
        (discount + insurance) and stores it. No seat is held until payment
        completes, so the seat check here is only advisory.
        """
        details = _parse_passenger(passenger_details)
        travel_date = _parse_travel_date(travel_date)

        missing = [
            name for name, value in (
                ("flight_id", flight_id),
                ("passenger_details.first_name", details.first_name.strip()),
                ("passenger_details.last_name", details.last_name.strip()),
                ("contact_email", contact_email),
                ("contact_phone", contact_phone),
                ("travel_date", travel_date),
            ) if not value
        ]
        if missing:
            raise ValidationError(
                f"Missing required booking fields: {', '.join(missing)}",
                details={"missing": missing},
            )
        if "@" not in contact_email:
            raise ValidationError(f"Invalid contact email: {contact_email}")

        flight = validate_capacity(await self.store.get_flight(flight_id))
        if not flight.is_active:
            raise ValidationError(f"Flight {flight_id} is not active", details={"flight_id": flight_id})
        if flight.available_seats <= 0:
            raise CapacityError("NoSeatsAvailable", details={"flight_id": flight_id})

        insurance = None
        if insurance_id:
            insurance = await self.store.get_insurance(insurance_id)
            if not insurance.is_active:
                raise ValidationError(
                    f"Insurance {insurance_id} is not active", details={"insurance_id": insurance_id}
                )

        amounts = calculate_booking_amounts(flight, insurance)

        passenger = await self.store.create_passenger(Passenger(**details.model_dump()))
        booking = Booking(
            flight_id=flight.id,
            passenger_id=passenger.id,
            insurance_id=insurance.id if insurance else None,
            user_id=user_id,
            flight_amount=amounts["flight_amount"],
            insurance_amount=amounts["insurance_amount"],
            total_amount=amounts["total_amount"],
            travel_date=travel_date,
            contact_email=contact_email,
            contact_phone=contact_phone,
        )
        booking = await self.store.create_booking(booking)

        logger.info(f"Created booking {booking.id} on flight {flight.id} (total {booking.total_amount})")
        return booking

    @returns_result
    async def get_booking(self, booking_id: str) -> Booking:
        return await self.store.get_booking(booking_id)

    # Payment outcomes
    @returns_result
    async def apply_payment_outcome(
        self,
        booking_id: str,
        outcome: Union[PaymentOutcome, Dict[str, Any]]
    ) -> BookingResult:
        """
        Apply a gateway payment outcome to a booking.

        - completed on a pending booking: assign a seat and confirm
        - failed on a pending booking: cancel, releasing any held seat once
        - an identical completed replay on a confirmed booking is a no-op
        - anything on a cancelled/refunded booking is an invalid transition
        """
        if not isinstance(outcome, PaymentOutcome):
            try:
                outcome = PaymentOutcome.model_validate(outcome)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid payment outcome: {e.errors()}")

        booking = await self.store.get_booking(booking_id)

        if not self.gateway.check_outcome(outcome):
            logger.warning(
                f"AUDIT payment verification failed for booking {booking_id}: "
                f"payment {outcome.payment_id}, order {outcome.order_id}"
            )
            raise PaymentVerificationFailed(
                f"Payment {outcome.payment_id} could not be verified",
                details={"booking_id": booking_id, "payment_id": outcome.payment_id},
            )

        return await self._dispatch(booking, outcome)

    async def _dispatch(self, booking: Booking, outcome: PaymentOutcome) -> BookingResult:
        if booking.status in TERMINAL_STATUSES:
            raise InvalidStateTransition(
                f"Booking {booking.id} is already {booking.status.value}",
                details={"booking_id": booking.id, "status": booking.status.value},
            )

        if booking.status == BookingStatus.CONFIRMED:
            if _is_replay(booking, outcome):
                logger.info(f"Duplicate payment callback {outcome.payment_id} for booking {booking.id} ignored")
                return BookingResult.success(booking, replayed=True)
            raise InvalidStateTransition(
                f"Booking {booking.id} is already confirmed",
                details={"booking_id": booking.id, "status": booking.status.value,
                         "payment_status": outcome.payment_status.value},
            )

        if outcome.payment_status == PaymentStatus.COMPLETED:
            return await self._confirm(booking, outcome)
        if outcome.payment_status == PaymentStatus.FAILED:
            return await self._fail(booking, outcome)

        raise ValidationError(
            f"Unsupported payment status: {outcome.payment_status.value}",
            details={"payment_status": outcome.payment_status.value},
        )

    async def _confirm(self, booking: Booking, outcome: PaymentOutcome) -> BookingResult:
        """Allocate a seat and confirm, retrying when another writer wins the flight CAS."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.locks.hold(booking.flight_id):
                    flight = validate_capacity(await self.store.get_flight(booking.flight_id))
                    seat, allocated = allocate_seat(flight, self.selector)
                    _, confirmed = await self.store.commit_seat_change(
                        flight,
                        allocated.seat_matrix.occupied_seats,
                        allocated.available_seats,
                        booking.id,
                        {
                            "status": BookingStatus.CONFIRMED,
                            "payment_status": PaymentStatus.COMPLETED,
                            "seat_number": seat,
                            "payment_id": outcome.payment_id,
                            "order_id": outcome.order_id,
                        },
                        expected_status=BookingStatus.PENDING,
                    )
            except BookingStateConflict:
                # A concurrent callback moved the booking first
                current = await self.store.get_booking(booking.id)
                return await self._dispatch(current, outcome)
            except ConflictError:
                logger.info(
                    f"Seat allocation conflict on flight {booking.flight_id} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                continue

            logger.info(
                f"✅ Booking {booking.id} confirmed with seat {seat} on flight {booking.flight_id} "
                f"({allocated.available_seats} seats left)"
            )
            return BookingResult.success(confirmed)

        raise ContentionError(
            f"Could not allocate a seat on flight {booking.flight_id} after {self.max_attempts} attempts",
            details={"flight_id": booking.flight_id, "booking_id": booking.id},
        )

    async def _fail(self, booking: Booking, outcome: PaymentOutcome) -> BookingResult:
        patch = {
            "status": BookingStatus.CANCELLED,
            "payment_status": PaymentStatus.FAILED,
            "payment_id": outcome.payment_id,
            "order_id": outcome.order_id,
        }
        try:
            cancelled = await self._close_booking(booking, patch, BookingStatus.PENDING)
        except BookingStateConflict:
            current = await self.store.get_booking(booking.id)
            return await self._dispatch(current, outcome)

        logger.info(f"Booking {booking.id} cancelled after failed payment {outcome.payment_id}")
        return BookingResult.success(cancelled)

    # Refunds and cancellations
    @returns_result
    async def refund_booking(self, booking_id: str) -> Booking:
        """Refund a confirmed booking and give its seat back to the flight."""
        booking = await self.store.get_booking(booking_id)
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidStateTransition(
                f"Only confirmed bookings can be refunded; booking {booking_id} is {booking.status.value}",
                details={"booking_id": booking_id, "status": booking.status.value},
            )

        patch = {"status": BookingStatus.REFUNDED, "payment_status": PaymentStatus.REFUNDED}
        try:
            refunded = await self._close_booking(booking, patch, BookingStatus.CONFIRMED)
        except BookingStateConflict as e:
            raise InvalidStateTransition(f"Booking {booking_id} changed during refund", details=e.details)

        logger.info(f"Booking {booking_id} refunded, seat {booking.seat_number} released")
        return refunded

    @returns_result
    async def cancel_booking(self, booking_id: str) -> Booking:
        """Cancel a pending booking whose payment was abandoned."""
        booking = await self.store.get_booking(booking_id)
        if booking.status != BookingStatus.PENDING:
            raise InvalidStateTransition(
                f"Only pending bookings can be cancelled; booking {booking_id} is {booking.status.value}",
                details={"booking_id": booking_id, "status": booking.status.value},
            )

        try:
            cancelled = await self._close_booking(booking, {"status": BookingStatus.CANCELLED}, BookingStatus.PENDING)
        except BookingStateConflict as e:
            raise InvalidStateTransition(f"Booking {booking_id} changed during cancellation", details=e.details)

        logger.info(f"Booking {booking_id} cancelled")
        return cancelled

    async def _close_booking(self, booking: Booking, patch: Dict[str, Any], expected_status: BookingStatus) -> Booking:
        """Write a closing patch, releasing the booking's seat exactly once if it holds one."""
        if not booking.seat_number or booking.seat_released:
            return await self.store.update_booking(booking.id, patch, expected_status=expected_status)

        patch = {**patch, "seat_released": True}
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.locks.hold(booking.flight_id):
                    flight = validate_capacity(await self.store.get_flight(booking.flight_id))
                    released = release_seat(flight, booking.seat_number)
                    _, closed = await self.store.commit_seat_change(
                        flight,
                        released.seat_matrix.occupied_seats,
                        released.available_seats,
                        booking.id,
                        patch,
                        expected_status=expected_status,
                    )
            except BookingStateConflict:
                raise
            except ConflictError:
                logger.info(
                    f"Seat release conflict on flight {booking.flight_id} "
                    f"(attempt {attempt}/{self.max_attempts})"
                )
                continue

            logger.info(f"Released seat {booking.seat_number} on flight {booking.flight_id}")
            return closed

        raise ContentionError(
            f"Could not release seat {booking.seat_number} on flight {booking.flight_id}",
            details={"flight_id": booking.flight_id, "booking_id": booking.id},
        )


def _is_replay(booking: Booking, outcome: PaymentOutcome) -> bool:
    return (
        outcome.payment_status == PaymentStatus.COMPLETED
        and booking.payment_status == PaymentStatus.COMPLETED
        and booking.payment_id == outcome.payment_id
    )


def _parse_passenger(details: Union[PassengerDetails, Dict[str, Any], None]) -> PassengerDetails:
    if isinstance(details, PassengerDetails):
        return details
    try:
        return PassengerDetails.model_validate(details or {})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid passenger details: {e.errors()}")


def _parse_travel_date(value: Union[date, str, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(value).date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid travel date: {value}")
