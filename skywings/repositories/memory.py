"""
In-memory booking store.
Used by the test-suite and for running the API without a database.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..errors import BookingStateConflict, ConflictError, NotFoundError
from ..models import Booking, BookingStatus, Flight, Insurance, Passenger, utcnow
from .base import BookingStore

logger = logging.getLogger(__name__)


class InMemoryBookingStore(BookingStore):
    """
    Dict-backed store with the same conditional-write semantics as the SQL store.

    Every read and write yields to the event loop first, so concurrent callers
    interleave the way they would against a real database.
    """

    def __init__(self):
        self.flights: Dict[str, Flight] = {}
        self.insurances: Dict[str, Insurance] = {}
        self.passengers: Dict[str, Passenger] = {}
        self.bookings: Dict[str, Booking] = {}
        self._write_lock = asyncio.Lock()

    # Flights
    async def get_flight(self, flight_id: str) -> Flight:
        await asyncio.sleep(0)
        flight = self.flights.get(flight_id)
        if not flight:
            raise NotFoundError(f"Flight {flight_id} not found", details={"flight_id": flight_id})
        return flight.model_copy(deep=True)

    async def save_flight(self, flight: Flight) -> Flight:
        async with self._write_lock:
            self.flights[flight.id] = flight.model_copy(deep=True)
        return flight

    async def update_flight_seat_state(
        self,
        flight: Flight,
        new_occupied_seats: Iterable[str],
        new_available_seats: int
    ) -> Flight:
        await asyncio.sleep(0)
        async with self._write_lock:
            return self._swap_seat_state(flight, new_occupied_seats, new_available_seats)

    # Insurance
    async def get_insurance(self, insurance_id: str) -> Insurance:
        await asyncio.sleep(0)
        insurance = self.insurances.get(insurance_id)
        if not insurance:
            raise NotFoundError(f"Insurance {insurance_id} not found", details={"insurance_id": insurance_id})
        return insurance.model_copy(deep=True)

    async def save_insurance(self, insurance: Insurance) -> Insurance:
        self.insurances[insurance.id] = insurance.model_copy(deep=True)
        return insurance

    # Passengers and bookings
    async def create_passenger(self, passenger: Passenger) -> Passenger:
        self.passengers[passenger.id] = passenger.model_copy(deep=True)
        return passenger

    async def create_booking(self, booking: Booking) -> Booking:
        async with self._write_lock:
            if booking.id in self.bookings:
                raise ConflictError(f"Booking {booking.id} already exists")
            self.bookings[booking.id] = booking.model_copy(deep=True)
        return booking

    async def get_booking(self, booking_id: str) -> Booking:
        await asyncio.sleep(0)
        booking = self.bookings.get(booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
        return booking.model_copy(deep=True)

    async def update_booking(
        self,
        booking_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[BookingStatus] = None
    ) -> Booking:
        await asyncio.sleep(0)
        async with self._write_lock:
            self._check_booking(booking_id, expected_status)
            return self._patch_booking(booking_id, patch)

    async def list_bookings(
        self,
        flight_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> List[Booking]:
        bookings = [
            booking.model_copy(deep=True)
            for booking in self.bookings.values()
            if (flight_id is None or booking.flight_id == flight_id)
            and (user_id is None or booking.user_id == user_id)
        ]
        return sorted(bookings, key=lambda b: b.created_at, reverse=True)

    async def commit_seat_change(
        self,
        flight: Flight,
        new_occupied_seats: Iterable[str],
        new_available_seats: int,
        booking_id: str,
        booking_patch: Dict[str, Any],
        expected_status: BookingStatus
    ) -> Tuple[Flight, Booking]:
        await asyncio.sleep(0)
        async with self._write_lock:
            # Validate both rows before touching either
            self._check_seat_state(flight)
            self._check_booking(booking_id, expected_status)
            updated_flight = self._swap_seat_state(flight, new_occupied_seats, new_available_seats)
            updated_booking = self._patch_booking(booking_id, booking_patch)
        return updated_flight, updated_booking

    # Internals, caller holds _write_lock
    def _check_seat_state(self, flight: Flight) -> Flight:
        stored = self.flights.get(flight.id)
        if not stored:
            raise NotFoundError(f"Flight {flight.id} not found", details={"flight_id": flight.id})
        if (stored.seat_version != flight.seat_version
                or stored.seat_matrix.occupied_seats != flight.seat_matrix.occupied_seats):
            raise ConflictError(
                f"Seat state of flight {flight.id} changed concurrently",
                details={"flight_id": flight.id, "expected_version": flight.seat_version,
                         "current_version": stored.seat_version},
            )
        return stored

    def _swap_seat_state(self, flight: Flight, new_occupied_seats: Iterable[str], new_available_seats: int) -> Flight:
        stored = self._check_seat_state(flight)
        updated = stored.model_copy(deep=True)
        updated.seat_matrix.rows = flight.seat_matrix.rows
        updated.seat_matrix.occupied_seats = set(new_occupied_seats)
        updated.available_seats = new_available_seats
        updated.seat_version = stored.seat_version + 1
        self.flights[flight.id] = updated
        return updated.model_copy(deep=True)

    def _check_booking(self, booking_id: str, expected_status: Optional[BookingStatus]) -> Booking:
        stored = self.bookings.get(booking_id)
        if not stored:
            raise NotFoundError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
        if expected_status is not None and stored.status != expected_status:
            raise BookingStateConflict(
                f"Booking {booking_id} is {stored.status.value}, expected {expected_status.value}",
                details={"booking_id": booking_id, "status": stored.status.value},
            )
        return stored

    def _patch_booking(self, booking_id: str, patch: Dict[str, Any]) -> Booking:
        stored = self.bookings[booking_id]
        updated = stored.model_copy(update={**patch, "updated_at": utcnow()}, deep=True)
        self.bookings[booking_id] = updated
        return updated.model_copy(deep=True)
