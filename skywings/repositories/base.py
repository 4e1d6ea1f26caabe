"""
Persistence contract for the booking core.

The lifecycle only talks to these interfaces, so the SQL store, the in-memory
store used by tests, or any other backend can be injected.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models import Booking, BookingStatus, Flight, Insurance, Passenger


class FlightRepository(ABC):

    @abstractmethod
    async def get_flight(self, flight_id: str) -> Flight:
        """Return the flight or raise NotFoundError."""

    @abstractmethod
    async def save_flight(self, flight: Flight) -> Flight:
        """Insert or replace a flight (admin and seeding use)."""

    @abstractmethod
    async def update_flight_seat_state(
        self,
        flight: Flight,
        new_occupied_seats: Iterable[str],
        new_available_seats: int
    ) -> Flight:
        """
        Compare-and-swap the seat state of ``flight``.

        Succeeds only if the stored seat state still matches the snapshot that
        was read; otherwise raises ConflictError. Returns the stored snapshot
        with its bumped ``seat_version``.
        """

    @abstractmethod
    async def get_insurance(self, insurance_id: str) -> Insurance:
        """Return the insurance or raise NotFoundError."""

    @abstractmethod
    async def save_insurance(self, insurance: Insurance) -> Insurance:
        ...


class BookingRepository(ABC):

    @abstractmethod
    async def create_passenger(self, passenger: Passenger) -> Passenger:
        ...

    @abstractmethod
    async def create_booking(self, booking: Booking) -> Booking:
        ...

    @abstractmethod
    async def get_booking(self, booking_id: str) -> Booking:
        """Return the booking or raise NotFoundError."""

    @abstractmethod
    async def update_booking(
        self,
        booking_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[BookingStatus] = None
    ) -> Booking:
        """
        Apply ``patch`` to a booking.

        With ``expected_status`` the write only happens if the booking is still
        in that status; otherwise BookingStateConflict is raised.
        """

    @abstractmethod
    async def list_bookings(
        self,
        flight_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> List[Booking]:
        ...


class BookingStore(FlightRepository, BookingRepository):
    """Flight and booking persistence sharing one transactional boundary."""

    @abstractmethod
    async def commit_seat_change(
        self,
        flight: Flight,
        new_occupied_seats: Iterable[str],
        new_available_seats: int,
        booking_id: str,
        booking_patch: Dict[str, Any],
        expected_status: BookingStatus
    ) -> Tuple[Flight, Booking]:
        """
        Write a flight's seat state and a booking patch as one atomic unit.

        Raises ConflictError if the flight changed since ``flight`` was read,
        BookingStateConflict if the booking left ``expected_status``. Nothing is
        written in either case.
        """
