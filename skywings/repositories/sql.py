"""
SQLAlchemy booking store.

Seat-state writes are conditional UPDATEs on ``flights.seat_version``; the
booking patch is guarded on the booking's current status. Both run in one
transaction so a lost race writes nothing.
"""
import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import BookingRecord, FlightRecord, InsuranceRecord, PassengerRecord
from ..errors import BookingStateConflict, ConflictError, NotFoundError
from ..models import (
    Booking, BookingStatus, Discount, Flight, Insurance, Passenger, PaymentStatus, SeatMatrix, utcnow
)
from .base import BookingStore

logger = logging.getLogger(__name__)


class SQLBookingStore(BookingStore):

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    # Flights
    async def get_flight(self, flight_id: str) -> Flight:
        async with self.session_factory() as session:
            record = await session.get(FlightRecord, flight_id)
            if not record:
                raise NotFoundError(f"Flight {flight_id} not found", details={"flight_id": flight_id})
            return flight_from_record(record)

    async def save_flight(self, flight: Flight) -> Flight:
        async with self.session_factory() as session:
            async with session.begin():
                await session.merge(flight_to_record(flight))
        return flight

    async def update_flight_seat_state(
        self,
        flight: Flight,
        new_occupied_seats: Iterable[str],
        new_available_seats: int
    ) -> Flight:
        async with self.session_factory() as session:
            async with session.begin():
                return await self._swap_seat_state(session, flight, new_occupied_seats, new_available_seats)

    # Insurance
    async def get_insurance(self, insurance_id: str) -> Insurance:
        async with self.session_factory() as session:
            record = await session.get(InsuranceRecord, insurance_id)
            if not record:
                raise NotFoundError(f"Insurance {insurance_id} not found", details={"insurance_id": insurance_id})
            return Insurance(id=record.id, name=record.name, price=record.price, is_active=record.is_active)

    async def save_insurance(self, insurance: Insurance) -> Insurance:
        async with self.session_factory() as session:
            async with session.begin():
                await session.merge(InsuranceRecord(**insurance.model_dump()))
        return insurance

    # Passengers and bookings
    async def create_passenger(self, passenger: Passenger) -> Passenger:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(PassengerRecord(**passenger.model_dump()))
        return passenger

    async def create_booking(self, booking: Booking) -> Booking:
        async with self.session_factory() as session:
            async with session.begin():
                session.add(BookingRecord(**_column_values(booking.model_dump())))
        return booking

    async def get_booking(self, booking_id: str) -> Booking:
        async with self.session_factory() as session:
            record = await session.get(BookingRecord, booking_id)
            if not record:
                raise NotFoundError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
            return booking_from_record(record)

    async def update_booking(
        self,
        booking_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[BookingStatus] = None
    ) -> Booking:
        async with self.session_factory() as session:
            async with session.begin():
                await self._patch_booking(session, booking_id, patch, expected_status)
        return await self.get_booking(booking_id)

    async def list_bookings(
        self,
        flight_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> List[Booking]:
        query = select(BookingRecord)
        if flight_id:
            query = query.where(BookingRecord.flight_id == flight_id)
        if user_id:
            query = query.where(BookingRecord.user_id == user_id)
        query = query.order_by(BookingRecord.created_at.desc())

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [booking_from_record(record) for record in result.scalars().all()]

    async def commit_seat_change(
        self,
        flight: Flight,
        new_occupied_seats: Iterable[str],
        new_available_seats: int,
        booking_id: str,
        booking_patch: Dict[str, Any],
        expected_status: BookingStatus
    ) -> Tuple[Flight, Booking]:
        async with self.session_factory() as session:
            async with session.begin():
                updated_flight = await self._swap_seat_state(
                    session, flight, new_occupied_seats, new_available_seats
                )
                await self._patch_booking(session, booking_id, booking_patch, expected_status)
        return updated_flight, await self.get_booking(booking_id)

    # Internals
    async def _swap_seat_state(
        self,
        session: AsyncSession,
        flight: Flight,
        new_occupied_seats: Iterable[str],
        new_available_seats: int
    ) -> Flight:
        occupied = sorted(set(new_occupied_seats))
        result = await session.execute(
            update(FlightRecord)
            .where(
                FlightRecord.id == flight.id,
                FlightRecord.seat_version == flight.seat_version
            )
            .values(
                occupied_seats=occupied,
                available_seats=new_available_seats,
                seat_rows=flight.seat_matrix.rows,
                seat_version=FlightRecord.seat_version + 1,
                updated_at=utcnow()
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            exists = await session.get(FlightRecord, flight.id)
            if exists is None:
                raise NotFoundError(f"Flight {flight.id} not found", details={"flight_id": flight.id})
            logger.info(f"Seat state CAS lost on flight {flight.id} (version {flight.seat_version})")
            raise ConflictError(
                f"Seat state of flight {flight.id} changed concurrently",
                details={"flight_id": flight.id, "expected_version": flight.seat_version},
            )

        updated = flight.model_copy(deep=True)
        updated.seat_matrix.occupied_seats = set(occupied)
        updated.available_seats = new_available_seats
        updated.seat_version = flight.seat_version + 1
        return updated

    async def _patch_booking(
        self,
        session: AsyncSession,
        booking_id: str,
        patch: Dict[str, Any],
        expected_status: Optional[BookingStatus]
    ) -> None:
        stmt = update(BookingRecord).where(BookingRecord.id == booking_id)
        if expected_status is not None:
            stmt = stmt.where(BookingRecord.status == expected_status.value)

        values = _column_values({**patch, "updated_at": utcnow()})
        result = await session.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            record = await session.get(BookingRecord, booking_id)
            if record is None:
                raise NotFoundError(f"Booking {booking_id} not found", details={"booking_id": booking_id})
            raise BookingStateConflict(
                f"Booking {booking_id} is {record.status}, expected {expected_status.value}",
                details={"booking_id": booking_id, "status": record.status},
            )


def _column_values(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in values.items()}


def flight_to_record(flight: Flight) -> FlightRecord:
    return FlightRecord(
        id=flight.id,
        airline=flight.airline,
        flight_number=flight.flight_number,
        source=flight.source,
        destination=flight.destination,
        price=flight.price,
        discount=flight.discount.model_dump(mode="json"),
        is_active=flight.is_active,
        total_seats=flight.total_seats,
        available_seats=flight.available_seats,
        seat_rows=flight.seat_matrix.rows,
        seat_columns=flight.seat_matrix.columns,
        occupied_seats=sorted(flight.seat_matrix.occupied_seats),
        seat_version=flight.seat_version,
    )


def flight_from_record(record: FlightRecord) -> Flight:
    return Flight(
        id=record.id,
        airline=record.airline,
        flight_number=record.flight_number,
        source=record.source,
        destination=record.destination,
        price=record.price,
        discount=Discount.model_validate(record.discount or {}),
        is_active=record.is_active,
        total_seats=record.total_seats,
        available_seats=record.available_seats,
        seat_matrix=SeatMatrix(
            rows=record.seat_rows,
            columns=record.seat_columns,
            occupied_seats=set(record.occupied_seats or []),
        ),
        seat_version=record.seat_version,
    )


def booking_from_record(record: BookingRecord) -> Booking:
    return Booking(
        id=record.id,
        flight_id=record.flight_id,
        passenger_id=record.passenger_id,
        insurance_id=record.insurance_id,
        user_id=record.user_id,
        status=BookingStatus(record.status),
        payment_status=PaymentStatus(record.payment_status),
        seat_number=record.seat_number,
        seat_released=record.seat_released,
        flight_amount=record.flight_amount,
        insurance_amount=record.insurance_amount,
        total_amount=record.total_amount,
        travel_date=record.travel_date,
        contact_email=record.contact_email,
        contact_phone=record.contact_phone,
        payment_id=record.payment_id,
        order_id=record.order_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )
