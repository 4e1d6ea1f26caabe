"""
SQLAlchemy tables backing the booking core.
Portable column types so the same schema runs on SQLite and Postgres.
"""

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Index, Integer, JSON, String
from datetime import datetime, timezone

from .database import Base


def _now():
    return datetime.now(timezone.utc)


class FlightRecord(Base):
    __tablename__ = "flights"

    id = Column(String(64), primary_key=True)
    airline = Column(String(255), nullable=True)
    flight_number = Column(String(20), nullable=True, index=True)
    source = Column(String(255), nullable=True)
    destination = Column(String(255), nullable=True)

    # Pricing
    price = Column(Float, default=0.0, nullable=False)
    discount = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Seat inventory
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    seat_rows = Column(Integer, nullable=False, default=1)
    seat_columns = Column(Integer, nullable=False, default=6)
    occupied_seats = Column(JSON, nullable=False, default=list)
    seat_version = Column(Integer, nullable=False, default=0)  # CAS token

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class InsuranceRecord(Base):
    __tablename__ = "insurances"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, default=0.0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)


class PassengerRecord(Base):
    __tablename__ = "passengers"

    id = Column(String(64), primary_key=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    passport_number = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)


class BookingRecord(Base):
    __tablename__ = "bookings"

    id = Column(String(64), primary_key=True)
    flight_id = Column(String(64), ForeignKey("flights.id"), nullable=False)
    passenger_id = Column(String(64), ForeignKey("passengers.id"), nullable=False)
    insurance_id = Column(String(64), ForeignKey("insurances.id"), nullable=True)
    user_id = Column(String(64), nullable=True, index=True)

    # Lifecycle
    status = Column(String(20), default="pending", nullable=False)
    payment_status = Column(String(20), default="pending", nullable=False)
    seat_number = Column(String(8), nullable=True)
    seat_released = Column(Boolean, default=False, nullable=False)

    # Pricing
    flight_amount = Column(Float, nullable=False)
    insurance_amount = Column(Float, default=0.0, nullable=False)
    total_amount = Column(Float, nullable=False)

    # Travel and contact
    travel_date = Column(Date, nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(50), nullable=False)

    # Payment references
    payment_id = Column(String(255), nullable=True, index=True)
    order_id = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    __table_args__ = (
        Index("idx_bookings_flight_status", "flight_id", "status"),
    )
