#!/usr/bin/env python3
"""
SkyWings Database Seeder
Seeds the database with sample flights and insurance plans
"""

import asyncio
from datetime import timedelta

from .database import close_db, get_session_factory, init_db
from .models import Discount, DiscountType, Flight, Insurance, SeatMatrix, utcnow
from .repositories.base import BookingStore
from .repositories.sql import SQLBookingStore


def sample_flights():
    now = utcnow()
    return [
        Flight(
            id="fl_pty_mde_101",
            airline="SkyWings",
            flight_number="SW101",
            source="PTY",
            destination="MDE",
            price=320.0,
            total_seats=24,
            seat_matrix=SeatMatrix(rows=4, columns=6),
        ),
        Flight(
            id="fl_pty_sjo_205",
            airline="SkyWings",
            flight_number="SW205",
            source="PTY",
            destination="SJO",
            price=1000.0,
            discount=Discount(
                has_discount=True,
                discount_type=DiscountType.PERCENTAGE,
                discount_value=20,
                discount_start_date=now - timedelta(days=1),
                discount_end_date=now + timedelta(days=30),
            ),
            total_seats=12,
            seat_matrix=SeatMatrix(rows=3, columns=4),
        ),
        Flight(
            id="fl_pty_bog_310",
            airline="SkyWings",
            flight_number="SW310",
            source="PTY",
            destination="BOG",
            price=450.0,
            discount=Discount(has_discount=True, discount_type=DiscountType.FIXED, discount_value=50),
            total_seats=2,
            seat_matrix=SeatMatrix(rows=1, columns=2),
        ),
    ]


def sample_insurances():
    return [
        Insurance(id="ins_basic", name="Basic Travel Cover", price=25.0),
        Insurance(id="ins_premium", name="Premium Travel Cover", price=60.0),
    ]


async def seed_store(store: BookingStore):
    """Seed a store with the sample data"""
    print("🌱 Seeding SkyWings database...")

    for flight in sample_flights():
        flight.available_seats = flight.total_seats - len(flight.seat_matrix.occupied_seats)
        await store.save_flight(flight)
        print(f"   ✈️  {flight.flight_number} {flight.source} → {flight.destination} ({flight.total_seats} seats)")

    for insurance in sample_insurances():
        await store.save_insurance(insurance)
        print(f"   🛡️  {insurance.name}")

    print("✅ Seeding complete")


async def seed_database():
    await init_db()
    try:
        await seed_store(SQLBookingStore(get_session_factory()))
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(seed_database())
