"""
Domain models for the SkyWings booking core.
Plain pydantic documents; persistence lives in db_models.py and the repositories.
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Set
import uuid

from pydantic import BaseModel, Field

from .config import settings


# Status Enums
class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_booking_id() -> str:
    """Human-copyable booking reference: BK + UTC timestamp + 6 random hex chars."""
    return f"BK{utcnow().strftime('%Y%m%d%H%M%S')}{uuid.uuid4().hex[:6].upper()}"


# Models
class Discount(BaseModel):
    has_discount: bool = False
    discount_type: DiscountType = DiscountType.PERCENTAGE
    discount_value: float = 0
    discount_start_date: Optional[datetime] = None
    discount_end_date: Optional[datetime] = None


class SeatMatrix(BaseModel):
    rows: int = 1
    columns: int = Field(default_factory=lambda: settings.default_seat_columns)
    occupied_seats: Set[str] = Field(default_factory=set)


class Flight(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    airline: Optional[str] = None
    flight_number: Optional[str] = None
    source: Optional[str] = None
    destination: Optional[str] = None
    price: float = 0
    discount: Discount = Field(default_factory=Discount)
    is_active: bool = True
    total_seats: int
    available_seats: int = 0
    seat_matrix: SeatMatrix = Field(default_factory=SeatMatrix)
    seat_version: int = 0  # bumped by every committed seat-state write


class Insurance(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    price: float = 0
    is_active: bool = True


class PassengerDetails(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    passport_number: Optional[str] = None


class Passenger(PassengerDetails):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=utcnow)


class Booking(BaseModel):
    id: str = Field(default_factory=generate_booking_id)
    flight_id: str
    passenger_id: str
    insurance_id: Optional[str] = None
    user_id: Optional[str] = None

    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    seat_number: Optional[str] = None
    seat_released: bool = False

    # Pricing, frozen at creation
    flight_amount: float
    insurance_amount: float = 0
    total_amount: float

    travel_date: date
    contact_email: str
    contact_phone: str

    payment_id: Optional[str] = None
    order_id: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PaymentOutcome(BaseModel):
    """Payment result delivered by the gateway callback."""
    payment_id: str
    payment_status: PaymentStatus
    order_id: Optional[str] = None
    signature: Optional[str] = None
