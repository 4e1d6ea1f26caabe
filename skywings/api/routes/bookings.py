"""
Bookings API: creation, payment callbacks, refunds and cancellations.
All business rules live in BookingLifecycle; this router only maps results to HTTP.
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from datetime import date
from typing import Dict, List, Optional
import logging

from ...errors import (
    BookingError, CapacityError, ConflictError, InvalidStateTransition, NotFoundError,
    PaymentVerificationFailed, ValidationError
)
from ...models import Booking, PassengerDetails, PaymentOutcome
from ...repositories.base import BookingStore
from ...services.booking_lifecycle import BookingLifecycle, BookingResult
from ..deps import get_lifecycle, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Bookings"])

ERROR_STATUS_CODES: Dict[type, int] = {
    ValidationError: 400,
    PaymentVerificationFailed: 400,
    NotFoundError: 404,
    CapacityError: 409,
    InvalidStateTransition: 409,
    ConflictError: 409,
}


class BookingCreateRequest(BaseModel):
    """Request model for creating a pending booking."""
    flight_id: str
    passenger_details: PassengerDetails
    contact_email: str
    contact_phone: str
    travel_date: date
    insurance_id: Optional[str] = None
    user_id: Optional[str] = None


class PaymentOutcomeResponse(BaseModel):
    booking: Booking
    replayed: bool = False


def status_code_for(error: BookingError) -> int:
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 400


def unwrap_result(result: BookingResult) -> Booking:
    """Return the booking or raise the HTTP error matching the failure."""
    if result.ok:
        return result.booking
    raise HTTPException(status_code=status_code_for(result.error), detail=result.error.to_dict())


@router.post("/bookings", response_model=Booking, status_code=201)
async def create_booking(
    request: BookingCreateRequest,
    lifecycle: BookingLifecycle = Depends(get_lifecycle)
):
    """
    Create a pending booking. No seat is assigned until payment completes.

    - **flight_id**: flight to book
    - **passenger_details**: first/last name are required
    - **insurance_id**: optional travel insurance
    """
    result = await lifecycle.create_booking(
        flight_id=request.flight_id,
        passenger_details=request.passenger_details,
        contact_email=request.contact_email,
        contact_phone=request.contact_phone,
        travel_date=request.travel_date,
        insurance_id=request.insurance_id,
        user_id=request.user_id,
    )
    return unwrap_result(result)


@router.get("/bookings", response_model=List[Booking])
async def list_bookings(
    flight_id: Optional[str] = None,
    user_id: Optional[str] = None,
    store: BookingStore = Depends(get_store)
):
    """List bookings, newest first"""
    return await store.list_bookings(flight_id=flight_id, user_id=user_id)


@router.get("/bookings/{booking_id}", response_model=Booking)
async def get_booking(booking_id: str, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    return unwrap_result(await lifecycle.get_booking(booking_id))


@router.put("/bookings/{booking_id}/payment", response_model=PaymentOutcomeResponse)
async def apply_payment_outcome(
    booking_id: str,
    outcome: PaymentOutcome,
    lifecycle: BookingLifecycle = Depends(get_lifecycle)
):
    """
    Apply a payment gateway outcome.

    A completed payment assigns a seat and confirms the booking; a failed one
    cancels it. Replaying the same completed outcome returns the booking
    unchanged with ``replayed=true``.
    """
    result = await lifecycle.apply_payment_outcome(booking_id, outcome)
    booking = unwrap_result(result)
    return PaymentOutcomeResponse(booking=booking, replayed=result.replayed)


@router.post("/bookings/{booking_id}/refund", response_model=Booking)
async def refund_booking(booking_id: str, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    """Refund a confirmed booking and release its seat"""
    return unwrap_result(await lifecycle.refund_booking(booking_id))


@router.post("/bookings/{booking_id}/cancel", response_model=Booking)
async def cancel_booking(booking_id: str, lifecycle: BookingLifecycle = Depends(get_lifecycle)):
    """Cancel a pending booking"""
    return unwrap_result(await lifecycle.cancel_booking(booking_id))
