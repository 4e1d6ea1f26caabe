"""
Booking pricing.
Applies the flight's discount policy and adds the chosen insurance at booking time.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from ..models import Discount, DiscountType, Flight, Insurance

logger = logging.getLogger(__name__)


def is_discount_active(discount: Discount, at: Optional[datetime] = None) -> bool:
    """A discount applies when enabled and ``at`` falls inside its optional date window."""
    if not discount.has_discount:
        return False

    current = at or datetime.now(timezone.utc)
    start = _aware(discount.discount_start_date)
    end = _aware(discount.discount_end_date)

    if start and current < start:
        return False
    if end and current > end:
        return False
    return True


def calculate_flight_amount(flight: Flight, at: Optional[datetime] = None) -> float:
    """Flight fare after discount, never below zero."""
    price = flight.price
    discount = flight.discount

    if not is_discount_active(discount, at):
        return round(price, 2)

    if discount.discount_type == DiscountType.PERCENTAGE:
        amount = price * (1 - discount.discount_value / 100)
    else:  # FIXED
        amount = price - discount.discount_value

    return round(max(0.0, amount), 2)


def calculate_booking_amounts(
    flight: Flight,
    insurance: Optional[Insurance] = None,
    at: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Price breakdown frozen onto a new booking.

    Returns flight_amount, insurance_amount, total_amount and whether a
    discount was applied.
    """
    flight_amount = calculate_flight_amount(flight, at)
    insurance_amount = round(insurance.price, 2) if insurance else 0.0
    total_amount = round(flight_amount + insurance_amount, 2)

    discount_applied = is_discount_active(flight.discount, at)
    if discount_applied:
        logger.info(
            f"Applied {flight.discount.discount_type.value} discount on flight {flight.id}: "
            f"{flight.price} -> {flight_amount}"
        )

    return {
        "flight_amount": flight_amount,
        "insurance_amount": insurance_amount,
        "total_amount": total_amount,
        "discount_applied": discount_applied,
    }


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
