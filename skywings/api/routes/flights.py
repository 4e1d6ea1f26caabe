"""
Flights API: read-only seat map.
"""
from fastapi import APIRouter, Depends, HTTPException
from typing import Any, Dict
import logging

from ...errors import BookingError
from ...repositories.base import BookingStore
from ...services.seat_matrix import seat_map
from ..deps import get_store
from .bookings import status_code_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Flights"])


@router.get("/flights/{flight_id}/seats", response_model=Dict[str, Any])
async def get_seat_map(flight_id: str, store: BookingStore = Depends(get_store)):
    """Seat-by-seat occupancy of a flight, grouped by row"""
    try:
        flight = await store.get_flight(flight_id)
        return seat_map(flight)
    except BookingError as e:
        if status_code_for(e) != 404:
            logger.error(f"Seat map unavailable for flight {flight_id}: {e.message}")
        raise HTTPException(status_code=status_code_for(e), detail=e.to_dict())
