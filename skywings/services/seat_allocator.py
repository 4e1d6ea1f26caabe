"""
Seat allocation against a flight's seat matrix.
"""
import logging
import random
from typing import Optional, Sequence, Tuple

from ..errors import CapacityError
from ..models import Flight
from .seat_matrix import free_seats, validate_capacity

logger = logging.getLogger(__name__)


class RandomSeatSelector:
    """Pick uniformly among free seats. Pass a seeded Random for reproducible picks."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def __call__(self, free: Sequence[str]) -> str:
        return self.rng.choice(list(free))


class LowestSeatSelector:
    """Pick the first free seat in enumeration order (1A, 1B, ...)."""

    def __call__(self, free: Sequence[str]) -> str:
        return free[0]


def allocate_seat(flight: Flight, selector=None) -> Tuple[str, Flight]:
    """
    Choose a free seat and return it with the updated flight snapshot.

    The input flight is left untouched; callers persist the returned snapshot
    with a conditional write so two allocations can never claim one seat.
    """
    selector = selector or RandomSeatSelector()
    flight = validate_capacity(flight)

    free = free_seats(flight)
    if not free:
        raise CapacityError(
            "NoSeatsAvailable",
            details={"flight_id": flight.id, "total_seats": flight.total_seats},
        )

    label = selector(free)
    if label not in free:
        raise CapacityError(f"Selector returned a seat that is not free: {label}")

    flight.seat_matrix.occupied_seats.add(label)
    flight.available_seats -= 1
    logger.debug(f"Picked seat {label} on flight {flight.id} ({flight.available_seats} left)")
    return label, flight


def release_seat(flight: Flight, label: str) -> Flight:
    """Return a snapshot with ``label`` back in the free pool (no-op if it was not occupied)."""
    released = flight.model_copy(deep=True)
    released.seat_matrix.occupied_seats.discard(label)
    return validate_capacity(released)
