"""
Seat matrix capacity rules and seat label enumeration.
Pure functions over Flight snapshots; nothing here touches storage.
"""
import math
from typing import Any, Dict, List, Optional

from ..errors import CapacityError
from ..models import Flight

MAX_TOTAL_SEATS = 400
COLUMN_LETTERS = "ABCDEFGHIJ"


def list_all_labels(rows: int, columns: int, total_seats: Optional[int] = None) -> List[str]:
    """
    Enumerate seat labels row by row: 1A, 1B, ..., 2A, ...

    When the matrix holds more seats than the flight sells, the list is cut
    to the first ``total_seats`` labels (the last row is partially used).
    """
    if columns < 1 or columns > len(COLUMN_LETTERS):
        raise CapacityError(
            f"Seat matrix must have between 1 and {len(COLUMN_LETTERS)} columns, got {columns}"
        )

    labels = [
        f"{row}{COLUMN_LETTERS[col]}"
        for row in range(1, rows + 1)
        for col in range(columns)
    ]
    if total_seats is not None:
        labels = labels[:total_seats]
    return labels


def validate_capacity(flight: Flight) -> Flight:
    """
    Check a flight's seat configuration and return a corrected copy.

    - total_seats must be within [1, 400]
    - rows is recomputed as ceil(total_seats / columns) when the matrix is too small
    - every occupied label must belong to the matrix
    - available_seats is recomputed from the occupied set
    """
    if flight.total_seats < 1 or flight.total_seats > MAX_TOTAL_SEATS:
        raise CapacityError(
            f"Flight {flight.id} total seats must be between 1 and {MAX_TOTAL_SEATS}, got {flight.total_seats}",
            details={"flight_id": flight.id, "total_seats": flight.total_seats},
        )

    corrected = flight.model_copy(deep=True)
    matrix = corrected.seat_matrix

    if matrix.columns < 1 or matrix.columns > len(COLUMN_LETTERS):
        raise CapacityError(
            f"Flight {flight.id} seat matrix must have between 1 and {len(COLUMN_LETTERS)} columns",
            details={"flight_id": flight.id, "columns": matrix.columns},
        )

    if matrix.rows < 1 or matrix.rows * matrix.columns < corrected.total_seats:
        matrix.rows = math.ceil(corrected.total_seats / matrix.columns)

    valid_labels = set(list_all_labels(matrix.rows, matrix.columns, corrected.total_seats))
    unknown = matrix.occupied_seats - valid_labels
    if unknown:
        raise CapacityError(
            f"Flight {flight.id} has occupied seats outside its seat matrix: {sorted(unknown)}",
            details={"flight_id": flight.id, "unknown_seats": sorted(unknown)},
        )

    corrected.available_seats = corrected.total_seats - len(matrix.occupied_seats)
    return corrected


def free_seats(flight: Flight) -> List[str]:
    """Free labels of an already validated flight, in enumeration order."""
    matrix = flight.seat_matrix
    return [
        label
        for label in list_all_labels(matrix.rows, matrix.columns, flight.total_seats)
        if label not in matrix.occupied_seats
    ]


def seat_map(flight: Flight) -> Dict[str, Any]:
    """Row-by-row occupancy view of a flight's seats."""
    flight = validate_capacity(flight)
    matrix = flight.seat_matrix
    labels = list_all_labels(matrix.rows, matrix.columns, flight.total_seats)

    rows: Dict[int, List[Dict[str, Any]]] = {}
    for index, label in enumerate(labels):
        row = index // matrix.columns + 1
        rows.setdefault(row, []).append({
            "seat": label,
            "occupied": label in matrix.occupied_seats,
        })

    return {
        "flight_id": flight.id,
        "rows": matrix.rows,
        "columns": matrix.columns,
        "total_seats": flight.total_seats,
        "available_seats": flight.available_seats,
        "seats": [rows[row] for row in sorted(rows)],
    }
