"""
Seat layout generation and bus display helpers.

A layout is a list of seat positions `{"label", "row", "position"}` with
labels "1".."totalSeats" assigned row by row. Row 1 holds `firstRowSeats`,
the last row holds `lastRowSeats` and every interior row is as wide as the
seat arrangement allows. Emission stops once `totalSeats` labels are placed.
"""

from datetime import datetime
from math import ceil
from typing import List

from busline.src.constants import TMZ_SECONDARY
from busline.src.db import Bus, Seat
from busline.src.enums import BookingWindow, SeatArrangement

SEATS_PER_ROW = {
    SeatArrangement.TWO_TWO: 4,
    SeatArrangement.TWO_ONE: 3,
    SeatArrangement.ONE_ONE: 2,
}


def seatsPerRow(arrangement: SeatArrangement) -> int:
    return SEATS_PER_ROW.get(arrangement, 4)


def rowSizes(
    totalSeats: int,
    arrangement: SeatArrangement,
    firstRowSeats: int,
    lastRowSeats: int,
) -> List[int]:
    """
    Return the planned width of every row.

    A layout that fits in a single row puts every seat in that row. When the
    first and last rows are narrow enough that the planned rows cannot hold
    `totalSeats`, interior rows are inserted before the last row until they can.
    """
    perRow = seatsPerRow(arrangement)
    rowsNeeded = ceil(totalSeats / perRow)
    if rowsNeeded <= 1:
        return [totalSeats]
    sizes = [firstRowSeats] + [perRow] * (rowsNeeded - 2) + [lastRowSeats]

    while sum(sizes) < totalSeats:
        sizes.insert(len(sizes) - 1, perRow)
    return sizes


def generateSeats(
    totalSeats: int,
    arrangement: SeatArrangement,
    firstRowSeats: int,
    lastRowSeats: int,
) -> List[dict]:
    """
    Generate the seat positions of a bus.

    Args:
        totalSeats (int): Number of seats to emit, at least 1.
        arrangement (SeatArrangement): Seats-per-row pattern (2-2, 2-1, 1-1).
        firstRowSeats (int): Seats in the first row.
        lastRowSeats (int): Seats in the last row.

    Returns:
        List[dict]: Exactly `totalSeats` positions, labelled "1".."totalSeats".

    Example:
        >>> [s["row"] for s in generateSeats(10, SeatArrangement.TWO_TWO, 2, 3)]
        [1, 1, 2, 2, 2, 2, 3, 3, 3, 3]
    """
    if totalSeats < 1:
        raise ValueError("totalSeats must be at least 1")

    seats = []
    for row, width in enumerate(
        rowSizes(totalSeats, arrangement, firstRowSeats, lastRowSeats), start=1
    ):
        for position in range(1, width + 1):
            if len(seats) == totalSeats:
                return seats
            seats.append(
                {"label": str(len(seats) + 1), "row": row, "position": position}
            )
    return seats


def buildSeats(bus: Bus) -> List[Seat]:
    """Seat rows for a bus, generated from its layout parameters."""
    return [
        Seat(bus_id=bus.id, **seat)
        for seat in generateSeats(
            bus.total_seats,
            SeatArrangement(bus.seat_arrangement),
            bus.first_row_seats,
            bus.last_row_seats,
        )
    ]


def bookingWindow(bus: Bus, now: datetime | None = None) -> BookingWindow:
    """
    Booking-window status shown with a bus.

    OPEN while the local clock time is inside the bus booking hours.
    This is display information only.
    """
    if not bus.is_active:
        return BookingWindow.INACTIVE
    localTime = (now or datetime.now(TMZ_SECONDARY)).astimezone(TMZ_SECONDARY)
    clock = localTime.time().replace(tzinfo=None)
    if bus.booking_open_time <= clock <= bus.booking_close_time:
        return BookingWindow.OPEN
    return BookingWindow.CLOSED
