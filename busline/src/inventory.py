"""
Seat inventory of a bus on a travel date.

The seat-state store is the `booked_seat` table: a seat is booked for a date
exactly when a row for (bus, date, label) exists. Writers must hold the
(bus, date) mutex from `lockSeats()`; readers may read without it.
"""

from datetime import date
from logging import getLogger
from typing import Iterable, List
from redis.lock import Lock
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session

from busline.src import exceptions
from busline.src.db import BookedSeat, Booking, Bus, Seat
from busline.src.enums import BookingStatus
from busline.src.redis import acquireLock

logger = getLogger("Inventory")


def sortLabels(labels: Iterable[str]) -> List[str]:
    return sorted(
        labels, key=lambda x: (not x.isdigit(), int(x) if x.isdigit() else 0, x)
    )


def seatKey(busId: int, travelDate: date) -> str:
    """Key of the (bus, date) mutex, used as `lock:booked_seat:<bus>:<date>`."""
    return f"{busId}:{travelDate.isoformat()}"


def lockSeats(busId: int, travelDate: date) -> Lock:
    return acquireLock(BookedSeat.__tablename__, seatKey(busId, travelDate))


def busSeats(session: Session, busId: int) -> List[str]:
    rows = session.query(Seat.label).filter(Seat.bus_id == busId).all()
    return [row.label for row in rows]


def bookedSeats(
    session: Session,
    busId: int,
    travelDate: date,
    labels: Iterable[str] | None = None,
) -> List[str]:
    """
    Labels currently held on `travelDate`.

    If `labels` is given only those labels are looked up.
    """
    query = session.query(BookedSeat.label).filter(
        BookedSeat.bus_id == busId,
        BookedSeat.travel_date == travelDate,
    )
    if labels is not None:
        query = query.filter(BookedSeat.label.in_(list(labels)))
    return sortLabels(row.label for row in query.all())


def checkAvailability(
    session: Session, bus: Bus, travelDate: date, labels: Iterable[str]
) -> bool:
    """
    True if every label exists on the bus and none is held on that date. An
    empty selection is trivially available.
    """
    labels = list(labels)
    if not labels:
        return True
    if not set(labels).issubset(busSeats(session, bus.id)):
        return False
    return not bookedSeats(session, bus.id, travelDate, labels)


def reserve(
    session: Session,
    bus: Bus,
    travelDate: date,
    labels: Iterable[str],
    booking: Booking,
) -> List[BookedSeat]:
    """
    Mark `labels` as held by `booking` on `travelDate`.

    The caller must hold the lock from `lockSeats(bus.id, travelDate)` and
    commit or roll back the session afterwards. Either every label is marked
    or none is.

    Raises:
        exceptions.UnknownSeat: Some labels are not part of the bus layout.
        exceptions.SeatConflict: Some labels are already held on that date.
    """
    labels = list(labels)
    known = set(busSeats(session, bus.id))
    unknown = [label for label in labels if label not in known]
    if unknown:
        raise exceptions.UnknownSeat(sortLabels(unknown))

    taken = bookedSeats(session, bus.id, travelDate, labels)
    if taken:
        raise exceptions.SeatConflict(taken)

    bookedSeatList = [
        BookedSeat(
            bus_id=bus.id,
            travel_date=travelDate,
            label=label,
            booking_id=booking.id,
        )
        for label in labels
    ]
    session.add_all(bookedSeatList)
    try:
        session.flush()
    except IntegrityError:
        # Another writer bypassed the mutex; the unique constraint held
        session.rollback()
        taken = bookedSeats(session, bus.id, travelDate, labels)
        logger.warning(
            "Seat conflict caught by constraint on bus %s for %s: %s",
            bus.id,
            travelDate,
            taken,
        )
        raise exceptions.SeatConflict(taken or labels)
    return bookedSeatList


def release(
    session: Session,
    busId: int,
    travelDate: date,
    labels: Iterable[str],
    bookingId: int,
) -> int:
    """
    Free the seats among `labels` that are held by `bookingId`.

    Seats that are free or held by another booking are left untouched, so
    releasing twice is harmless. Returns the number of seats freed.
    """
    labels = list(labels)
    if not labels:
        return 0
    released = (
        session.query(BookedSeat)
        .filter(
            BookedSeat.bus_id == busId,
            BookedSeat.travel_date == travelDate,
            BookedSeat.label.in_(labels),
            BookedSeat.booking_id == bookingId,
        )
        .delete(synchronize_session=False)
    )
    session.flush()
    return released


def availableSeats(session: Session, bus: Bus, travelDate: date) -> int:
    """Free seat count of the bus on `travelDate`, within [0, total_seats]."""
    held = (
        session.query(BookedSeat)
        .filter(
            BookedSeat.bus_id == bus.id,
            BookedSeat.travel_date == travelDate,
        )
        .count()
    )
    return max(0, min(bus.total_seats, bus.total_seats - held))


def hasActiveBookings(session: Session, busId: int) -> bool:
    """True while the bus has a pending or confirmed booking."""
    return (
        session.query(Booking.id)
        .filter(
            Booking.bus_id == busId,
            Booking.status != BookingStatus.CANCELLED,
        )
        .first()
        is not None
    )
