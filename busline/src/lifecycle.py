"""
Booking lifecycle: creation, confirmation and cancellation.

Status machine:
    PENDING   -> CONFIRMED, CANCELLED
    CONFIRMED -> CANCELLED
    CANCELLED -> (terminal)

Every change to the seat inventory happens under the (bus, date) mutex and
in the same transaction as the booking write that causes it.
"""

from collections import Counter
from datetime import date, datetime, timedelta
from decimal import Decimal
from logging import getLogger
from typing import List

from sqlalchemy.orm.session import Session

from busline.src import exceptions, inventory, validators
from busline.src.constants import (
    ADMIN_CANCEL_BYPASS_CUTOFF,
    CANCELLATION_CUTOFF,
    MAX_SEATS_PER_BOOKING,
    TMZ_PRIMARY,
    TMZ_SECONDARY,
)
from busline.src.db import Account, Booking, Bus, Passenger
from busline.src.enums import AccountRole, AccountStatus, BookingStatus, GenderType
from busline.src.redis import releaseLock
from busline.src.schemas import Principal

logger = getLogger("Lifecycle")

TRANSITIONS = {
    BookingStatus.PENDING: [BookingStatus.CONFIRMED, BookingStatus.CANCELLED],
    BookingStatus.CONFIRMED: [BookingStatus.CANCELLED],
    BookingStatus.CANCELLED: [],
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def localToday() -> date:
    return datetime.now(TMZ_SECONDARY).date()


def departureAt(booking: Booking) -> datetime:
    """Departure of the booked journey as an aware datetime."""
    return datetime.combine(
        booking.travel_date, booking.departure_time, tzinfo=TMZ_SECONDARY
    )


def checkCutoff(booking: Booking, now: datetime | None = None) -> bool:
    """
    Validate that the booking may still be cancelled.

    Departure must be at least `CANCELLATION_CUTOFF` ahead of `now`.

    Raises:
        exceptions.CutoffViolation: If departure is too close or already past.
    """
    now = now or datetime.now(TMZ_PRIMARY)
    if departureAt(booking) - now < CANCELLATION_CUTOFF:
        raise exceptions.CutoffViolation(CANCELLATION_CUTOFF / timedelta(hours=1))
    return True


def seatList(seats: List[str]) -> List[str]:
    """
    Validate the requested seat labels.

    Raises:
        exceptions.MissingParameter: No seat is selected.
        exceptions.DuplicateSeat: A label is selected more than once.
        exceptions.InvalidValue: Too many seats are selected.
    """
    if not seats:
        raise exceptions.MissingParameter(
            Booking.seats, "Please select at least one seat"
        )
    duplicates = [label for label, count in Counter(seats).items() if count > 1]
    if duplicates:
        raise exceptions.DuplicateSeat(inventory.sortLabels(duplicates))
    if len(seats) > MAX_SEATS_PER_BOOKING:
        raise exceptions.InvalidValue(
            Booking.seats,
            f"A booking can hold at most {MAX_SEATS_PER_BOOKING} seats",
        )
    return list(seats)


def passengerList(seats: List[str], passengers: List[dict] | None) -> List[dict]:
    """
    One passenger per seat. Missing passenger details are generated as
    "Passenger 1".."Passenger N" in seat order.
    """
    if not passengers:
        return [
            {"seat": label, "name": f"Passenger {index}"}
            for index, label in enumerate(seats, start=1)
        ]
    if len(passengers) != len(seats):
        raise exceptions.InvalidValue(
            Passenger.seat, "Exactly one passenger is required per seat"
        )
    passengerSeats = [passenger.get("seat") for passenger in passengers]
    if set(passengerSeats) != set(seats) or len(set(passengerSeats)) != len(seats):
        raise exceptions.InvalidValue(
            Passenger.seat, "Passenger seats must match the selected seats"
        )
    return passengers


def customer(session: Session, accountId: int) -> Account:
    account = (
        session.query(Account)
        .filter(
            Account.id == accountId,
            Account.role == AccountRole.CUSTOMER,
        )
        .first()
    )
    if account is None:
        raise exceptions.UnknownValue(Booking.account_id)
    if account.status != AccountStatus.ACTIVE:
        raise exceptions.InactiveResource(Account)
    return account


def owners(
    session: Session, principal: Principal, customerId: int | None
) -> tuple[int, int | None]:
    """
    Resolve the (owner account, selling agent) pair of a new booking.

    Customers book for themselves. Active agents book for `customerId` or,
    when it is omitted, for themselves as a counter sale. Admins must name
    the customer.
    """
    if principal.role == AccountRole.CUSTOMER:
        if customerId is not None and customerId != principal.account_id:
            raise exceptions.NoPermission()
        return principal.account_id, None
    if principal.role == AccountRole.AGENT:
        validators.activeAgent(principal, session)
        if customerId is None:
            return principal.account_id, principal.account_id
        return customer(session, customerId).id, principal.account_id
    if principal.role == AccountRole.ADMIN:
        if customerId is None:
            raise exceptions.MissingParameter(Booking.account_id)
        return customer(session, customerId).id, None
    raise exceptions.NoPermission()


def compensate(
    session: Session, busId: int, travelDate: date, seats: List[str], bookingId
) -> None:
    """
    Undo a failed reservation by rolling the transaction back.

    A rollback that itself fails leaves the seat-state unknown; it is logged
    for manual reconciliation.
    """
    try:
        session.rollback()
    except Exception:
        logger.critical(
            "Seat reconciliation required: bus_id=%s travel_date=%s seats=%s booking_id=%s",
            busId,
            travelDate,
            seats,
            bookingId,
            exc_info=True,
        )


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------
def createBooking(
    session: Session,
    principal: Principal,
    busId: int,
    seats: List[str],
    travelDate: date,
    fromPlace: str,
    toPlace: str,
    passengers: List[dict] | None = None,
    fare: Decimal | None = None,
    customerId: int | None = None,
) -> Booking:
    """
    Create a PENDING booking holding `seats` of bus `busId` on `travelDate`.

    The booking, its passengers and its seat reservations are committed in
    a single transaction while the (bus, date) mutex is held. On a seat
    conflict nothing is written.

    Raises:
        exceptions.MissingParameter, exceptions.DuplicateSeat: Bad seat selection.
        exceptions.InvalidIdentifier: The bus does not exist.
        exceptions.InactiveResource: The bus is not active.
        exceptions.InvalidValue: Travel date or passengers are not acceptable.
        exceptions.NoPermission: The principal may not book for that customer.
        exceptions.UnknownSeat, exceptions.SeatConflict: From the seat inventory.
        exceptions.LockAcquireTimeout: The inventory is busy.
    """
    seats = seatList(seats)

    # Shared row lock, layout changes wait for the booking to commit
    bus = (
        session.query(Bus)
        .filter(Bus.id == busId)
        .with_for_update(read=True)
        .first()
    )
    if bus is None:
        raise exceptions.InvalidIdentifier()
    if not bus.is_active:
        raise exceptions.InactiveResource(Bus)

    today = localToday()
    if travelDate < today:
        raise exceptions.InvalidValue(
            Booking.travel_date, "Travel date cannot be in the past"
        )
    if travelDate > today + timedelta(days=bus.advance_booking_days):
        raise exceptions.InvalidValue(
            Booking.travel_date,
            f"Bookings open only {bus.advance_booking_days} days in advance",
        )

    passengers = passengerList(seats, passengers)
    if fare is None:
        fare = Decimal(bus.fare) * len(seats)
    accountId, agentId = owners(session, principal, customerId)

    lock = inventory.lockSeats(bus.id, travelDate)
    bookingId = None
    try:
        booking = Booking(
            bus_id=bus.id,
            account_id=accountId,
            agent_id=agentId,
            seats=seats,
            from_place=fromPlace,
            to_place=toPlace,
            travel_date=travelDate,
            departure_time=bus.departure_time,
            arrival_time=bus.arrival_time,
            fare=fare,
            status=BookingStatus.PENDING,
        )
        session.add(booking)
        session.flush()
        bookingId = booking.id

        inventory.reserve(session, bus, travelDate, seats, booking)
        session.add_all(
            Passenger(
                booking_id=booking.id,
                seat=passenger["seat"],
                name=passenger["name"],
                age=passenger.get("age"),
                gender=passenger.get("gender") or GenderType.OTHER,
                phone_number=passenger.get("phone_number"),
                email_id=passenger.get("email_id"),
            )
            for passenger in passengers
        )
        session.commit()
    except Exception:
        compensate(session, busId, travelDate, seats, bookingId)
        raise
    finally:
        releaseLock(lock)

    session.refresh(booking)
    logger.info(
        "Booking %s reserved seats %s on bus %s for %s",
        booking.id,
        seats,
        bus.id,
        travelDate,
    )
    return booking


def canView(principal: Principal, booking: Booking) -> bool:
    """Admins see every booking, others only those they own or sold."""
    return principal.role == AccountRole.ADMIN or principal.account_id in (
        booking.account_id,
        booking.agent_id,
    )


def setStatus(
    session: Session,
    principal: Principal,
    booking: Booking,
    newStatus: BookingStatus,
    now: datetime | None = None,
) -> Booking:
    """
    Move a booking to `newStatus`.

    Confirmation is done by an admin or by the owner completing payment.
    Cancellation is done by the owner or an admin, is refused within
    `CANCELLATION_CUTOFF` of departure and frees the booking's seats in the
    same transaction as the status change.

    Raises:
        exceptions.NoPermission: The principal may not change this booking.
        exceptions.InvalidStateTransition: The status machine forbids the change.
        exceptions.CutoffViolation: Cancellation is too close to departure.
    """
    isAdmin = principal.role == AccountRole.ADMIN
    isOwner = principal.account_id == booking.account_id
    if not isAdmin and not isOwner:
        raise exceptions.NoPermission()

    lock = None
    if booking.bus_id is not None:
        lock = inventory.lockSeats(booking.bus_id, booking.travel_date)
    try:
        # Status may have moved while waiting for the lock
        session.refresh(booking)
        validators.stateTransition(
            TRANSITIONS, booking.status, newStatus, Booking.status
        )

        released = 0
        if newStatus == BookingStatus.CANCELLED:
            if not (isAdmin and ADMIN_CANCEL_BYPASS_CUTOFF):
                checkCutoff(booking, now)
            if booking.bus_id is not None:
                released = inventory.release(
                    session,
                    booking.bus_id,
                    booking.travel_date,
                    booking.seats,
                    booking.id,
                )
            booking.cancelled_on = datetime.now(TMZ_PRIMARY)
        booking.status = newStatus
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        releaseLock(lock)

    session.refresh(booking)
    logger.info(
        "Booking %s moved to %s, released %s seats",
        booking.id,
        BookingStatus(newStatus).name,
        released,
    )
    return booking
