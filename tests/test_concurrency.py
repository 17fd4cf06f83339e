from concurrent.futures import ThreadPoolExecutor
from datetime import time, timedelta
from threading import Barrier

from conftest import makeAccount
from busline.src import exceptions, inventory, layout, lifecycle
from busline.src.db import Booking, Bus, sessionMaker
from busline.src.enums import AccountRole, BookingStatus, SeatArrangement
from busline.src.schemas import Principal

WORKERS = 8


def makeBus(session):
    bus = Bus(
        registration_number="TN09B77",
        name="Night Rider",
        source="Chennai",
        destination="Madurai",
        departure_date=lifecycle.localToday(),
        departure_time=time(23, 0),
        arrival_time=time(6, 0),
        booking_open_time=time(0, 0),
        booking_close_time=time(23, 59),
        total_seats=12,
        seat_arrangement=SeatArrangement.TWO_TWO,
        first_row_seats=4,
        last_row_seats=4,
        fare=450,
    )
    session.add(bus)
    session.flush()
    session.add_all(layout.buildSeats(bus))
    session.commit()
    return bus


def race(busId, travelDate, principals, seatsFor):
    barrier = Barrier(len(principals))

    def attempt(index):
        session = sessionMaker()
        try:
            barrier.wait()
            booking = lifecycle.createBooking(
                session,
                principals[index],
                busId=busId,
                seats=seatsFor(index),
                travelDate=travelDate,
                fromPlace="Chennai",
                toPlace="Madurai",
            )
            return booking.id
        except exceptions.SeatConflict as e:
            return e
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(principals)) as pool:
        return list(pool.map(attempt, range(len(principals))))


def test_one_winner_per_seat(session):
    bus = makeBus(session)
    travelDate = lifecycle.localToday() + timedelta(days=1)
    principals = [
        Principal(account_id=makeAccount(f"rider{n}").id, role=AccountRole.CUSTOMER)
        for n in range(WORKERS)
    ]

    results = race(bus.id, travelDate, principals, lambda index: ["1"])

    winners = [result for result in results if isinstance(result, int)]
    losers = [result for result in results if not isinstance(result, int)]
    assert len(winners) == 1
    assert len(losers) == WORKERS - 1
    assert all(e.extra == {"alreadyBookedSeats": ["1"]} for e in losers)
    assert inventory.bookedSeats(session, bus.id, travelDate) == ["1"]
    assert session.query(Booking).count() == 1


def test_overlapping_requests_never_share_a_seat(session):
    bus = makeBus(session)
    travelDate = lifecycle.localToday() + timedelta(days=2)
    principals = [
        Principal(account_id=makeAccount(f"walker{n}").id, role=AccountRole.CUSTOMER)
        for n in range(WORKERS)
    ]

    # Neighbours overlap on one seat: [1, 2], [2, 3], [3, 4] ...
    results = race(
        bus.id,
        travelDate,
        principals,
        lambda index: [str(index + 1), str(index + 2)],
    )

    bookings = (
        session.query(Booking)
        .filter(Booking.id.in_([r for r in results if isinstance(r, int)]))
        .all()
    )
    held = [label for booking in bookings for label in booking.seats]
    assert bookings
    assert len(held) == len(set(held))
    assert sorted(held, key=int) == inventory.bookedSeats(session, bus.id, travelDate)
    assert all(booking.status == BookingStatus.PENDING for booking in bookings)
