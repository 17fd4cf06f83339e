from datetime import date, time

import pytest
from sqlalchemy.exc import IntegrityError

from busline.src import exceptions, inventory, layout
from busline.src.db import BookedSeat, Booking, Bus
from busline.src.enums import BookingStatus, SeatArrangement

TRAVEL_DATE = date(2030, 5, 17)


@pytest.fixture
def seatedBus(session):
    bus = Bus(
        registration_number="KL01A1",
        name="Coastal",
        source="Kozhikode",
        destination="Mangaluru",
        departure_date=TRAVEL_DATE,
        departure_time=time(8, 0),
        arrival_time=time(13, 0),
        booking_open_time=time(0, 0),
        booking_close_time=time(23, 59),
        total_seats=8,
        seat_arrangement=SeatArrangement.TWO_TWO,
        first_row_seats=4,
        last_row_seats=4,
        fare=300,
    )
    session.add(bus)
    session.flush()
    session.add_all(layout.buildSeats(bus))
    session.commit()
    return bus


def newBooking(session, bus, seats, travelDate=TRAVEL_DATE):
    booking = Booking(
        bus_id=bus.id,
        account_id=1,
        seats=seats,
        from_place=bus.source,
        to_place=bus.destination,
        travel_date=travelDate,
        fare=0,
    )
    session.add(booking)
    session.flush()
    return booking


def test_reserve_and_release(session, seatedBus):
    booking = newBooking(session, seatedBus, ["3", "4"])
    assert inventory.checkAvailability(session, seatedBus, TRAVEL_DATE, ["3", "4"])

    inventory.reserve(session, seatedBus, TRAVEL_DATE, ["3", "4"], booking)
    session.commit()
    assert inventory.bookedSeats(session, seatedBus.id, TRAVEL_DATE) == ["3", "4"]
    assert not inventory.checkAvailability(
        session, seatedBus, TRAVEL_DATE, ["3", "4"]
    )
    assert inventory.availableSeats(session, seatedBus, TRAVEL_DATE) == 6

    released = inventory.release(
        session, seatedBus.id, TRAVEL_DATE, ["3", "4"], booking.id
    )
    session.commit()
    assert released == 2
    assert inventory.checkAvailability(session, seatedBus, TRAVEL_DATE, ["3", "4"])
    assert inventory.availableSeats(session, seatedBus, TRAVEL_DATE) == 8


def test_release_twice_is_harmless(session, seatedBus):
    booking = newBooking(session, seatedBus, ["1"])
    inventory.reserve(session, seatedBus, TRAVEL_DATE, ["1"], booking)
    session.commit()

    assert inventory.release(session, seatedBus.id, TRAVEL_DATE, ["1"], booking.id) == 1
    assert inventory.release(session, seatedBus.id, TRAVEL_DATE, ["1"], booking.id) == 0
    assert inventory.release(session, seatedBus.id, TRAVEL_DATE, [], booking.id) == 0


def test_release_keeps_seats_of_other_bookings(session, seatedBus):
    first = newBooking(session, seatedBus, ["5"])
    second = newBooking(session, seatedBus, ["6"])
    inventory.reserve(session, seatedBus, TRAVEL_DATE, ["5"], first)
    inventory.reserve(session, seatedBus, TRAVEL_DATE, ["6"], second)
    session.commit()

    assert inventory.release(
        session, seatedBus.id, TRAVEL_DATE, ["5", "6"], first.id
    ) == 1
    session.commit()
    assert inventory.bookedSeats(session, seatedBus.id, TRAVEL_DATE) == ["6"]


def test_conflict_reserves_nothing(session, seatedBus):
    first = newBooking(session, seatedBus, ["2"])
    inventory.reserve(session, seatedBus, TRAVEL_DATE, ["2"], first)
    session.commit()

    second = newBooking(session, seatedBus, ["1", "2"])
    with pytest.raises(exceptions.SeatConflict) as error:
        inventory.reserve(session, seatedBus, TRAVEL_DATE, ["1", "2"], second)
    assert error.value.extra == {"alreadyBookedSeats": ["2"]}
    session.rollback()
    assert inventory.bookedSeats(session, seatedBus.id, TRAVEL_DATE) == ["2"]


def test_unknown_seat(session, seatedBus):
    booking = newBooking(session, seatedBus, ["1", "42"])
    with pytest.raises(exceptions.UnknownSeat):
        inventory.reserve(session, seatedBus, TRAVEL_DATE, ["1", "42"], booking)
    assert not inventory.checkAvailability(session, seatedBus, TRAVEL_DATE, ["42"])


def test_empty_selection_is_available(session, seatedBus):
    booking = newBooking(session, seatedBus, ["1", "2", "3", "4"])
    inventory.reserve(session, seatedBus, TRAVEL_DATE, ["1", "2", "3", "4"], booking)
    session.commit()
    assert inventory.checkAvailability(session, seatedBus, TRAVEL_DATE, [])
    assert not inventory.checkAvailability(session, seatedBus, TRAVEL_DATE, ["1"])


def test_dates_are_independent(session, seatedBus):
    otherDate = date(2030, 5, 18)
    first = newBooking(session, seatedBus, ["1"])
    second = newBooking(session, seatedBus, ["1"], otherDate)
    inventory.reserve(session, seatedBus, TRAVEL_DATE, ["1"], first)
    inventory.reserve(session, seatedBus, otherDate, ["1"], second)
    session.commit()

    assert inventory.bookedSeats(session, seatedBus.id, TRAVEL_DATE) == ["1"]
    assert inventory.bookedSeats(session, seatedBus.id, otherDate) == ["1"]


def test_unique_constraint_backs_the_lock(session, seatedBus):
    booking = newBooking(session, seatedBus, ["7"])
    session.add(
        BookedSeat(
            bus_id=seatedBus.id, travel_date=TRAVEL_DATE, label="7", booking_id=booking.id
        )
    )
    session.commit()

    session.add(
        BookedSeat(
            bus_id=seatedBus.id, travel_date=TRAVEL_DATE, label="7", booking_id=booking.id
        )
    )
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_labels_sort_numerically():
    assert inventory.sortLabels(["10", "2", "1", "A1"]) == ["1", "2", "10", "A1"]


def test_active_bookings(session, seatedBus):
    assert not inventory.hasActiveBookings(session, seatedBus.id)
    booking = newBooking(session, seatedBus, ["1"])
    session.commit()
    assert inventory.hasActiveBookings(session, seatedBus.id)

    booking.status = BookingStatus.CANCELLED
    session.commit()
    assert not inventory.hasActiveBookings(session, seatedBus.id)
