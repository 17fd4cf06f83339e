import logging
from datetime import time, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import makeAccount
from busline.src import inventory, layout, lifecycle
from busline.src.db import Booking, Bus, Passenger, sessionMaker
from busline.src.enums import AccountRole, SeatArrangement
from busline.src.schemas import Principal


@pytest.fixture
def seatedBus(session):
    bus = Bus(
        registration_number="KA01F555",
        name="Hill Line",
        source="Mysuru",
        destination="Ooty",
        departure_date=lifecycle.localToday(),
        departure_time=time(22, 0),
        arrival_time=time(5, 0),
        booking_open_time=time(0, 0),
        booking_close_time=time(23, 59),
        total_seats=4,
        seat_arrangement=SeatArrangement.TWO_TWO,
        first_row_seats=2,
        last_row_seats=2,
        fare=700,
    )
    session.add(bus)
    session.flush()
    session.add_all(layout.buildSeats(bus))
    session.commit()
    return bus


@pytest.fixture
def rider():
    return Principal(account_id=makeAccount("rider").id, role=AccountRole.CUSTOMER)


def bookWithBrokenPassenger(session, bus, principal, travelDate):
    # A passenger without a name fails the NOT NULL constraint on commit
    return lifecycle.createBooking(
        session,
        principal,
        busId=bus.id,
        seats=["1", "2"],
        travelDate=travelDate,
        fromPlace="Mysuru",
        toPlace="Ooty",
        passengers=[{"seat": "1", "name": "Asha"}, {"seat": "2", "name": None}],
    )


def test_failed_commit_leaves_no_seats_held(session, seatedBus, rider):
    travelDate = lifecycle.localToday() + timedelta(days=1)
    worker = sessionMaker()
    try:
        with pytest.raises(IntegrityError):
            bookWithBrokenPassenger(worker, seatedBus, rider, travelDate)
    finally:
        worker.close()

    assert inventory.bookedSeats(session, seatedBus.id, travelDate) == []
    assert session.query(Booking).count() == 0
    assert session.query(Passenger).count() == 0

    booking = lifecycle.createBooking(
        session,
        rider,
        busId=seatedBus.id,
        seats=["1", "2"],
        travelDate=travelDate,
        fromPlace="Mysuru",
        toPlace="Ooty",
    )
    assert booking.seats == ["1", "2"]
    assert inventory.bookedSeats(session, seatedBus.id, travelDate) == ["1", "2"]


def test_failed_rollback_is_logged_for_reconciliation(
    session, seatedBus, rider, caplog, redisClient
):
    travelDate = lifecycle.localToday() + timedelta(days=1)
    worker = sessionMaker()

    def brokenRollback():
        raise RuntimeError("connection lost")

    worker.rollback = brokenRollback
    try:
        with caplog.at_level(logging.CRITICAL, logger="Lifecycle"):
            with pytest.raises(IntegrityError):
                bookWithBrokenPassenger(worker, seatedBus, rider, travelDate)
    finally:
        del worker.rollback
        worker.close()

    records = [r for r in caplog.records if r.levelno == logging.CRITICAL]
    assert len(records) == 1
    message = records[0].getMessage()
    assert "Seat reconciliation required" in message
    assert f"bus_id={seatedBus.id}" in message
    assert f"travel_date={travelDate}" in message
    assert "'1', '2'" in message
    assert records[0].exc_info is not None

    assert inventory.bookedSeats(session, seatedBus.id, travelDate) == []
    # The mutex is released even though the rollback failed
    assert not redisClient.exists(
        f"lock:booked_seat:{inventory.seatKey(seatedBus.id, travelDate)}"
    )
