from datetime import datetime, time

import pytest

from busline.src import layout
from busline.src.constants import TMZ_SECONDARY
from busline.src.db import Bus
from busline.src.enums import BookingWindow, SeatArrangement


def labels(seats):
    return [seat["label"] for seat in seats]


def rows(seats):
    return [seat["row"] for seat in seats]


def test_small_bus_fits_in_one_row():
    seats = layout.generateSeats(4, SeatArrangement.TWO_TWO, 2, 2)
    assert labels(seats) == ["1", "2", "3", "4"]
    assert rows(seats) == [1, 1, 1, 1]
    assert [seat["position"] for seat in seats] == [1, 2, 3, 4]


def test_rows_follow_arrangement():
    seats = layout.generateSeats(10, SeatArrangement.TWO_TWO, 2, 3)
    assert labels(seats) == [str(n) for n in range(1, 11)]
    assert rows(seats) == [1, 1, 2, 2, 2, 2, 3, 3, 3, 3]


def test_two_one_arrangement():
    seats = layout.generateSeats(9, SeatArrangement.TWO_ONE, 2, 4)
    assert len(seats) == 9
    assert rows(seats) == [1, 1, 2, 2, 2, 3, 3, 3, 3]


def test_one_one_arrangement():
    seats = layout.generateSeats(6, SeatArrangement.ONE_ONE, 1, 2)
    assert labels(seats) == ["1", "2", "3", "4", "5", "6"]
    assert rows(seats) == [1, 2, 2, 3, 3, 4]


def test_last_row_is_cut_short():
    seats = layout.generateSeats(7, SeatArrangement.TWO_TWO, 4, 5)
    assert labels(seats)[-1] == "7"
    assert rows(seats) == [1, 1, 1, 1, 2, 2, 2]


def test_every_label_is_unique():
    seats = layout.generateSeats(49, SeatArrangement.TWO_TWO, 2, 5)
    assert len(set(labels(seats))) == 49
    assert len({(seat["row"], seat["position"]) for seat in seats}) == 49


@pytest.mark.parametrize("total", [0, -3])
def test_rejects_empty_bus(total):
    with pytest.raises(ValueError):
        layout.generateSeats(total, SeatArrangement.TWO_TWO, 2, 2)


def makeBus(isActive=True):
    return Bus(
        is_active=isActive,
        booking_open_time=time(6, 0),
        booking_close_time=time(20, 0),
    )


def test_booking_window():
    noon = datetime(2026, 3, 1, 12, 0, tzinfo=TMZ_SECONDARY)
    night = datetime(2026, 3, 1, 22, 30, tzinfo=TMZ_SECONDARY)
    assert layout.bookingWindow(makeBus(), noon) == BookingWindow.OPEN
    assert layout.bookingWindow(makeBus(), night) == BookingWindow.CLOSED
    assert layout.bookingWindow(makeBus(False), noon) == BookingWindow.INACTIVE
