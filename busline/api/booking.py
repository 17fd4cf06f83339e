from datetime import date, datetime, time
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ConfigDict, Field, EmailStr

from busline.api.bearer import bearer_account
from busline.src.constants import MAX_SEATS_PER_BOOKING
from busline.src.db import Booking, Bus, Passenger, sessionMaker
from busline.src import exceptions, inventory, lifecycle, validators, getters
from busline.src.loggers import logEvent
from busline.src.enums import AccountRole, BookingStatus, GenderType, OrderIn
from busline.src.functions import enumStr, fuseExceptionResponses
from busline.src.schemas import Principal
from busline.src.urls import (
    URL_BOOKED_SEATS,
    URL_BOOKING,
    URL_BOOKING_DETAIL,
    URL_BOOKING_STATUS,
)

route_core = APIRouter()


## Output Schema
class PassengerSchema(BaseModel):
    seat: str
    name: str
    age: Optional[int]
    gender: int
    phone_number: Optional[str]
    email_id: Optional[str]


class BookingSchema(BaseModel):
    id: int
    bus_id: Optional[int]
    account_id: int
    agent_id: Optional[int]
    seats: List[str]
    from_place: str
    to_place: str
    travel_date: date
    departure_time: Optional[time]
    arrival_time: Optional[time]
    fare: float
    status: int
    cancelled_on: Optional[datetime]
    updated_on: Optional[datetime]
    created_on: datetime
    passengers: List[PassengerSchema]


class BookedSeatsSchema(BaseModel):
    bus_id: int
    travel_date: date
    booked_seats: List[str]
    available_seats: int


## Input Forms
class PassengerForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    seat: str = Field(max_length=8)
    name: str = Field(min_length=1, max_length=64)
    age: int | None = Field(default=None, ge=0, le=150)
    gender: GenderType = Field(
        default=GenderType.OTHER, description=enumStr(GenderType)
    )
    phone_number: str | None = Field(default=None, max_length=32, alias="phone")
    email_id: EmailStr | None = Field(default=None, alias="email")


class CreateForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bus_id: int = Field(alias="busId")
    seats: List[str] = Field(max_length=MAX_SEATS_PER_BOOKING * 2)
    from_place: str = Field(alias="from", min_length=1, max_length=64)
    to_place: str = Field(alias="to", min_length=1, max_length=64)
    travel_date: date = Field(alias="date")
    passengers: List[PassengerForm] | None = Field(default=None)
    fare: float | None = Field(default=None, ge=0, alias="fareInRupees")
    customer_id: int | None = Field(default=None, alias="customerId")


class StatusForm(BaseModel):
    status: BookingStatus = Field(description=enumStr(BookingStatus))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    travel_date = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    bus_id: int | None = Field(Query(default=None))
    account_id: int | None = Field(Query(default=None))
    agent_id: int | None = Field(Query(default=None))
    status: BookingStatus | None = Field(
        Query(default=None, description=enumStr(BookingStatus))
    )
    # travel_date based
    travel_date: date | None = Field(Query(default=None))
    travel_date_ge: date | None = Field(Query(default=None))
    travel_date_le: date | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def bookingData(session: Session, booking: Booking) -> dict:
    passengers = (
        session.query(Passenger)
        .filter(Passenger.booking_id == booking.id)
        .order_by(Passenger.id.asc())
        .all()
    )
    data = jsonable_encoder(booking)
    data["passengers"] = jsonable_encoder(passengers)
    return data


def findBooking(session: Session, principal: Principal, bookingId: int) -> Booking:
    """A booking visible to the principal, unknown and foreign ids look alike."""
    booking = session.query(Booking).filter(Booking.id == bookingId).first()
    if booking is None or not lifecycle.canView(principal, booking):
        raise exceptions.InvalidIdentifier()
    return booking


def searchBooking(
    session: Session, principal: Principal, qParam: QueryParams
) -> List[Booking]:
    query = session.query(Booking)

    # Visibility
    if principal.role == AccountRole.CUSTOMER:
        query = query.filter(Booking.account_id == principal.account_id)
    elif principal.role == AccountRole.AGENT:
        query = query.filter(
            (Booking.account_id == principal.account_id)
            | (Booking.agent_id == principal.account_id)
        )
    # Filters
    if qParam.bus_id is not None:
        query = query.filter(Booking.bus_id == qParam.bus_id)
    if qParam.account_id is not None:
        query = query.filter(Booking.account_id == qParam.account_id)
    if qParam.agent_id is not None:
        query = query.filter(Booking.agent_id == qParam.agent_id)
    if qParam.status is not None:
        query = query.filter(Booking.status == qParam.status)
    # travel_date based
    if qParam.travel_date is not None:
        query = query.filter(Booking.travel_date == qParam.travel_date)
    if qParam.travel_date_ge is not None:
        query = query.filter(Booking.travel_date >= qParam.travel_date_ge)
    if qParam.travel_date_le is not None:
        query = query.filter(Booking.travel_date <= qParam.travel_date_le)
    # id based
    if qParam.id is not None:
        query = query.filter(Booking.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Booking.id.in_(qParam.id_list))

    # Ordering
    orderingAttribute = getattr(Booking, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints
@route_core.post(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.MissingParameter(Booking.seats, "Please select at least one seat"),
            exceptions.DuplicateSeat(["2"]),
            exceptions.UnknownSeat(["99"]),
            exceptions.SeatConflict(["2"]),
            exceptions.InactiveResource(Bus),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Books seats of a bus for a travel date. The booking starts in PENDING status.
    Customers book for themselves, active agents book for `customerId` or as a counter sale, admins must give `customerId`.
    Passenger details are optional, "Passenger N" entries are generated when they are missing.
    The fare defaults to the bus fare times the number of seats unless `fareInRupees` is given.
    If any seat is already taken nothing is booked and `alreadyBookedSeats` lists the taken seats.
    """,
)
async def create_booking(
    fParam: CreateForm = Body(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        principal = getters.principal(token, session)

        booking = lifecycle.createBooking(
            session,
            principal,
            busId=fParam.bus_id,
            seats=fParam.seats,
            travelDate=fParam.travel_date,
            fromPlace=fParam.from_place,
            toPlace=fParam.to_place,
            passengers=(
                [passenger.model_dump() for passenger in fParam.passengers]
                if fParam.passengers
                else None
            ),
            fare=fParam.fare,
            customerId=fParam.customer_id,
        )

        data = bookingData(session, booking)
        logEvent(token, request_info, data)
        return data
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_core.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=List[BookingSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists bookings.
    Customers see their own bookings, agents see bookings they own or sold, admins see every booking.
    """,
)
async def fetch_bookings(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        principal = getters.principal(token, session)

        return [
            bookingData(session, booking)
            for booking in searchBooking(session, principal, qParam)
        ]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_core.get(
    URL_BOOKED_SEATS,
    tags=["Booking"],
    response_model=BookedSeatsSchema,
    responses=fuseExceptionResponses([exceptions.InvalidIdentifier()]),
    description="Returns the seats of a bus that are held on a travel date.",
)
async def fetch_booked_seats(bus_id: int = Path(), travel_date: date = Path()):
    try:
        session = sessionMaker()
        bus = session.query(Bus).filter(Bus.id == bus_id).first()
        if bus is None:
            raise exceptions.InvalidIdentifier()

        return {
            "bus_id": bus.id,
            "travel_date": travel_date,
            "booked_seats": inventory.bookedSeats(session, bus.id, travel_date),
            "available_seats": inventory.availableSeats(session, bus, travel_date),
        }
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_core.get(
    URL_BOOKING_DETAIL,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="Returns one booking to its owner, its selling agent or an admin.",
)
async def fetch_booking(booking_id: int = Path(), bearer=Depends(bearer_account)):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        principal = getters.principal(token, session)

        booking = findBooking(session, principal, booking_id)
        return bookingData(session, booking)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_core.patch(
    URL_BOOKING_STATUS,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.status),
            exceptions.CutoffViolation(2),
        ]
    ),
    description=f"""
    Changes the status of a booking ({enumStr(BookingStatus)}).
    PENDING bookings are confirmed by an admin or by the owner completing payment.
    Owners and admins can cancel PENDING or CONFIRMED bookings up to the cancellation cutoff before departure.
    Cancelling frees the seats of the booking. CANCELLED bookings never change again.
    """,
)
async def update_booking_status(
    booking_id: int = Path(),
    fParam: StatusForm = Body(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        principal = getters.principal(token, session)

        booking = findBooking(session, principal, booking_id)
        booking = lifecycle.setStatus(session, principal, booking, fParam.status)

        data = bookingData(session, booking)
        logEvent(token, request_info, data)
        return data
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_core.delete(
    URL_BOOKING_DETAIL,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.status),
            exceptions.CutoffViolation(2),
        ]
    ),
    description="""
    Cancels a booking and frees its seats. The booking itself is kept with CANCELLED status.
    Refused within the cancellation cutoff before departure.
    """,
)
async def cancel_booking(
    booking_id: int = Path(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        principal = getters.principal(token, session)

        booking = findBooking(session, principal, booking_id)
        booking = lifecycle.setStatus(
            session, principal, booking, BookingStatus.CANCELLED
        )

        data = bookingData(session, booking)
        logEvent(token, request_info, data)
        return data
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
