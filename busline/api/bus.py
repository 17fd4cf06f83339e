from datetime import date, datetime, time
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from busline.api.bearer import bearer_account
from busline.src.db import Bus, Seat, sessionMaker
from busline.src import exceptions, inventory, layout, validators, getters
from busline.src.loggers import logEvent
from busline.src.enums import AccountRole, BusType, OrderIn, SeatArrangement
from busline.src.constants import (
    DEFAULT_ADVANCE_BOOKING_DAYS,
    MAX_SEATS_PER_BUS,
    REGEX_REGISTRATION_NUMBER,
)
from busline.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from busline.src.urls import URL_BUS, URL_BUS_DETAIL, URL_BUS_SEARCH

route_core = APIRouter()
route_admin = APIRouter()


## Output Schema
class BusSchema(BaseModel):
    id: int
    registration_number: str
    name: str
    bus_type: int
    source: str
    destination: str
    departure_date: date
    departure_time: time
    arrival_time: time
    booking_open_time: time
    booking_close_time: time
    advance_booking_days: int
    total_seats: int
    seat_arrangement: int
    first_row_seats: int
    last_row_seats: int
    fare: float
    is_active: bool
    updated_on: Optional[datetime]
    created_on: datetime


class BusAvailabilitySchema(BusSchema):
    travel_date: date
    available_seats: int
    booking_window: int


class SeatSchema(BaseModel):
    label: str
    row: int
    position: int
    is_booked: bool


class BusDetailSchema(BusAvailabilitySchema):
    seats: List[SeatSchema]


## Input Forms
class CreateForm(BaseModel):
    registration_number: str = Field(
        Form(pattern=REGEX_REGISTRATION_NUMBER, max_length=16)
    )
    name: str = Field(Form(max_length=32))
    bus_type: BusType = Field(Form(description=enumStr(BusType), default=BusType.AC))
    source: str = Field(Form(min_length=1, max_length=64))
    destination: str = Field(Form(min_length=1, max_length=64))
    departure_date: date = Field(Form())
    departure_time: time = Field(Form())
    arrival_time: time = Field(Form())
    booking_open_time: time = Field(Form(default=time(0, 0)))
    booking_close_time: time = Field(Form(default=time(23, 59)))
    advance_booking_days: int = Field(
        Form(ge=0, le=90, default=DEFAULT_ADVANCE_BOOKING_DAYS)
    )
    total_seats: int = Field(Form(ge=1, le=MAX_SEATS_PER_BUS))
    seat_arrangement: SeatArrangement = Field(
        Form(description=enumStr(SeatArrangement), default=SeatArrangement.TWO_TWO)
    )
    first_row_seats: int = Field(Form(ge=1, le=4, default=2))
    last_row_seats: int = Field(Form(ge=1, le=5, default=3))
    fare: float = Field(Form(ge=0, description="Fare per seat in rupees"))
    is_active: bool = Field(Form(default=True))


class UpdateForm(BaseModel):
    id: int = Field(Form())
    name: str | None = Field(Form(max_length=32, default=None))
    bus_type: BusType | None = Field(Form(description=enumStr(BusType), default=None))
    source: str | None = Field(Form(min_length=1, max_length=64, default=None))
    destination: str | None = Field(Form(min_length=1, max_length=64, default=None))
    departure_date: date | None = Field(Form(default=None))
    departure_time: time | None = Field(Form(default=None))
    arrival_time: time | None = Field(Form(default=None))
    booking_open_time: time | None = Field(Form(default=None))
    booking_close_time: time | None = Field(Form(default=None))
    advance_booking_days: int | None = Field(Form(ge=0, le=90, default=None))
    total_seats: int | None = Field(Form(ge=1, le=MAX_SEATS_PER_BUS, default=None))
    seat_arrangement: SeatArrangement | None = Field(
        Form(description=enumStr(SeatArrangement), default=None)
    )
    first_row_seats: int | None = Field(Form(ge=1, le=4, default=None))
    last_row_seats: int | None = Field(Form(ge=1, le=5, default=None))
    fare: float | None = Field(Form(ge=0, default=None))
    is_active: bool | None = Field(Form(default=None))


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    departure_date = 2
    fare = 3
    updated_on = 4
    created_on = 5


class SearchParams(BaseModel):
    source: str | None = Field(Query(default=None))
    destination: str | None = Field(Query(default=None))
    travel_date: date | None = Field(
        Query(default=None, alias="date", description="Departure date")
    )


class QueryParams(SearchParams):
    name: str | None = Field(Query(default=None))
    registration_number: str | None = Field(Query(default=None))
    bus_type: BusType | None = Field(Query(default=None, description=enumStr(BusType)))
    is_active: bool | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # fare based
    fare_ge: float | None = Field(Query(default=None))
    fare_le: float | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
LAYOUT_FIELDS = [
    Bus.total_seats.key,
    Bus.seat_arrangement.key,
    Bus.first_row_seats.key,
    Bus.last_row_seats.key,
]


def checkBookingHours(bus: Bus) -> None:
    if bus.booking_open_time > bus.booking_close_time:
        raise exceptions.InvalidValue(
            Bus.booking_close_time, "Booking close time must not be before open time"
        )


def updateBus(session: Session, bus: Bus, fParam: UpdateForm) -> bool:
    """
    Apply a partial update and return True if anything changed. Changing a
    layout parameter regenerates the seats, which is only allowed while the
    bus has no pending or confirmed booking.
    """
    layoutChanged = updateIfChanged(bus, fParam, LAYOUT_FIELDS)
    detailsChanged = updateIfChanged(
        bus,
        fParam,
        [
            Bus.name.key,
            Bus.bus_type.key,
            Bus.source.key,
            Bus.destination.key,
            Bus.departure_date.key,
            Bus.departure_time.key,
            Bus.arrival_time.key,
            Bus.booking_open_time.key,
            Bus.booking_close_time.key,
            Bus.advance_booking_days.key,
            Bus.fare.key,
            Bus.is_active.key,
        ],
    )
    checkBookingHours(bus)

    if layoutChanged:
        if inventory.hasActiveBookings(session, bus.id):
            raise exceptions.DataInUse(Bus)
        session.query(Seat).filter(Seat.bus_id == bus.id).delete(
            synchronize_session=False
        )
        session.add_all(layout.buildSeats(bus))
    return layoutChanged or detailsChanged


def availability(session: Session, bus: Bus, travelDate: date | None) -> dict:
    travelDate = travelDate or bus.departure_date
    busData = jsonable_encoder(bus)
    busData["travel_date"] = travelDate
    busData["available_seats"] = inventory.availableSeats(session, bus, travelDate)
    busData["booking_window"] = layout.bookingWindow(bus)
    return busData


def searchBus(session: Session, qParam: SearchParams | QueryParams) -> List[Bus]:
    query = session.query(Bus)

    # Filters
    if qParam.source is not None:
        query = query.filter(Bus.source.ilike(f"%{qParam.source}%"))
    if qParam.destination is not None:
        query = query.filter(Bus.destination.ilike(f"%{qParam.destination}%"))
    if qParam.travel_date is not None:
        query = query.filter(Bus.departure_date == qParam.travel_date)
    if not isinstance(qParam, QueryParams):
        query = query.filter(Bus.is_active.is_(True))
        return query.order_by(Bus.departure_time.asc(), Bus.id.asc()).all()

    if qParam.name is not None:
        query = query.filter(Bus.name.ilike(f"%{qParam.name}%"))
    if qParam.registration_number is not None:
        query = query.filter(
            Bus.registration_number.ilike(f"%{qParam.registration_number}%")
        )
    if qParam.bus_type is not None:
        query = query.filter(Bus.bus_type == qParam.bus_type)
    if qParam.is_active is not None:
        query = query.filter(Bus.is_active.is_(qParam.is_active))
    # id based
    if qParam.id is not None:
        query = query.filter(Bus.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Bus.id.in_(qParam.id_list))
    # fare based
    if qParam.fare_ge is not None:
        query = query.filter(Bus.fare >= qParam.fare_ge)
    if qParam.fare_le is not None:
        query = query.filter(Bus.fare <= qParam.fare_le)

    # Ordering
    orderingAttribute = getattr(Bus, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Core]
@route_core.get(
    URL_BUS_SEARCH,
    tags=["Bus"],
    response_model=List[BusAvailabilitySchema],
    description="""
    Searches active buses by source, destination and departure date.
    Source and destination match case-insensitively on any part of the name.
    Every result carries the free seat count of its departure date and the booking-window status.
    """,
)
async def search_buses(qParam: SearchParams = Depends()):
    try:
        session = sessionMaker()
        return [availability(session, bus, None) for bus in searchBus(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_core.get(
    URL_BUS_DETAIL,
    tags=["Bus"],
    response_model=BusDetailSchema,
    responses=fuseExceptionResponses([exceptions.InvalidIdentifier()]),
    description="""
    Returns one bus with its seat layout.
    Every seat is flagged as booked or free for the given travel date (default: the departure date).
    """,
)
async def fetch_bus(
    bus_id: int = Path(),
    travel_date: date | None = Query(default=None, alias="date"),
):
    try:
        session = sessionMaker()
        bus = session.query(Bus).filter(Bus.id == bus_id).first()
        if bus is None:
            raise exceptions.InvalidIdentifier()

        busData = availability(session, bus, travel_date)
        booked = set(
            inventory.bookedSeats(session, bus.id, busData["travel_date"])
        )
        seats = (
            session.query(Seat)
            .filter(Seat.bus_id == bus.id)
            .order_by(Seat.row.asc(), Seat.position.asc())
            .all()
        )
        busData["seats"] = [
            {
                "label": seat.label,
                "row": seat.row,
                "position": seat.position,
                "is_booked": seat.label in booked,
            }
            for seat in seats
        ]
        return busData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.post(
    URL_BUS,
    tags=["Bus"],
    response_model=BusSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UniqueViolation("registration_number"),
        ]
    ),
    description="""
    Creates a new bus and generates its seat layout.
    The layout is derived from total_seats, seat_arrangement, first_row_seats and last_row_seats.
    Only admins can create buses.
    Logs the bus creation activity with the associated token.
    """,
)
async def create_bus(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.role(getters.principal(token, session), AccountRole.ADMIN)

        bus = Bus(**fParam.model_dump())
        checkBookingHours(bus)
        session.add(bus)
        session.flush()
        session.add_all(layout.buildSeats(bus))
        session.commit()
        session.refresh(bus)

        busData = jsonable_encoder(bus)
        logEvent(token, request_info, busData)
        return busData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_BUS,
    tags=["Bus"],
    response_model=BusSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
            exceptions.DataInUse(Bus),
        ]
    ),
    description="""
    Updates schedule, fare, status or layout parameters of a bus.
    Layout changes regenerate the seats and are refused while the bus has pending or confirmed bookings.
    Changes are saved only if the bus data has been modified.
    Only admins can update buses.
    """,
)
async def update_bus(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.role(getters.principal(token, session), AccountRole.ADMIN)

        bus = session.query(Bus).filter(Bus.id == fParam.id).with_for_update().first()
        if bus is None:
            raise exceptions.InvalidIdentifier()

        haveUpdates = updateBus(session, bus, fParam)
        if haveUpdates:
            session.commit()
            session.refresh(bus)

        busData = jsonable_encoder(bus)
        if haveUpdates:
            logEvent(token, request_info, busData)
        return busData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_BUS,
    tags=["Bus"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission(), exceptions.DataInUse(Bus)]
    ),
    description="""
    Deletes a bus together with its seat layout.
    Refused while the bus has pending or confirmed bookings, cancelled bookings are kept.
    Only admins can delete buses.
    """,
)
async def delete_bus(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.role(getters.principal(token, session), AccountRole.ADMIN)

        bus = session.query(Bus).filter(Bus.id == fParam.id).with_for_update().first()
        if bus is not None:
            if inventory.hasActiveBookings(session, bus.id):
                raise exceptions.DataInUse(Bus)
            session.query(Seat).filter(Seat.bus_id == bus.id).delete(
                synchronize_session=False
            )
            session.delete(bus)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(bus))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_BUS,
    tags=["Bus"],
    response_model=List[BusSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Lists every bus, active or not.
    Supports filtering by route, date, name, registration number, type and fare.
    Only admins can list buses here.
    """,
)
async def fetch_buses(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.role(getters.principal(token, session), AccountRole.ADMIN)

        return searchBus(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
