from secrets import token_hex
from sqlalchemy import (
    JSON,
    TEXT,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Time,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.dialects.postgresql import JSONB

from busline.src.constants import (
    DEFAULT_ADVANCE_BOOKING_DAYS,
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
)
from busline.src.enums import (
    AccountRole,
    AccountStatus,
    AgentStatus,
    BookingStatus,
    BusType,
    GenderType,
    PlatformType,
    SeatArrangement,
)


# Global DBMS variables
dbURL = f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
engine = create_engine(url=dbURL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere
JSONList = JSON().with_variant(JSONB(), "postgresql")


# ----------------------------------- Account DB Models ---------------------------------------#
class Account(ORMbase):
    """
    Represents a person who can authenticate against the platform.

    A single table holds customers, ticket agents and administrators; the
    `role` column decides what the account may do. Administrator credentials
    are ordinary rows here, they are never read from process configuration.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the account.

        role (Integer):
            Enum value from `AccountRole` (CUSTOMER, AGENT, ADMIN).
            Must not be null. Defaults to `AccountRole.CUSTOMER`.

        username (String(32)):
            Unique username used for login.
            It should start with an alphabet and be 4-32 characters long.
            May include hyphen (-), period (.), at symbol (@), and underscore (_).

        password (TEXT):
            Argon2 hash of the password. Plaintext is never stored.

        credential_version (Integer):
            Incremented every time the password changes.
            Tokens issued under an older version are rejected.

        gender (Integer):
            Mapped from the `GenderType` enum. Defaults to `GenderType.OTHER`.

        full_name (TEXT):
            Optional display name. Maximum 32 characters long.

        phone_number (TEXT):
            Optional contact number in RFC3966 format.

        email_id (TEXT):
            Optional email address in RFC 5322 format.

        status (Integer):
            Mapped from the `AccountStatus` enum. Defaults to `AccountStatus.ACTIVE`.

        updated_on (DateTime):
            Timestamp automatically updated whenever the account is modified.

        created_on (DateTime):
            Timestamp of when the account was created.
    """

    __tablename__ = "account"

    id = Column(Integer, primary_key=True)
    role = Column(Integer, nullable=False, default=AccountRole.CUSTOMER, index=True)
    username = Column(String(32), nullable=False, unique=True)
    password = Column(TEXT, nullable=False)
    credential_version = Column(Integer, nullable=False, default=1)
    gender = Column(Integer, nullable=False, default=GenderType.OTHER)
    full_name = Column(TEXT)
    status = Column(Integer, nullable=False, default=AccountStatus.ACTIVE)
    # Contact details
    phone_number = Column(TEXT)
    email_id = Column(TEXT)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class AccountToken(ORMbase):
    """
    Represents an authentication token issued to an account.

    Columns:
        id (Integer):
            Primary key. Unique identifier for this token record.

        account_id (Integer):
            Foreign key referencing `account.id`.
            Cascades on delete.

        access_token (String):
            Unique, securely generated 64-character hexadecimal access token.

        credential_version (Integer):
            The account's `credential_version` when the token was issued.

        expires_in (Integer):
            Token expiration time in seconds.

        expires_at (DateTime):
            Date and time after which the token becomes invalid.

        platform_type (Integer):
            Enum value indicating the client platform type.

        client_details (TEXT):
            Optional description of the client device or environment.

        updated_on (DateTime):
            Timestamp automatically updated whenever the token record is modified.

        created_on (DateTime):
            Timestamp indicating when this token was created.
    """

    __tablename__ = "account_token"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    access_token = Column(
        String(64), unique=True, nullable=False, default=lambda: token_hex(32)
    )
    credential_version = Column(Integer, nullable=False)
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    # Device related details
    platform_type = Column(Integer, default=PlatformType.OTHER)
    client_details = Column(TEXT)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Agent(ORMbase):
    """
    Ticket-counter agency profile attached to an account with the AGENT role.
    Only agents in ACTIVE status can sell bookings.
    """

    __tablename__ = "agent"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    agency_name = Column(TEXT, nullable=False)
    owner_name = Column(TEXT, nullable=False)
    window_number = Column(String(16), nullable=False)
    address = Column(TEXT)
    commission_rate = Column(Numeric(5, 2), nullable=False, default=0)
    status = Column(Integer, nullable=False, default=AgentStatus.PENDING)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Catalog DB Models ---------------------------------------#
class Bus(ORMbase):
    """
    Represents a scheduled bus together with the parameters of its seat layout.

    Clock-time columns are local times in `TMZ_SECONDARY`. The seat layout is
    stored in the `seat` table and generated once, when the bus is created.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the bus.

        registration_number (String(16)):
            Vehicle registration number. Must be unique and non-null.

        name (String(32)):
            Display name or label for the bus.

        bus_type (Integer):
            Mapped from the `BusType` enum. Defaults to `BusType.AC`.

        source (TEXT), destination (TEXT):
            Route end points used by the search.

        departure_date (Date):
            Travel date of the bus.

        departure_time (Time), arrival_time (Time):
            Scheduled clock-times of the journey.

        booking_open_time (Time), booking_close_time (Time):
            Clock-time range in which bookings are shown as open.

        advance_booking_days (Integer):
            How many days ahead of today a booking may be made (0-90).

        total_seats (Integer):
            Number of seats. Always equal to the number of rows in `seat` for this bus.

        seat_arrangement (Integer):
            Mapped from the `SeatArrangement` enum.

        first_row_seats (Integer), last_row_seats (Integer):
            Seat counts of the first and last rows of the layout.

        fare (Numeric(10, 2)):
            Fare per seat in rupees.

        is_active (Boolean):
            Inactive buses are hidden from search and cannot be booked.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the bus record was initially created.
    """

    __tablename__ = "bus"

    id = Column(Integer, primary_key=True)
    registration_number = Column(String(16), nullable=False, unique=True)
    name = Column(String(32), nullable=False, index=True)
    bus_type = Column(Integer, nullable=False, default=BusType.AC)
    source = Column(TEXT, nullable=False, index=True)
    destination = Column(TEXT, nullable=False, index=True)
    departure_date = Column(Date, nullable=False, index=True)
    departure_time = Column(Time, nullable=False)
    arrival_time = Column(Time, nullable=False)
    booking_open_time = Column(Time, nullable=False)
    booking_close_time = Column(Time, nullable=False)
    advance_booking_days = Column(
        Integer, nullable=False, default=DEFAULT_ADVANCE_BOOKING_DAYS
    )
    # Seat layout
    total_seats = Column(Integer, nullable=False)
    seat_arrangement = Column(
        Integer, nullable=False, default=SeatArrangement.TWO_TWO
    )
    first_row_seats = Column(Integer, nullable=False)
    last_row_seats = Column(Integer, nullable=False)
    fare = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Seat(ORMbase):
    """
    One position of a bus seat layout.

    Columns:
        id (Integer):
            Primary key.

        bus_id (Integer):
            Foreign key referencing `bus.id`. Cascades on delete.

        label (String(8)):
            Stable seat label ("1".."total_seats"). Unique per bus.

        row (Integer), position (Integer):
            Row number (from 1) and position within that row (from 1).
    """

    __tablename__ = "seat"
    __table_args__ = (UniqueConstraint("bus_id", "label"),)

    id = Column(Integer, primary_key=True)
    bus_id = Column(
        Integer,
        ForeignKey("bus.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    label = Column(String(8), nullable=False)
    row = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False)


# ----------------------------------- Booking DB Models ---------------------------------------#
class Booking(ORMbase):
    """
    Represents a seat reservation made by (or on behalf of) a customer.

    Bookings are never deleted; they only move through the status machine
    PENDING -> CONFIRMED -> CANCELLED (PENDING -> CANCELLED is also allowed).

    Columns:
        id (Integer):
            Primary key. Unique identifier for the booking.

        bus_id (Integer):
            Foreign key referencing `bus.id`.
            Set to null if the bus is deleted after all its bookings were cancelled.

        account_id (Integer):
            Foreign key referencing `account.id`. The riding customer and owner.

        agent_id (Integer):
            Foreign key referencing `account.id` of the selling agent, if any.

        seats (JSON):
            Seat labels held by the booking. Unique within the booking.

        from_place (TEXT), to_place (TEXT):
            Boarding and dropping places.

        travel_date (Date):
            Date of travel. Together with `bus_id` it keys the seat inventory.

        departure_time (Time), arrival_time (Time):
            Copies of the bus clock-times at booking time.

        fare (Numeric(10, 2)):
            Total fare in rupees.

        status (Integer):
            Mapped from the `BookingStatus` enum. Defaults to `BookingStatus.PENDING`.

        cancelled_on (DateTime):
            When the booking was cancelled.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the booking was created.
    """

    __tablename__ = "booking"

    id = Column(Integer, primary_key=True)
    bus_id = Column(
        Integer,
        ForeignKey("bus.id", ondelete="SET NULL"),
        index=True,
    )
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    agent_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="SET NULL"),
        index=True,
    )
    seats = Column(JSONList, nullable=False)
    from_place = Column(TEXT, nullable=False)
    to_place = Column(TEXT, nullable=False)
    travel_date = Column(Date, nullable=False, index=True)
    departure_time = Column(Time)
    arrival_time = Column(Time)
    fare = Column(Numeric(10, 2), nullable=False)
    status = Column(Integer, nullable=False, default=BookingStatus.PENDING)
    cancelled_on = Column(DateTime(timezone=True))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Passenger(ORMbase):
    __tablename__ = "passenger"
    __table_args__ = (UniqueConstraint("booking_id", "seat"),)

    id = Column(Integer, primary_key=True)
    booking_id = Column(
        Integer,
        ForeignKey("booking.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seat = Column(String(8), nullable=False)
    name = Column(TEXT, nullable=False)
    age = Column(Integer)
    gender = Column(Integer, nullable=False, default=GenderType.OTHER)
    phone_number = Column(TEXT)
    email_id = Column(TEXT)


class BookedSeat(ORMbase):
    """
    The seat-state store of the inventory.

    A row exists if and only if the seat `label` of bus `bus_id` is held on
    `travel_date` by the PENDING or CONFIRMED booking `booking_id`. The unique
    constraint on (bus_id, travel_date, label) guarantees that non-cancelled
    bookings of the same bus and date never share a seat.

    Columns:
        id (Integer):
            Primary key.

        bus_id (Integer):
            Foreign key referencing `bus.id`. Cascades on delete.

        travel_date (Date):
            Travel date the seat is held for.

        label (String(8)):
            Seat label on the bus.

        booking_id (Integer):
            Foreign key referencing `booking.id`. The holder of the seat.

        created_on (DateTime):
            When the seat was reserved.
    """

    __tablename__ = "booked_seat"
    __table_args__ = (UniqueConstraint("bus_id", "travel_date", "label"),)

    id = Column(Integer, primary_key=True)
    bus_id = Column(
        Integer,
        ForeignKey("bus.id", ondelete="CASCADE"),
        nullable=False,
    )
    travel_date = Column(Date, nullable=False)
    label = Column(String(8), nullable=False)
    booking_id = Column(
        Integer,
        ForeignKey("booking.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
