from enum import IntEnum


class AppID(IntEnum):
    CORE = 1
    ADMIN = 2


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class AccountRole(IntEnum):
    CUSTOMER = 1
    AGENT = 2
    ADMIN = 3


class AccountStatus(IntEnum):
    ACTIVE = 1
    SUSPENDED = 2


class AgentStatus(IntEnum):
    PENDING = 1
    ACTIVE = 2
    SUSPENDED = 3


class GenderType(IntEnum):
    OTHER = 1
    FEMALE = 2
    MALE = 3
    TRANSGENDER = 4


class PlatformType(IntEnum):
    OTHER = 1
    WEB = 2
    NATIVE = 3
    SERVER = 4


class BusType(IntEnum):
    AC = 1
    NON_AC = 2
    DELUXE = 3
    SUPER_DELUXE = 4


class SeatArrangement(IntEnum):
    TWO_TWO = 1  # 2-2, four seats per row
    TWO_ONE = 2  # 2-1, three seats per row
    ONE_ONE = 3  # 1-1, two seats per row


class BookingStatus(IntEnum):
    PENDING = 1
    CONFIRMED = 2
    CANCELLED = 3


class BookingWindow(IntEnum):
    OPEN = 1
    CLOSED = 2
    INACTIVE = 3
