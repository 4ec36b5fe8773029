from enum import IntEnum


class AppID(IntEnum):
    COMPANY = 1
    VENDOR = 2


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class AccountStatus(IntEnum):
    ACTIVE = 1
    SUSPENDED = 2


class UserRole(IntEnum):
    COMPANY = 1
    VENDOR = 2


class PlatformType(IntEnum):
    OTHER = 1
    WEB = 2
    NATIVE = 3
    SERVER = 4


class BookingStatus(IntEnum):
    PENDING = 1
    ACCEPTED = 2
    REJECTED = 3
    ONGOING = 4
    COMPLETED = 5
    CANCELLED = 6


class BookingVisibility(IntEnum):
    ASSOCIATED = 1
    OPEN_MARKET = 2


class VehicleType(IntEnum):
    SEDAN = 1
    HATCHBACK = 2
    SUV = 3
    LUXURY = 4


class PaymentStatus(IntEnum):
    PENDING = 1
    PAID = 2
    FAILED = 3


class ChangeOperation(IntEnum):
    INSERT = 1
    UPDATE = 2
    DELETE = 3
