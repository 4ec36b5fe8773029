from secrets import token_hex
from sqlalchemy import (
    ARRAY,
    JSON,
    TEXT,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from cabhub.src.constants import (
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
)
from cabhub.src.enums import (
    AccountStatus,
    BookingStatus,
    BookingVisibility,
    PlatformType,
)


# Global DBMS variables
dbURL = f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
engine = create_engine(url=dbURL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()


# ----------------------------------- Identity DB Models --------------------------------------#
class Account(ORMbase):
    """
    Represents a login account of the platform. Every account belongs to
    exactly one role and is linked 1:1 to either a company or a vendor profile.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the account.

        username (String(32)):
            Unique username used for login.
            It should start with an alphabet (uppercase or lowercase).
            May include hyphen (-), period (.), at symbol (@), and underscore (_).
            Must not be null and unique.

        password (TEXT):
            Hashed password used for authentication.
            Plaintext should never be stored here. Argon2 is used for secure hashing.

        role (Integer):
            Mapped from the `UserRole` enum. Decides which API the account can use.

        status (Integer):
            Indicates the account status.
            Mapped from the `AccountStatus` enum. Defaults to `AccountStatus.ACTIVE`.

        updated_at (DateTime):
            Timestamp automatically updated whenever the account is modified.

        created_at (DateTime):
            Timestamp of when the account was created.
    """

    __tablename__ = "account"

    id = Column(Integer, primary_key=True)
    username = Column(String(32), nullable=False, unique=True)
    password = Column(TEXT, nullable=False)
    role = Column(Integer, nullable=False)
    status = Column(Integer, nullable=False, default=AccountStatus.ACTIVE)
    # Metadata
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class AccountToken(ORMbase):
    """
    Represents an access token issued to an account.

    The token carries the role and the owning entity (company or vendor) so that
    every request resolves its acting context without another profile lookup.

    Columns:
        id (Integer):
            Primary key. Unique identifier for this token record.

        account_id (Integer):
            Foreign key referencing `account.id`.
            Cascades on delete, if the account is removed, related tokens are deleted.

        role (Integer):
            Copy of the account role at issue time. Mapped from the `UserRole` enum.

        company_id (Integer):
            Owning company when the role is `UserRole.COMPANY`, otherwise null.

        vendor_id (Integer):
            Owning vendor when the role is `UserRole.VENDOR`, otherwise null.

        access_token (String):
            Unique, securely generated 64-character hexadecimal access token.

        expires_in (Integer):
            Token expiration time in seconds.

        expires_at (DateTime):
            Token expiration date and time.

        platform_type (Integer):
            Enum value indicating the client platform type.
            Defaults to `PlatformType.OTHER`.

        client_details (TEXT):
            Optional description of the client device or environment.
            Maximum 1024 characters long.
    """

    __tablename__ = "account_token"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(Integer, nullable=False)
    company_id = Column(Integer, ForeignKey("company.id", ondelete="CASCADE"))
    vendor_id = Column(Integer, ForeignKey("vendor.id", ondelete="CASCADE"))
    access_token = Column(
        String(64), unique=True, nullable=False, default=lambda: token_hex(32)
    )
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    # Device related details
    platform_type = Column(Integer, default=PlatformType.OTHER)
    client_details = Column(TEXT)
    # Metadata
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Tenant DB Models ----------------------------------------#
class Company(ORMbase):
    """
    Represents a corporate customer that raises cab bookings for its guests.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the company.

        account_id (Integer):
            Foreign key referencing the login account of the company. Unique (1:1).

        name (String(64)):
            Name of the company. Must not be null.

        contact_person, phone, email, address, billing_address (TEXT):
            Optional contact and billing details.
    """

    __tablename__ = "company"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    name = Column(String(64), nullable=False)
    # Contact details
    contact_person = Column(TEXT)
    phone = Column(TEXT)
    email = Column(TEXT)
    address = Column(TEXT)
    billing_address = Column(TEXT)
    # Metadata
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Vendor(ORMbase):
    """
    Represents a cab operator that fulfils bookings with its own fleet.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the vendor.

        account_id (Integer):
            Foreign key referencing the login account of the vendor. Unique (1:1).

        name (String(64)):
            Name of the vendor. Must not be null.

        license_number (TEXT):
            Optional trade or transport license number.

        service_areas (ARRAY[TEXT]):
            Cities or zones the vendor operates in.

        rating (Numeric):
            Mean rating of the vendor's reviewed bookings.
            Maintained only as a side effect of booking completion and review.

        total_bookings (Integer):
            Number of completed bookings.
            Maintained only as a side effect of booking completion.

        is_active (Boolean):
            Soft disable flag of the vendor.
    """

    __tablename__ = "vendor"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    name = Column(String(64), nullable=False)
    license_number = Column(TEXT)
    service_areas = Column(ARRAY(TEXT).with_variant(JSON(), "sqlite"))
    rating = Column(Numeric(3, 2))
    total_bookings = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    # Contact details
    contact_person = Column(TEXT)
    phone = Column(TEXT)
    email = Column(TEXT)
    address = Column(TEXT)
    # Metadata
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class CompanyVendorAssociation(ORMbase):
    """
    Represents a standing relationship between a company and a vendor,
    enabling a many-to-many relationship between `company` and `vendor`.

    A vendor with an active association sees the company's `ASSOCIATED`
    bookings. Setting `is_active` to false disables the association without
    deleting it.
    """

    __tablename__ = "company_vendor_association"
    __table_args__ = (UniqueConstraint("company_id", "vendor_id"),)

    id = Column(Integer, primary_key=True)
    company_id = Column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    vendor_id = Column(
        Integer,
        ForeignKey("vendor.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Fleet DB Models -----------------------------------------#
class Driver(ORMbase):
    """
    Represents a driver employed by a vendor.

    `is_available` is toggled by the vendor independently of booking state.
    `is_active` is the soft delete flag.
    """

    __tablename__ = "driver"

    id = Column(Integer, primary_key=True)
    vendor_id = Column(
        Integer,
        ForeignKey("vendor.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(64), nullable=False)
    phone = Column(TEXT, nullable=False)
    email = Column(TEXT)
    address = Column(TEXT)
    license_number = Column(String(32), nullable=False)
    license_expiry = Column(DateTime(timezone=True))
    experience_years = Column(Integer)
    rating = Column(Numeric(3, 2))
    is_available = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Vehicle(ORMbase):
    """
    Represents a vehicle in a vendor's fleet.

    Uniquely identified by a combination of its registration number and vendor ID.
    `is_available` and `is_active` behave as on `Driver`.
    """

    __tablename__ = "vehicle"
    __table_args__ = (UniqueConstraint("registration_number", "vendor_id"),)

    id = Column(Integer, primary_key=True)
    vendor_id = Column(
        Integer,
        ForeignKey("vendor.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    registration_number = Column(String(16), nullable=False, index=True)
    vehicle_type = Column(Integer, nullable=False)
    make = Column(String(32), nullable=False)
    model = Column(String(32), nullable=False)
    color = Column(String(32))
    year = Column(Integer)
    capacity = Column(Integer)
    insurance_expiry = Column(DateTime(timezone=True))
    permit_expiry = Column(DateTime(timezone=True))
    is_available = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Booking DB Models ---------------------------------------#
class Booking(ORMbase):
    """
    Represents a single trip requested by a company and fulfilled by a vendor.

    The lifecycle columns (`status`, `visibility`, `vendor_id`, `driver_id`,
    `vehicle_id` and the trip timestamps) are written only by
    `cabhub.src.lifecycle`, always through conditional updates.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the booking.

        booking_number (String(32)):
            Human readable reference, e.g. `BK-20260115-9F2A1C`. Unique.

        company_id (Integer):
            Foreign key referencing the company that owns the request. Required.

        vendor_id (Integer):
            Vendor that accepted the booking. Null until accepted.

        driver_id, vehicle_id (Integer):
            Fleet resources of `vendor_id` assigned to the trip. Null until assigned.

        reoffer_of (Integer):
            Rejected booking that this booking re-offers to the open market.

        origin_id (Integer):
            First booking of a re-offer chain. Null on the original request.

        rejected_by (Integer):
            Vendor that rejected the booking. Excluded from every later offer
            of the same chain.

        guest_name, guest_phone, guest_email (TEXT):
            The travelling guest. Name and phone are required.
            The phone is saved in RFC3966 format.

        pickup_location, dropoff_location (TEXT):
            Free text trip end points. Required.

        pickup_datetime (DateTime):
            Requested pickup time. Required, not in the past at creation.

        vehicle_type_requested (Integer):
            Optional `VehicleType` preference.

        estimated_distance (Numeric), estimated_duration (Integer),
        fare_amount (Numeric), special_instructions (TEXT):
            Optional trip estimates and notes.

        status (Integer):
            Mapped from the `BookingStatus` enum. Defaults to `BookingStatus.PENDING`.

        visibility (Integer):
            Mapped from the `BookingVisibility` enum.
            Defaults to `BookingVisibility.ASSOCIATED`.

        visibility_changed_at (DateTime):
            When the booking was opened to market.

        trip_started_at, trip_ended_at (DateTime):
            Set on the `ONGOING` and `COMPLETED` transitions.

        actual_fare (Numeric), payment_status (Integer), rating (Integer), feedback (TEXT):
            Post trip attributes, written only after completion.

        updated_at (DateTime):
            Timestamp of the last lifecycle or field change.

        created_at (DateTime):
            Timestamp of creation, used for newest first ordering.
    """

    __tablename__ = "booking"

    id = Column(Integer, primary_key=True)
    booking_number = Column(String(32), nullable=False, unique=True)
    # Parties
    company_id = Column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    vendor_id = Column(
        Integer, ForeignKey("vendor.id", ondelete="SET NULL"), index=True
    )
    driver_id = Column(Integer, ForeignKey("driver.id", ondelete="SET NULL"))
    vehicle_id = Column(Integer, ForeignKey("vehicle.id", ondelete="SET NULL"))
    reoffer_of = Column(Integer, ForeignKey("booking.id", ondelete="SET NULL"))
    origin_id = Column(
        Integer, ForeignKey("booking.id", ondelete="SET NULL"), index=True
    )
    rejected_by = Column(Integer, ForeignKey("vendor.id", ondelete="SET NULL"))
    # Trip details
    guest_name = Column(TEXT, nullable=False)
    guest_phone = Column(TEXT, nullable=False)
    guest_email = Column(TEXT)
    pickup_location = Column(TEXT, nullable=False)
    dropoff_location = Column(TEXT, nullable=False)
    pickup_datetime = Column(DateTime(timezone=True), nullable=False)
    vehicle_type_requested = Column(Integer)
    estimated_distance = Column(Numeric(10, 2))
    estimated_duration = Column(Integer)
    fare_amount = Column(Numeric(10, 2))
    special_instructions = Column(TEXT)
    # Lifecycle
    status = Column(Integer, nullable=False, default=BookingStatus.PENDING, index=True)
    visibility = Column(
        Integer, nullable=False, default=BookingVisibility.ASSOCIATED, index=True
    )
    visibility_changed_at = Column(DateTime(timezone=True))
    trip_started_at = Column(DateTime(timezone=True))
    trip_ended_at = Column(DateTime(timezone=True))
    # Post trip
    actual_fare = Column(Numeric(10, 2))
    payment_status = Column(Integer)
    rating = Column(Integer)
    feedback = Column(TEXT)
    # Metadata
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class BookingHistory(ORMbase):
    """
    Append-only audit trail of booking status changes.

    One row is inserted per successful status change, inside the same transaction
    as the change. Rows are never updated or deleted by the application.

    Columns:
        id (Integer):
            Primary key.

        booking_id (Integer):
            Foreign key referencing `booking.id`.

        status (Integer):
            The status the booking moved to. Mapped from `BookingStatus`.

        notes (TEXT):
            Optional free text, e.g. the cancellation reason.

        changed_by (Integer):
            Account that performed the change. Null for system changes.

        created_at (DateTime):
            When the change happened.
    """

    __tablename__ = "booking_history"

    id = Column(Integer, primary_key=True)
    booking_id = Column(
        Integer,
        ForeignKey("booking.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(Integer, nullable=False)
    notes = Column(TEXT)
    changed_by = Column(Integer, ForeignKey("account.id", ondelete="SET NULL"))
    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
