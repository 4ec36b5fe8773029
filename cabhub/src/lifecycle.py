"""
Booking lifecycle manager.

Owns the status and visibility of bookings and the rules for moving between
them. Every transition is one conditional UPDATE whose WHERE clause carries the
expected current status together with the ownership and eligibility
predicates, so concurrent callers can never both pass a precondition.
When the UPDATE matches no row the booking is read again only to pick the
exception to raise.

Status transitions:
    PENDING  → ACCEPTED | REJECTED | CANCELLED
    ACCEPTED → ONGOING | CANCELLED
    ONGOING  → COMPLETED | CANCELLED

Each successful status change appends exactly one `BookingHistory` row in the
same transaction. Visibility, assignment and review changes append none.
All functions take an explicit session and, where an actor matters, an
explicit `schemas.Actor`; nothing is read from global state.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import aliased
from sqlalchemy.orm.session import Session

from cabhub.src import exceptions, notifier, validators
from cabhub.src.constants import MAX_RATING, MIN_RATING, PICKUP_TIME_TOLERANCE
from cabhub.src.db import (
    Booking,
    BookingHistory,
    Company,
    CompanyVendorAssociation,
    Driver,
    Vehicle,
    Vendor,
)
from cabhub.src.enums import (
    BookingStatus,
    BookingVisibility,
    ChangeOperation,
    PaymentStatus,
    UserRole,
)
from cabhub.src.functions import bookingNumber, sourceStates, toUTC
from cabhub.src.schemas import Actor


BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: [
        BookingStatus.ACCEPTED,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    ],
    BookingStatus.ACCEPTED: [BookingStatus.ONGOING, BookingStatus.CANCELLED],
    BookingStatus.ONGOING: [BookingStatus.COMPLETED, BookingStatus.CANCELLED],
    BookingStatus.REJECTED: [],
    BookingStatus.COMPLETED: [],
    BookingStatus.CANCELLED: [],
}

# Trip fields copied when a rejected booking is offered to the open market
REOFFER_FIELDS = [
    Booking.company_id.key,
    Booking.guest_name.key,
    Booking.guest_phone.key,
    Booking.guest_email.key,
    Booking.pickup_location.key,
    Booking.dropoff_location.key,
    Booking.pickup_datetime.key,
    Booking.vehicle_type_requested.key,
    Booking.estimated_distance.key,
    Booking.estimated_duration.key,
    Booking.fare_amount.key,
    Booking.special_instructions.key,
]


class BookingInput(BaseModel):
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    pickup_location: Optional[str] = None
    dropoff_location: Optional[str] = None
    pickup_datetime: Optional[datetime] = None
    vehicle_type_requested: Optional[int] = None
    estimated_distance: Optional[float] = None
    estimated_duration: Optional[int] = None
    fare_amount: Optional[float] = None
    special_instructions: Optional[str] = None


class BookingFilter(BaseModel):
    history: bool = False
    status: Optional[BookingStatus] = None
    visibility: Optional[BookingVisibility] = None
    pickup_datetime_ge: Optional[datetime] = None
    pickup_datetime_le: Optional[datetime] = None
    search: Optional[str] = None
    offset: int = 0
    limit: int = 20


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------
def _now() -> datetime:
    return datetime.now(timezone.utc)


def _reload(session: Session, bookingId: int) -> Booking | None:
    return session.get(Booking, bookingId, populate_existing=True)


def _abort(session: Session, exception: exceptions.APIException):
    session.rollback()
    raise exception


def _associatedCompanies(vendorId: int):
    return select(CompanyVendorAssociation.company_id).where(
        CompanyVendorAssociation.vendor_id == vendorId,
        CompanyVendorAssociation.is_active == True,
    )


def _declinedBy(vendorId: int):
    """Whether the vendor rejected an earlier offer of the booking's chain."""
    previous = aliased(Booking)
    return (
        select(previous.id)
        .where(
            previous.rejected_by == vendorId,
            or_(
                previous.id == Booking.origin_id,
                previous.origin_id == Booking.origin_id,
            ),
        )
        .correlate(Booking)
        .exists()
    )


def _eligibleFor(vendorId: int):
    return and_(
        or_(
            Booking.visibility == BookingVisibility.OPEN_MARKET,
            Booking.company_id.in_(_associatedCompanies(vendorId)),
        ),
        ~_declinedBy(vendorId),
    )


def _ownedBy(actor: Actor):
    if actor.role == UserRole.COMPANY:
        return Booking.company_id == actor.owner_id
    return Booking.vendor_id == actor.owner_id


def _isOwner(booking: Booking, actor: Actor) -> bool:
    if actor.role == UserRole.COMPANY:
        return booking.company_id == actor.owner_id
    return booking.vendor_id == actor.owner_id


def isEligible(session: Session, booking: Booking, vendorId: int) -> bool:
    """Whether the vendor may see the booking in its open offers."""
    match = (
        session.query(Booking.id)
        .filter(Booking.id == booking.id)
        .filter(_eligibleFor(vendorId))
        .first()
    )
    return match is not None


def _transition(
    session: Session,
    bookingId: int,
    newStatus: BookingStatus,
    actor: Actor,
    conditions: list,
    values: dict | None = None,
    notes: str | None = None,
) -> bool:
    """
    Conditionally move a booking to `newStatus` and append its history row.

    The UPDATE matches only when the current status is one from which
    `newStatus` is reachable and every extra condition holds. Nothing is
    committed here.

    Returns:
        bool: True if the booking was updated.
    """
    now = _now()
    statement = (
        update(Booking)
        .where(
            Booking.id == bookingId,
            Booking.status.in_(sourceStates(BOOKING_TRANSITIONS, newStatus)),
            *conditions,
        )
        .values(status=newStatus, updated_at=now, **(values or {}))
        .execution_options(synchronize_session=False)
    )
    result = session.execute(statement)
    if result.rowcount != 1:
        return False
    session.add(
        BookingHistory(
            booking_id=bookingId,
            status=newStatus,
            notes=notes,
            changed_by=actor.account_id,
            created_at=now,
        )
    )
    return True


def _commitAndPublish(session: Session, bookingId: int) -> Booking:
    session.commit()
    booking = _reload(session, bookingId)
    notifier.publish(Booking.__tablename__, ChangeOperation.UPDATE, bookingId)
    return booking


def _requireRole(actor: Actor, role: UserRole):
    if actor.role != role:
        raise exceptions.NoPermission()


# ---------------------------------------------------------------------------
# Creation and listing
# ---------------------------------------------------------------------------
def createBooking(session: Session, actor: Actor, data: BookingInput) -> Booking:
    """
    Create a booking for the acting company.

    The booking starts as PENDING and ASSOCIATED. No history row is written.

    Raises:
        exceptions.MissingParameter: A required trip field is missing or blank.
        exceptions.InvalidValue: Pickup lies in the past or a number is negative.
        exceptions.UnknownValue: The company does not exist.
    """
    _requireRole(actor, UserRole.COMPANY)
    for column in [
        Booking.guest_name,
        Booking.guest_phone,
        Booking.pickup_location,
        Booking.dropoff_location,
        Booking.pickup_datetime,
    ]:
        validators.required(getattr(data, column.key), column)

    now = _now()
    pickupDatetime = toUTC(data.pickup_datetime)
    if pickupDatetime < now - timedelta(seconds=PICKUP_TIME_TOLERANCE):
        raise exceptions.InvalidValue(Booking.pickup_datetime)
    for column in [
        Booking.estimated_distance,
        Booking.estimated_duration,
        Booking.fare_amount,
    ]:
        validators.nonNegative(getattr(data, column.key), column)

    company = session.get(Company, actor.owner_id)
    if company is None:
        raise exceptions.UnknownValue(Booking.company_id)

    booking = Booking(
        booking_number=bookingNumber(now),
        company_id=company.id,
        guest_name=data.guest_name.strip(),
        guest_phone=data.guest_phone,
        guest_email=data.guest_email,
        pickup_location=data.pickup_location.strip(),
        dropoff_location=data.dropoff_location.strip(),
        pickup_datetime=pickupDatetime,
        vehicle_type_requested=data.vehicle_type_requested,
        estimated_distance=data.estimated_distance,
        estimated_duration=data.estimated_duration,
        fare_amount=data.fare_amount,
        special_instructions=data.special_instructions,
        status=BookingStatus.PENDING,
        visibility=BookingVisibility.ASSOCIATED,
        created_at=now,
        updated_at=now,
    )
    session.add(booking)
    session.commit()
    session.refresh(booking)
    notifier.publish(Booking.__tablename__, ChangeOperation.INSERT, booking.id)
    return booking


def listBookings(session: Session, actor: Actor, qParam: BookingFilter) -> List[Booking]:
    """
    List the bookings visible to the actor, newest first.

    - Company: its own bookings in every status.
    - Vendor, default view: PENDING bookings that are OPEN_MARKET or belong to
      a company with an active association to the vendor.
    - Vendor, history view: bookings held by the vendor in every status.
    """
    query = session.query(Booking)

    if actor.role == UserRole.COMPANY:
        query = query.filter(Booking.company_id == actor.owner_id)
    elif qParam.history:
        query = query.filter(Booking.vendor_id == actor.owner_id)
    else:
        query = query.filter(Booking.status == BookingStatus.PENDING)
        query = query.filter(_eligibleFor(actor.owner_id))

    # Filters
    if qParam.status is not None:
        query = query.filter(Booking.status == qParam.status)
    if qParam.visibility is not None:
        query = query.filter(Booking.visibility == qParam.visibility)
    if qParam.pickup_datetime_ge is not None:
        query = query.filter(
            Booking.pickup_datetime >= toUTC(qParam.pickup_datetime_ge)
        )
    if qParam.pickup_datetime_le is not None:
        query = query.filter(
            Booking.pickup_datetime <= toUTC(qParam.pickup_datetime_le)
        )
    if qParam.search:
        pattern = f"%{qParam.search}%"
        query = query.filter(
            or_(
                Booking.booking_number.ilike(pattern),
                Booking.guest_name.ilike(pattern),
                Booking.pickup_location.ilike(pattern),
                Booking.dropoff_location.ilike(pattern),
            )
        )

    # Ordering
    query = query.order_by(Booking.created_at.desc(), Booking.id.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def bookingHistory(session: Session, actor: Actor, bookingId: int) -> List[BookingHistory]:
    """Return the history rows of a booking owned or held by the actor, oldest first."""
    booking = session.query(Booking).filter(Booking.id == bookingId).first()
    if booking is None or not _isOwner(booking, actor):
        raise exceptions.InvalidIdentifier()
    return (
        session.query(BookingHistory)
        .filter(BookingHistory.booking_id == bookingId)
        .order_by(BookingHistory.created_at.asc(), BookingHistory.id.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# Vendor decisions
# ---------------------------------------------------------------------------
def acceptBooking(session: Session, bookingId: int, actor: Actor) -> Booking:
    """
    Claim a PENDING booking for the acting vendor.

    At most one vendor can win; the loser gets `AlreadyAssigned`. Accepting a
    booking the same vendor already accepted returns it unchanged.

    Raises:
        exceptions.InvalidIdentifier: Unknown booking, or not offered to this vendor.
        exceptions.AlreadyAssigned: Another vendor holds the booking.
        exceptions.InvalidStateTransition: The booking is no longer PENDING.
    """
    _requireRole(actor, UserRole.VENDOR)
    vendorId = actor.owner_id
    vendor = session.get(Vendor, vendorId)
    if vendor is None or not vendor.is_active:
        raise exceptions.InactiveResource(Vendor)

    accepted = _transition(
        session,
        bookingId,
        BookingStatus.ACCEPTED,
        actor,
        [Booking.vendor_id.is_(None), _eligibleFor(vendorId)],
        {Booking.vendor_id.key: vendorId},
    )
    if accepted:
        return _commitAndPublish(session, bookingId)

    booking = _reload(session, bookingId)
    if booking is None:
        _abort(session, exceptions.InvalidIdentifier())
    if booking.vendor_id == vendorId:
        if booking.status == BookingStatus.ACCEPTED:
            session.commit()
            return booking
        _abort(session, exceptions.InvalidStateTransition(Booking.status))
    if not isEligible(session, booking, vendorId):
        _abort(session, exceptions.InvalidIdentifier())
    if booking.vendor_id is not None:
        _abort(session, exceptions.AlreadyAssigned())
    _abort(session, exceptions.InvalidStateTransition(Booking.status))


def rejectBooking(session: Session, bookingId: int, actor: Actor) -> Booking:
    """
    Decline a PENDING booking offered to the acting vendor.

    A rejection ends the offer for the rejecting vendor only. The booking
    becomes REJECTED without a vendor and, in the same transaction, a copy is
    offered to the open market (`reoffer_of` points back to the rejected
    booking). Vendors that rejected any offer of the chain never see it again.
    """
    _requireRole(actor, UserRole.VENDOR)
    vendorId = actor.owner_id

    rejected = _transition(
        session,
        bookingId,
        BookingStatus.REJECTED,
        actor,
        [Booking.vendor_id.is_(None), _eligibleFor(vendorId)],
        {Booking.rejected_by.key: vendorId},
    )
    if not rejected:
        booking = _reload(session, bookingId)
        if booking is None or not isEligible(session, booking, vendorId):
            _abort(session, exceptions.InvalidIdentifier())
        _abort(session, exceptions.InvalidStateTransition(Booking.status))

    booking = _reload(session, bookingId)
    now = _now()
    reoffer = Booking(
        booking_number=bookingNumber(now),
        reoffer_of=booking.id,
        origin_id=booking.origin_id or booking.id,
        status=BookingStatus.PENDING,
        visibility=BookingVisibility.OPEN_MARKET,
        visibility_changed_at=now,
        created_at=now,
        updated_at=now,
        **{field: getattr(booking, field) for field in REOFFER_FIELDS},
    )
    session.add(reoffer)

    booking = _commitAndPublish(session, bookingId)
    notifier.publish(Booking.__tablename__, ChangeOperation.INSERT, reoffer.id)
    return booking


# ---------------------------------------------------------------------------
# Fulfilment
# ---------------------------------------------------------------------------
def assignDriverAndVehicle(
    session: Session, bookingId: int, actor: Actor, driverId: int, vehicleId: int
) -> Booking:
    """
    Assign a driver and a vehicle of the acting vendor to an ACCEPTED booking.

    Both resources must belong to the vendor, be active and be available.
    Availability flags are not changed here. No history row is written.

    Raises:
        exceptions.InvalidIdentifier: Unknown booking or not held by this vendor.
        exceptions.InvalidStateTransition: The booking is not ACCEPTED.
        exceptions.UnknownValue: Driver or vehicle does not exist.
        exceptions.ResourceUnavailable: Driver or vehicle is not usable.
    """
    _requireRole(actor, UserRole.VENDOR)
    vendorId = actor.owner_id
    driverUsable = (
        select(Driver.id)
        .where(
            Driver.id == driverId,
            Driver.vendor_id == vendorId,
            Driver.is_available == True,
            Driver.is_active == True,
        )
        .exists()
    )
    vehicleUsable = (
        select(Vehicle.id)
        .where(
            Vehicle.id == vehicleId,
            Vehicle.vendor_id == vendorId,
            Vehicle.is_available == True,
            Vehicle.is_active == True,
        )
        .exists()
    )
    statement = (
        update(Booking)
        .where(
            Booking.id == bookingId,
            Booking.vendor_id == vendorId,
            Booking.status == BookingStatus.ACCEPTED,
            driverUsable,
            vehicleUsable,
        )
        .values(driver_id=driverId, vehicle_id=vehicleId, updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    result = session.execute(statement)
    if result.rowcount == 1:
        return _commitAndPublish(session, bookingId)

    booking = _reload(session, bookingId)
    if booking is None or booking.vendor_id != vendorId:
        _abort(session, exceptions.InvalidIdentifier())
    if booking.status != BookingStatus.ACCEPTED:
        _abort(session, exceptions.InvalidStateTransition(Booking.status))
    if session.get(Driver, driverId) is None:
        _abort(session, exceptions.UnknownValue(Booking.driver_id))
    if session.get(Vehicle, vehicleId) is None:
        _abort(session, exceptions.UnknownValue(Booking.vehicle_id))
    driverOk = session.execute(select(driverUsable)).scalar()
    if not driverOk:
        _abort(session, exceptions.ResourceUnavailable(Driver))
    _abort(session, exceptions.ResourceUnavailable(Vehicle))


def startTrip(session: Session, bookingId: int, actor: Actor) -> Booking:
    """
    Move an ACCEPTED booking held by the acting vendor to ONGOING.

    Raises:
        exceptions.PreconditionFailed: Driver or vehicle is not assigned yet.
    """
    _requireRole(actor, UserRole.VENDOR)
    started = _transition(
        session,
        bookingId,
        BookingStatus.ONGOING,
        actor,
        [
            Booking.vendor_id == actor.owner_id,
            Booking.driver_id.is_not(None),
            Booking.vehicle_id.is_not(None),
        ],
        {Booking.trip_started_at.key: _now()},
    )
    if started:
        return _commitAndPublish(session, bookingId)

    booking = _reload(session, bookingId)
    if booking is None or booking.vendor_id != actor.owner_id:
        _abort(session, exceptions.InvalidIdentifier())
    if booking.status != BookingStatus.ACCEPTED:
        _abort(session, exceptions.InvalidStateTransition(Booking.status))
    if booking.driver_id is None:
        _abort(session, exceptions.PreconditionFailed(Booking.driver_id))
    _abort(session, exceptions.PreconditionFailed(Booking.vehicle_id))


def endTrip(
    session: Session,
    bookingId: int,
    actor: Actor,
    actualFare: Optional[float] = None,
) -> Booking:
    """
    Complete an ONGOING booking held by the acting vendor.

    Records `actual_fare` when given, marks the payment as pending and
    refreshes the vendor aggregates in the same transaction.
    """
    _requireRole(actor, UserRole.VENDOR)
    validators.nonNegative(actualFare, Booking.actual_fare)
    values = {
        Booking.trip_ended_at.key: _now(),
        Booking.payment_status.key: PaymentStatus.PENDING,
    }
    if actualFare is not None:
        values[Booking.actual_fare.key] = Decimal(str(actualFare))

    completed = _transition(
        session,
        bookingId,
        BookingStatus.COMPLETED,
        actor,
        [Booking.vendor_id == actor.owner_id],
        values,
    )
    if not completed:
        booking = _reload(session, bookingId)
        if booking is None or booking.vendor_id != actor.owner_id:
            _abort(session, exceptions.InvalidIdentifier())
        _abort(session, exceptions.InvalidStateTransition(Booking.status))

    updateVendorAggregates(session, actor.owner_id)
    return _commitAndPublish(session, bookingId)


def cancelBooking(
    session: Session, bookingId: int, actor: Actor, reason: Optional[str] = None
) -> Booking:
    """
    Cancel a PENDING, ACCEPTED or ONGOING booking.

    A company may cancel its own bookings, a vendor the bookings it holds.
    The reason is kept as the history note.
    """
    cancelled = _transition(
        session,
        bookingId,
        BookingStatus.CANCELLED,
        actor,
        [_ownedBy(actor)],
        notes=reason,
    )
    if cancelled:
        return _commitAndPublish(session, bookingId)

    booking = _reload(session, bookingId)
    if booking is None or not _isOwner(booking, actor):
        _abort(session, exceptions.InvalidIdentifier())
    _abort(session, exceptions.InvalidStateTransition(Booking.status))


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------
def openToMarket(session: Session, bookingId: int, actor: Actor) -> Booking:
    """Let the owning company open its PENDING, ASSOCIATED booking to every vendor."""
    _requireRole(actor, UserRole.COMPANY)
    now = _now()
    statement = (
        update(Booking)
        .where(
            Booking.id == bookingId,
            Booking.company_id == actor.owner_id,
            Booking.status == BookingStatus.PENDING,
            Booking.visibility == BookingVisibility.ASSOCIATED,
        )
        .values(
            visibility=BookingVisibility.OPEN_MARKET,
            visibility_changed_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    result = session.execute(statement)
    if result.rowcount == 1:
        return _commitAndPublish(session, bookingId)

    booking = _reload(session, bookingId)
    if booking is None or booking.company_id != actor.owner_id:
        _abort(session, exceptions.InvalidIdentifier())
    if booking.status != BookingStatus.PENDING:
        _abort(session, exceptions.InvalidStateTransition(Booking.status))
    _abort(session, exceptions.InvalidStateTransition(Booking.visibility))


def promoteStaleBookings(session: Session, cutoff: datetime) -> List[int]:
    """
    Open every PENDING, ASSOCIATED booking created at or before `cutoff` to the market.

    Returns:
        List[int]: IDs of the promoted bookings.
    """
    now = _now()
    statement = (
        update(Booking)
        .where(
            Booking.status == BookingStatus.PENDING,
            Booking.visibility == BookingVisibility.ASSOCIATED,
            Booking.created_at <= toUTC(cutoff),
        )
        .values(
            visibility=BookingVisibility.OPEN_MARKET,
            visibility_changed_at=now,
            updated_at=now,
        )
        .returning(Booking.id)
        .execution_options(synchronize_session=False)
    )
    promoted = list(session.execute(statement).scalars())
    session.commit()
    for bookingId in promoted:
        notifier.publish(Booking.__tablename__, ChangeOperation.UPDATE, bookingId)
    return promoted


# ---------------------------------------------------------------------------
# Post trip
# ---------------------------------------------------------------------------
def reviewBooking(
    session: Session,
    bookingId: int,
    actor: Actor,
    rating: int,
    feedback: Optional[str] = None,
) -> Booking:
    """Record the company's single rating of a COMPLETED booking."""
    _requireRole(actor, UserRole.COMPANY)
    if rating is None or not MIN_RATING <= rating <= MAX_RATING:
        raise exceptions.InvalidValue(Booking.rating)

    statement = (
        update(Booking)
        .where(
            Booking.id == bookingId,
            Booking.company_id == actor.owner_id,
            Booking.status == BookingStatus.COMPLETED,
            Booking.rating.is_(None),
        )
        .values(rating=rating, feedback=feedback, updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    result = session.execute(statement)
    if result.rowcount != 1:
        booking = _reload(session, bookingId)
        if booking is None or booking.company_id != actor.owner_id:
            _abort(session, exceptions.InvalidIdentifier())
        if booking.status != BookingStatus.COMPLETED:
            _abort(session, exceptions.InvalidStateTransition(Booking.status))
        _abort(session, exceptions.InvalidStateTransition(Booking.rating))

    booking = _reload(session, bookingId)
    if booking.vendor_id is not None:
        updateVendorAggregates(session, booking.vendor_id)
    return _commitAndPublish(session, bookingId)


def updateVendorAggregates(session: Session, vendorId: int) -> None:
    """
    Recompute `total_bookings` and `rating` of a vendor from its bookings.

    `total_bookings` counts COMPLETED bookings, `rating` is the mean of the
    rated ones and is left untouched while none is rated. Not committed here.
    """
    total = session.execute(
        select(func.count(Booking.id)).where(
            Booking.vendor_id == vendorId,
            Booking.status == BookingStatus.COMPLETED,
        )
    ).scalar()
    average = session.execute(
        select(func.avg(Booking.rating)).where(
            Booking.vendor_id == vendorId,
            Booking.rating.is_not(None),
        )
    ).scalar()

    values = {Vendor.total_bookings.key: total}
    if average is not None:
        values[Vendor.rating.key] = round(Decimal(str(average)), 2)
    session.execute(
        update(Vendor)
        .where(Vendor.id == vendorId)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
