from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, EmailStr
from pydantic_extra_types.phone_numbers import PhoneNumber

from cabhub.api.bearer import bearer_company, bearer_vendor
from cabhub.src.db import Booking, Driver, Vehicle, sessionMaker
from cabhub.src import exceptions, validators, getters, lifecycle
from cabhub.src.loggers import logEvent
from cabhub.src.enums import BookingStatus, BookingVisibility, VehicleType
from cabhub.src.constants import MAX_RATING, MIN_RATING
from cabhub.src.urls import (
    URL_BOOKING,
    URL_BOOKING_ACCEPT,
    URL_BOOKING_ASSIGN,
    URL_BOOKING_CANCEL,
    URL_BOOKING_END,
    URL_BOOKING_HISTORY,
    URL_BOOKING_OPEN,
    URL_BOOKING_REJECT,
    URL_BOOKING_REVIEW,
    URL_BOOKING_START,
)
from cabhub.src.functions import enumStr, fuseExceptionResponses

route_company = APIRouter()
route_vendor = APIRouter()


## Output Schema
class BookingSchema(BaseModel):
    id: int
    booking_number: str
    company_id: int
    vendor_id: Optional[int]
    driver_id: Optional[int]
    vehicle_id: Optional[int]
    reoffer_of: Optional[int]
    origin_id: Optional[int]
    rejected_by: Optional[int]
    guest_name: str
    guest_phone: str
    guest_email: Optional[str]
    pickup_location: str
    dropoff_location: str
    pickup_datetime: datetime
    vehicle_type_requested: Optional[int]
    estimated_distance: Optional[float]
    estimated_duration: Optional[int]
    fare_amount: Optional[float]
    special_instructions: Optional[str]
    status: int
    visibility: int
    visibility_changed_at: Optional[datetime]
    trip_started_at: Optional[datetime]
    trip_ended_at: Optional[datetime]
    actual_fare: Optional[float]
    payment_status: Optional[int]
    rating: Optional[int]
    feedback: Optional[str]
    updated_at: Optional[datetime]
    created_at: datetime


class BookingHistorySchema(BaseModel):
    id: int
    booking_id: int
    status: int
    notes: Optional[str]
    changed_by: Optional[int]
    created_at: datetime


## Input Forms
class CreateForm(BaseModel):
    guest_name: str = Field(Form(max_length=64))
    guest_phone: PhoneNumber = Field(
        Form(max_length=32, description="Phone number in RFC3966 format")
    )
    guest_email: EmailStr | None = Field(
        Form(max_length=256, default=None, description="Email in RFC 5322 format")
    )
    pickup_location: str = Field(Form(max_length=512))
    dropoff_location: str = Field(Form(max_length=512))
    pickup_datetime: datetime = Field(
        Form(description="Naive values are taken as UTC")
    )
    vehicle_type_requested: VehicleType | None = Field(
        Form(description=enumStr(VehicleType), default=None)
    )
    estimated_distance: float | None = Field(Form(ge=0, default=None))
    estimated_duration: int | None = Field(Form(ge=0, default=None))
    fare_amount: float | None = Field(Form(ge=0, default=None))
    special_instructions: str | None = Field(Form(max_length=1024, default=None))


class ActionForm(BaseModel):
    id: int = Field(Form())


class CancelForm(ActionForm):
    reason: str | None = Field(Form(max_length=512, default=None))


class AssignForm(ActionForm):
    driver_id: int = Field(Form())
    vehicle_id: int = Field(Form())


class EndForm(ActionForm):
    actual_fare: float | None = Field(Form(ge=0, default=None))


class ReviewForm(ActionForm):
    rating: int = Field(Form(ge=MIN_RATING, le=MAX_RATING))
    feedback: str | None = Field(Form(max_length=1024, default=None))


## Query Parameters
class QueryParams(BaseModel):
    # filters
    status: BookingStatus | None = Field(
        Query(default=None, description=enumStr(BookingStatus))
    )
    visibility: BookingVisibility | None = Field(
        Query(default=None, description=enumStr(BookingVisibility))
    )
    search: str | None = Field(
        Query(default=None, description="Matches booking number, guest or locations")
    )
    # pickup_datetime based
    pickup_datetime_ge: datetime | None = Field(Query(default=None))
    pickup_datetime_le: datetime | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class QueryParamsForVE(QueryParams):
    history: bool = Field(
        Query(
            default=False,
            description="False lists open offers, true lists bookings held by the vendor",
        )
    )


class HistoryQueryParams(BaseModel):
    id: int = Field(Query())


## API endpoints [Company]
@route_company.post(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.MissingParameter(Booking.guest_name),
            exceptions.InvalidValue(Booking.pickup_datetime),
        ]
    ),
    description="""
    Creates a new booking for the company of the caller.

    - The booking starts in PENDING status with ASSOCIATED visibility.
    - Only vendors with an active association see it until it is opened to market.
    - `pickup_datetime` must not lie in the past, naive values are taken as UTC.
    - A unique `booking_number` is generated.
    - Logs the booking creation activity with the associated token.
    """,
)
async def create_booking(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_company),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)
        bookingInput = lifecycle.BookingInput(**fParam.model_dump())
        booking = lifecycle.createBooking(session, getters.actor(token), bookingInput)

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_company.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=List[BookingSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the bookings of the company of the caller, newest first.

    - Supports filtering by status, visibility, pickup time range and a text search.
    - Supports pagination with `offset` and `limit`.
    """,
)
async def fetch_company_bookings(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_company)
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)

        bookingFilter = lifecycle.BookingFilter(**qParam.model_dump())
        return lifecycle.listBookings(session, getters.actor(token), bookingFilter)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_company.patch(
    URL_BOOKING_CANCEL,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.status),
        ]
    ),
    description="""
    Cancels a PENDING, ACCEPTED or ONGOING booking of the company.

    - The optional `reason` is stored in the booking history.
    - Logs the cancellation with the associated token.
    """,
)
async def cancel_company_booking(
    fParam: CancelForm = Depends(),
    bearer=Depends(bearer_company),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)
        booking = lifecycle.cancelBooking(
            session, fParam.id, getters.actor(token), fParam.reason
        )

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_company.patch(
    URL_BOOKING_OPEN,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.visibility),
        ]
    ),
    description="""
    Opens a PENDING, ASSOCIATED booking of the company to every vendor.

    - The change of visibility does not add a history entry.
    """,
)
async def open_booking(
    fParam: ActionForm = Depends(),
    bearer=Depends(bearer_company),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)
        booking = lifecycle.openToMarket(session, fParam.id, getters.actor(token))

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_company.patch(
    URL_BOOKING_REVIEW,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.rating),
        ]
    ),
    description="""
    Rates a COMPLETED booking of the company.

    - A booking can be rated once, from MIN_RATING to MAX_RATING.
    - The vendor rating is recomputed from its rated bookings.
    """,
)
async def review_booking(
    fParam: ReviewForm = Depends(),
    bearer=Depends(bearer_company),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)
        booking = lifecycle.reviewBooking(
            session, fParam.id, getters.actor(token), fParam.rating, fParam.feedback
        )

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_company.get(
    URL_BOOKING_HISTORY,
    tags=["Booking"],
    response_model=List[BookingHistorySchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches the status history of a company booking, oldest first.
    """,
)
async def fetch_company_booking_history(
    qParam: HistoryQueryParams = Depends(), bearer=Depends(bearer_company)
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)
        return lifecycle.bookingHistory(session, getters.actor(token), qParam.id)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Vendor]
@route_vendor.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=List[BookingSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches bookings for the vendor of the caller, newest first.

    - By default lists PENDING bookings offered to the vendor: OPEN_MARKET
      bookings and ASSOCIATED bookings of companies with an active association.
    - With `history=true` lists the bookings held by the vendor in any status.
    - Supports filtering, text search and pagination.
    """,
)
async def fetch_vendor_bookings(
    qParam: QueryParamsForVE = Depends(), bearer=Depends(bearer_vendor)
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)

        bookingFilter = lifecycle.BookingFilter(**qParam.model_dump())
        return lifecycle.listBookings(session, getters.actor(token), bookingFilter)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_BOOKING_ACCEPT,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.AlreadyAssigned(),
            exceptions.InvalidStateTransition(Booking.status),
        ]
    ),
    description="""
    Accepts a PENDING booking offered to the vendor.

    - Only one vendor can accept a booking, later callers get AlreadyAssigned.
    - Accepting a booking already accepted by the same vendor returns it unchanged.
    - Logs the acceptance with the associated token.
    """,
)
async def accept_booking(
    fParam: ActionForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        booking = lifecycle.acceptBooking(session, fParam.id, getters.actor(token))

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_BOOKING_REJECT,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.status),
        ]
    ),
    description="""
    Rejects a PENDING booking offered to the vendor.

    - The rejection ends the offer for this vendor only. The booking is
      re-offered to the open market as a new PENDING booking referencing it
      through `reoffer_of`.
    - A vendor never sees a re-offer of a booking it rejected.
    """,
)
async def reject_booking(
    fParam: ActionForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        booking = lifecycle.rejectBooking(session, fParam.id, getters.actor(token))

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_BOOKING_ASSIGN,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.status),
            exceptions.UnknownValue(Booking.driver_id),
            exceptions.UnknownValue(Booking.vehicle_id),
            exceptions.ResourceUnavailable(Driver),
            exceptions.ResourceUnavailable(Vehicle),
        ]
    ),
    description="""
    Assigns a driver and a vehicle to an ACCEPTED booking held by the vendor.

    - Both must belong to the vendor and be active and available.
    - Re-assigning before the trip starts replaces the previous assignment.
    """,
)
async def assign_booking(
    fParam: AssignForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        booking = lifecycle.assignDriverAndVehicle(
            session,
            fParam.id,
            getters.actor(token),
            fParam.driver_id,
            fParam.vehicle_id,
        )

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_BOOKING_START,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.status),
            exceptions.PreconditionFailed(Booking.driver_id),
        ]
    ),
    description="""
    Starts the trip of an ACCEPTED booking held by the vendor.

    - A driver and a vehicle must be assigned first.
    """,
)
async def start_trip(
    fParam: ActionForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        booking = lifecycle.startTrip(session, fParam.id, getters.actor(token))

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_BOOKING_END,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.status),
        ]
    ),
    description="""
    Completes the trip of an ONGOING booking held by the vendor.

    - Records the optional `actual_fare` and marks the payment as pending.
    - Updates the completed booking count of the vendor.
    """,
)
async def end_trip(
    fParam: EndForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        booking = lifecycle.endTrip(
            session, fParam.id, getters.actor(token), fParam.actual_fare
        )

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_BOOKING_CANCEL,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.status),
        ]
    ),
    description="""
    Cancels an ACCEPTED or ONGOING booking held by the vendor.

    - The optional `reason` is stored in the booking history.
    """,
)
async def cancel_vendor_booking(
    fParam: CancelForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        booking = lifecycle.cancelBooking(
            session, fParam.id, getters.actor(token), fParam.reason
        )

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.get(
    URL_BOOKING_HISTORY,
    tags=["Booking"],
    response_model=List[BookingHistorySchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches the status history of a booking held by the vendor, oldest first.
    """,
)
async def fetch_vendor_booking_history(
    qParam: HistoryQueryParams = Depends(), bearer=Depends(bearer_vendor)
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        return lifecycle.bookingHistory(session, getters.actor(token), qParam.id)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
