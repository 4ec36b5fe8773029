from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from cabhub.api.bearer import bearer_vendor
from cabhub.src.db import Vehicle, sessionMaker
from cabhub.src import exceptions, notifier, validators, getters
from cabhub.src.loggers import logEvent
from cabhub.src.enums import ChangeOperation, OrderIn, VehicleType
from cabhub.src.constants import REGEX_REGISTRATION_NUMBER
from cabhub.src.urls import URL_VEHICLE
from cabhub.src.functions import enumStr, fuseExceptionResponses, updateIfChanged

route_vendor = APIRouter()


## Output Schema
class VehicleSchema(BaseModel):
    id: int
    vendor_id: int
    registration_number: str
    vehicle_type: int
    make: str
    model: str
    color: Optional[str]
    year: Optional[int]
    capacity: Optional[int]
    insurance_expiry: Optional[datetime]
    permit_expiry: Optional[datetime]
    is_available: bool
    is_active: bool
    updated_at: Optional[datetime]
    created_at: datetime


## Input Forms
class CreateForm(BaseModel):
    registration_number: str = Field(
        Form(pattern=REGEX_REGISTRATION_NUMBER, max_length=16)
    )
    vehicle_type: VehicleType = Field(Form(description=enumStr(VehicleType)))
    make: str = Field(Form(max_length=32))
    model: str = Field(Form(max_length=32))
    color: str | None = Field(Form(max_length=32, default=None))
    year: int | None = Field(Form(ge=1950, le=2100, default=None))
    capacity: int | None = Field(Form(ge=1, le=60, default=None))
    insurance_expiry: datetime | None = Field(Form(default=None))
    permit_expiry: datetime | None = Field(Form(default=None))


class UpdateForm(BaseModel):
    id: int = Field(Form())
    vehicle_type: VehicleType | None = Field(
        Form(description=enumStr(VehicleType), default=None)
    )
    color: str | None = Field(Form(max_length=32, default=None))
    capacity: int | None = Field(Form(ge=1, le=60, default=None))
    insurance_expiry: datetime | None = Field(Form(default=None))
    permit_expiry: datetime | None = Field(Form(default=None))
    is_available: bool | None = Field(Form(default=None))
    is_active: bool | None = Field(Form(default=None))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    registration_number = 2
    updated_at = 3
    created_at = 4


class QueryParams(BaseModel):
    registration_number: str | None = Field(Query(default=None))
    vehicle_type: VehicleType | None = Field(
        Query(default=None, description=enumStr(VehicleType))
    )
    is_available: bool | None = Field(Query(default=None))
    is_active: bool | None = Field(Query(default=None))
    # capacity based
    capacity_ge: int | None = Field(Query(default=None))
    capacity_le: int | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def updateVehicle(vehicle: Vehicle, fParam: UpdateForm):
    updateIfChanged(
        vehicle,
        fParam,
        [
            Vehicle.vehicle_type.key,
            Vehicle.color.key,
            Vehicle.capacity.key,
            Vehicle.insurance_expiry.key,
            Vehicle.permit_expiry.key,
            Vehicle.is_available.key,
            Vehicle.is_active.key,
        ],
    )


def searchVehicle(
    session: Session, vendorId: int, qParam: QueryParams
) -> List[Vehicle]:
    query = session.query(Vehicle).filter(Vehicle.vendor_id == vendorId)

    # Filters
    if qParam.registration_number is not None:
        query = query.filter(
            Vehicle.registration_number.ilike(f"%{qParam.registration_number}%")
        )
    if qParam.vehicle_type is not None:
        query = query.filter(Vehicle.vehicle_type == qParam.vehicle_type)
    if qParam.is_available is not None:
        query = query.filter(Vehicle.is_available == qParam.is_available)
    if qParam.is_active is not None:
        query = query.filter(Vehicle.is_active == qParam.is_active)
    # capacity based
    if qParam.capacity_ge is not None:
        query = query.filter(Vehicle.capacity >= qParam.capacity_ge)
    if qParam.capacity_le is not None:
        query = query.filter(Vehicle.capacity <= qParam.capacity_le)

    # Ordering
    orderingAttribute = getattr(Vehicle, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Vendor]
@route_vendor.post(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Adds a vehicle to the fleet of the vendor of the caller.

    - The registration number is unique within the vendor's fleet.
    - New vehicles are active and available.
    """,
)
async def create_vehicle(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        vehicle = Vehicle(
            vendor_id=token.vendor_id,
            registration_number=fParam.registration_number,
            vehicle_type=fParam.vehicle_type,
            make=fParam.make,
            model=fParam.model,
            color=fParam.color,
            year=fParam.year,
            capacity=fParam.capacity,
            insurance_expiry=fParam.insurance_expiry,
            permit_expiry=fParam.permit_expiry,
        )
        session.add(vehicle)
        session.commit()
        session.refresh(vehicle)
        notifier.publish(Vehicle.__tablename__, ChangeOperation.INSERT, vehicle.id)

        vehicleData = jsonable_encoder(vehicle)
        logEvent(token, request_info, vehicleData)
        return vehicleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Updates a vehicle of the vendor of the caller.

    - `is_available` is managed by the vendor, it is not tied to booking state.
    - Changes are saved only if the vehicle data has been modified.
    """,
)
async def update_vehicle(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)

        vehicle = (
            session.query(Vehicle)
            .filter(Vehicle.id == fParam.id)
            .filter(Vehicle.vendor_id == token.vendor_id)
            .first()
        )
        if vehicle is None:
            raise exceptions.InvalidIdentifier()

        updateVehicle(vehicle, fParam)
        haveUpdates = session.is_modified(vehicle)
        if haveUpdates:
            session.commit()
            session.refresh(vehicle)
            notifier.publish(Vehicle.__tablename__, ChangeOperation.UPDATE, vehicle.id)

        vehicleData = jsonable_encoder(vehicle)
        if haveUpdates:
            logEvent(token, request_info, vehicleData)
        return vehicleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.get(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=List[VehicleSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the vehicles of the vendor of the caller.
    """,
)
async def fetch_vehicles(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_vendor)
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        return searchVehicle(session, token.vendor_id, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
