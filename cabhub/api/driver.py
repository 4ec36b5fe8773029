from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, EmailStr
from pydantic_extra_types.phone_numbers import PhoneNumber

from cabhub.api.bearer import bearer_vendor
from cabhub.src.db import Driver, sessionMaker
from cabhub.src import exceptions, notifier, validators, getters
from cabhub.src.loggers import logEvent
from cabhub.src.enums import ChangeOperation, OrderIn
from cabhub.src.urls import URL_DRIVER
from cabhub.src.functions import enumStr, fuseExceptionResponses, updateIfChanged

route_vendor = APIRouter()


## Output Schema
class DriverSchema(BaseModel):
    id: int
    vendor_id: int
    name: str
    phone: str
    email: Optional[str]
    address: Optional[str]
    license_number: str
    license_expiry: Optional[datetime]
    experience_years: Optional[int]
    rating: Optional[float]
    is_available: bool
    is_active: bool
    updated_at: Optional[datetime]
    created_at: datetime


## Input Forms
class CreateForm(BaseModel):
    name: str = Field(Form(max_length=64))
    phone: PhoneNumber = Field(
        Form(max_length=32, description="Phone number in RFC3966 format")
    )
    email: EmailStr | None = Field(
        Form(max_length=256, default=None, description="Email in RFC 5322 format")
    )
    address: str | None = Field(Form(max_length=512, default=None))
    license_number: str = Field(Form(max_length=32))
    license_expiry: datetime | None = Field(Form(default=None))
    experience_years: int | None = Field(Form(ge=0, le=80, default=None))


class UpdateForm(BaseModel):
    id: int = Field(Form())
    name: str | None = Field(Form(max_length=64, default=None))
    phone: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    email: EmailStr | None = Field(
        Form(max_length=256, default=None, description="Email in RFC 5322 format")
    )
    address: str | None = Field(Form(max_length=512, default=None))
    license_number: str | None = Field(Form(max_length=32, default=None))
    license_expiry: datetime | None = Field(Form(default=None))
    experience_years: int | None = Field(Form(ge=0, le=80, default=None))
    is_available: bool | None = Field(Form(default=None))
    is_active: bool | None = Field(Form(default=None))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    name = 2
    updated_at = 3
    created_at = 4


class QueryParams(BaseModel):
    name: str | None = Field(Query(default=None))
    is_available: bool | None = Field(Query(default=None))
    is_active: bool | None = Field(Query(default=None))
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
def updateDriver(driver: Driver, fParam: UpdateForm):
    updateIfChanged(
        driver,
        fParam,
        [
            Driver.name.key,
            Driver.phone.key,
            Driver.email.key,
            Driver.address.key,
            Driver.license_number.key,
            Driver.license_expiry.key,
            Driver.experience_years.key,
            Driver.is_available.key,
            Driver.is_active.key,
        ],
    )


def searchDriver(session: Session, vendorId: int, qParam: QueryParams) -> List[Driver]:
    query = session.query(Driver).filter(Driver.vendor_id == vendorId)

    # Filters
    if qParam.name is not None:
        query = query.filter(Driver.name.ilike(f"%{qParam.name}%"))
    if qParam.is_available is not None:
        query = query.filter(Driver.is_available == qParam.is_available)
    if qParam.is_active is not None:
        query = query.filter(Driver.is_active == qParam.is_active)
    # id based
    if qParam.id is not None:
        query = query.filter(Driver.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Driver.id.in_(qParam.id_list))

    # Ordering
    orderingAttribute = getattr(Driver, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Vendor]
@route_vendor.post(
    URL_DRIVER,
    tags=["Driver"],
    response_model=DriverSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Adds a driver to the fleet of the vendor of the caller.

    - New drivers are active and available.
    - Logs the driver creation activity with the associated token.
    """,
)
async def create_driver(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        driver = Driver(
            vendor_id=token.vendor_id,
            name=fParam.name,
            phone=fParam.phone,
            email=fParam.email,
            address=fParam.address,
            license_number=fParam.license_number,
            license_expiry=fParam.license_expiry,
            experience_years=fParam.experience_years,
        )
        session.add(driver)
        session.commit()
        session.refresh(driver)
        notifier.publish(Driver.__tablename__, ChangeOperation.INSERT, driver.id)

        driverData = jsonable_encoder(driver)
        logEvent(token, request_info, driverData)
        return driverData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_DRIVER,
    tags=["Driver"],
    response_model=DriverSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Updates a driver of the vendor of the caller.

    - `is_available` is managed by the vendor, it is not tied to booking state.
    - Setting `is_active` to false retires the driver.
    - Changes are saved only if the driver data has been modified.
    """,
)
async def update_driver(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)

        driver = (
            session.query(Driver)
            .filter(Driver.id == fParam.id)
            .filter(Driver.vendor_id == token.vendor_id)
            .first()
        )
        if driver is None:
            raise exceptions.InvalidIdentifier()

        updateDriver(driver, fParam)
        haveUpdates = session.is_modified(driver)
        if haveUpdates:
            session.commit()
            session.refresh(driver)
            notifier.publish(Driver.__tablename__, ChangeOperation.UPDATE, driver.id)

        driverData = jsonable_encoder(driver)
        if haveUpdates:
            logEvent(token, request_info, driverData)
        return driverData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.get(
    URL_DRIVER,
    tags=["Driver"],
    response_model=List[DriverSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the drivers of the vendor of the caller.
    """,
)
async def fetch_drivers(qParam: QueryParams = Depends(), bearer=Depends(bearer_vendor)):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        return searchDriver(session, token.vendor_id, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
