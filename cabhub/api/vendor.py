from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, EmailStr
from pydantic_extra_types.phone_numbers import PhoneNumber

from cabhub.api.bearer import bearer_company, bearer_vendor
from cabhub.src.db import Vendor, sessionMaker
from cabhub.src import exceptions, notifier, validators, getters
from cabhub.src.loggers import logEvent
from cabhub.src.enums import ChangeOperation, OrderIn
from cabhub.src.urls import URL_VENDOR, URL_VENDOR_PROFILE
from cabhub.src.functions import enumStr, fuseExceptionResponses, updateIfChanged

route_company = APIRouter()
route_vendor = APIRouter()


## Output Schema
class VendorSchema(BaseModel):
    id: int
    name: str
    license_number: Optional[str]
    service_areas: Optional[List[str]]
    rating: Optional[float]
    total_bookings: int
    is_active: bool
    contact_person: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    address: Optional[str]
    updated_at: Optional[datetime]
    created_at: datetime


## Input Forms
class UpdateForm(BaseModel):
    license_number: str | None = Field(Form(max_length=64, default=None))
    service_areas: List[str] | None = Field(Form(default=None))
    contact_person: str | None = Field(Form(max_length=32, default=None))
    phone: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    email: EmailStr | None = Field(
        Form(max_length=256, default=None, description="Email in RFC 5322 format")
    )
    address: str | None = Field(Form(max_length=512, default=None))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    rating = 2
    total_bookings = 3
    created_at = 4


class QueryParams(BaseModel):
    name: str | None = Field(Query(default=None))
    is_active: bool | None = Field(Query(default=True))
    # rating based
    rating_ge: float | None = Field(Query(default=None))
    rating_le: float | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchVendor(session: Session, qParam: QueryParams) -> List[Vendor]:
    query = session.query(Vendor)

    # Filters
    if qParam.name is not None:
        query = query.filter(Vendor.name.ilike(f"%{qParam.name}%"))
    if qParam.is_active is not None:
        query = query.filter(Vendor.is_active == qParam.is_active)
    # rating based
    if qParam.rating_ge is not None:
        query = query.filter(Vendor.rating >= qParam.rating_ge)
    if qParam.rating_le is not None:
        query = query.filter(Vendor.rating <= qParam.rating_le)

    # Ordering
    orderingAttribute = getattr(Vendor, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Company]
@route_company.get(
    URL_VENDOR,
    tags=["Vendor"],
    response_model=List[VendorSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches vendors a company can associate with.

    - Lists active vendors by default.
    - Supports filtering by name and rating range, ordering and pagination.
    """,
)
async def fetch_vendors(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_company)
):
    try:
        session = sessionMaker()
        validators.companyToken(bearer.credentials, session)
        return searchVendor(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Vendor]
@route_vendor.get(
    URL_VENDOR_PROFILE,
    tags=["Vendor"],
    response_model=VendorSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the profile of the vendor of the caller, including its
    `rating` and completed `total_bookings`.
    """,
)
async def fetch_vendor(bearer=Depends(bearer_vendor)):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        return session.query(Vendor).filter(Vendor.id == token.vendor_id).first()
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_VENDOR_PROFILE,
    tags=["Vendor"],
    response_model=VendorSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Updates the contact details and service areas of the vendor of the caller.

    - `rating` and `total_bookings` are maintained by the booking lifecycle only.
    - Changes are saved only if the vendor data has been modified.
    """,
)
async def update_vendor(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        vendor = session.query(Vendor).filter(Vendor.id == token.vendor_id).first()

        updateIfChanged(
            vendor,
            fParam,
            [
                Vendor.license_number.key,
                Vendor.service_areas.key,
                Vendor.contact_person.key,
                Vendor.phone.key,
                Vendor.email.key,
                Vendor.address.key,
            ],
        )
        haveUpdates = session.is_modified(vendor)
        if haveUpdates:
            session.commit()
            session.refresh(vendor)
            notifier.publish(Vendor.__tablename__, ChangeOperation.UPDATE, vendor.id)

        vendorData = jsonable_encoder(vendor)
        if haveUpdates:
            logEvent(token, request_info, vendorData)
        return vendorData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
