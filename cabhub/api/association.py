from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from cabhub.api.bearer import bearer_company, bearer_vendor
from cabhub.src.db import CompanyVendorAssociation, Vendor, sessionMaker
from cabhub.src import exceptions, notifier, validators, getters
from cabhub.src.loggers import logEvent
from cabhub.src.enums import ChangeOperation, OrderIn
from cabhub.src.urls import URL_ASSOCIATION
from cabhub.src.functions import enumStr, fuseExceptionResponses, updateIfChanged

route_company = APIRouter()
route_vendor = APIRouter()


## Output Schema
class AssociationSchema(BaseModel):
    id: int
    company_id: int
    vendor_id: int
    is_active: bool
    updated_at: Optional[datetime]
    created_at: datetime


## Input Forms
class CreateForm(BaseModel):
    vendor_id: int = Field(Form())


class UpdateForm(BaseModel):
    id: int = Field(Form())
    is_active: bool | None = Field(Form(default=None))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    updated_at = 2
    created_at = 3


class QueryParams(BaseModel):
    company_id: int | None = Field(Query(default=None))
    vendor_id: int | None = Field(Query(default=None))
    is_active: bool | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchAssociation(
    session: Session, qParam: QueryParams
) -> List[CompanyVendorAssociation]:
    query = session.query(CompanyVendorAssociation)

    # Filters
    if qParam.company_id is not None:
        query = query.filter(CompanyVendorAssociation.company_id == qParam.company_id)
    if qParam.vendor_id is not None:
        query = query.filter(CompanyVendorAssociation.vendor_id == qParam.vendor_id)
    if qParam.is_active is not None:
        query = query.filter(CompanyVendorAssociation.is_active == qParam.is_active)

    # Ordering
    orderingAttribute = getattr(CompanyVendorAssociation, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Company]
@route_company.post(
    URL_ASSOCIATION,
    tags=["Association"],
    response_model=AssociationSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.UnknownValue(CompanyVendorAssociation.vendor_id),
            exceptions.InactiveResource(Vendor),
        ]
    ),
    description="""
    Associates an active vendor with the company of the caller.

    - Associated vendors see the company's ASSOCIATED bookings.
    - A company vendor pair can be associated only once, use PATCH to re-enable it.
    - Logs the association activity with the associated token.
    """,
)
async def create_association(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_company),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)

        vendor = session.query(Vendor).filter(Vendor.id == fParam.vendor_id).first()
        if vendor is None:
            raise exceptions.UnknownValue(CompanyVendorAssociation.vendor_id)
        if not vendor.is_active:
            raise exceptions.InactiveResource(Vendor)

        association = CompanyVendorAssociation(
            company_id=token.company_id,
            vendor_id=vendor.id,
        )
        session.add(association)
        session.commit()
        session.refresh(association)
        notifier.publish(
            CompanyVendorAssociation.__tablename__, ChangeOperation.INSERT, association.id
        )

        associationData = jsonable_encoder(association)
        logEvent(token, request_info, associationData)
        return associationData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_company.patch(
    URL_ASSOCIATION,
    tags=["Association"],
    response_model=AssociationSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Enables or disables an association of the company.

    - A disabled association hides the company's ASSOCIATED bookings from the vendor.
    - Bookings already accepted by the vendor are not affected.
    """,
)
async def update_association(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_company),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)

        association = (
            session.query(CompanyVendorAssociation)
            .filter(CompanyVendorAssociation.id == fParam.id)
            .filter(CompanyVendorAssociation.company_id == token.company_id)
            .first()
        )
        if association is None:
            raise exceptions.InvalidIdentifier()

        updateIfChanged(association, fParam, [CompanyVendorAssociation.is_active.key])
        haveUpdates = session.is_modified(association)
        if haveUpdates:
            session.commit()
            session.refresh(association)
            notifier.publish(
                CompanyVendorAssociation.__tablename__,
                ChangeOperation.UPDATE,
                association.id,
            )

        associationData = jsonable_encoder(association)
        if haveUpdates:
            logEvent(token, request_info, associationData)
        return associationData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_company.get(
    URL_ASSOCIATION,
    tags=["Association"],
    response_model=List[AssociationSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the vendor associations of the company of the caller.
    """,
)
async def fetch_company_associations(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_company)
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)

        qParam.company_id = token.company_id
        return searchAssociation(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Vendor]
@route_vendor.get(
    URL_ASSOCIATION,
    tags=["Association"],
    response_model=List[AssociationSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetches the company associations of the vendor of the caller.
    """,
)
async def fetch_vendor_associations(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_vendor)
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)

        qParam.vendor_id = token.vendor_id
        return searchAssociation(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
