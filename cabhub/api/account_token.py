from datetime import datetime, timedelta, timezone
from secrets import token_hex
from typing import Optional
from fastapi import APIRouter, Depends, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from cabhub.api.bearer import bearer_company, bearer_vendor
from cabhub.src.constants import MAX_ACCOUNT_TOKENS, MAX_TOKEN_VALIDITY
from cabhub.src.db import Account, AccountToken, Company, Vendor, sessionMaker
from cabhub.src import argon2, exceptions, validators, getters
from cabhub.src.enums import AccountStatus, PlatformType, UserRole
from cabhub.src.loggers import logEvent
from cabhub.src.schemas import RequestInfo
from cabhub.src.urls import URL_ACCOUNT_TOKEN
from cabhub.src.functions import enumStr, fuseExceptionResponses

route_company = APIRouter()
route_vendor = APIRouter()


## Output Schema
class MaskedAccountTokenSchema(BaseModel):
    id: int
    account_id: int
    role: int
    company_id: Optional[int]
    vendor_id: Optional[int]
    expires_in: int
    expires_at: datetime
    platform_type: int
    client_details: Optional[str]
    updated_at: Optional[datetime]
    created_at: datetime


class AccountTokenSchema(MaskedAccountTokenSchema):
    access_token: str
    token_type: Optional[str] = "bearer"


## Input Forms
class CreateForm(BaseModel):
    username: str = Field(Form(max_length=32))
    password: str = Field(Form(max_length=32))
    platform_type: PlatformType = Field(
        Form(description=enumStr(PlatformType), default=PlatformType.OTHER)
    )
    client_details: str | None = Field(Form(max_length=1024, default=None))


## Function
def issueToken(
    session: Session, fParam: CreateForm, role: UserRole
) -> AccountToken:
    """
    Authenticate an account of `role` and issue a new access token.

    Keeps at most `MAX_ACCOUNT_TOKENS` tokens per account by deleting the
    oldest ones. The token carries the company or vendor owned by the account.
    """
    account = (
        session.query(Account)
        .filter(Account.username == fParam.username)
        .filter(Account.role == role)
        .first()
    )
    if account is None:
        raise exceptions.InvalidCredentials()
    if not argon2.checkPassword(fParam.password, account.password):
        raise exceptions.InvalidCredentials()
    if account.status != AccountStatus.ACTIVE:
        raise exceptions.InactiveAccount()

    if role == UserRole.COMPANY:
        owner = session.query(Company).filter(Company.account_id == account.id).first()
    else:
        owner = session.query(Vendor).filter(Vendor.account_id == account.id).first()
        if owner is not None and not owner.is_active:
            raise exceptions.InactiveAccount()
    if owner is None:
        raise exceptions.InactiveAccount()

    # Remove excess tokens from DB
    tokens = (
        session.query(AccountToken)
        .filter(AccountToken.account_id == account.id)
        .order_by(AccountToken.created_at.desc(), AccountToken.id.desc())
        .all()
    )
    for token in tokens[MAX_ACCOUNT_TOKENS - 1 :]:
        session.delete(token)
    session.flush()

    # Create a new token
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=MAX_TOKEN_VALIDITY)
    token = AccountToken(
        account_id=account.id,
        role=role,
        company_id=owner.id if role == UserRole.COMPANY else None,
        vendor_id=owner.id if role == UserRole.VENDOR else None,
        expires_in=MAX_TOKEN_VALIDITY,
        expires_at=expires_at,
        platform_type=fParam.platform_type,
        client_details=fParam.client_details,
    )
    session.add(token)
    session.commit()
    session.refresh(token)
    return token


def refreshToken(session: Session, token: AccountToken) -> AccountToken:
    token.expires_in += MAX_TOKEN_VALIDITY
    token.expires_at += timedelta(seconds=MAX_TOKEN_VALIDITY)
    token.access_token = token_hex(32)
    session.commit()
    session.refresh(token)
    return token


def revokeToken(session: Session, token: AccountToken, request_info: RequestInfo):
    session.delete(token)
    session.commit()
    logEvent(
        token, request_info, jsonable_encoder(token, exclude={"access_token"})
    )


## API endpoints [Company]
@route_company.post(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    response_model=AccountTokenSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InactiveAccount(), exceptions.InvalidCredentials()]
    ),
    description="""
    Issues a new access token for a company account after validating credentials.

    - Authenticates with username and password submitted as form data.
    - Only ACTIVE company accounts linked to a company receive a token.
    - Limits active tokens using MAX_ACCOUNT_TOKENS (token rotation).
    - Sets expiration with expires_in=MAX_TOKEN_VALIDITY (in seconds).
    - Logs the authentication event for audit tracking.
    """,
)
async def create_company_token(
    fParam: CreateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = issueToken(session, fParam, UserRole.COMPANY)
        logEvent(token, request_info, jsonable_encoder(token, exclude={"access_token"}))
        return token
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_company.patch(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    response_model=AccountTokenSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Refreshes the company access token used in the request.

    - Extends `expires_at` by `MAX_TOKEN_VALIDITY` seconds.
    - Rotates the `access_token` value, the old value stops working immediately.
    """,
)
async def refresh_company_token(
    bearer=Depends(bearer_company),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)
        token = refreshToken(session, token)
        logEvent(token, request_info, jsonable_encoder(token, exclude={"access_token"}))
        return token
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_company.delete(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Revokes the company access token used in the request (logout).
    """,
)
async def delete_company_token(
    bearer=Depends(bearer_company),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.companyToken(bearer.credentials, session)
        revokeToken(session, token, request_info)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Vendor]
@route_vendor.post(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    response_model=AccountTokenSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InactiveAccount(), exceptions.InvalidCredentials()]
    ),
    description="""
    Issues a new access token for a vendor account after validating credentials.

    - Authenticates with username and password submitted as form data.
    - Only ACTIVE accounts of active vendors receive a token.
    - Limits active tokens using MAX_ACCOUNT_TOKENS (token rotation).
    - Logs the authentication event for audit tracking.
    """,
)
async def create_vendor_token(
    fParam: CreateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = issueToken(session, fParam, UserRole.VENDOR)
        logEvent(token, request_info, jsonable_encoder(token, exclude={"access_token"}))
        return token
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.patch(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    response_model=AccountTokenSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Refreshes the vendor access token used in the request.

    - Extends `expires_at` by `MAX_TOKEN_VALIDITY` seconds.
    - Rotates the `access_token` value, the old value stops working immediately.
    """,
)
async def refresh_vendor_token(
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        token = refreshToken(session, token)
        logEvent(token, request_info, jsonable_encoder(token, exclude={"access_token"}))
        return token
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_vendor.delete(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Revokes the vendor access token used in the request (logout).
    """,
)
async def delete_vendor_token(
    bearer=Depends(bearer_vendor),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.vendorToken(bearer.credentials, session)
        revokeToken(session, token, request_info)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
