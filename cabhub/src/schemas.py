from typing import Optional
from pydantic import BaseModel

from cabhub.src.enums import UserRole


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    detail: str


class Actor(BaseModel):
    """
    Explicit acting context of a booking lifecycle call.

    `owner_id` is the company id for `UserRole.COMPANY` and the vendor id for
    `UserRole.VENDOR`. `account_id` is recorded as `changed_by` in history rows,
    it is None for system actors such as the visibility promoter.
    """

    role: UserRole
    owner_id: int
    account_id: Optional[int] = None
