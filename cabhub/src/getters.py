from fastapi import Request

from cabhub.src import schemas
from cabhub.src.db import AccountToken
from cabhub.src.enums import UserRole


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
            - app_id (int): Application ID from app state.
    """
    return schemas.RequestInfo(
        method=request.method,
        path=request.url.path,
        app_id=request.scope["app"].state.id,
    )


def actor(token: AccountToken) -> schemas.Actor:
    """Build the acting context of a lifecycle call from a validated token."""
    role = UserRole(token.role)
    ownerId = token.company_id if role == UserRole.COMPANY else token.vendor_id
    return schemas.Actor(role=role, owner_id=ownerId, account_id=token.account_id)
