"""
Validation and permission checks for CabHub API.

This module centralizes guard logic such as:
- Token validation for the company and vendor apps
- Required and numeric field checks of booking input

All functions raise appropriate exceptions from `cabhub.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from datetime import datetime, timezone
from sqlalchemy.orm.session import Session
from sqlalchemy import Column
from typing import Any

from cabhub.src.db import AccountToken
from cabhub.src.enums import UserRole
from cabhub.src import exceptions


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def _validateToken(access_token: str, role: UserRole, session: Session) -> AccountToken:
    """
    Resolve an unexpired access token issued for `role`.

    Args:
        access_token (str): The bearer token string provided by the client.
        role (UserRole): Role the calling app is reserved for.
        session (Session): Active SQLAlchemy session for DB lookup.

    Returns:
        AccountToken: The valid token object from the database.

    Raises:
        exceptions.InvalidToken: If the token is not found, has expired or
            was issued for another role.
    """
    current_time = datetime.now(timezone.utc)

    token = (
        session.query(AccountToken)
        .filter(
            AccountToken.access_token == access_token,
            AccountToken.role == role,
            AccountToken.expires_at > current_time,
        )
        .first()
    )

    if token is None:
        raise exceptions.InvalidToken()

    return token


def companyToken(access_token: str, session: Session) -> AccountToken:
    """Validate a company access token."""
    return _validateToken(access_token, UserRole.COMPANY, session)


def vendorToken(access_token: str, session: Session) -> AccountToken:
    """Validate a vendor access token."""
    return _validateToken(access_token, UserRole.VENDOR, session)


# ---------------------------------------------------------------------------
# Other validations
# ---------------------------------------------------------------------------
def required(value: Any, column: Column) -> Any:
    """Reject a missing value or a blank string for `column`."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise exceptions.MissingParameter(column)
    return value


def nonNegative(value: Any, column: Column) -> Any:
    """Reject a negative number for `column`, None passes."""
    if value is not None and value < 0:
        raise exceptions.InvalidValue(column)
    return value
