from datetime import datetime
from secrets import token_hex
from typing import List, Dict, Any

from cabhub.src import schemas
from cabhub.src.exceptions import APIException
from cabhub.src.constants import BOOKING_NUMBER_PREFIX, TMZ_PRIMARY


def fuseExceptionResponses(exceptions: List[APIException]) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation by fusing multiple APIException instances.

    Args:
        exceptions (List[APIException]): List of instantiated exceptions.

    Returns:
        Dict[int, dict]: A dictionary of OpenAPI response specs grouped by status code.
    """
    responses = {}

    for exception in exceptions:
        status_code = exception.status_code
        example_key = type(exception).__name__
        example_value = {
            "summary": str(exception.headers),
            "value": {"detail": exception.detail},
        }

        if status_code not in responses:
            responses[status_code] = {
                "model": schemas.ErrorResponse,
                "content": {
                    "application/json": {"examples": {example_key: example_value}}
                },
            }
        else:
            responses[status_code]["content"]["application/json"]["examples"][
                example_key
            ] = example_value

    return responses


def enumStr(enumClass) -> str:
    """
    Convert an Enum class into a comma-separated string of its members.

    Each enum member is formatted as "<NAME>: <VALUE>".

    Example:
        >>> enumStr(BookingVisibility)
        'ASSOCIATED: 1, OPEN_MARKET: 2'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def sourceStates(transitions: dict[Any, list[Any]], new_state: Any) -> List[Any]:
    """Return every state from which `new_state` can be reached in one step."""
    return [old for old, targets in transitions.items() if new_state in targets]


def updateIfChanged(targetObj, sourceObj, fields: List[str]) -> None:
    """
    Update attributes on a target object from a source object
    only if the values differ and the new value is not None.

    Designed for use with SQLAlchemy models, where `fields` are typically
    provided as `Model.field.key`.

    Example:
        >>> updateIfChanged(driver, fParam, [Driver.name.key, Driver.phone.key])
        # driver will be updated where values differ; unchanged fields are skipped silently
    """
    for field in fields:
        new_value = getattr(sourceObj, field, None)
        if new_value is not None:
            old_value = getattr(targetObj, field)
            if old_value != new_value:
                setattr(targetObj, field, new_value)


def toUTC(value: datetime) -> datetime:
    """Attach UTC to a naive datetime, convert an aware one to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=TMZ_PRIMARY)
    return value.astimezone(TMZ_PRIMARY)


def bookingNumber(now: datetime) -> str:
    """
    Generate a human readable booking reference.

    Format: `<prefix>-<YYYYMMDD>-<6 uppercase hex>`, e.g. `BK-20260115-9F2A1C`.
    Uniqueness is enforced by the `booking.booking_number` constraint.
    """
    return f"{BOOKING_NUMBER_PREFIX}-{now:%Y%m%d}-{token_hex(3).upper()}"
