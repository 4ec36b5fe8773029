from cabhub.src.db import AccountToken
from cabhub.src import openobserve
from cabhub.src.schemas import RequestInfo
from cabhub.src.enums import AppID


def logEvent(token: AccountToken, requestInfo: RequestInfo, data: dict) -> None:
    """
    Log an event to OpenObserve with request and user context.

    Args:
        token (AccountToken): Authenticated user token.
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.

    Notes:
        - Automatically attaches `_app_id`, `_method`, `_path` and `_account_id`.
        - The tenant key depends on the app:
            - Company → `_company_id`
            - Vendor  → `_vendor_id`
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
        "_account_id": token.account_id,
    }

    if requestInfo.app_id == AppID.COMPANY:
        logDetails["_company_id"] = token.company_id
    elif requestInfo.app_id == AppID.VENDOR:
        logDetails["_vendor_id"] = token.vendor_id

    logDetails.update(data)
    openobserve.logEvent(logDetails)
