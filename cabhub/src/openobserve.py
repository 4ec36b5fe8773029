import base64, json, requests
from logging import getLogger
from requests import Response, RequestException

from cabhub.src.constants import (
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_USERNAME,
)

logger = getLogger("uvicorn.error")

# Prepare Basic Auth credentials
credentials = base64.b64encode(
    bytes(OPENOBSERVE_USERNAME + ":" + OPENOBSERVE_PASSWORD, "utf-8")
).decode("utf-8")

# Default headers for all requests
headers = {"Content-type": "application/json", "Authorization": "Basic " + credentials}

# Construct OpenObserve endpoint URL
openobserve_host = f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
openobserve_url = f"{openobserve_host}/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"


def logEvent(eventData: dict) -> Response | None:
    """
    Send an event log to the configured OpenObserve instance.

    The event data is serialized as JSON and posted with Basic authentication.
    An unreachable log store is reported on the uvicorn error logger, the
    business operation that produced the event has already been committed.

    Args:
        eventData (dict): A dictionary representing the event log to be sent.
            Example:
                {
                    "_method": "PATCH",
                    "_path": "/vendor/booking/accept",
                    "_app_id": 2,
                    "_vendor_id": 7
                }

    Returns:
        requests.Response | None: The HTTP response, None when the request failed.
    """
    try:
        return requests.post(
            openobserve_url, headers=headers, data=json.dumps(eventData, default=str)
        )
    except RequestException as e:
        logger.warning(f"OpenObserve logging failed: {e}")
        return None
