import base64, json, requests
from logging import getLogger
from requests import Response

from busline.src.constants import (
    OPENOBSERVE_ENABLED,
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

    The event is serialized as JSON and posted with Basic authentication.
    Nothing is sent when `OPENOBSERVE_ENABLED` is off.

    Args:
        eventData (dict): A dictionary representing the event log to be sent.
            Example:
                {
                    "_method": "POST",
                    "_path": "/bookings",
                    "_app_id": 1,
                    "_account_id": 7
                }

    Returns:
        requests.Response | None: The OpenObserve response, None if delivery is disabled.
    """
    if not OPENOBSERVE_ENABLED:
        logger.debug("Event not delivered: %s", eventData)
        return None
    return requests.post(
        openobserve_url, headers=headers, data=json.dumps(eventData, default=str)
    )
