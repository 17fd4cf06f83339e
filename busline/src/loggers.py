from busline.src.db import AccountToken
from busline.src import openobserve
from busline.src.schemas import RequestInfo


def logEvent(token: AccountToken | None, requestInfo: RequestInfo, data: dict) -> None:
    """
    Log an event to OpenObserve with request and account context.

    Args:
        token (AccountToken | None): Authenticated account token, None for anonymous calls.
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.

    Notes:
        - Automatically attaches `_app_id`, `_method`, `_path` and `_account_id`.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
    }
    if token is not None:
        logDetails["_account_id"] = token.account_id

    logDetails.update(data)
    openobserve.logEvent(logDetails)
