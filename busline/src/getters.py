from fastapi import Request
from sqlalchemy.orm.session import Session

from busline.src import schemas
from busline.src.db import Account, AccountToken


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


def account(token: AccountToken, session: Session) -> Account | None:
    """Fetch the account a token was issued to."""
    return session.query(Account).filter(Account.id == token.account_id).first()


def principal(token: AccountToken, session: Session) -> schemas.Principal:
    """Resolve the verified principal `{account_id, role}` of a token."""
    owner = account(token, session)
    return schemas.Principal(account_id=owner.id, role=owner.role)
