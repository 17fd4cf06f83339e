from datetime import datetime, timedelta, timezone
from secrets import token_hex
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from sqlalchemy.orm.session import Session

from busline.api.bearer import bearer_account
from busline.src.constants import MAX_ACCOUNT_TOKENS, MAX_TOKEN_VALIDITY
from busline.src.db import Account, AccountToken, sessionMaker
from busline.src import argon2, exceptions, validators, getters
from busline.src.enums import AccountRole, AccountStatus, OrderIn, PlatformType
from busline.src.loggers import logEvent
from busline.src.functions import enumStr, fuseExceptionResponses
from busline.src.urls import URL_ACCOUNT_TOKEN

route_account = APIRouter()


## Output Schema
class SessionSchema(BaseModel):
    id: int
    account_id: int
    platform_type: int
    client_details: Optional[str]
    expires_at: datetime
    is_current: bool
    created_on: datetime


class AccountTokenSchema(BaseModel):
    id: int
    account_id: int
    role: int
    access_token: str
    token_type: Optional[str] = "bearer"
    expires_in: int
    expires_at: datetime
    platform_type: int
    client_details: Optional[str]
    created_on: datetime


## Input Forms
class LoginForm(BaseModel):
    username: str = Field(Form(max_length=32))
    password: str = Field(Form(max_length=32))
    platform_type: PlatformType = Field(
        Form(description=enumStr(PlatformType), default=PlatformType.OTHER)
    )
    client_details: str | None = Field(Form(max_length=1024, default=None))


class LogoutForm(BaseModel):
    id: int | None = Field(Form(default=None, description="Session to end"))
    everywhere: bool = Field(
        Form(default=False, description="End every session of the account")
    )


## Query Parameters
class QueryParams(BaseModel):
    account_id: int | None = Field(
        Query(default=None, description="Admins only, other accounts")
    )
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def rotateSessions(session: Session, account: Account) -> None:
    """Keep room for one more token by dropping the oldest sessions."""
    tokens = (
        session.query(AccountToken)
        .filter(AccountToken.account_id == account.id)
        .order_by(AccountToken.created_on.desc(), AccountToken.id.desc())
        .all()
    )
    for stale in tokens[MAX_ACCOUNT_TOKENS - 1 :]:
        session.delete(stale)
    session.flush()


def tokenData(token: AccountToken, account: Account) -> dict:
    data = jsonable_encoder(token)
    data["role"] = account.role
    return data


def sessionData(token: AccountToken, current: AccountToken) -> dict:
    data = jsonable_encoder(token, exclude={"access_token"})
    data["is_current"] = token.id == current.id
    return data


## API endpoints
@route_account.post(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    response_model=AccountTokenSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InactiveAccount(), exceptions.InvalidCredentials()]
    ),
    description="""
    Logs in a customer, agent or admin and issues an access token carrying the account role.
    The token is bound to the current password, a password change signs it out.
    At most MAX_ACCOUNT_TOKENS sessions are kept per account, the oldest is ended first.
    """,
)
async def login(
    fParam: LoginForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        account = (
            session.query(Account).filter(Account.username == fParam.username).first()
        )
        if account is None:
            raise exceptions.InvalidCredentials()
        if not argon2.checkPassword(fParam.password, account.password):
            raise exceptions.InvalidCredentials()
        if account.status != AccountStatus.ACTIVE:
            raise exceptions.InactiveAccount()
        if argon2.needsRehash(account.password):
            account.password = argon2.makePassword(fParam.password)

        rotateSessions(session, account)
        token = AccountToken(
            account_id=account.id,
            credential_version=account.credential_version,
            expires_in=MAX_TOKEN_VALIDITY,
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=MAX_TOKEN_VALIDITY),
            platform_type=fParam.platform_type,
            client_details=fParam.client_details,
        )
        session.add(token)
        session.commit()
        session.refresh(token)

        logEvent(token, request_info, jsonable_encoder(token, exclude={"access_token"}))
        return tokenData(token, account)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_account.patch(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    response_model=AccountTokenSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Refreshes the token used in this request.
    A new access_token value is issued and the old value stops working immediately.
    The session is extended by MAX_TOKEN_VALIDITY seconds.
    """,
)
async def refresh_token(
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)

        token.expires_in += MAX_TOKEN_VALIDITY
        token.expires_at += timedelta(seconds=MAX_TOKEN_VALIDITY)
        token.access_token = token_hex(32)
        session.commit()
        session.refresh(token)

        logEvent(token, request_info, jsonable_encoder(token, exclude={"access_token"}))
        return tokenData(token, getters.account(token, session))
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_account.delete(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Logs out.
    Without parameters the session of this request is ended.
    With `id` another session of the same account is ended, admins may end any session.
    With `everywhere` every session of the account is ended.
    Unknown session ids are ignored.
    """,
)
async def logout(
    fParam: LogoutForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        principal = getters.principal(token, session)

        if fParam.everywhere:
            ended = (
                session.query(AccountToken)
                .filter(AccountToken.account_id == token.account_id)
                .all()
            )
        elif fParam.id is None:
            ended = [token]
        else:
            ended = (
                session.query(AccountToken).filter(AccountToken.id == fParam.id).all()
            )
            for other in ended:
                isOwn = other.account_id == token.account_id
                if not isOwn and principal.role != AccountRole.ADMIN:
                    raise exceptions.NoPermission()

        for ending in ended:
            session.delete(ending)
        session.commit()
        if ended:
            logEvent(
                token,
                request_info,
                {"ended_sessions": [ending.id for ending in ended]},
            )
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_account.get(
    URL_ACCOUNT_TOKEN,
    tags=["Token"],
    response_model=List[SessionSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Lists the active sessions of the account, the access_token value is never returned.
    The session of this request is flagged with is_current.
    Admins may list the sessions of another account with account_id.
    """,
)
async def fetch_sessions(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_account)
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)

        accountId = token.account_id
        if qParam.account_id is not None and qParam.account_id != accountId:
            validators.role(getters.principal(token, session), AccountRole.ADMIN)
            accountId = qParam.account_id

        query = session.query(AccountToken).filter(
            AccountToken.account_id == accountId,
            AccountToken.expires_at > datetime.now(timezone.utc),
        )
        if qParam.order_in == OrderIn.ASC:
            query = query.order_by(AccountToken.id.asc())
        else:
            query = query.order_by(AccountToken.id.desc())
        query = query.offset(qParam.offset).limit(qParam.limit)
        return [sessionData(other, token) for other in query.all()]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
