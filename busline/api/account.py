from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, EmailStr
from pydantic_extra_types.phone_numbers import PhoneNumber
from sqlalchemy.orm.session import Session

from busline.api.bearer import bearer_account
from busline.src.constants import REGEX_PASSWORD, REGEX_USERNAME
from busline.src.db import Account, sessionMaker
from busline.src import argon2, exceptions, validators, getters
from busline.src.enums import AccountRole, AccountStatus, GenderType, OrderIn
from busline.src.loggers import logEvent
from busline.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from busline.src.urls import URL_ACCOUNT, URL_ACCOUNTS

route_core = APIRouter()
route_admin = APIRouter()


## Output Schema
class AccountSchema(BaseModel):
    id: int
    role: int
    username: str
    gender: int
    full_name: Optional[str]
    phone_number: Optional[str]
    email_id: Optional[str]
    status: int
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    username: str = Field(Form(pattern=REGEX_USERNAME, min_length=4, max_length=32))
    password: str = Field(Form(pattern=REGEX_PASSWORD, min_length=8, max_length=32))
    gender: GenderType = Field(
        Form(description=enumStr(GenderType), default=GenderType.OTHER)
    )
    full_name: str | None = Field(Form(max_length=32, default=None))
    phone_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    email_id: EmailStr | None = Field(
        Form(max_length=256, default=None, description="Email in RFC 5322 format")
    )


class UpdateForm(BaseModel):
    password: str | None = Field(
        Form(pattern=REGEX_PASSWORD, min_length=8, max_length=32, default=None)
    )
    gender: GenderType | None = Field(
        Form(description=enumStr(GenderType), default=None)
    )
    full_name: str | None = Field(Form(max_length=32, default=None))
    phone_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    email_id: EmailStr | None = Field(
        Form(max_length=256, default=None, description="Email in RFC 5322 format")
    )


class UpdateFormForAdmin(BaseModel):
    id: int = Field(Form())
    password: str | None = Field(
        Form(pattern=REGEX_PASSWORD, min_length=8, max_length=32, default=None)
    )
    status: AccountStatus | None = Field(
        Form(description=enumStr(AccountStatus), default=None)
    )


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    updated_on = 2
    created_on = 3


class QueryParams(BaseModel):
    username: str | None = Field(Query(default=None))
    role: AccountRole | None = Field(
        Query(default=None, description=enumStr(AccountRole))
    )
    full_name: str | None = Field(Query(default=None))
    phone_number: str | None = Field(Query(default=None))
    email_id: str | None = Field(Query(default=None))
    status: AccountStatus | None = Field(
        Query(default=None, description=enumStr(AccountStatus))
    )
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def changePassword(account: Account, password: str) -> None:
    """Store a new password. Tokens issued before the change stop working."""
    account.password = argon2.makePassword(password)
    account.credential_version += 1


def searchAccount(session: Session, qParam: QueryParams) -> List[Account]:
    query = session.query(Account)

    # Filters
    if qParam.username is not None:
        query = query.filter(Account.username.ilike(f"%{qParam.username}%"))
    if qParam.role is not None:
        query = query.filter(Account.role == qParam.role)
    if qParam.full_name is not None:
        query = query.filter(Account.full_name.ilike(f"%{qParam.full_name}%"))
    if qParam.phone_number is not None:
        query = query.filter(Account.phone_number.ilike(f"%{qParam.phone_number}%"))
    if qParam.email_id is not None:
        query = query.filter(Account.email_id.ilike(f"%{qParam.email_id}%"))
    if qParam.status is not None:
        query = query.filter(Account.status == qParam.status)
    # id based
    if qParam.id is not None:
        query = query.filter(Account.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Account.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Account.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Account.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Account, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Core]
@route_core.post(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=AccountSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses([exceptions.UniqueViolation("username")]),
    description="""
    Registers a new customer account.
    The password is hashed using Argon2 before storing.
    Duplicate usernames are not allowed.
    """,
)
async def create_account(
    fParam: CreateForm = Depends(),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        account = Account(
            role=AccountRole.CUSTOMER,
            username=fParam.username,
            password=argon2.makePassword(fParam.password),
            gender=fParam.gender,
            full_name=fParam.full_name,
            phone_number=fParam.phone_number,
            email_id=fParam.email_id,
        )
        session.add(account)
        session.commit()
        session.refresh(account)

        accountData = jsonable_encoder(account, exclude={"password"})
        logEvent(None, request_info, accountData)
        return accountData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_core.get(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=AccountSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="Returns the account of the current token.",
)
async def fetch_account(bearer=Depends(bearer_account)):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        return getters.account(token, session)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_core.patch(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=AccountSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Updates the profile of the current account.
    Changing the password signs the account out of every device, new tokens must be issued.
    Changes are saved only if the account data has been modified.
    """,
)
async def update_account(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)

        updateIfChanged(
            account,
            fParam,
            [
                Account.gender.key,
                Account.full_name.key,
                Account.phone_number.key,
                Account.email_id.key,
            ],
        )
        if fParam.password is not None:
            changePassword(account, fParam.password)

        haveUpdates = session.is_modified(account)
        if haveUpdates:
            session.commit()
            session.refresh(account)

        accountData = jsonable_encoder(account, exclude={"password"})
        if haveUpdates:
            logEvent(token, request_info, accountData)
        return accountData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.get(
    URL_ACCOUNTS,
    tags=["Account"],
    response_model=List[AccountSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Lists customer, agent and admin accounts.
    Supports filtering by role, status, username and contact details.
    Only admins can perform this operation.
    """,
)
async def fetch_accounts(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.role(getters.principal(token, session), AccountRole.ADMIN)

        return searchAccount(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_ACCOUNTS,
    tags=["Account"],
    response_model=AccountSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Suspends, reactivates or resets the password of an account.
    Suspended accounts can not log in and their tokens stop working.
    Only admins can perform this operation, admins can not suspend themselves.
    """,
)
async def update_account_by_admin(
    fParam: UpdateFormForAdmin = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.role(getters.principal(token, session), AccountRole.ADMIN)

        account = session.query(Account).filter(Account.id == fParam.id).first()
        if account is None:
            raise exceptions.InvalidIdentifier()
        if account.id == token.account_id and fParam.status == AccountStatus.SUSPENDED:
            raise exceptions.NoPermission()

        updateIfChanged(account, fParam, [Account.status.key])
        if fParam.password is not None:
            changePassword(account, fParam.password)

        haveUpdates = session.is_modified(account)
        if haveUpdates:
            session.commit()
            session.refresh(account)

        accountData = jsonable_encoder(account, exclude={"password"})
        if haveUpdates:
            logEvent(token, request_info, accountData)
        return accountData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
