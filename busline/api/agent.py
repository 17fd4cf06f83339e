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
from busline.src.db import Account, Agent, sessionMaker
from busline.src import argon2, exceptions, validators, getters
from busline.src.enums import AccountRole, AgentStatus, OrderIn
from busline.src.loggers import logEvent
from busline.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from busline.src.urls import URL_AGENT

route_admin = APIRouter()


## Output Schema
class AgentSchema(BaseModel):
    id: int
    account_id: int
    username: str
    agency_name: str
    owner_name: str
    window_number: str
    address: Optional[str]
    commission_rate: float
    phone_number: Optional[str]
    email_id: Optional[str]
    status: int
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    username: str = Field(Form(pattern=REGEX_USERNAME, min_length=4, max_length=32))
    password: str = Field(Form(pattern=REGEX_PASSWORD, min_length=8, max_length=32))
    agency_name: str = Field(Form(min_length=1, max_length=64))
    owner_name: str = Field(Form(min_length=1, max_length=64))
    window_number: str = Field(Form(min_length=1, max_length=16))
    address: str | None = Field(Form(max_length=512, default=None))
    commission_rate: float = Field(Form(ge=0, le=100, default=0))
    phone_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    email_id: EmailStr | None = Field(
        Form(max_length=256, default=None, description="Email in RFC 5322 format")
    )
    status: AgentStatus = Field(
        Form(description=enumStr(AgentStatus), default=AgentStatus.PENDING)
    )


class UpdateForm(BaseModel):
    id: int = Field(Form())
    agency_name: str | None = Field(Form(min_length=1, max_length=64, default=None))
    owner_name: str | None = Field(Form(min_length=1, max_length=64, default=None))
    window_number: str | None = Field(Form(min_length=1, max_length=16, default=None))
    address: str | None = Field(Form(max_length=512, default=None))
    commission_rate: float | None = Field(Form(ge=0, le=100, default=None))
    status: AgentStatus | None = Field(
        Form(description=enumStr(AgentStatus), default=None)
    )


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    updated_on = 2
    created_on = 3


class QueryParams(BaseModel):
    agency_name: str | None = Field(Query(default=None))
    owner_name: str | None = Field(Query(default=None))
    window_number: str | None = Field(Query(default=None))
    status: AgentStatus | None = Field(
        Query(default=None, description=enumStr(AgentStatus))
    )
    # id based
    id: int | None = Field(Query(default=None))
    account_id: int | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def agentData(agent: Agent, account: Account) -> dict:
    data = jsonable_encoder(agent)
    data["username"] = account.username
    data["phone_number"] = account.phone_number
    data["email_id"] = account.email_id
    return data


def searchAgent(session: Session, qParam: QueryParams) -> List[tuple]:
    query = session.query(Agent, Account).join(Account, Account.id == Agent.account_id)

    # Filters
    if qParam.agency_name is not None:
        query = query.filter(Agent.agency_name.ilike(f"%{qParam.agency_name}%"))
    if qParam.owner_name is not None:
        query = query.filter(Agent.owner_name.ilike(f"%{qParam.owner_name}%"))
    if qParam.window_number is not None:
        query = query.filter(Agent.window_number == qParam.window_number)
    if qParam.status is not None:
        query = query.filter(Agent.status == qParam.status)
    # id based
    if qParam.id is not None:
        query = query.filter(Agent.id == qParam.id)
    if qParam.account_id is not None:
        query = query.filter(Agent.account_id == qParam.account_id)

    # Ordering
    orderingAttribute = getattr(Agent, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Admin]
@route_admin.post(
    URL_AGENT,
    tags=["Agent"],
    response_model=AgentSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.UniqueViolation("username"),
        ]
    ),
    description="""
    Onboards a ticket agent: creates an AGENT account and its agency profile.
    New agents start in PENDING status and can sell bookings once set to ACTIVE.
    Only admins can perform this operation.
    """,
)
async def create_agent(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.role(getters.principal(token, session), AccountRole.ADMIN)

        account = Account(
            role=AccountRole.AGENT,
            username=fParam.username,
            password=argon2.makePassword(fParam.password),
            full_name=fParam.owner_name[:32],
            phone_number=fParam.phone_number,
            email_id=fParam.email_id,
        )
        session.add(account)
        session.flush()

        agent = Agent(
            account_id=account.id,
            agency_name=fParam.agency_name,
            owner_name=fParam.owner_name,
            window_number=fParam.window_number,
            address=fParam.address,
            commission_rate=fParam.commission_rate,
            status=fParam.status,
        )
        session.add(agent)
        session.commit()
        session.refresh(agent)

        data = agentData(agent, account)
        logEvent(token, request_info, data)
        return data
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_AGENT,
    tags=["Agent"],
    response_model=AgentSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NoPermission(),
            exceptions.InvalidIdentifier(),
        ]
    ),
    description="""
    Updates an agency profile, including approving (ACTIVE) or suspending an agent.
    Changes are saved only if the agent data has been modified.
    Only admins can perform this operation.
    """,
)
async def update_agent(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.role(getters.principal(token, session), AccountRole.ADMIN)

        agent = session.query(Agent).filter(Agent.id == fParam.id).first()
        if agent is None:
            raise exceptions.InvalidIdentifier()

        updateIfChanged(
            agent,
            fParam,
            [
                Agent.agency_name.key,
                Agent.owner_name.key,
                Agent.window_number.key,
                Agent.address.key,
                Agent.commission_rate.key,
                Agent.status.key,
            ],
        )
        haveUpdates = session.is_modified(agent)
        if haveUpdates:
            session.commit()
            session.refresh(agent)

        account = session.query(Account).filter(Account.id == agent.account_id).first()
        data = agentData(agent, account)
        if haveUpdates:
            logEvent(token, request_info, data)
        return data
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_AGENT,
    tags=["Agent"],
    response_model=List[AgentSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.NoPermission()]
    ),
    description="""
    Lists ticket agents with their account details.
    Supports filtering by agency, owner, window number and status.
    Only admins can perform this operation.
    """,
)
async def fetch_agents(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        validators.role(getters.principal(token, session), AccountRole.ADMIN)

        return [agentData(agent, account) for agent, account in searchAgent(session, qParam)]
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
