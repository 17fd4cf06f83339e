from datetime import timedelta

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from busline.main import app
from busline.src import argon2, lifecycle, openobserve
from busline.src import redis as busRedis
from busline.src.db import Account, Agent, ORMbase, sessionMaker
from busline.src.enums import AccountRole, AgentStatus

PASSWORD = "password123"


@pytest.fixture(autouse=True)
def database(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'busline.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    ORMbase.metadata.create_all(engine)
    sessionMaker.configure(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def redisClient(monkeypatch):
    client = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(busRedis, "redisClient", client)
    return client


@pytest.fixture(autouse=True)
def quietEvents(monkeypatch):
    monkeypatch.setattr(openobserve, "OPENOBSERVE_ENABLED", False)


@pytest.fixture
def session():
    session = sessionMaker()
    yield session
    session.close()


@pytest.fixture
def client():
    with TestClient(app) as client:
        yield client


def makeAccount(username: str, role: AccountRole = AccountRole.CUSTOMER) -> Account:
    session = sessionMaker()
    try:
        account = Account(
            role=role,
            username=username,
            password=argon2.makePassword(PASSWORD),
            full_name=username.title(),
        )
        session.add(account)
        session.flush()
        if role == AccountRole.AGENT:
            session.add(
                Agent(
                    account_id=account.id,
                    agency_name=f"{username.title()} Travels",
                    owner_name=username.title(),
                    window_number="W1",
                    status=AgentStatus.ACTIVE,
                )
            )
        session.commit()
        session.refresh(account)
        return account
    finally:
        session.close()


def login(client: TestClient, username: str, password: str = PASSWORD) -> dict:
    response = client.post(
        "/account/token", data={"username": username, "password": password}
    )
    assert response.status_code == 201, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def travelDay(days: int = 1) -> str:
    return (lifecycle.localToday() + timedelta(days=days)).isoformat()


def createBus(client: TestClient, headers: dict, **fields) -> dict:
    form = {
        "registration_number": "KL07AB1234",
        "name": "Kochi Express",
        "source": "Kochi",
        "destination": "Bengaluru",
        "departure_date": travelDay(),
        "departure_time": "21:00",
        "arrival_time": "06:30",
        "total_seats": "4",
        "seat_arrangement": "1",
        "first_row_seats": "2",
        "last_row_seats": "2",
        "fare": "500",
    }
    form.update({key: str(value) for key, value in fields.items()})
    response = client.post("/admin/buses", data=form, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def admin(client):
    makeAccount("admin", AccountRole.ADMIN)
    return login(client, "admin")


@pytest.fixture
def customer(client):
    account = makeAccount("alice")
    return account, login(client, "alice")


@pytest.fixture
def otherCustomer(client):
    account = makeAccount("bob")
    return account, login(client, "bob")


@pytest.fixture
def agent(client):
    account = makeAccount("agent.one", AccountRole.AGENT)
    return account, login(client, "agent.one")


@pytest.fixture
def bus(client, admin):
    return createBus(client, admin)
