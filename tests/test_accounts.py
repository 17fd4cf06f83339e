from datetime import datetime, timedelta, timezone

from conftest import PASSWORD, login
from busline.src import cleaner
from busline.src.constants import MAX_ACCOUNT_TOKENS
from busline.src.db import AccountToken
from busline.src.enums import AccountRole, AccountStatus

NEW_PASSWORD = "n3w-password"


def register(client, username="carol"):
    return client.post(
        "/account",
        data={"username": username, "password": PASSWORD, "full_name": "Carol"},
    )


def test_register_and_login(client):
    response = register(client)
    assert response.status_code == 201
    account = response.json()
    assert account["role"] == AccountRole.CUSTOMER
    assert "password" not in account

    assert register(client).status_code == 409

    headers = login(client, "carol")
    response = client.get("/account", headers=headers)
    assert response.status_code == 200
    assert response.json()["username"] == "carol"


def test_wrong_password(client):
    register(client)
    response = client.post(
        "/account/token", data={"username": "carol", "password": "wrong-password"}
    )
    assert response.status_code == 401
    assert response.json()["success"] is False
    response = client.post(
        "/account/token", data={"username": "nobody", "password": PASSWORD}
    )
    assert response.status_code == 401


def test_password_change_signs_out(client):
    register(client)
    first = login(client, "carol")
    second = login(client, "carol")

    response = client.patch("/account", data={"password": NEW_PASSWORD}, headers=first)
    assert response.status_code == 200

    assert client.get("/account", headers=first).status_code == 401
    assert client.get("/account", headers=second).status_code == 401
    headers = login(client, "carol", NEW_PASSWORD)
    assert client.get("/account", headers=headers).status_code == 200


def test_token_refresh_rotates_the_token(client):
    register(client)
    headers = login(client, "carol")

    response = client.patch("/account/token", headers=headers)
    assert response.status_code == 200
    refreshed = {"Authorization": f"Bearer {response.json()['access_token']}"}

    assert client.get("/account", headers=headers).status_code == 401
    assert client.get("/account", headers=refreshed).status_code == 200


def test_logout(client):
    register(client)
    headers = login(client, "carol")
    assert client.delete("/account/token", headers=headers).status_code == 204
    assert client.get("/account", headers=headers).status_code == 401


def test_token_limit(client):
    register(client)
    for _ in range(MAX_ACCOUNT_TOKENS + 2):
        headers = login(client, "carol")

    response = client.get("/account/token", headers=headers)
    assert response.status_code == 200
    tokens = response.json()
    assert len(tokens) == MAX_ACCOUNT_TOKENS
    assert all("access_token" not in token for token in tokens)


def test_suspended_account(client, admin, customer):
    account, headers = customer

    response = client.patch(
        "/admin/accounts",
        data={"id": account.id, "status": int(AccountStatus.SUSPENDED)},
        headers=admin,
    )
    assert response.status_code == 200
    assert response.json()["status"] == AccountStatus.SUSPENDED

    assert client.get("/account", headers=headers).status_code == 401
    response = client.post(
        "/account/token", data={"username": account.username, "password": PASSWORD}
    )
    assert response.status_code == 412


def test_admin_endpoints_need_admin(client, customer, agent):
    for _, headers in (customer, agent):
        assert client.get("/admin/buses", headers=headers).status_code == 403
        assert client.get("/admin/agents", headers=headers).status_code == 403
        assert client.get("/admin/accounts", headers=headers).status_code == 403


def test_admin_lists_accounts(client, admin, customer):
    response = client.get(
        "/admin/accounts", params={"role": int(AccountRole.CUSTOMER)}, headers=admin
    )
    assert response.status_code == 200
    assert [account["username"] for account in response.json()] == ["alice"]


def test_expired_tokens_are_removed(client, session, customer):
    account, _ = customer
    session.add(
        AccountToken(
            account_id=account.id,
            credential_version=account.credential_version,
            expires_in=60,
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
    )
    session.commit()

    assert cleaner.removeExpiredTokens(session) == 1
    assert session.query(AccountToken).count() == 1


def test_sessions_flag_the_current_token(client, admin, customer):
    account, headers = customer
    other = login(client, account.username)

    response = client.get("/account/token", headers=headers)
    assert response.status_code == 200
    sessions = response.json()
    assert len(sessions) == 2
    assert [s["is_current"] for s in sessions].count(True) == 1
    assert all(s["account_id"] == account.id for s in sessions)

    response = client.get(
        "/account/token", params={"account_id": account.id}, headers=other
    )
    assert response.status_code == 200
    response = client.get(
        "/account/token", params={"account_id": account.id + 1000}, headers=headers
    )
    assert response.status_code == 403

    response = client.get(
        "/account/token", params={"account_id": account.id}, headers=admin
    )
    assert response.status_code == 200
    assert len(response.json()) == 2
    assert not any(s["is_current"] for s in response.json())


def test_logout_of_another_session(client, customer, otherCustomer):
    account, headers = customer
    other = login(client, account.username)
    _, bob = otherCustomer

    sessions = client.get("/account/token", headers=headers).json()
    otherId = next(s["id"] for s in sessions if not s["is_current"])

    response = client.request(
        "DELETE", "/account/token", data={"id": otherId}, headers=bob
    )
    assert response.status_code == 403
    assert client.get("/account", headers=other).status_code == 200

    response = client.request(
        "DELETE", "/account/token", data={"id": otherId}, headers=headers
    )
    assert response.status_code == 204
    assert client.get("/account", headers=other).status_code == 401
    assert client.get("/account", headers=headers).status_code == 200


def test_logout_everywhere(client, session, customer, otherCustomer):
    account, headers = customer
    other = login(client, account.username)
    _, bob = otherCustomer

    response = client.request(
        "DELETE", "/account/token", data={"everywhere": "true"}, headers=headers
    )
    assert response.status_code == 204
    assert client.get("/account", headers=headers).status_code == 401
    assert client.get("/account", headers=other).status_code == 401
    assert client.get("/account", headers=bob).status_code == 200
    assert (
        session.query(AccountToken)
        .filter(AccountToken.account_id == account.id)
        .count()
        == 0
    )
