from conftest import PASSWORD, login, travelDay
from busline.src.enums import AgentStatus


def onboard(client, admin, **fields):
    form = {
        "username": "counter.kochi",
        "password": PASSWORD,
        "agency_name": "Vyttila Travels",
        "owner_name": "Devi",
        "window_number": "12",
        "commission_rate": "7.5",
    }
    form.update(fields)
    return client.post("/admin/agents", data=form, headers=admin)


def book(client, headers, busId, seats, **extra):
    body = {
        "busId": busId,
        "seats": seats,
        "from": "Kochi",
        "to": "Bengaluru",
        "date": travelDay(),
    }
    body.update(extra)
    return client.post("/bookings", json=body, headers=headers)


def test_pending_agent_cannot_sell(client, admin, bus):
    response = onboard(client, admin)
    assert response.status_code == 201
    profile = response.json()
    assert profile["status"] == AgentStatus.PENDING
    assert profile["username"] == "counter.kochi"

    headers = login(client, "counter.kochi")
    assert book(client, headers, bus["id"], ["1"]).status_code == 403

    response = client.patch(
        "/admin/agents",
        data={"id": profile["id"], "status": int(AgentStatus.ACTIVE)},
        headers=admin,
    )
    assert response.status_code == 200
    assert response.json()["status"] == AgentStatus.ACTIVE
    assert book(client, headers, bus["id"], ["1"]).status_code == 201


def test_counter_sale(client, agent, bus):
    account, headers = agent
    response = book(client, headers, bus["id"], ["2"])
    assert response.status_code == 201
    booking = response.json()
    assert booking["account_id"] == account.id
    assert booking["agent_id"] == account.id


def test_agent_books_for_customer(client, agent, customer, bus):
    agentAccount, agentHeaders = agent
    aliceAccount, alice = customer

    response = book(client, agentHeaders, bus["id"], ["3", "4"], customerId=aliceAccount.id)
    assert response.status_code == 201
    booking = response.json()
    assert booking["account_id"] == aliceAccount.id
    assert booking["agent_id"] == agentAccount.id

    assert [b["id"] for b in client.get("/bookings", headers=alice).json()] == [
        booking["id"]
    ]
    assert [b["id"] for b in client.get("/bookings", headers=agentHeaders).json()] == [
        booking["id"]
    ]
    # Only the owner or an admin may cancel
    response = client.delete(f"/bookings/{booking['id']}", headers=agentHeaders)
    assert response.status_code == 403
    assert client.delete(f"/bookings/{booking['id']}", headers=alice).status_code == 200


def test_agent_lookup(client, admin):
    onboard(client, admin)
    onboard(client, admin, username="counter.tvm", agency_name="Thampanoor Tours")

    response = client.get(
        "/admin/agents", params={"agency_name": "thampanoor"}, headers=admin
    )
    assert response.status_code == 200
    assert [a["username"] for a in response.json()] == ["counter.tvm"]

    assert onboard(client, admin).status_code == 409
